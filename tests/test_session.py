from __future__ import annotations

import random

import pytest

from fixtures import FakeResponse
from geo_quiz.catalog import Country, InMemoryCatalog
from geo_quiz.errors import (
    CatalogLoadError,
    InvalidTransitionError,
    SessionBusyError,
)
from geo_quiz.geocoding import GeocodeCache, GeocodingResolver, NominatimProvider
from geo_quiz.progress import ProgressStore
from geo_quiz.quiz.questions import QuizKind
from geo_quiz.quiz.session import SessionController, SessionMode, SessionStatus
from geo_quiz.regions import Region
from geo_quiz.scoring import ChallengeRepository, ScoringEngine


class BrokenCatalog(InMemoryCatalog):
    def __init__(self) -> None:
        super().__init__([])

    def load(self):
        raise CatalogLoadError("catalog unavailable")


@pytest.fixture
def progress(store, catalog) -> ProgressStore:
    return ProgressStore(store, catalog)


@pytest.fixture
def scoring(store) -> ScoringEngine:
    return ScoringEngine(ChallengeRepository(store))


@pytest.fixture
def make_session(catalog, progress, scoring, clock):
    def factory(mode=SessionMode.NORMAL, **kwargs) -> SessionController:
        params = {
            "catalog": catalog,
            "progress": progress,
            "scoring": scoring,
            "rng": random.Random(42),
            "clock": clock,
        }
        params.update(kwargs)
        return SessionController(mode, **params)

    return factory


def _answer_correctly(session: SessionController) -> bool:
    return session.submit(session.state.question.correct_answer)


def _answer_wrong(session: SessionController) -> bool:
    return session.submit("Atlantis")


def test_start_loads_first_question(make_session) -> None:
    session = make_session(region=Region.EUROPE)

    question = session.start()

    assert session.status is SessionStatus.ACTIVE
    assert question.region is Region.EUROPE
    assert question.level == 1
    snap = session.snapshot()
    assert snap.question_index == 1
    assert snap.total_questions == 10
    assert snap.used_count == 1
    assert snap.selected_answer is None


def test_start_twice_is_invalid(make_session) -> None:
    session = make_session()
    session.start()

    with pytest.raises(InvalidTransitionError):
        session.start()


def test_normal_session_runs_to_length(make_session, progress) -> None:
    session = make_session(region=Region.WORLD, length=4)
    session.start()

    results = []
    for index in range(4):
        if index % 2 == 0:
            results.append(_answer_correctly(session))
        else:
            results.append(_answer_wrong(session))
        assert session.status is SessionStatus.FEEDBACK
        session.advance()

    assert results == [True, False, True, False]
    assert session.status is SessionStatus.GAME_OVER
    assert session.finalized
    snap = session.snapshot()
    assert snap.score == 2
    assert snap.breakdown.easy_correct == 2
    assert snap.breakdown.flag_questions == 4
    assert progress.get_level_high_score(1) == 2
    assert session.record is None


def test_countries_never_repeat_within_a_session(make_session) -> None:
    session = make_session(region=Region.WORLD, length=18)
    session.start()
    seen = set()

    while session.status is not SessionStatus.GAME_OVER:
        seen.add(session.state.question.country_id)
        _answer_wrong(session)
        session.advance()

    assert len(seen) == 18


def test_region_cascade_when_selected_region_runs_out(make_session) -> None:
    session = make_session(region=Region.OCEANIA, length=3)
    session.start()

    regions = []
    for _ in range(3):
        regions.append(session.state.question.region)
        _answer_wrong(session)
        session.advance()

    assert regions[:2] == [Region.OCEANIA, Region.OCEANIA]
    assert regions[2] is Region.EUROPE


def test_exhaustion_ends_session_and_saves_once(make_session, progress) -> None:
    session = make_session(
        region=Region.WORLD, length=30, min_correct_per_level=100
    )
    session.start()

    answered = 0
    while session.status is SessionStatus.ACTIVE:
        _answer_correctly(session)
        answered += 1
        session.advance()

    assert answered == 18
    assert session.exhausted
    assert session.status is SessionStatus.GAME_OVER
    snap = session.snapshot()
    assert snap.exhausted
    assert snap.question_index == 18
    assert snap.level == 1
    assert progress.get_level_high_score(1) == 18
    with pytest.raises(InvalidTransitionError):
        session.advance()


def test_correct_answers_record_progress(make_session, progress) -> None:
    session = make_session(region=Region.ASIA)
    session.start()
    country_id = session.state.question.country_id

    _answer_correctly(session)
    session.advance()
    _answer_wrong(session)

    record = progress.get(Region.ASIA, 1)
    assert record.learned_countries == (country_id,)
    assert record.completion_percentage == 25.0


def test_level_moves_up_after_min_correct_when_unlocked(
    make_session, progress
) -> None:
    for country_id in (1, 2, 3, 4, 5):
        progress.record_correct(Region.EUROPE, 1, country_id)
    session = make_session(region=Region.EUROPE, min_correct_per_level=3)
    session.start()

    for _ in range(3):
        assert session.state.level == 1
        _answer_correctly(session)
        session.advance()

    assert session.state.level == 2
    assert session.state.question.level == 2
    assert session.state.question.correct_answer in {"Slovenia", "Estonia"}
    assert session.state.correct_at_level == 0


def test_level_stays_when_next_level_locked(make_session) -> None:
    session = make_session(region=Region.EUROPE, min_correct_per_level=1)
    session.start()

    _answer_correctly(session)
    session.advance()

    assert session.state.level == 1


def test_high_score_shown_is_best_of_stored_and_current(
    make_session, progress
) -> None:
    progress.save_level_high_score(1, 3)
    session = make_session(region=Region.WORLD)
    session.start()

    assert session.snapshot().high_score == 3
    for _ in range(4):
        _answer_correctly(session)
        session.advance()

    assert session.snapshot().high_score == 4
    assert progress.get_level_high_score(1) == 4


def test_submit_without_answer_is_invalid(make_session) -> None:
    session = make_session()
    session.start()

    with pytest.raises(InvalidTransitionError, match="No answer"):
        session.submit()


def test_select_then_submit(make_session) -> None:
    session = make_session()
    question = session.start()

    session.select_answer(question.correct_answer)
    assert session.snapshot().selected_answer == question.correct_answer

    assert session.submit() is True


def test_double_submit_is_rejected(make_session) -> None:
    session = make_session()
    session.start()
    _answer_correctly(session)

    with pytest.raises(InvalidTransitionError):
        _answer_correctly(session)
    assert session.snapshot().score == 1


def test_timeout_grades_as_wrong(make_session, clock) -> None:
    session = make_session(answer_timeout=10.0)
    session.start()

    clock.advance(4)
    assert session.remaining_seconds() == 6.0
    clock.advance(7)
    assert session.remaining_seconds() == 0.0

    assert session.expire() is False
    snap = session.snapshot()
    assert snap.status is SessionStatus.FEEDBACK
    assert snap.last_correct is False
    assert snap.remaining_seconds is None


def test_elapsed_ms_tracks_clock(make_session, clock) -> None:
    session = make_session()
    assert session.elapsed_ms() == 0
    session.start()

    clock.advance(2.5)

    assert session.elapsed_ms() == 2500


def test_on_change_receives_snapshots(make_session) -> None:
    seen = []
    session = make_session(on_change=seen.append)

    session.start()
    _answer_correctly(session)
    session.advance()

    assert [snap.status for snap in seen] == [
        SessionStatus.ACTIVE,
        SessionStatus.FEEDBACK,
        SessionStatus.ACTIVE,
    ]
    assert seen[1].last_correct is True


def test_abandon_stops_without_records(make_session, scoring) -> None:
    session = make_session(SessionMode.CHALLENGE)
    session.start()
    _answer_correctly(session)
    session.advance()

    session.abandon()
    session.abandon()

    assert session.status is SessionStatus.GAME_OVER
    assert session.finalized
    assert session.record is None
    assert scoring.get_best() is None
    with pytest.raises(InvalidTransitionError):
        _answer_correctly(session)


def test_catalog_failure_ends_session(progress, scoring) -> None:
    session = SessionController(
        SessionMode.CHALLENGE,
        catalog=BrokenCatalog(),
        progress=progress,
        scoring=scoring,
    )

    with pytest.raises(CatalogLoadError):
        session.start()

    snap = session.snapshot()
    assert snap.game_over
    assert snap.error == "catalog unavailable"
    assert session.finalized
    assert scoring.get_best() is None


def test_challenge_ends_on_first_wrong_answer(make_session, scoring) -> None:
    session = make_session(SessionMode.CHALLENGE)
    session.start()

    for _ in range(6):
        assert _answer_correctly(session)
        session.advance()
    assert session.snapshot().question_index == 7
    assert _answer_wrong(session) is False

    assert session.status is SessionStatus.GAME_OVER
    record = session.record
    assert record.is_new_record
    assert record.score.score == 6
    assert record.score.total_questions == 7
    assert record.score.level_reached == 1
    assert record.score.final_score == 6
    assert scoring.get_best().score == 6
    assert scoring.get_stats().total_attempts == 1


def test_challenge_follows_region_schedule(make_session) -> None:
    session = make_session(SessionMode.CHALLENGE)
    session.start()

    regions = []
    for _ in range(6):
        regions.append(session.state.question.region)
        _answer_correctly(session)
        session.advance()

    assert regions == [
        Region.EUROPE,
        Region.AFRICA,
        Region.ASIA,
        Region.NORTH_AMERICA,
        Region.SOUTH_AMERICA,
        Region.OCEANIA,
    ]


def test_challenge_finishes_at_last_correct_answer(
    make_session, scoring
) -> None:
    session = make_session(SessionMode.CHALLENGE, length=3)
    session.start()

    _answer_correctly(session)
    session.advance()
    _answer_correctly(session)
    session.advance()
    _answer_correctly(session)

    assert session.status is SessionStatus.GAME_OVER
    assert session.record.score.score == 3
    assert session.record.score.total_questions == 3
    with pytest.raises(InvalidTransitionError):
        session.advance()
    assert scoring.get_stats().total_attempts == 1


def test_challenge_has_no_countdown(make_session) -> None:
    session = make_session(SessionMode.CHALLENGE)
    session.start()

    assert session.remaining_seconds() is None
    with pytest.raises(InvalidTransitionError):
        session.expire()


def test_challenge_lower_score_is_not_a_record(make_session, scoring) -> None:
    first = make_session(SessionMode.CHALLENGE)
    first.start()
    _answer_correctly(first)
    first.advance()
    _answer_wrong(first)

    second = make_session(SessionMode.CHALLENGE)
    second.start()
    _answer_wrong(second)

    assert first.record.is_new_record
    assert not second.record.is_new_record
    assert scoring.get_best().score == 1
    assert scoring.get_stats().total_attempts == 2


@pytest.fixture
def map_resolver(http_session, clock) -> GeocodingResolver:
    return GeocodingResolver(
        [NominatimProvider(session=http_session)],
        cache=GeocodeCache(clock=clock),
    )


def test_map_tap_selects_detected_country(
    make_session, map_resolver, http_session
) -> None:
    session = make_session(quiz_kind=QuizKind.MAP, resolver=map_resolver)
    question = session.start()
    assert question.kind is QuizKind.MAP
    http_session.queue(
        "nominatim",
        FakeResponse(payload={"address": {"country": question.correct_answer}}),
    )

    assert session.select_location(10.0, 20.0) == question.correct_answer
    assert session.submit() is True
    assert session.snapshot().breakdown.map_questions == 1


def test_undetected_map_tap_leaves_state_unchanged(
    make_session, map_resolver
) -> None:
    session = make_session(quiz_kind=QuizKind.MAP, resolver=map_resolver)
    session.start()
    before = session.snapshot()

    assert session.select_location(0.0, -30.0) is None

    after = session.snapshot()
    assert after.status is SessionStatus.ACTIVE
    assert after.selected_answer is None
    assert after.question == before.question


def test_location_on_flag_question_is_invalid(
    make_session, map_resolver
) -> None:
    session = make_session(resolver=map_resolver)
    session.start()

    with pytest.raises(InvalidTransitionError):
        session.select_location(1.0, 1.0)


def test_reentrant_transition_raises_busy(make_session) -> None:
    session = make_session(quiz_kind=QuizKind.MAP)
    session.start()
    errors = []

    class ReentrantResolver:
        def resolve(self, lat, lon):
            try:
                session.submit("France")
            except SessionBusyError as exc:
                errors.append(exc)
            return None

    session._resolver = ReentrantResolver()
    session.select_location(1.0, 1.0)

    assert len(errors) == 1
    assert not session.busy
    assert session.status is SessionStatus.ACTIVE


def test_invalid_length_rejected(catalog) -> None:
    with pytest.raises(ValueError):
        SessionController(SessionMode.NORMAL, catalog=catalog, length=0)


def test_challenge_exhaustion_records_only_asked_questions(
    make_session, scoring
) -> None:
    session = make_session(SessionMode.CHALLENGE)
    session.start()

    answered = 0
    while session.status is SessionStatus.ACTIVE:
        assert _answer_correctly(session)
        answered += 1
        session.advance()

    assert answered == 18
    assert session.exhausted
    assert session.snapshot().question_index == 18
    score = session.record.score
    assert score.score == 18
    assert score.total_questions == 18
    assert score.level_reached == 1
    assert scoring.get_best().total_questions == 18


def test_challenge_exhaustion_at_level_boundary_keeps_reached_level(
    scoring, clock
) -> None:
    countries = [
        Country(
            id=number,
            name=f"Country {number}",
            level=1,
            region=Region.EUROPE,
            flag_ref="XX",
        )
        for number in range(1, 101)
    ]
    session = SessionController(
        SessionMode.CHALLENGE,
        catalog=InMemoryCatalog(countries),
        scoring=scoring,
        rng=random.Random(7),
        clock=clock,
    )
    session.start()

    while session.status is SessionStatus.ACTIVE:
        assert _answer_correctly(session)
        session.advance()

    assert session.exhausted
    assert session.state.level == 1
    score = session.record.score
    assert score.score == 100
    assert score.total_questions == 100
    assert score.level_reached == 1
    assert score.bonus_points == 0
    assert score.final_score == 100


def test_challenge_fallback_follows_challenge_region_order(
    catalog, scoring, clock
) -> None:
    countries = [
        country
        for country in catalog.load()
        if country.region in (Region.ASIA, Region.AFRICA)
    ]
    session = SessionController(
        SessionMode.CHALLENGE,
        catalog=InMemoryCatalog(countries),
        scoring=scoring,
        region=Region.OCEANIA,
        rng=random.Random(1),
        clock=clock,
    )

    question = session.start()

    assert question.region is Region.AFRICA


def test_grading_without_a_question_is_rejected(make_session) -> None:
    session = make_session()
    session.state.status = SessionStatus.ACTIVE

    with pytest.raises(InvalidTransitionError, match="No question"):
        session.submit("France")
