"""Quiz session state machine.

A session moves ``INITIALIZING -> ACTIVE -> FEEDBACK -> (ACTIVE | GAME_OVER)``.
Normal mode is a short run at a chosen region, level and quiz kind where
every verdict leads to feedback. Challenge mode follows the 300-slot schedule
and ends on the first wrong answer. Renderers drive the controller through
``select_answer``/``select_location``/``submit``/``expire``/``advance`` and
read ``snapshot()``; the controller owns no presentation.
"""

from __future__ import annotations

import logging
import random
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, Optional

from ..catalog import CountryCatalog
from ..errors import (
    CatalogLoadError,
    InvalidTransitionError,
    NoCandidatesError,
    SessionBusyError,
)
from ..geocoding import GeocodingResolver
from ..progress import ProgressStore, next_level
from ..regions import Region, selectable_regions
from ..scoring import Breakdown, RecordResult, ScoringEngine
from . import scheduler
from .questions import Question, QuestionGenerator, QuizKind, is_correct

__all__ = [
    "SessionMode",
    "SessionStatus",
    "SessionState",
    "SessionSnapshot",
    "SessionController",
    "DEFAULT_NORMAL_LENGTH",
    "DEFAULT_ANSWER_TIMEOUT",
    "DEFAULT_MIN_CORRECT_PER_LEVEL",
]


DEFAULT_NORMAL_LENGTH = 10
DEFAULT_ANSWER_TIMEOUT = 10.0
DEFAULT_MIN_CORRECT_PER_LEVEL = 3

Clock = Callable[[], float]


class SessionMode(str, Enum):
    NORMAL = "normal"
    CHALLENGE = "challenge"


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    FEEDBACK = "feedback"
    GAME_OVER = "game_over"


@dataclass
class SessionState:
    """Mutable counters owned by one controller."""

    question_index: int = 0
    level: int = 1
    quiz_type: QuizKind = QuizKind.FLAG
    used_country_ids: set[int] = field(default_factory=set)
    score: int = 0
    breakdown: Breakdown = field(default_factory=Breakdown)
    start_time: Optional[float] = None
    game_over: bool = False
    status: SessionStatus = SessionStatus.INITIALIZING
    question: Optional[Question] = None
    selected_answer: Optional[str] = None
    last_correct: Optional[bool] = None
    correct_at_level: int = 0
    question_started: Optional[float] = None
    exhausted: bool = False
    abandoned: bool = False


@dataclass(frozen=True)
class SessionSnapshot:
    mode: SessionMode
    status: SessionStatus
    question_index: int
    total_questions: int
    level: int
    quiz_type: QuizKind
    region: Region
    question: Optional[Question]
    selected_answer: Optional[str]
    last_correct: Optional[bool]
    score: int
    high_score: int
    breakdown: Breakdown
    used_count: int
    elapsed_ms: int
    remaining_seconds: Optional[float]
    game_over: bool
    exhausted: bool
    record: Optional[RecordResult]
    error: Optional[str]


class SessionController:
    """Drive one quiz session against the engine collaborators.

    ``region`` is the user's selected region. In Normal mode it is also the
    scheduled region for every question; in Challenge mode it is the first
    fallback after the scheduled region. All transitions are serialized by a
    busy flag, so a transition triggered from inside another one (for example
    from a geocoding callback) raises ``SessionBusyError``.
    """

    def __init__(
        self,
        mode: SessionMode,
        *,
        catalog: CountryCatalog,
        generator: Optional[QuestionGenerator] = None,
        progress: Optional[ProgressStore] = None,
        scoring: Optional[ScoringEngine] = None,
        resolver: Optional[GeocodingResolver] = None,
        region: Region = Region.WORLD,
        level: int = 1,
        quiz_kind: QuizKind = QuizKind.FLAG,
        length: Optional[int] = None,
        answer_timeout: float = DEFAULT_ANSWER_TIMEOUT,
        min_correct_per_level: int = DEFAULT_MIN_CORRECT_PER_LEVEL,
        rng: Optional[random.Random] = None,
        clock: Clock = time.monotonic,
        on_change: Optional[Callable[[SessionSnapshot], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.mode = SessionMode(mode)
        self.region = region
        self._catalog = catalog
        self._rng = rng or random.Random()
        self._generator = generator or QuestionGenerator(
            catalog, rng=self._rng
        )
        self._progress = progress
        self._scoring = scoring
        self._resolver = resolver
        self._quiz_kind = QuizKind(quiz_kind)
        if length is None:
            length = (
                scheduler.CHALLENGE_LENGTH
                if self.mode is SessionMode.CHALLENGE
                else DEFAULT_NORMAL_LENGTH
            )
        if length < 1:
            raise ValueError("Session length must be at least 1.")
        self.length = length
        self._answer_timeout = answer_timeout
        self._min_correct = min_correct_per_level
        self._clock = clock
        self._on_change = on_change
        self._logger = logger or logging.getLogger(__name__)

        self.state = SessionState(level=level, quiz_type=self._quiz_kind)
        self.finalized = False
        self.record: Optional[RecordResult] = None
        self.fatal_error: Optional[Exception] = None
        self.high_score = 0
        self._busy = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def status(self) -> SessionStatus:
        return self.state.status

    @property
    def exhausted(self) -> bool:
        return self.state.exhausted

    @property
    def busy(self) -> bool:
        return self._busy

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(self) -> Question:
        with self._transition("start"):
            self._require(SessionStatus.INITIALIZING, action="start")
            try:
                countries = self._catalog.load()
            except CatalogLoadError as exc:
                self.fatal_error = exc
                self.state.status = SessionStatus.GAME_OVER
                self.state.game_over = True
                self.finalized = True
                self._logger.error(
                    "Catalog load failed", extra={"error": str(exc)}
                )
                raise
            if self.mode is SessionMode.NORMAL and self._progress is not None:
                self.high_score = self._progress.get_level_high_score(
                    self.state.level
                )
            self.state.start_time = self._clock()
            self.state.question_index = 1
            self._logger.info(
                "Session started",
                extra={
                    "mode": self.mode.value,
                    "region": self.region.value,
                    "level": self.state.level,
                    "countries": len(countries),
                    "length": self.length,
                },
            )
            self._load_question()
        self._notify()
        return self.state.question  # type: ignore[return-value]

    def select_answer(self, answer: str) -> None:
        with self._transition("select_answer"):
            self._require(SessionStatus.ACTIVE, action="select an answer")
            self.state.selected_answer = answer
        self._notify()

    def select_location(self, lat: float, lon: float) -> Optional[str]:
        """Resolve a map tap; a detected country becomes the selection."""

        with self._transition("select_location"):
            self._require(SessionStatus.ACTIVE, action="select a location")
            if self.state.quiz_type is not QuizKind.MAP:
                raise InvalidTransitionError(
                    "Locations can only be selected on map questions."
                )
            if self._resolver is None:
                raise InvalidTransitionError(
                    "No geocoding resolver configured for map questions."
                )
            country = self._resolver.resolve(lat, lon)
            if country is None:
                self._logger.info(
                    "Map tap undetected", extra={"lat": lat, "lon": lon}
                )
                return None
            self.state.selected_answer = country
        self._notify()
        return country

    def submit(self, answer: Optional[str] = None) -> bool:
        with self._transition("submit"):
            self._require(SessionStatus.ACTIVE, action="submit")
            chosen = answer if answer is not None else self.state.selected_answer
            if chosen is None:
                raise InvalidTransitionError("No answer selected.")
            self.state.selected_answer = chosen
            verdict = self._grade(chosen)
        self._notify()
        return verdict

    def expire(self) -> bool:
        """Grade the current Normal-mode question as timed out."""

        with self._transition("expire"):
            if self.mode is not SessionMode.NORMAL:
                raise InvalidTransitionError(
                    "Challenge questions have no countdown."
                )
            self._require(SessionStatus.ACTIVE, action="expire")
            self._logger.debug(
                "Answer countdown expired",
                extra={"question_index": self.state.question_index},
            )
            verdict = self._grade(None)
        self._notify()
        return verdict

    def remaining_seconds(self) -> Optional[float]:
        if (
            self.mode is not SessionMode.NORMAL
            or self.state.status is not SessionStatus.ACTIVE
            or self.state.question_started is None
        ):
            return None
        elapsed = self._clock() - self.state.question_started
        return max(0.0, self._answer_timeout - elapsed)

    def advance(self) -> Optional[Question]:
        with self._transition("advance"):
            self._require(SessionStatus.FEEDBACK, action="advance")
            if self.state.question_index >= self.length:
                self._finish()
            else:
                if self.mode is SessionMode.NORMAL:
                    self._save_level_high_score()
                    self._progress_level()
                self.state.question_index += 1
                self._load_question()
        self._notify()
        if self.state.status is SessionStatus.ACTIVE:
            return self.state.question
        return None

    def abandon(self) -> None:
        """Stop the session without writing Challenge records."""

        with self._transition("abandon"):
            if self.state.game_over:
                return
            self.state.abandoned = True
            self.state.game_over = True
            self.state.status = SessionStatus.GAME_OVER
            self.finalized = True
            self._logger.info(
                "Session abandoned",
                extra={
                    "mode": self.mode.value,
                    "question_index": self.state.question_index,
                    "score": self.state.score,
                },
            )
        self._notify()

    def snapshot(self) -> SessionSnapshot:
        question = self.state.question
        return SessionSnapshot(
            mode=self.mode,
            status=self.state.status,
            question_index=self.state.question_index,
            total_questions=self.length,
            level=self.state.level,
            quiz_type=self.state.quiz_type,
            region=question.region if question else self.region,
            question=question,
            selected_answer=self.state.selected_answer,
            last_correct=self.state.last_correct,
            score=self.state.score,
            high_score=max(self.high_score, self.state.score)
            if self.mode is SessionMode.NORMAL
            else self.high_score,
            breakdown=self.state.breakdown.copy(),
            used_count=len(self.state.used_country_ids),
            elapsed_ms=self.elapsed_ms(),
            remaining_seconds=self.remaining_seconds(),
            game_over=self.state.game_over,
            exhausted=self.state.exhausted,
            record=self.record,
            error=str(self.fatal_error) if self.fatal_error else None,
        )

    def elapsed_ms(self) -> int:
        if self.state.start_time is None:
            return 0
        return int((self._clock() - self.state.start_time) * 1000)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @contextmanager
    def _transition(self, name: str) -> Iterator[None]:
        if self._busy:
            raise SessionBusyError(
                f"Cannot {name} while another transition is in progress."
            )
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    def _require(self, status: SessionStatus, *, action: str) -> None:
        if self.state.status is not status:
            raise InvalidTransitionError(
                f"Cannot {action} while the session is "
                f"{self.state.status.value}."
            )

    def _grade(self, answer: Optional[str]) -> bool:
        state = self.state
        question = state.question
        if question is None:
            raise InvalidTransitionError("No question is active.")

        if state.quiz_type is QuizKind.FLAG:
            state.breakdown.flag_questions += 1
        else:
            state.breakdown.map_questions += 1

        correct = is_correct(question, answer)
        state.last_correct = correct
        if correct:
            state.score += 1
            state.correct_at_level += 1
            if state.level == 1:
                state.breakdown.easy_correct += 1
            elif state.level == 2:
                state.breakdown.medium_correct += 1
            else:
                state.breakdown.hard_correct += 1
            if self.mode is SessionMode.NORMAL and self._progress is not None:
                self._progress.record_correct(
                    question.region, question.level, question.country_id
                )

        self._logger.debug(
            "Answer graded",
            extra={
                "question_index": state.question_index,
                "correct": correct,
                "score": state.score,
            },
        )

        state.status = SessionStatus.FEEDBACK
        if self.mode is SessionMode.CHALLENGE and (
            not correct or state.question_index >= self.length
        ):
            self._finish()
        return correct

    def _slot(self) -> scheduler.ScheduleSlot:
        index = self.state.question_index
        if self.mode is SessionMode.CHALLENGE:
            return scheduler.slot_for(index, self._rng)
        return scheduler.ScheduleSlot(
            index=index,
            level=self.state.level,
            quiz_type=self._quiz_kind,
            region=self.region,
        )

    def _cascade(self, scheduled: Region) -> list[Region]:
        fallback = (
            scheduler.CHALLENGE_REGION_ORDER
            if self.mode is SessionMode.CHALLENGE
            else selectable_regions()
        )
        order = [scheduled, self.region, *fallback]
        return list(dict.fromkeys(order))

    def _load_question(self) -> None:
        slot = self._slot()
        state = self.state

        question: Optional[Question] = None
        first_error: Optional[NoCandidatesError] = None
        for region in self._cascade(slot.region):
            try:
                question = self._generator.generate(
                    slot.level, region, state.used_country_ids, slot.quiz_type
                )
                break
            except NoCandidatesError as exc:
                first_error = first_error or exc
                self._logger.debug(
                    "No candidates, trying next region",
                    extra={"region": region.value, "level": slot.level},
                )

        if question is None:
            # The slot was never asked; counters stay at the last question.
            state.exhausted = True
            state.question_index = slot.index - 1
            self._logger.warning(
                "All regions exhausted",
                extra={
                    "level": slot.level,
                    "question_index": slot.index,
                    "error": str(first_error),
                },
            )
            self._finish()
            return

        if slot.level != state.level:
            self._logger.info(
                "Level changed",
                extra={
                    "from_level": state.level,
                    "to_level": slot.level,
                    "question_index": slot.index,
                },
            )
            state.correct_at_level = 0
        state.level = slot.level
        state.quiz_type = slot.quiz_type
        state.used_country_ids.add(question.country_id)
        state.question = question
        state.selected_answer = None
        state.last_correct = None
        state.question_started = self._clock()
        state.status = SessionStatus.ACTIVE

    def _progress_level(self) -> None:
        if self._progress is None:
            return
        state = self.state
        target = next_level(
            state.level,
            state.correct_at_level,
            region=self.region,
            progress=self._progress,
            min_correct=self._min_correct,
        )
        if target != state.level:
            self._logger.info(
                "Level unlocked for session",
                extra={
                    "region": self.region.value,
                    "from_level": state.level,
                    "to_level": target,
                },
            )
            self.high_score = self._progress.get_level_high_score(target)
            state.level = target
            state.correct_at_level = 0

    def _save_level_high_score(self) -> None:
        if self._progress is None:
            return
        self.high_score = self._progress.save_level_high_score(
            self.state.level, self.state.score
        )

    def _finish(self) -> None:
        state = self.state
        state.status = SessionStatus.GAME_OVER
        state.game_over = True
        if self.finalized:
            return
        self.finalized = True

        if self.mode is SessionMode.CHALLENGE:
            if self._scoring is not None:
                self.record = self._scoring.save_if_record(
                    score=state.score,
                    total_questions=state.question_index,
                    time_spent_ms=self.elapsed_ms(),
                    level_reached=state.level,
                    breakdown=state.breakdown,
                )
        else:
            self._save_level_high_score()

        self._logger.info(
            "Session over",
            extra={
                "mode": self.mode.value,
                "score": state.score,
                "question_index": state.question_index,
                "exhausted": state.exhausted,
            },
        )

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())
