from __future__ import annotations

import random

import pytest

from geo_quiz.catalog import Country, InMemoryCatalog
from geo_quiz.errors import NoCandidatesError
from geo_quiz.quiz.questions import (
    OPTION_COUNT,
    Question,
    QuestionGenerator,
    QuizKind,
    is_correct,
)
from geo_quiz.regions import Region


def test_flag_question_has_four_distinct_options(catalog, rng) -> None:
    generator = QuestionGenerator(catalog, rng=rng)

    question = generator.generate(1, Region.EUROPE, [])

    assert question.kind is QuizKind.FLAG
    assert len(question.options) == OPTION_COUNT
    assert len(set(question.options)) == OPTION_COUNT
    assert question.correct_answer in question.options
    assert question.region is Region.EUROPE
    assert question.level == 1
    country = catalog.by_id(question.country_id)
    assert country.name == question.correct_answer
    assert question.flag_ref == country.flag_ref


def test_distractors_stay_in_region(catalog, rng) -> None:
    generator = QuestionGenerator(catalog, rng=rng)
    europe = {c.name for c in catalog.by_region(Region.EUROPE)}

    for _ in range(20):
        question = generator.generate(1, Region.EUROPE, [])
        assert set(question.options) <= europe


def test_excluded_countries_are_never_the_answer(catalog, rng) -> None:
    generator = QuestionGenerator(catalog, rng=rng)
    used: list[int] = []

    for _ in range(5):
        question = generator.generate(1, Region.EUROPE, used)
        assert question.country_id not in used
        used.append(question.country_id)

    assert sorted(used) == [1, 2, 3, 4, 5]
    with pytest.raises(NoCandidatesError) as excinfo:
        generator.generate(1, Region.EUROPE, used)
    assert excinfo.value.region is Region.EUROPE
    assert excinfo.value.level == 1


def test_small_pool_widens_options_to_region(catalog, rng) -> None:
    generator = QuestionGenerator(catalog, rng=rng)

    question = generator.generate(2, Region.EUROPE, [])

    assert question.correct_answer in {"Slovenia", "Estonia"}
    assert len(question.options) == OPTION_COUNT
    assert len(set(question.options)) == OPTION_COUNT


def test_region_with_too_few_countries_returns_fewer_options(rng) -> None:
    tiny = InMemoryCatalog(
        [
            Country(1, "Fiji", 1, Region.OCEANIA, "FJ"),
            Country(2, "Samoa", 1, Region.OCEANIA, "WS"),
        ]
    )
    generator = QuestionGenerator(tiny, rng=rng)

    question = generator.generate(1, Region.OCEANIA, [])

    assert sorted(question.options) == ["Fiji", "Samoa"]


def test_world_region_draws_from_every_region(catalog) -> None:
    generator = QuestionGenerator(catalog, rng=random.Random(7))
    regions = set()

    used: list[int] = []
    for _ in range(18):
        question = generator.generate(1, Region.WORLD, used)
        used.append(question.country_id)
        regions.add(catalog.by_id(question.country_id).region)

    assert len(regions) == 6
    with pytest.raises(NoCandidatesError):
        generator.generate(1, Region.WORLD, used)


def test_map_question_has_no_options(catalog, rng) -> None:
    generator = QuestionGenerator(catalog, rng=rng)

    question = generator.generate(1, Region.ASIA, [], kind=QuizKind.MAP)

    assert question.kind is QuizKind.MAP
    assert question.options == ()
    assert question.id.startswith("map-")


def test_question_ids_are_unique(catalog, rng) -> None:
    generator = QuestionGenerator(catalog, rng=rng)

    ids = {generator.generate(1, Region.WORLD, []).id for _ in range(10)}

    assert len(ids) == 10


def test_same_seed_gives_same_questions(catalog) -> None:
    first = QuestionGenerator(catalog, rng=random.Random(99))
    second = QuestionGenerator(catalog, rng=random.Random(99))

    assert first.generate(1, Region.WORLD, []) == second.generate(
        1, Region.WORLD, []
    )


def test_is_correct_is_exact_match() -> None:
    question = Question(
        id="flag-1-1",
        correct_answer="France",
        options=("France", "Spain", "Italy", "Germany"),
        kind=QuizKind.FLAG,
        country_id=1,
        region=Region.EUROPE,
        level=1,
    )

    assert is_correct(question, "France")
    assert not is_correct(question, "france")
    assert not is_correct(question, "Spain")
    assert not is_correct(question, None)
