"""Question generation for flag and map rounds."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Collection, Optional

from ..catalog import Country, CountryCatalog
from ..errors import NoCandidatesError
from ..regions import Region

__all__ = [
    "QuizKind",
    "Question",
    "QuestionGenerator",
    "is_correct",
    "OPTION_COUNT",
]


OPTION_COUNT = 4


class QuizKind(str, Enum):
    FLAG = "flag"
    MAP = "map"


@dataclass(frozen=True)
class Question:
    id: str
    correct_answer: str
    options: tuple[str, ...]
    kind: QuizKind
    country_id: int
    region: Region
    level: int
    flag_ref: str = ""


def is_correct(question: Question, answer: Optional[str]) -> bool:
    """Grade ``answer`` by exact, case-sensitive comparison."""

    return answer is not None and answer == question.correct_answer


class QuestionGenerator:
    """Build one question at a time from the catalog.

    ``exclude_ids`` is the session-wide list of used countries, so a country
    never repeats within a session. Distractors are not subject to it.
    """

    def __init__(
        self,
        catalog: CountryCatalog,
        *,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._catalog = catalog
        self._rng = rng or random.Random()
        self._logger = logger or logging.getLogger(__name__)
        self._counter = 0

    def candidates(
        self, level: int, region: Region, exclude_ids: Collection[int]
    ) -> list[Country]:
        excluded = set(exclude_ids)
        return [
            country
            for country in self._catalog.by_region_level(region, level)
            if country.id not in excluded
        ]

    def generate(
        self,
        level: int,
        region: Region,
        exclude_ids: Collection[int],
        kind: QuizKind = QuizKind.FLAG,
    ) -> Question:
        pool = self.candidates(level, region, exclude_ids)
        if not pool:
            raise NoCandidatesError(region, level, excluded=len(exclude_ids))

        correct = self._rng.choice(pool)
        options: tuple[str, ...] = ()
        if QuizKind(kind) is QuizKind.FLAG:
            options = self._flag_options(correct, pool, region)

        self._counter += 1
        question = Question(
            id=f"{QuizKind(kind).value}-{self._counter}-{correct.id}",
            correct_answer=correct.name,
            options=options,
            kind=QuizKind(kind),
            country_id=correct.id,
            region=region,
            level=level,
            flag_ref=correct.flag_ref,
        )
        self._logger.debug(
            "Generated question",
            extra={
                "kind": question.kind.value,
                "region": region.value,
                "level": level,
                "country_id": correct.id,
                "candidates": len(pool),
            },
        )
        return question

    def _flag_options(
        self, correct: Country, pool: list[Country], region: Region
    ) -> tuple[str, ...]:
        needed = OPTION_COUNT - 1
        names = _distinct_names(pool, exclude=correct.name)
        if len(names) < needed:
            region_wide = [
                country
                for country in self._catalog.load()
                if region is Region.WORLD or country.region is region
            ]
            names = _distinct_names(region_wide, exclude=correct.name)
        distractors = self._rng.sample(names, min(needed, len(names)))
        options = [correct.name, *distractors]
        self._rng.shuffle(options)
        return tuple(options)


def _distinct_names(countries: list[Country], *, exclude: str) -> list[str]:
    seen: dict[str, None] = {}
    for country in countries:
        if country.name != exclude:
            seen.setdefault(country.name, None)
    return list(seen)
