"""Challenge-mode difficulty schedule.

Every slot of the run is a pure function of its 1-based index, apart from the
occasional random quiz-type pick which draws from the supplied RNG.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from ..regions import Region
from .questions import QuizKind

__all__ = [
    "CHALLENGE_LENGTH",
    "CHALLENGE_REGION_ORDER",
    "LEVEL_SPAN",
    "RANDOM_KIND_CHANCE",
    "ScheduleSlot",
    "level_for",
    "quiz_type_for",
    "region_for",
    "slot_for",
]


CHALLENGE_LENGTH = 300
LEVEL_SPAN = 100
RANDOM_KIND_CHANCE = 0.1

# Round-robin order for scheduled regions and the Challenge fallback.
CHALLENGE_REGION_ORDER: tuple[Region, ...] = (
    Region.EUROPE,
    Region.AFRICA,
    Region.ASIA,
    Region.NORTH_AMERICA,
    Region.SOUTH_AMERICA,
    Region.OCEANIA,
)


@dataclass(frozen=True)
class ScheduleSlot:
    index: int
    level: int
    quiz_type: QuizKind
    region: Region


def _check_index(index: int) -> None:
    if index < 1:
        raise ValueError(f"Question index must be 1 or greater, got {index}.")


def level_for(index: int) -> int:
    _check_index(index)
    return min(3, (index - 1) // LEVEL_SPAN + 1)


def quiz_type_for(index: int, rng: random.Random) -> QuizKind:
    """Alternate flag/map rounds, with a 10% chance of a random pick."""

    _check_index(index)
    if rng.random() < RANDOM_KIND_CHANCE:
        return rng.choice((QuizKind.FLAG, QuizKind.MAP))
    return QuizKind.FLAG if index % 4 in (0, 2) else QuizKind.MAP


def region_for(index: int) -> Region:
    _check_index(index)
    regions = CHALLENGE_REGION_ORDER
    return regions[(index - 1) % len(regions)]


def slot_for(index: int, rng: random.Random) -> ScheduleSlot:
    return ScheduleSlot(
        index=index,
        level=level_for(index),
        quiz_type=quiz_type_for(index, rng),
        region=region_for(index),
    )
