"""Per-region, per-level mastery records and the level unlock gate.

Each (region, level) pair is stored under ``progress_<region>_<level>`` as a
JSON object listing the ids of countries answered correctly at least once.
Level L unlocks for a region once level L-1 reaches exactly 100% there.
The Normal-mode high score per level is kept alongside under
``level_score_<level>``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from .catalog import CountryCatalog
from .core.storage import KeyValueStore
from .errors import PersistenceError
from .regions import Region, parse_region

__all__ = [
    "MAX_LEVEL",
    "PROGRESS_PREFIX",
    "LEVEL_SCORE_PREFIX",
    "RegionLevelProgress",
    "ProgressOverview",
    "ProgressStore",
    "progress_key",
    "parse_progress_key",
    "next_level",
    "levels",
]


MAX_LEVEL = 3
PROGRESS_PREFIX = "progress_"
LEVEL_SCORE_PREFIX = "level_score_"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def progress_key(region: Region, level: int) -> str:
    return f"{PROGRESS_PREFIX}{region.value}_{level}"


def parse_progress_key(key: str) -> Optional[tuple[Region, int]]:
    """Split ``progress_<region>_<level>`` back into its parts."""

    if not key.startswith(PROGRESS_PREFIX):
        return None
    region_text, _, level_text = key[len(PROGRESS_PREFIX):].rpartition("_")
    try:
        return parse_region(region_text), int(level_text)
    except ValueError:
        return None


def _percentage(learned: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(learned / total * 100, 2)


@dataclass(frozen=True)
class RegionLevelProgress:
    learned_countries: tuple[int, ...]
    total_countries: int
    completion_percentage: float
    last_updated: str

    @classmethod
    def empty(cls, total: int, *, now: datetime) -> "RegionLevelProgress":
        return cls(
            learned_countries=(),
            total_countries=total,
            completion_percentage=0.0,
            last_updated=now.isoformat(),
        )

    def with_country(
        self, country_id: int, *, now: datetime
    ) -> "RegionLevelProgress":
        if country_id in self.learned_countries:
            return self
        learned = self.learned_countries + (country_id,)
        return RegionLevelProgress(
            learned_countries=learned,
            total_countries=self.total_countries,
            completion_percentage=_percentage(
                len(learned), self.total_countries
            ),
            last_updated=now.isoformat(),
        )

    def is_learned(self, country_id: int) -> bool:
        return country_id in self.learned_countries

    def to_dict(self) -> dict[str, Any]:
        return {
            "learned_countries": list(self.learned_countries),
            "total_countries": self.total_countries,
            "completion_percentage": self.completion_percentage,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RegionLevelProgress":
        learned: list[int] = []
        for value in data.get("learned_countries", []):
            country_id = int(value)
            if country_id not in learned:
                learned.append(country_id)
        return cls(
            learned_countries=tuple(learned),
            total_countries=int(data.get("total_countries", 0)),
            completion_percentage=float(
                data.get("completion_percentage", 0.0)
            ),
            last_updated=str(data.get("last_updated", "")),
        )


@dataclass(frozen=True)
class ProgressOverview:
    total_learned: int
    total_available: int
    overall_percentage: float
    entries: dict[tuple[Region, int], RegionLevelProgress] = field(
        default_factory=dict
    )


class ProgressStore:
    """Read and update mastery records through a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        catalog: CountryCatalog,
        *,
        clock: Clock = _utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def get(self, region: Region, level: int) -> RegionLevelProgress:
        """Return the stored record, or an unsaved empty one."""

        stored = self._read(region, level)
        if stored is not None:
            return stored
        total = len(self._catalog.by_region_level(region, level))
        return RegionLevelProgress.empty(total, now=self._clock())

    def record_correct(
        self, region: Region, level: int, country_id: int
    ) -> RegionLevelProgress:
        current = self.get(region, level)
        updated = current.with_country(country_id, now=self._clock())
        if updated is current:
            return current
        try:
            self._store.set(
                progress_key(region, level), json.dumps(updated.to_dict())
            )
        except PersistenceError as exc:
            self._logger.error(
                "Failed to save progress",
                extra={
                    "region": region.value,
                    "level": level,
                    "error": str(exc),
                },
            )
        else:
            self._logger.debug(
                "Recorded learned country",
                extra={
                    "region": region.value,
                    "level": level,
                    "country_id": country_id,
                    "completion": updated.completion_percentage,
                },
            )
        return updated

    def is_unlocked(self, region: Region, level: int) -> bool:
        if level <= 1:
            return True
        previous = self.get(region, level - 1)
        return previous.completion_percentage == 100

    def overview(self) -> ProgressOverview:
        entries: dict[tuple[Region, int], RegionLevelProgress] = {}
        for key in self._store.keys():
            parsed = parse_progress_key(key)
            if parsed is None:
                continue
            record = self._read(*parsed)
            if record is not None:
                entries[parsed] = record
        learned = sum(len(item.learned_countries) for item in entries.values())
        available = sum(item.total_countries for item in entries.values())
        return ProgressOverview(
            total_learned=learned,
            total_available=available,
            overall_percentage=_percentage(learned, available),
            entries=entries,
        )

    def reset(
        self, region: Optional[Region] = None, level: Optional[int] = None
    ) -> int:
        """Remove stored records matching the filters; return the count."""

        targets: list[str] = []
        for key in list(self._store.keys()):
            parsed = parse_progress_key(key)
            if parsed is None:
                continue
            if region is not None and parsed[0] is not region:
                continue
            if level is not None and parsed[1] != level:
                continue
            targets.append(key)
        for key in targets:
            self._store.remove(key)
        self._logger.info(
            "Reset progress",
            extra={
                "region": region.value if region else None,
                "level": level,
                "removed": len(targets),
            },
        )
        return len(targets)

    def get_level_high_score(self, level: int) -> int:
        try:
            raw = self._store.get(f"{LEVEL_SCORE_PREFIX}{level}")
        except PersistenceError as exc:
            self._logger.error(
                "Failed to read level high score",
                extra={"level": level, "error": str(exc)},
            )
            return 0
        if raw is None:
            return 0
        try:
            return int(json.loads(raw))
        except (TypeError, ValueError):
            self._logger.warning(
                "Ignoring corrupt level high score", extra={"level": level}
            )
            return 0

    def save_level_high_score(self, level: int, score: int) -> int:
        """Persist ``max(stored, score)`` and return the kept value."""

        best = max(self.get_level_high_score(level), score)
        try:
            self._store.set(f"{LEVEL_SCORE_PREFIX}{level}", json.dumps(best))
        except PersistenceError as exc:
            self._logger.error(
                "Failed to save level high score",
                extra={"level": level, "error": str(exc)},
            )
        return best

    def _read(
        self, region: Region, level: int
    ) -> Optional[RegionLevelProgress]:
        key = progress_key(region, level)
        try:
            raw = self._store.get(key)
        except PersistenceError as exc:
            self._logger.error(
                "Failed to read progress", extra={"key": key, "error": str(exc)}
            )
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("progress record must be an object")
            return RegionLevelProgress.from_dict(data)
        except (TypeError, ValueError) as exc:
            self._logger.warning(
                "Ignoring corrupt progress record",
                extra={"key": key, "error": str(exc)},
            )
            return None


def next_level(
    current: int,
    correct_at_level: int,
    *,
    region: Region,
    progress: ProgressStore,
    min_correct: int,
) -> int:
    """Return the level the next Normal-mode question should use.

    The session moves up one level after ``min_correct`` correct answers at
    the current level, but only when that level is unlocked for ``region``.
    """

    if current >= MAX_LEVEL or correct_at_level < min_correct:
        return current
    candidate = current + 1
    if progress.is_unlocked(region, candidate):
        return candidate
    return current


def levels() -> Iterable[int]:
    return range(1, MAX_LEVEL + 1)
