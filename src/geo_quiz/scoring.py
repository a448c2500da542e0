"""Challenge scoring, personal records and attempt history.

A finished Challenge run is turned into a ``ChallengeScore`` and written to
three independent records: the best score (only when beaten), aggregate
stats and a short newest-first history. The records live behind
``ChallengeRepository``; a failed write is logged and the computed result is
still returned to the caller.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from .core.storage import KeyValueStore
from .errors import PersistenceError

__all__ = [
    "BEST_SCORE_KEY",
    "STATS_KEY",
    "HISTORY_KEY",
    "PERFECT_SCORE",
    "Breakdown",
    "ScoreCalculation",
    "ChallengeScore",
    "CompletionStats",
    "ChallengeStats",
    "RecordResult",
    "ChallengeRepository",
    "ScoringEngine",
    "calculate",
    "format_duration",
    "score_description",
]


BEST_SCORE_KEY = "best_score"
STATS_KEY = "stats"
HISTORY_KEY = "history"
PERFECT_SCORE = 300
DEFAULT_HISTORY_LIMIT = 10

Clock = Callable[[], datetime]


@dataclass
class Breakdown:
    """Correct answers per level and attempts per quiz type."""

    easy_correct: int = 0
    medium_correct: int = 0
    hard_correct: int = 0
    flag_questions: int = 0
    map_questions: int = 0

    def copy(self) -> "Breakdown":
        return Breakdown(**asdict(self))

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Breakdown":
        return cls(
            easy_correct=int(data.get("easy_correct", 0)),
            medium_correct=int(data.get("medium_correct", 0)),
            hard_correct=int(data.get("hard_correct", 0)),
            flag_questions=int(data.get("flag_questions", 0)),
            map_questions=int(data.get("map_questions", 0)),
        )


@dataclass(frozen=True)
class ScoreCalculation:
    base: int
    bonus: float
    final: int


def calculate(
    correct_count: int,
    level_reached: int,
    time_spent_ms: float,
    breakdown: Breakdown,
) -> ScoreCalculation:
    """Apply the additive bonus rules to a run.

    Medium and hard answers earn 0.5 and 1.0 extra each. Runs with at least
    200 correct answers inside 30 minutes earn two points per minute saved;
    a perfect run earns 50; reaching levels 2 and 3 earns 10 and 20.
    """

    bonus = breakdown.medium_correct * 0.5 + breakdown.hard_correct * 1.0

    minutes = time_spent_ms / (1000 * 60)
    if correct_count >= 200 and minutes < 30:
        bonus += math.floor((30 - minutes) * 2)

    if correct_count == PERFECT_SCORE:
        bonus += 50

    if level_reached >= 2:
        bonus += 10
    if level_reached >= 3:
        bonus += 20

    return ScoreCalculation(
        base=correct_count,
        bonus=bonus,
        final=math.floor(correct_count + bonus),
    )


@dataclass(frozen=True)
class ChallengeScore:
    score: int
    total_questions: int
    time_spent_ms: int
    level_reached: int
    breakdown: Breakdown
    bonus_points: float
    final_score: int
    achieved_at: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["breakdown"] = self.breakdown.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChallengeScore":
        return cls(
            score=int(data["score"]),
            total_questions=int(data["total_questions"]),
            time_spent_ms=int(data["time_spent_ms"]),
            level_reached=int(data["level_reached"]),
            breakdown=Breakdown.from_dict(data.get("breakdown") or {}),
            bonus_points=float(data["bonus_points"]),
            final_score=int(data["final_score"]),
            achieved_at=str(data.get("achieved_at", "")),
        )


@dataclass(frozen=True)
class CompletionStats:
    completed_easy: int = 0
    completed_medium: int = 0
    completed_hard: int = 0
    perfect_300: int = 0


@dataclass(frozen=True)
class ChallengeStats:
    best_score: Optional[ChallengeScore] = None
    total_attempts: int = 0
    average_score: int = 0
    best_streak: int = 0
    current_streak: int = 0
    total_time_spent_ms: int = 0
    completion: CompletionStats = field(default_factory=CompletionStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "best_score": (
                self.best_score.to_dict() if self.best_score else None
            ),
            "total_attempts": self.total_attempts,
            "average_score": self.average_score,
            "best_streak": self.best_streak,
            "current_streak": self.current_streak,
            "total_time_spent_ms": self.total_time_spent_ms,
            "completion": asdict(self.completion),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChallengeStats":
        best = data.get("best_score")
        completion = data.get("completion") or {}
        return cls(
            best_score=ChallengeScore.from_dict(best) if best else None,
            total_attempts=int(data.get("total_attempts", 0)),
            average_score=int(data.get("average_score", 0)),
            best_streak=int(data.get("best_streak", 0)),
            current_streak=int(data.get("current_streak", 0)),
            total_time_spent_ms=int(data.get("total_time_spent_ms", 0)),
            completion=CompletionStats(
                completed_easy=int(completion.get("completed_easy", 0)),
                completed_medium=int(completion.get("completed_medium", 0)),
                completed_hard=int(completion.get("completed_hard", 0)),
                perfect_300=int(completion.get("perfect_300", 0)),
            ),
        )

    def updated_with(self, result: ChallengeScore) -> "ChallengeStats":
        n = self.total_attempts
        keep_best = (
            self.best_score is not None
            and self.best_score.final_score >= result.final_score
        )
        return ChallengeStats(
            best_score=self.best_score if keep_best else result,
            total_attempts=n + 1,
            average_score=math.floor(
                (self.average_score * n + result.final_score) / (n + 1)
            ),
            best_streak=max(self.best_streak, result.score),
            current_streak=result.score,
            total_time_spent_ms=self.total_time_spent_ms
            + result.time_spent_ms,
            completion=CompletionStats(
                completed_easy=self.completion.completed_easy
                + (1 if result.level_reached >= 1 else 0),
                completed_medium=self.completion.completed_medium
                + (1 if result.level_reached >= 2 else 0),
                completed_hard=self.completion.completed_hard
                + (1 if result.level_reached >= 3 else 0),
                perfect_300=self.completion.perfect_300
                + (1 if result.score == PERFECT_SCORE else 0),
            ),
        )


@dataclass(frozen=True)
class RecordResult:
    is_new_record: bool
    score: ChallengeScore


class ChallengeRepository:
    """JSON encoding of the three Challenge records over a key-value store.

    Reads and writes raise ``PersistenceError``; corrupt JSON is reported the
    same way.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._store = store
        self._history_limit = history_limit

    @property
    def history_limit(self) -> int:
        return self._history_limit

    def load_best(self) -> Optional[ChallengeScore]:
        data = self._load_json(BEST_SCORE_KEY)
        if not data:
            return None
        return self._decode(BEST_SCORE_KEY, ChallengeScore.from_dict, data)

    def save_best(self, score: ChallengeScore) -> None:
        self._store.set(BEST_SCORE_KEY, json.dumps(score.to_dict()))

    def load_stats(self) -> Optional[ChallengeStats]:
        data = self._load_json(STATS_KEY)
        if not data:
            return None
        return self._decode(STATS_KEY, ChallengeStats.from_dict, data)

    def save_stats(self, stats: ChallengeStats) -> None:
        self._store.set(STATS_KEY, json.dumps(stats.to_dict()))

    def load_history(self) -> list[ChallengeScore]:
        data = self._load_json(HISTORY_KEY) or []
        if not isinstance(data, list):
            raise PersistenceError("Challenge history must be a JSON array.")
        return [
            self._decode(HISTORY_KEY, ChallengeScore.from_dict, item)
            for item in data
        ]

    def push_history(self, score: ChallengeScore) -> list[ChallengeScore]:
        history = [score, *self.load_history()][: self._history_limit]
        self._store.set(
            HISTORY_KEY, json.dumps([item.to_dict() for item in history])
        )
        return history

    def clear(self) -> None:
        for key in (BEST_SCORE_KEY, STATS_KEY, HISTORY_KEY):
            self._store.remove(key)

    def _load_json(self, key: str) -> Any:
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise PersistenceError(f"Corrupt record '{key}': {exc}") from exc

    @staticmethod
    def _decode(key: str, factory: Callable[[Any], Any], data: Any) -> Any:
        try:
            return factory(data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise PersistenceError(
                f"Malformed record '{key}': {exc!r}"
            ) from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoringEngine:
    """Finalize Challenge runs and expose the stored records."""

    def __init__(
        self,
        repository: ChallengeRepository,
        *,
        clock: Clock = _utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def calculate(
        self,
        correct_count: int,
        level_reached: int,
        time_spent_ms: float,
        breakdown: Breakdown,
    ) -> ScoreCalculation:
        return calculate(correct_count, level_reached, time_spent_ms, breakdown)

    def save_if_record(
        self,
        *,
        score: int,
        total_questions: int,
        time_spent_ms: int,
        level_reached: int,
        breakdown: Breakdown,
    ) -> RecordResult:
        calc = self.calculate(score, level_reached, time_spent_ms, breakdown)
        result = ChallengeScore(
            score=score,
            total_questions=total_questions,
            time_spent_ms=int(time_spent_ms),
            level_reached=level_reached,
            breakdown=breakdown.copy(),
            bonus_points=calc.bonus,
            final_score=calc.final,
            achieved_at=self._clock().isoformat(),
        )

        best = self._guard("read best score", self._repository.load_best)
        is_new_record = best is None or result.final_score > best.final_score
        if is_new_record:
            self._guard(
                "write best score", lambda: self._repository.save_best(result)
            )

        self._guard("update stats", lambda: self._update_stats(result))
        self._guard(
            "append history", lambda: self._repository.push_history(result)
        )

        self._logger.info(
            "Challenge finished",
            extra={
                "score": score,
                "final_score": result.final_score,
                "level_reached": level_reached,
                "new_record": is_new_record,
            },
        )
        return RecordResult(is_new_record=is_new_record, score=result)

    def get_best(self) -> Optional[ChallengeScore]:
        return self._guard("read best score", self._repository.load_best)

    def get_stats(self) -> ChallengeStats:
        stats = self._guard("read stats", self._repository.load_stats)
        if stats is None:
            return ChallengeStats(best_score=self.get_best())
        return stats

    def get_history(self) -> list[ChallengeScore]:
        history = self._guard("read history", self._repository.load_history)
        return history or []

    def clear(self) -> None:
        self._repository.clear()
        self._logger.info("Cleared challenge records")

    def _update_stats(self, result: ChallengeScore) -> None:
        current = self._guard("read stats", self._repository.load_stats)
        if current is None:
            current = ChallengeStats()
        self._repository.save_stats(current.updated_with(result))

    def _guard(self, action: str, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except PersistenceError as exc:
            self._logger.error(
                "Challenge record access failed",
                extra={"action": action, "error": str(exc)},
            )
            return None


def format_duration(milliseconds: float) -> str:
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


_DESCRIPTIONS = (
    (250, "Incredible! Master Explorer"),
    (200, "Amazing! Expert Navigator"),
    (150, "Great! Geography Guru"),
    (100, "Good! World Traveler"),
    (50, "Not bad! Keep exploring"),
)


def score_description(score: int) -> str:
    if score == PERFECT_SCORE:
        return "PERFECT! LEGENDARY!"
    for threshold, text in _DESCRIPTIONS:
        if score >= threshold:
            return text
    return "Keep trying! Practice makes perfect"
