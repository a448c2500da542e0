"""``geo-quiz stats``: show Challenge records."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from ..errors import PersistenceError
from ..scoring import ChallengeScore, format_duration, score_description
from ._runtime import (
    STARTUP_ERRORS,
    add_config_argument,
    build_runtime,
    print_error,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geo-quiz stats",
        description="Show the Challenge best score, statistics and history.",
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Delete all stored Challenge records.",
    )
    add_config_argument(parser)
    return parser


def _score_row(index: int, item: ChallengeScore) -> list[str]:
    return [
        str(index),
        item.achieved_at[:19].replace("T", " "),
        str(item.score),
        str(item.final_score),
        str(item.level_reached),
        format_duration(item.time_spent_ms),
    ]


def main(
    argv: Sequence[str] | None = None,
    *,
    console: Optional[Console] = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        runtime = build_runtime(args.config, command="stats")
    except STARTUP_ERRORS as exc:
        print_error(str(exc))
        return 2

    console = console or Console()
    scoring = runtime.scoring

    if args.clear:
        try:
            scoring.clear()
        except PersistenceError as exc:
            print_error(str(exc))
            return 1
        console.print("Cleared Challenge records.")
        return 0

    best = scoring.get_best()
    if best is None:
        console.print("No Challenge runs recorded yet.")
    else:
        console.print(
            f"Best score: [bold cyan]{best.final_score}[/] "
            f"({best.score} correct, level {best.level_reached}, "
            f"{format_duration(best.time_spent_ms)}) - "
            f"{score_description(best.score)}"
        )

    stats = scoring.get_stats()
    overview = Table(
        show_header=False, box=box.MINIMAL_DOUBLE_HEAD, expand=False
    )
    overview.add_column("Metric", style="bold")
    overview.add_column("Value", justify="right")
    overview.add_row("Attempts", str(stats.total_attempts))
    overview.add_row("Average score", str(stats.average_score))
    overview.add_row("Best streak", str(stats.best_streak))
    overview.add_row("Last streak", str(stats.current_streak))
    overview.add_row(
        "Time played", format_duration(stats.total_time_spent_ms)
    )
    completion = stats.completion
    overview.add_row("Reached easy", str(completion.completed_easy))
    overview.add_row("Reached medium", str(completion.completed_medium))
    overview.add_row("Reached hard", str(completion.completed_hard))
    overview.add_row("Perfect runs", str(completion.perfect_300))
    console.print(overview)

    history = scoring.get_history()
    if history:
        table = Table(title="Recent runs", box=box.SIMPLE, expand=False)
        for column in ("#", "When", "Correct", "Final", "Level", "Time"):
            table.add_column(column, justify="right")
        for index, item in enumerate(history, start=1):
            table.add_row(*_score_row(index, item))
        console.print(table)
    return 0


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
