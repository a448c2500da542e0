"""``geo-quiz play``: run a quiz session in the terminal."""

from __future__ import annotations

import argparse
import random
from typing import Callable, Optional, Sequence

import requests
from rich.console import Console

from ..errors import CatalogLoadError
from ..quiz.questions import QuizKind
from ..quiz.session import SessionController, SessionMode
from ..quiz.view import run_session
from ..regions import Region, parse_region
from ._runtime import (
    STARTUP_ERRORS,
    add_config_argument,
    build_runtime,
    print_error,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geo-quiz play",
        description="Play a flag or map quiz session in the terminal.",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in SessionMode],
        default=SessionMode.NORMAL.value,
        help="Normal (short, per-level) or challenge (300 questions).",
    )
    parser.add_argument(
        "--quiz",
        choices=[kind.value for kind in QuizKind],
        default=QuizKind.FLAG.value,
        help="Question kind for normal mode; challenge mixes both.",
    )
    parser.add_argument(
        "--region",
        default=Region.WORLD.value,
        help="Region to play (world, europe, asia, north_america, ...).",
    )
    parser.add_argument(
        "--level",
        type=int,
        choices=[1, 2, 3],
        default=1,
        help="Starting level for normal mode (must be unlocked).",
    )
    parser.add_argument(
        "--length",
        type=int,
        help="Override the number of questions in the session.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed the question randomizer for a reproducible session.",
    )
    add_config_argument(parser)
    return parser


def main(
    argv: Sequence[str] | None = None,
    *,
    console: Optional[Console] = None,
    input_provider: Optional[Callable[[], str]] = None,
    http_session: Optional[requests.Session] = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        region = parse_region(args.region)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        runtime = build_runtime(args.config, command="play")
    except STARTUP_ERRORS as exc:
        print_error(str(exc))
        return 2

    console = console or Console()
    mode = SessionMode(args.mode)
    session_cfg = runtime.config.session

    if mode is SessionMode.NORMAL:
        try:
            unlocked = runtime.progress.is_unlocked(region, args.level)
        except CatalogLoadError as exc:
            print_error(str(exc))
            return 1
        if not unlocked:
            print_error(
                f"Level {args.level} is locked for {region.display_name}. "
                f"Complete level {args.level - 1} first."
            )
            return 2
        length = args.length or session_cfg.normal_length
    else:
        length = args.length or session_cfg.challenge_length

    controller = SessionController(
        mode,
        catalog=runtime.catalog,
        progress=runtime.progress,
        scoring=runtime.scoring,
        resolver=runtime.resolver(session=http_session),
        region=region,
        level=args.level if mode is SessionMode.NORMAL else 1,
        quiz_kind=QuizKind(args.quiz),
        length=length,
        answer_timeout=session_cfg.answer_timeout_seconds,
        min_correct_per_level=session_cfg.min_correct_per_level,
        rng=random.Random(args.seed),
        logger=runtime.logger.getChild("session"),
    )

    provider = input_provider or (lambda: console.input("[bold]> [/]"))
    try:
        result = run_session(controller, console, provider)
    except CatalogLoadError as exc:
        print_error(str(exc))
        return 1

    runtime.logger.info(
        "Play command finished",
        extra={
            "mode": mode.value,
            "exit_action": result.exit_action,
            "score": result.snapshot.score,
        },
    )
    return 0


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
