"""Rich terminal renderer for quiz sessions.

The renderer is a thin collaborator around ``SessionController``: it prints
the current snapshot, reads one command per prompt from an injectable input
provider and forwards it to the controller. Map questions take ``lat,lon``
input in place of a tap.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..errors import InvalidTransitionError, SessionError
from ..scoring import format_duration, score_description
from .questions import QuizKind
from .session import (
    SessionController,
    SessionMode,
    SessionSnapshot,
    SessionStatus,
)

__all__ = [
    "ViewCommand",
    "ViewResult",
    "flag_emoji",
    "parse_view_command",
    "run_session",
]

InputProvider = Callable[[], str]
ExitAction = Literal["finished", "quit"]

_OPTION_KEYS = "ABCD"
_COORDINATE_RE = re.compile(
    r"^\s*(-?\d+(?:\.\d+)?)\s*[, ]\s*(-?\d+(?:\.\d+)?)\s*$"
)


@dataclass(frozen=True)
class ViewCommand:
    type: Literal["select", "locate", "submit", "next", "quit"]
    choice: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None


@dataclass(frozen=True)
class ViewResult:
    exit_action: ExitAction
    snapshot: SessionSnapshot


def flag_emoji(code: str) -> str:
    """Turn an ISO 3166 alpha-2 code into its regional-indicator flag."""

    letters = code.strip().upper()
    if len(letters) != 2 or not letters.isalpha() or not letters.isascii():
        return ""
    return "".join(chr(0x1F1E6 + ord(ch) - ord("A")) for ch in letters)


def parse_view_command(raw: Optional[str]) -> Optional[ViewCommand]:
    """Parse console input into a command."""

    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    lowered = text.lower()
    if lowered in {"quit", "q", "exit"}:
        return ViewCommand("quit")
    if lowered in {"submit", "s"}:
        return ViewCommand("submit")
    if lowered in {"next", "n"}:
        return ViewCommand("next")
    match = _COORDINATE_RE.match(text)
    if match:
        return ViewCommand(
            "locate", lat=float(match.group(1)), lon=float(match.group(2))
        )
    key = text[0].upper()
    if len(text) == 1 and key in _OPTION_KEYS:
        return ViewCommand("select", choice=key)
    return None


def run_session(
    controller: SessionController,
    console: Console,
    input_provider: InputProvider,
) -> ViewResult:
    """Play a session to the end (or until the user quits)."""

    if controller.status is SessionStatus.INITIALIZING:
        controller.start()

    while True:
        snapshot = controller.snapshot()
        if snapshot.game_over:
            _render_game_over(console, snapshot)
            return ViewResult("finished", snapshot)

        if snapshot.status is SessionStatus.ACTIVE:
            _render_question(console, snapshot)
        else:
            _render_feedback(console, snapshot)

        try:
            raw = input_provider()
        except (EOFError, KeyboardInterrupt, StopIteration):
            console.print("\n[bold yellow]Session interrupted.[/]")
            controller.abandon()
            return ViewResult("quit", controller.snapshot())

        command = parse_view_command(raw)
        if snapshot.status is SessionStatus.FEEDBACK:
            if command is not None and command.type == "quit":
                controller.abandon()
                return ViewResult("quit", controller.snapshot())
            controller.advance()
            continue

        if command is None:
            console.print("[red]Unrecognized command. Try again.[/]")
            continue
        if command.type == "quit":
            console.print("\n[bold yellow]Ending session.[/]")
            controller.abandon()
            return ViewResult("quit", controller.snapshot())
        try:
            _apply_command(controller, snapshot, command, console)
        except SessionError as exc:
            console.print(f"[red]{exc}[/red]")


def _apply_command(
    controller: SessionController,
    snapshot: SessionSnapshot,
    command: ViewCommand,
    console: Console,
) -> None:
    late = snapshot.mode is SessionMode.NORMAL and (
        controller.remaining_seconds() == 0
    )
    if late and command.type in {"select", "locate", "submit"}:
        console.print("[bold yellow]Time's up![/]")
        controller.expire()
        return

    question = snapshot.question
    if command.type == "select":
        if question is None or question.kind is not QuizKind.FLAG:
            console.print("[red]Enter coordinates as lat,lon.[/red]")
            return
        index = _OPTION_KEYS.index(command.choice or "A")
        if index >= len(question.options):
            console.print(
                f"[red]'{command.choice}' is not a valid choice.[/red]"
            )
            return
        controller.select_answer(question.options[index])
        console.print(f"Selected [bold]{question.options[index]}[/].")
        return
    if command.type == "locate":
        if command.lat is None or command.lon is None:
            raise InvalidTransitionError(
                "Coordinates are required for a map tap."
            )
        country = controller.select_location(command.lat, command.lon)
        if country is None:
            console.print(
                "[yellow]No country detected there. Try another spot.[/]"
            )
        else:
            console.print(f"Selected [bold]{country}[/].")
        return
    if command.type == "submit":
        controller.submit()
        return
    if command.type == "next":
        console.print("[red]Answer the question first.[/red]")


def _header(snapshot: SessionSnapshot) -> Text:
    return Text.assemble(
        (f"Question {snapshot.question_index}", "bold cyan"),
        (f" / {snapshot.total_questions}", "dim"),
        ("  ", ""),
        (f"Level {snapshot.level}", "magenta"),
        ("  ", ""),
        (snapshot.region.display_name, "green"),
    )


def _render_question(console: Console, snapshot: SessionSnapshot) -> None:
    question = snapshot.question
    if question is None:
        return
    console.print()
    console.rule(_header(snapshot))

    if question.kind is QuizKind.FLAG:
        emoji = flag_emoji(question.flag_ref)
        prompt = Text.assemble(
            ("Which country does this flag belong to? ", "bold"),
            (f"{emoji} ({question.flag_ref})", "bold yellow"),
        )
        console.print(prompt)
        table = Table(show_header=False, box=box.SIMPLE, expand=True)
        table.add_column("Key", justify="center", style="cyan")
        table.add_column("Country")
        for key, option in zip(_OPTION_KEYS, question.options):
            text = Text(option)
            marker = "•" if option == snapshot.selected_answer else " "
            if option == snapshot.selected_answer:
                text.stylize("bold green")
            table.add_row(key, Text(marker + " ") + text)
        console.print(table)
        hint = "Commands: A-D (select), s (submit), q (quit)"
    else:
        console.print(
            Text.assemble(
                ("Find on the map: ", "bold"),
                (question.correct_answer, "bold yellow"),
            )
        )
        if snapshot.selected_answer:
            console.print(
                Text(f"Selected: {snapshot.selected_answer}", style="green")
            )
        hint = "Commands: lat,lon (tap), s (submit), q (quit)"

    status = f"Score {snapshot.score}"
    if snapshot.mode is SessionMode.NORMAL:
        status += f" | High score {snapshot.high_score}"
        if snapshot.remaining_seconds is not None:
            status += f" | {snapshot.remaining_seconds:.0f}s left"
    console.print(Text(f"{status} | {hint}", style="dim"))


def _render_feedback(console: Console, snapshot: SessionSnapshot) -> None:
    question = snapshot.question
    if question is None:
        return
    if snapshot.last_correct:
        body = Text("Correct!", style="bold green")
        border = "green"
    else:
        given = snapshot.selected_answer or "no answer"
        body = Text.assemble(
            ("Wrong. ", "bold red"),
            (f"You chose {given}; the answer was ", ""),
            (question.correct_answer, "bold"),
            (".", ""),
        )
        border = "red"
    console.print(Panel(body, border_style=border))
    console.print(Text("Press Enter for the next question.", style="dim"))


def _render_game_over(console: Console, snapshot: SessionSnapshot) -> None:
    console.print()
    console.rule(Text("Game Over", style="bold magenta"))

    if snapshot.error:
        console.print(Panel(snapshot.error, border_style="red"))
        return
    if snapshot.exhausted:
        console.print(
            "[yellow]No more countries available for this session.[/]"
        )
    elif snapshot.mode is SessionMode.CHALLENGE and snapshot.last_correct is False:
        question = snapshot.question
        if question is not None:
            console.print(
                f"The answer was [bold]{question.correct_answer}[/]."
            )

    overview = Table(
        show_header=False, box=box.MINIMAL_DOUBLE_HEAD, expand=False
    )
    overview.add_column("Metric", style="bold")
    overview.add_column("Value", justify="right")
    overview.add_row("Questions", str(snapshot.question_index))
    overview.add_row("Correct", str(snapshot.score))
    overview.add_row("Level reached", str(snapshot.level))
    overview.add_row("Time", format_duration(snapshot.elapsed_ms))
    breakdown = snapshot.breakdown
    overview.add_row(
        "Easy / Medium / Hard",
        f"{breakdown.easy_correct} / {breakdown.medium_correct} / "
        f"{breakdown.hard_correct}",
    )
    overview.add_row(
        "Flag / Map questions",
        f"{breakdown.flag_questions} / {breakdown.map_questions}",
    )
    if snapshot.mode is SessionMode.NORMAL:
        overview.add_row("High score", str(snapshot.high_score))
    console.print(overview)

    record = snapshot.record
    if record is not None:
        final = record.score
        console.print(
            Text.assemble(
                ("Final score ", "bold"),
                (str(final.final_score), "bold cyan"),
                (f" (+{final.bonus_points:g} bonus)", "dim"),
            )
        )
        console.print(Text(score_description(final.score), style="italic"))
        if record.is_new_record:
            console.print(
                Panel("New personal best!", border_style="green")
            )
