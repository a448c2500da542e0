"""Unified CLI entry point for geo-quiz."""

from __future__ import annotations

import inspect
import sys
from dataclasses import dataclass
from importlib import import_module, metadata
from typing import Callable, Iterable, Mapping, Optional, Sequence


CommandHandler = Callable[[Sequence[str]], int]


@dataclass(frozen=True)
class CommandSpec:
    """Represents a geo-quiz subcommand."""

    name: str
    summary: str
    handler: Optional[CommandHandler] = None
    is_interactive: bool = False


def _module_handler(module_name: str, prog_name: str) -> CommandHandler:
    return lambda argv: _run_module_command(module_name, "main", prog_name, argv)


_COMMAND_SPECS: Sequence[CommandSpec] = (
    CommandSpec(
        name="init",
        summary="Create the data home and a starter geo_quiz.toml.",
        handler=_module_handler("geo_quiz.commands.init", "geo-quiz init"),
    ),
    CommandSpec(
        name="play",
        summary="Play a flag or map quiz session.",
        is_interactive=True,
        handler=_module_handler("geo_quiz.commands.play", "geo-quiz play"),
    ),
    CommandSpec(
        name="stats",
        summary="Show Challenge best score, statistics and history.",
        handler=_module_handler("geo_quiz.commands.stats", "geo-quiz stats"),
    ),
    CommandSpec(
        name="progress",
        summary="Show learned countries and level unlocks per region.",
        handler=_module_handler(
            "geo_quiz.commands.progress", "geo-quiz progress"
        ),
    ),
    CommandSpec(
        name="resolve",
        summary="Reverse-geocode a coordinate to a country name.",
        handler=_module_handler(
            "geo_quiz.commands.resolve", "geo-quiz resolve"
        ),
    ),
    CommandSpec(
        name="catalog",
        summary="Validate the country catalog.",
        handler=_module_handler(
            "geo_quiz.commands.catalog", "geo-quiz catalog"
        ),
    ),
)

COMMANDS: Mapping[str, CommandSpec] = {
    spec.name: spec for spec in _COMMAND_SPECS
}


def _sorted_specs() -> Iterable[CommandSpec]:
    return _COMMAND_SPECS


def _command_name_width() -> int:
    return max(len(spec.name) for spec in _sorted_specs()) if COMMANDS else 0


def format_command_table() -> str:
    """Return a formatted command table for help output."""

    width = _command_name_width()
    lines = ["Available commands:"]
    for spec in _sorted_specs():
        name = spec.name.ljust(width)
        suffix = " (interactive)" if spec.is_interactive else ""
        lines.append(f"  {name}  {spec.summary}{suffix}")
    return "\n".join(lines)


def format_usage() -> str:
    parts = [
        "Usage: geo-quiz <command> [args...]",
        "Run `geo-quiz list` for commands or `geo-quiz help <name>` for "
        "details.",
        "",
        format_command_table(),
    ]
    return "\n".join(parts)


def _print(
    text: str, *, stream: Optional[Callable[[str], None]] = None
) -> None:
    target = stream if stream is not None else sys.stdout.write
    if text:
        target(text + "\n")


def _print_usage(to: Optional[Callable[[str], None]] = None) -> None:
    _print(format_usage(), stream=to)


def _handle_list() -> int:
    _print(format_command_table())
    return 0


def _handle_version() -> int:
    try:
        version = metadata.version("geo-quiz")
    except metadata.PackageNotFoundError:
        version = "unknown"
    _print(version)
    return 0


def _handle_help(argv: Sequence[str]) -> int:
    if not argv:
        _print_usage()
        return 0

    command = argv[0]
    spec = COMMANDS.get(command)
    if not spec:
        _print(f"Unknown command '{command}'.", stream=sys.stderr.write)
        _print(format_command_table(), stream=sys.stderr.write)
        return 2

    _print(f"{spec.name}: {spec.summary}")
    _print(f"Run `geo-quiz {spec.name} --help` for command options.")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(argv if argv is not None else sys.argv[1:])

    if not args:
        _print_usage()
        return 2

    head, *tail = args

    if head in ("-h", "--help"):
        _print_usage()
        return 0

    if head in ("-V", "--version", "version"):
        return _handle_version()

    if head == "list":
        return _handle_list()

    if head == "help":
        return _handle_help(tail)

    spec = COMMANDS.get(head)
    if spec and spec.handler:
        return spec.handler(tail)

    _print(f"Unknown command '{head}'.", stream=sys.stderr.write)
    _print(format_command_table(), stream=sys.stderr.write)
    return 2


def _run_module_command(
    module_name: str,
    func_name: str,
    prog_name: str,
    argv: Sequence[str],
) -> int:
    module = import_module(module_name)
    target = getattr(module, func_name)
    return _invoke_main(target, prog_name, argv)


def _invoke_main(
    func: Callable[..., object], prog_name: str, argv: Sequence[str]
) -> int:
    positional_count = _positional_parameter_count(func)
    args = list(argv)
    old_argv = sys.argv
    sys.argv = [prog_name, *args]
    try:
        result = func(args) if positional_count else func()
    except SystemExit as exc:
        return _normalize_system_exit(exc)
    finally:
        sys.argv = old_argv

    return _normalize_return(result)


def _positional_parameter_count(func: Callable[..., object]) -> int:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return 0

    count = 0
    for param in signature.parameters.values():
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            count += 1
        elif param.kind is inspect.Parameter.VAR_POSITIONAL:
            return max(count, 1)
    return 1 if count == 1 else 0


def _normalize_return(result: object) -> int:
    if result is None:
        return 0
    if isinstance(result, int):
        return result
    return 0


def _normalize_system_exit(exc: SystemExit) -> int:
    code = exc.code
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    if isinstance(code, str):
        _print(code, stream=sys.stderr.write)
        return 1
    return 1


if __name__ == "__main__":  # pragma: no cover - manual invocation guard
    raise SystemExit(main())
