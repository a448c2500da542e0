"""``geo-quiz init``: bootstrap the data home and config template."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Mapping, Sequence

from ..core import config as config_mod
from ..core import workspace as workspace_mod
from ._runtime import print_error


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geo-quiz init",
        description=(
            "Create the geo-quiz data home (config, logs, store) and write a "
            "starter geo_quiz.toml."
        ),
    )
    parser.add_argument(
        "--path",
        type=Path,
        help=(
            "Override the data home (defaults to GEO_QUIZ_DATA_HOME or "
            "~/.geo-quiz-data)."
        ),
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing geo_quiz.toml.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress informational output on success.",
    )
    return parser


def _format_created(created: Mapping[str, bool], key: str) -> str:
    return "created" if created.get(key, False) else "exists"


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        layout = workspace_mod.ensure_workspace(path=args.path)
    except workspace_mod.WorkspaceError as exc:
        print_error(str(exc))
        return 2

    config_path = layout.path_for("config") / config_mod.CONFIG_FILENAME
    config_status = "kept"
    if args.force or not config_path.exists():
        try:
            config_mod.write_template(config_path, overwrite=args.force)
        except config_mod.ConfigError as exc:
            print_error(str(exc))
            return 2
        config_status = "written"

    if args.quiet:
        return 0

    created = layout.created
    lines = [
        f"Workspace ready at {layout.home} "
        f"({_format_created(created, 'home')})"
    ]
    width = max(len(name) for name in layout.directories)
    lines.append("Subdirectories:")
    for name, directory in layout.items():
        status = _format_created(created, name)
        lines.append(f"  {name.ljust(width)}  {directory} ({status})")
    lines.append(f"Config: {config_path} ({config_status})")
    sys.stdout.write("\n".join(lines) + "\n")
    return 0


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
