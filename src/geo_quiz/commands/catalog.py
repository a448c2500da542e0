"""``geo-quiz catalog``: check the country catalog."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from ..catalog import validate_catalog
from ..errors import CatalogLoadError
from ._runtime import (
    STARTUP_ERRORS,
    add_config_argument,
    build_runtime,
    print_error,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geo-quiz catalog",
        description="Validate the country catalog and show its counts.",
    )
    add_config_argument(parser)
    return parser


def main(
    argv: Sequence[str] | None = None,
    *,
    console: Optional[Console] = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        runtime = build_runtime(args.config, command="catalog")
        countries = runtime.catalog.load()
    except (*STARTUP_ERRORS, CatalogLoadError) as exc:
        print_error(str(exc))
        return 2

    console = console or Console()
    report = validate_catalog(countries)
    console.print(
        f"Catalog [bold]{runtime.catalog.source}[/]: {report.total} countries"
    )

    table = Table(box=box.SIMPLE, expand=False)
    table.add_column("Region")
    table.add_column("Countries", justify="right")
    for region, count in report.by_region.items():
        table.add_row(region, str(count))
    console.print(table)
    console.print(
        "Levels: "
        + ", ".join(
            f"{level}={count}" for level, count in report.by_level.items()
        )
    )

    for warning in report.warnings:
        console.print(f"[yellow]warning:[/] {warning}")
    for issue in report.issues:
        console.print(f"[red]issue:[/] {issue}")

    if not report.is_valid:
        return 1
    console.print("[green]Catalog OK[/]")
    return 0


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
