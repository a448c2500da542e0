"""``geo-quiz progress``: show mastery per region and level."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from ..errors import CatalogLoadError
from ..progress import levels
from ..regions import Region, parse_region, selectable_regions
from ._runtime import (
    STARTUP_ERRORS,
    add_config_argument,
    build_runtime,
    print_error,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geo-quiz progress",
        description="Show learned countries and unlocked levels per region.",
    )
    parser.add_argument(
        "--region",
        help="Only show one region (world, europe, asia, ...).",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete stored progress (for --region only when given).",
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

    region: Optional[Region] = None
    if args.region:
        try:
            region = parse_region(args.region)
        except ValueError as exc:
            parser.error(str(exc))

    try:
        runtime = build_runtime(args.config, command="progress")
    except STARTUP_ERRORS as exc:
        print_error(str(exc))
        return 2

    console = console or Console()
    store = runtime.progress

    if args.reset:
        removed = store.reset(region=region)
        console.print(f"Removed {removed} progress record(s).")
        return 0

    regions = (region,) if region else (Region.WORLD, *selectable_regions())
    table = Table(title="Progress", box=box.SIMPLE, expand=False)
    table.add_column("Region")
    table.add_column("Level", justify="right")
    table.add_column("Learned", justify="right")
    table.add_column("Complete", justify="right")
    table.add_column("Status")
    try:
        for item in regions:
            for level in levels():
                record = store.get(item, level)
                status = (
                    "[green]unlocked[/]"
                    if store.is_unlocked(item, level)
                    else "[dim]locked[/]"
                )
                table.add_row(
                    item.display_name,
                    str(level),
                    f"{len(record.learned_countries)}/{record.total_countries}",
                    f"{record.completion_percentage:.2f}%",
                    status,
                )
    except CatalogLoadError as exc:
        print_error(str(exc))
        return 1
    console.print(table)

    overview = store.overview()
    console.print(
        f"Overall: {overview.total_learned}/{overview.total_available} "
        f"countries ({overview.overall_percentage:.2f}%)"
    )
    return 0


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
