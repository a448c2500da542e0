"""``geo-quiz resolve``: reverse-geocode one coordinate."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

import requests

from ._runtime import (
    STARTUP_ERRORS,
    add_config_argument,
    build_runtime,
    print_error,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geo-quiz resolve",
        description="Print the country at a coordinate, or 'undetected'.",
    )
    parser.add_argument("lat", type=float, help="Latitude in degrees.")
    parser.add_argument("lon", type=float, help="Longitude in degrees.")
    add_config_argument(parser)
    return parser


def main(
    argv: Sequence[str] | None = None,
    *,
    http_session: Optional[requests.Session] = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        runtime = build_runtime(args.config, command="resolve")
    except STARTUP_ERRORS as exc:
        print_error(str(exc))
        return 2

    country = runtime.resolver(session=http_session).resolve(args.lat, args.lon)
    print(country if country is not None else "undetected")
    return 0 if country is not None else 1


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
