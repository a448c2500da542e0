"""Country catalog loading and integrity checks.

The catalog is a JSON document with a ``countries`` array. Each entry carries
the numeric id, canonical name, difficulty level, region value and the ISO
code used as the flag reference. The bundled copy lives in
``geo_quiz/data/countries.json``; a custom file can be configured through
``[paths] catalog``.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from .errors import CatalogLoadError
from .regions import Region, parse_region

__all__ = [
    "Country",
    "CountryCatalog",
    "JsonCountryCatalog",
    "InMemoryCatalog",
    "CatalogReport",
    "validate_catalog",
    "DATA_PACKAGE",
    "DATA_FILENAME",
]


DATA_PACKAGE = "geo_quiz.data"
DATA_FILENAME = "countries.json"
VALID_LEVELS = (1, 2, 3)


@dataclass(frozen=True)
class Country:
    id: int
    name: str
    level: int
    region: Region
    flag_ref: str
    population: Optional[int] = None
    area: Optional[float] = None
    capital: Optional[str] = None


class CountryCatalog(Protocol):
    """Source of countries for question generation."""

    def load(self) -> list[Country]: ...

    def by_region_level(self, region: Region, level: int) -> list[Country]: ...


class _CatalogLookups:
    """Query helpers shared by catalog implementations."""

    def load(self) -> list[Country]:  # pragma: no cover - overridden
        raise NotImplementedError

    def by_region_level(self, region: Region, level: int) -> list[Country]:
        return [
            country
            for country in self.by_region(region)
            if country.level == level
        ]

    def by_region(self, region: Region) -> list[Country]:
        countries = self.load()
        if region is Region.WORLD:
            return list(countries)
        return [country for country in countries if country.region is region]

    def by_id(self, country_id: int) -> Optional[Country]:
        for country in self.load():
            if country.id == country_id:
                return country
        return None

    def by_name(self, name: str) -> Optional[Country]:
        needle = name.strip().casefold()
        for country in self.load():
            if country.name.casefold() == needle:
                return country
        return None

    def stats(self) -> dict[str, Any]:
        """Return total, per-level and per-region counts."""

        countries = self.load()
        levels = Counter(country.level for country in countries)
        regions = Counter(country.region.value for country in countries)
        return {
            "total": len(countries),
            "levels": {level: levels.get(level, 0) for level in VALID_LEVELS},
            "regions": dict(sorted(regions.items())),
        }


class JsonCountryCatalog(_CatalogLookups):
    """Catalog backed by a JSON file, parsed once on first use."""

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._path = path
        self._countries: Optional[list[Country]] = None
        self._logger = logger or logging.getLogger(__name__)

    @property
    def source(self) -> str:
        if self._path is not None:
            return str(self._path)
        return f"{DATA_PACKAGE}/{DATA_FILENAME}"

    def load(self) -> list[Country]:
        if self._countries is None:
            payload = _parse_payload(self._read_text(), source=self.source)
            self._countries = [
                _country_from_dict(entry, index=index, source=self.source)
                for index, entry in enumerate(payload)
            ]
            self._logger.info(
                "Loaded country catalog",
                extra={
                    "source": self.source,
                    "countries": len(self._countries),
                },
            )
        return self._countries

    def _read_text(self) -> str:
        try:
            if self._path is not None:
                return self._path.read_text(encoding="utf-8")
            resource = resources.files(DATA_PACKAGE).joinpath(DATA_FILENAME)
            return resource.read_text(encoding="utf-8")
        except (OSError, ModuleNotFoundError) as exc:
            raise CatalogLoadError(
                f"Unable to read country catalog {self.source}: {exc}"
            ) from exc


class InMemoryCatalog(_CatalogLookups):
    """Catalog over an explicit list of countries."""

    def __init__(self, countries: Iterable[Country]) -> None:
        self._countries = list(countries)

    def load(self) -> list[Country]:
        return self._countries


def _parse_payload(text: str, *, source: str) -> list[Mapping[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CatalogLoadError(
            f"Country catalog {source} is not valid JSON: {exc}"
        ) from exc
    if isinstance(data, Mapping):
        data = data.get("countries")
    if not isinstance(data, list):
        raise CatalogLoadError(
            f"Country catalog {source} must contain a 'countries' array."
        )
    return data


def _country_from_dict(
    entry: Any, *, index: int, source: str
) -> Country:
    if not isinstance(entry, Mapping):
        raise CatalogLoadError(
            f"Catalog entry #{index} in {source} must be an object."
        )
    try:
        country_id = int(entry["id"])
        name = str(entry["name"]).strip()
        level = int(entry["level"])
        region = parse_region(entry.get("region") or Region.WORLD.value)
    except (KeyError, TypeError, ValueError) as exc:
        raise CatalogLoadError(
            f"Catalog entry #{index} in {source} is malformed: {exc}"
        ) from exc
    if not name:
        raise CatalogLoadError(
            f"Catalog entry #{index} in {source} has an empty name."
        )
    flag_ref = str(
        entry.get("flagRef") or entry.get("countryCode") or ""
    ).strip()
    return Country(
        id=country_id,
        name=name,
        level=level,
        region=region,
        flag_ref=flag_ref,
        population=_optional_int(entry.get("population")),
        area=_optional_float(entry.get("area")),
        capital=entry.get("capital") or None,
    )


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class CatalogReport:
    total: int
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    by_region: dict[str, int] = field(default_factory=dict)
    by_level: dict[int, int] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.issues


def validate_catalog(countries: Sequence[Country]) -> CatalogReport:
    """Check ids, names, levels and regions of a loaded catalog.

    Duplicate ids and out-of-range levels are issues (question generation
    relies on both); duplicate names, unmapped regions and missing flag
    references are only warnings.
    """

    report = CatalogReport(total=len(countries))
    id_counts = Counter(country.id for country in countries)
    name_counts = Counter(country.name for country in countries)

    for country_id, count in sorted(id_counts.items()):
        if count > 1:
            report.issues.append(f"Duplicate id {country_id} ({count} entries)")
    for name, count in sorted(name_counts.items()):
        if count > 1:
            report.warnings.append(f"Duplicate name '{name}' ({count} entries)")

    for country in countries:
        if country.level not in VALID_LEVELS:
            report.issues.append(
                f"Invalid level {country.level} for '{country.name}'"
            )
        if country.region is Region.WORLD:
            report.warnings.append(f"No region for '{country.name}'")
        if not country.flag_ref:
            report.warnings.append(f"No flag reference for '{country.name}'")
        report.by_region[country.region.value] = (
            report.by_region.get(country.region.value, 0) + 1
        )
        report.by_level[country.level] = (
            report.by_level.get(country.level, 0) + 1
        )

    report.by_region = dict(sorted(report.by_region.items()))
    report.by_level = dict(sorted(report.by_level.items()))
    return report
