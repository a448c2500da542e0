"""Geography quiz-session engine."""

from __future__ import annotations

from .catalog import Country, JsonCountryCatalog
from .errors import GeoQuizError
from .regions import Region

__all__ = [
    "Country",
    "JsonCountryCatalog",
    "GeoQuizError",
    "Region",
]
