"""Reverse geocoding of map taps to catalog country names.

A tap is resolved by asking each provider in turn until one returns a
country. Provider names are mapped onto the catalog's spelling through
``COUNTRY_ALIASES`` because map answers are graded by exact string match.
Every outcome, including "nothing found", is cached per rounded coordinate so
repeated ocean taps do not hit the network again.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

import requests

from .errors import GeocodeProviderError

__all__ = [
    "COUNTRY_ALIASES",
    "normalize_country_name",
    "GeocodeCacheEntry",
    "GeocodeCache",
    "GeocodeProvider",
    "NominatimProvider",
    "BigDataCloudProvider",
    "GeocodingResolver",
]


Clock = Callable[[], float]

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_PRECISION = 3
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_USER_AGENT = "WorldExplorer/1.0"


COUNTRY_ALIASES: Mapping[str, str] = {
    "United States of America": "United States",
    "USA": "United States",
    "US": "United States",
    "UK": "United Kingdom",
    "Great Britain": "United Kingdom",
    "United Kingdom of Great Britain and Northern Ireland": "United Kingdom",
    "Russian Federation": "Russia",
    "Republic of Korea": "South Korea",
    "Korea, Republic of": "South Korea",
    "Korea (the Republic of)": "South Korea",
    "Democratic People's Republic of Korea": "North Korea",
    "Korea (the Democratic People's Republic of)": "North Korea",
    "Republic of the Congo": "Congo",
    "Congo-Brazzaville": "Congo",
    "Congo (the)": "Congo",
    "DR Congo": "Democratic Republic of the Congo",
    "Congo-Kinshasa": "Democratic Republic of the Congo",
    "Congo (the Democratic Republic of the)": (
        "Democratic Republic of the Congo"
    ),
    "Czechia": "Czech Republic",
    "Slovak Republic": "Slovakia",
    "Republic of Ireland": "Ireland",
    "Côte d'Ivoire": "Ivory Coast",
    "Cote d'Ivoire": "Ivory Coast",
    "Türkiye": "Turkey",
    "Turkiye": "Turkey",
    "Viet Nam": "Vietnam",
    "Lao People's Democratic Republic": "Laos",
    "Syrian Arab Republic": "Syria",
    "Iran (Islamic Republic of)": "Iran",
    "Islamic Republic of Iran": "Iran",
    "Republic of Moldova": "Moldova",
    "Moldova (the Republic of)": "Moldova",
    "Macedonia": "North Macedonia",
    "Republic of North Macedonia": "North Macedonia",
    "Holy See": "Vatican City",
    "Vatican City State": "Vatican City",
    "Brunei Darussalam": "Brunei",
    "Myanmar (Burma)": "Myanmar",
    "Burma": "Myanmar",
    "East Timor": "Timor-Leste",
    "Cabo Verde": "Cape Verde",
    "Swaziland": "Eswatini",
    "Kingdom of Eswatini": "Eswatini",
    "Sao Tome and Principe": "São Tomé and Príncipe",
    "The Gambia": "Gambia",
    "Gambia (the)": "Gambia",
    "The Bahamas": "Bahamas",
    "Bahamas (the)": "Bahamas",
    "Bolivia (Plurinational State of)": "Bolivia",
    "Venezuela (Bolivarian Republic of)": "Venezuela",
    "United Republic of Tanzania": "Tanzania",
    "Tanzania, United Republic of": "Tanzania",
    "Federated States of Micronesia": "Micronesia",
    "Micronesia (Federated States of)": "Micronesia",
    "State of Palestine": "Palestine",
    "Palestinian Territories": "Palestine",
    "Taiwan (Province of China)": "Taiwan",
}

_CASEFOLDED_ALIASES: Mapping[str, str] = {
    alias.casefold(): canonical for alias, canonical in COUNTRY_ALIASES.items()
}


def normalize_country_name(name: str) -> str:
    """Map a provider spelling onto the catalog's canonical name.

    Exact alias match first, then a case-insensitive one; anything else is
    returned unchanged.
    """

    cleaned = name.strip()
    if cleaned in COUNTRY_ALIASES:
        return COUNTRY_ALIASES[cleaned]
    return _CASEFOLDED_ALIASES.get(cleaned.casefold(), cleaned)


@dataclass(frozen=True)
class GeocodeCacheEntry:
    country: Optional[str]
    timestamp: float


class GeocodeCache:
    """TTL cache keyed by coordinates rounded to ``precision`` decimals.

    Entries are never evicted; an expired entry is simply overwritten by the
    next lookup for the same key.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        precision: int = DEFAULT_PRECISION,
        clock: Clock = time.monotonic,
    ) -> None:
        self._ttl = float(ttl_seconds)
        self._precision = precision
        self._clock = clock
        self._entries: dict[tuple[float, float], GeocodeCacheEntry] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def key_for(self, lat: float, lon: float) -> tuple[float, float]:
        return (round(lat, self._precision), round(lon, self._precision))

    def lookup(self, lat: float, lon: float) -> Optional[GeocodeCacheEntry]:
        """Return the live entry for the coordinate, if any."""

        entry = self._entries.get(self.key_for(lat, lon))
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self._ttl:
            return None
        return entry

    def store(
        self, lat: float, lon: float, country: Optional[str]
    ) -> GeocodeCacheEntry:
        entry = GeocodeCacheEntry(country=country, timestamp=self._clock())
        self._entries[self.key_for(lat, lon)] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class GeocodeProvider:
    """Base class for HTTP reverse-geocoding providers.

    Subclasses describe the request and how to pull the country out of the
    JSON body. Any failure is raised as ``GeocodeProviderError``.
    """

    name = "provider"

    def __init__(
        self,
        url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: Optional[str] = None,
    ) -> None:
        self.url = url
        self._session = session or requests.Session()
        self._timeout = timeout
        self._user_agent = user_agent

    def params(self, lat: float, lon: float) -> dict[str, Any]:
        raise NotImplementedError

    def extract(self, payload: Any) -> Optional[str]:
        raise NotImplementedError

    def headers(self) -> dict[str, str]:
        if self._user_agent:
            return {"User-Agent": self._user_agent}
        return {}

    def lookup(self, lat: float, lon: float) -> str:
        try:
            response = self._session.get(
                self.url,
                params=self.params(lat, lon),
                headers=self.headers(),
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise GeocodeProviderError(
                f"{self.name} request failed: {exc}"
            ) from exc
        except ValueError as exc:
            raise GeocodeProviderError(
                f"{self.name} returned invalid JSON: {exc}"
            ) from exc

        country = self.extract(payload)
        if not isinstance(country, str) or not country.strip():
            raise GeocodeProviderError(f"{self.name} returned no country.")
        return country.strip()


class NominatimProvider(GeocodeProvider):
    """OpenStreetMap Nominatim reverse API (requires a User-Agent)."""

    name = "nominatim"

    def __init__(
        self,
        url: str = "https://nominatim.openstreetmap.org/reverse",
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        super().__init__(
            url, session=session, timeout=timeout, user_agent=user_agent
        )

    def params(self, lat: float, lon: float) -> dict[str, Any]:
        return {
            "format": "json",
            "lat": lat,
            "lon": lon,
            "zoom": 3,
            "addressdetails": 1,
        }

    def extract(self, payload: Any) -> Optional[str]:
        if not isinstance(payload, Mapping):
            return None
        address = payload.get("address")
        if not isinstance(address, Mapping):
            return None
        return address.get("country")


class BigDataCloudProvider(GeocodeProvider):
    """BigDataCloud client-side reverse geocoding (no key needed)."""

    name = "bigdatacloud"

    def __init__(
        self,
        url: str = "https://api.bigdatacloud.net/data/reverse-geocode-client",
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: Optional[str] = None,
    ) -> None:
        super().__init__(
            url, session=session, timeout=timeout, user_agent=user_agent
        )

    def params(self, lat: float, lon: float) -> dict[str, Any]:
        return {"latitude": lat, "longitude": lon, "localityLanguage": "en"}

    def extract(self, payload: Any) -> Optional[str]:
        if not isinstance(payload, Mapping):
            return None
        return payload.get("countryName")


class GeocodingResolver:
    """Resolve coordinates to a canonical country name or ``None``."""

    def __init__(
        self,
        providers: Sequence[GeocodeProvider],
        *,
        cache: Optional[GeocodeCache] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._providers = tuple(providers)
        self._cache = cache if cache is not None else GeocodeCache()
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        config: Any,
        *,
        session: Optional[requests.Session] = None,
        clock: Clock = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> "GeocodingResolver":
        """Build the default two-provider resolver from ``GeocodingConfig``."""

        http = session or requests.Session()
        providers = [
            NominatimProvider(
                config.primary_url,
                session=http,
                timeout=config.timeout_seconds,
                user_agent=config.user_agent,
            ),
            BigDataCloudProvider(
                config.secondary_url,
                session=http,
                timeout=config.timeout_seconds,
            ),
        ]
        cache = GeocodeCache(
            ttl_seconds=config.cache_ttl_seconds,
            precision=config.cache_precision,
            clock=clock,
        )
        return cls(providers, cache=cache, logger=logger)

    @property
    def cache(self) -> GeocodeCache:
        return self._cache

    def resolve(self, lat: Any, lon: Any) -> Optional[str]:
        if not _valid_coordinate(lat, 90.0) or not _valid_coordinate(
            lon, 180.0
        ):
            self._logger.debug(
                "Ignoring out-of-range coordinate",
                extra={"lat": repr(lat), "lon": repr(lon)},
            )
            return None

        lat = float(lat)
        lon = float(lon)
        cached = self._cache.lookup(lat, lon)
        if cached is not None:
            return cached.country

        country: Optional[str] = None
        for provider in self._providers:
            try:
                raw = provider.lookup(lat, lon)
            except GeocodeProviderError as exc:
                self._logger.warning(
                    "Geocoding provider failed",
                    extra={"provider": provider.name, "error": str(exc)},
                )
                continue
            country = normalize_country_name(raw)
            self._logger.debug(
                "Resolved coordinate",
                extra={
                    "provider": provider.name,
                    "raw": raw,
                    "country": country,
                },
            )
            break

        if country is None:
            self._logger.info(
                "No country detected", extra={"lat": lat, "lon": lon}
            )
        self._cache.store(lat, lon, country)
        return country


def _valid_coordinate(value: Any, limit: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if not math.isfinite(value):
        return False
    return abs(value) <= limit
