"""Exception hierarchy shared by the geo-quiz engine."""

from __future__ import annotations

__all__ = [
    "GeoQuizError",
    "CatalogLoadError",
    "NoCandidatesError",
    "GeocodeProviderError",
    "PersistenceError",
    "SessionError",
    "SessionBusyError",
    "InvalidTransitionError",
]


class GeoQuizError(RuntimeError):
    """Base class for engine failures."""


class CatalogLoadError(GeoQuizError):
    """Raised when the country catalog cannot be loaded or parsed."""


class NoCandidatesError(GeoQuizError):
    """Raised when no country is eligible for a question."""

    def __init__(self, region: object, level: int, excluded: int = 0) -> None:
        region_value = getattr(region, "value", region)
        super().__init__(
            f"No eligible countries for region '{region_value}' at level "
            f"{level} ({excluded} excluded)."
        )
        self.region = region
        self.level = level
        self.excluded = excluded


class GeocodeProviderError(GeoQuizError):
    """Raised by a reverse-geocoding provider when a lookup fails."""


class PersistenceError(GeoQuizError):
    """Raised when the key-value store cannot read or write a record."""


class SessionError(GeoQuizError):
    """Raised when a quiz session is driven incorrectly."""


class SessionBusyError(SessionError):
    """Raised when a transition starts while another one is in flight."""


class InvalidTransitionError(SessionError):
    """Raised when an operation is not allowed in the current state."""
