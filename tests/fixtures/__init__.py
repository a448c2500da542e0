"""Shared testing fixtures and fakes for the geo_quiz test suite."""

from .catalog import sample_countries  # noqa: F401
from .clock import ManualClock  # noqa: F401
from .http import FakeHttpSession, FakeResponse  # noqa: F401

__all__ = [
    "FakeHttpSession",
    "FakeResponse",
    "ManualClock",
    "sample_countries",
]
