from __future__ import annotations

import random
import sys
from pathlib import Path

import pytest

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

# Ensure src/ is importable without an editable install
ROOT = TESTS_DIR.parent
for extra in (ROOT, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import (  # noqa: E402
    FakeHttpSession,
    ManualClock,
    sample_countries,
)
from geo_quiz.catalog import InMemoryCatalog  # noqa: E402
from geo_quiz.core.storage import MemoryStore  # noqa: E402
from geo_quiz.core.workspace import WORKSPACE_ENV  # noqa: E402
from geo_quiz.core.config import CONFIG_PATH_ENV  # noqa: E402


@pytest.fixture
def catalog() -> InMemoryCatalog:
    """Deterministic 22-country catalog spread over every region."""

    return InMemoryCatalog(sample_countries())


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def http_session() -> FakeHttpSession:
    return FakeHttpSession()


@pytest.fixture
def data_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the workspace at a temp dir and clear config overrides."""

    home = tmp_path / "geo-home"
    monkeypatch.setenv(WORKSPACE_ENV, str(home))
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    return home
