"""Shared wiring for the ``geo-quiz`` subcommands."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import requests

from ..catalog import JsonCountryCatalog
from ..core import config as config_mod
from ..core import workspace as workspace_mod
from ..core.logging import configure_logger
from ..core.storage import JsonFileStore
from ..errors import PersistenceError
from ..geocoding import GeocodingResolver
from ..progress import ProgressStore
from ..scoring import ChallengeRepository, ScoringEngine

# Failures while wiring a command; reported as usage errors (exit code 2).
STARTUP_ERRORS = (
    config_mod.ConfigError,
    workspace_mod.WorkspaceError,
    PersistenceError,
)


@dataclass
class Runtime:
    config: config_mod.GeoQuizConfig
    layout: workspace_mod.WorkspaceLayout
    logger: logging.Logger
    log_path: Path
    store: JsonFileStore
    catalog: JsonCountryCatalog
    progress: ProgressStore
    scoring: ScoringEngine

    def resolver(
        self, *, session: Optional[requests.Session] = None
    ) -> GeocodingResolver:
        return GeocodingResolver.from_config(
            self.config.geocoding,
            session=session,
            logger=self.logger.getChild("geocoding"),
        )


def add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=str,
        help=(
            "Path to geo_quiz.toml (defaults to GEO_QUIZ_CONFIG or the "
            "workspace config directory)."
        ),
    )


def to_path(value: Optional[str]) -> Optional[Path]:
    if value is None:
        return None
    return Path(value).expanduser().resolve()


def build_runtime(
    config_path: Optional[str] = None,
    *,
    env: Mapping[str, str] | None = None,
    command: str = "cli",
) -> Runtime:
    """Load config and wire the engine collaborators for one invocation.

    Raises one of ``STARTUP_ERRORS`` for the caller to report.
    """

    config = config_mod.load_config(
        explicit_path=to_path(config_path), env=env
    )
    if config.paths.data_home_override is not None:
        layout = config.workspace()
    else:
        layout = workspace_mod.ensure_workspace(env=env)
    logger, log_path = configure_logger(
        log_dir=layout.path_for("logs"),
        level=config.logging.level,
        verbose=config.logging.verbose,
    )
    logger.debug("geo-quiz command invoked", extra={"command": command})

    store = JsonFileStore(layout.path_for("store"))
    catalog = JsonCountryCatalog(
        config.paths.catalog, logger=logger.getChild("catalog")
    )
    progress = ProgressStore(
        store, catalog, logger=logger.getChild("progress")
    )
    scoring = ScoringEngine(
        ChallengeRepository(store, history_limit=config.scoring.history_limit),
        logger=logger.getChild("scoring"),
    )
    return Runtime(
        config=config,
        layout=layout,
        logger=logger,
        log_path=log_path,
        store=store,
        catalog=catalog,
        progress=progress,
        scoring=scoring,
    )


def print_error(message: str) -> None:
    sys.stderr.write(f"Error: {message}\n")
