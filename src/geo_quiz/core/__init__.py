"""Core shared helpers for geo-quiz: config, logging, storage, workspace."""

from __future__ import annotations

from .config import (
    CONFIG_PATH_ENV,
    ConfigError,
    GeoQuizConfig,
    load_config,
    write_template,
)
from .logging import JsonLogFormatter, configure_logger
from .storage import JsonFileStore, KeyValueStore, MemoryStore
from .workspace import (
    WORKSPACE_ENV,
    WorkspaceError,
    WorkspaceLayout,
    ensure_workspace,
    describe_layout,
)

__all__ = [
    "CONFIG_PATH_ENV",
    "ConfigError",
    "GeoQuizConfig",
    "load_config",
    "write_template",
    "configure_logger",
    "JsonLogFormatter",
    "KeyValueStore",
    "JsonFileStore",
    "MemoryStore",
    "ensure_workspace",
    "describe_layout",
    "WorkspaceLayout",
    "WorkspaceError",
    "WORKSPACE_ENV",
]
