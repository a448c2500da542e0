"""JSON-lines logging for the geo-quiz engine and CLI.

Engine components log through ``logging.getLogger(__name__)``; the CLI calls
:func:`configure_logger` once per invocation to attach a rotating JSON file
handler (and a stderr handler when verbose) to the ``geo_quiz`` namespace.
"""

from __future__ import annotations

import json
import logging
import sys
import tempfile
from datetime import datetime, timezone
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

__all__ = [
    "ROOT_LOGGER",
    "JsonLogFormatter",
    "configure_logger",
]

ROOT_LOGGER = "geo_quiz"

_FILE_MARKER = "_geo_quiz_file"
_CONSOLE_MARKER = "_geo_quiz_console"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonLogFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return json.dumps(payload, ensure_ascii=True)


def configure_logger(
    name: str = ROOT_LOGGER,
    *,
    log_dir: Path,
    level: str = "INFO",
    verbose: bool = False,
    max_bytes: int = 2 * 1024 * 1024,
    backup_count: int = 3,
    filename: Optional[str] = None,
) -> tuple[logging.Logger, Path]:
    """Attach the JSON file handler to ``name`` and return it with its path.

    Calling this again reuses the existing handlers; a different target file
    replaces the file handler, and ``verbose`` toggles the stderr handler.
    When ``log_dir`` cannot be written the log lands in a temp directory.
    """

    logger = logging.getLogger(name)
    logger.propagate = False
    logger.setLevel(logging.DEBUG)

    log_name = filename or f"{name.rsplit('.', 1)[-1]}.log"
    handler, log_path = _attach_file_handler(
        logger,
        _log_path(log_dir, log_name),
        max_bytes=max_bytes,
        backup_count=backup_count,
    )
    handler.setLevel(logging.DEBUG if verbose else _coerce_level(level))
    _sync_console_handler(logger, enabled=verbose)
    return logger, log_path


def _coerce_level(level: str) -> int:
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.INFO


def _marked(logger: logging.Logger, marker: str) -> Optional[logging.Handler]:
    for handler in logger.handlers:
        if getattr(handler, marker, False):
            return handler
    return None


def _attach_file_handler(
    logger: logging.Logger,
    path: Path,
    *,
    max_bytes: int,
    backup_count: int,
) -> tuple[logging.Handler, Path]:
    current = _marked(logger, _FILE_MARKER)
    if current is not None:
        if Path(current.baseFilename) == path:  # type: ignore[attr-defined]
            return current, path
        logger.removeHandler(current)
        current.close()

    try:
        handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    except PermissionError:
        path = _log_path(_fallback_log_dir(), path.name)
        handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    handler.setFormatter(JsonLogFormatter())
    setattr(handler, _FILE_MARKER, True)
    logger.addHandler(handler)
    return handler, path


def _sync_console_handler(logger: logging.Logger, *, enabled: bool) -> None:
    current = _marked(logger, _CONSOLE_MARKER)
    if not enabled:
        if current is not None:
            logger.removeHandler(current)
            current.close()
        return
    if current is None:
        current = logging.StreamHandler(stream=sys.stderr)
        current.setFormatter(
            logging.Formatter("%(levelname)s %(name)s %(message)s")
        )
        setattr(current, _CONSOLE_MARKER, True)
        logger.addHandler(current)
    current.setLevel(logging.DEBUG)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return _jsonable(value.value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return repr(value)


def _log_path(log_dir: Path, filename: str) -> Path:
    """Create ``log_dir/filename``, falling back to the temp log dir."""

    try:
        return _touch_private(log_dir, filename)
    except PermissionError:
        return _touch_private(_fallback_log_dir(), filename)


def _touch_private(directory: Path, filename: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.touch(exist_ok=True)
    for target, mode in ((directory, 0o700), (path, 0o600)):
        try:
            target.chmod(mode)
        except PermissionError:  # pragma: no cover - depends on filesystem
            pass
    return path


def _fallback_log_dir() -> Path:
    return Path(tempfile.gettempdir()) / "geo-quiz-logs"
