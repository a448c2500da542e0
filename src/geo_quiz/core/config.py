"""TOML configuration for the geo-quiz engine.

The config file groups settings by collaborator (session pacing, geocoding
providers, scoring history, logging). Every key has a default so an empty or
missing file yields a working engine; unknown keys are rejected so typos do
not silently fall back to defaults.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError as exc:  # pragma: no cover - should never happen
    raise RuntimeError("Python 3.11+ required for tomllib support") from exc

from . import workspace


CONFIG_PATH_ENV = "GEO_QUIZ_CONFIG"
CONFIG_FILENAME = "geo_quiz.toml"

__all__ = [
    "CONFIG_PATH_ENV",
    "CONFIG_FILENAME",
    "ConfigError",
    "PathsConfig",
    "SessionConfig",
    "GeocodingConfig",
    "ScoringConfig",
    "LoggingConfig",
    "GeoQuizConfig",
    "config_template",
    "default_config",
    "default_tree",
    "load_config",
    "resolve_config_path",
    "write_template",
]


class ConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


@dataclass(frozen=True)
class PathsConfig:
    data_home_override: Optional[Path]
    catalog: Optional[Path]


@dataclass(frozen=True)
class SessionConfig:
    normal_length: int
    challenge_length: int
    answer_timeout_seconds: float
    min_correct_per_level: int


@dataclass(frozen=True)
class GeocodingConfig:
    primary_url: str
    secondary_url: str
    user_agent: str
    timeout_seconds: float
    cache_ttl_seconds: float
    cache_precision: int


@dataclass(frozen=True)
class ScoringConfig:
    history_limit: int


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    verbose: bool


@dataclass(frozen=True)
class GeoQuizConfig:
    paths: PathsConfig
    session: SessionConfig
    geocoding: GeocodingConfig
    scoring: ScoringConfig
    logging: LoggingConfig

    def workspace(self, *, create: bool = True) -> workspace.WorkspaceLayout:
        """Return the data-home layout honouring ``paths.data_home``."""

        return workspace.ensure_workspace(
            path=self.paths.data_home_override, create=create
        )


def _merge_dict(
    base: MutableMapping[str, Any],
    override: Mapping[str, Any],
    *,
    path: str = "",
) -> None:
    for key, value in override.items():
        dotted = f"{path}{key}"
        if key not in base:
            raise ConfigError(f"Unknown configuration key '{dotted}'.")
        base_value = base[key]
        if isinstance(base_value, MutableMapping):
            if not isinstance(value, Mapping):
                raise ConfigError(
                    "Expected table for '{0}', found {1}.".format(
                        dotted, type(value).__name__
                    )
                )
            _merge_dict(base_value, value, path=f"{dotted}.")
        else:
            base[key] = value


def _require_positive_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"'{field}' must be a positive integer.")
    return value


def _require_positive_number(value: Any, *, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{field}' must be a number.")
    if value <= 0:
        raise ConfigError(f"'{field}' must be greater than zero.")
    return float(value)


def _require_bool(value: Any, *, field: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"'{field}' must be a boolean.")
    return value


def _require_string(value: Any, *, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{field}' must be a non-empty string.")
    return value.strip()


def _require_url(value: Any, *, field: str) -> str:
    url = _require_string(value, field=field)
    if not url.startswith(("http://", "https://")):
        raise ConfigError(f"'{field}' must be an http(s) URL.")
    return url


def _coerce_optional_path(value: Any, *, field: str) -> Optional[Path]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{field}' must be a non-empty string when set.")
    return Path(value).expanduser().resolve()


def _build_paths(section: Mapping[str, Any]) -> PathsConfig:
    return PathsConfig(
        data_home_override=_coerce_optional_path(
            section.get("data_home"), field="paths.data_home"
        ),
        catalog=_coerce_optional_path(
            section.get("catalog"), field="paths.catalog"
        ),
    )


def _build_session(section: Mapping[str, Any]) -> SessionConfig:
    return SessionConfig(
        normal_length=_require_positive_int(
            section.get("normal_length"), field="session.normal_length"
        ),
        challenge_length=_require_positive_int(
            section.get("challenge_length"), field="session.challenge_length"
        ),
        answer_timeout_seconds=_require_positive_number(
            section.get("answer_timeout_seconds"),
            field="session.answer_timeout_seconds",
        ),
        min_correct_per_level=_require_positive_int(
            section.get("min_correct_per_level"),
            field="session.min_correct_per_level",
        ),
    )


def _build_geocoding(section: Mapping[str, Any]) -> GeocodingConfig:
    precision = section.get("cache_precision")
    if (
        isinstance(precision, bool)
        or not isinstance(precision, int)
        or not 0 <= precision <= 6
    ):
        raise ConfigError(
            "'geocoding.cache_precision' must be an integer between 0 and 6."
        )
    return GeocodingConfig(
        primary_url=_require_url(
            section.get("primary_url"), field="geocoding.primary_url"
        ),
        secondary_url=_require_url(
            section.get("secondary_url"), field="geocoding.secondary_url"
        ),
        user_agent=_require_string(
            section.get("user_agent"), field="geocoding.user_agent"
        ),
        timeout_seconds=_require_positive_number(
            section.get("timeout_seconds"), field="geocoding.timeout_seconds"
        ),
        cache_ttl_seconds=_require_positive_number(
            section.get("cache_ttl_seconds"),
            field="geocoding.cache_ttl_seconds",
        ),
        cache_precision=precision,
    )


def _build_scoring(section: Mapping[str, Any]) -> ScoringConfig:
    return ScoringConfig(
        history_limit=_require_positive_int(
            section.get("history_limit"), field="scoring.history_limit"
        )
    )


def _build_logging(section: Mapping[str, Any]) -> LoggingConfig:
    level = _require_string(section.get("level"), field="logging.level").upper()
    allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if level not in allowed:
        raise ConfigError(
            "logging.level must be one of DEBUG, INFO, WARNING, ERROR, "
            "CRITICAL."
        )
    verbose = _require_bool(section.get("verbose"), field="logging.verbose")
    return LoggingConfig(level=level, verbose=verbose)


def _build_config(tree: Mapping[str, Any]) -> GeoQuizConfig:
    return GeoQuizConfig(
        paths=_build_paths(tree["paths"]),
        session=_build_session(tree["session"]),
        geocoding=_build_geocoding(tree["geocoding"]),
        scoring=_build_scoring(tree["scoring"]),
        logging=_build_logging(tree["logging"]),
    )


def _load_toml(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse config TOML: {exc}") from exc


def resolve_config_path(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
) -> Path:
    env_map = os.environ if env is None else env
    if explicit_path is not None:
        return explicit_path.expanduser().resolve()
    env_override = env_map.get(CONFIG_PATH_ENV)
    if env_override:
        return Path(env_override).expanduser().resolve()
    layout = workspace.ensure_workspace(env=env_map, create=False)
    return layout.path_for("config") / CONFIG_FILENAME


def load_config(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
    require_file: bool = False,
) -> GeoQuizConfig:
    """Load the TOML config, applying defaults and validation.

    A missing file is only an error when it was requested explicitly or when
    ``require_file`` is set; otherwise the defaults are returned.
    """

    path = resolve_config_path(explicit_path=explicit_path, env=env)
    tree = default_tree()
    if path.exists() or explicit_path is not None or require_file:
        toml_data = _load_toml(path)
        _merge_dict(tree, toml_data)
    return _build_config(tree)


def default_tree() -> Dict[str, Any]:
    """Return a copy of the default configuration tree."""

    return copy.deepcopy(_DEFAULTS)


def default_config() -> GeoQuizConfig:
    return _build_config(default_tree())


def config_template() -> str:
    """Return the TOML template recommended for new installs."""

    return _CONFIG_TEMPLATE.strip() + "\n"


def write_template(
    path: Path, *, overwrite: bool = False, mode: int = 0o600
) -> Path:
    """Write the default template to ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists() and not overwrite:
        raise ConfigError(f"Config already exists: {path}")
    with path.open("w", encoding="utf-8") as fh:
        fh.write(config_template())
    try:
        path.chmod(mode)
    except PermissionError:
        pass
    return path


_DEFAULTS: Dict[str, Any] = {
    "paths": {
        "data_home": None,
        "catalog": None,
    },
    "session": {
        "normal_length": 10,
        "challenge_length": 300,
        "answer_timeout_seconds": 10,
        "min_correct_per_level": 3,
    },
    "geocoding": {
        "primary_url": "https://nominatim.openstreetmap.org/reverse",
        "secondary_url": (
            "https://api.bigdatacloud.net/data/reverse-geocode-client"
        ),
        "user_agent": "WorldExplorer/1.0",
        "timeout_seconds": 5,
        "cache_ttl_seconds": 300,
        "cache_precision": 3,
    },
    "scoring": {
        "history_limit": 10,
    },
    "logging": {
        "level": "INFO",
        "verbose": False,
    },
}


_CONFIG_TEMPLATE = """
# geo-quiz configuration

[paths]
# Override the data directory (~/.geo-quiz-data)
# data_home = "~/my-geo-quiz"
# Use a custom country catalog instead of the bundled one
# catalog = "~/countries.json"

[session]
# Questions per Normal-mode session
normal_length = 10
# Questions in a Challenge run (the level rises every 100 questions, up to 3)
challenge_length = 300
# Normal-mode countdown per question
answer_timeout_seconds = 10
# Correct answers needed before Normal mode moves to an unlocked level
min_correct_per_level = 3

[geocoding]
# Primary reverse-geocoding endpoint (requires a User-Agent)
primary_url = "https://nominatim.openstreetmap.org/reverse"
# Fallback endpoint used when the primary lookup fails
secondary_url = "https://api.bigdatacloud.net/data/reverse-geocode-client"
user_agent = "WorldExplorer/1.0"
timeout_seconds = 5
# Map taps are cached per rounded coordinate for this long
cache_ttl_seconds = 300
cache_precision = 3

[scoring]
# Challenge attempts kept in history (newest first)
history_limit = 10

[logging]
level = "INFO"
verbose = false
"""
