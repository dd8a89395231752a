"""Runtime configuration for cohortstats.

Each setting is resolved in order: environment variable, runtime config
file (``cohortstats_data/config.json`` under the project root), default.
Setters persist to the runtime config file and drop cached connections so
the next request sees the new configuration.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

APP_NAME = "cohortstats"

# Setting names / environment variables
ATLAS_DB_ENV = "COHORTSTATS_ATLAS_DB"
ATLAS_SCHEMA_ENV = "COHORTSTATS_ATLAS_SCHEMA"
QUERY_TIMEOUT_ENV = "COHORTSTATS_QUERY_TIMEOUT"

DEFAULT_ATLAS_SCHEMA = "atlas"
DEFAULT_QUERY_TIMEOUT_SECONDS = 60.0

VALID_DIALECTS = ("duckdb",)


def _setup_logging() -> logging.Logger:
    logger = logging.getLogger(APP_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    return logger


logger = _setup_logging()


def _find_project_root_from_cwd() -> Path:
    """Walk up from cwd looking for an existing ``cohortstats_data`` directory.

    A data directory only counts when it already holds a config file or an
    Atlas database. Falls back to cwd.
    """
    cwd = Path.cwd()
    for candidate in (cwd, *cwd.parents):
        data_dir = candidate / f"{APP_NAME}_data"
        if data_dir.is_dir() and (
            (data_dir / "config.json").exists() or (data_dir / "catalog.duckdb").exists()
        ):
            return candidate
    return cwd


_PROJECT_ROOT = _find_project_root_from_cwd()
_PROJECT_DATA_DIR = _PROJECT_ROOT / f"{APP_NAME}_data"
_RUNTIME_CONFIG_PATH = _PROJECT_DATA_DIR / "config.json"


def load_runtime_config() -> dict[str, Any]:
    """Load the runtime config file, returning {} if absent or unreadable."""
    if not _RUNTIME_CONFIG_PATH.exists():
        return {}
    try:
        return json.loads(_RUNTIME_CONFIG_PATH.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read runtime config {_RUNTIME_CONFIG_PATH}: {e}")
        return {}


def save_runtime_config(cfg: dict[str, Any]) -> None:
    _RUNTIME_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    _RUNTIME_CONFIG_PATH.write_text(json.dumps(cfg, indent=2))


def _invalidate_caches() -> None:
    # Imported lazily: the backend and resolver modules import config.
    from cohortstats.core.backends import reset_backend_cache
    from cohortstats.core.sources import reset_source_resolver

    reset_backend_cache()
    reset_source_resolver()


def get_atlas_database_path() -> Path:
    """Path of the Atlas catalog database (sources, daimons, cohort definitions)."""
    env_path = os.getenv(ATLAS_DB_ENV)
    if env_path:
        return Path(env_path).expanduser().resolve()

    cfg_path = load_runtime_config().get("atlas_db")
    if cfg_path:
        return Path(cfg_path).expanduser().resolve()

    return _PROJECT_DATA_DIR / "catalog.duckdb"


def set_atlas_database_path(path: str | Path) -> None:
    cfg = load_runtime_config()
    cfg["atlas_db"] = str(Path(path).expanduser().resolve())
    save_runtime_config(cfg)
    logger.info(f"Atlas database set to {cfg['atlas_db']}")
    _invalidate_caches()


def get_atlas_schema() -> str:
    """Schema holding the Atlas tables inside the Atlas database."""
    schema = os.getenv(ATLAS_SCHEMA_ENV) or load_runtime_config().get("atlas_schema")
    return schema or DEFAULT_ATLAS_SCHEMA


def set_atlas_schema(schema: str) -> None:
    from cohortstats.core.sources import IDENTIFIER_PATTERN

    if not isinstance(schema, str) or not IDENTIFIER_PATTERN.fullmatch(schema):
        raise ValueError(f"Invalid schema name: '{schema}'")
    cfg = load_runtime_config()
    cfg["atlas_schema"] = schema
    save_runtime_config(cfg)
    _invalidate_caches()


def _parse_timeout(raw: Any, origin: str) -> float:
    try:
        timeout = float(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{origin}: query timeout must be a number, got {raw!r}") from e
    if timeout <= 0:
        raise ValueError(f"{origin}: query timeout must be positive, got {timeout}")
    return timeout


def get_query_timeout() -> float:
    """Per-query execution ceiling in seconds."""
    env_value = os.getenv(QUERY_TIMEOUT_ENV)
    if env_value:
        return _parse_timeout(env_value, QUERY_TIMEOUT_ENV)

    cfg_value = load_runtime_config().get("query_timeout")
    if cfg_value is not None:
        return _parse_timeout(cfg_value, str(_RUNTIME_CONFIG_PATH))

    return DEFAULT_QUERY_TIMEOUT_SECONDS


def set_query_timeout(seconds: float) -> None:
    timeout = _parse_timeout(seconds, "set_query_timeout")
    cfg = load_runtime_config()
    cfg["query_timeout"] = timeout
    save_runtime_config(cfg)
    _invalidate_caches()
