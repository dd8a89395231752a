"""cohortstats backends - warehouse backend implementations.

This package provides the backend abstraction layer:
- Backend protocol: Interface for all warehouse backends
- DuckDBBackend: DuckDB database file queries
- get_backend(): Factory function for backend selection
"""

import threading

from cohortstats.config import VALID_DIALECTS
from cohortstats.core.backends.base import (
    Backend,
    BackendError,
    ConnectionError,
    QueryExecutionError,
    QueryResult,
    QueryTimeoutError,
)
from cohortstats.core.backends.duckdb import DuckDBBackend

# Cache for backend instances with thread safety
_backend_lock = threading.Lock()
_backend_cache: dict[tuple[str, str], Backend] = {}


def get_backend(connection: str, dialect: str = "duckdb") -> Backend:
    """Get a backend instance for a connection string.

    Args:
        connection: Database location (a DuckDB file path)
        dialect: SQL dialect of the source ('duckdb')

    Returns:
        Backend instance, shared by all callers using the same connection

    Raises:
        BackendError: If an unsupported dialect is requested
    """
    dialect = (dialect or "").lower()
    key = (dialect, connection)

    with _backend_lock:
        if key in _backend_cache:
            return _backend_cache[key]

        if dialect == "duckdb":
            backend = DuckDBBackend(connection)
        else:
            raise BackendError(
                f"Unsupported dialect: {dialect}. "
                f"Supported dialects: {', '.join(VALID_DIALECTS)}"
            )

        _backend_cache[key] = backend
        return backend


def reset_backend_cache() -> None:
    """Clear the backend cache."""
    with _backend_lock:
        _backend_cache.clear()


__all__ = [
    "Backend",
    "BackendError",
    "ConnectionError",
    "DuckDBBackend",
    "QueryExecutionError",
    "QueryResult",
    "QueryTimeoutError",
    "get_backend",
    "reset_backend_cache",
]
