"""DuckDB warehouse backend.

Every query opens its own read-only connection, so concurrent requests never
share connection state. A timer interrupts the connection when the query
outlives the configured timeout.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any

import duckdb

from cohortstats.core.backends.base import (
    ConnectionError,
    QueryExecutionError,
    QueryResult,
    QueryTimeoutError,
)

logger = logging.getLogger(__name__)


class DuckDBBackend:
    """Read-only query execution against a DuckDB database file."""

    name = "duckdb"

    def __init__(self, db_path: str | Path, query_timeout: float | None = None):
        self.db_path = str(db_path)
        if query_timeout is None:
            from cohortstats.config import get_query_timeout

            query_timeout = get_query_timeout()
        self.query_timeout = query_timeout

    def _connect(self) -> duckdb.DuckDBPyConnection:
        if not Path(self.db_path).exists():
            raise ConnectionError(
                f"DuckDB database not found: {self.db_path}", backend=self.name
            )
        try:
            return duckdb.connect(self.db_path, read_only=True)
        except duckdb.Error as e:
            raise ConnectionError(
                f"Could not open DuckDB database {self.db_path}: {e}",
                backend=self.name,
            ) from e

    def execute_query(
        self, sql: str, params: tuple[Any, ...] | list[Any] | None = None
    ) -> QueryResult:
        """Run a single statement and return its rows as a DataFrame.

        Raises:
            ConnectionError: If the database cannot be opened
            QueryTimeoutError: If the statement exceeds the timeout
            QueryExecutionError: For any other DuckDB failure
        """
        params = tuple(params or ())
        con = self._connect()
        timer = threading.Timer(self.query_timeout, con.interrupt)
        start = time.monotonic()
        timer.start()
        try:
            df = con.execute(sql, list(params)).df()
        except duckdb.InterruptException as e:
            logger.warning(
                f"Query interrupted after {self.query_timeout:g}s on {self.db_path}"
            )
            raise QueryTimeoutError(self.query_timeout, sql, backend=self.name) from e
        except duckdb.Error as e:
            logger.debug(f"Query failed: {e}\n{sql}")
            raise QueryExecutionError(str(e), sql, backend=self.name) from e
        finally:
            timer.cancel()
            con.close()

        elapsed = time.monotonic() - start
        logger.debug(f"Query returned {len(df)} rows in {elapsed * 1000:.1f}ms")
        return QueryResult(dataframe=df, sql=sql, elapsed=elapsed, params=params)

    def get_backend_info(self) -> str:
        return f"Backend: DuckDB ({self.db_path}, timeout {self.query_timeout:g}s)"
