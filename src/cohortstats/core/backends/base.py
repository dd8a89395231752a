"""Backend protocol and shared result type."""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import pandas as pd

from cohortstats.core.exceptions import (
    BackendError,
    ConnectionError,
    QueryExecutionError,
    QueryTimeoutError,
)


@dataclass
class QueryResult:
    """Result of a single warehouse query.

    Attributes:
        dataframe: Rows returned by the query
        sql: The SQL that produced them
        elapsed: Wall-clock seconds spent executing
    """

    dataframe: pd.DataFrame
    sql: str = ""
    elapsed: float = 0.0
    params: tuple[Any, ...] = field(default_factory=tuple)

    @property
    def row_count(self) -> int:
        return len(self.dataframe)

    def scalar(self) -> Any:
        """First column of the first row, or None for an empty result."""
        if self.dataframe.empty:
            return None
        return self.dataframe.iat[0, 0]


@runtime_checkable
class Backend(Protocol):
    """Interface implemented by every warehouse backend.

    Backends only ever run read-only statements, and every statement runs
    under the backend's query timeout.
    """

    name: str

    def execute_query(
        self, sql: str, params: tuple[Any, ...] | list[Any] | None = None
    ) -> QueryResult: ...

    def get_backend_info(self) -> str: ...


__all__ = [
    "Backend",
    "BackendError",
    "ConnectionError",
    "QueryExecutionError",
    "QueryResult",
    "QueryTimeoutError",
]
