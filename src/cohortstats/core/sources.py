"""Data source resolution.

A *source* is a warehouse registered in the Atlas catalog. Each source has
one connection and several schemas, one per role (clinical data, results,
temp, ...), registered in ``source_daimon``. Engines ask the resolver for a
``ConnectionHandle`` and never see connection strings themselves.

Resolved handles are cached per ``(source_id, role)`` for the life of the
resolver; ``invalidate()`` drops them after reconfiguration.
"""

import logging
import re
import threading
from dataclasses import dataclass
from enum import IntEnum

from cohortstats.config import get_atlas_database_path, get_atlas_schema
from cohortstats.core.backends import Backend, get_backend
from cohortstats.core.exceptions import InvalidRequestError, SourceNotFoundError

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class SourceRole(IntEnum):
    """Schema roles, valued as Atlas ``source_daimon.daimon_type``."""

    OMOP = 0
    RESULTS = 2
    TEMP = 5
    MISC = 6
    DBO = 7


# Roles that are not registered in source_daimon
FIXED_SCHEMAS = {
    SourceRole.MISC: "MISC",
    SourceRole.DBO: "DBO",
}


@dataclass(frozen=True)
class Source:
    source_id: int
    source_name: str


@dataclass(frozen=True)
class ConnectionHandle:
    """A live backend plus the schema qualifier for one role of a source."""

    source_id: int
    role: SourceRole
    backend: Backend
    schema: str

    def table(self, name: str) -> str:
        """Schema-qualified table name, e.g. ``results.cohort``."""
        return f"{self.schema}.{name}"


def validate_identifier(name: str) -> str:
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.fullmatch(name):
        raise InvalidRequestError(f"Invalid schema identifier: {name!r}")
    return name


class SourceResolver:
    """Resolves ``(source_id, role)`` to a ``ConnectionHandle``.

    Args:
        atlas_backend: Backend for the Atlas catalog. Defaults to the
            configured Atlas database.
        atlas_schema: Schema of the Atlas tables. Defaults to configuration.
    """

    def __init__(
        self,
        atlas_backend: Backend | None = None,
        atlas_schema: str | None = None,
    ):
        self._atlas_backend = atlas_backend
        self._atlas_schema = validate_identifier(atlas_schema or get_atlas_schema())
        self._lock = threading.Lock()
        self._handles: dict[tuple[int, SourceRole], ConnectionHandle] = {}

    @property
    def atlas_backend(self) -> Backend:
        if self._atlas_backend is None:
            self._atlas_backend = get_backend(str(get_atlas_database_path()))
        return self._atlas_backend

    def atlas_table(self, name: str) -> str:
        return f"{self._atlas_schema}.{name}"

    def get_source_by_id(self, source_id: int) -> Source | None:
        result = self.atlas_backend.execute_query(
            f"SELECT source_id, source_name FROM {self.atlas_table('source')} "
            "WHERE source_id = ?",
            (int(source_id),),
        )
        if result.row_count == 0:
            return None
        row = result.dataframe.iloc[0]
        return Source(int(row["source_id"]), str(row["source_name"]))

    def get_source_by_name(self, name: str) -> Source | None:
        result = self.atlas_backend.execute_query(
            f"SELECT source_id, source_name FROM {self.atlas_table('source')} "
            "WHERE source_name = ?",
            (name,),
        )
        if result.row_count == 0:
            return None
        row = result.dataframe.iloc[0]
        return Source(int(row["source_id"]), str(row["source_name"]))

    def get_all_sources(self) -> list[Source]:
        result = self.atlas_backend.execute_query(
            f"SELECT source_id, source_name FROM {self.atlas_table('source')} "
            "ORDER BY source_id"
        )
        return [
            Source(int(r.source_id), str(r.source_name))
            for r in result.dataframe.itertuples(index=False)
        ]

    def _get_connection(self, source_id: int) -> tuple[str, str]:
        result = self.atlas_backend.execute_query(
            f"SELECT source_connection, source_dialect FROM {self.atlas_table('source')} "
            "WHERE source_id = ?",
            (source_id,),
        )
        if result.row_count == 0:
            raise SourceNotFoundError(f"Unknown source id {source_id}", source_id)
        row = result.dataframe.iloc[0]
        return str(row["source_connection"]), str(row["source_dialect"])

    def get_schema_name(self, source_id: int, role: SourceRole) -> str:
        """Schema qualifier registered for a source and role.

        Raises:
            SourceNotFoundError: If no schema is registered for the role
        """
        role = SourceRole(role)
        if role in FIXED_SCHEMAS:
            return FIXED_SCHEMAS[role]

        result = self.atlas_backend.execute_query(
            f"SELECT d.table_qualifier AS schema_name "
            f"FROM {self.atlas_table('source')} s "
            f"JOIN {self.atlas_table('source_daimon')} d ON s.source_id = d.source_id "
            "WHERE s.source_id = ? AND d.daimon_type = ? "
            "ORDER BY d.priority DESC",
            (source_id, int(role)),
        )
        if result.row_count == 0:
            raise SourceNotFoundError(
                f"Source {source_id} has no schema registered for role {role.name}",
                source_id,
                role.name,
            )
        return validate_identifier(str(result.scalar()))

    def resolve(self, source_id: int, role: SourceRole) -> ConnectionHandle:
        """Return the (cached) connection handle for a source and role.

        Raises:
            SourceNotFoundError: Unknown source id or unregistered role
            BackendError: Unsupported source dialect
        """
        role = SourceRole(role)
        key = (int(source_id), role)
        with self._lock:
            handle = self._handles.get(key)
        if handle is not None:
            return handle

        connection, dialect = self._get_connection(key[0])
        schema = self.get_schema_name(key[0], role)
        handle = ConnectionHandle(
            source_id=key[0],
            role=role,
            backend=get_backend(connection, dialect),
            schema=schema,
        )
        logger.debug(f"Resolved source {key[0]} role {role.name} to schema {schema}")

        with self._lock:
            # Another thread may have resolved the same key meanwhile
            return self._handles.setdefault(key, handle)

    def invalidate(self) -> None:
        """Forget every resolved handle."""
        with self._lock:
            self._handles.clear()


_resolver_lock = threading.Lock()
_resolver: SourceResolver | None = None


def get_source_resolver() -> SourceResolver:
    """Process-wide resolver for the configured Atlas catalog."""
    global _resolver
    with _resolver_lock:
        if _resolver is None:
            _resolver = SourceResolver()
        return _resolver


def reset_source_resolver() -> None:
    """Drop the process-wide resolver and its cached handles."""
    global _resolver
    with _resolver_lock:
        if _resolver is not None:
            _resolver.invalidate()
        _resolver = None
