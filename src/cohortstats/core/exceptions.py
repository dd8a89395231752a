"""Exception hierarchy for cohortstats.

This module defines all cohortstats exceptions in a single location. Engines
raise these exceptions directly; callers (the CLI, or an HTTP layer) map them
to user-facing responses.

Exception Hierarchy:
    CohortStatsError (base)
    |-- InvalidRequestError - caller input or configuration is invalid
    |   |-- SourceNotFoundError - unknown source id or role
    |   |-- ConceptNotFoundError - concept id not in the vocabulary
    |   |-- UnsupportedConceptTypeError - concept type cannot be determined
    |   +-- MissingConceptDataError - concept has no observations at all
    +-- BackendError - the warehouse could not complete the operation
        |-- ConnectionError - Connection failures
        |-- QueryExecutionError - Query execution failures
        +-- QueryTimeoutError - Query exceeded the per-query timeout
"""


class CohortStatsError(Exception):
    """Base exception for all cohortstats errors.

    Example:
        try:
            stats = retrieve_cohort_overlap_stats(...)
        except CohortStatsError as e:
            return f"**Error:** {e}"
    """

    pass


class InvalidRequestError(CohortStatsError):
    """Raised when the caller's request cannot be answered as asked.

    Covers configuration errors (unknown source, unregistered concept type)
    and misuse (filtering on concepts that have no data). These are never
    retried.
    """

    pass


class SourceNotFoundError(InvalidRequestError):
    """Raised when a source id is unknown or has no schema for a role.

    Attributes:
        source_id: The source that was requested
        role: The role that was requested (optional)
    """

    def __init__(self, message: str, source_id: int, role: str | None = None):
        self.source_id = source_id
        self.role = role
        super().__init__(message)


class ConceptNotFoundError(InvalidRequestError):
    """Raised when a concept id is not in the source's vocabulary.

    Attributes:
        concept_id: The concept that was requested
    """

    def __init__(self, message: str, concept_id: int):
        self.concept_id = concept_id
        super().__init__(message)


class UnsupportedConceptTypeError(InvalidRequestError):
    """Raised when a concept's observation type cannot be determined.

    Attributes:
        concept_id: The offending concept id
        concept_class_id: The vocabulary class found, if any
    """

    def __init__(
        self, message: str, concept_id: int, concept_class_id: str | None = None
    ):
        self.concept_id = concept_id
        self.concept_class_id = concept_class_id
        super().__init__(message)


class MissingConceptDataError(InvalidRequestError):
    """Raised when filter concepts have no observations anywhere.

    A zero count would be indistinguishable from a legitimate empty result,
    so this is reported instead.
    """

    def __init__(self, message: str, concept_ids: list[int]):
        self.concept_ids = concept_ids
        super().__init__(message)


class BackendError(CohortStatsError):
    """Base exception for backend errors.

    Attributes:
        message: Human-readable error description
        backend: Name of the backend that raised the error
        recoverable: Whether the error might be resolved by re-issuing the
            request later. Nothing in cohortstats retries automatically.
    """

    def __init__(
        self, message: str, backend: str = "unknown", recoverable: bool = False
    ):
        self.message = message
        self.backend = backend
        self.recoverable = recoverable
        super().__init__(message)


class ConnectionError(BackendError):
    """Raised when the backend cannot connect to the database."""

    def __init__(self, message: str, backend: str = "unknown"):
        super().__init__(message, backend, recoverable=True)


class QueryExecutionError(BackendError):
    """Raised when a query fails to execute."""

    def __init__(self, message: str, sql: str, backend: str = "unknown"):
        super().__init__(message, backend, recoverable=False)
        self.sql = sql


class QueryTimeoutError(BackendError):
    """Raised when a query runs longer than the configured timeout."""

    def __init__(self, timeout: float, sql: str, backend: str = "unknown"):
        message = f"Query exceeded the {timeout:g}s timeout and was interrupted"
        super().__init__(message, backend, recoverable=True)
        self.timeout = timeout
        self.sql = sql
