"""cohortstats core - warehouse access and the subject-set algebra.

This package contains:
- Source resolution (source id + role -> connection handle)
- Backend abstractions
- Concept vocabulary and value types
- Cohort pair and concept filter builders
"""

from cohortstats.core.concept_filter import ValueEquals, build_concept_filter
from cohortstats.core.concepts import ConceptType
from cohortstats.core.sources import ConnectionHandle, SourceResolver, SourceRole
from cohortstats.core.subject_sets import (
    PairDefinition,
    PairFilterMode,
    QueryAliases,
    SubjectSetQuery,
    build_pair_filter,
)

__all__ = [
    "ConceptType",
    "ConnectionHandle",
    "PairDefinition",
    "PairFilterMode",
    "QueryAliases",
    "SourceResolver",
    "SourceRole",
    "SubjectSetQuery",
    "ValueEquals",
    "build_concept_filter",
    "build_pair_filter",
]
