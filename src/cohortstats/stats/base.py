"""Shared plumbing for the statistics engines."""

from collections.abc import Iterable
from dataclasses import dataclass

from cohortstats.core.concept_filter import ValueEquals, build_concept_filter
from cohortstats.core.concepts import ConceptType
from cohortstats.core.sources import (
    ConnectionHandle,
    SourceResolver,
    SourceRole,
    get_source_resolver,
)
from cohortstats.core.subject_sets import (
    PairDefinition,
    PairFilterMode,
    QueryAliases,
    SubjectSetQuery,
    build_pair_filter,
)
from cohortstats.core.validation import validate_id


@dataclass(frozen=True)
class WarehouseHandles:
    """Clinical data and results handles of one source."""

    omop: ConnectionHandle
    results: ConnectionHandle


def resolve_handles(
    source_id: int, resolver: SourceResolver | None = None
) -> WarehouseHandles:
    resolver = resolver or get_source_resolver()
    source_id = validate_id(source_id, "source_id")
    return WarehouseHandles(
        omop=resolver.resolve(source_id, SourceRole.OMOP),
        results=resolver.resolve(source_id, SourceRole.RESULTS),
    )


def filtered_subject_set(
    handles: WarehouseHandles,
    population_cohort_id: int,
    concept_ids: Iterable[int] | None,
    pairs: Iterable[PairDefinition] | None,
    aliases: QueryAliases,
    value_equals: ValueEquals | None = None,
    breakdown_concept_id: int | None = None,
    concept_types: dict[int, ConceptType] | None = None,
) -> SubjectSetQuery:
    """Population, then cohort pairs, then concept filters."""
    pair_filtered = build_pair_filter(
        handles.results,
        pairs,
        population_cohort_id,
        PairFilterMode.UNION_AND_INTERSECT,
        aliases,
    )
    return build_concept_filter(
        handles.omop,
        pair_filtered,
        concept_ids,
        value_equals=value_equals,
        breakdown_concept_id=breakdown_concept_id,
        aliases=aliases,
        concept_types=concept_types,
    )
