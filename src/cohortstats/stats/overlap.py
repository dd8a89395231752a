"""Case/control overlap statistics.

The overlap is the number of subjects present in both the filtered case
cohort and the filtered control cohort. Both sides get the same cohort pair
filters and concept filters; the intersection runs inside the warehouse and
only the count comes back.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from cohortstats.core.concept_filter import ValueEquals
from cohortstats.core.concepts import get_concept_types
from cohortstats.core.exceptions import MissingConceptDataError
from cohortstats.core.sources import ConnectionHandle, SourceResolver
from cohortstats.core.subject_sets import PairDefinition, QueryAliases
from cohortstats.core.validation import format_id_list, validate_id, validate_id_list
from cohortstats.stats.base import (
    WarehouseHandles,
    filtered_subject_set,
    resolve_handles,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CohortOverlapStats:
    case_control_overlap: int


def require_observed_concepts(omop: ConnectionHandle, concept_ids: list[int]) -> None:
    """Fail when any concept has no observations at all.

    Raises:
        MissingConceptDataError: Listing the concepts without data
    """
    ids = sorted(set(concept_ids))
    if not ids:
        return
    result = omop.backend.execute_query(
        f"SELECT DISTINCT observation_concept_id FROM {omop.table('observation')} "
        f"WHERE observation_concept_id IN ({format_id_list(ids)})"
    )
    observed = {int(v) for v in result.dataframe["observation_concept_id"]}
    missing = [concept_id for concept_id in ids if concept_id not in observed]
    if missing:
        raise MissingConceptDataError(
            f"No observations exist for filter concept(s) {missing}", missing
        )


def _compute_overlap(
    handles: WarehouseHandles,
    case_cohort_id: int,
    control_cohort_id: int,
    other_filter_concept_ids: list[int],
    pairs: list[PairDefinition],
    value_equals: ValueEquals | None,
) -> CohortOverlapStats:
    typed_ids = other_filter_concept_ids + (
        [value_equals.concept_id] if value_equals else []
    )
    concept_types = get_concept_types(handles.omop, typed_ids)
    require_observed_concepts(handles.omop, other_filter_concept_ids)

    aliases = QueryAliases()
    case = filtered_subject_set(
        handles,
        case_cohort_id,
        other_filter_concept_ids,
        pairs,
        aliases,
        value_equals=value_equals,
        concept_types=concept_types,
    )
    control = filtered_subject_set(
        handles,
        control_cohort_id,
        other_filter_concept_ids,
        pairs,
        aliases,
        value_equals=value_equals,
        concept_types=concept_types,
    )

    sql = f"""SELECT COUNT(*) AS case_control_overlap
FROM (
    SELECT subject_id FROM ({case.sql}) AS {aliases.new('case_subjects')}
    INTERSECT
    SELECT subject_id FROM ({control.sql}) AS {aliases.new('control_subjects')}
) AS {aliases.new('overlap')}"""
    result = handles.omop.backend.execute_query(sql, case.params + control.params)
    overlap = int(result.scalar() or 0)
    logger.info(
        f"Overlap of case cohort {case_cohort_id} and control cohort "
        f"{control_cohort_id}: {overlap}"
    )
    return CohortOverlapStats(case_control_overlap=overlap)


def retrieve_cohort_overlap_stats(
    source_id: int,
    case_cohort_id: int,
    control_cohort_id: int,
    filter_concept_id: int,
    filter_concept_value: int | float | str,
    other_filter_concept_ids: Iterable[int] | None,
    pairs: Iterable[PairDefinition] | None,
    resolver: SourceResolver | None = None,
) -> CohortOverlapStats:
    """Count subjects shared by the filtered case and control cohorts.

    Both cohorts are restricted to subjects whose ``filter_concept_id``
    observation equals ``filter_concept_value`` and who have a value for
    every concept in ``other_filter_concept_ids``, after cohort pair
    filtering. Case and control may be the same cohort.

    Raises:
        UnsupportedConceptTypeError: A concept's type cannot be determined
        MissingConceptDataError: An "other" filter concept has no data at all
        BackendError: The warehouse query failed or timed out
    """
    handles = resolve_handles(source_id, resolver)
    return _compute_overlap(
        handles,
        validate_id(case_cohort_id, "case_cohort_id"),
        validate_id(control_cohort_id, "control_cohort_id"),
        validate_id_list(other_filter_concept_ids, "other_filter_concept_ids"),
        list(pairs or ()),
        ValueEquals(filter_concept_id, filter_concept_value),
    )


def retrieve_cohort_overlap_stats_without_filtering_on_concept_value(
    source_id: int,
    case_cohort_id: int,
    control_cohort_id: int,
    other_filter_concept_ids: Iterable[int] | None,
    pairs: Iterable[PairDefinition] | None,
    resolver: SourceResolver | None = None,
) -> CohortOverlapStats:
    """Same as ``retrieve_cohort_overlap_stats`` without the value predicate."""
    handles = resolve_handles(source_id, resolver)
    return _compute_overlap(
        handles,
        validate_id(case_cohort_id, "case_cohort_id"),
        validate_id(control_cohort_id, "control_cohort_id"),
        validate_id_list(other_filter_concept_ids, "other_filter_concept_ids"),
        list(pairs or ()),
        None,
    )
