"""cohortstats Python API.

Entry points for callers that have already parsed and validated their
request: every argument is an integer id, a list of integer ids or a list
of ``PairDefinition`` records. Functions use the process-wide source
resolver built from configuration.

Example:
    from cohortstats import PairDefinition, compute_overlap

    stats = compute_overlap(
        source_id=1,
        case_cohort_id=4,
        control_cohort_id=5,
        filter_concept_id=2000007027,
        filter_concept_value=2000007029,
        other_filter_concept_ids=[2000006885],
        pairs=[PairDefinition(7, 8, "treated vs untreated")],
    )
    print(stats.case_control_overlap)
"""

from collections.abc import Iterable

import pandas as pd

from cohortstats.core.cohorts import (
    CohortDefinitionStats,
    get_all_cohort_definitions_and_stats,
)
from cohortstats.core.cohorts import (
    resolve_owning_team_projects as _resolve_owning_team_projects,
)
from cohortstats.core.concepts import get_concept_types
from cohortstats.core.exceptions import (
    BackendError,
    CohortStatsError,
    ConceptNotFoundError,
    InvalidRequestError,
    MissingConceptDataError,
    QueryTimeoutError,
    SourceNotFoundError,
    UnsupportedConceptTypeError,
)
from cohortstats.core.sources import Source, SourceRole, get_source_resolver
from cohortstats.core.subject_sets import PairDefinition, unique_cohort_ids
from cohortstats.stats import (
    CohortOverlapStats,
    ConceptBreakdown,
    ConceptStats,
    HistogramBin,
    retrieve_breakdown_stats,
    retrieve_cohort_data,
    retrieve_cohort_overlap_stats,
    retrieve_cohort_overlap_stats_without_filtering_on_concept_value,
    retrieve_concept_stats,
    retrieve_histogram_data,
    validate_observation_data,
)

__all__ = [
    "BackendError",
    "CohortStatsError",
    "ConceptNotFoundError",
    "InvalidRequestError",
    "MissingConceptDataError",
    "PairDefinition",
    "QueryTimeoutError",
    "SourceNotFoundError",
    "UnsupportedConceptTypeError",
    "compute_breakdown",
    "compute_histogram",
    "compute_missing_ratios",
    "compute_overlap",
    "export_cohort_data",
    "list_cohorts",
    "list_sources",
    "parse_concept_value",
    "resolve_owning_team_projects",
    "team_projects_for_request",
    "validate_observation_data",
]


# =============================================================================
# Sources and cohorts
# =============================================================================


def list_sources() -> list[Source]:
    """All sources registered in the Atlas catalog."""
    return get_source_resolver().get_all_sources()


def list_cohorts(source_id: int) -> list[CohortDefinitionStats]:
    """Cohorts with members in a source, largest first."""
    return get_all_cohort_definitions_and_stats(source_id, get_source_resolver())


def resolve_owning_team_projects(cohort_ids: Iterable[int]) -> list[str]:
    """Team projects that own every cohort in ``cohort_ids``."""
    return _resolve_owning_team_projects(cohort_ids, get_source_resolver())


def team_projects_for_request(
    population_cohort_id: int, pairs: Iterable[PairDefinition] | None = None
) -> list[str]:
    """Team projects owning every cohort a statistics request touches."""
    pairs = list(pairs or ())
    return resolve_owning_team_projects(unique_cohort_ids(population_cohort_id, pairs))


def parse_concept_value(source_id: int, concept_id: int, raw: str) -> int | float | str:
    """Type ``raw`` for ``concept_id``: a value concept id, a number or text.

    Raises:
        UnsupportedConceptTypeError: If the concept's type cannot be determined
        ValueError: If ``raw`` does not fit the concept's type
    """
    omop = get_source_resolver().resolve(source_id, SourceRole.OMOP)
    concept_type = get_concept_types(omop, [concept_id])[concept_id]
    return concept_type.parse_value(raw)


# =============================================================================
# Statistics
# =============================================================================


def compute_overlap(
    source_id: int,
    case_cohort_id: int,
    control_cohort_id: int,
    filter_concept_id: int | None = None,
    filter_concept_value: int | float | str | None = None,
    other_filter_concept_ids: Iterable[int] | None = None,
    pairs: Iterable[PairDefinition] | None = None,
) -> CohortOverlapStats:
    """Overlap of the filtered case and control cohorts.

    Without ``filter_concept_id`` no value predicate is applied.

    Raises:
        ValueError: If only one of filter_concept_id / filter_concept_value is set
    """
    if (filter_concept_id is None) != (filter_concept_value is None):
        raise ValueError(
            "filter_concept_id and filter_concept_value must be given together"
        )
    resolver = get_source_resolver()
    if filter_concept_id is None:
        return retrieve_cohort_overlap_stats_without_filtering_on_concept_value(
            source_id,
            case_cohort_id,
            control_cohort_id,
            other_filter_concept_ids,
            pairs,
            resolver=resolver,
        )
    return retrieve_cohort_overlap_stats(
        source_id,
        case_cohort_id,
        control_cohort_id,
        filter_concept_id,
        filter_concept_value,
        other_filter_concept_ids,
        pairs,
        resolver=resolver,
    )


def compute_breakdown(
    source_id: int,
    population_cohort_id: int,
    breakdown_concept_id: int,
    filter_concept_ids: Iterable[int] | None = None,
    pairs: Iterable[PairDefinition] | None = None,
) -> list[ConceptBreakdown]:
    """Subject counts per value of ``breakdown_concept_id``."""
    return retrieve_breakdown_stats(
        source_id,
        population_cohort_id,
        filter_concept_ids,
        pairs,
        breakdown_concept_id,
        resolver=get_source_resolver(),
    )


def compute_missing_ratios(
    source_id: int, cohort_id: int, concept_ids: Iterable[int]
) -> list[ConceptStats]:
    """Missing-data ratio per concept within a cohort."""
    return retrieve_concept_stats(
        source_id, cohort_id, concept_ids, resolver=get_source_resolver()
    )


def compute_histogram(
    source_id: int,
    cohort_id: int,
    histogram_concept_id: int,
    filter_concept_ids: Iterable[int] | None = None,
    pairs: Iterable[PairDefinition] | None = None,
    bins: int = 10,
) -> list[HistogramBin]:
    """Histogram of a numeric concept over the filtered cohort."""
    return retrieve_histogram_data(
        source_id,
        cohort_id,
        histogram_concept_id,
        filter_concept_ids,
        pairs,
        bins=bins,
        resolver=get_source_resolver(),
    )


def export_cohort_data(
    source_id: int, cohort_id: int, concept_ids: Iterable[int]
) -> pd.DataFrame:
    """Long-format observations of the cohort, ordered by person."""
    return retrieve_cohort_data(
        source_id, cohort_id, concept_ids, resolver=get_source_resolver()
    )
