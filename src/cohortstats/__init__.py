"""cohortstats: cohort statistics over OMOP CDM warehouses.

cohortstats answers questions about precomputed cohorts and coded clinical
concepts: how many subjects two filtered cohorts share, how a filtered
population breaks down by a concept's values, how much data is missing per
concept, and whether single-valued concepts hold multiple values.

Quick Start:
    from cohortstats import PairDefinition, compute_breakdown

    rows = compute_breakdown(
        source_id=1,
        population_cohort_id=4,
        breakdown_concept_id=2000007027,
        pairs=[PairDefinition(7, 8)],
    )

For the command line, run: cohortstats --help
"""

__version__ = "0.1.0"

from cohortstats.api import (
    # Exceptions
    BackendError,
    CohortStatsError,
    ConceptNotFoundError,
    InvalidRequestError,
    MissingConceptDataError,
    # Request records
    PairDefinition,
    QueryTimeoutError,
    SourceNotFoundError,
    UnsupportedConceptTypeError,
    # Statistics
    compute_breakdown,
    compute_histogram,
    compute_missing_ratios,
    compute_overlap,
    export_cohort_data,
    # Sources and cohorts
    list_cohorts,
    list_sources,
    parse_concept_value,
    resolve_owning_team_projects,
    team_projects_for_request,
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
    "__version__",
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
