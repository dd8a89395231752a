"""Statistics engines built on the subject-set algebra.

- overlap: case/control overlap counts
- breakdown: counts per value of a coded concept
- missing: per-concept missing-data ratios
- validation: multi-valued observation checks
- histogram, cohort_data: numeric histograms and per-person exports
"""

from cohortstats.stats.breakdown import ConceptBreakdown, retrieve_breakdown_stats
from cohortstats.stats.cohort_data import retrieve_cohort_data
from cohortstats.stats.histogram import HistogramBin, retrieve_histogram_data
from cohortstats.stats.missing import ConceptStats, retrieve_concept_stats
from cohortstats.stats.overlap import (
    CohortOverlapStats,
    retrieve_cohort_overlap_stats,
    retrieve_cohort_overlap_stats_without_filtering_on_concept_value,
)
from cohortstats.stats.validation import NOT_APPLICABLE, validate_observation_data

__all__ = [
    "NOT_APPLICABLE",
    "CohortOverlapStats",
    "ConceptBreakdown",
    "ConceptStats",
    "HistogramBin",
    "retrieve_breakdown_stats",
    "retrieve_cohort_data",
    "retrieve_cohort_overlap_stats",
    "retrieve_cohort_overlap_stats_without_filtering_on_concept_value",
    "retrieve_concept_stats",
    "retrieve_histogram_data",
    "validate_observation_data",
]
