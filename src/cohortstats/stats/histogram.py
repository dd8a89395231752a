"""Histograms of a numeric concept over a filtered cohort."""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from cohortstats.core.concepts import ConceptType, get_concept_types
from cohortstats.core.exceptions import UnsupportedConceptTypeError
from cohortstats.core.sources import SourceResolver
from cohortstats.core.subject_sets import PairDefinition, QueryAliases
from cohortstats.core.validation import validate_id, validate_id_list
from cohortstats.stats.base import filtered_subject_set, resolve_handles

logger = logging.getLogger(__name__)

DEFAULT_BINS = 10


@dataclass(frozen=True)
class HistogramBin:
    start: float
    end: float
    count: int


def compute_histogram(values: Sequence[float], bins: int = DEFAULT_BINS) -> list[HistogramBin]:
    """Equal-width bins over the value range; empty input gives no bins."""
    if bins < 1:
        raise ValueError(f"bins must be at least 1, got {bins}")
    data = np.asarray(values, dtype=float)
    data = data[~np.isnan(data)]
    if data.size == 0:
        return []
    counts, edges = np.histogram(data, bins=bins)
    return [
        HistogramBin(start=float(edges[i]), end=float(edges[i + 1]), count=int(counts[i]))
        for i in range(len(counts))
    ]


def retrieve_histogram_data(
    source_id: int,
    cohort_id: int,
    histogram_concept_id: int,
    filter_concept_ids: Iterable[int] | None,
    pairs: Iterable[PairDefinition] | None,
    bins: int = DEFAULT_BINS,
    resolver: SourceResolver | None = None,
) -> list[HistogramBin]:
    """Bin every numeric observation of ``histogram_concept_id`` in the filtered cohort.

    Raises:
        UnsupportedConceptTypeError: If the histogram concept is not numeric
    """
    handles = resolve_handles(source_id, resolver)
    cohort_id = validate_id(cohort_id, "cohort_id")
    histogram_concept_id = validate_id(histogram_concept_id, "histogram_concept_id")
    filter_ids = validate_id_list(filter_concept_ids, "filter_concept_ids")

    concept_types = get_concept_types(handles.omop, filter_ids + [histogram_concept_id])
    if concept_types[histogram_concept_id] is not ConceptType.NUMERIC:
        raise UnsupportedConceptTypeError(
            f"Histogram concept {histogram_concept_id} must be numeric",
            histogram_concept_id,
        )

    aliases = QueryAliases()
    subjects = filtered_subject_set(
        handles,
        cohort_id,
        filter_ids,
        pairs,
        aliases,
        concept_types=concept_types,
    )
    omop = handles.omop
    subjects_alias = aliases.new("histogram_subjects")
    obs = aliases.new("histogram_observation")
    sql = f"""SELECT {obs}.value_as_number
FROM ({subjects.sql}) AS {subjects_alias}
JOIN {omop.table('observation')} AS {obs}
    ON {obs}.person_id = {subjects_alias}.subject_id
    AND {obs}.observation_concept_id = {histogram_concept_id}
    AND {ConceptType.NUMERIC.not_null_check(obs)}"""
    df = omop.backend.execute_query(sql, subjects.params).dataframe
    logger.debug(f"Histogram over {len(df)} value(s) of concept {histogram_concept_id}")
    return compute_histogram(df["value_as_number"].tolist(), bins)
