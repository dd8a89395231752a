"""Per-concept missing-data ratios for a cohort.

For a cohort of N subjects the missing ratio of a concept is the share of
subjects without any recorded value for it: ``(N - n_with_value) / N``.
An empty cohort has ratio 0.0 for every concept.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from cohortstats.core.concepts import ConceptType, get_concepts, get_prefixed_concept_id
from cohortstats.core.sources import SourceResolver
from cohortstats.core.validation import format_id_list, validate_id, validate_id_list
from cohortstats.stats.base import resolve_handles

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConceptStats:
    concept_id: int
    prefixed_concept_id: str
    concept_name: str
    domain_id: str
    domain_name: str
    cohort_size: int
    n_missing_ratio: float


def missing_ratio(cohort_size: int, n_with_value: int) -> float:
    if cohort_size == 0:
        return 0.0
    n_missing = max(cohort_size - n_with_value, 0)
    return n_missing / cohort_size


def _any_value_check(alias: str) -> str:
    # A value in any column counts as recorded, whatever the concept type
    return " or ".join(f"({t.not_null_check(alias)})" for t in ConceptType)


def retrieve_concept_stats(
    source_id: int,
    cohort_id: int,
    concept_ids: Iterable[int] | None,
    resolver: SourceResolver | None = None,
) -> list[ConceptStats]:
    """Missing-data ratio of each concept within a cohort.

    Concepts unknown to the vocabulary are left out. The result is ordered
    by concept name.
    """
    handles = resolve_handles(source_id, resolver)
    cohort_id = validate_id(cohort_id, "cohort_id")
    concepts = get_concepts(handles.omop, validate_id_list(concept_ids, "concept_ids"))
    if not concepts:
        return []

    omop, results = handles.omop, handles.results
    size_sql = (
        f"SELECT COUNT(DISTINCT subject_id) FROM {results.table('cohort')} "
        f"WHERE cohort_definition_id = {cohort_id}"
    )
    cohort_size = int(omop.backend.execute_query(size_sql).scalar() or 0)

    with_value: dict[int, int] = {}
    if cohort_size > 0:
        ids = format_id_list(c.concept_id for c in concepts)
        counts_sql = f"""SELECT o.observation_concept_id AS concept_id,
    COUNT(DISTINCT o.person_id) AS n_with_value
FROM {omop.table('observation')} o
WHERE o.observation_concept_id IN ({ids})
    AND o.person_id IN (
        SELECT subject_id FROM {results.table('cohort')}
        WHERE cohort_definition_id = {cohort_id}
    )
    AND ({_any_value_check('o')})
GROUP BY o.observation_concept_id"""
        df = omop.backend.execute_query(counts_sql).dataframe
        with_value = {
            int(r.concept_id): int(r.n_with_value) for r in df.itertuples(index=False)
        }

    stats = []
    for concept in concepts:
        n_with_value = with_value.get(concept.concept_id, 0)
        logger.debug(
            f"Found {n_with_value} persons with data for concept_id {concept.concept_id}"
        )
        stats.append(
            ConceptStats(
                concept_id=concept.concept_id,
                prefixed_concept_id=get_prefixed_concept_id(concept.concept_id),
                concept_name=concept.concept_name,
                domain_id=concept.domain_id,
                domain_name=concept.domain_name,
                cohort_size=cohort_size,
                n_missing_ratio=missing_ratio(cohort_size, n_with_value),
            )
        )
    return stats
