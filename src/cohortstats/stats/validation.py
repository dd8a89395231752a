"""Observation data-quality checks."""

import logging
from collections.abc import Iterable

from cohortstats.core.concepts import ConceptType
from cohortstats.core.sources import SourceResolver
from cohortstats.core.validation import format_id_list, validate_id_list
from cohortstats.stats.base import resolve_handles

logger = logging.getLogger(__name__)

# Returned when nothing was checked; 0 means "checked, no issues"
NOT_APPLICABLE = -1


def validate_observation_data(
    source_id: int,
    concept_ids: Iterable[int] | None,
    resolver: SourceResolver | None = None,
) -> int:
    """Count subjects with more than one distinct coded value per concept.

    Single-valued concepts (e.g. race) should hold one value per subject.
    The count is summed over concepts, so a subject violating two concepts
    counts twice. Concepts without observations contribute 0.

    Returns:
        Number of issues, or ``NOT_APPLICABLE`` for an empty concept list
    """
    ids = sorted(set(validate_id_list(concept_ids, "concept_ids")))
    if not ids:
        return NOT_APPLICABLE

    omop = resolve_handles(source_id, resolver).omop
    sql = f"""SELECT observation_concept_id AS concept_id, COUNT(*) AS n_issues
FROM (
    SELECT o.observation_concept_id, o.person_id
    FROM {omop.table('observation')} o
    WHERE o.observation_concept_id IN ({format_id_list(ids)})
        AND {ConceptType.CODED.not_null_check('o')}
    GROUP BY o.observation_concept_id, o.person_id
    HAVING COUNT(DISTINCT o.value_as_concept_id) > 1
) AS multi_valued
GROUP BY observation_concept_id"""
    df = omop.backend.execute_query(sql).dataframe

    for r in df.itertuples(index=False):
        logger.warning(
            f"{int(r.n_issues)} person(s) have more than one value for concept "
            f"{int(r.concept_id)}"
        )
    return int(df["n_issues"].sum()) if not df.empty else 0
