"""Per-person observation export for a cohort."""

from collections.abc import Iterable

import pandas as pd

from cohortstats.core.sources import SourceResolver
from cohortstats.core.validation import format_id_list, validate_id, validate_id_list
from cohortstats.stats.base import resolve_handles

COHORT_DATA_COLUMNS = [
    "person_id",
    "concept_id",
    "value_as_string",
    "value_as_number",
    "value_as_concept_id",
]


def retrieve_cohort_data(
    source_id: int,
    cohort_id: int,
    concept_ids: Iterable[int] | None,
    resolver: SourceResolver | None = None,
) -> pd.DataFrame:
    """Observations of the given concepts for every cohort member.

    Long format, one row per observation, ordered by person_id then concept.
    """
    handles = resolve_handles(source_id, resolver)
    cohort_id = validate_id(cohort_id, "cohort_id")
    ids = sorted(set(validate_id_list(concept_ids, "concept_ids")))
    if not ids:
        return pd.DataFrame(columns=COHORT_DATA_COLUMNS)

    omop, results = handles.omop, handles.results
    sql = f"""SELECT o.person_id, o.observation_concept_id AS concept_id,
    o.value_as_string, o.value_as_number, o.value_as_concept_id
FROM {omop.table('observation')} o
WHERE o.observation_concept_id IN ({format_id_list(ids)})
    AND o.person_id IN (
        SELECT subject_id FROM {results.table('cohort')}
        WHERE cohort_definition_id = {cohort_id}
    )
ORDER BY o.person_id, o.observation_concept_id"""
    return omop.backend.execute_query(sql).dataframe
