"""Breakdown of a filtered population by the value of one coded concept.

Subjects without a value for the breakdown concept do not appear in any
group. Subjects holding several distinct values appear once in each of
their groups, so the group counts can add up to more than the number of
subjects; ``validate_observation_data`` is the place to detect that.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import pandas as pd

from cohortstats.core.concepts import ConceptType, get_concept_types
from cohortstats.core.exceptions import UnsupportedConceptTypeError
from cohortstats.core.sources import SourceResolver
from cohortstats.core.subject_sets import PairDefinition, QueryAliases
from cohortstats.core.validation import validate_id, validate_id_list
from cohortstats.stats.base import filtered_subject_set, resolve_handles

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConceptBreakdown:
    value: int
    value_name: str | None
    count_in_cohort: int


def retrieve_breakdown_stats(
    source_id: int,
    population_cohort_id: int,
    filter_concept_ids: Iterable[int] | None,
    pairs: Iterable[PairDefinition] | None,
    breakdown_concept_id: int,
    resolver: SourceResolver | None = None,
) -> list[ConceptBreakdown]:
    """Distinct subject counts per breakdown value, ordered by value.

    Args:
        source_id: Source holding the population cohort
        population_cohort_id: Starting subject set
        filter_concept_ids: Concepts every counted subject must have data for
        pairs: Cohort pair filters
        breakdown_concept_id: Coded concept whose values define the groups

    Raises:
        UnsupportedConceptTypeError: If a concept's type is unknown or the
            breakdown concept is not coded
    """
    handles = resolve_handles(source_id, resolver)
    population_cohort_id = validate_id(population_cohort_id, "population_cohort_id")
    breakdown_concept_id = validate_id(breakdown_concept_id, "breakdown_concept_id")
    filter_ids = validate_id_list(filter_concept_ids, "filter_concept_ids")

    concept_types = get_concept_types(handles.omop, filter_ids + [breakdown_concept_id])
    if concept_types[breakdown_concept_id] is not ConceptType.CODED:
        raise UnsupportedConceptTypeError(
            f"Breakdown concept {breakdown_concept_id} must be coded, "
            f"found {concept_types[breakdown_concept_id].name.lower()}",
            breakdown_concept_id,
        )

    aliases = QueryAliases()
    subjects = filtered_subject_set(
        handles,
        population_cohort_id,
        filter_ids,
        pairs,
        aliases,
        breakdown_concept_id=breakdown_concept_id,
        concept_types=concept_types,
    )

    omop = handles.omop
    subjects_alias = aliases.new("breakdown_subjects")
    obs = aliases.new("breakdown_observation")
    value_concept = aliases.new("value_concept")
    sql = f"""SELECT
    {obs}.value_as_concept_id AS value,
    {value_concept}.concept_name AS value_name,
    COUNT(DISTINCT {obs}.person_id) AS count_in_cohort
FROM ({subjects.sql}) AS {subjects_alias}
JOIN {omop.table('observation')} AS {obs}
    ON {obs}.person_id = {subjects_alias}.subject_id
    AND {obs}.observation_concept_id = {breakdown_concept_id}
    AND {ConceptType.CODED.not_null_check(obs)}
LEFT JOIN {omop.table('concept')} AS {value_concept}
    ON {value_concept}.concept_id = {obs}.value_as_concept_id
GROUP BY {obs}.value_as_concept_id, {value_concept}.concept_name
ORDER BY {obs}.value_as_concept_id"""

    df = omop.backend.execute_query(sql, subjects.params).dataframe
    logger.info(
        f"Breakdown of cohort {population_cohort_id} by concept "
        f"{breakdown_concept_id}: {len(df)} value(s)"
    )
    return [
        ConceptBreakdown(
            value=int(r.value),
            value_name=None if pd.isna(r.value_name) else str(r.value_name),
            count_in_cohort=int(r.count_in_cohort),
        )
        for r in df.itertuples(index=False)
    ]
