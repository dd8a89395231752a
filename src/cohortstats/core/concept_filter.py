"""Concept and value filters on top of a subject set.

Each required concept becomes one join against ``observation`` under its
own alias, restricted to rows that hold a value for that concept's type.
Joins fan out to one row per matching observation, so the result is
projected back to subjects with ``DISTINCT``.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from cohortstats.core.concepts import ConceptType, get_concept_types
from cohortstats.core.sources import ConnectionHandle
from cohortstats.core.subject_sets import QueryAliases, SubjectSetQuery
from cohortstats.core.validation import validate_id, validate_id_list

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValueEquals:
    """Require an observation of ``concept_id`` whose value equals ``value``.

    For coded concepts ``value`` is the value concept id.
    """

    concept_id: int
    value: int | float | str

    def __post_init__(self):
        validate_id(self.concept_id, "value_equals.concept_id")
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float, str)):
            raise ValueError(
                f"value_equals.value must be a number or string, "
                f"got {type(self.value).__name__}"
            )

    def check_type(self, concept_type: ConceptType) -> None:
        if concept_type is ConceptType.CODED and not isinstance(self.value, int):
            raise ValueError(
                f"Concept {self.concept_id} is coded; its value must be a concept id"
            )
        if concept_type is ConceptType.NUMERIC and isinstance(self.value, str):
            raise ValueError(f"Concept {self.concept_id} is numeric; got a string value")
        if concept_type is ConceptType.STRING and not isinstance(self.value, str):
            raise ValueError(f"Concept {self.concept_id} holds strings; got a number")


def _observation_join(
    omop: ConnectionHandle, alias: str, subjects_alias: str, concept_id: int
) -> str:
    return (
        f"JOIN {omop.table('observation')} AS {alias} "
        f"ON {alias}.person_id = {subjects_alias}.subject_id "
        f"AND {alias}.observation_concept_id = {concept_id}"
    )


def build_concept_filter(
    omop: ConnectionHandle,
    subject_set: SubjectSetQuery,
    concept_ids: Iterable[int] | None,
    value_equals: ValueEquals | None = None,
    breakdown_concept_id: int | None = None,
    aliases: QueryAliases | None = None,
    concept_types: dict[int, ConceptType] | None = None,
) -> SubjectSetQuery:
    """Restrict ``subject_set`` to subjects with data for every concept.

    Args:
        omop: Handle for the clinical data schema
        subject_set: Subjects to filter (usually a pair filter result)
        concept_ids: Concepts each subject must have a non-null value for
        value_equals: Optional "concept has exactly this value" requirement
        breakdown_concept_id: Concept the caller will group by; it is not
            joined again here because the grouping join already requires it
        aliases: Alias registry of the enclosing statement
        concept_types: Pre-fetched concept types; looked up when omitted

    Returns:
        SubjectSetQuery of the remaining subjects

    Raises:
        UnsupportedConceptTypeError: If a concept's type cannot be determined
        ValueError: For non-integer ids or a value that does not fit the type
    """
    ids = sorted(set(validate_id_list(concept_ids, "concept_ids")))
    if breakdown_concept_id is not None:
        breakdown_concept_id = validate_id(breakdown_concept_id, "breakdown_concept_id")
        ids = [concept_id for concept_id in ids if concept_id != breakdown_concept_id]

    if not ids and value_equals is None:
        return subject_set

    needed = ids + ([value_equals.concept_id] if value_equals else [])
    if concept_types is None or not set(needed) <= concept_types.keys():
        concept_types = get_concept_types(omop, needed)

    aliases = aliases or QueryAliases()
    subjects = aliases.new("filtered_subjects")
    joins = []
    params = list(subject_set.params)

    for concept_id in ids:
        alias = aliases.new("observation")
        joins.append(
            f"{_observation_join(omop, alias, subjects, concept_id)} "
            f"AND {concept_types[concept_id].not_null_check(alias)}"
        )

    if value_equals is not None:
        value_type = concept_types[value_equals.concept_id]
        value_equals.check_type(value_type)
        alias = aliases.new("observation")
        joins.append(
            f"{_observation_join(omop, alias, subjects, value_equals.concept_id)} "
            f"AND {alias}.{value_type.value_column} = ?"
        )
        params.append(value_equals.value)

    sql = (
        f"SELECT DISTINCT {subjects}.subject_id\n"
        f"FROM ({subject_set.sql}) AS {subjects}\n" + "\n".join(joins)
    )
    logger.debug(f"Concept filter over {len(ids)} concept(s), value filter: {value_equals}")
    return SubjectSetQuery(sql, tuple(params))
