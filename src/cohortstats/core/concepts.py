"""Concept vocabulary lookups and observation value types.

Each concept's observations carry their value in exactly one column,
selected by the concept's type. ``ConceptType`` is the closed set of
supported types; each member knows its value column and its "has a value"
check, so call sites never branch on the type themselves.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from cohortstats.core.exceptions import ConceptNotFoundError, UnsupportedConceptTypeError
from cohortstats.core.sources import ConnectionHandle
from cohortstats.core.validation import format_id_list, validate_id, validate_id_list

logger = logging.getLogger(__name__)

CONCEPT_ID_PREFIX = "ID_"


class ConceptType(Enum):
    """Observation value type of a concept."""

    CODED = "value_as_concept_id"
    NUMERIC = "value_as_number"
    STRING = "value_as_string"

    @property
    def value_column(self) -> str:
        return self.value

    def not_null_check(self, alias: str = "observation") -> str:
        """SQL predicate that is true when the row holds a value.

        Coded values use 0 as "no matching concept", which counts as missing.
        """
        column = f"{alias}.{self.value_column}"
        if self is ConceptType.CODED:
            return f"{column} is not null and {column} != 0"
        return f"{column} is not null"

    def parse_value(self, raw: str) -> int | float | str:
        """Convert text (e.g. a command-line argument) to this type's value.

        Raises:
            ValueError: If ``raw`` is not a concept id (coded) or a number (numeric)
        """
        if self is ConceptType.CODED:
            try:
                return int(raw)
            except ValueError as e:
                raise ValueError(f"Expected a value concept id, got '{raw}'") from e
        if self is ConceptType.NUMERIC:
            try:
                return float(raw)
            except ValueError as e:
                raise ValueError(f"Expected a number, got '{raw}'") from e
        return raw


# concept.concept_class_id -> observation value type
CONCEPT_CLASS_TYPES: dict[str, ConceptType] = {
    "MVP Discrete": ConceptType.CODED,
    "MVP Continuous": ConceptType.NUMERIC,
    "MVP Text": ConceptType.STRING,
}


@dataclass(frozen=True)
class Concept:
    concept_id: int
    concept_name: str
    domain_id: str
    domain_name: str
    concept_class_id: str | None = None

    @property
    def concept_type(self) -> ConceptType | None:
        return CONCEPT_CLASS_TYPES.get(self.concept_class_id or "")


def get_prefixed_concept_id(concept_id: int) -> str:
    """``12345`` -> ``"ID_12345"``, the identifier used in exported column names."""
    return f"{CONCEPT_ID_PREFIX}{validate_id(concept_id, 'concept_id')}"


def get_concept_id(prefixed_concept_id: str) -> int:
    """Inverse of ``get_prefixed_concept_id``.

    Raises:
        ValueError: If the prefix is missing or the remainder is not a number
    """
    if not prefixed_concept_id.startswith(CONCEPT_ID_PREFIX):
        raise ValueError(
            f"Expected a concept id starting with '{CONCEPT_ID_PREFIX}', "
            f"got '{prefixed_concept_id}'"
        )
    return int(prefixed_concept_id[len(CONCEPT_ID_PREFIX) :])


def _concept_info_sql(omop: ConnectionHandle, where: str) -> str:
    return f"""SELECT c.concept_id, c.concept_name, c.domain_id, d.domain_name, c.concept_class_id
FROM {omop.table('concept')} c
JOIN {omop.table('domain')} d ON c.domain_id = d.domain_id
WHERE {where}
ORDER BY c.concept_name"""


def _to_concepts(result) -> list[Concept]:
    return [
        Concept(
            concept_id=int(r.concept_id),
            concept_name=r.concept_name,
            domain_id=r.domain_id,
            domain_name=r.domain_name,
            concept_class_id=r.concept_class_id,
        )
        for r in result.dataframe.itertuples(index=False)
    ]


def get_concepts(omop: ConnectionHandle, concept_ids: list[int]) -> list[Concept]:
    """Concepts (with domain names) for the given ids, ordered by name.

    Ids missing from the vocabulary are silently absent from the result;
    use ``get_concept`` when a missing id is an error.
    """
    ids = validate_id_list(concept_ids, "concept_ids")
    if not ids:
        return []
    result = omop.backend.execute_query(
        _concept_info_sql(omop, f"c.concept_id IN ({format_id_list(ids)})")
    )
    return _to_concepts(result)


def get_concept(omop: ConnectionHandle, concept_id: int) -> Concept:
    """A single concept with its domain name.

    Raises:
        ConceptNotFoundError: If the id is not in the vocabulary
    """
    concept_id = validate_id(concept_id, "concept_id")
    result = omop.backend.execute_query(
        _concept_info_sql(omop, "c.concept_id = ?"), (concept_id,)
    )
    concepts = _to_concepts(result)
    if not concepts:
        raise ConceptNotFoundError(f"Concept {concept_id} not found", concept_id)
    return concepts[0]


def get_concepts_by_type(
    omop: ConnectionHandle, concept_types: Iterable[ConceptType | str]
) -> list[Concept]:
    """Concepts whose class is one of ``concept_types``, ordered by name.

    ``ConceptType`` members expand to every class mapped to them; strings are
    taken as raw ``concept_class_id`` values. Unknown classes match nothing.
    """
    if isinstance(concept_types, str):
        raise ValueError("concept_types must be a list, got a string")
    classes: set[str] = set()
    for concept_type in concept_types:
        if isinstance(concept_type, ConceptType):
            classes.update(
                name for name, mapped in CONCEPT_CLASS_TYPES.items() if mapped is concept_type
            )
        elif isinstance(concept_type, str):
            classes.add(concept_type)
        else:
            raise ValueError(
                f"concept_types must hold ConceptType or str, "
                f"got {type(concept_type).__name__}"
            )
    if not classes:
        return []
    ordered = sorted(classes)
    placeholders = ", ".join("?" for _ in ordered)
    result = omop.backend.execute_query(
        _concept_info_sql(omop, f"c.concept_class_id IN ({placeholders})"), tuple(ordered)
    )
    logger.debug(f"{result.row_count} concept(s) of class {ordered}")
    return _to_concepts(result)


def get_concept_types(
    omop: ConnectionHandle, concept_ids: list[int]
) -> dict[int, ConceptType]:
    """Observation value type for each requested concept.

    Raises:
        UnsupportedConceptTypeError: If any concept is not in the vocabulary
            or its class has no known value type
    """
    ids = sorted(set(validate_id_list(concept_ids, "concept_ids")))
    if not ids:
        return {}
    result = omop.backend.execute_query(
        f"SELECT concept_id, concept_class_id FROM {omop.table('concept')} "
        f"WHERE concept_id IN ({format_id_list(ids)})"
    )
    classes = {
        int(r.concept_id): r.concept_class_id
        for r in result.dataframe.itertuples(index=False)
    }

    types: dict[int, ConceptType] = {}
    for concept_id in ids:
        if concept_id not in classes:
            raise UnsupportedConceptTypeError(
                f"Concept {concept_id} not found; cannot determine its type",
                concept_id,
            )
        concept_class = classes[concept_id]
        concept_type = CONCEPT_CLASS_TYPES.get(concept_class or "")
        if concept_type is None:
            raise UnsupportedConceptTypeError(
                f"Concept {concept_id} has unsupported type '{concept_class}'",
                concept_id,
                concept_class,
            )
        types[concept_id] = concept_type
    return types
