"""Subject-set algebra over cohort membership.

A ``SubjectSetQuery`` is a SQL fragment projecting a single ``subject_id``
column with set semantics. Builders compose fragments with SQL set
operators so the warehouse does the work; only final aggregates come back.

Cohort pair filtering works as follows. The running set starts as the
population cohort's members. Each dichotomous pair (A, B) contributes
``(A ∪ B) − (A ∩ B)``: subjects in exactly one of the two cohorts. The
running set is intersected with every pair's contribution. Because
intersection is commutative, associative and idempotent, pairs are
normalised and sorted before rendering: any permutation of the same pairs
produces the same SQL. A pair with A = B contributes nothing, which empties
the whole result.
"""

import itertools
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cohortstats.core.sources import ConnectionHandle
from cohortstats.core.validation import validate_id


class PairFilterMode(Enum):
    """How pair contributions combine with the running subject set."""

    UNION_AND_INTERSECT = "unionAndIntersect"


@dataclass(frozen=True)
class PairDefinition:
    """Dichotomous variable: subjects in one of two cohorts but not both.

    Attributes:
        cohort_id_1: First cohort (A)
        cohort_id_2: Second cohort (B); may equal A, which filters out everyone
        provided_name: Display name chosen by the user
    """

    cohort_id_1: int
    cohort_id_2: int
    provided_name: str = ""

    def __post_init__(self):
        validate_id(self.cohort_id_1, "cohort_id_1")
        validate_id(self.cohort_id_2, "cohort_id_2")

    @property
    def is_degenerate(self) -> bool:
        return self.cohort_id_1 == self.cohort_id_2

    def normalized(self) -> tuple[int, int]:
        """Order-free key; (A, B) and (B, A) select the same subjects."""
        return (
            min(self.cohort_id_1, self.cohort_id_2),
            max(self.cohort_id_1, self.cohort_id_2),
        )


@dataclass(frozen=True)
class SubjectSetQuery:
    """SQL selecting a set of ``subject_id`` values.

    ``params`` are the bound parameters of ``sql`` in textual order. When a
    fragment is embedded in a larger statement its params must be placed at
    the same position as its text.
    """

    sql: str
    params: tuple[Any, ...] = field(default_factory=tuple)

    def count_sql(self) -> str:
        return f"SELECT COUNT(*) AS subject_count FROM ({self.sql}) AS counted_subjects"


class QueryAliases:
    """Hands out table aliases that are unique within one generated statement.

    Create one registry per statement and pass it to every builder taking
    part in that statement.
    """

    def __init__(self):
        self._counters: defaultdict[str, itertools.count] = defaultdict(
            itertools.count
        )
        self._issued: set[str] = set()

    def new(self, prefix: str) -> str:
        alias = f"{prefix}_{next(self._counters[prefix])}"
        self._issued.add(alias)
        return alias

    @property
    def issued(self) -> frozenset[str]:
        return frozenset(self._issued)


def cohort_members(results: ConnectionHandle, cohort_id: int) -> SubjectSetQuery:
    """Members of a single cohort."""
    cohort_id = validate_id(cohort_id, "cohort_id")
    return SubjectSetQuery(
        f"SELECT DISTINCT subject_id FROM {results.table('cohort')} "
        f"WHERE cohort_definition_id = {cohort_id}"
    )


def _pair_contribution(
    results: ConnectionHandle, pair: tuple[int, int], aliases: QueryAliases
) -> str:
    cohort_a, cohort_b = pair
    union_sql = (
        f"SELECT subject_id FROM {results.table('cohort')} "
        f"WHERE cohort_definition_id IN ({cohort_a}, {cohort_b})"
    )
    overlap_sql = (
        f"{cohort_members(results, cohort_a).sql} "
        f"INTERSECT {cohort_members(results, cohort_b).sql}"
    )
    return (
        f"{union_sql} "
        f"EXCEPT SELECT subject_id FROM ({overlap_sql}) AS {aliases.new('pair_overlap')}"
    )


def build_pair_filter(
    results: ConnectionHandle,
    pairs: Iterable[PairDefinition] | None,
    population_cohort_id: int,
    mode: PairFilterMode | str = PairFilterMode.UNION_AND_INTERSECT,
    aliases: QueryAliases | None = None,
) -> SubjectSetQuery:
    """Population members restricted by every cohort pair.

    Args:
        results: Handle for the results schema holding ``cohort``
        pairs: Dichotomous pair definitions; empty or None means no filtering
        population_cohort_id: Cohort whose members form the starting set
        mode: Combination semantics; only "unionAndIntersect" is supported
        aliases: Alias registry of the enclosing statement

    Returns:
        SubjectSetQuery selecting the filtered subject ids

    Raises:
        ValueError: For an unknown mode or non-integer ids
    """
    mode = PairFilterMode(mode)
    aliases = aliases or QueryAliases()
    population = cohort_members(results, population_cohort_id)

    normalized = sorted({pair.normalized() for pair in pairs or ()})
    if not normalized:
        return population

    parts = [f"SELECT subject_id FROM ({population.sql}) AS {aliases.new('population')}"]
    for pair in normalized:
        contribution = _pair_contribution(results, pair, aliases)
        parts.append(f"SELECT subject_id FROM ({contribution}) AS {aliases.new('pair')}")
    return SubjectSetQuery("\nINTERSECT\n".join(parts))


def unique_cohort_ids(
    population_cohort_id: int, pairs: Iterable[PairDefinition] | None
) -> list[int]:
    """Every distinct cohort id referenced by a request, population first."""
    ids = [validate_id(population_cohort_id, "population_cohort_id")]
    for pair in pairs or ():
        ids.extend((pair.cohort_id_1, pair.cohort_id_2))
    return list(dict.fromkeys(ids))
