"""Cohort definitions, sizes and team-project ownership.

Definitions and team-project associations live in the Atlas catalog;
membership lives in each source's results schema. Sizes are always counted
from membership rows, never read from the catalog.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import pandas as pd

from cohortstats.core.sources import SourceResolver, SourceRole, get_source_resolver
from cohortstats.core.validation import format_id_list, validate_id, validate_id_list

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CohortDefinition:
    id: int
    name: str
    description: str | None = None


@dataclass(frozen=True)
class CohortDefinitionStats:
    id: int
    name: str
    cohort_size: int


def get_cohort_definition_by_id(
    cohort_id: int, resolver: SourceResolver | None = None
) -> CohortDefinition | None:
    resolver = resolver or get_source_resolver()
    cohort_id = validate_id(cohort_id, "cohort_id")
    result = resolver.atlas_backend.execute_query(
        f"SELECT id, name, description FROM {resolver.atlas_table('cohort_definition')} "
        "WHERE id = ?",
        (cohort_id,),
    )
    if result.row_count == 0:
        return None
    row = result.dataframe.iloc[0]
    description = row["description"]
    return CohortDefinition(
        id=int(row["id"]),
        name=str(row["name"]),
        description=None if pd.isna(description) else str(description),
    )


def get_cohort_definition_by_name(
    name: str, resolver: SourceResolver | None = None
) -> CohortDefinition | None:
    """Definition with exactly this name; the lowest id wins if names repeat."""
    resolver = resolver or get_source_resolver()
    if not isinstance(name, str) or not name:
        raise ValueError("name must be a non-empty string")
    result = resolver.atlas_backend.execute_query(
        f"SELECT id FROM {resolver.atlas_table('cohort_definition')} "
        "WHERE name = ? ORDER BY id LIMIT 1",
        (name,),
    )
    if result.row_count == 0:
        return None
    return get_cohort_definition_by_id(int(result.dataframe["id"].iloc[0]), resolver)


def get_cohort_name(cohort_id: int, resolver: SourceResolver | None = None) -> str | None:
    definition = get_cohort_definition_by_id(cohort_id, resolver)
    return definition.name if definition else None


def get_all_cohort_definitions_and_stats(
    source_id: int, resolver: SourceResolver | None = None
) -> list[CohortDefinitionStats]:
    """Cohorts that have members in the source, largest first."""
    resolver = resolver or get_source_resolver()
    results = resolver.resolve(validate_id(source_id, "source_id"), SourceRole.RESULTS)

    sizes = results.backend.execute_query(
        f"SELECT cohort_definition_id AS id, COUNT(DISTINCT subject_id) AS cohort_size "
        f"FROM {results.table('cohort')} GROUP BY cohort_definition_id"
    ).dataframe
    definitions = resolver.atlas_backend.execute_query(
        f"SELECT id, name FROM {resolver.atlas_table('cohort_definition')}"
    ).dataframe

    merged = definitions.merge(sizes, on="id", how="inner").sort_values(
        ["cohort_size", "name"], ascending=[False, True], kind="stable"
    )
    return [
        CohortDefinitionStats(id=int(r.id), name=str(r.name), cohort_size=int(r.cohort_size))
        for r in merged.itertuples(index=False)
    ]


def resolve_owning_team_projects(
    cohort_ids: Iterable[int], resolver: SourceResolver | None = None
) -> list[str]:
    """Team projects associated with *every* given cohort.

    Returns an empty list when ``cohort_ids`` is empty or when no single
    team project owns all of them. The authorization layer then checks the
    user's access to at least one of the returned projects.
    """
    resolver = resolver or get_source_resolver()
    ids = sorted(set(validate_id_list(cohort_ids, "cohort_ids")))
    if not ids:
        return []

    result = resolver.atlas_backend.execute_query(
        f"SELECT sec_role_name "
        f"FROM {resolver.atlas_table('cohort_definition_sec_role')} "
        f"WHERE cohort_definition_id IN ({format_id_list(ids)}) "
        "GROUP BY sec_role_name "
        "HAVING COUNT(DISTINCT cohort_definition_id) = ? "
        "ORDER BY sec_role_name",
        (len(ids),),
    )
    team_projects = result.dataframe["sec_role_name"].astype(str).tolist()
    if not team_projects:
        logger.info(f"No team project is associated with all of cohorts {ids}")
    return team_projects


def retrieve_data_by_original_cohort_and_new_cohort(
    source_id: int,
    original_cohort_id: int,
    new_cohort_id: int,
    resolver: SourceResolver | None = None,
) -> pd.DataFrame:
    """Members of ``original_cohort_id`` relabelled as ``new_cohort_id``.

    One row per distinct person, ordered by ``person_id``; the frame has
    ``person_id`` and ``cohort_id`` columns, ready to be written as the
    membership of a derived cohort.
    """
    resolver = resolver or get_source_resolver()
    results = resolver.resolve(validate_id(source_id, "source_id"), SourceRole.RESULTS)
    original_cohort_id = validate_id(original_cohort_id, "original_cohort_id")
    new_cohort_id = validate_id(new_cohort_id, "new_cohort_id")

    df = results.backend.execute_query(
        f"SELECT DISTINCT subject_id AS person_id, {new_cohort_id} AS cohort_id "
        f"FROM {results.table('cohort')} "
        f"WHERE cohort_definition_id = {original_cohort_id} "
        "ORDER BY person_id"
    ).dataframe
    logger.debug(
        f"Cohort {original_cohort_id} has {len(df)} member(s) to copy as cohort {new_cohort_id}"
    )
    return df
