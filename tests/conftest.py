"""Shared fixtures: a small OMOP warehouse and Atlas catalog in DuckDB.

Cohorts (results.cohort):
    1 "Cohort A"      subjects 1-5
    2 "Cohort B"      subjects 4-8   (shares 4 and 5 with A)
    3 "A or B"        subjects 1-8
    4 "Everyone"      subjects 1-10
    5 "Empty cohort"  no members
    6 "Cohort C"      subjects 1, 2, 9

HARE (coded) values:
    ASN: 1, 2, 6    EUR: 3, 4, 6, 7    AFR: 5, 10
    subject 6 holds two values, 8 has NULL, 9 has 0

BMI (numeric): subjects 1-8 (subject 1 twice), subject 9 NULL, 10 none.
Smoking notes (string): subjects 1, 2; subject 3 NULL.
"""

import duckdb
import pytest

from cohortstats.core.backends import DuckDBBackend, reset_backend_cache
from cohortstats.core.sources import SourceResolver, SourceRole, reset_source_resolver
from cohortstats.core.subject_sets import SubjectSetQuery

SOURCE_ID = 1
REMOTE_SOURCE_ID = 2

HARE = 1001
BMI = 1002
SMOKING_NOTES = 1003
UNOBSERVED_LAB = 1004
BAD_TYPE = 1005
ASN = 1101
EUR = 1102
AFR = 1103

COHORT_A = 1
COHORT_B = 2
COHORT_A_OR_B = 3
EVERYONE = 4
EMPTY_COHORT = 5
COHORT_C = 6

TEAM_PROJECT_1 = "/gwas_projects/project1"
TEAM_PROJECT_2 = "/gwas_projects/project2"

COHORT_MEMBERS = {
    COHORT_A: [1, 2, 3, 4, 5],
    COHORT_B: [4, 5, 6, 7, 8],
    COHORT_A_OR_B: [1, 2, 3, 4, 5, 6, 7, 8],
    EVERYONE: list(range(1, 11)),
    COHORT_C: [1, 2, 9],
}

# (person_id, concept_id, value_as_number, value_as_string, value_as_concept_id)
OBSERVATIONS = [
    (1, HARE, None, None, ASN),
    (2, HARE, None, None, ASN),
    (3, HARE, None, None, EUR),
    (4, HARE, None, None, EUR),
    (5, HARE, None, None, AFR),
    (6, HARE, None, None, ASN),
    (6, HARE, None, None, EUR),
    (7, HARE, None, None, EUR),
    (8, HARE, None, None, None),
    (9, HARE, None, None, 0),
    (10, HARE, None, None, AFR),
    (1, BMI, 20.0, None, None),
    (1, BMI, 21.0, None, None),
    (2, BMI, 22.5, None, None),
    (3, BMI, 25.0, None, None),
    (4, BMI, 27.5, None, None),
    (5, BMI, 30.0, None, None),
    (6, BMI, 32.5, None, None),
    (7, BMI, 35.0, None, None),
    (8, BMI, 37.5, None, None),
    (9, BMI, None, None, None),
    (1, SMOKING_NOTES, None, "never", None),
    (2, SMOKING_NOTES, None, "former", None),
    (3, SMOKING_NOTES, None, None, None),
]

CONCEPTS = [
    (HARE, "HARE", "Observation", "MVP Discrete"),
    (BMI, "BMI", "Observation", "MVP Continuous"),
    (SMOKING_NOTES, "Smoking notes", "Observation", "MVP Text"),
    (UNOBSERVED_LAB, "Unobserved lab", "Measurement", "MVP Continuous"),
    (BAD_TYPE, "Free-form thing", "Observation", "Invalid Class"),
    (ASN, "ASN", "Observation", "Answer"),
    (EUR, "EUR", "Observation", "Answer"),
    (AFR, "AFR", "Observation", "Answer"),
]

COHORT_DEFINITIONS = [
    (COHORT_A, "Cohort A", "first half"),
    (COHORT_B, "Cohort B", "second half"),
    (COHORT_A_OR_B, "A or B", None),
    (EVERYONE, "Everyone", None),
    (EMPTY_COHORT, "Empty cohort", None),
    (COHORT_C, "Cohort C", None),
]

TEAM_PROJECTS = [
    (COHORT_A, TEAM_PROJECT_1),
    (COHORT_A, TEAM_PROJECT_2),
    (COHORT_B, TEAM_PROJECT_1),
    (COHORT_A_OR_B, TEAM_PROJECT_1),
    (COHORT_A_OR_B, TEAM_PROJECT_2),
    (EVERYONE, TEAM_PROJECT_2),
]


def _build_warehouse(path: str) -> None:
    con = duckdb.connect(path)
    try:
        con.execute("CREATE SCHEMA omop")
        con.execute("CREATE SCHEMA results")
        con.execute("""
            CREATE TABLE omop.domain (domain_id VARCHAR, domain_name VARCHAR)
        """)
        con.execute("""
            INSERT INTO omop.domain VALUES
                ('Observation', 'Observation'),
                ('Measurement', 'Measurement')
        """)
        con.execute("""
            CREATE TABLE omop.concept (
                concept_id INTEGER PRIMARY KEY,
                concept_name VARCHAR,
                domain_id VARCHAR,
                concept_class_id VARCHAR
            )
        """)
        con.executemany("INSERT INTO omop.concept VALUES (?, ?, ?, ?)", CONCEPTS)
        con.execute("""
            CREATE TABLE omop.observation (
                observation_id INTEGER,
                person_id INTEGER,
                observation_concept_id INTEGER,
                value_as_number DOUBLE,
                value_as_string VARCHAR,
                value_as_concept_id INTEGER
            )
        """)
        con.executemany(
            "INSERT INTO omop.observation VALUES (?, ?, ?, ?, ?, ?)",
            [(i, *row) for i, row in enumerate(OBSERVATIONS, start=1)],
        )
        con.execute("""
            CREATE TABLE results.cohort (
                cohort_definition_id INTEGER,
                subject_id INTEGER,
                cohort_start_date DATE,
                cohort_end_date DATE
            )
        """)
        con.executemany(
            "INSERT INTO results.cohort VALUES (?, ?, DATE '2020-01-01', DATE '2021-01-01')",
            [
                (cohort_id, subject_id)
                for cohort_id, members in COHORT_MEMBERS.items()
                for subject_id in members
            ],
        )
    finally:
        con.close()


def _build_atlas(path: str, warehouse_path: str) -> None:
    con = duckdb.connect(path)
    try:
        con.execute("CREATE SCHEMA atlas")
        con.execute("""
            CREATE TABLE atlas.source (
                source_id INTEGER,
                source_name VARCHAR,
                source_connection VARCHAR,
                source_dialect VARCHAR,
                username VARCHAR,
                password VARCHAR
            )
        """)
        con.execute(
            "INSERT INTO atlas.source VALUES (?, 'Test source', ?, 'duckdb', NULL, NULL)",
            [SOURCE_ID, warehouse_path],
        )
        con.execute(
            "INSERT INTO atlas.source VALUES "
            "(?, 'Remote source', 'postgresql://warehouse/cdm', 'postgresql', 'u', 'p')",
            [REMOTE_SOURCE_ID],
        )
        con.execute("""
            CREATE TABLE atlas.source_daimon (
                source_daimon_id INTEGER,
                source_id INTEGER,
                daimon_type INTEGER,
                table_qualifier VARCHAR,
                priority INTEGER
            )
        """)
        con.execute(f"""
            INSERT INTO atlas.source_daimon VALUES
                (1, {SOURCE_ID}, {int(SourceRole.OMOP)}, 'omop', 1),
                (2, {SOURCE_ID}, {int(SourceRole.RESULTS)}, 'results', 1),
                (3, {REMOTE_SOURCE_ID}, {int(SourceRole.OMOP)}, 'cdm', 1)
        """)
        con.execute("""
            CREATE TABLE atlas.cohort_definition (
                id INTEGER, name VARCHAR, description VARCHAR
            )
        """)
        con.executemany(
            "INSERT INTO atlas.cohort_definition VALUES (?, ?, ?)", COHORT_DEFINITIONS
        )
        con.execute("""
            CREATE TABLE atlas.cohort_definition_sec_role (
                cohort_definition_id INTEGER, sec_role_name VARCHAR
            )
        """)
        con.executemany(
            "INSERT INTO atlas.cohort_definition_sec_role VALUES (?, ?)", TEAM_PROJECTS
        )
    finally:
        con.close()


@pytest.fixture(scope="session")
def warehouse_paths(tmp_path_factory):
    """Paths of the (atlas, warehouse) DuckDB files, built once per session."""
    root = tmp_path_factory.mktemp("cohortstats")
    warehouse_path = str(root / "warehouse.duckdb")
    atlas_path = str(root / "catalog.duckdb")
    _build_warehouse(warehouse_path)
    _build_atlas(atlas_path, warehouse_path)
    return atlas_path, warehouse_path


@pytest.fixture
def resolver(warehouse_paths):
    atlas_path, _ = warehouse_paths
    return SourceResolver(
        atlas_backend=DuckDBBackend(atlas_path, query_timeout=30), atlas_schema="atlas"
    )


@pytest.fixture
def omop(resolver):
    return resolver.resolve(SOURCE_ID, SourceRole.OMOP)


@pytest.fixture
def results(resolver):
    return resolver.resolve(SOURCE_ID, SourceRole.RESULTS)


@pytest.fixture
def configured_env(warehouse_paths, monkeypatch):
    """Point configuration at the test Atlas and start from empty caches."""
    atlas_path, _ = warehouse_paths
    monkeypatch.setenv("COHORTSTATS_ATLAS_DB", atlas_path)
    monkeypatch.setenv("COHORTSTATS_ATLAS_SCHEMA", "atlas")
    monkeypatch.setenv("COHORTSTATS_QUERY_TIMEOUT", "30")
    reset_backend_cache()
    reset_source_resolver()
    yield atlas_path
    reset_backend_cache()
    reset_source_resolver()


def subject_ids(handle, query: SubjectSetQuery) -> set[int]:
    """Execute a subject-set query and return its ids, asserting set semantics."""
    df = handle.backend.execute_query(query.sql, query.params).dataframe
    ids = [int(v) for v in df["subject_id"]]
    assert len(ids) == len(set(ids)), f"duplicate subject ids in {sorted(ids)}"
    return set(ids)
