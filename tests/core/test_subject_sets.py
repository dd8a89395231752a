"""Tests for cohort pair filtering and the subject-set query helpers.

Tests cover:
- Pair normalisation and degenerate pairs
- Order independence of the rendered SQL
- Set results against the shared fixture warehouse
- Alias uniqueness
"""

import itertools

import pytest
from conftest import (
    COHORT_A,
    COHORT_A_OR_B,
    COHORT_B,
    COHORT_C,
    EMPTY_COHORT,
    EVERYONE,
    subject_ids,
)

from cohortstats.core.subject_sets import (
    PairDefinition,
    PairFilterMode,
    QueryAliases,
    SubjectSetQuery,
    build_pair_filter,
    cohort_members,
    unique_cohort_ids,
)


class TestPairDefinition:
    """Test PairDefinition validation and normalisation."""

    def test_normalized_is_order_free(self):
        assert PairDefinition(8, 3).normalized() == (3, 8)
        assert PairDefinition(3, 8).normalized() == (3, 8)

    def test_degenerate_pair(self):
        assert PairDefinition(5, 5).is_degenerate
        assert not PairDefinition(5, 6).is_degenerate

    def test_provided_name_defaults_to_empty(self):
        assert PairDefinition(1, 2).provided_name == ""

    @pytest.mark.parametrize("bad", ["1", 1.0, None, True])
    def test_rejects_non_integer_ids(self, bad):
        with pytest.raises(ValueError, match="cohort_id_1"):
            PairDefinition(bad, 2)


class TestQueryAliases:
    """Test alias generation."""

    def test_aliases_are_unique_per_prefix(self):
        aliases = QueryAliases()
        issued = [aliases.new("observation") for _ in range(5)]

        assert issued == [f"observation_{i}" for i in range(5)]

    def test_issued_tracks_every_alias(self):
        aliases = QueryAliases()
        aliases.new("pair")
        aliases.new("pair_overlap")
        aliases.new("pair")

        assert aliases.issued == {"pair_0", "pair_overlap_0", "pair_1"}

    def test_separate_registries_restart(self):
        assert QueryAliases().new("x") == QueryAliases().new("x")


class TestSubjectSetQuery:
    def test_count_sql_wraps_fragment(self):
        query = SubjectSetQuery("SELECT 1 AS subject_id")
        assert query.count_sql() == (
            "SELECT COUNT(*) AS subject_count FROM (SELECT 1 AS subject_id) AS counted_subjects"
        )

    def test_params_default_to_empty(self):
        assert SubjectSetQuery("SELECT 1").params == ()


class TestBuildPairFilterSql:
    """Test the SQL rendered by build_pair_filter."""

    def test_no_pairs_returns_population(self, results):
        query = build_pair_filter(results, [], EVERYONE)

        assert query == cohort_members(results, EVERYONE)
        assert "INTERSECT" not in query.sql

    def test_none_pairs_returns_population(self, results):
        assert build_pair_filter(results, None, EVERYONE) == cohort_members(
            results, EVERYONE
        )

    def test_permutations_render_identical_sql(self, results):
        pairs = [PairDefinition(1, 2), PairDefinition(6, 1), PairDefinition(3, 4)]
        rendered = {
            build_pair_filter(results, list(perm), EVERYONE).sql
            for perm in itertools.permutations(pairs)
        }

        assert len(rendered) == 1

    def test_swapped_cohorts_render_identical_sql(self, results):
        forward = build_pair_filter(results, [PairDefinition(1, 2)], EVERYONE)
        backward = build_pair_filter(results, [PairDefinition(2, 1)], EVERYONE)

        assert forward.sql == backward.sql

    def test_duplicate_pairs_are_rendered_once(self, results):
        once = build_pair_filter(results, [PairDefinition(1, 2)], EVERYONE)
        twice = build_pair_filter(
            results, [PairDefinition(1, 2), PairDefinition(2, 1, "again")], EVERYONE
        )

        assert once.sql == twice.sql

    def test_aliases_are_drawn_from_shared_registry(self, results):
        aliases = QueryAliases()
        first = build_pair_filter(results, [PairDefinition(1, 2)], EVERYONE, aliases=aliases)
        second = build_pair_filter(results, [PairDefinition(1, 2)], COHORT_A, aliases=aliases)

        assert "population_0" in first.sql
        assert "population_1" in second.sql
        assert "pair_0" in first.sql and "pair_1" in second.sql

    def test_mode_accepts_wire_name(self, results):
        query = build_pair_filter(
            results, [PairDefinition(1, 2)], EVERYONE, mode="unionAndIntersect"
        )
        assert "EXCEPT" in query.sql

    def test_unknown_mode_rejected(self, results):
        with pytest.raises(ValueError):
            build_pair_filter(results, [PairDefinition(1, 2)], EVERYONE, mode="unionOnly")

    def test_non_integer_population_rejected(self, results):
        with pytest.raises(ValueError, match="cohort_id"):
            build_pair_filter(results, [], "4; DROP TABLE cohort")

    def test_mode_enum_value(self):
        assert PairFilterMode.UNION_AND_INTERSECT.value == "unionAndIntersect"


class TestBuildPairFilterResults:
    """Test build_pair_filter against the fixture warehouse."""

    def test_identity_without_pairs(self, results):
        assert subject_ids(results, build_pair_filter(results, [], EVERYONE)) == set(
            range(1, 11)
        )

    def test_single_pair_keeps_exactly_one_side(self, results):
        # A = 1-5, B = 4-8: subjects in exactly one of them
        query = build_pair_filter(results, [PairDefinition(COHORT_A, COHORT_B)], COHORT_A_OR_B)

        assert subject_ids(results, query) == {1, 2, 3, 6, 7, 8}

    def test_population_bounds_the_result(self, results):
        query = build_pair_filter(results, [PairDefinition(COHORT_A, COHORT_B)], COHORT_C)

        assert subject_ids(results, query) == {1, 2}

    def test_multiple_pairs_intersect(self, results):
        pairs = [PairDefinition(COHORT_A, COHORT_B), PairDefinition(COHORT_A, COHORT_C)]
        query = build_pair_filter(results, pairs, EVERYONE)

        # {1,2,3,6,7,8} & {3,4,5,9}
        assert subject_ids(results, query) == {3}

    def test_permutation_gives_same_subjects(self, results):
        pairs = [PairDefinition(COHORT_C, COHORT_A), PairDefinition(COHORT_B, COHORT_A)]
        query = build_pair_filter(results, pairs, EVERYONE)

        assert subject_ids(results, query) == {3}

    def test_degenerate_pair_empties_result(self, results):
        query = build_pair_filter(results, [PairDefinition(COHORT_A, COHORT_A)], EVERYONE)

        assert subject_ids(results, query) == set()

    def test_degenerate_pair_among_others_empties_result(self, results):
        pairs = [PairDefinition(COHORT_A, COHORT_B), PairDefinition(COHORT_B, COHORT_B)]
        query = build_pair_filter(results, pairs, EVERYONE)

        assert subject_ids(results, query) == set()

    def test_empty_population(self, results):
        query = build_pair_filter(results, [PairDefinition(COHORT_A, COHORT_B)], EMPTY_COHORT)

        assert subject_ids(results, query) == set()

    def test_count_sql_counts_distinct_subjects(self, results):
        query = build_pair_filter(results, [PairDefinition(COHORT_A, COHORT_B)], COHORT_A_OR_B)
        count = results.backend.execute_query(query.count_sql(), query.params).scalar()

        assert int(count) == 6


class TestUniqueCohortIds:
    def test_population_first_then_pairs_deduplicated(self):
        pairs = [PairDefinition(1, 2), PairDefinition(2, 6), PairDefinition(3, 1)]

        assert unique_cohort_ids(3, pairs) == [3, 1, 2, 6]

    def test_no_pairs(self):
        assert unique_cohort_ids(7, None) == [7]
