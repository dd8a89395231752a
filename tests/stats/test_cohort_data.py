from conftest import BMI, COHORT_A, SMOKING_NOTES, SOURCE_ID

from cohortstats.stats.cohort_data import COHORT_DATA_COLUMNS, retrieve_cohort_data


class TestRetrieveCohortData:
    """Test the per-person observation export."""

    def test_long_format_ordered_by_person(self, resolver):
        df = retrieve_cohort_data(SOURCE_ID, COHORT_A, [SMOKING_NOTES, BMI], resolver)

        assert list(df.columns) == COHORT_DATA_COLUMNS
        assert len(df) == 9
        assert df["person_id"].is_monotonic_increasing
        assert set(df["person_id"]) == {1, 2, 3, 4, 5}

    def test_values_kept_per_type(self, resolver):
        df = retrieve_cohort_data(SOURCE_ID, COHORT_A, [SMOKING_NOTES], resolver)

        assert df["value_as_string"].tolist()[:2] == ["never", "former"]
        assert df["value_as_string"].isna().tolist() == [False, False, True]

    def test_no_concepts(self, resolver):
        df = retrieve_cohort_data(SOURCE_ID, COHORT_A, [], resolver)

        assert df.empty
        assert list(df.columns) == COHORT_DATA_COLUMNS
