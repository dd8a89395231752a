"""Tests for id validation ahead of SQL interpolation."""

import pytest

from cohortstats.core.validation import format_id_list, validate_id, validate_id_list


class TestValidateId:
    def test_accepts_int(self):
        assert validate_id(42) == 42
        assert validate_id(-1) == -1

    @pytest.mark.parametrize("bad", ["42", 4.2, None, True, False])
    def test_rejects_non_int(self, bad):
        with pytest.raises(ValueError, match="cohort_id must be an integer"):
            validate_id(bad, "cohort_id")


class TestValidateIdList:
    def test_none_is_empty(self):
        assert validate_id_list(None) == []

    def test_accepts_any_iterable(self):
        assert validate_id_list((3, 1, 2)) == [3, 1, 2]
        assert validate_id_list(iter([5])) == [5]

    def test_rejects_string(self):
        with pytest.raises(ValueError, match="got a string"):
            validate_id_list("123", "concept_ids")

    def test_rejects_bad_member(self):
        with pytest.raises(ValueError, match="each of concept_ids"):
            validate_id_list([1, "2; DROP TABLE concept"], "concept_ids")


def test_format_id_list():
    assert format_id_list([1, 22, 333]) == "1, 22, 333"
    assert format_id_list([]) == ""
