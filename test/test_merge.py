from decimal import Decimal

import pytest

from datajobs.modules.scheduler import merge
from datajobs.modules.scheduler.exceptions import MergeError, StepConfigurationError

A = [{"id": 1, "v": "a"}, {"id": 2, "v": "b"}]
B = [{"id": 2, "v": "b"}, {"id": 3, "v": "c"}]


def test_union_all_concatenates():
    result = merge.merge_tables([A, B], "union_all")
    assert result.row_count == 4
    assert result.rows == A + B


def test_union_drops_duplicates_keeping_first_occurrence():
    result = merge.merge_tables([A, B], "union")
    assert result.rows == [{"id": 1, "v": "a"}, {"id": 2, "v": "b"}, {"id": 3, "v": "c"}]
    assert result.columns == ["id", "v"]


def test_union_row_identity_depends_on_key_order():
    """Rows with the same values in a different column order are distinct."""
    result = merge.merge_tables([[{"id": 1, "v": "a"}], [{"v": "a", "id": 1}]], "union")
    assert result.row_count == 2


def test_union_all_three_tables():
    result = merge.merge_tables([A, B, [{"id": 9, "v": "z"}]], "union_all")
    assert result.row_count == 5


def test_inner_join():
    left = [{"id": 1, "name": "x"}, {"id": 2, "name": "y"}]
    right = [{"id": 1, "amt": 10}]
    result = merge.merge_tables([left, right], "inner_join", ["id"])
    assert result.rows == [{"id": 1, "name": "x", "amt": 10}]
    assert result.columns == ["id", "name", "amt"]


def test_left_join_pads_unmatched_rows():
    left = [{"id": 1, "name": "x"}, {"id": 2, "name": "y"}]
    right = [{"id": 1, "amt": 10}]
    result = merge.merge_tables([left, right], "left_join", ["id"])
    assert result.rows == [
        {"id": 1, "name": "x", "amt": 10},
        {"id": 2, "name": "y", "amt": None},
    ]


def test_join_right_values_win_on_shared_columns():
    left = [{"id": 1, "name": "left"}]
    right = [{"id": 1, "name": "right"}]
    result = merge.merge_tables([left, right], "inner_join", ["id"])
    assert result.rows == [{"id": 1, "name": "right"}]


def test_join_emits_one_row_per_match():
    left = [{"id": 1}]
    right = [{"id": 1, "n": 1}, {"id": 1, "n": 2}]
    result = merge.merge_tables([left, right], "inner_join", ["id"])
    assert [r["n"] for r in result.rows] == [1, 2]


def test_join_matches_on_string_form_of_keys():
    left = [{"id": 1, "region": "eu"}]
    right = [{"id": "1", "region": "eu", "amt": 5}]
    result = merge.merge_tables([left, right], "inner_join", ["id", "region"])
    assert result.rows == [{"id": "1", "region": "eu", "amt": 5}]


def test_join_uses_only_first_two_tables():
    extra = [{"id": 1, "other": True}]
    result = merge.merge_tables([[{"id": 1}], [{"id": 1, "amt": 3}], extra], "inner_join", ["id"])
    assert result.rows == [{"id": 1, "amt": 3}]


def test_join_requires_keys():
    with pytest.raises(MergeError, match="Join operations require join keys"):
        merge.merge_tables([A, B], "left_join", [])


def test_requires_two_tables():
    with pytest.raises(MergeError, match="at least 2 source tables"):
        merge.merge_tables([A], "union")


@pytest.mark.parametrize("tables", [[A, None], [A, []]])
def test_missing_or_empty_table(tables):
    with pytest.raises(MergeError, match="empty or not found"):
        merge.merge_tables(tables, "union")


def test_unknown_merge_type():
    with pytest.raises(MergeError, match="Unknown merge type: cross_join"):
        merge.merge_tables([A, B], "cross_join")


def test_merge_error_is_step_error():
    assert issubclass(MergeError, StepConfigurationError)


def test_empty_join_result_has_no_columns():
    result = merge.merge_tables([[{"id": 1}], [{"id": 2}]], "inner_join", ["id"])
    assert result.row_count == 0
    assert result.columns == []


def test_join_treats_integral_float_and_int_keys_as_equal():
    """An INT key on one backend matches a FLOAT or NUMERIC key on the other."""
    left = [{"id": 1, "name": "x"}, {"id": 2, "name": "y"}]
    right = [{"id": 1.0, "amt": 10}, {"id": Decimal("2.00"), "amt": 20}]
    result = merge.merge_tables([left, right], "inner_join", ["id"])
    assert [r["amt"] for r in result.rows] == [10, 20]


def test_union_dedupes_integral_float_and_int():
    result = merge.merge_tables([[{"id": 1, "v": 2.5}], [{"id": 1.0, "v": 2.5}]], "union")
    assert result.rows == [{"id": 1, "v": 2.5}]


def test_non_integral_values_stay_distinct():
    result = merge.merge_tables([[{"id": 1}], [{"id": 1.5}]], "union")
    assert result.row_count == 2
