"""
Transformation pipeline tests: step semantics, ordering, failure isolation.
"""
from __future__ import annotations

import logging
from copy import deepcopy

import pytest

from json_field_mapper.config import Transformation
from json_field_mapper.exceptions import UnknownStepError
from json_field_mapper.pipeline import StepKind, apply_pipeline, apply_step


def step(type_: str, **config) -> Transformation:
    return Transformation(type=type_, config=config)


ARTICLES = [
    {"title": " b ", "score": 2.5, "tag": "x"},
    {"title": "a", "score": 10, "tag": "y"},
    {"title": "c", "score": None, "tag": "x"},
]


# =============================================================================
# Ordering
# =============================================================================

class TestStepOrder:

    def test_filter_then_limit(self) -> None:
        steps = [step("filter", operator="greater_than", value=2), step("limit", count=2)]
        assert apply_pipeline([1, 2, 3, 4, 5], steps) == [3, 4]

    def test_limit_then_filter(self) -> None:
        steps = [step("limit", count=2), step("filter", operator="greater_than", value=2)]
        assert apply_pipeline([1, 2, 3, 4, 5], steps) == []

    def test_empty_pipeline_is_identity(self) -> None:
        data = {"a": 1}
        assert apply_pipeline(data, []) == data


# =============================================================================
# Array steps
# =============================================================================

class TestArraySteps:

    def test_filter_by_field(self) -> None:
        result = apply_step(ARTICLES, step("filter", field="tag", operator="equals", value="x"))
        assert [r["title"] for r in result] == [" b ", "c"]

    def test_sort_desc_numbers_nulls_last(self) -> None:
        result = apply_step(ARTICLES, step("sort", field="score", order="desc"))
        assert [r["score"] for r in result] == [10, 2.5, None]

    def test_sort_is_stable(self) -> None:
        data = [{"k": 1, "i": 0}, {"k": 0, "i": 1}, {"k": 1, "i": 2}]
        result = apply_step(data, step("sort", field="k"))
        assert [r["i"] for r in result] == [1, 0, 2]

    def test_limit_default_and_alias(self) -> None:
        data = list(range(20))
        assert apply_step(data, step("limit")) == list(range(10))
        assert apply_step(data, step("limit", limit=3)) == [0, 1, 2]

    def test_unique_keeps_first_occurrence_in_order(self) -> None:
        data = [{"k": 1, "v": "a"}, {"k": 2, "v": "b"}, {"k": 1, "v": "c"}]
        assert apply_step(data, step("unique", field="k")) == [{"k": 1, "v": "a"}, {"k": 2, "v": "b"}]

    def test_unique_whole_items(self) -> None:
        assert apply_step([1, "1", 1, {"a": 1}, {"a": 1}], step("unique")) == [1, "1", {"a": 1}]

    def test_unique_treats_int_and_float_as_one_number(self) -> None:
        result = apply_step([1, 1.0, True, 2.0, 2], step("unique"))
        assert [type(v) for v in result] == [int, bool, float]
        assert result == [1, True, 2.0]

    def test_map_projects_fields(self) -> None:
        data = [{"user": {"name": "ann"}, "id": 1}]
        result = apply_step(data, step("map", fields={"author": "user.name", "meta.id": "id"}))
        assert result == [{"author": "ann", "meta": {"id": 1}}]

    @pytest.mark.parametrize("kind", ["filter", "sort", "limit", "unique", "map", "sum", "average"])
    def test_wrong_shape_passes_through(self, kind) -> None:
        data = {"not": "a list"}
        assert apply_step(data, step(kind, field="x", operator="exists")) == data


# =============================================================================
# Field and value steps
# =============================================================================

class TestFieldSteps:

    def test_add_remove_rename(self) -> None:
        steps = [
            step("add-field", field="meta.kind", value="post"),
            step("remove-field", field="tag"),
            step("rename-field", **{"from": "title", "to": "headline"}),
        ]
        result = apply_pipeline(ARTICLES[:1], steps)
        assert result == [{"headline": " b ", "score": 2.5, "meta": {"kind": "post"}}]

    def test_steps_do_not_mutate_input(self) -> None:
        original = deepcopy(ARTICLES)
        apply_pipeline(ARTICLES, [
            step("add-field", field="x", value=1),
            step("uppercase", field="title"),
            step("round", field="score"),
            step("rename-field", **{"from": "tag", "to": "label"}),
        ])
        assert ARTICLES == original

    def test_string_ops_on_field(self) -> None:
        result = apply_pipeline(ARTICLES, [step("trim", field="title"), step("uppercase", field="title")])
        assert [r["title"] for r in result] == ["B", "A", "C"]

    def test_capitalize_scalar(self) -> None:
        assert apply_step("hELLO", step("capitalize")) == "Hello"

    def test_numeric_ops(self) -> None:
        assert apply_step(2.5, step("round")) == 3
        assert apply_step(2.345, step("round", precision=2)) == 2.35
        assert apply_step([1.2, "x", 3.7], step("floor")) == [1, "x", 3]
        assert apply_step({"n": 1.1}, step("ceil", field="n")) == {"n": 2}

    def test_numeric_ops_coerce_numeric_strings(self) -> None:
        assert apply_step(["3.7", " 1.2 ", "abc", "", True], step("floor")) == [3, 1, "abc", "", True]
        assert apply_step({"n": "2.5"}, step("round", field="n")) == {"n": 3}
        assert apply_step("1.01", step("ceil")) == 2

    def test_numeric_ops_skip_non_numbers(self) -> None:
        result = apply_step(ARTICLES, step("round", field="score"))
        assert [r["score"] for r in result] == [3, 10, None]


class TestAggregations:

    def test_count(self) -> None:
        assert apply_step([1, 2, 3], step("count")) == {"count": 3}

    def test_sum_and_average(self) -> None:
        data = [{"n": 1}, {"n": "2"}, {"n": None}, {"n": 3}]
        assert apply_step(data, step("sum", field="n")) == {"sum": 6}
        assert apply_step(data, step("average", field="n")) == {"average": 1.5}

    def test_average_of_empty_list(self) -> None:
        assert apply_step([], step("average", field="n")) == {"average": 0}


# =============================================================================
# Failures
# =============================================================================

class TestFailures:

    def test_unknown_step_raises_from_apply_step(self) -> None:
        with pytest.raises(UnknownStepError) as exc_info:
            apply_step([1], step("explode"))
        assert exc_info.value.step_type == "explode"

    def test_unknown_step_is_logged_and_skipped(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="json_field_mapper"):
            result = apply_pipeline([3, 1, 2], [step("explode"), step("sort")])
        assert result == [1, 2, 3]
        failed = [r for r in caplog.records if getattr(r, "event", None) == "pipeline.step_failed"]
        assert len(failed) == 1
        assert failed[0].step_type == "explode"

    def test_raising_step_keeps_previous_value(self) -> None:
        # 'count' must be an integer; the limit step fails and is skipped
        result = apply_pipeline([1, 2, 3], [step("limit", count="many"), step("count")])
        assert result == {"count": 3}

    def test_ai_transform_without_throttler_passes_through(self) -> None:
        data = [{"text": "x"}]
        assert apply_step(data, Transformation(type="ai-transform", config={"prompt": "p"})) == data

    def test_every_step_kind_is_dispatched(self) -> None:
        for kind in StepKind:
            apply_step([{"a": 1}], step(kind.value, field="a"))
