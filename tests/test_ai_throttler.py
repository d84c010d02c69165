"""
AI throttler tests: batching, caps, reply parsing and failure isolation.

The external call is a scripted fake and sleep is recorded, never real.
"""
from __future__ import annotations

import json

import pytest

from conftest import FakeTransform
from json_field_mapper.ai_throttler import AIThrottler, BatchSettings, parse_reply, unwrap_reply
from json_field_mapper.config import Transformation
from json_field_mapper.exceptions import AITransformError


def ai_step(source_field=None, **config) -> Transformation:
    return Transformation(type="ai-transform", config=config, source_field=source_field)


def echo_upper(prompt: str) -> str:
    value = json.loads(prompt.split("\n\n", 1)[0][len("Value: "):])
    return json.dumps({"result": str(value).upper()})


# =============================================================================
# Batching
# =============================================================================

class TestBatching:

    def test_max_items_caps_external_calls(self, sleep_recorder) -> None:
        fake = FakeTransform(reply=echo_upper)
        throttler = AIThrottler(fake, sleep=sleep_recorder)
        items = [{"text": f"t{i}"} for i in range(5)]

        result = throttler.apply(items, ai_step("text", maxItems=2))

        assert len(fake.prompts) == 2
        assert sorted(fake.values_sent()) == ["t0", "t1"]
        assert [r["text"] for r in result] == ["T0", "T1", "t2", "t3", "t4"]
        assert result[2:] == items[2:]

    def test_sleeps_only_between_batches(self, sleep_recorder) -> None:
        throttler = AIThrottler(FakeTransform(reply=echo_upper), sleep=sleep_recorder)
        items = [f"v{i}" for i in range(7)]

        result = throttler.apply(items, ai_step(batchSize=3, batchDelayMs=500))

        assert sleep_recorder.calls == [0.5, 0.5]
        assert result == [f"V{i}" for i in range(7)]

    def test_single_batch_never_sleeps(self, sleep_recorder) -> None:
        throttler = AIThrottler(FakeTransform(reply=echo_upper), sleep=sleep_recorder)
        throttler.apply(["a", "b"], ai_step())
        assert sleep_recorder.calls == []

    def test_batch_defaults(self) -> None:
        settings = BatchSettings.from_config({})
        assert (settings.batch_size, settings.batch_delay_ms, settings.max_items) == (5, 2000, 50)
        assert BatchSettings.from_config({"batchDelay": 10}).batch_delay_ms == 10


# =============================================================================
# Addressing
# =============================================================================

class TestSourceField:

    def test_wildcard_path_writes_back_on_a_copy(self, sleep_recorder) -> None:
        throttler = AIThrottler(FakeTransform(reply=echo_upper), sleep=sleep_recorder)
        data = {"feed": {"items": [{"body": "x"}, {"body": "y"}]}, "other": 1}

        result = throttler.apply(data, ai_step("feed.items[*].body"))

        assert result == {"feed": {"items": [{"body": "X"}, {"body": "Y"}]}, "other": 1}
        assert data["feed"]["items"][0]["body"] == "x"

    def test_wildcard_on_non_array_passes_through(self, fake_transform, sleep_recorder) -> None:
        throttler = AIThrottler(fake_transform, sleep=sleep_recorder)
        data = {"feed": {"items": "nope"}}
        assert throttler.apply(data, ai_step("feed.items[*].body")) == data
        assert fake_transform.prompts == []

    def test_whole_value_is_one_call(self, sleep_recorder) -> None:
        fake = FakeTransform(reply='```json\n{"summary": "two items"}\n```')
        throttler = AIThrottler(fake, sleep=sleep_recorder)

        result = throttler.apply({"a": 1, "b": 2}, ai_step(prompt="Summarise"))

        assert result == "two items"
        assert len(fake.prompts) == 1
        assert fake.prompts[0].startswith("Input data:")
        assert fake.prompts[0].endswith("Task: Summarise")

    def test_items_without_the_field_are_not_sent(self, fake_transform, sleep_recorder) -> None:
        throttler = AIThrottler(fake_transform, sleep=sleep_recorder)
        items = [{"text": "a"}, {"other": 1}]
        result = throttler.apply(items, ai_step("text"))
        assert len(fake_transform.prompts) == 1
        assert result[1] == {"other": 1}

    def test_json_output_format_is_requested_in_prompt(self, fake_transform, sleep_recorder) -> None:
        throttler = AIThrottler(fake_transform, sleep=sleep_recorder)
        throttler.apply(["a"], ai_step(prompt="Tag it", outputFormat="json"))
        assert fake_transform.prompts[0] == 'Value: "a"\n\nTask: Tag it\n\nRespond with valid JSON only.'


# =============================================================================
# Failures
# =============================================================================

class TestFailures:

    def test_failed_call_returns_item_unchanged(self, sleep_recorder) -> None:
        fake = FakeTransform(reply=echo_upper, fail_on='"bad"')
        throttler = AIThrottler(fake, sleep=sleep_recorder)
        items = [{"text": "good"}, {"text": "bad"}, {"text": "fine"}]

        result = throttler.apply(items, ai_step("text"))

        assert [r["text"] for r in result] == ["GOOD", "bad", "FINE"]

    def test_error_reply_returns_item_unchanged(self, sleep_recorder) -> None:
        throttler = AIThrottler(lambda p, s, f: {"error": "quota"}, sleep=sleep_recorder)
        assert throttler.apply(["a"], ai_step()) == ["a"]

    def test_bad_fenced_json_returns_item_unchanged(self, sleep_recorder) -> None:
        throttler = AIThrottler(FakeTransform(reply="```json\nnot json\n```"), sleep=sleep_recorder)
        assert throttler.apply([{"t": "a"}], ai_step("t")) == [{"t": "a"}]

    def test_whole_value_failure_returns_data(self, sleep_recorder) -> None:
        throttler = AIThrottler(FakeTransform(fail_on="Input"), sleep=sleep_recorder)
        assert throttler.apply({"a": 1}, ai_step()) == {"a": 1}

    @pytest.mark.parametrize("config", [
        {"batchSize": "five"},
        {"batchDelayMs": "soon"},
        {"maxItems": {"n": 1}},
        {"batchSize": "nan"},
    ])
    def test_non_numeric_batch_settings_fall_back_to_defaults(self, config, sleep_recorder) -> None:
        throttler = AIThrottler(FakeTransform(reply=echo_upper), sleep=sleep_recorder)
        assert throttler.apply([{"t": "a"}], ai_step("t", **config)) == [{"t": "A"}]

    def test_numeric_strings_are_accepted_as_batch_settings(self) -> None:
        settings = BatchSettings.from_config({"batchSize": "2", "batchDelayMs": "10.0", "maxItems": True})
        assert (settings.batch_size, settings.batch_delay_ms, settings.max_items) == (2, 10, 50)


class TestReplyParsing:

    @pytest.mark.parametrize("text,expected", [
        ('{"only": 5}', 5),
        ('{"x": 1, "summary": "s", "result": "r"}', "s"),
        ('{"x": 1, "value": "v"}', "v"),
        ('{"x": 1, "y": 2}', {"x": 1, "y": 2}),
        ("```\n[1, 2]\n```", [1, 2]),
        ("plain answer", "plain answer"),
    ])
    def test_parse_reply(self, text, expected) -> None:
        assert parse_reply(text) == expected

    def test_plain_text_rejected_when_json_requested(self) -> None:
        with pytest.raises(AITransformError):
            parse_reply("sure, here you go", "json")

    def test_unwrap_non_object(self) -> None:
        assert unwrap_reply([1]) == [1]
