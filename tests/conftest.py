"""
Pytest configuration and fixtures for the mapping engine tests.

Provides config factories, a scripted external transform call and a sleep
recorder so throttling can be checked without waiting.
"""
from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from json_field_mapper.config import MappingConfig, load_mapping_config
from json_field_mapper.logging_config import LogContext, reset_logging


# =============================================================================
# Factory Helpers
# =============================================================================

def make_config(
    sources: List[Dict[str, Any]],
    field_mappings: List[Dict[str, Any]],
    merge_mode: Optional[str] = None,
    **extra: Any,
) -> MappingConfig:
    """Build a MappingConfig from wire-format pieces."""
    selection: Dict[str, Any] = {"sources": sources}
    if merge_mode is not None:
        selection["mergeMode"] = merge_mode
    selection.update(extra.pop("selection", {}))
    raw = {"sourceSelection": selection, "fieldMappings": field_mappings}
    raw.update(extra)
    return load_mapping_config(raw)


class FakeTransform:
    """Records prompts and answers with a fixed reply (or a function of the prompt)."""

    def __init__(self, reply: Any = '{"summary": "ok"}', fail_on: Optional[str] = None):
        self.reply = reply
        self.fail_on = fail_on
        self.prompts: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, prompt: str, system_prompt: str, output_format: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            self.prompts.append(prompt)
        if self.fail_on is not None and self.fail_on in prompt:
            raise RuntimeError("upstream unavailable")
        text = self.reply(prompt) if callable(self.reply) else self.reply
        return {"response": text}

    def values_sent(self) -> List[Any]:
        """Decode the ``Value: ...`` line of every prompt sent so far."""
        values = []
        for prompt in self.prompts:
            first_line = prompt.split("\n\n", 1)[0]
            values.append(json.loads(first_line[len("Value: "):]))
        return values


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_logging():
    LogContext.clear()
    yield
    reset_logging()
    LogContext.clear()


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_transform() -> FakeTransform:
    return FakeTransform()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def two_source_payloads() -> Dict[str, Any]:
    """Source A has 2 articles with 'headline'; source B has 3 posts with 'name'."""
    return {
        "A": {"articles": [
            {"headline": "A0", "date": "2024-01-03T00:00:00Z"},
            {"headline": "A1", "date": "2024-01-01T00:00:00Z"},
        ]},
        "B": {"posts": [
            {"name": "B0", "date": "2024-01-04T00:00:00Z"},
            {"name": "B1", "date": "not a date"},
            {"name": "B2", "date": "2024-01-02T00:00:00Z"},
        ]},
    }


@pytest.fixture
def two_sources() -> List[Dict[str, Any]]:
    return [
        {"id": "A", "name": "Alpha News", "type": "api", "category": "news", "primaryPath": "articles"},
        {"id": "B", "name": "Beta Blog", "type": "rss", "primaryPath": "posts"},
    ]


@pytest.fixture
def two_source_mappings() -> List[Dict[str, Any]]:
    return [
        {"targetPath": "title", "sourcePath": "articles[*].headline", "sourceId": "A"},
        {"targetPath": "title", "sourcePath": "name", "sourceId": "B"},
        {"targetPath": "published", "sourcePath": "date"},
        {"targetPath": "origin", "sourcePath": "_source.name"},
    ]
