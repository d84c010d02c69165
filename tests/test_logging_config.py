"""
Structured logging tests: JSON lines, context propagation, idempotent setup.
"""
from __future__ import annotations

import io
import json
import logging

from json_field_mapper.exceptions import UnknownStepError
from json_field_mapper.logging_config import LogContext, configure_logging, get_logger


def lines(stream: io.StringIO):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestStructuredLogging:

    def test_json_line_with_context_and_extra(self) -> None:
        stream = io.StringIO()
        configure_logging(level="DEBUG", stream=stream)
        logger = get_logger("test")

        with LogContext.bind(run_id="r1", source_id="s1"):
            logger.info("hello %s", "world", extra={"event": "test.event", "items": 3})
        logger.info("outside")

        first, second = lines(stream)
        assert first["message"] == "hello world"
        assert first["logger"] == "json_field_mapper.test"
        assert (first["run_id"], first["source_id"], first["event"], first["items"]) == ("r1", "s1", "test.event", 3)
        assert "run_id" not in second

    def test_exception_fields(self) -> None:
        stream = io.StringIO()
        configure_logging(stream=stream)
        try:
            raise UnknownStepError("Unknown transformation type: x", "x")
        except UnknownStepError:
            get_logger("test").warning("failed", exc_info=True)

        record = lines(stream)[0]
        assert record["exc_type"] == "UnknownStepError"
        assert record["exc_code"] == "UNKNOWN_STEP"
        assert "Traceback" in record["traceback"]

    def test_configure_is_idempotent(self) -> None:
        configure_logging(stream=io.StringIO())
        configure_logging(stream=io.StringIO())
        assert len(logging.getLogger("json_field_mapper").handlers) == 1

    def test_bind_restores_previous_values(self) -> None:
        with LogContext.bind(step="outer"):
            with LogContext.bind(step="inner"):
                assert LogContext.get_all() == {"step": "inner"}
            assert LogContext.get_all() == {"step": "outer"}
        assert LogContext.get_all() == {}
