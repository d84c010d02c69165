"""Batched, rate-limited ai-transform step.

Items are sent to the external transform call in fixed-size batches: batches
run one after another with a fixed pause between them, items inside a batch
run concurrently. Only the first ``maxItems`` items are sent; the rest are
appended back unchanged. Every failure degrades to the original item.
"""
from __future__ import annotations

import contextvars
import json
import math
import re
import time
from concurrent.futures import ThreadPoolExecutor
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .accessors import get_value_by_path, set_value_by_path
from .conditions import to_number
from .config import Transformation
from .exceptions import AITransformError
from .external import TransformCall
from .logging_config import get_logger
from .settings import DEFAULT_SYSTEM_PROMPT

logger = get_logger("ai_throttler")

_FENCE_RE = re.compile(r'^```(?:json)?\s*\n?(.*?)\n?```$', re.DOTALL | re.IGNORECASE)

# Keys checked, in order, when a reply object has more than one key.
_WELL_KNOWN_KEYS = ("summary", "result", "value")


def _setting_int(name: str, value: Any, default: int) -> int:
    if value is None:
        return default
    number = None if isinstance(value, bool) else to_number(value)
    if number is None or not math.isfinite(number):
        logger.warning(
            "Ignoring non-numeric %s %r; using %d",
            name,
            value,
            default,
            extra={"event": "ai.bad_setting", "setting": name},
        )
        return default
    return int(number)


@dataclass(frozen=True)
class BatchSettings:
    batch_size: int = 5
    batch_delay_ms: int = 2000
    max_items: int = 50
    prompt: str = "Transform this value"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    output_format: Optional[str] = None

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "BatchSettings":
        delay = cfg.get("batchDelayMs", cfg.get("batchDelay"))
        return cls(
            batch_size=max(1, _setting_int("batchSize", cfg.get("batchSize") or None, cls.batch_size)),
            batch_delay_ms=max(0, _setting_int("batchDelayMs", delay, cls.batch_delay_ms)),
            max_items=max(0, _setting_int("maxItems", cfg.get("maxItems"), cls.max_items)),
            prompt=cfg.get("prompt") or cls.prompt,
            system_prompt=cfg.get("systemPrompt") or cls.system_prompt,
            output_format=cfg.get("outputFormat"),
        )


def unwrap_reply(parsed: Any) -> Any:
    """Pull the useful value out of a parsed reply object."""
    if not isinstance(parsed, dict):
        return parsed
    if len(parsed) == 1:
        return next(iter(parsed.values()))
    for key in _WELL_KNOWN_KEYS:
        if key in parsed:
            return parsed[key]
    return parsed


def parse_reply(text: str, output_format: Optional[str] = None) -> Any:
    """Decode the text of an external reply.

    Fenced code blocks must contain JSON. Unfenced text is used as JSON when it
    parses and as plain text otherwise, unless JSON output was requested.
    """
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        try:
            return unwrap_reply(json.loads(fenced.group(1).strip()))
        except ValueError as exc:
            raise AITransformError("Fenced reply is not valid JSON", text) from exc
    try:
        return unwrap_reply(json.loads(stripped))
    except ValueError as exc:
        if output_format == "json":
            raise AITransformError("Reply is not valid JSON", text) from exc
        return stripped


class AIThrottler:
    def __init__(self, transform_call: TransformCall, *, sleep: Callable[[float], None] = time.sleep):
        self._transform_call = transform_call
        self._sleep = sleep

    def apply(self, data: Any, step: Transformation) -> Any:
        source_field = step.source_field or ""
        try:
            settings = BatchSettings.from_config(step.config)
            if "[*]" in source_field:
                array_path, _, field = source_field.partition("[*]")
                field = field.lstrip(".")
                items = get_value_by_path(data, array_path) if array_path else data
                if not isinstance(items, list):
                    logger.warning(
                        "Expected an array at %r for ai-transform",
                        array_path or "(root)",
                        extra={"event": "ai.not_array", "source_field": source_field},
                    )
                    return data
                transformed = self.process_items(items, field, settings)
                if not array_path:
                    return transformed
                result = deepcopy(data)
                return set_value_by_path(result, array_path, transformed)

            if isinstance(data, list):
                return self.process_items(data, source_field, settings)

            if source_field and isinstance(data, dict):
                return self.process_items([data], source_field, settings)[0]

            return self._transform_whole(data, settings)
        except Exception:
            logger.warning(
                "ai-transform failed; data left unchanged",
                exc_info=True,
                extra={"event": "ai.step_failed", "source_field": source_field},
            )
            return data

    def process_items(self, items: List[Any], field: str, settings: BatchSettings) -> List[Any]:
        to_process = items[:settings.max_items]
        skipped = items[settings.max_items:]
        if skipped:
            logger.info(
                "Processing only the first %d items; %d pass through unchanged",
                settings.max_items,
                len(skipped),
                extra={"event": "ai.items_capped", "max_items": settings.max_items, "skipped": len(skipped)},
            )

        size = settings.batch_size
        batches = [to_process[i:i + size] for i in range(0, len(to_process), size)]
        results: List[Any] = []
        for number, batch in enumerate(batches, start=1):
            logger.info(
                "Processing batch %d of %d",
                number,
                len(batches),
                extra={"event": "ai.batch_started", "batch": number, "batches": len(batches), "batch_items": len(batch)},
            )
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                futures = [
                    pool.submit(contextvars.copy_context().run, self._transform_item, item, field, settings)
                    for item in batch
                ]
                results.extend(f.result() for f in futures)
            if number < len(batches):
                self._sleep(settings.batch_delay_ms / 1000.0)

        results.extend(skipped)
        return results

    def _transform_item(self, item: Any, field: str, settings: BatchSettings) -> Any:
        value = get_value_by_path(item, field) if field else item
        if value is None:
            logger.debug("No value at %r; item skipped", field, extra={"event": "ai.item_empty"})
            return item
        try:
            prompt = f"Value: {json.dumps(value, ensure_ascii=False)}\n\nTask: {settings.prompt}"
            result = self._call(prompt, settings)
            if not field:
                return result
            return set_value_by_path(deepcopy(item), field, result)
        except Exception:
            logger.warning(
                "ai-transform failed for one item; item left unchanged",
                exc_info=True,
                extra={"event": "ai.item_failed", "field": field},
            )
            return item

    def _transform_whole(self, data: Any, settings: BatchSettings) -> Any:
        prompt = f"Input data:\n{json.dumps(data, ensure_ascii=False, indent=2)}\n\nTask: {settings.prompt}"
        try:
            return self._call(prompt, settings)
        except AITransformError:
            logger.warning(
                "ai-transform of the whole dataset failed; data left unchanged",
                exc_info=True,
                extra={"event": "ai.item_failed"},
            )
            return data

    def _call(self, prompt: str, settings: BatchSettings) -> Any:
        if settings.output_format == "json":
            prompt += "\n\nRespond with valid JSON only."
        try:
            reply = self._transform_call(prompt, settings.system_prompt, settings.output_format)
        except Exception as exc:
            raise AITransformError(f"External transform call failed: {exc}") from exc
        if not isinstance(reply, dict) or reply.get("error") or not isinstance(reply.get("response"), str):
            raise AITransformError("External transform returned no response", reply)
        return parse_reply(reply["response"], settings.output_format)
