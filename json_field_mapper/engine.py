"""Entry points: one mapping run from configuration and fetched payloads to output."""
from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from .ai_throttler import AIThrottler
from .config import MappingConfig, check_runnable, load_mapping_config
from .exceptions import ConfigurationError
from .external import AnthropicTransform, TransformCall
from .logging_config import LogContext, get_logger
from .merger import merge_sources
from .settings import EngineSettings
from .sources import FetchSource, fetch_all_sources
from .wrapper import wrap_output

logger = get_logger("engine")


def _throttler(transform_call: Optional[TransformCall], settings: Optional[EngineSettings],
               sleep: Callable[[float], None]) -> Optional[AIThrottler]:
    if transform_call is None and settings is not None and settings.ai_enabled:
        transform_call = AnthropicTransform(settings)
    if transform_call is None:
        return None
    return AIThrottler(transform_call, sleep=sleep)


def run_mapping(
    config: Any,
    source_data: Mapping[str, Any],
    *,
    transform_call: Optional[TransformCall] = None,
    settings: Optional[EngineSettings] = None,
    now: Optional[datetime] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Map already-fetched source payloads to the configured output.

    ``config`` is a MappingConfig or its raw JSON object. Configuration
    problems come back as ``{"error": message}``; nothing else about the
    sources or transformations can fail the run.
    """
    with LogContext.bind(run_id=uuid.uuid4().hex):
        try:
            parsed = load_mapping_config(config)
            check_runnable(parsed)
        except ConfigurationError as exc:
            logger.error(
                "Mapping configuration rejected: %s",
                exc.message,
                extra={"event": "engine.config_error", "exc_code": exc.code},
            )
            return {"error": exc.message}

        moment = now or datetime.now(timezone.utc)
        outcome = merge_sources(
            parsed,
            source_data,
            ai_throttler=_throttler(transform_call, settings, sleep),
            now=moment,
        )
        return wrap_output(outcome.payload, parsed.wrapper, stats=outcome.stats, now=moment)


def fetch_and_map(
    config: Any,
    fetch_source: FetchSource,
    *,
    settings: Optional[EngineSettings] = None,
    transform_call: Optional[TransformCall] = None,
    now: Optional[datetime] = None,
) -> Any:
    """Fetch every configured source with ``fetch_source`` and map the results."""
    settings = settings or EngineSettings.from_env()
    try:
        parsed: MappingConfig = load_mapping_config(config)
    except ConfigurationError as exc:
        return {"error": exc.message}
    source_data = fetch_all_sources(
        parsed.source_selection.sources, fetch_source, timeout=settings.fetch_timeout
    )
    return run_mapping(parsed, source_data, transform_call=transform_call, settings=settings, now=now)
