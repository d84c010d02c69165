"""Fetch every configured source independently.

Fetching itself belongs to the caller (``fetch_source(descriptor)``); this
module only runs those calls side by side and turns a failure, an empty
result or a timeout into "no data" for that one source.
"""
from __future__ import annotations

import contextvars
from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Iterable, Optional

from .config import SourceDescriptor
from .exceptions import SourceUnavailableError
from .logging_config import LogContext, get_logger

logger = get_logger("sources")

FetchSource = Callable[[SourceDescriptor], Any]


def _unavailable(error: SourceUnavailableError) -> None:
    with LogContext.bind(source_id=error.source_id):
        logger.warning(
            "%s",
            error.message,
            extra={"event": "source.unavailable", "exc_code": error.code},
        )


def _outcome(source: SourceDescriptor, future: Future) -> Optional[Any]:
    if future.cancelled() or not future.done():
        raise SourceUnavailableError(f"Timed out fetching {source.display_name}", source.id)
    exc = future.exception()
    if exc is not None:
        raise SourceUnavailableError(f"Failed to fetch {source.display_name}: {exc}", source.id) from exc
    data = future.result()
    if data is None:
        raise SourceUnavailableError(f"No data from {source.display_name}", source.id)
    return data


def fetch_all_sources(
    descriptors: Iterable[SourceDescriptor],
    fetch_source: FetchSource,
    *,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Return ``{source_id: payload or None}`` for every descriptor."""
    sources = list(descriptors)
    if not sources:
        return {}

    pool = ThreadPoolExecutor(max_workers=len(sources), thread_name_prefix="jfm-fetch")
    try:
        futures = [
            pool.submit(contextvars.copy_context().run, fetch_source, source) for source in sources
        ]
        wait(futures, timeout=timeout, return_when=ALL_COMPLETED)
    finally:
        # A source that is still running past the timeout is abandoned, not awaited.
        pool.shutdown(wait=False, cancel_futures=True)

    results: Dict[str, Any] = {}
    for source, future in zip(sources, futures):
        try:
            results[source.id] = _outcome(source, future)
        except SourceUnavailableError as error:
            _unavailable(error)
            results[source.id] = None
    return results
