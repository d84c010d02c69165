from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import OUTPUT_VERSION, MergeMode, OutputWrapperConfig, SourceDescriptor
from .merger import MergeStats
from .value_transforms import format_timestamp


def describe_source(source: SourceDescriptor) -> Dict[str, Any]:
    described = {
        'id': source.id,
        'name': source.name,
        'type': source.type,
        'category': source.category,
    }
    return {k: v for k, v in described.items() if v is not None}


def payload_count(payload: Any) -> int:
    if isinstance(payload, (list, dict)):
        return len(payload)
    return 0 if payload is None else 1


def build_metadata(
    payload: Any,
    wrapper_config: OutputWrapperConfig,
    stats: MergeStats,
    now: datetime,
) -> Dict[str, Any]:
    fields = wrapper_config.metadata_fields
    metadata: Dict[str, Any] = {}
    if fields.timestamp:
        metadata['timestamp'] = format_timestamp(now)
    if fields.source and stats.sources:
        if stats.mode is MergeMode.SINGLE:
            metadata['source'] = describe_source(stats.sources[0])
        else:
            metadata['sources'] = [describe_source(s) for s in stats.sources]
    if fields.source_counts and stats.mode is not MergeMode.SINGLE:
        metadata['sourceCounts'] = dict(stats.source_counts)
    if fields.count:
        metadata['count'] = payload_count(payload)
        metadata['totalCount'] = stats.total_items
    if fields.version:
        metadata['version'] = OUTPUT_VERSION
    return metadata


def wrap_output(
    payload: Any,
    wrapper_config: Optional[OutputWrapperConfig],
    *,
    stats: MergeStats,
    now: Optional[datetime] = None,
) -> Any:
    """Put the payload under ``wrapperKey``, with a metadata block when requested.

    A missing or disabled wrapper returns the payload unchanged.
    """
    if wrapper_config is None or not wrapper_config.enabled:
        return payload
    wrapped: Dict[str, Any] = {}
    if wrapper_config.include_metadata:
        wrapped['metadata'] = build_metadata(
            payload, wrapper_config, stats, now or datetime.now(timezone.utc)
        )
    wrapped[wrapper_config.key] = payload
    return wrapped
