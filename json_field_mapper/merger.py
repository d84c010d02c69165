"""Run the field mappings across one or many sources.

Modes:
  single    one source (or no mode): map its items, or a lone object as one item
  combined  several sources pooled into one list; every item is mapped with
            its own source's mappings or the catch-all
  separate  every source mapped on its own, keyed by display name; mappings
            without a sourceId are not used in this mode
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from .accessors import get_value_by_path
from .config import (
    MappingConfig,
    MergeMode,
    MergeStrategy,
    PipelineStage,
    SourceDescriptor,
    SourceSelection,
)
from .logging_config import LogContext, get_logger
from .pipeline import apply_pipeline
from .records import navigate, resolve_items_by_root
from .resolver import SourceContext, map_record
from .value_transforms import format_timestamp, parse_datetime

if TYPE_CHECKING:
    from .ai_throttler import AIThrottler

logger = get_logger("merger")


@dataclass(frozen=True)
class TaggedItem:
    """An item paired with the id of the source it came from."""
    source_id: str
    item: Any


@dataclass
class MergeStats:
    mode: MergeMode
    sources: List[SourceDescriptor] = field(default_factory=list)
    source_counts: Dict[str, int] = field(default_factory=dict)
    total_items: int = 0


@dataclass(frozen=True)
class MergeOutcome:
    payload: Any
    stats: MergeStats


def select_mode(selection: SourceSelection) -> MergeMode:
    count = len(selection.sources)
    if count > 1:
        if selection.merge_mode is MergeMode.COMBINED:
            return MergeMode.COMBINED
        return MergeMode.SEPARATE
    if selection.merge_mode is MergeMode.SEPARATE:
        return MergeMode.SEPARATE
    return MergeMode.SINGLE


# -----------------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------------


def _date_key(tagged: TaggedItem, date_field: str):
    dt = parse_datetime(get_value_by_path(tagged.item, date_field))
    if dt is None:
        return (0, 0.0)
    return (1, dt.timestamp())


def interleave(tagged: List[TaggedItem], source_order: List[str]) -> List[TaggedItem]:
    """Round-robin across sources; an exhausted source just drops out."""
    buckets: Dict[str, List[TaggedItem]] = {sid: [] for sid in source_order}
    for entry in tagged:
        buckets.setdefault(entry.source_id, []).append(entry)
    result: List[TaggedItem] = []
    depth = max((len(b) for b in buckets.values()), default=0)
    for i in range(depth):
        for bucket in buckets.values():
            if i < len(bucket):
                result.append(bucket[i])
    return result


def order_items(
    tagged: List[TaggedItem],
    strategy: MergeStrategy,
    *,
    source_order: List[str],
    date_field: str = "pubDate",
) -> List[TaggedItem]:
    if strategy is MergeStrategy.CHRONOLOGICAL:
        # Newest first; items without a readable date go last, in pool order.
        return sorted(tagged, key=lambda t: _date_key(t, date_field), reverse=True)
    if strategy is MergeStrategy.INTERLEAVED:
        return interleave(tagged, source_order)
    # sequential and priority keep configured source order
    return list(tagged)


# -----------------------------------------------------------------------------
# Merge
# -----------------------------------------------------------------------------


def _primary_path(selection: SourceSelection, source: SourceDescriptor) -> Optional[str]:
    return source.primary_path or selection.primary_path


def _run_stage(config: MappingConfig, stage: PipelineStage, data: Any,
               ai_throttler: Optional["AIThrottler"]) -> Any:
    if config.pipeline is None or config.pipeline.stage is not stage or not config.pipeline.steps:
        return data
    return apply_pipeline(data, config.pipeline.steps, ai_throttler=ai_throttler)


def _source_items(config: MappingConfig, source: SourceDescriptor, raw: Any,
                  ai_throttler: Optional["AIThrottler"]) -> Any:
    """Source-stage pipeline, primaryPath navigation, then items-stage pipeline."""
    data = _run_stage(config, PipelineStage.SOURCE, raw, ai_throttler)
    target = navigate(data, _primary_path(config.source_selection, source))
    return _run_stage(config, PipelineStage.ITEMS, target, ai_throttler)


def _skip(source: SourceDescriptor, reason: str) -> None:
    logger.info(
        "Skipping source %s: %s",
        source.display_name,
        reason,
        extra={"event": "merge.source_skipped", "reason": reason},
    )


def _map_single(config: MappingConfig, source: SourceDescriptor, raw: Any, fetched_at: str,
                ai_throttler: Optional["AIThrottler"], mappings=None) -> Any:
    """Map one source's payload. Returns None when the source has nothing to map."""
    mappings = config.field_mappings if mappings is None else mappings
    context = SourceContext.from_descriptor(
        source, fetched_at, _primary_path(config.source_selection, source)
    )
    target = _source_items(config, source, raw, ai_throttler)
    if isinstance(target, list):
        mapped: Any = [
            map_record(item, mappings, context, config, index) for index, item in enumerate(target)
        ]
    elif isinstance(target, dict):
        mapped = map_record(target, mappings, context, config)
    else:
        return None
    return _run_stage(config, PipelineStage.OUTPUT, mapped, ai_throttler)


def _merge_single(config, source_data, fetched_at, ai_throttler) -> MergeOutcome:
    stats = MergeStats(mode=MergeMode.SINGLE)
    if not config.source_selection.sources:
        return MergeOutcome([], stats)
    source = config.source_selection.sources[0]
    with LogContext.bind(source_id=source.id):
        raw = source_data.get(source.id)
        if raw is None:
            _skip(source, "no data")
            return MergeOutcome([], stats)
        payload = _map_single(config, source, raw, fetched_at, ai_throttler)
        if payload is None:
            _skip(source, "nothing at primary path")
            return MergeOutcome([], stats)
    stats.sources.append(source)
    count = len(payload) if isinstance(payload, list) else 1
    stats.source_counts[source.display_name] = count
    stats.total_items = count
    return MergeOutcome(payload, stats)


def _merge_separate(config, source_data, fetched_at, ai_throttler) -> MergeOutcome:
    stats = MergeStats(mode=MergeMode.SEPARATE)
    excluded = [m.target_path for m in config.field_mappings if m.source_id is None]
    if excluded:
        logger.info(
            "Mappings without a sourceId are not applied in separate mode: %s",
            ", ".join(excluded),
            extra={"event": "merge.sourceless_excluded", "target_paths": excluded},
        )

    result: Dict[str, Any] = {}
    for source in config.source_selection.sources:
        with LogContext.bind(source_id=source.id):
            raw = source_data.get(source.id)
            if raw is None:
                _skip(source, "no data")
                continue
            own = [m for m in config.field_mappings if m.source_id == source.id]
            mapped = _map_single(config, source, raw, fetched_at, ai_throttler, own)
            if mapped is None:
                _skip(source, "nothing at primary path")
                continue
        result[source.display_name] = mapped
        stats.sources.append(source)
        count = len(mapped) if isinstance(mapped, list) else 1
        stats.source_counts[source.display_name] = count
        stats.total_items += count
    return MergeOutcome(result, stats)


def _merge_combined(config, source_data, fetched_at, ai_throttler) -> MergeOutcome:
    selection = config.source_selection
    stats = MergeStats(mode=MergeMode.COMBINED)
    mapped: List[TaggedItem] = []

    for source in selection.sources:
        with LogContext.bind(source_id=source.id):
            raw = source_data.get(source.id)
            if raw is None:
                _skip(source, "no data")
                continue
            target = _source_items(config, source, raw, ai_throttler)
            items = resolve_items_by_root(target, None)
            if selection.max_items_per_source:
                items = items[:selection.max_items_per_source]
            context = SourceContext.from_descriptor(source, fetched_at, _primary_path(selection, source))
            for index, item in enumerate(items):
                mapped.append(
                    TaggedItem(source.id, map_record(item, config.field_mappings, context, config, index))
                )
            logger.debug(
                "Pooled %d items from %s",
                len(items),
                source.display_name,
                extra={"event": "merge.source_pooled", "items": len(items)},
            )
        stats.sources.append(source)
        stats.source_counts[source.display_name] = len(items)
        stats.total_items += len(items)

    ordered = order_items(
        mapped,
        selection.merge_strategy,
        source_order=[s.id for s in selection.sources],
        date_field=selection.date_field,
    )
    if selection.max_total_items:
        ordered = ordered[:selection.max_total_items]
    payload = [entry.item for entry in ordered]
    return MergeOutcome(_run_stage(config, PipelineStage.OUTPUT, payload, ai_throttler), stats)


_MERGERS = {
    MergeMode.SINGLE: _merge_single,
    MergeMode.SEPARATE: _merge_separate,
    MergeMode.COMBINED: _merge_combined,
}


def merge_sources(
    config: MappingConfig,
    source_data: Mapping[str, Any],
    *,
    ai_throttler: Optional["AIThrottler"] = None,
    now: Optional[datetime] = None,
) -> MergeOutcome:
    """Map every configured source and shape the result according to the merge mode.

    ``source_data`` maps source id to its fetched payload; a missing or None
    entry means the source returned no data and is skipped.
    """
    mode = select_mode(config.source_selection)
    fetched_at = format_timestamp(now or datetime.now(timezone.utc))
    logger.info(
        "Processing %d sources in %s mode",
        len(config.source_selection.sources),
        mode.value,
        extra={"event": "merge.mode_selected", "mode": mode.value,
               "strategy": config.source_selection.merge_strategy.value},
    )
    outcome = _MERGERS[mode](config, source_data, fetched_at, ai_throttler)
    logger.info(
        "Mapped %d items",
        outcome.stats.total_items,
        extra={"event": "merge.completed", "mode": mode.value, "total_items": outcome.stats.total_items},
    )
    return outcome
