"""Resolve output fields for one source record.

For each field mapping: read the source value (item data or source metadata),
apply the referenced single-value transform, let a conditional replace the
value, then fall back when the value is None.
"""
from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .accessors import get_value_by_path, set_value_by_path
from .conditions import evaluate_condition
from .config import SOURCE_METADATA_PREFIX, FieldMapping, MappingConfig, SourceDescriptor
from .exceptions import PathSyntaxError
from .logging_config import get_logger
from .records import is_root, relative_source_path
from .value_transforms import apply_value_transform

logger = get_logger("resolver")


@dataclass(frozen=True)
class SourceContext:
    """Identity of the source a record came from, addressable as ``_source.*``."""

    id: str
    name: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    path: Optional[str] = None
    fetched_at: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_descriptor(cls, source: SourceDescriptor, fetched_at: str,
                        primary_path: Optional[str] = None) -> "SourceContext":
        return cls(
            id=source.id,
            name=source.name,
            type=source.type,
            category=source.category,
            path=primary_path,
            fetched_at=fetched_at,
            metadata=dict(source.metadata),
        )

    def lookup(self, key: str) -> Any:
        if key == "id":
            return self.id
        if key == "name":
            return self.name or self.id
        if key == "type":
            return self.type
        if key == "category":
            return self.category
        if key == "timestamp":
            return self.fetched_at
        if key == "path":
            return "root" if is_root(self.path) else self.path
        if key.startswith("metadata."):
            return get_value_by_path(self.metadata, key[len("metadata."):])
        return None


def _read(record: Any, path: str, context: SourceContext, index: Optional[int]) -> Any:
    if path.startswith(SOURCE_METADATA_PREFIX):
        return context.lookup(path[len(SOURCE_METADATA_PREFIX):])
    return get_value_by_path(record, relative_source_path(path, context.path, index))


def resolve_field(
    record: Any,
    mapping: FieldMapping,
    context: SourceContext,
    config: MappingConfig,
    index: Optional[int] = None,
) -> Any:
    value = _read(record, mapping.source_path, context, index)

    transformation = config.find_transformation(mapping.transform_id)
    if mapping.transform_id and transformation is None:
        logger.debug(
            "Transformation %r not found",
            mapping.transform_id,
            extra={"event": "resolver.transform_missing", "target_path": mapping.target_path},
        )
    if transformation is not None:
        try:
            value = apply_value_transform(value, transformation)
        except Exception:
            logger.warning(
                "Transform %s failed for %s",
                transformation.type,
                mapping.target_path,
                exc_info=True,
                extra={"event": "resolver.transform_failed", "target_path": mapping.target_path},
            )
            value = None

    conditional = mapping.conditional
    if conditional is not None:
        when_value = _read(record, conditional.when, context, index)
        if evaluate_condition(when_value, conditional.operator, conditional.value):
            value = conditional.then
        else:
            value = conditional.else_

    if value is None:
        value = mapping.fallback_value
    return deepcopy(value)


def select_mappings(mappings: List[FieldMapping], source_id: Optional[str]) -> List[FieldMapping]:
    """Pick at most one mapping per target path for a record of ``source_id``.

    An exact source match wins; otherwise a mapping without a source acts as
    the catch-all; otherwise the target is left out.
    """
    groups: Dict[str, List[FieldMapping]] = {}
    for mapping in mappings:
        groups.setdefault(mapping.target_path, []).append(mapping)

    selected: List[FieldMapping] = []
    for candidates in groups.values():
        exact = next((m for m in candidates if m.source_id is not None and m.source_id == source_id), None)
        if exact is not None:
            selected.append(exact)
            continue
        catch_all = next((m for m in candidates if m.source_id is None), None)
        if catch_all is not None:
            selected.append(catch_all)
    return selected


def map_record(
    record: Any,
    mappings: List[FieldMapping],
    context: SourceContext,
    config: MappingConfig,
    index: Optional[int] = None,
) -> Dict[str, Any]:
    """Build one fresh output object from a source record."""
    result: Dict[str, Any] = {}
    for mapping in select_mappings(mappings, context.id):
        value = resolve_field(record, mapping, context, config, index)
        try:
            set_value_by_path(result, mapping.target_path, value)
        except PathSyntaxError:
            logger.warning(
                "Target path %r cannot be written; field skipped",
                mapping.target_path,
                extra={"event": "resolver.bad_target", "target_path": mapping.target_path},
            )
    return result
