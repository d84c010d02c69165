from __future__ import annotations

from typing import Any, List, Optional

from .accessors import get_value_by_path

ROOT = '(root)'


def is_root(path: Optional[str]) -> bool:
    return path in (None, '', ROOT)


def navigate(data: Any, primary_path: Optional[str]) -> Any:
    """Return the part of a payload that holds its items."""
    if data is None or is_root(primary_path):
        return data
    return get_value_by_path(data, primary_path)


def resolve_items_by_root(data: Any, primary_path: Optional[str] = ROOT) -> List[Any]:
    """Items under the primary path; a lone object counts as one item."""
    target = navigate(data, primary_path)
    if isinstance(target, list):
        return target
    if isinstance(target, dict):
        return [target]
    return []


def relative_source_path(source_path: str, primary_path: Optional[str], index: Optional[int] = None) -> str:
    """Make a payload-relative source path relative to one item.

    Mapping UIs record paths from the whole payload ('articles[*].title',
    'articles[0].title', 'articles.title'); items only see 'title'.
    """
    if not source_path or is_root(primary_path):
        return source_path

    prefixes = [f"{primary_path}[*]."]
    if index is not None:
        prefixes.append(f"{primary_path}[{index}].")
    prefixes.append(f"{primary_path}[0].")
    prefixes.append(f"{primary_path}.")
    for prefix in prefixes:
        if source_path.startswith(prefix):
            return source_path[len(prefix):]
    return source_path
