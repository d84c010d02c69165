from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from .accessors import get_value_by_path
from .paths import escape_path_segment, parse_segment, split_path
from .records import ROOT, resolve_items_by_root


def _child_key(parent_key: str, key: str) -> str:
    escaped = escape_path_segment(key)
    return f"{parent_key}.{escaped}" if parent_key else escaped


def extract_field_paths(data: Any, parent_key: str = '') -> Set[str]:
    """Collect every leaf path in a payload.

    Elements of an array of objects are addressed as 'items[*].field'; an array
    of scalars is itself a leaf. Paths of a root-level array are relative to
    its items.
    """
    paths: Set[str] = set()

    if isinstance(data, dict):
        if not data and parent_key:
            paths.add(parent_key)
        for k, v in data.items():
            current_key = _child_key(parent_key, k)
            if isinstance(v, (dict, list)) and v:
                paths.update(extract_field_paths(v, current_key))
            else:
                paths.add(current_key)
    elif isinstance(data, list):
        element_key = f"{parent_key}[*]" if parent_key else ''
        has_containers = False
        for item in data:
            if isinstance(item, (dict, list)):
                has_containers = True
                paths.update(extract_field_paths(item, element_key))
        if not has_containers and parent_key:
            paths.add(parent_key)
    elif parent_key:
        paths.add(parent_key)

    return paths


def item_field_paths(data: Any, primary_path: Optional[str] = ROOT) -> List[str]:
    """Field paths as seen from one item under ``primary_path``."""
    paths: Set[str] = set()
    for item in resolve_items_by_root(data, primary_path):
        paths.update(extract_field_paths(item))
    return sorted(paths)


def find_list_paths(data: Any, parent_key: str = '') -> List[str]:
    """Find every path usable as a primaryPath, i.e. one that points to a list."""
    paths: List[str] = []
    if isinstance(data, dict):
        for k, v in data.items():
            current_key = _child_key(parent_key, k)
            if isinstance(v, list):
                paths.append(current_key)
            elif isinstance(v, dict):
                paths.extend(find_list_paths(v, current_key))
    elif isinstance(data, list) and not parent_key:
        paths.append(ROOT)
    return sorted(paths)


def describe_list_paths(data: Any) -> List[Dict[str, Any]]:
    rows = []
    for path in find_list_paths(data):
        target = data if path == ROOT else get_value_by_path(data, path)
        rows.append({'path': path, 'items': len(target) if isinstance(target, list) else 0})
    return rows


def build_field_tree(paths: List[str]) -> Dict[str, Any]:
    """Nest field paths for display.

    Leaves hold the full path. Array segments show up as 'name[]'. A node that
    is both a leaf and a branch keeps its own path under '__self__'.
    """
    tree: Dict[str, Any] = {}
    for path in sorted(paths):
        labels = []
        for segment in split_path(path):
            key, index = parse_segment(segment)
            labels.append(f"{key}[]" if index is not None else key)
        if not labels:
            continue
        current = tree
        for label in labels[:-1]:
            node = current.setdefault(label, {})
            if isinstance(node, str):
                node = current[label] = {'__self__': node}
            current = node
        last = labels[-1]
        if isinstance(current.get(last), dict):
            current[last]['__self__'] = path
        else:
            current[last] = path
    return tree
