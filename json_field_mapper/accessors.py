from __future__ import annotations

from typing import Any

from .exceptions import PathSyntaxError
from .paths import WILDCARD, has_index, parse_segment, split_path


def _index_into(container: Any, index: int) -> Any:
    if not isinstance(container, list):
        return None
    if 0 <= index < len(container):
        return container[index]
    return None


def get_value_by_path(data: Any, path: str) -> Any:
    """Retrieve value from nested data using a dot-notation path.

    Segments may carry a trailing index ('items[0]'); '[*]' returns the list
    itself. Anything that cannot be followed resolves to None, so absent and
    present-but-null values look the same to callers.
    """
    if path in (None, ''):
        return data

    keys = split_path(path)
    val = data

    i = 0
    while i < len(keys):
        if val is None:
            return None
        key, index = parse_segment(keys[i])

        if key:
            if isinstance(val, dict):
                if key in val:
                    val = val[key]
                else:
                    # Fallback for unescaped dotted dict keys (e.g. 'gpt-3.5-turbo')
                    # when the incoming path is 'responses.gpt-3.5-turbo.response'.
                    matched = False
                    candidate = key
                    for j in range(i + 1, len(keys)):
                        candidate = candidate + '.' + keys[j]
                        if candidate in val:
                            val = val[candidate]
                            i = j
                            matched = True
                            break
                    if not matched:
                        return None
                    key, index = parse_segment(keys[i])
            elif isinstance(val, list) and key.isdigit():
                val = _index_into(val, int(key))
            else:
                return None

        if index == WILDCARD:
            return val if isinstance(val, list) else None
        if index is not None:
            val = _index_into(val, index)
        i += 1

    return val


def set_value_by_path(data: Any, path: str, value: Any) -> Any:
    """Set a value in a nested dict by dot path (dict-only traversal).

    Missing intermediates are created and non-dict intermediates replaced by
    a fresh dict. Indexed segments are readable but not writable, so they are
    rejected here.
    """
    if path in (None, '', '(root)'):
        return value

    if not isinstance(data, dict):
        return value

    parts = split_path(path)
    for part in parts:
        if has_index(part):
            raise PathSyntaxError(f"Indexed segment '{part}' cannot be written", path)

    current = data
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value
    return data


def delete_value_by_path(data: Any, path: str) -> bool:
    """Remove the key at a dot path. Returns True when something was removed."""
    if not isinstance(data, dict) or not path:
        return False

    parts = split_path(path)
    current = data
    for part in parts[:-1]:
        current = current.get(part)
        if not isinstance(current, dict):
            return False
    if parts and parts[-1] in current:
        del current[parts[-1]]
        return True
    return False
