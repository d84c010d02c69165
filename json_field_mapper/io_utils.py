from __future__ import annotations

import json
import os
import tempfile
from typing import Any, Optional
from uuid import uuid4


def read_json_content(file_obj) -> Any:
    """Read JSON from an uploaded file object, a gradio file wrapper or a path."""
    if file_obj is None:
        raise ValueError("No file uploaded.")

    if hasattr(file_obj, 'read'):
        if hasattr(file_obj, 'seek'):
            file_obj.seek(0)
        content = file_obj.read()
        if isinstance(content, bytes):
            content = content.decode('utf-8-sig')
        return json.loads(content)

    path = file_obj.name if hasattr(file_obj, 'name') else file_obj
    with open(path, 'r', encoding='utf-8-sig') as f:
        return json.load(f)


def output_file_name(file_name: Optional[str], default_stem: str = 'mapped') -> str:
    name = (file_name or '').strip() or f"{default_stem}_{uuid4().hex[:8]}"
    if not name.lower().endswith('.json'):
        name += '.json'
    return os.path.basename(name)


def write_json_file(payload: Any, file_name: Optional[str] = None) -> str:
    """Write a payload to the temp directory and return the file path."""
    path = os.path.join(tempfile.gettempdir(), output_file_name(file_name))
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    return path
