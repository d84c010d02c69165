from __future__ import annotations

from typing import Any, Dict, List

import gradio as gr

from .config import load_mapping_config
from .engine import run_mapping
from .exceptions import ConfigurationError
from .io_utils import read_json_content, write_json_file
from .logging_config import get_logger
from .records import ROOT, resolve_items_by_root
from .schema_utils import build_field_tree, describe_list_paths, item_field_paths
from .settings import EngineSettings
from .validation import validate_mapping

logger = get_logger("handlers")

PREVIEW_LIMIT = 3


def _read_upload(file_obj, label: str):
    if file_obj is None:
        return None, f"{label}: No file uploaded."
    try:
        return read_json_content(file_obj), None
    except (OSError, ValueError) as e:
        return None, f"{label}: Error parsing JSON: {str(e)}"


def preview_of(payload: Any, limit: int = PREVIEW_LIMIT) -> Any:
    """Trim every list in a result to its first few entries for display."""
    if isinstance(payload, list):
        return [preview_of(item, limit) for item in payload[:limit]]
    if isinstance(payload, dict):
        return {k: preview_of(v, limit) for k, v in payload.items()}
    return payload


# --- Run Mapping tab ---


def handle_config_upload(file_obj):
    data, error = _read_upload(file_obj, "Mapping config")
    if error:
        return None, error, None
    try:
        config = load_mapping_config(data)
    except ConfigurationError as exc:
        return None, f"Mapping config: {exc.message}", None

    report = validate_mapping(config)
    sources = ", ".join(s.display_name for s in config.source_selection.sources) or "none"
    status = (
        f"Mapping config loaded. {len(config.field_mappings)} field mappings, "
        f"sources: {sources}."
    )
    return data, status, report.to_dict()


def handle_sources_upload(file_obj):
    data, error = _read_upload(file_obj, "Sources")
    if error:
        return None, error
    if not isinstance(data, dict):
        return None, "Sources: expected a JSON object of {source_id: payload}."
    missing = [sid for sid, payload in data.items() if payload is None]
    status = f"Sources loaded: {len(data)} payloads."
    if missing:
        status += f" No data for: {', '.join(missing)}."
    return data, status


def run_mapping_handler(config_data, sources_data, file_name):
    if config_data is None:
        return None, "No mapping config loaded.", None
    if sources_data is None:
        return None, "No sources loaded.", None

    settings = EngineSettings.from_env()
    result = run_mapping(config_data, sources_data, settings=settings)
    if isinstance(result, dict) and set(result) == {"error"}:
        return None, f"Mapping failed: {result['error']}", None

    try:
        path = write_json_file(result, file_name)
    except OSError as exc:
        logger.warning("Could not write mapped output", exc_info=True, extra={"event": "handlers.write_failed"})
        return None, f"Error writing output file: {str(exc)}", preview_of(result)

    count = len(result) if isinstance(result, (list, dict)) else 1
    ai_note = "" if settings.ai_enabled else " (ai-transform steps passed through: ANTHROPIC_API_KEY not set)"
    return path, f"Mapping complete: {count} top-level entries. Saved to {path}{ai_note}", preview_of(result)


# --- Inspect Source tab ---


def _document_count_text(data: Any, root_path: str) -> str:
    if data is None:
        return ""
    return f"Items: {len(resolve_items_by_root(data, root_path or ROOT))}"


def _field_views(data: Any, root_path: str):
    fields: List[str] = item_field_paths(data, root_path or ROOT)
    return [[f] for f in fields], build_field_tree(fields), _document_count_text(data, root_path)


def handle_inspect_upload(file_obj):
    data, error = _read_upload(file_obj, "Source")
    if error:
        return None, gr.update(choices=[ROOT], value=ROOT), error, [], [], None, ""

    list_rows: List[Dict[str, Any]] = describe_list_paths(data)
    choices = [row['path'] for row in list_rows] or [ROOT]
    default_root = ROOT if ROOT in choices else choices[0]
    field_rows, tree, count_text = _field_views(data, default_root)
    status = f"Successfully loaded. Found {len(list_rows)} array paths."
    return (
        data,
        gr.update(choices=choices, value=default_root),
        status,
        [[row['path'], row['items']] for row in list_rows],
        field_rows,
        tree,
        count_text,
    )


def handle_inspect_root_change(data: Any, root_path: str):
    if data is None:
        return [], None, ""
    return _field_views(data, root_path)
