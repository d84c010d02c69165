"""Core logic for JSON Field Mapper.

The Gradio UI lives in `app.py`. This package contains the mapping engine:
- read and write dot-path fields (with `[n]` / `[*]` indices on read)
- evaluate field conditionals and run the transformation pipeline
- merge one or many sources in single, combined or separate mode
- wrap the result in a metadata envelope
"""
from .accessors import get_value_by_path, set_value_by_path
from .config import MappingConfig, load_mapping_config
from .engine import fetch_and_map, run_mapping
from .exceptions import (
    AITransformError,
    ConfigurationError,
    MappingError,
    PathSyntaxError,
    SourceUnavailableError,
    TransformationError,
    UnknownStepError,
)
from .validation import ValidationReport, validate_mapping

__all__ = [
    "get_value_by_path",
    "set_value_by_path",
    "MappingConfig",
    "load_mapping_config",
    "run_mapping",
    "fetch_and_map",
    "validate_mapping",
    "ValidationReport",
    "MappingError",
    "ConfigurationError",
    "PathSyntaxError",
    "SourceUnavailableError",
    "TransformationError",
    "UnknownStepError",
    "AITransformError",
]
