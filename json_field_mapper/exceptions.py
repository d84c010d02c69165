"""Error taxonomy for the mapping engine.

None of these escape `engine.run_mapping`: configuration problems become an
``{"error": ...}`` result, source and transformation failures degrade the
affected part of the output and are logged.
"""
from __future__ import annotations

from typing import Any, Optional


class MappingError(Exception):
    """Base class for every error raised inside the engine."""

    code = "MAPPING_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(MappingError):
    """The mapping configuration cannot be executed as given."""

    code = "CONFIGURATION_ERROR"


class PathSyntaxError(MappingError):
    """A path uses syntax the requested operation does not support."""

    code = "PATH_SYNTAX_ERROR"

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class SourceUnavailableError(MappingError):
    """A source could not be fetched (error, empty result or timeout)."""

    code = "SOURCE_UNAVAILABLE"

    def __init__(self, message: str, source_id: str):
        super().__init__(message)
        self.source_id = source_id


class TransformationError(MappingError):
    """A pipeline step failed."""

    code = "TRANSFORMATION_ERROR"

    def __init__(self, message: str, step_type: Optional[str] = None):
        super().__init__(message)
        self.step_type = step_type


class UnknownStepError(TransformationError):
    code = "UNKNOWN_STEP"


class AITransformError(MappingError):
    """An external transform call failed or returned something unusable."""

    code = "AI_TRANSFORM_ERROR"

    def __init__(self, message: str, response: Any = None):
        super().__init__(message)
        self.response = response
