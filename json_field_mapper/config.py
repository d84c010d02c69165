"""
Mapping configuration schema.

Pydantic models for the declarative mapping configuration a caller hands to
the engine. The wire format uses camelCase keys (``targetPath``,
``mergeMode``...); snake_case names are accepted as well. Every model is
frozen: one configuration is immutable for the whole run.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

# Reserved prefix for source metadata paths (``_source.name``).
SOURCE_METADATA_PREFIX = "_source."

OUTPUT_VERSION = "1.0.0"


class MergeMode(str, Enum):
    SINGLE = "single"
    COMBINED = "combined"
    SEPARATE = "separate"


class MergeStrategy(str, Enum):
    SEQUENTIAL = "sequential"
    CHRONOLOGICAL = "chronological"
    INTERLEAVED = "interleaved"
    PRIORITY = "priority"


class PipelineStage(str, Enum):
    SOURCE = "source"    # raw payload, before primaryPath navigation
    ITEMS = "items"      # navigated items, before field mapping
    OUTPUT = "output"    # mapped payload, before wrapping


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


# =============================================================================
# Sources
# =============================================================================

class SourceDescriptor(_Model):
    """One configured source and where its items live inside the payload."""
    id: str
    name: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    primary_path: Optional[str] = Field(None, alias="primaryPath")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.id


class SourceSelection(_Model):
    sources: List[SourceDescriptor] = Field(default_factory=list)
    merge_mode: Optional[MergeMode] = Field(None, alias="mergeMode")
    primary_path: Optional[str] = Field(None, alias="primaryPath")
    merge_strategy: MergeStrategy = Field(MergeStrategy.SEQUENTIAL, alias="mergeStrategy")
    date_field: str = Field("pubDate", alias="dateField")
    max_items_per_source: int = Field(0, alias="maxItemsPerSource", ge=0)
    max_total_items: int = Field(0, alias="maxTotalItems", ge=0)

    @field_validator("merge_strategy", mode="before")
    @classmethod
    def _default_strategy(cls, v: Any) -> Any:
        return MergeStrategy.SEQUENTIAL if v in (None, "") else v


# =============================================================================
# Field mappings
# =============================================================================

class Conditional(_Model):
    """``when <operator> value`` picks ``then`` or ``else`` for the field."""
    when: str
    operator: str
    value: Any = None
    then: Any = None
    else_: Any = Field(None, alias="else")


class FieldMapping(_Model):
    target_path: str = Field(..., alias="targetPath", min_length=1)
    source_path: str = Field("", alias="sourcePath")
    source_id: Optional[str] = Field(None, alias="sourceId")
    transform_id: Optional[str] = Field(None, alias="transformId")
    conditional: Optional[Conditional] = None
    fallback_value: Any = Field(None, alias="fallbackValue")


class Transformation(_Model):
    """A named operation.

    Referenced by ``transformId`` it is a single-value transform; inside the
    pipeline its ``type`` selects a dataset-level step.
    """
    id: Optional[str] = None
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    source_field: Optional[str] = Field(None, alias="sourceField")

    @field_validator("config", mode="before")
    @classmethod
    def _none_config(cls, v: Any) -> Any:
        return {} if v is None else v


class PipelineConfig(_Model):
    stage: PipelineStage = PipelineStage.ITEMS
    steps: List[Transformation] = Field(default_factory=list)


# =============================================================================
# Output
# =============================================================================

class MetadataFields(_Model):
    timestamp: bool = True
    source: bool = True
    count: bool = True
    source_counts: bool = Field(True, alias="sourceCounts")
    version: bool = False


class OutputWrapperConfig(_Model):
    enabled: bool = False
    wrapper_key: Optional[str] = Field("data", alias="wrapperKey")
    include_metadata: bool = Field(False, alias="includeMetadata")
    metadata_fields: MetadataFields = Field(default_factory=MetadataFields, alias="metadataFields")

    @property
    def key(self) -> str:
        return "data" if self.wrapper_key is None else self.wrapper_key


class TemplateField(_Model):
    path: str
    required: bool = False
    default_value: Any = Field(None, alias="defaultValue")
    type: Optional[str] = None


class OutputTemplate(_Model):
    fields: List[TemplateField] = Field(default_factory=list)
    wrapper_config: Optional[OutputWrapperConfig] = Field(None, alias="wrapperConfig")


# =============================================================================
# Root
# =============================================================================

class MappingConfig(_Model):
    source_selection: SourceSelection = Field(default_factory=SourceSelection, alias="sourceSelection")
    field_mappings: List[FieldMapping] = Field(default_factory=list, alias="fieldMappings")
    transformations: List[Transformation] = Field(default_factory=list)
    pipeline: Optional[PipelineConfig] = None
    output_wrapper: Optional[OutputWrapperConfig] = Field(None, alias="outputWrapper")
    output_template: Optional[OutputTemplate] = Field(None, alias="outputTemplate")

    @property
    def wrapper(self) -> Optional[OutputWrapperConfig]:
        if self.output_wrapper is not None:
            return self.output_wrapper
        if self.output_template is not None:
            return self.output_template.wrapper_config
        return None

    @property
    def pipeline_steps(self) -> List[Transformation]:
        return list(self.pipeline.steps) if self.pipeline else []

    def find_transformation(self, transform_id: Optional[str]) -> Optional[Transformation]:
        if not transform_id:
            return None
        for transformation in self.transformations:
            if transformation.id == transform_id:
                return transformation
        return None


def load_mapping_config(data: Any) -> MappingConfig:
    """Parse a raw configuration object, raising ConfigurationError when invalid."""
    if isinstance(data, MappingConfig):
        return data
    if not isinstance(data, dict):
        raise ConfigurationError("Mapping configuration must be a JSON object")
    try:
        return MappingConfig.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(p) for p in first.get("loc", ()))
        raise ConfigurationError(
            f"Invalid mapping configuration at '{location}': {first.get('msg')}"
        ) from exc


def check_runnable(config: MappingConfig) -> None:
    """Raise ConfigurationError for configurations the engine cannot run."""
    if not config.source_selection.sources:
        raise ConfigurationError("No sources selected")
    if not config.field_mappings:
        raise ConfigurationError("No field mappings configured")
    wrapper = config.wrapper
    if wrapper is not None and wrapper.enabled and not (wrapper.key or "").strip():
        raise ConfigurationError("Output wrapper is enabled but no wrapper key is specified")
