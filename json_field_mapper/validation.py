"""Static checks of a mapping configuration, independent of any mapping run."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .conditions import Operator
from .config import MappingConfig, MergeMode
from .merger import select_mode
from .pipeline import StepKind


@dataclass
class ValidationReport:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {'valid': self.valid, 'errors': list(self.errors), 'warnings': list(self.warnings)}


def _check_template(config: MappingConfig, report: ValidationReport) -> None:
    if config.output_template is None:
        return
    targets = {m.target_path for m in config.field_mappings}
    for tmpl_field in config.output_template.fields:
        if tmpl_field.path in targets or tmpl_field.default_value is not None:
            continue
        if tmpl_field.required:
            report.errors.append(f'Required field "{tmpl_field.path}" is not mapped')
        else:
            report.warnings.append(f'Optional field "{tmpl_field.path}" is not mapped')


def _check_duplicates(config: MappingConfig, report: ValidationReport) -> None:
    seen: Dict[Tuple[str, Any], int] = {}
    for mapping in config.field_mappings:
        key = (mapping.target_path, mapping.source_id)
        seen[key] = seen.get(key, 0) + 1
    duplicates = [
        target if source_id is None else f'{target} ({source_id})'
        for (target, source_id), count in seen.items()
        if count > 1
    ]
    if duplicates:
        report.errors.append(f"Duplicate mappings for: {', '.join(duplicates)}")


def _check_references(config: MappingConfig, report: ValidationReport) -> None:
    selection = config.source_selection
    known_sources = {s.id for s in selection.sources}
    known_transforms = {t.id for t in config.transformations if t.id}

    for mapping in config.field_mappings:
        if mapping.source_id is not None and mapping.source_id not in known_sources:
            report.errors.append(
                f'Mapping for "{mapping.target_path}" references unknown source "{mapping.source_id}"'
            )
        if mapping.transform_id and mapping.transform_id not in known_transforms:
            report.warnings.append(
                f'Mapping for "{mapping.target_path}" references unknown transformation "{mapping.transform_id}"'
            )
        if mapping.conditional is not None and Operator.parse(mapping.conditional.operator) is None:
            report.warnings.append(
                f'Mapping for "{mapping.target_path}" uses unknown operator "{mapping.conditional.operator}"'
            )

    for step in config.pipeline_steps:
        if StepKind.parse(step.type) is None:
            report.warnings.append(f'Unknown pipeline step type "{step.type}"')

    if select_mode(selection) is MergeMode.SEPARATE:
        sourceless = [m.target_path for m in config.field_mappings if m.source_id is None]
        if sourceless:
            report.warnings.append(
                f"Mappings without a source are not applied in separate mode: {', '.join(sourceless)}"
            )


def validate_mapping(config: MappingConfig) -> ValidationReport:
    report = ValidationReport()
    if not config.source_selection.sources:
        report.errors.append('No sources selected')
    if not config.field_mappings:
        report.errors.append('No field mappings configured')
    wrapper = config.wrapper
    if wrapper is not None and wrapper.enabled and not (wrapper.key or '').strip():
        report.errors.append('Output wrapper is enabled but no wrapper key is specified')
    _check_template(config, report)
    _check_duplicates(config, report)
    _check_references(config, report)
    return report
