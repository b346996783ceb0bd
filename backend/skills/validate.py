"""
Validation skill for incoming specs and builder states.

Catches common issues (missing body, unknown fields, contradictory type
overrides) before they reach the session. Errors block an edit; warnings are
only reported back to the client.
"""

from __future__ import annotations

from typing import Any, List, Sequence

from core.models import (
    BuilderState,
    DataField,
    FieldType,
    MarkType,
    TopNTransform,
    ValidationIssue,
    ValidationResult,
)
from skills.classify import COMPOSITION_KEYS
from skills.compile_spec import ENCODING_CHANNELS

_MARK_TYPES = {m.value for m in MarkType}


class SpecValidationError(ValueError):
    """Raised when a manually supplied spec cannot be accepted."""

    def __init__(self, result: ValidationResult):
        self.result = result
        message = "; ".join(f"{e.path}: {e.message}" for e in result.errors) or "invalid spec"
        super().__init__(message)


def _result(errors: List[ValidationIssue], warnings: List[ValidationIssue]) -> ValidationResult:
    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


# ---------------------------------------------------------------------------
# Spec validation
# ---------------------------------------------------------------------------

def validate_spec(spec: Any) -> ValidationResult:
    """Shallow structural check; the full Vega-Lite grammar is not enforced."""
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    if not isinstance(spec, dict):
        errors.append(ValidationIssue(path="$", message="spec must be a JSON object"))
        return _result(errors, warnings)

    has_body = "mark" in spec or any(key in spec for key in COMPOSITION_KEYS)
    if not has_body:
        errors.append(ValidationIssue(
            path="$", message="spec needs a 'mark' or a composition ('layer', 'facet', 'concat', 'repeat')",
        ))

    mark = spec.get("mark")
    mark_type = mark.get("type") if isinstance(mark, dict) else mark
    if mark is not None and not isinstance(mark_type, str):
        errors.append(ValidationIssue(path="$.mark", message="mark must be a string or an object with a 'type'"))
    elif isinstance(mark_type, str) and mark_type not in _MARK_TYPES:
        warnings.append(ValidationIssue(
            path="$.mark", message=f"mark type '{mark_type}' is not supported by the builder", severity="warning",
        ))

    encoding = spec.get("encoding")
    if encoding is not None and not isinstance(encoding, dict):
        errors.append(ValidationIssue(path="$.encoding", message="encoding must be an object"))

    transforms = spec.get("transform")
    if transforms is not None and not isinstance(transforms, list):
        errors.append(ValidationIssue(path="$.transform", message="transform must be an array"))

    data = spec.get("data")
    if isinstance(data, dict) and data.get("url"):
        warnings.append(ValidationIssue(
            path="$.data.url", message="remote data is not loaded by the builder", severity="warning",
        ))

    return _result(errors, warnings)


# ---------------------------------------------------------------------------
# Builder validation
# ---------------------------------------------------------------------------

def validate_builder_state(state: BuilderState, fields: Sequence[DataField]) -> ValidationResult:
    """
    Check that the builder state references real fields with sensible types.

    Everything reported here is a warning: a builder state is always
    compilable, it may just render an empty chart.
    """
    warnings: List[ValidationIssue] = []
    field_map = {f.name: f for f in fields}

    for channel in ENCODING_CHANNELS:
        enc = getattr(state.encodings, channel)
        if enc is None or not enc.field:
            continue
        path = f"encodings.{channel}"
        field = field_map.get(enc.field)
        if field is None:
            warnings.append(ValidationIssue(
                path=path, message=f"references unknown field '{enc.field}'", severity="warning",
            ))
            continue
        if enc.type == FieldType.temporal.value and field.inferred_type != FieldType.temporal.value:
            warnings.append(ValidationIssue(
                path=path,
                message=f"typed as temporal but '{enc.field}' looks {field.inferred_type}",
                severity="warning",
            ))
        if enc.type == FieldType.quantitative.value and field.inferred_type != FieldType.quantitative.value:
            warnings.append(ValidationIssue(
                path=path,
                message=f"typed as quantitative but '{enc.field}' looks {field.inferred_type}",
                severity="warning",
            ))

    for i, t in enumerate(state.transforms):
        if isinstance(t, TopNTransform) and t.by_field not in field_map:
            warnings.append(ValidationIssue(
                path=f"transforms[{i}]", message=f"top-N ranks by unknown field '{t.by_field}'", severity="warning",
            ))

    return _result([], warnings)
