"""
Custom-spec classification.

A spec is "custom" when the builder model cannot represent it: composition
operators, a long transform pipeline, or remote data. Custom specs bypass the
compiler; builder controls are disabled while one is active.
"""

from __future__ import annotations

from typing import Any

COMPOSITION_KEYS = ("facet", "layer", "hconcat", "vconcat", "concat", "repeat")
MAX_BUILDER_TRANSFORMS = 3


def is_custom_spec(spec: Any) -> bool:
    """True when *spec* must be edited directly rather than through the builder."""
    if not isinstance(spec, dict):
        return False
    if any(key in spec for key in COMPOSITION_KEYS):
        return True
    transforms = spec.get("transform")
    if isinstance(transforms, list) and len(transforms) > MAX_BUILDER_TRANSFORMS:
        return True
    data = spec.get("data")
    return isinstance(data, dict) and bool(data.get("url"))
