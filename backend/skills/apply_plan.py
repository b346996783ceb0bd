"""
Plan applier: (BuilderState, ChartEditPlan, fields) -> new BuilderState.

Operations apply strictly in order against a deep copy, so later operations
see the effect of earlier ones. Inconsistent operations (an aggregate on an
empty channel, a top-N with no ranking field) are skipped; the input state is
never mutated.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Sequence

from pydantic import ValidationError

from core.models import (
    AddFilter,
    BuilderState,
    ChartEditPlan,
    DataField,
    EncodingConfig,
    FieldType,
    FilterTransform,
    RemoveEncoding,
    ScaleConfig,
    SetAggregate,
    SetColorScheme,
    SetEncoding,
    SetMark,
    SetSeriesColors,
    SetSize,
    SetSort,
    SetTitle,
    SetTopN,
    SortField,
    TopNTransform,
)

logger = logging.getLogger("uvicorn.error")

Handler = Callable[[BuilderState, Any, Sequence[DataField]], None]


def _field_type(name: str, fields: Sequence[DataField]) -> Optional[str]:
    for f in fields:
        if f.name == name:
            return f.inferred_type
    return None


def _ensure_color(state: BuilderState, fields: Sequence[DataField]) -> Optional[EncodingConfig]:
    """Return the color channel, auto-assigning the first nominal (else first) field when empty."""
    color = state.encodings.color
    if color is not None and color.field:
        return color
    if not fields:
        return None
    pick = next((f for f in fields if f.inferred_type == FieldType.nominal.value), fields[0])
    color = EncodingConfig(field=pick.name, type=pick.inferred_type)
    state.encodings.color = color
    return color


def _update_scale(enc: EncodingConfig, **changes: Any) -> None:
    data = enc.scale.model_dump() if enc.scale is not None else {}
    data.update(changes)
    enc.scale = ScaleConfig(**data)


# ---------------------------------------------------------------------------
# Handlers (mutate the working copy in place)
# ---------------------------------------------------------------------------

def _set_mark(state: BuilderState, op: SetMark, fields: Sequence[DataField]) -> None:
    options = op.options.model_dump(exclude_none=True) if op.options else {}
    state.mark = state.mark.retarget(op.mark, **options)


def _set_encoding(state: BuilderState, op: SetEncoding, fields: Sequence[DataField]) -> None:
    current = getattr(state.encodings, op.channel)
    data: Dict[str, Any] = current.model_dump(exclude_none=True) if current is not None else {}
    data["field"] = op.field
    data["type"] = op.type or _field_type(op.field, fields)
    if op.config:
        data.update(op.config)
    setattr(state.encodings, op.channel, EncodingConfig.model_validate(data))


def _remove_encoding(state: BuilderState, op: RemoveEncoding, fields: Sequence[DataField]) -> None:
    setattr(state.encodings, op.channel, None)


def _set_series_colors(state: BuilderState, op: SetSeriesColors, fields: Sequence[DataField]) -> None:
    color = _ensure_color(state, fields)
    if color is None:
        logger.warning("apply_plan: set_series_colors skipped, no field to color by")
        return
    domain = list(op.colors)
    _update_scale(color, domain=domain, range=[op.colors[k] for k in domain])


def _set_color_scheme(state: BuilderState, op: SetColorScheme, fields: Sequence[DataField]) -> None:
    color = _ensure_color(state, fields)
    if color is None:
        logger.warning("apply_plan: set_color_scheme skipped, no field to color by")
        return
    _update_scale(color, scheme=op.scheme)


def _set_top_n(state: BuilderState, op: SetTopN, fields: Sequence[DataField]) -> None:
    enc = state.encodings
    by = op.by_field or (enc.y.field if enc.y else None) or (enc.x.field if enc.x else None)
    state.transforms = [t for t in state.transforms if not isinstance(t, TopNTransform)]
    if not by:
        logger.warning("apply_plan: set_top_n skipped, no ranking field")
        return
    state.transforms.append(TopNTransform(n=op.n, by_field=by, order=op.order))


def _set_sort(state: BuilderState, op: SetSort, fields: Sequence[DataField]) -> None:
    if op.channel_or_field in ("x", "y"):
        channel = op.channel_or_field
        enc = getattr(state.encodings, channel)
        if enc is None:
            enc = EncodingConfig()
            setattr(state.encodings, channel, enc)
        enc.sort = SortField(field=op.by, order=op.order) if op.by else op.order
        return
    # any other target sorts the y channel by that field
    if state.encodings.y is None:
        state.encodings.y = EncodingConfig()
    state.encodings.y.sort = SortField(field=op.channel_or_field, order=op.order)


def _add_filter(state: BuilderState, op: AddFilter, fields: Sequence[DataField]) -> None:
    state.transforms.append(FilterTransform(expr=op.expr))


def _set_aggregate(state: BuilderState, op: SetAggregate, fields: Sequence[DataField]) -> None:
    enc = getattr(state.encodings, op.channel)
    if enc is None:
        logger.debug("apply_plan: set_aggregate on empty channel %s ignored", op.channel)
        return
    enc.aggregate = op.aggregate


def _set_title(state: BuilderState, op: SetTitle, fields: Sequence[DataField]) -> None:
    state.title = op.title


def _set_size(state: BuilderState, op: SetSize, fields: Sequence[DataField]) -> None:
    if op.width is not None:
        state.width = op.width
    if op.height is not None:
        state.height = op.height


HANDLERS: Dict[str, Handler] = {
    "set_mark": _set_mark,
    "set_encoding": _set_encoding,
    "remove_encoding": _remove_encoding,
    "set_series_colors": _set_series_colors,
    "set_color_scheme": _set_color_scheme,
    "set_top_n": _set_top_n,
    "set_sort": _set_sort,
    "add_filter": _add_filter,
    "set_aggregate": _set_aggregate,
    "set_title": _set_title,
    "set_size": _set_size,
}


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def apply_plan(state: BuilderState, plan: ChartEditPlan, fields: Sequence[DataField]) -> BuilderState:
    """Apply *plan* to a copy of *state* and return the copy."""
    nxt = state.model_copy(deep=True)
    for op in plan.operations:
        kind = getattr(op, "op", None)
        handler = HANDLERS.get(kind)
        if handler is None:
            logger.warning("apply_plan: ignoring unsupported operation %r", kind)
            continue
        try:
            handler(nxt, op, fields)
        except ValidationError as exc:
            logger.warning("apply_plan: %s skipped, invalid result: %s", kind, exc.errors()[:1])
    return nxt
