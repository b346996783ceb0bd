"""
Core Pydantic models for the chart builder.

All domain types live here so every module shares the same vocabulary.
Python attributes are snake_case; every model serializes with the camelCase
names the Vega-Lite grammar uses (``timeUnit``, ``strokeWidth``, ``byField``).
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, model_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class FieldType(str, Enum):
    quantitative = "quantitative"
    nominal = "nominal"
    ordinal = "ordinal"
    temporal = "temporal"


class MarkType(str, Enum):
    bar = "bar"
    line = "line"
    area = "area"
    point = "point"
    circle = "circle"
    square = "square"
    rect = "rect"
    rule = "rule"
    text = "text"
    tick = "tick"


class AggregateOp(str, Enum):
    sum = "sum"
    mean = "mean"
    median = "median"
    count = "count"
    min = "min"
    max = "max"
    distinct = "distinct"
    q1 = "q1"
    q3 = "q3"
    variance = "variance"
    stdev = "stdev"


class TimeUnit(str, Enum):
    year = "year"
    month = "month"
    yearmonth = "yearmonth"
    date = "date"
    hours = "hours"
    day = "day"
    yearmonthdate = "yearmonthdate"


class SortOrder(str, Enum):
    ascending = "ascending"
    descending = "descending"


class StackMode(str, Enum):
    zero = "zero"
    normalize = "normalize"
    none = "none"


class Interpolate(str, Enum):
    linear = "linear"
    step = "step"
    step_before = "step-before"
    step_after = "step-after"
    basis = "basis"
    cardinal = "cardinal"
    monotone = "monotone"


STACKABLE_MARKS = frozenset({MarkType.bar.value, MarkType.area.value})
POINT_OVERLAY_MARKS = frozenset({MarkType.line.value, MarkType.area.value})

Channel = Literal["x", "y", "color", "size"]
Dimension = Union[int, float, Literal["container"]]


# ---------------------------------------------------------------------------
# Data fields
# ---------------------------------------------------------------------------

class TopValue(_CamelModel):
    model_config = ConfigDict(frozen=True)

    value: str
    count: int


class FieldStats(_CamelModel):
    model_config = ConfigDict(frozen=True)

    min: Optional[float] = None
    max: Optional[float] = None
    unique_count: int = 0
    null_count: int = 0
    top_values: Optional[List[TopValue]] = None


class DataField(_CamelModel):
    model_config = ConfigDict(frozen=True)

    name: str
    inferred_type: FieldType
    stats: FieldStats = Field(default_factory=FieldStats)


# ---------------------------------------------------------------------------
# Encoding configuration
# ---------------------------------------------------------------------------

class SortField(_CamelModel):
    field: str
    order: SortOrder = SortOrder.ascending.value


class BinParams(_CamelModel):
    maxbins: Optional[int] = None


class ScaleConfig(_CamelModel):
    domain: Optional[List[Any]] = None
    range: Optional[List[Union[str, float]]] = None
    scheme: Optional[str] = None
    reverse: Optional[bool] = None
    zero: Optional[bool] = None


class AxisConfig(_CamelModel):
    title: Optional[str] = None
    format: Optional[str] = None
    grid: Optional[bool] = None
    label_angle: Optional[float] = None
    label_font_size: Optional[float] = None
    title_font_size: Optional[float] = None


class LegendConfig(_CamelModel):
    title: Optional[str] = None
    orient: Optional[Literal["left", "right", "top", "bottom", "none"]] = None
    label_font_size: Optional[float] = None
    title_font_size: Optional[float] = None


class EncodingConfig(_CamelModel):
    field: Optional[str] = None
    type: Optional[FieldType] = None
    aggregate: Optional[AggregateOp] = None
    sort: Optional[Union[SortOrder, SortField]] = None
    bin: Optional[Union[bool, BinParams]] = None
    time_unit: Optional[TimeUnit] = None
    scale: Optional[ScaleConfig] = None
    axis: Optional[AxisConfig] = None
    legend: Optional[LegendConfig] = None


TooltipConfig = Union[Literal["auto"], List[EncodingConfig]]


class ChartEncodings(_CamelModel):
    x: Optional[EncodingConfig] = None
    y: Optional[EncodingConfig] = None
    color: Optional[EncodingConfig] = None
    size: Optional[EncodingConfig] = None
    tooltip: Optional[TooltipConfig] = "auto"


# ---------------------------------------------------------------------------
# Mark configuration
# ---------------------------------------------------------------------------

class MarkConfig(_CamelModel):
    type: MarkType = MarkType.bar.value
    point: Optional[bool] = None
    stacked: Optional[StackMode] = None
    opacity: Optional[float] = Field(None, ge=0.0, le=1.0)
    size: Optional[float] = None
    stroke_width: Optional[float] = None
    interpolate: Optional[Interpolate] = None

    @model_validator(mode="after")
    def _check_mark_flags(self) -> "MarkConfig":
        if self.stacked is not None and self.type not in STACKABLE_MARKS:
            raise ValueError(f"stacking is only supported for bar/area marks, not '{self.type}'")
        if self.point is not None and self.type not in POINT_OVERLAY_MARKS:
            raise ValueError(f"point overlay is only supported for line/area marks, not '{self.type}'")
        return self

    def retarget(self, mark_type: str, **options: Any) -> "MarkConfig":
        """Return a copy with a new mark type, dropping flags the new type cannot carry."""
        data = self.model_dump(exclude_none=True)
        data.update({k: v for k, v in options.items() if v is not None})
        data["type"] = mark_type
        if mark_type not in STACKABLE_MARKS:
            data.pop("stacked", None)
        if mark_type not in POINT_OVERLAY_MARKS:
            data.pop("point", None)
        return MarkConfig.model_validate(data)


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------

class FilterTransform(_CamelModel):
    kind: Literal["filter"] = "filter"
    expr: str


class TopNTransform(_CamelModel):
    kind: Literal["topN"] = "topN"
    n: PositiveInt
    by_field: str
    order: SortOrder = SortOrder.descending.value


class CalculateTransform(_CamelModel):
    kind: Literal["calculate"] = "calculate"
    calculate: str
    as_: str = Field(..., alias="as")


class AggregateTransform(_CamelModel):
    kind: Literal["aggregate"] = "aggregate"
    groupby: Optional[List[str]] = None
    ops: List[AggregateOp]
    fields: List[str]
    as_: List[str] = Field(..., alias="as")

    @model_validator(mode="after")
    def _check_lengths(self) -> "AggregateTransform":
        if not (len(self.ops) == len(self.fields) == len(self.as_)):
            raise ValueError("aggregate ops, fields and as must have the same length")
        return self


ChartTransform = Annotated[
    Union[FilterTransform, TopNTransform, CalculateTransform, AggregateTransform],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Builder state
# ---------------------------------------------------------------------------

class Padding(_CamelModel):
    top: Optional[float] = None
    bottom: Optional[float] = None
    left: Optional[float] = None
    right: Optional[float] = None


class BuilderState(_CamelModel):
    mark: MarkConfig = Field(default_factory=MarkConfig)
    encodings: ChartEncodings = Field(default_factory=ChartEncodings)
    transforms: List[ChartTransform] = Field(default_factory=list)
    width: Optional[Dimension] = "container"
    height: Optional[Dimension] = 360
    title: Optional[str] = None
    description: Optional[str] = None
    background: Optional[str] = None
    padding: Optional[Union[float, Padding]] = None

    def merge(self, partial: "PartialBuilderState") -> "BuilderState":
        """Overlay the attributes *partial* explicitly carries onto a copy of this state."""
        data = self.model_dump()
        patch = partial.model_dump(include=set(partial.model_fields_set))
        data.update(patch)
        return BuilderState.model_validate(data)


class PartialBuilderState(_CamelModel):
    mark: Optional[MarkConfig] = None
    encodings: Optional[ChartEncodings] = None
    transforms: Optional[List[ChartTransform]] = None
    width: Optional[Dimension] = None
    height: Optional[Dimension] = None
    title: Optional[str] = None
    description: Optional[str] = None
    background: Optional[str] = None
    padding: Optional[Union[float, Padding]] = None


# ---------------------------------------------------------------------------
# Edit operations & plans
# ---------------------------------------------------------------------------

class MarkOptions(_CamelModel):
    point: Optional[bool] = None
    stacked: Optional[StackMode] = None
    opacity: Optional[float] = None
    size: Optional[float] = None
    stroke_width: Optional[float] = None
    interpolate: Optional[Interpolate] = None


class SetMark(_CamelModel):
    op: Literal["set_mark"] = "set_mark"
    mark: MarkType
    options: Optional[MarkOptions] = None


class SetEncoding(_CamelModel):
    op: Literal["set_encoding"] = "set_encoding"
    channel: Channel
    field: str
    type: Optional[FieldType] = None
    config: Optional[Dict[str, Any]] = None


class RemoveEncoding(_CamelModel):
    op: Literal["remove_encoding"] = "remove_encoding"
    channel: Channel


class SetSeriesColors(_CamelModel):
    op: Literal["set_series_colors"] = "set_series_colors"
    colors: Dict[str, str]


class SetColorScheme(_CamelModel):
    op: Literal["set_color_scheme"] = "set_color_scheme"
    scheme: str


class SetTopN(_CamelModel):
    op: Literal["set_top_n"] = "set_top_n"
    n: PositiveInt
    by_field: Optional[str] = None
    order: SortOrder = SortOrder.descending.value


class SetSort(_CamelModel):
    op: Literal["set_sort"] = "set_sort"
    channel_or_field: str
    by: Optional[str] = None
    order: SortOrder = SortOrder.ascending.value


class AddFilter(_CamelModel):
    op: Literal["add_filter"] = "add_filter"
    expr: str


class SetAggregate(_CamelModel):
    op: Literal["set_aggregate"] = "set_aggregate"
    channel: Literal["x", "y"]
    aggregate: AggregateOp


class SetTitle(_CamelModel):
    op: Literal["set_title"] = "set_title"
    title: str


class SetSize(_CamelModel):
    op: Literal["set_size"] = "set_size"
    width: Optional[Dimension] = None
    height: Optional[Dimension] = None


class DirectSpecEdit(_CamelModel):
    """Marker recorded when a remote planner replaced the whole spec."""
    op: Literal["direct_spec_edit"] = "direct_spec_edit"
    description: str = "Modified spec directly with AI"


EditOperation = Annotated[
    Union[
        SetMark, SetEncoding, RemoveEncoding, SetSeriesColors, SetColorScheme,
        SetTopN, SetSort, AddFilter, SetAggregate, SetTitle, SetSize, DirectSpecEdit,
    ],
    Field(discriminator="op"),
]

OPERATION_KINDS = frozenset({
    "set_mark", "set_encoding", "remove_encoding", "set_series_colors",
    "set_color_scheme", "set_top_n", "set_sort", "add_filter", "set_aggregate",
    "set_title", "set_size", "direct_spec_edit",
})


class ChartEditPlan(_CamelModel):
    intent_text: str
    confidence: float = Field(0.6, ge=0.0, le=1.0)
    operations: List[EditOperation] = Field(default_factory=list)


class SpecEditResult(_CamelModel):
    success: bool
    spec: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class Snapshot(_CamelModel):
    model_config = ConfigDict(frozen=True)

    builder_state: BuilderState
    spec: Dict[str, Any]
    timestamp: float = Field(default_factory=time.time)
    description: Optional[str] = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class ValidationIssue(_CamelModel):
    path: str
    message: str
    severity: Literal["error", "warning"] = "error"


class ValidationResult(_CamelModel):
    valid: bool = True
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Session view & API payloads
# ---------------------------------------------------------------------------

class SessionState(_CamelModel):
    builder_state: BuilderState
    spec: Dict[str, Any]
    fields: List[DataField] = Field(default_factory=list)
    row_count: int = 0
    is_custom: bool = False
    can_undo: bool = False
    can_redo: bool = False
    history_index: int = -1
    history_size: int = 0
    last_plan: Optional[ChartEditPlan] = None
    validation: ValidationResult = Field(default_factory=ValidationResult)


class CommandOutcome(_CamelModel):
    changed: bool = False
    message: str = ""
    plan: Optional[ChartEditPlan] = None
    error: Optional[str] = None
    used_direct_edit: bool = False


class DataRequest(_CamelModel):
    rows: List[Dict[str, Any]]
    regenerate: bool = True


class BuilderUpdateRequest(_CamelModel):
    updates: Dict[str, Any]
    description: Optional[str] = None


class SpecRequest(_CamelModel):
    spec: Dict[str, Any]


class CommandRequest(_CamelModel):
    command: str
    mode: Literal["pattern", "llm"] = "pattern"
    allow_regenerate: bool = False
