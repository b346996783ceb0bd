"""
Tests for the spec compiler, the decompiler and custom-spec classification.
"""

import json

import pytest
from pydantic import ValidationError

from core.models import (
    AggregateTransform,
    BuilderState,
    CalculateTransform,
    ChartEncodings,
    EncodingConfig,
    FilterTransform,
    MarkConfig,
    TopNTransform,
)
from core.storage import DEFAULT_ROWS
from skills.classify import is_custom_spec
from skills.compile_spec import VEGA_LITE_SCHEMA, compile_spec
from skills.decompile_spec import decompile_spec
from skills.profile import infer_fields


@pytest.fixture
def fields():
    return infer_fields(DEFAULT_ROWS)


@pytest.fixture
def bar_state():
    return BuilderState(
        mark=MarkConfig(type="bar", stacked="zero"),
        encodings=ChartEncodings(
            x=EncodingConfig(field="Category"),
            y=EncodingConfig(field="Sales", aggregate="sum"),
            color=EncodingConfig(field="Region"),
        ),
        title="Sales by Category",
    )


class TestCompileSpec:
    """Tests for BuilderState -> Vega-Lite compilation."""

    def test_default_state(self, fields):
        """The default state compiles to a responsive bar chart."""
        spec = compile_spec(BuilderState(), fields)
        assert spec["$schema"] == VEGA_LITE_SCHEMA
        assert spec["data"] == {"name": "table"}
        assert spec["mark"] == {"type": "bar", "tooltip": True}
        assert "width" not in spec
        assert spec["height"] == 360
        assert spec["autosize"] == {"type": "fit", "contains": "padding"}
        assert spec["config"]["view"] == {"continuousHeight": 300}
        assert spec["config"]["axis"] == {"labelFontSize": 11, "titleFontSize": 12}
        assert "transform" not in spec
        assert "title" not in spec

    def test_auto_tooltip_uses_first_six_fields(self):
        """The automatic tooltip lists the first six fields."""
        rows = [{f"f{i}": i for i in range(8)}]
        spec = compile_spec(BuilderState(), infer_fields(rows))
        assert [t["field"] for t in spec["encoding"]["tooltip"]] == [f"f{i}" for i in range(6)]
        assert spec["encoding"]["tooltip"][0] == {"field": "f0", "type": "quantitative"}

    def test_explicit_tooltip_list(self, fields):
        """An explicit tooltip list compiles with its formats."""
        state = BuilderState(encodings=ChartEncodings(tooltip=[
            EncodingConfig(field="Sales", type="quantitative", aggregate="sum", axis={"format": ",.0f"}),
            EncodingConfig(field="Region", type="nominal"),
        ]))
        tooltip = compile_spec(state, fields)["encoding"]["tooltip"]
        assert tooltip == [
            {"field": "Sales", "type": "quantitative", "aggregate": "sum", "format": ",.0f"},
            {"field": "Region", "type": "nominal"},
        ]

    def test_channel_type_falls_back_to_inferred_type(self, bar_state, fields):
        """Channels without a type use the inferred field type."""
        enc = compile_spec(bar_state, fields)["encoding"]
        assert enc["x"] == {"field": "Category", "type": "nominal"}
        assert enc["y"]["type"] == "quantitative"
        assert enc["y"]["aggregate"] == "sum"
        assert enc["color"]["type"] == "nominal"

    def test_explicit_type_wins(self, fields):
        """An explicit channel type overrides inference."""
        state = BuilderState(encodings=ChartEncodings(x=EncodingConfig(field="Date", type="ordinal", time_unit="month")))
        x = compile_spec(state, fields)["encoding"]["x"]
        assert x == {"field": "Date", "type": "ordinal", "timeUnit": "month"}

    def test_count_without_field(self, fields):
        """A count aggregate compiles without a field."""
        state = BuilderState(encodings=ChartEncodings(
            x=EncodingConfig(field="Region"),
            y=EncodingConfig(aggregate="count"),
        ))
        y = compile_spec(state, fields)["encoding"]["y"]
        assert y == {"type": "quantitative", "aggregate": "count"}

    def test_empty_channels_are_skipped(self, fields):
        """Channels with no field and no aggregate are left out."""
        state = BuilderState(encodings=ChartEncodings(x=EncodingConfig(type="nominal"), tooltip=None))
        assert compile_spec(state, fields)["encoding"] == {}

    def test_channel_options_are_preserved(self, fields):
        """Bin, sort, scale, axis and legend pass through."""
        state = BuilderState(encodings=ChartEncodings(x=EncodingConfig(
            field="Sales",
            bin={"maxbins": 20},
            sort={"field": "Profit", "order": "descending"},
            scale={"zero": False},
            axis={"title": "Revenue", "labelAngle": -45},
            legend={"orient": "bottom"},
        )))
        x = compile_spec(state, fields)["encoding"]["x"]
        assert x["bin"] == {"maxbins": 20}
        assert x["sort"] == {"field": "Profit", "order": "descending"}
        assert x["scale"] == {"zero": False}
        assert x["axis"] == {"title": "Revenue", "labelAngle": -45}
        assert x["legend"] == {"orient": "bottom"}

    def test_stack_prefers_y(self, bar_state, fields):
        """Stacking lands on a quantitative y."""
        enc = compile_spec(bar_state, fields)["encoding"]
        assert enc["y"]["stack"] == "zero"
        assert "stack" not in enc["x"]

    def test_stack_falls_back_to_x(self, fields):
        """Stacking moves to x when only x is quantitative."""
        state = BuilderState(
            mark=MarkConfig(type="bar", stacked="normalize"),
            encodings=ChartEncodings(x=EncodingConfig(field="Sales"), y=EncodingConfig(field="Region")),
        )
        enc = compile_spec(state, fields)["encoding"]
        assert enc["x"]["stack"] == "normalize"
        assert "stack" not in enc["y"]

    def test_stack_dropped_without_quantitative_axis(self, fields):
        """No quantitative axis means no stack."""
        state = BuilderState(
            mark=MarkConfig(type="bar", stacked="zero"),
            encodings=ChartEncodings(x=EncodingConfig(field="Region"), y=EncodingConfig(field="Category")),
        )
        enc = compile_spec(state, fields)["encoding"]
        assert "stack" not in enc["x"] and "stack" not in enc["y"]

    def test_stack_none_compiles_to_null(self, fields):
        """The none stack mode compiles to an explicit null."""
        state = BuilderState(
            mark=MarkConfig(type="area", stacked="none"),
            encodings=ChartEncodings(x=EncodingConfig(field="Date"), y=EncodingConfig(field="Sales")),
        )
        y = compile_spec(state, fields)["encoding"]["y"]
        assert "stack" in y and y["stack"] is None

    def test_interpolate_only_for_line_and_area(self, fields):
        """Interpolation is emitted for line and area marks only."""
        line = BuilderState(mark=MarkConfig(type="line", interpolate="monotone", point=True, stroke_width=2))
        mark = compile_spec(line, fields)["mark"]
        assert mark == {"type": "line", "tooltip": True, "point": True, "strokeWidth": 2, "interpolate": "monotone"}
        bar = BuilderState(mark=MarkConfig(type="bar", interpolate="monotone"))
        assert "interpolate" not in compile_spec(bar, fields)["mark"]

    def test_transforms_in_order(self, fields):
        """Transforms compile in order and top-N expands to two steps."""
        state = BuilderState(transforms=[
            FilterTransform(expr="datum.Sales > 80"),
            TopNTransform(n=3, by_field="Sales"),
            CalculateTransform(calculate="datum.Profit / datum.Sales", **{"as": "Margin"}),
        ])
        assert compile_spec(state, fields)["transform"] == [
            {"filter": "datum.Sales > 80"},
            {"window": [{"op": "rank", "as": "__rank__"}], "sort": [{"field": "Sales", "order": "descending"}]},
            {"filter": "datum.__rank__ <= 3"},
            {"calculate": "datum.Profit / datum.Sales", "as": "Margin"},
        ]

    def test_aggregate_transform(self, fields):
        """Parallel aggregate lists zip into aggregate entries."""
        state = BuilderState(transforms=[AggregateTransform(
            groupby=["Region"], ops=["sum", "mean"], fields=["Sales", "Profit"], **{"as": ["total", "avg"]},
        )])
        assert compile_spec(state, fields)["transform"] == [{
            "aggregate": [
                {"op": "sum", "field": "Sales", "as": "total"},
                {"op": "mean", "field": "Profit", "as": "avg"},
            ],
            "groupby": ["Region"],
        }]

    def test_fixed_dimensions(self, fields):
        """Fixed sizes drop autosize and set both continuous defaults."""
        spec = compile_spec(BuilderState(width=600, height=400), fields)
        assert spec["width"] == 600 and spec["height"] == 400
        assert "autosize" not in spec
        assert spec["config"]["view"] == {"continuousWidth": 400, "continuousHeight": 300}

    def test_metadata(self, fields):
        """Title, description, background and padding are copied."""
        state = BuilderState(title="T", description="D", background="#fff", padding={"top": 5, "left": 10})
        spec = compile_spec(state, fields)
        assert spec["title"] == "T"
        assert spec["description"] == "D"
        assert spec["background"] == "#fff"
        assert spec["padding"] == {"top": 5, "left": 10}

    def test_deterministic(self, bar_state, fields):
        """Compiling twice gives identical JSON."""
        a = json.dumps(compile_spec(bar_state, fields))
        b = json.dumps(compile_spec(bar_state, fields))
        assert a == b


class TestBuilderInvariants:
    """Illegal mark combinations are rejected at construction."""

    def test_stacked_line_rejected(self):
        """Lines cannot stack."""
        with pytest.raises(ValidationError):
            MarkConfig(type="line", stacked="zero")

    def test_point_overlay_on_bar_rejected(self):
        """Bars cannot carry a point overlay."""
        with pytest.raises(ValidationError):
            MarkConfig(type="bar", point=True)

    def test_top_n_must_be_positive(self):
        """Top-N needs n of at least one."""
        with pytest.raises(ValidationError):
            TopNTransform(n=0, by_field="Sales")

    def test_aggregate_lengths_must_match(self):
        """Aggregate ops, fields and names must line up."""
        with pytest.raises(ValidationError):
            AggregateTransform(ops=["sum"], fields=["Sales", "Profit"], **{"as": ["a"]})

    def test_retarget_drops_unsupported_flags(self):
        """Retargeting a mark keeps only flags the new type supports."""
        mark = MarkConfig(type="bar", stacked="zero", opacity=0.5).retarget("line")
        assert mark.type == "line"
        assert mark.stacked is None
        assert mark.opacity == 0.5


class TestDecompileSpec:
    """Tests for Vega-Lite -> PartialBuilderState."""

    def test_string_mark(self):
        """A bare string mark is read as the mark type."""
        partial = decompile_spec({"mark": "line", "encoding": {}})
        assert partial.mark.type == "line"

    def test_encodings(self):
        """Channel options and the y stack are read back."""
        partial = decompile_spec({
            "mark": {"type": "bar"},
            "encoding": {
                "x": {"field": "Region", "type": "nominal", "sort": "descending"},
                "y": {"field": "Sales", "type": "quantitative", "aggregate": "sum", "stack": "normalize"},
            },
        })
        assert partial.encodings.x.field == "Region"
        assert partial.encodings.x.sort == "descending"
        assert partial.encodings.y.aggregate == "sum"
        assert partial.mark.stacked == "normalize"

    def test_stack_read_from_x_when_y_has_none(self):
        """The stack mode is read from x when y has none."""
        partial = decompile_spec({
            "mark": "bar",
            "encoding": {"x": {"field": "Sales", "type": "quantitative", "stack": "zero"}, "y": {"field": "Region"}},
        })
        assert partial.mark.stacked == "zero"

    def test_unsupported_flags_are_dropped(self):
        """Flags the mark type cannot carry are dropped."""
        partial = decompile_spec({"mark": {"type": "point", "point": True}, "encoding": {"y": {"stack": "zero"}}})
        assert partial.mark.type == "point"
        assert partial.mark.point is None
        assert partial.mark.stacked is None

    def test_filter_and_calculate_kept_topn_pair_skipped(self):
        """Filter and calculate survive, the top-N pair and fold do not."""
        partial = decompile_spec({
            "mark": "bar",
            "transform": [
                {"filter": "datum.Sales > 10"},
                {"window": [{"op": "rank", "as": "__rank__"}], "sort": [{"field": "Sales", "order": "descending"}]},
                {"filter": "datum.__rank__ <= 5"},
                {"calculate": "datum.a * 2", "as": "b"},
                {"fold": ["a", "b"]},
            ],
        })
        kinds = [t.kind for t in partial.transforms]
        assert kinds == ["filter", "calculate"]
        assert partial.transforms[1].as_ == "b"

    def test_layout_and_metadata(self):
        """Missing width reads as container and title objects yield their text."""
        partial = decompile_spec({"mark": "bar", "height": 250, "title": {"text": "Hello"}, "background": "white"})
        assert partial.width == "container"
        assert partial.height == 250
        assert partial.title == "Hello"
        assert partial.background == "white"
        assert partial.description is None

    def test_tooltip_format_maps_to_axis_format(self):
        """A tooltip format is kept as the axis format."""
        partial = decompile_spec({"mark": "bar", "encoding": {"tooltip": [{"field": "Sales", "format": ".2f"}]}})
        assert partial.encodings.tooltip[0].axis.format == ".2f"

    def test_invalid_pieces_are_omitted(self):
        """Unknown marks, types and widths are left out."""
        partial = decompile_spec({
            "mark": {"type": "geoshape"},
            "encoding": {"x": {"field": "a", "type": "bogus", "aggregate": "sum"}},
            "width": "auto",
        })
        assert partial.mark is None
        assert partial.encodings.x.field == "a"
        assert partial.encodings.x.type is None
        assert partial.encodings.x.aggregate == "sum"
        assert partial.width is None

    @pytest.mark.parametrize("spec", [None, [], "bar", 42, {"mark": 7, "encoding": "x", "transform": {}}])
    def test_never_raises(self, spec):
        """Malformed input yields a partial state, never an error."""
        decompile_spec(spec)

    def test_merge_overlays_only_carried_attributes(self, bar_state):
        """Merging replaces encodings whole and resets layout defaults."""
        partial = decompile_spec({"mark": "line", "encoding": {"x": {"field": "Date", "type": "temporal"}}})
        merged = bar_state.merge(partial)
        assert merged.mark.type == "line"
        assert merged.encodings.y is None
        assert merged.title is None
        assert merged.height == "container"


class TestRoundTrip:
    """decompile(compile(M)) recompiles to the same spec for representable states."""

    @pytest.mark.parametrize("state", [
        BuilderState(),
        BuilderState(
            mark=MarkConfig(type="bar", stacked="normalize", opacity=0.8),
            encodings=ChartEncodings(
                x=EncodingConfig(field="Category", sort={"field": "Sales", "order": "descending"}),
                y=EncodingConfig(field="Sales", aggregate="sum", axis={"title": "Total", "format": ",.0f"}),
                color=EncodingConfig(field="Region", scale={"domain": ["West", "East"], "range": ["#1f77b4", "#ff7f0e"]}),
            ),
            transforms=[FilterTransform(expr="datum.Sales > 50")],
            width=640,
            height=320,
            title="Sales",
            description="A chart",
        ),
        BuilderState(
            mark=MarkConfig(type="line", point=True, interpolate="monotone"),
            encodings=ChartEncodings(
                x=EncodingConfig(field="Date", type="temporal", time_unit="yearmonth"),
                y=EncodingConfig(field="Profit", aggregate="mean"),
                size=EncodingConfig(field="Sales"),
                tooltip=[EncodingConfig(field="Profit", type="quantitative", axis={"format": ".1f"})],
            ),
            transforms=[
                CalculateTransform(calculate="datum.Profit * 2", **{"as": "Double"}),
                AggregateTransform(ops=["sum"], fields=["Sales"], **{"as": ["total"]}, groupby=["Date"]),
            ],
            background="#fafafa",
            padding=8,
        ),
        BuilderState(
            mark=MarkConfig(type="area", stacked="none"),
            encodings=ChartEncodings(x=EncodingConfig(field="Date"), y=EncodingConfig(field="Sales", bin=True), tooltip=None),
        ),
    ])
    def test_round_trip(self, state, fields):
        """Recompiling a decompiled spec gives the same spec."""
        spec = compile_spec(state, fields)
        restored = BuilderState().merge(decompile_spec(spec))
        assert compile_spec(restored, fields) == spec


class TestIsCustomSpec:
    """Tests for custom-spec classification."""

    @pytest.mark.parametrize("key", ["facet", "layer", "hconcat", "vconcat", "concat", "repeat"])
    def test_composition_is_custom(self, key):
        """Any composition key marks a spec custom."""
        assert is_custom_spec({key: {}, "mark": "bar"})

    def test_simple_inline_spec_is_not_custom(self):
        """A single-view spec with inline data is not custom."""
        spec = {"mark": "bar", "encoding": {"x": {"field": "a"}}, "data": {"values": [{"a": 1}]}}
        assert not is_custom_spec(spec)

    def test_transform_count(self):
        """More than three transforms makes a spec custom."""
        assert not is_custom_spec({"mark": "bar", "transform": [{"filter": "true"}] * 3})
        assert is_custom_spec({"mark": "bar", "transform": [{"filter": "true"}] * 4})

    def test_remote_data_is_custom(self):
        """URL data makes a spec custom."""
        assert is_custom_spec({"mark": "bar", "data": {"url": "https://example.com/data.csv"}})

    def test_compiled_specs_are_not_custom(self, bar_state, fields):
        """Compiler output is never classified custom."""
        assert not is_custom_spec(compile_spec(bar_state, fields))

    @pytest.mark.parametrize("spec", [None, [], "facet"])
    def test_non_objects(self, spec):
        """Non-object values are not custom."""
        assert not is_custom_spec(spec)
