"""
Intent planner: free-text command -> ChartEditPlan.

The local planner is a fixed, ordered battery of regex matchers. Each matcher
looks at the whole command independently and contributes at most one edit
operation, so "change to line chart and color by Region" yields two.

A remote planner (see app/llm.py) implements the same ``ChartPlanner``
interface; callers choose one explicitly.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from core.models import (
    AddFilter,
    BuilderState,
    ChartEditPlan,
    DataField,
    MarkOptions,
    RemoveEncoding,
    SetAggregate,
    SetColorScheme,
    SetEncoding,
    SetMark,
    SetSeriesColors,
    SetSize,
    SetSort,
    SetTitle,
    SetTopN,
    SpecEditResult,
)
from core.utils import resolve_field_name, title_case

logger = logging.getLogger("uvicorn.error")

BASE_CONFIDENCE = 0.6
CONFIDENCE_STEP = 0.08

COLOR_WORDS: Dict[str, str] = {
    "blue": "#1f77b4",
    "orange": "#ff7f0e",
    "red": "#d62728",
    "green": "#2ca02c",
    "purple": "#9467bd",
    "brown": "#8c564b",
    "pink": "#e377c2",
    "gray": "#7f7f7f",
    "grey": "#7f7f7f",
    "yellow": "#bcbd22",
    "cyan": "#17becf",
    "black": "#111111",
    "white": "#ffffff",
}

_HEX_RE = re.compile(r"^#(?:[0-9a-f]{3}|[0-9a-f]{6})$", re.IGNORECASE)

_MARK_ALIASES = {"scatter": "point", "dot": "point", "column": "bar"}
_MARK = r"(line|bar|area|point|circle|square|tick|rect|rule|text|scatter|dot|column)"
_MARK_VERB_RE = re.compile(
    r"\b(?:change|switch|convert|turn)\s+(?:it\s+|this\s+|the\s+chart\s+)?(?:to|into)\s+(?:an?\s+)?" + _MARK + r"s?\b"
    r"|\b(?:make\s+it|set\s+(?:it\s+)?to|show\s+(?:it\s+)?as|use)\s+(?:an?\s+)?" + _MARK + r"s?\b"
)
_MARK_NOUN_RE = re.compile(r"\b" + _MARK + r"\s+(?:chart|plot|graph)\b")

_FIELD = r"([a-z0-9_]+)"

_AGG_WORDS = {
    "sum": "sum", "total": "sum", "mean": "mean", "average": "mean", "avg": "mean",
    "median": "median", "count": "count", "min": "min", "minimum": "min",
    "max": "max", "maximum": "max", "distinct": "distinct",
}

Matcher = Callable[[str, str, Sequence[str], BuilderState], Optional[Any]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def color_word_to_hex(word: str) -> str:
    """Map a basic color name to its hex value; anything else passes through."""
    w = word.strip()
    if _HEX_RE.match(w):
        return w
    return COLOR_WORDS.get(w.lower(), w)


def _order(word: Optional[str], default: str = "ascending") -> str:
    if not word:
        return default
    return "descending" if word.startswith("desc") else "ascending"


def _datum_ref(field: str) -> str:
    if re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", field):
        return f"datum.{field}"
    return "datum[" + repr(field) + "]"


def _literal(raw: str) -> str:
    value = raw.strip().strip("'\"")
    try:
        float(value)
        return value
    except ValueError:
        return "'" + value.replace("'", "\\'") + "'"


# ---------------------------------------------------------------------------
# Matchers (order matters only for the output order of operations)
# ---------------------------------------------------------------------------

def _match_mark(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = _MARK_VERB_RE.search(lower)
    word = (m.group(1) or m.group(2)) if m else None
    if word is None:
        m = _MARK_NOUN_RE.search(lower)
        word = m.group(1) if m else None
    if word is None:
        return None
    mark = _MARK_ALIASES.get(word, word)

    options: Dict[str, Any] = {}
    if "with points" in lower and mark in ("line", "area"):
        options["point"] = True
    if mark in ("bar", "area"):
        if re.search(r"\b(?:normali[sz]ed|percent(?:age)?)\b", lower):
            options["stacked"] = "normalize"
        elif re.search(r"\bunstacked\b", lower):
            options["stacked"] = "none"
        elif re.search(r"\bstacked\b", lower):
            options["stacked"] = "zero"
    return SetMark(mark=mark, options=MarkOptions(**options) if options else None)


def _match_color_by(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(r"\bcolou?r(?:\s+(?:the\s+)?(?:lines|bars|points|areas))?\s+by\s+" + _FIELD, lower)
    if not m:
        return None
    field = resolve_field_name(m.group(1), names)
    return SetEncoding(channel="color", field=field) if field else None


def _match_series_colors(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(r"\bmake\s+(?!it\b|an?\b|the\s+chart\b)(.+)", lower)
    if not m:
        return None
    colors: Dict[str, str] = {}
    for pair in re.split(r"\s*,\s*|\s+and\s+", m.group(1)):
        pm = re.match(r"^([a-z0-9_\-\s]+?)\s+(#[0-9a-f]{3,6}|[a-z0-9_\-]+)$", pair.strip())
        if pm:
            colors[title_case(pm.group(1).strip())] = color_word_to_hex(pm.group(2))
    return SetSeriesColors(colors=colors) if colors else None


def _match_top_n(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(r"\b(top|bottom)\s+(\d+)(?:\s+by\s+" + _FIELD + r")?", lower)
    if not m:
        return None
    n = int(m.group(2))
    if n <= 0:
        return None
    by = resolve_field_name(m.group(3), names) if m.group(3) else None
    order = "descending" if m.group(1) == "top" else "ascending"
    return SetTopN(n=n, by_field=by, order=order)


def _match_sort(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(r"\bsort(?:ed)?\s+by\s+" + _FIELD + r"(?:\s+(ascending|descending|asc|desc))?\b", lower)
    if m:
        by = resolve_field_name(m.group(1), names) or m.group(1)
        return SetSort(channel_or_field="y", by=by, order=_order(m.group(2)))
    m = re.search(r"\bsort(?:ed)?\s+(?:(x|y)\s+)?(ascending|descending|asc|desc)\b", lower)
    if m:
        return SetSort(channel_or_field=m.group(1) or "y", order=_order(m.group(2)))
    return None


def _match_use_as_color(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(r"\buse\s+" + _FIELD + r"\s+as\s+(?:the\s+)?colou?r\b", lower)
    if not m:
        return None
    field = resolve_field_name(m.group(1), names)
    return SetEncoding(channel="color", field=field) if field else None


def _match_scheme(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(r"\buse\s+(?:the\s+|a\s+)?([a-z0-9]+)\s+(?:colou?r\s+)?scheme\b", lower)
    return SetColorScheme(scheme=m.group(1)) if m else None


def _match_axis(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(r"\b(?:put|place|move|show|plot)\s+" + _FIELD + r"\s+on\s+(?:the\s+)?(x|y)(?:[\s-]*axis)?\b", lower)
    if not m:
        return None
    field = resolve_field_name(m.group(1), names)
    return SetEncoding(channel=m.group(2), field=field) if field else None


def _match_size_by(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(r"\bsize\s+by\s+" + _FIELD, lower)
    if not m:
        return None
    field = resolve_field_name(m.group(1), names)
    return SetEncoding(channel="size", field=field) if field else None


def _match_remove(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(r"\b(?:remove|clear|drop)\s+(?:the\s+)?(x|y|colou?r|size)(?:[\s-]*(?:axis|encoding|channel))?\b", lower)
    if not m:
        return None
    channel = "color" if m.group(1).startswith("colo") else m.group(1)
    return RemoveEncoding(channel=channel)


def _match_aggregate(text: str, lower: str, names: Sequence[str], state: BuilderState):
    words = "|".join(_AGG_WORDS)
    m = re.search(r"\b(" + words + r")\s+(?:for|on|of)\s+(?:the\s+)?(x|y)\b", lower)
    if not m:
        return None
    return SetAggregate(channel=m.group(2), aggregate=_AGG_WORDS[m.group(1)])


def _match_filter(text: str, lower: str, names: Sequence[str], state: BuilderState):
    m = re.search(
        r"\b(?:filter|only\s+show|keep)\s+(?:to\s+|where\s+|rows\s+where\s+)?([A-Za-z0-9_]+)\s*(>=|<=|==|!=|>|<|=)\s*(.+?)\s*(?:\band\b|$)",
        text,
        re.IGNORECASE,
    )
    if not m:
        return None
    field = resolve_field_name(m.group(1), names)
    if not field:
        return None
    op = "==" if m.group(2) == "=" else m.group(2)
    return AddFilter(expr=f"{_datum_ref(field)} {op} {_literal(m.group(3))}")


def _match_size(text: str, lower: str, names: Sequence[str], state: BuilderState):
    width: Any = None
    height: Any = None
    m = re.search(r"\bsize\s+(?:to\s+)?(\d+)\s*[x×]\s*(\d+)\b", lower)
    if m:
        width, height = int(m.group(1)), int(m.group(2))
    else:
        w = re.search(r"\bwidth\s+(?:to\s+|of\s+)?(\d+)\b", lower)
        h = re.search(r"\bheight\s+(?:to\s+|of\s+)?(\d+)\b", lower)
        width = int(w.group(1)) if w else None
        height = int(h.group(1)) if h else None
    if re.search(r"\b(?:full[\s-]width|fill\s+(?:the\s+)?container)\b", lower):
        width = "container"
    if width is None and height is None:
        return None
    return SetSize(width=width, height=height)


MATCHERS: List[Matcher] = [
    _match_mark,
    _match_color_by,
    _match_series_colors,
    _match_top_n,
    _match_sort,
    _match_use_as_color,
    _match_scheme,
    _match_axis,
    _match_size_by,
    _match_remove,
    _match_aggregate,
    _match_filter,
    _match_size,
]

_TITLE_RE = re.compile(r"\bset\s+(?:the\s+)?title\s+to\s+['\"]?([^'\"\n]+)['\"]?", re.IGNORECASE)
_EDGE_CONNECTIVE_RE = re.compile(r"^(?:\s*(?:,|\band\b))+\s*|\s*(?:(?:,|\band\b)\s*)+$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def confidence_for(n_ops: int) -> float:
    return round(min(1.0, BASE_CONFIDENCE + CONFIDENCE_STEP * n_ops), 2)


def plan_command(command: str, field_names: Sequence[str], state: BuilderState) -> ChartEditPlan:
    """
    Parse *command* into a ChartEditPlan with the local pattern matchers.

    A command that matches nothing yields an empty plan at base confidence.
    """
    text = (command or "").strip()

    # the title text is taken verbatim, and masked so its words do not trigger other matchers
    title_op = None
    tm = _TITLE_RE.search(text)
    if tm:
        title_op = SetTitle(title=tm.group(1).strip())
        text = (text[:tm.start()] + text[tm.end():]).strip()
        text = _EDGE_CONNECTIVE_RE.sub("", text)
    lower = text.lower()

    ops: List[Any] = [title_op] if title_op is not None else []
    for matcher in MATCHERS:
        op = matcher(text, lower, field_names, state)
        if op is not None:
            ops.append(op)

    if not any(isinstance(o, SetMark) for o in ops) and re.search(r"\blines\b", lower):
        ops.append(SetMark(mark="line"))

    plan = ChartEditPlan(intent_text=command, confidence=confidence_for(len(ops)), operations=ops)
    logger.debug("plan_command: %r -> %s", command, [o.op for o in ops])
    return plan


@runtime_checkable
class ChartPlanner(Protocol):
    async def plan(
        self,
        command: str,
        field_names: Sequence[str],
        state: BuilderState,
        fields: Sequence[DataField] = (),
    ) -> ChartEditPlan:
        ...


@runtime_checkable
class SpecEditor(Protocol):
    async def edit_spec(
        self,
        command: str,
        spec: Dict[str, Any],
        fields: Sequence[DataField] = (),
    ) -> SpecEditResult:
        ...


class PatternPlanner:
    """The local regex battery exposed through the async planner interface."""

    name = "pattern"

    async def plan(
        self,
        command: str,
        field_names: Sequence[str],
        state: BuilderState,
        fields: Sequence[DataField] = (),
    ) -> ChartEditPlan:
        return plan_command(command, field_names, state)
