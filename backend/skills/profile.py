"""
Field inference skill.

Derives a semantic type and summary statistics for every column of a row
dataset. Only the first ``SAMPLE_ROWS`` rows are inspected.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Sequence

import pandas as pd

from core.models import DataField, FieldStats, FieldType, TopValue
from core.utils import is_date_like, is_finite_number, is_null, to_display

SAMPLE_ROWS = 100
TYPE_THRESHOLD = 0.6
ORDINAL_MAX_UNIQUE = 20
ORDINAL_MAX_RATIO = 0.5
TOP_VALUES = 10

_DATE_RE = re.compile(r"\d{4}[-/]\d{2}[-/]\d{2}")


# ---------------------------------------------------------------------------
# Type detection
# ---------------------------------------------------------------------------

def _parses_as_date(value: Any) -> bool:
    if is_date_like(value):
        return True
    if not isinstance(value, str) or not _DATE_RE.search(value):
        return False
    return pd.notna(pd.to_datetime(value, errors="coerce"))


def infer_field_type(samples: Sequence[Any]) -> FieldType:
    """Classify one column from its sample values."""
    valid = [v for v in samples if not is_null(v)]
    if not valid:
        return FieldType.nominal

    numeric = sum(1 for v in valid if is_finite_number(v))
    if numeric > len(valid) * TYPE_THRESHOLD:
        return FieldType.quantitative

    dates = sum(1 for v in valid if _parses_as_date(v))
    if dates > len(valid) * TYPE_THRESHOLD:
        return FieldType.temporal

    unique = {to_display(v) for v in valid}
    if len(unique) <= ORDINAL_MAX_UNIQUE and len(unique) < len(valid) * ORDINAL_MAX_RATIO:
        return FieldType.ordinal

    return FieldType.nominal


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

def field_stats(samples: Sequence[Any], inferred: FieldType) -> FieldStats:
    valid = [v for v in samples if not is_null(v)]
    labels = pd.Series([to_display(v) for v in valid], dtype=object)

    stats: Dict[str, Any] = {
        "null_count": len(samples) - len(valid),
        "unique_count": int(labels.nunique()),
    }

    if inferred == FieldType.quantitative:
        nums = [float(v) for v in valid if is_finite_number(v)]
        if nums:
            stats["min"] = min(nums)
            stats["max"] = max(nums)

    if inferred in (FieldType.nominal, FieldType.ordinal) and len(labels):
        # value_counts(sort=False) keeps first-seen order; the stable sort keeps it for ties
        counts = labels.value_counts(sort=False)
        counts = counts.sort_values(ascending=False, kind="stable").head(TOP_VALUES)
        stats["top_values"] = [TopValue(value=str(k), count=int(c)) for k, c in counts.items()]

    return FieldStats(**stats)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def infer_fields(rows: Sequence[Dict[str, Any]]) -> List[DataField]:
    """
    Infer one DataField per column observed in the first 100 rows.

    Columns are returned in first-seen order. A key missing from a row counts
    as a null for that row. An empty dataset yields an empty list.
    """
    sample = [r for r in list(rows)[:SAMPLE_ROWS] if isinstance(r, dict)]
    if not sample:
        return []

    df = pd.DataFrame.from_records(sample).astype(object)

    fields: List[DataField] = []
    for name in df.columns:
        values = [None if is_null(v) else v for v in df[name].tolist()]
        inferred = infer_field_type(values)
        fields.append(DataField(
            name=str(name),
            inferred_type=inferred,
            stats=field_stats(values, inferred),
        ))
    return fields
