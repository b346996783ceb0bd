"""
Shared utility helpers.

Pure functions: no LLM, no I/O, no side effects.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Iterable, Optional

import numpy as np
import pandas as pd


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def title_case(text: str) -> str:
    """Capitalize the first letter of every whitespace-separated word."""
    return " ".join(w[:1].upper() + w[1:].lower() for w in text.split())


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert / delete / substitute, all cost 1)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cur.append(min(
                prev[j] + 1,
                cur[j - 1] + 1,
                prev[j - 1] + (ca != cb),
            ))
        prev = cur
    return prev[-1]


# ---------------------------------------------------------------------------
# Value classification
# ---------------------------------------------------------------------------

def is_null(value: Any) -> bool:
    """None and float NaN both count as missing."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NaT


def is_finite_number(value: Any) -> bool:
    """True for real, finite numbers. Booleans are not numbers here."""
    if isinstance(value, (bool, np.bool_)):
        return False
    if isinstance(value, (int, float, np.integer, np.floating)):
        return math.isfinite(float(value))
    return False


def is_date_like(value: Any) -> bool:
    return isinstance(value, (datetime, date, pd.Timestamp, np.datetime64))


def to_display(value: Any) -> str:
    """String form used for distinct-value counting and top values."""
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if isinstance(value, (np.integer, np.floating)):
        value = value.item()
    return str(value)


# ---------------------------------------------------------------------------
# Field name resolution
# ---------------------------------------------------------------------------

def _norm(s: str) -> str:
    return re.sub(r"[\s_\-]+", "", s.lower())


def resolve_field_name(name: Optional[str], candidates: Iterable[str], max_distance: int = 3) -> Optional[str]:
    """
    Resolve a user-typed field reference against known field names.

    Tries, in order: exact match, case-insensitive match, spacing/underscore
    tolerant match, a field name containing the reference, then the nearest name by edit
    distance within *max_distance*. Returns None when nothing is close enough.
    """
    if not name:
        return None
    names = [c for c in candidates if c]
    if not names:
        return None
    if name in names:
        return name

    key = name.strip().lower()
    for c in names:
        if c.lower() == key:
            return c

    target = _norm(name)
    if not target:
        return None
    for c in names:
        if _norm(c) == target:
            return c

    for c in names:
        norm_c = _norm(c)
        if target in norm_c:
            return c

    best: Optional[str] = None
    best_dist = max_distance + 1
    for c in names:
        d = levenshtein(key, c.lower())
        if d < best_dist:
            best, best_dist = c, d
    return best if best_dist <= max_distance else None
