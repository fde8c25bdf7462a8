import math
import re
from datetime import date, datetime
from typing import Any

import numpy as np
import pandas as pd

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?$")
_BOOL_TEXT = {"true": True, "false": False}


def coerce_cell(val: Any) -> Any:
    """Turn a raw text cell into a number/bool when it reads unambiguously as one.

    Empty cells become None; anything else stays text.
    """
    if val is None:
        return None
    if not isinstance(val, str):
        return to_python_scalar(val)
    text = val.strip()
    if not text:
        return None
    lower = text.lower()
    if lower in _BOOL_TEXT:
        return _BOOL_TEXT[lower]
    if _INT_RE.match(text):
        # keep leading-zero codes ("007") as text
        digits = text.lstrip("+-")
        if len(digits) > 1 and digits.startswith("0"):
            return val
        return int(text)
    if _FLOAT_RE.match(text):
        num = float(text)
        return num if math.isfinite(num) else val
    return val


def to_python_scalar(val: Any) -> Any:
    """Convert numpy/pandas scalars into plain JSON-able Python values."""
    if val is None:
        return None
    if isinstance(val, (bool, np.bool_)):
        return bool(val)
    if isinstance(val, (int, np.integer)):
        return int(val)
    if isinstance(val, (float, np.floating)):
        f = float(val)
        return None if math.isnan(f) or math.isinf(f) else f
    if val is pd.NaT:
        return None
    if isinstance(val, (pd.Timestamp, datetime, date)):
        return val.isoformat()
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(val, str):
        return val
    return str(val)


def is_numeric_like(val: Any) -> bool:
    """True for real numbers (not bools) and strings that parse as a finite number."""
    if isinstance(val, bool):
        return False
    if isinstance(val, (int, float)):
        return math.isfinite(float(val))
    if isinstance(val, str):
        text = val.strip()
        if not text:
            return False
        try:
            return math.isfinite(float(text))
        except ValueError:
            return False
    return False
