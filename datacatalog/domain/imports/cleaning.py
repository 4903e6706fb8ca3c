"""
Cell value cleaning for imported rows.

Raw cells arrive as strings (or occasionally other primitives when rows come
from an in-memory source). ``None`` always means "missing" and is never an
error; blank strings mean "no value" for categorical and numerical columns.
"""
import math
import re
from typing import Any, Optional

_NUMERIC_PUNCTUATION = re.compile(r"[$,%]")


def is_missing(value: Any) -> bool:
    return value is None


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def clean_numerical(value: Any) -> float:
    """
    Convert a raw numerical cell to a float.

    Currency and percent punctuation (``$``, ``,``, ``%``) is stripped before
    parsing. Anything that still is not a finite number yields ``math.nan``;
    callers treat NaN as a validation failure.
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = _NUMERIC_PUNCTUATION.sub("", str(value)).strip()
        try:
            number = float(cleaned)
        except ValueError:
            return math.nan
    return number if math.isfinite(number) else math.nan


def is_valid_number(number: float) -> bool:
    return not math.isnan(number)


def clean_categorical(value: Any) -> Optional[str]:
    """Return the attribute lookup key for a cell, or None for missing/blank cells."""
    if is_blank(value):
        return None
    return str(value).strip()


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)
