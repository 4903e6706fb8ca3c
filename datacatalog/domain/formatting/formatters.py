"""Display formatting of numerical values according to a variable's format."""
import math
from typing import Any, Callable, Dict, Optional

Formatter = Callable[[float, Optional[Dict[str, Any]]], str]


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return math.isnan(float(value))
    except (TypeError, ValueError):
        return True


def format_number(value: Any, options: Optional[Dict[str, Any]] = None) -> str:
    """Format a number; ``round`` gives decimal places, ``pretty`` adds thousands separators."""
    if _is_missing(value):
        return ""
    options = options or {}
    processed = float(value)

    decimals = options.get("round")
    if decimals:
        processed = round(processed, decimals)

    if processed.is_integer():
        processed = int(processed)

    if options.get("pretty"):
        return f"{processed:,}"
    return str(processed)


def format_percent(value: Any, options: Optional[Dict[str, Any]] = None) -> str:
    """Format a ratio as a percentage (0.5 -> ``50%``)."""
    if _is_missing(value):
        return ""
    options = options or {}

    # Round to 6 places first to drop float noise from the multiplication.
    processed = round(float(value) * 100, 6)

    decimals = options.get("round")
    if decimals:
        processed = round(processed, decimals)

    if processed.is_integer():
        processed = int(processed)
    return f"{processed}%"


DEFAULT_FORMATTERS: Dict[str, Formatter] = {
    "number": format_number,
    "percent": format_percent,
}


class DataFormatter:
    def __init__(self, formatters: Optional[Dict[str, Formatter]] = None):
        self.formatters = formatters if formatters is not None else dict(DEFAULT_FORMATTERS)

    def format(self, variable, value: Any) -> str:
        if _is_missing(value):
            return ""
        if not variable.format:
            return format_number(value)

        formatter = self.formatters.get(variable.format.type)
        if formatter is None:
            raise ValueError(f"Invalid format type, or missing formatter: {variable.format.type}")
        return formatter(value, variable.format.options)
