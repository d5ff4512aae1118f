"""Numeric helper utilities."""

from __future__ import annotations

import math
from typing import Any, Optional

__all__ = ["safe_float", "finite_number", "format_grouped"]


def safe_float(value: Any) -> Optional[float]:
    """Best-effort conversion to float returning None on failure."""

    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def finite_number(value: Any) -> Optional[float]:
    """Like :func:`safe_float` but also rejects booleans, blanks, NaN and infinities."""

    if isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    number = safe_float(value)
    if number is None or not math.isfinite(number):
        return None
    return number


def format_grouped(value: float, max_decimals: int = 3) -> str:
    """Format with thousands separators and at most ``max_decimals`` trailing digits.

    ``1234567.5`` becomes ``"1,234,567.5"`` and ``5000.0`` becomes ``"5,000"``.
    """

    rendered = f"{value:,.{max_decimals}f}"
    if "." in rendered:
        rendered = rendered.rstrip("0").rstrip(".")
    if rendered in {"-0", ""}:
        return "0"
    return rendered
