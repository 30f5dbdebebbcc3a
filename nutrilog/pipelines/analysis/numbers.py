"""Lenient numeric helpers shared by record coercion and calorie resolution."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable

_NON_NUMERIC = re.compile(r"[^0-9eE+.\-]")


def to_number(value: Any, default: float = 0.0) -> float:
    """Parse model output into a finite float.

    Finite ints/floats pass through, strings are stripped of everything except
    digits, sign, dot and exponent before parsing ("450 kcal" -> 450.0).
    Anything else, including NaN, infinities and booleans, yields ``default``.
    """

    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else default
    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        if not cleaned:
            return default
        try:
            parsed = float(cleaned)
        except ValueError:
            return default
        return parsed if math.isfinite(parsed) else default
    return default


def non_negative(value: Any) -> float:
    """Coerce to a finite number and clamp at zero."""

    return max(0.0, to_number(value, 0.0))


def clamp_unit(value: Any, default: float = 0.0) -> float:
    return min(1.0, max(0.0, to_number(value, default)))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like a calorie label would.

    Non-finite input rounds to 0.
    """

    if not math.isfinite(value):
        return 0
    return int(math.floor(value + 0.5))


def finite_sum(values: Iterable[float]) -> float:
    """Sum that reports 0.0 instead of overflowing to infinity."""

    total = sum(values, 0.0)
    return total if math.isfinite(total) else 0.0


def format_number(value: Any) -> str:
    """Render a number without a trailing ``.0`` (2.0 -> "2", 0.85 -> "0.85")."""

    number = to_number(value, 0.0)
    if number.is_integer():
        return str(int(number))
    return repr(number)


__all__ = [
    "to_number",
    "non_negative",
    "clamp_unit",
    "round_half_up",
    "finite_sum",
    "format_number",
]
