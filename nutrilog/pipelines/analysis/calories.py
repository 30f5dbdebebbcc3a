"""Single energy figure for a record, used when the analysis is logged.

Model output is inconsistent about where it puts the number, so every place a
total could live is a candidate and the largest positive one wins.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Iterable, Mapping

from pydantic import BaseModel

from .numbers import round_half_up, to_number

_LAST_RESORT_TOKEN = re.compile(r"(\d{2,5}(?:[.,]\d+)?)")
_TOTAL_KEYS = ("calories_burned", "calories")


def _as_mapping(record: Any) -> Any:
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    return record


def _detail_sum(details: Any) -> float:
    if not isinstance(details, list):
        return 0.0
    total = 0.0
    for entry in details:
        if not isinstance(entry, Mapping):
            continue
        if entry.get("calories_burned") is not None and to_number(entry["calories_burned"]):
            total += to_number(entry["calories_burned"])
        elif entry.get("calories") is not None and to_number(entry["calories"]):
            total += to_number(entry["calories"])
        elif entry.get("calories_text") is not None:
            total += to_number(entry["calories_text"])
    return total if math.isfinite(total) else 0.0


def _totals_candidates(section: Any) -> Iterable[float]:
    if not isinstance(section, Mapping):
        return
    totals = section.get("totals")
    if not isinstance(totals, Mapping):
        return
    for key in _TOTAL_KEYS:
        if totals.get(key) is not None:
            yield to_number(totals[key])


def _candidates(data: Mapping[str, Any]) -> list[float]:
    candidates: list[float] = []
    candidates.extend(_totals_candidates(data))
    for nested in ("workout", "food"):
        candidates.extend(_totals_candidates(data.get(nested)))

    detail_sources = [data.get("details")]
    for nested in ("workout", "food"):
        section = data.get(nested)
        if isinstance(section, Mapping):
            detail_sources.append(section.get("details"))
    for details in detail_sources:
        summed = _detail_sum(details)
        if summed > 0:
            candidates.append(summed)
    return candidates


def resolve_total_energy(record: Any) -> int:
    """Return a non-negative integer calorie figure for any record shape."""

    data = _as_mapping(record)
    if not isinstance(data, Mapping):
        return 0

    positives = [value for value in _candidates(data) if 0 < value < math.inf]
    if positives:
        return round_half_up(max(positives))

    try:
        serialised = json.dumps(data, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return 0
    match = _LAST_RESORT_TOKEN.search(serialised)
    if match:
        value = to_number(match.group(1).replace(",", "."))
        if value > 0:
            return round_half_up(value)
    return 0


__all__ = ["resolve_total_energy"]
