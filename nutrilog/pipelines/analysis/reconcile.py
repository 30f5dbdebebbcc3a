"""Caption/vision merge for photo analyses.

The sender's caption is authoritative: its items are kept as written and a
vision item that looks like the same dish only contributes its assumptions.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from .numbers import finite_sum, format_number, round_half_up
from .records import FoodItem, FoodRecord, FoodTotals

logger = logging.getLogger("nutrilog.pipeline")

CAPTION_SOURCE = "user_caption"
CAPTION_CONFIDENCE_FLOOR = 0.9

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def normalize_name(name: str | None) -> str:
    return _NON_ALNUM.sub("", (name or "").lower()).strip()


def names_conflict(candidate: str, seen: str) -> bool:
    """Exact match, containment either way, or any shared word."""

    if not candidate or not seen:
        return False
    if candidate == seen:
        return True
    if candidate in seen or seen in candidate:
        return True
    return bool(set(candidate.split()) & set(seen.split()))


def _union(existing: Iterable[str], extra: Iterable[str]) -> list[str]:
    merged = list(dict.fromkeys(existing))
    for entry in extra:
        if entry not in merged:
            merged.append(entry)
    return merged


def reconcile(caption: FoodRecord | None, vision: FoodRecord) -> FoodRecord:
    """Merge caption and vision food records into one deduplicated record.

    Returns ``vision`` unchanged when neither side contributes a named item.
    """

    merged: list[FoodItem] = []
    merged_names: list[str] = []

    for item in caption.details if caption else []:
        name = normalize_name(item.item)
        if not name:
            continue
        merged.append(
            item.model_copy(
                update={
                    "source": CAPTION_SOURCE,
                    "confidence": max(CAPTION_CONFIDENCE_FLOOR, item.confidence),
                }
            )
        )
        merged_names.append(name)

    for item in vision.details:
        name = normalize_name(item.item)
        if not name:
            continue
        # merged_names doubles as the seen-name set, in insertion order
        index = next(
            (i for i, known in enumerate(merged_names) if names_conflict(name, known)),
            None,
        )
        if index is not None:
            target = merged[index]
            assumptions = _union(target.assumptions, item.assumptions)
            assumptions.append(f"vision_conf:{format_number(item.confidence)}")
            merged[index] = target.model_copy(update={"assumptions": assumptions})
            logger.info("Vision item %r folded into %r", item.item, target.item)
            continue
        merged.append(item)
        merged_names.append(name)

    if not merged:
        return vision

    calories = round_half_up(finite_sum(item.calories for item in merged))
    confidence = round(sum(item.confidence for item in merged) / len(merged), 3)
    assumptions = [
        entry
        for entry in [
            *(caption.totals.assumptions if caption else []),
            *vision.totals.assumptions,
        ]
        if entry
    ]
    return FoodRecord(
        details=merged,
        totals=FoodTotals(calories=calories, assumptions=assumptions, confidence=confidence),
    )


__all__ = ["CAPTION_SOURCE", "names_conflict", "normalize_name", "reconcile"]
