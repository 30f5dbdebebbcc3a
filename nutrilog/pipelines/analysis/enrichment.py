"""Second-chance passes for records that came back without energy figures.

Runs on the text and transcript paths after extraction:

* food: items exist but every calorie is 0 -> look each item up on its own;
* workout: activities exist but totals are 0 -> ask the estimator again, and
  when durations are still missing scan the source text for them.
"""

from __future__ import annotations

import logging
import re

from nutrilog.config.settings import ProfileConfig

from .energy import fill_missing_calories
from .numbers import finite_sum, round_half_up, to_number
from .records import FoodItem, FoodRecord, FoodTotals, Macros, WorkoutRecord, WorkoutTotals

logger = logging.getLogger("nutrilog.pipeline")

PER_ITEM_LOOKUP_ASSUMPTION = "per-item nutrition lookup attempted"
DURATION_SCAN_ASSUMPTION = "duration parsed from message text"

_MINUTE_TOKEN = re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:m(?:in(?:utes?)?)?\.?)", re.IGNORECASE)
_HOUR_TOKEN = re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:h(?:our|rs?)?\.?)", re.IGNORECASE)
_LOOSE_MINUTE_TOKEN = re.compile(r"(\d{1,3})\s*(?:mins?|minutes?|m)", re.IGNORECASE)


def _merge_looked_up(original: FoodItem, found: FoodItem) -> FoodItem:
    """Prefer the looked-up values, keeping the original's where the lookup is empty."""

    return FoodItem(
        item=found.item or original.item,
        quantity=found.quantity or original.quantity,
        unit=found.unit or original.unit,
        calories=found.calories or original.calories,
        macros=Macros(
            protein=found.macros.protein or original.macros.protein,
            fat=found.macros.fat or original.macros.fat,
            carbs=found.macros.carbs or original.macros.carbs,
        ),
        brand=found.brand or original.brand,
        source=found.source or original.source,
        confidence=found.confidence or original.confidence,
        assumptions=found.assumptions or original.assumptions,
    )


async def enrich_food(record: FoodRecord, extractor) -> FoodRecord:
    if not record.details or record.detail_calories > 0:
        return record

    logger.info("Food items without calories, looking up %d items individually", len(record.details))
    enriched: list[FoodItem] = []
    for item in record.details:
        if not item.item:
            enriched.append(item)
            continue
        try:
            looked_up = await extractor.extract_food(item.item)
        except Exception as exc:
            logger.warning("Per-item lookup failed for %r: %s", item.item, exc)
            enriched.append(item)
            continue
        enriched.append(
            _merge_looked_up(item, looked_up.details[0]) if looked_up.details else item
        )

    total = finite_sum(item.calories for item in enriched)
    logger.info("Per-item lookup complete, new total calories=%s", total)
    return FoodRecord(
        details=enriched,
        totals=FoodTotals(
            calories=total,
            assumptions=[*record.totals.assumptions, PER_ITEM_LOOKUP_ASSUMPTION],
            confidence=record.totals.confidence,
        ),
    )


def parse_duration_tokens(text: str) -> list[float]:
    """Minute and hour mentions in ``text``, in minutes (minutes first, then hours)."""

    found = [
        float(round_half_up(to_number(match.group(1).replace(",", "."))))
        for match in _MINUTE_TOKEN.finditer(text)
    ]
    found.extend(
        float(round_half_up(to_number(match.group(1).replace(",", ".")) * 60))
        for match in _HOUR_TOKEN.finditer(text)
    )
    if not found:
        found = [to_number(match.group(1)) for match in _LOOSE_MINUTE_TOKEN.finditer(text)]
    return found


def backfill_durations(record: WorkoutRecord, text: str, profile: ProfileConfig) -> WorkoutRecord:
    """Last-resort heuristic: take durations straight from the message text.

    Only used when the estimator has twice failed to report any minutes.
    Durations are assigned by position, reusing the last one found when there
    are more activities than mentions.
    """

    durations = parse_duration_tokens(text or "")
    if not durations:
        logger.info("No durations found in message text")
        return record

    logger.info("Durations parsed from message text (min): %s", durations)
    details = []
    for index, activity in enumerate(record.details):
        minutes = durations[index] if index < len(durations) else durations[-1]
        updated = activity.model_copy(
            update={
                "duration_min": minutes or activity.duration_min,
                "assumptions": [*activity.assumptions, DURATION_SCAN_ASSUMPTION],
            }
        )
        details.append(fill_missing_calories(updated, profile))

    totals = record.totals
    detail_sum = finite_sum(activity.calories_burned for activity in details)
    if detail_sum > 0:
        totals = totals.model_copy(update={"calories_burned": float(round_half_up(detail_sum))})
    return record.model_copy(update={"details": details, "totals": totals})


async def enrich_workout(record: WorkoutRecord, source_text: str, extractor) -> WorkoutRecord:
    if not record.details or record.totals.calories_burned > 0:
        return record

    logger.info("Workout activities without calories, re-running the estimator")
    try:
        estimate = await extractor.extract_workout(text=source_text)
    except Exception as exc:
        logger.warning("Workout re-estimate failed: %s", exc)
        estimate = None

    enriched = record
    if estimate is not None:
        totals = WorkoutTotals(
            calories_burned=estimate.totals.calories_burned or record.totals.calories_burned,
            assumptions=[*record.totals.assumptions, *estimate.totals.assumptions],
            confidence=(
                record.totals.confidence
                if record.totals.confidence is not None
                else estimate.totals.confidence
            ),
        )
        enriched = record.model_copy(
            update={"details": estimate.details or record.details, "totals": totals}
        )

    if sum(activity.duration_min for activity in enriched.details) == 0 and source_text.strip():
        enriched = backfill_durations(enriched, source_text, extractor.profile)
    return enriched


__all__ = [
    "PER_ITEM_LOOKUP_ASSUMPTION",
    "backfill_durations",
    "enrich_food",
    "enrich_workout",
    "parse_duration_tokens",
]
