"""Local MET arithmetic that backs up the workout estimator.

The estimator prompt already asks for ``MET * 3.5 * weight_kg / 200`` per
minute; this module applies the same formula when the model leaves an
activity with a duration but no calories, so a logged workout never reads
0 kcal for time actually spent exercising.
"""

from __future__ import annotations

import logging
from typing import Sequence

from nutrilog.config.settings import ProfileConfig

from .numbers import finite_sum, round_half_up
from .records import WorkoutActivity, WorkoutRecord, WorkoutTotals

logger = logging.getLogger("nutrilog.pipeline")

NO_WORKOUT_ASSUMPTION = "no workout found"
FROM_DETAILS_ASSUMPTION = "calculated from details"
FROM_DETAILS_CONFIDENCE = 0.7

# Lowest plausible MET per activity keyword (Compendium of Physical Activities).
# Checked in order; the first keyword contained in the activity name wins.
_MET_TABLE: Sequence[tuple[str, float]] = (
    ("jump rope", 8.8),
    ("skipping", 8.8),
    ("hiit", 8.0),
    ("jog", 7.0),
    ("football", 7.0),
    ("soccer", 7.0),
    ("basketball", 6.0),
    ("run", 6.0),
    ("swim", 5.8),
    ("badminton", 5.5),
    ("hike", 5.3),
    ("tennis", 5.0),
    ("elliptical", 5.0),
    ("row", 4.8),
    ("cricket", 4.8),
    ("dance", 4.5),
    ("stair", 4.0),
    ("cycl", 3.5),
    ("bike", 3.5),
    ("spin", 3.5),
    ("strength", 3.5),
    ("weight", 3.5),
    ("lift", 3.5),
    ("gym", 3.5),
    ("pilates", 3.0),
    ("walk", 2.8),
    ("yoga", 2.5),
    ("stretch", 2.3),
)
DEFAULT_MET = 3.0


def lowest_plausible_met(activity: str) -> float:
    name = (activity or "").lower()
    for keyword, met in _MET_TABLE:
        if keyword in name:
            return met
    return DEFAULT_MET


def estimate_calories(met: float, duration_min: float, profile: ProfileConfig) -> int:
    """kcal = MET * 3.5 * weight_kg / 200 * minutes * device bias, at least 1."""

    if duration_min <= 0:
        return 0
    kcal = met * 3.5 * profile.weight_kg / 200 * duration_min * profile.device_adjust
    return max(1, round_half_up(kcal))


def fill_missing_calories(activity: WorkoutActivity, profile: ProfileConfig) -> WorkoutActivity:
    if activity.duration_min <= 0 or activity.calories_burned > 0:
        return activity
    met = lowest_plausible_met(activity.activity)
    kcal = estimate_calories(met, activity.duration_min, profile)
    logger.info(
        "Local MET estimate activity=%s minutes=%s met=%s kcal=%s",
        activity.activity,
        activity.duration_min,
        met,
        kcal,
    )
    return activity.model_copy(
        update={
            "calories_burned": float(kcal),
            "assumptions": [*activity.assumptions, f"estimated locally with MET {met}"],
        }
    )


def settle_workout(record: WorkoutRecord, profile: ProfileConfig) -> WorkoutRecord:
    """Apply the energy guarantees to a freshly coerced workout record.

    * every activity with minutes gets non-zero calories,
    * an empty record says "no workout found" with confidence 0,
    * zero totals are rebuilt from the activity calories.
    """

    if not record.details:
        assumptions = list(record.totals.assumptions)
        if NO_WORKOUT_ASSUMPTION not in assumptions:
            assumptions.append(NO_WORKOUT_ASSUMPTION)
        return record.model_copy(
            update={
                "totals": WorkoutTotals(
                    calories_burned=0, assumptions=assumptions, confidence=0.0
                )
            }
        )

    details = [fill_missing_calories(activity, profile) for activity in record.details]
    totals = record.totals
    detail_sum = finite_sum(activity.calories_burned for activity in details)
    if totals.calories_burned <= 0 and detail_sum > 0:
        totals = WorkoutTotals(
            calories_burned=round_half_up(detail_sum),
            assumptions=[*totals.assumptions, FROM_DETAILS_ASSUMPTION],
            confidence=(
                totals.confidence if totals.confidence is not None else FROM_DETAILS_CONFIDENCE
            ),
        )
    return record.model_copy(update={"details": details, "totals": totals})


__all__ = [
    "DEFAULT_MET",
    "FROM_DETAILS_ASSUMPTION",
    "NO_WORKOUT_ASSUMPTION",
    "estimate_calories",
    "fill_missing_calories",
    "lowest_plausible_met",
    "settle_workout",
]
