"""Plain-text WhatsApp replies for analysis records."""

from __future__ import annotations

from typing import Any

from .numbers import format_number, round_half_up
from .records import CompositeRecord, FoodRecord, WorkoutRecord

UNRECOGNISED_REPLY = "Sorry, I couldn't understand that."
DAILY_REFERENCE = (
    "\n\n*Healthy Daily Reference* (average adult):\n"
    "Calories: ~2000 kcal\n"
    "Protein: ~75g\n"
    "Fat: ~65g\n"
    "Carbs: ~250g"
)
TRANSCRIPT_PREVIEW_CHARS = 240


def _workout_reply(record: WorkoutRecord) -> str:
    lines = []
    for activity in record.details:
        intensity = (
            f", {activity.intensity}"
            if activity.intensity and activity.intensity != "unknown"
            else ""
        )
        confidence = (
            f" (conf: {format_number(activity.confidence)})"
            if activity.confidence is not None
            else ""
        )
        assumptions = (
            f"\n   assumptions: {'; '.join(activity.assumptions)}"
            if activity.assumptions
            else ""
        )
        lines.append(
            f"• {activity.activity or 'Activity'}{intensity} — "
            f"{format_number(activity.duration_min)} min ≈ "
            f"{round_half_up(activity.calories_burned)} kcal{confidence}{assumptions}"
        )

    summary = f"Total estimated calories: {round_half_up(record.detail_calories)}."
    return "\n".join(["Workout:", *lines, summary])


def _food_reply(record: FoodRecord) -> str:
    lines = []
    total_calories = total_protein = total_fat = total_carbs = 0
    for item in record.details:
        calories = round_half_up(item.calories)
        protein = round_half_up(item.macros.protein)
        fat = round_half_up(item.macros.fat)
        carbs = round_half_up(item.macros.carbs)
        total_calories += calories
        total_protein += protein
        total_fat += fat
        total_carbs += carbs

        quantity = format_number(item.quantity)
        if item.quantity and item.unit:
            portion = f" ({quantity} {item.unit})"
        elif item.quantity:
            portion = f" ({quantity})"
        else:
            portion = ""
        lines.append(
            f"• {item.item or 'Item'}{portion} — {calories} kcal, "
            f"P:{protein}g, F:{fat}g, C:{carbs}g"
        )

    summary = (
        f"Totals — Calories: {total_calories}, Protein: {total_protein}g, "
        f"Fat: {total_fat}g, Carbs: {total_carbs}g"
    )
    return "\n".join(["Food:", *lines, summary]) + DAILY_REFERENCE


def compose(record: Any) -> str:
    """Render a food or workout record; anything else gets a short apology."""

    if isinstance(record, WorkoutRecord):
        return _workout_reply(record)
    if isinstance(record, FoodRecord):
        return _food_reply(record)
    return UNRECOGNISED_REPLY


def compose_composite(record: CompositeRecord) -> str:
    """Pick the reply for a voice note based on which sections carry data."""

    if record.has_food and record.has_workout:
        return f"{_food_reply(record.food)}\n\n{_workout_reply(record.workout)}"
    if record.has_food:
        return _food_reply(record.food)
    if record.has_workout:
        return _workout_reply(record.workout)
    preview = record.transcript[:TRANSCRIPT_PREVIEW_CHARS]
    return (
        "Sorry, I couldn't confidently extract food or workout from the voice note. "
        f'Transcript: "{preview}"\n'
        "Try a short 3–8s voice note or type it."
    )


__all__ = ["DAILY_REFERENCE", "UNRECOGNISED_REPLY", "compose", "compose_composite"]
