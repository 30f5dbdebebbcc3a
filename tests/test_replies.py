"""Plain-text WhatsApp replies."""

from __future__ import annotations

from nutrilog.pipelines.analysis.orchestrator import UNEXPECTED_FORMAT_REPLY, reply_for
from nutrilog.pipelines.analysis.records import (
    CompositeRecord,
    FoodRecord,
    WorkoutRecord,
    empty_food_record,
)
from nutrilog.pipelines.analysis.replies import (
    DAILY_REFERENCE,
    UNRECOGNISED_REPLY,
    compose,
    compose_composite,
)

FOOD = FoodRecord.model_validate(
    {
        "details": [
            {
                "item": "idli",
                "quantity": 2,
                "unit": "pcs",
                "calories": 116.4,
                "macros": {"protein": 4.2, "fat": 0.5, "carbs": 24.6},
            },
            {"item": "sambar", "calories": 90.5, "macros": {"protein": 3.5, "fat": 2, "carbs": 12}},
        ]
    }
)
WORKOUT = WorkoutRecord.model_validate(
    {
        "details": [
            {
                "activity": "running",
                "intensity": "moderate",
                "duration_min": 30,
                "calories_burned": 300,
                "confidence": 0.8,
                "assumptions": ["treadmill"],
            },
            {"activity": "stretching", "duration_min": 10.5, "calories_burned": 27},
        ]
    }
)


def test_empty_food_record_reply():
    reply = compose(empty_food_record())

    assert reply == (
        "Food:\nTotals — Calories: 0, Protein: 0g, Fat: 0g, Carbs: 0g" + DAILY_REFERENCE
    )


def test_food_reply_rounds_each_item_before_summing():
    reply = compose(FOOD)

    lines = reply.split("\n")
    assert lines[0] == "Food:"
    assert lines[1] == "• idli (2 pcs) — 116 kcal, P:4g, F:1g, C:25g"
    assert lines[2] == "• sambar — 91 kcal, P:4g, F:2g, C:12g"
    assert lines[3] == "Totals — Calories: 207, Protein: 8g, Fat: 3g, Carbs: 37g"
    assert reply.endswith(DAILY_REFERENCE)


def test_workout_reply_lists_activities():
    reply = compose(WORKOUT)

    assert reply == (
        "Workout:\n"
        "• running, moderate — 30 min ≈ 300 kcal (conf: 0.8)\n"
        "   assumptions: treadmill\n"
        "• stretching — 10.5 min ≈ 27 kcal\n"
        "Total estimated calories: 327."
    )


def test_empty_workout_reply_has_no_blank_line():
    assert compose(WorkoutRecord()) == "Workout:\nTotal estimated calories: 0."


def test_unknown_values_get_apology():
    assert compose({"type": "food"}) == UNRECOGNISED_REPLY
    assert reply_for(None) == UNEXPECTED_FORMAT_REPLY


def test_composite_reply_combines_sections():
    both = CompositeRecord(food=FOOD, workout=WORKOUT, transcript="...")

    assert compose_composite(both) == f"{compose(FOOD)}\n\n{compose(WORKOUT)}"
    assert reply_for(CompositeRecord(food=FOOD)) == compose(FOOD)
    assert reply_for(CompositeRecord(workout=WORKOUT)) == compose(WORKOUT)


def test_composite_without_data_quotes_transcript_preview():
    transcript = "hmm " * 100
    reply = compose_composite(CompositeRecord(transcript=transcript))

    assert reply.startswith("Sorry, I couldn't confidently extract food or workout")
    assert f'Transcript: "{transcript.strip()[:240]}"' in reply


def test_workout_total_that_overflows_is_reported_as_zero():
    record = WorkoutRecord.model_validate(
        {
            "details": [
                {"activity": "run", "duration_min": 30, "calories_burned": 1e308},
                {"activity": "swim", "duration_min": 30, "calories_burned": 1e308},
            ]
        }
    )

    reply = compose(record)

    assert reply.endswith("Total estimated calories: 0.")
