"""Second-chance passes for records without energy figures."""

from __future__ import annotations

import json

import pytest

from conftest import FakeLlm
from nutrilog.pipelines.analysis.enrichment import (
    DURATION_SCAN_ASSUMPTION,
    PER_ITEM_LOOKUP_ASSUMPTION,
    backfill_durations,
    enrich_food,
    enrich_workout,
    parse_duration_tokens,
)
from nutrilog.pipelines.analysis.extraction import Extractor
from nutrilog.pipelines.analysis.records import FoodRecord, WorkoutRecord
from nutrilog.services.llm_client import LlmInvocationError


def _food_output(item: str, calories: float) -> str:
    return json.dumps(
        {
            "type": "food",
            "details": [{"item": item, "calories": calories, "macros": {"protein": 4}}],
            "totals": {"calories": calories},
        }
    )


def test_parse_duration_tokens():
    assert parse_duration_tokens("ran 30 min and walked 1 hour") == [30.0, 60.0]
    assert parse_duration_tokens("swam 1,5 hrs") == [90.0]
    assert parse_duration_tokens("just stretched") == []


def test_backfill_assigns_by_position_and_reuses_last(profile):
    record = WorkoutRecord.model_validate(
        {
            "details": [{"activity": "yoga"}, {"activity": "walking"}],
            "totals": {"calories_burned": 0},
        }
    )

    filled = backfill_durations(record, "yoga 20 min then a walk", profile)

    assert [activity.duration_min for activity in filled.details] == [20.0, 20.0]
    assert all(DURATION_SCAN_ASSUMPTION in a.assumptions for a in filled.details)
    # yoga: 2.5 MET -> 61.25, walking: 2.8 MET -> 68.6
    assert [a.calories_burned for a in filled.details] == [61.0, 69.0]
    assert filled.totals.calories_burned == 130.0


@pytest.mark.asyncio
async def test_food_items_looked_up_individually(profile, bedrock_config):
    llm = FakeLlm(_food_output("steamed rice", 200), LlmInvocationError("throttled"))
    extractor = Extractor(llm, bedrock_config, profile)
    record = FoodRecord.model_validate(
        {"details": [{"item": "rice"}, {"item": "dal"}], "totals": {"assumptions": ["home"]}}
    )

    enriched = await enrich_food(record, extractor)

    assert [item.item for item in enriched.details] == ["steamed rice", "dal"]
    assert enriched.details[0].calories == 200
    assert enriched.details[0].macros.protein == 4
    assert enriched.details[1].calories == 0
    assert enriched.totals.calories == 200
    assert enriched.totals.assumptions == ["home", PER_ITEM_LOOKUP_ASSUMPTION]
    assert "rice" in llm.calls[0]["user_prompt"]
    assert "dal" in llm.calls[1]["user_prompt"]


@pytest.mark.asyncio
async def test_food_with_calories_is_left_alone(profile, bedrock_config):
    llm = FakeLlm()
    record = FoodRecord.model_validate({"details": [{"item": "apple", "calories": 95}]})

    assert await enrich_food(record, Extractor(llm, bedrock_config, profile)) is record
    assert llm.calls == []


@pytest.mark.asyncio
async def test_workout_durations_scanned_when_estimator_gives_nothing(profile, bedrock_config):
    extractor = Extractor(FakeLlm("not json"), bedrock_config, profile)
    record = WorkoutRecord.model_validate(
        {
            "details": [{"activity": "running", "duration_min": 0, "calories_burned": 0}],
            "totals": {"calories_burned": 0},
        }
    )

    enriched = await enrich_workout(record, "ran for 20 min", extractor)

    activity = enriched.details[0]
    assert activity.duration_min == 20.0
    assert activity.calories_burned == 147.0
    assert enriched.totals.calories_burned == 147.0
    assert "fallback" in enriched.totals.assumptions


@pytest.mark.asyncio
async def test_workout_re_estimate_replaces_empty_totals(profile, bedrock_config):
    output = json.dumps(
        {
            "type": "workout",
            "details": [{"activity": "cycling", "duration_min": 40, "calories_burned": 280}],
            "totals": {"calories_burned": 280, "confidence": 0.8},
        }
    )
    extractor = Extractor(FakeLlm(output), bedrock_config, profile)
    record = WorkoutRecord.model_validate(
        {"details": [{"activity": "cycling"}], "totals": {"calories_burned": 0}}
    )

    enriched = await enrich_workout(record, "cycled 40 minutes", extractor)

    assert enriched.totals.calories_burned == 280
    assert enriched.totals.confidence == 0.8
    assert enriched.details[0].duration_min == 40
