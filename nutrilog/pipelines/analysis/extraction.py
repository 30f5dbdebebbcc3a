"""Structured extraction (Stage 04): model output -> typed records.

Shape problems never escape this module: unparseable or mistyped output is
logged as a ``MalformedExtraction`` and replaced by an empty record of the
expected type. Transport failures (``LlmInvocationError``) do propagate.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from nutrilog.config.settings import BedrockConfig, ProfileConfig
from nutrilog.services.llm_client import BedrockLlmClient
from nutrilog.services.response_contract import ResponseContractError, load_json_object

from .energy import settle_workout
from .errors import MalformedExtraction
from .numbers import finite_sum
from .prompts import (
    FOOD_IMAGE_SYSTEM_PROMPT,
    FOOD_TEXT_SYSTEM_PROMPT,
    WORKOUT_SYSTEM_PROMPT,
    food_image_prompt,
    food_text_prompt,
    workout_prompt,
)
from .records import (
    FoodRecord,
    FoodTotals,
    WorkoutRecord,
    empty_food_record,
    empty_workout_record,
)
from .types import FetchedMedia

logger = logging.getLogger("nutrilog.pipeline")

WORKOUT_FALLBACK_ASSUMPTION = "fallback"
CAPTION_ITEM_ASSUMPTION = "parsed from caption"
CAPTION_TOTALS_ASSUMPTION = "caption-first parse"
CAPTION_CONFIDENCE_FLOOR = 0.9
CAPTION_TOTALS_CONFIDENCE = 0.95
VISION_SOURCE = "vision"


def _truncate(value: str, max_length: int = 500) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


def _typed_payload(raw: str | None, expected: str) -> dict[str, Any]:
    try:
        data = load_json_object(raw)
    except ResponseContractError as exc:
        raise MalformedExtraction(str(exc)) from exc
    if data.get("type") != expected:
        raise MalformedExtraction(f"expected type {expected!r}, got {data.get('type')!r}")
    return data


def parse_food_record(raw: str | None) -> FoodRecord:
    """Coerce model output into a food record, or raise ``MalformedExtraction``."""

    data = _typed_payload(raw, "food")
    try:
        return FoodRecord.model_validate(data)
    except ValidationError as exc:
        raise MalformedExtraction(str(exc)) from exc


def parse_workout_record(raw: str | None) -> WorkoutRecord:
    data = _typed_payload(raw, "workout")
    try:
        return WorkoutRecord.model_validate(data)
    except ValidationError as exc:
        raise MalformedExtraction(str(exc)) from exc


class Extractor:
    """Run the extraction prompts against the LLM and coerce the results."""

    def __init__(
        self,
        llm: BedrockLlmClient,
        bedrock: BedrockConfig,
        profile: ProfileConfig,
    ) -> None:
        self._llm = llm
        self._bedrock = bedrock
        self._profile = profile

    @property
    def profile(self) -> ProfileConfig:
        return self._profile

    async def _generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        image: FetchedMedia | None = None,
    ) -> str | None:
        raw = await self._llm.invoke(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            image_bytes=image.data if image else None,
            image_mime_type=image.mime_type if image else None,
            max_tokens=self._bedrock.structured_max_tokens,
            temperature=temperature,
        )
        logger.info("Raw extraction output: %s", _truncate(raw or ""))
        return raw

    async def extract_food(self, text: str) -> FoodRecord:
        raw = await self._generate(
            FOOD_TEXT_SYSTEM_PROMPT, food_text_prompt(text), temperature=0.2
        )
        try:
            return parse_food_record(raw)
        except MalformedExtraction as exc:
            logger.warning("Food extraction malformed, using empty record: %s", exc)
            return empty_food_record()

    async def extract_caption_food(self, caption: str) -> FoodRecord | None:
        """Parse a photo caption as authoritative food items.

        Returns None when the caption yields no usable record so the caller
        falls back to the vision result alone.
        """

        raw = await self._generate(
            FOOD_TEXT_SYSTEM_PROMPT, food_text_prompt(caption), temperature=0.0
        )
        try:
            parsed = parse_food_record(raw)
        except MalformedExtraction as exc:
            logger.warning("Caption parse malformed, continuing with vision only: %s", exc)
            return None

        details = [
            item.model_copy(
                update={
                    "source": "user_caption",
                    "confidence": max(CAPTION_CONFIDENCE_FLOOR, item.confidence),
                    "assumptions": item.assumptions or [CAPTION_ITEM_ASSUMPTION],
                }
            )
            for item in parsed.details
        ]
        totals = parsed.totals
        return FoodRecord(
            details=details,
            totals=FoodTotals(
                calories=totals.calories or finite_sum(item.calories for item in details),
                assumptions=[*totals.assumptions, CAPTION_TOTALS_ASSUMPTION],
                confidence=(
                    totals.confidence
                    if totals.confidence is not None
                    else CAPTION_TOTALS_CONFIDENCE
                ),
            ),
        )

    async def extract_food_from_image(
        self, image: FetchedMedia, caption: str | None = None
    ) -> FoodRecord:
        raw = await self._generate(
            FOOD_IMAGE_SYSTEM_PROMPT,
            food_image_prompt(caption),
            temperature=0.0,
            image=image,
        )
        try:
            parsed = parse_food_record(raw)
        except MalformedExtraction as exc:
            logger.warning("Vision food parse malformed, using empty record: %s", exc)
            return empty_food_record()

        details = [
            item if item.source else item.model_copy(update={"source": VISION_SOURCE})
            for item in parsed.details
        ]
        return parsed.model_copy(update={"details": details})

    async def extract_workout(
        self,
        *,
        text: str | None = None,
        image: FetchedMedia | None = None,
    ) -> WorkoutRecord:
        """Estimate energy expenditure from text or a machine-console photo."""

        modality = "image" if image is not None else "text"
        raw = await self._generate(
            WORKOUT_SYSTEM_PROMPT,
            workout_prompt(self._profile, modality=modality, text=text),
            temperature=0.1,
            image=image,
        )
        try:
            parsed = parse_workout_record(raw)
        except MalformedExtraction as exc:
            logger.warning("Workout extraction malformed, using fallback record: %s", exc)
            return empty_workout_record(WORKOUT_FALLBACK_ASSUMPTION)
        return settle_workout(parsed, self._profile)


__all__ = [
    "Extractor",
    "parse_food_record",
    "parse_workout_record",
]
