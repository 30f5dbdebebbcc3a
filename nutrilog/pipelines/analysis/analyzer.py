"""Per-modality analysis built from the classifier, extractor and reconciler."""

from __future__ import annotations

import asyncio
import logging
from typing import Union

from .enrichment import enrich_food, enrich_workout
from .extraction import Extractor
from .intent import Classifier
from .reconcile import reconcile
from .records import CompositeRecord, FoodRecord, WorkoutRecord, empty_food_record
from .types import FetchedMedia

logger = logging.getLogger("nutrilog.pipeline")

TypedResult = Union[FoodRecord, WorkoutRecord]


class AnalysisService:
    def __init__(self, classifier: Classifier, extractor: Extractor) -> None:
        self._classifier = classifier
        self._extractor = extractor

    async def analyze_text(self, text: str) -> TypedResult:
        """Classify free text, extract, then retry whatever came back empty."""

        label = await self._classifier.classify(text)
        if label == "workout":
            record = await self._extractor.extract_workout(text=text)
            return await enrich_workout(record, text, self._extractor)
        record = await self._extractor.extract_food(text)
        return await enrich_food(record, self._extractor)

    async def analyze_caption(self, caption: str) -> TypedResult | None:
        """Caption without a photo: workout estimate or caption-first food parse."""

        label = await self._classifier.classify(caption)
        if label == "workout":
            return await self._extractor.extract_workout(text=caption)
        return await self._extractor.extract_caption_food(caption)

    async def analyze_image(self, image: FetchedMedia, caption: str = "") -> TypedResult:
        """Photo analysis; a caption is parsed first and treated as authoritative."""

        label = await self._classifier.classify(caption, image)
        if label == "workout":
            return await self._extractor.extract_workout(text=caption or None, image=image)

        caption_record = None
        if caption:
            try:
                caption_record = await self._extractor.extract_caption_food(caption)
            except Exception as exc:
                logger.warning("Caption parse failed, falling back to vision only: %s", exc)

        try:
            vision_record = await self._extractor.extract_food_from_image(image, caption or None)
        except Exception as exc:
            if caption_record is None:
                raise
            logger.warning("Vision parse failed, continuing with caption items: %s", exc)
            vision_record = empty_food_record()

        return reconcile(caption_record, vision_record)

    async def analyze_transcript(self, transcript: str) -> CompositeRecord:
        """Extract food and workout from one transcript concurrently."""

        if not transcript.strip():
            return CompositeRecord(transcript=transcript)

        food, workout = await asyncio.gather(
            self._extractor.extract_food(transcript),
            self._extractor.extract_workout(text=transcript),
        )
        food = await enrich_food(food, self._extractor)
        workout = await enrich_workout(workout, transcript, self._extractor)
        logger.info(
            "Transcript analysis food_items=%d workout_items=%d",
            len(food.details),
            len(workout.details),
        )
        return CompositeRecord(food=food, workout=workout, transcript=transcript)


__all__ = ["AnalysisService", "TypedResult"]
