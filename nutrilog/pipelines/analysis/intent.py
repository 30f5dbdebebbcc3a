"""Food-or-workout classification (Stage 03 of the analysis pipeline)."""

from __future__ import annotations

import logging
from typing import Literal

from nutrilog.config.settings import BedrockConfig
from nutrilog.services.llm_client import BedrockLlmClient

from .prompts import CLASSIFY_IMAGE_SYSTEM_PROMPT, CLASSIFY_TEXT_SYSTEM_PROMPT, image_caption_block
from .types import FetchedMedia

logger = logging.getLogger("nutrilog.pipeline")

Label = Literal["food", "workout"]


def label_from_output(raw: str | None) -> Label:
    """Any output mentioning "workout" is a workout; everything else is food."""

    return "workout" if raw and "workout" in raw.lower() else "food"


class Classifier:
    """Binary label for a message. Never raises: failures mean "food"."""

    def __init__(self, llm: BedrockLlmClient, config: BedrockConfig) -> None:
        self._llm = llm
        self._config = config

    async def classify(self, text: str | None, image: FetchedMedia | None = None) -> Label:
        content = (text or "").strip()
        if not content and image is None:
            return "food"

        if image is None:
            system_prompt = CLASSIFY_TEXT_SYSTEM_PROMPT
            user_prompt = f'INPUT:\n"""{content}"""'
        else:
            system_prompt = CLASSIFY_IMAGE_SYSTEM_PROMPT
            user_prompt = image_caption_block(content)

        try:
            raw = await self._llm.invoke(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                image_bytes=image.data if image else None,
                image_mime_type=image.mime_type if image else None,
                max_tokens=self._config.classifier_max_tokens,
                temperature=0.0,
            )
        except Exception as exc:
            logger.warning("Classifier invocation failed, defaulting to food: %s", exc)
            return "food"

        label = label_from_output(raw)
        logger.info("Classified message as %s (raw=%r)", label, raw)
        return label


__all__ = ["Classifier", "Label", "label_from_output"]
