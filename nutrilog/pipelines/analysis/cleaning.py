"""ASR transcript cleaning stage.

A small, fast model fixes misheard food, brand and exercise names and writes
spoken numbers as digits so the extractors can read quantities and
durations. The configured Transcribe context prompt is passed along as the
vocabulary hint.
"""

from __future__ import annotations

import logging

from nutrilog.config.settings import BedrockConfig, TranscribeConfig
from nutrilog.services.llm_client import BedrockLlmClient

from .prompts import TRANSCRIPT_CLEANING_SYSTEM_PROMPT

logger = logging.getLogger("nutrilog.pipeline")


class TranscriptCleaner:
    def __init__(
        self,
        llm: BedrockLlmClient,
        bedrock: BedrockConfig,
        transcribe: TranscribeConfig,
    ) -> None:
        self._llm = llm
        self._bedrock = bedrock
        self._transcribe = transcribe

    async def clean(self, transcript: str) -> str:
        """Correct ASR errors; the raw transcript is returned on any failure."""

        if not transcript or not transcript.strip():
            return transcript
        if not self._transcribe.clean_transcripts:
            return transcript

        try:
            cleaned = await self._llm.invoke(
                system_prompt=TRANSCRIPT_CLEANING_SYSTEM_PROMPT.format(
                    context=self._transcribe.context_prompt
                ),
                user_prompt=transcript,
                model_id=self._bedrock.cleaning_model_id,
                max_tokens=self._bedrock.cleaning_max_tokens,
                temperature=0.0,
            )
        except Exception as exc:
            logger.warning("Transcript cleaning failed, keeping raw text: %s", exc)
            return transcript
        return cleaned.strip() if cleaned and cleaned.strip() else transcript


__all__ = ["TranscriptCleaner"]
