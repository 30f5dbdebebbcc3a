"""Primary in-process voice-note path: clean, transcribe, analyse."""

from __future__ import annotations

import logging

from .analyzer import AnalysisService
from .preprocessing import AudioPreprocessor
from .records import CompositeRecord
from .transcription import Transcriber

logger = logging.getLogger("nutrilog.pipeline")


class VoiceNoteAnalyzer:
    def __init__(
        self,
        preprocessor: AudioPreprocessor,
        transcriber: Transcriber,
        analysis: AnalysisService,
    ) -> None:
        self._preprocessor = preprocessor
        self._transcriber = transcriber
        self._analysis = analysis

    async def analyze(self, audio: bytes) -> CompositeRecord:
        cleaned_audio = await self._preprocessor.clean(audio)
        transcript = await self._transcriber.transcribe(cleaned_audio)
        record = await self._analysis.analyze_transcript(transcript)
        logger.info(
            "Voice note analysed has_food=%s has_workout=%s",
            record.has_food,
            record.has_workout,
        )
        return record


__all__ = ["VoiceNoteAnalyzer"]
