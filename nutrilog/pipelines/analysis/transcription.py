"""Transcription stage of the voice-note path."""

from __future__ import annotations

import logging

from nutrilog.services.transcribe import TranscribeService

from .cleaning import TranscriptCleaner

logger = logging.getLogger("nutrilog.pipeline")
transcript_logger = logging.getLogger("nutrilog.logs.transcript")


class Transcriber:
    """Speech to cleaned text. ``TranscriptionError`` propagates to the caller."""

    def __init__(self, service: TranscribeService, cleaner: TranscriptCleaner) -> None:
        self._service = service
        self._cleaner = cleaner

    async def transcribe(self, audio: bytes) -> str:
        result = await self._service.transcribe_audio(audio)
        raw = result.transcript
        cleaned = await self._cleaner.clean(raw)

        logger.info("Transcript received (%d chars)", len(cleaned))
        transcript_logger.info("raw | %s", raw)
        if cleaned != raw:
            transcript_logger.info("cleaned | %s", cleaned)
        return cleaned


__all__ = ["Transcriber"]
