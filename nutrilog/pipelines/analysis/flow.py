"""High-level orchestration map for the analysis pipeline.

``orchestrator.MessageOrchestrator`` holds the asynchronous choreography;
this module documents the canonical execution order so contributors can
jump straight to the stage they need:

1. ``ingestion`` – flatten webhook messages, download media with retries.
2. ``preprocessing`` – ffmpeg cleanup of voice notes (best effort).
3. ``transcription`` / ``cleaning`` – Amazon Transcribe, then an LLM pass.
4. ``intent`` – food or workout.
5. ``extraction`` / ``enrichment`` – structured records plus fallbacks.
6. ``reconcile`` – merge caption and vision food items.
7. ``calories`` – single energy number for the log row.
8. ``replies`` – WhatsApp text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class PipelineStage:
    """Human-readable description of one stage in the analysis pipeline."""

    order: int
    name: str
    module: str
    summary: str


class AnalysisPipeline:
    """Utility wrapper for documenting the webhook-to-reply flow."""

    _STAGES: List[PipelineStage] = [
        PipelineStage(
            1,
            "Ingestion",
            "nutrilog.pipelines.analysis.ingestion",
            "Turn webhook messages into tasks and fetch media from the Graph API.",
        ),
        PipelineStage(
            2,
            "Audio Preprocessing",
            "nutrilog.pipelines.analysis.preprocessing",
            "Denoise, trim leading silence and normalise loudness with ffmpeg.",
        ),
        PipelineStage(
            3,
            "Transcription",
            "nutrilog.pipelines.analysis.transcription",
            "Stream audio to Amazon Transcribe and clean the transcript with a small model.",
        ),
        PipelineStage(
            4,
            "Classification",
            "nutrilog.pipelines.analysis.intent",
            "Label text or photos as food or workout.",
        ),
        PipelineStage(
            5,
            "Extraction",
            "nutrilog.pipelines.analysis.extraction",
            "Call Bedrock for structured records and retry whatever came back empty.",
        ),
        PipelineStage(
            6,
            "Reconciliation",
            "nutrilog.pipelines.analysis.reconcile",
            "Merge caption items with vision items, dropping duplicates.",
        ),
        PipelineStage(
            7,
            "Logging",
            "nutrilog.services.analysis_log",
            "Resolve total energy, upload media to S3 and insert the analysis row.",
        ),
        PipelineStage(
            8,
            "Reply",
            "nutrilog.pipelines.analysis.replies",
            "Compose the WhatsApp text and send it to the sender.",
        ),
    ]

    @classmethod
    def describe(cls) -> Iterable[PipelineStage]:
        """Expose the ordered list of stages for debugging and documentation."""

        return tuple(cls._STAGES)


__all__ = ["AnalysisPipeline", "PipelineStage"]
