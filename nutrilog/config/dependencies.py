"""Build the pipeline object graph once from the application settings."""

from __future__ import annotations

from dataclasses import dataclass

from nutrilog.config.settings import MetaConfig, Settings
from nutrilog.database import session_scope
from nutrilog.pipelines.analysis.analyzer import AnalysisService
from nutrilog.pipelines.analysis.audio import VoiceNoteAnalyzer
from nutrilog.pipelines.analysis.cleaning import TranscriptCleaner
from nutrilog.pipelines.analysis.extraction import Extractor
from nutrilog.pipelines.analysis.ingestion import MediaFetcher
from nutrilog.pipelines.analysis.intent import Classifier
from nutrilog.pipelines.analysis.orchestrator import MessageOrchestrator
from nutrilog.pipelines.analysis.preprocessing import AudioPreprocessor
from nutrilog.pipelines.analysis.transcription import Transcriber
from nutrilog.services.analysis_log import AnalysisLogService
from nutrilog.services.llm_client import BedrockLlmClient
from nutrilog.services.loopback import LoopbackClient
from nutrilog.services.storage import MediaStorage
from nutrilog.services.transcribe import TranscribeService
from nutrilog.services.whatsapp import WhatsAppClient


@dataclass
class Pipeline:
    """Everything the HTTP layer needs, stored on ``app.state.pipeline``."""

    meta: MetaConfig
    analysis: AnalysisService
    voice: VoiceNoteAnalyzer
    analysis_log: AnalysisLogService
    orchestrator: MessageOrchestrator


def build_pipeline(settings: Settings) -> Pipeline:
    llm = BedrockLlmClient(settings.bedrock, settings.s3)
    classifier = Classifier(llm, settings.bedrock)
    extractor = Extractor(llm, settings.bedrock, settings.profile)
    analysis = AnalysisService(classifier, extractor)

    transcriber = Transcriber(
        TranscribeService(settings.transcribe, audio=settings.audio),
        TranscriptCleaner(llm, settings.bedrock, settings.transcribe),
    )
    voice = VoiceNoteAnalyzer(AudioPreprocessor(settings.audio), transcriber, analysis)

    storage = MediaStorage(settings.s3)
    analysis_log = AnalysisLogService(storage, session_scope)

    orchestrator = MessageOrchestrator(
        fetcher=MediaFetcher(settings.meta),
        analysis=analysis,
        voice=voice,
        messenger=WhatsAppClient(settings.meta),
        analysis_log=analysis_log,
        loopback=LoopbackClient(
            settings.public_base_url,
            timeout_seconds=settings.loopback_timeout_seconds,
        ),
        storage=storage,
        audio_config=settings.audio,
    )
    return Pipeline(
        meta=settings.meta,
        analysis=analysis,
        voice=voice,
        analysis_log=analysis_log,
        orchestrator=orchestrator,
    )


__all__ = ["Pipeline", "build_pipeline"]
