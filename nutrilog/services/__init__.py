"""Service layer helpers for external integrations."""

from .analysis_log import AnalysisLogService, LoggedMedia
from .llm_client import BedrockLlmClient, LlmInvocationError
from .loopback import LoopbackClient, LoopbackError
from .storage import MediaStorage, StorageError
from .transcribe import TranscribeService, TranscriptionError, TranscriptionResult
from .whatsapp import WhatsAppClient

__all__ = [
    "AnalysisLogService",
    "BedrockLlmClient",
    "LlmInvocationError",
    "LoggedMedia",
    "LoopbackClient",
    "LoopbackError",
    "MediaStorage",
    "StorageError",
    "TranscribeService",
    "TranscriptionError",
    "TranscriptionResult",
    "WhatsAppClient",
]
