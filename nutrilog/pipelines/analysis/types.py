"""Typed containers shared across the analysis pipeline.

These dataclasses live in their own module so the stages (`ingestion`,
`intent`, `extraction`, `orchestrator`) can import them without creating
circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ErrorKind
from .records import AnalysisRecord


class MessageKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"
    INTERACTIVE = "interactive"
    UNKNOWN = "unknown"

    @property
    def carries_media(self) -> bool:
        return self in (MessageKind.IMAGE, MessageKind.AUDIO, MessageKind.VIDEO, MessageKind.DOCUMENT)


class Route(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    INTERACTIVE = "interactive"
    UNSUPPORTED = "unsupported"


class MessageState(str, Enum):
    RECEIVED = "received"
    ACKNOWLEDGED = "acknowledged"
    ROUTED = "routed"
    ANALYZED = "analyzed"
    LOGGED = "logged"
    REPLIED = "replied"
    FAILED = "failed"


@dataclass(frozen=True)
class InboundTask:
    """One inbound WhatsApp message, flattened for the orchestrator."""

    sender_id: str
    message_id: str
    kind: MessageKind
    text: str = ""
    caption: str = ""
    media_id: Optional[str] = None
    media_mime_type: Optional[str] = None
    is_voice: bool = False


@dataclass(frozen=True)
class FetchedMedia:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class TaskOutcome:
    """What happened to one task; returned for logging and tests."""

    task: InboundTask
    route: Optional[Route]
    state: MessageState
    reply: Optional[str] = None
    record: Optional[AnalysisRecord] = None
    error: Optional[ErrorKind] = None


__all__ = [
    "FetchedMedia",
    "InboundTask",
    "MessageKind",
    "MessageState",
    "Route",
    "TaskOutcome",
]
