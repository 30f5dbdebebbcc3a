"""Per-delivery message orchestration.

One webhook delivery can carry several messages. Each sender gets a single
"processing" acknowledgement, then the messages are handled one at a time.
A failure in one message ends in an apology reply for that message only;
its siblings still run. This is the only place pipeline exceptions are
swallowed.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Optional, Sequence

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from nutrilog.config.settings import AudioConfig
from nutrilog.services.analysis_log import AnalysisLogService, LoggedMedia
from nutrilog.services.loopback import LoopbackClient
from nutrilog.services.storage import MediaStorage, StorageError, object_key
from nutrilog.services.whatsapp import WhatsAppClient
from nutrilog.telemetry import record_analysis, record_audio_fallback

from .analyzer import AnalysisService
from .audio import VoiceNoteAnalyzer
from .errors import AnalysisFailed, DeliveryFailed, ErrorKind, MediaUnavailable
from .ingestion import MediaFetcher
from .records import AnalysisRecord, CompositeRecord, record_from_payload
from .replies import compose, compose_composite
from .types import FetchedMedia, InboundTask, MessageKind, MessageState, Route, TaskOutcome

logger = logging.getLogger("nutrilog.pipeline")
transcript_logger = logging.getLogger("nutrilog.logs.transcript")

ACK_REPLY = "Processing your request..."
NO_MEDIA_REPLY = "Sorry, couldn't find media to download. Please resend."
DOWNLOAD_FAILED_REPLY = "Sorry, I couldn't download that media. Please try sending it again."
IMAGE_FAILED_REPLY = "Sorry — failed to analyze the image. Try again."
UNEXPECTED_FORMAT_REPLY = (
    "Sorry — analysis returned an unexpected format. Try text or a short voice note."
)
UNSUPPORTED_MEDIA_REPLY = (
    "Sorry, I can process photos and voice notes only. "
    "Please send a photo or a short voice note."
)
TEXT_FAILED_REPLY = "Sorry — couldn't analyze that text right now."
SELECTION_REPLY = "Thanks — I received your selection."
UNSUPPORTED_REPLY = (
    "Sorry, I can process text, photos and voice notes. Please send one of those."
)
GENERIC_FAILURE_REPLY = "Food/Workout: Sorry, I couldn't process that. Please try again."


def audio_failure_reply(debug_reference: Optional[str]) -> str:
    saved = (
        f"I've saved the file for debugging: {debug_reference}"
        if debug_reference
        else "I couldn't save a copy of the file for debugging."
    )
    return (
        "Sorry — I couldn't process your voice note right now. "
        f"{saved}\n"
        "Please try a short (3–8s) voice note or send the text."
    )


def is_image(kind: MessageKind, mime_type: str) -> bool:
    return mime_type.lower().startswith("image/") or kind is MessageKind.IMAGE


def is_audio(mime_type: str, is_voice: bool) -> bool:
    mime = mime_type.lower()
    return mime.startswith("audio/") or "ogg" in mime or is_voice


def _audio_extension(mime_type: str) -> str:
    mime = mime_type.lower()
    if "ogg" in mime:
        return ".ogg"
    if "mpeg" in mime or "mp3" in mime:
        return ".mp3"
    return ".audio"


def _write_debug_copy(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def reply_for(record: Optional[AnalysisRecord]) -> str:
    if isinstance(record, CompositeRecord):
        return compose_composite(record)
    if record is None:
        return UNEXPECTED_FORMAT_REPLY
    return compose(record)


class MessageOrchestrator:
    def __init__(
        self,
        *,
        fetcher: MediaFetcher,
        analysis: AnalysisService,
        voice: VoiceNoteAnalyzer,
        messenger: WhatsAppClient,
        analysis_log: AnalysisLogService,
        loopback: LoopbackClient,
        storage: MediaStorage,
        audio_config: AudioConfig,
    ) -> None:
        self._fetcher = fetcher
        self._analysis = analysis
        self._voice = voice
        self._messenger = messenger
        self._analysis_log = analysis_log
        self._loopback = loopback
        self._storage = storage
        self._audio_config = audio_config

    async def handle_delivery(self, tasks: Sequence[InboundTask]) -> list[TaskOutcome]:
        acknowledged: set[str] = set()
        for task in tasks:
            if not task.sender_id or task.sender_id in acknowledged:
                continue
            acknowledged.add(task.sender_id)
            try:
                await self._messenger.send_text(task.sender_id, ACK_REPLY, task.message_id)
            except DeliveryFailed as exc:
                logger.warning("Acknowledgement to %s failed: %s", task.sender_id, exc)

        outcomes = []
        for task in tasks:
            outcomes.append(await self.handle_task(task))
        return outcomes

    async def handle_task(self, task: InboundTask) -> TaskOutcome:
        logger.info(
            "Handling message id=%s from=%s kind=%s",
            task.message_id,
            task.sender_id,
            task.kind.value,
        )
        try:
            if task.kind.carries_media:
                return await self._handle_media(task)
            if task.kind is MessageKind.TEXT:
                return await self._handle_text(task, task.text, Route.TEXT)
            if task.kind is MessageKind.INTERACTIVE:
                if not task.text.strip():
                    return await self._finish(
                        task, Route.INTERACTIVE, MessageState.ROUTED, SELECTION_REPLY
                    )
                return await self._handle_text(task, task.text, Route.INTERACTIVE)
            return await self._finish(
                task, Route.UNSUPPORTED, MessageState.ROUTED, UNSUPPORTED_REPLY
            )
        except Exception as exc:
            logger.exception("Unexpected failure handling message %s", task.message_id)
            return await self._finish(
                task,
                None,
                MessageState.FAILED,
                GENERIC_FAILURE_REPLY,
                error=getattr(exc, "kind", ErrorKind.ANALYSIS_FAILED),
            )

    async def _handle_media(self, task: InboundTask) -> TaskOutcome:
        if not task.media_id:
            return await self._finish(
                task,
                None,
                MessageState.FAILED,
                NO_MEDIA_REPLY,
                error=ErrorKind.MEDIA_UNAVAILABLE,
            )

        try:
            media = await self._fetcher.fetch(task.media_id)
        except MediaUnavailable as exc:
            logger.error("Media %s unavailable: %s", task.media_id, exc)
            return await self._finish(
                task, None, MessageState.FAILED, DOWNLOAD_FAILED_REPLY, error=exc.kind
            )

        mime_type = media.mime_type
        if mime_type == "application/octet-stream" and task.media_mime_type:
            mime_type = task.media_mime_type
        media = FetchedMedia(data=media.data, mime_type=mime_type)

        if is_image(task.kind, mime_type):
            return await self._handle_image(task, media)
        if is_audio(mime_type, task.is_voice):
            return await self._handle_audio(task, media)
        return await self._finish(
            task, Route.UNSUPPORTED, MessageState.ROUTED, UNSUPPORTED_MEDIA_REPLY
        )

    async def _handle_image(self, task: InboundTask, media: FetchedMedia) -> TaskOutcome:
        try:
            record = await self._analysis.analyze_image(media, task.caption)
        except Exception as exc:
            logger.exception("Image analysis failed for %s", task.message_id)
            return await self._finish(
                task,
                Route.IMAGE,
                MessageState.FAILED,
                IMAGE_FAILED_REPLY,
                error=getattr(exc, "kind", ErrorKind.ANALYSIS_FAILED),
            )

        image = LoggedMedia(data=media.data, mime_type=media.mime_type, filename="log-media.jpg")
        state = await self._log(task, record, image=image)
        return await self._finish(task, Route.IMAGE, state, reply_for(record), record=record)

    async def _handle_audio(self, task: InboundTask, media: FetchedMedia) -> TaskOutcome:
        record: Optional[AnalysisRecord]
        try:
            record = await self._voice.analyze(media.data)
        except Exception as primary_exc:
            logger.warning("Primary voice-note path failed, trying loopback: %s", primary_exc)
            try:
                payload = await self._loopback.analyze_and_log(
                    media.data, media.mime_type, task.sender_id
                )
            except Exception as fallback_exc:
                record_audio_fallback("failure")
                reference = await self._preserve_failed_audio(task, media)
                failure = AnalysisFailed(
                    f"Voice note analysis failed: {primary_exc}; fallback: {fallback_exc}",
                    debug_reference=reference,
                )
                logger.error("%s (debug file %s)", failure, reference)
                return await self._finish(
                    task,
                    Route.AUDIO,
                    MessageState.FAILED,
                    audio_failure_reply(reference),
                    error=failure.kind,
                )

            record_audio_fallback("success")
            try:
                record = record_from_payload(payload)
            except ValidationError as exc:
                logger.warning("Loopback analysis had an unusable shape: %s", exc)
                record = None
            # /log-analysis already stored the fallback result
            reply = reply_for(record)
            transcript_logger.info("reply | %s | %s", task.sender_id, reply)
            return await self._finish(
                task, Route.AUDIO, MessageState.LOGGED, reply, record=record
            )

        audio = LoggedMedia(
            data=media.data,
            mime_type=media.mime_type,
            filename=f"log-media{_audio_extension(media.mime_type)}",
        )
        state = await self._log(task, record, audio=audio)
        reply = reply_for(record)
        transcript_logger.info("reply | %s | %s", task.sender_id, reply)
        return await self._finish(task, Route.AUDIO, state, reply, record=record)

    async def _handle_text(self, task: InboundTask, text: str, route: Route) -> TaskOutcome:
        try:
            record = await self._analysis.analyze_text(text)
        except Exception as exc:
            logger.exception("Text analysis failed for %s", task.message_id)
            return await self._finish(
                task,
                route,
                MessageState.FAILED,
                TEXT_FAILED_REPLY,
                error=getattr(exc, "kind", ErrorKind.ANALYSIS_FAILED),
            )

        state = await self._log(task, record)
        return await self._finish(task, route, state, reply_for(record), record=record)

    async def _log(self, task: InboundTask, record: Any, **media: LoggedMedia) -> MessageState:
        """Persist a successful analysis; failures are logged and do not block the reply."""

        try:
            await self._analysis_log.persist(
                record,
                user_id=task.sender_id,
                user_email=f"{task.sender_id}@wa",
                **media,
            )
        except Exception as exc:
            logger.warning("Could not log analysis for %s: %s", task.message_id, exc)
            return MessageState.ANALYZED
        return MessageState.LOGGED

    async def _preserve_failed_audio(
        self, task: InboundTask, media: FetchedMedia
    ) -> Optional[str]:
        """Keep a voice note that neither path could analyse.

        Returns the local path, the uploaded URL when only the upload worked,
        or None when no copy was kept.
        """

        filename = f"wa-voice-{int(time.time() * 1000)}{_audio_extension(media.mime_type)}"
        path = Path(self._audio_config.debug_dir) / filename
        reference: Optional[str] = None
        try:
            await run_in_threadpool(_write_debug_copy, path, media.data)
            reference = str(path)
        except OSError as exc:
            logger.warning("Could not write debug audio %s: %s", path, exc)

        try:
            url = await self._storage.upload(
                media.data,
                bucket=self._storage.audio_bucket,
                key=f"failed/{object_key(task.sender_id, filename)}",
                content_type=media.mime_type,
            )
            logger.info("Failed voice note uploaded to %s", url)
            reference = reference or url
        except StorageError as exc:
            logger.warning("Could not upload failed voice note: %s", exc)
        return reference

    async def _finish(
        self,
        task: InboundTask,
        route: Optional[Route],
        state: MessageState,
        reply: str,
        *,
        record: Optional[AnalysisRecord] = None,
        error: Optional[ErrorKind] = None,
    ) -> TaskOutcome:
        try:
            await self._messenger.send_text(task.sender_id, reply, task.message_id)
        except DeliveryFailed as exc:
            logger.error("Reply to %s failed: %s", task.sender_id, exc)
            error = error or exc.kind
        else:
            if state is not MessageState.FAILED:
                state = MessageState.REPLIED

        record_analysis(route.value if route else "unknown", state.value)
        return TaskOutcome(
            task=task,
            route=route,
            state=state,
            reply=reply,
            record=record,
            error=error,
        )


__all__ = [
    "ACK_REPLY",
    "GENERIC_FAILURE_REPLY",
    "MessageOrchestrator",
    "audio_failure_reply",
    "reply_for",
]
