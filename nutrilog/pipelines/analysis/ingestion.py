"""Inbound message ingestion (Stage 01 of the analysis pipeline).

Flattens WhatsApp webhook messages into ``InboundTask`` objects and
downloads their media from the Graph API.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Iterable, Mapping

import httpx

from nutrilog.config.settings import MetaConfig
from nutrilog.telemetry import record_media_attempt

from .errors import MediaUnavailable
from .types import FetchedMedia, InboundTask, MessageKind

logger = logging.getLogger("nutrilog.pipeline")

CAPTION_MAX_CHARS = 800
DEFAULT_MIME_TYPE = "application/octet-stream"

_MEDIA_KINDS = (
    ("image", MessageKind.IMAGE),
    ("video", MessageKind.VIDEO),
    ("document", MessageKind.DOCUMENT),
    ("audio", MessageKind.AUDIO),
)
_NEWLINES = re.compile(r"(?:\r?\n)+")


def _text_at(message: Mapping[str, Any], *path: str) -> str | None:
    node: Any = message
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node if isinstance(node, str) else None


def extract_caption(message: Mapping[str, Any]) -> str:
    """First non-empty caption-like field, on one line, at most 800 chars."""

    candidates = (
        _text_at(message, "text", "body"),
        _text_at(message, "caption"),
        _text_at(message, "image", "caption"),
        _text_at(message, "image", "caption", "text"),
        _text_at(message, "context", "quoted_message", "text"),
    )
    caption = next((value.strip() for value in candidates if value and value.strip()), "")
    if not caption:
        return ""
    caption = _NEWLINES.sub(" ", caption).strip()
    if len(caption) > CAPTION_MAX_CHARS:
        caption = caption[:CAPTION_MAX_CHARS] + "..."
    return caption


def task_from_message(message: Mapping[str, Any]) -> InboundTask:
    sender = str(message.get("from") or "")
    message_id = str(message.get("id") or "")
    caption = extract_caption(message)

    for key, kind in _MEDIA_KINDS:
        media = message.get(key)
        if media:
            media = media if isinstance(media, Mapping) else {}
            return InboundTask(
                sender_id=sender,
                message_id=message_id,
                kind=kind,
                caption=caption,
                media_id=media.get("id") or None,
                media_mime_type=media.get("mime_type") or None,
                is_voice=bool(media.get("voice")),
            )

    body = _text_at(message, "text", "body")
    if body:
        return InboundTask(sender_id=sender, message_id=message_id, kind=MessageKind.TEXT, text=body)

    interactive = message.get("interactive")
    if isinstance(interactive, Mapping):
        title = (
            _text_at(interactive, "button_reply", "title")
            or _text_at(interactive, "list_reply", "title")
            or ""
        )
        return InboundTask(
            sender_id=sender,
            message_id=message_id,
            kind=MessageKind.INTERACTIVE,
            text=title,
        )

    return InboundTask(sender_id=sender, message_id=message_id, kind=MessageKind.UNKNOWN)


def tasks_from_messages(messages: Iterable[Mapping[str, Any]]) -> list[InboundTask]:
    return [task_from_message(message) for message in messages if isinstance(message, Mapping)]


class MediaFetcher:
    """Resolve a media id to bytes: one lookup, then a retried download.

    The first download attempt is unauthenticated because the temporary URL
    usually works as-is; later attempts add the bearer token.
    """

    def __init__(
        self,
        config: MetaConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._transport = transport
        self._sleep = sleep

    @property
    def _token(self) -> str:
        return self._config.page_access_token.get_secret_value()

    async def fetch(self, media_id: str) -> FetchedMedia:
        async with httpx.AsyncClient(transport=self._transport) as client:
            url, mime_type = await self._lookup(client, media_id)
            data = await self._download(client, url)
        return FetchedMedia(data=data, mime_type=mime_type)

    async def _lookup(self, client: httpx.AsyncClient, media_id: str) -> tuple[str, str]:
        lookup_url = f"{self._config.graph_base_url}/{self._config.graph_version}/{media_id}"
        try:
            response = await client.get(
                lookup_url,
                params={"fields": "url,mime_type", "access_token": self._token},
                timeout=self._config.lookup_timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise MediaUnavailable(f"Media lookup failed for {media_id}: {exc}") from exc

        url = payload.get("url") if isinstance(payload, dict) else None
        if not url:
            raise MediaUnavailable(f"Media lookup for {media_id} returned no url")
        return url, payload.get("mime_type") or DEFAULT_MIME_TYPE

    async def _download(self, client: httpx.AsyncClient, url: str) -> bytes:
        max_retries = self._config.media_max_retries
        last_error = "no attempt made"
        for attempt in range(max_retries + 1):
            headers = {"Authorization": f"Bearer {self._token}"} if attempt > 0 else {}
            try:
                response = await client.get(
                    url,
                    headers=headers,
                    timeout=self._config.download_timeout_seconds,
                    follow_redirects=True,
                )
            except httpx.HTTPError as exc:
                last_error = str(exc) or type(exc).__name__
            else:
                if response.is_success:
                    record_media_attempt("success")
                    return response.content
                last_error = f"HTTP {response.status_code}"

            record_media_attempt("failure")
            logger.warning(
                "Media download attempt %s/%s failed: %s",
                attempt + 1,
                max_retries + 1,
                last_error,
            )
            if attempt < max_retries:
                await self._sleep(self._config.media_retry_base_seconds * 2 ** (attempt + 1))

        raise MediaUnavailable(f"Media download failed after {max_retries + 1} attempts: {last_error}")


__all__ = [
    "CAPTION_MAX_CHARS",
    "MediaFetcher",
    "extract_caption",
    "task_from_message",
    "tasks_from_messages",
]
