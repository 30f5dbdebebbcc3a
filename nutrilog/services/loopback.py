"""Voice-note fallback that re-submits audio to this service's public API.

Used when the in-process audio path fails: the audio goes through
``/analyze-audio`` on a fresh request, and the result is stored through
``/log-analysis``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class LoopbackError(RuntimeError):
    """Raised when the loopback analyse-and-log round trip fails."""


def audio_filename(mime_type: str | None, stem: str = "whatsapp-audio") -> str:
    mime = (mime_type or "").lower()
    if "ogg" in mime:
        return f"{stem}.ogg"
    if "aac" in mime:
        return f"{stem}.aac"
    if "mpeg" in mime:
        return f"{stem}.mp3"
    return stem


class LoopbackClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._transport = transport

    async def analyze_and_log(self, audio: bytes, mime_type: str | None, user_id: str) -> Any:
        """Analyse the audio remotely, log the result, and return the analysis JSON."""

        mime = mime_type or "audio/ogg"
        filename = audio_filename(mime)
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                transport=self._transport,
                timeout=self._timeout,
            ) as client:
                response = await client.post(
                    "/analyze-audio",
                    files={"audio": (filename, audio, mime)},
                )
                response.raise_for_status()
                analysis = response.json()
                if not analysis:
                    raise LoopbackError("Loopback analysis returned an empty body")

                log_response = await client.post(
                    "/log-analysis",
                    data={
                        "userId": user_id,
                        "userEmail": f"{user_id}@wa",
                        "analysisResult": json.dumps(analysis),
                    },
                    files={"audio": (filename, audio, mime)},
                )
                log_response.raise_for_status()
        except (httpx.HTTPError, ValueError) as exc:
            raise LoopbackError(f"Loopback audio analysis failed: {exc}") from exc

        logger.info("Loopback analysis succeeded for %s", user_id)
        return analysis


__all__ = ["LoopbackClient", "LoopbackError", "audio_filename"]
