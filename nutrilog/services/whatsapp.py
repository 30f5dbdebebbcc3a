"""Outbound WhatsApp Cloud API messages."""

from __future__ import annotations

import logging

import httpx

from nutrilog.config.settings import MetaConfig
from nutrilog.pipelines.analysis.errors import DeliveryFailed

logger = logging.getLogger(__name__)


class WhatsAppClient:
    """Send text replies through the Graph API ``/messages`` endpoint."""

    def __init__(
        self,
        config: MetaConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    @property
    def messages_url(self) -> str:
        cfg = self._config
        return f"{cfg.graph_base_url}/{cfg.graph_version}/{cfg.phone_number_id}/messages"

    async def send_text(self, to: str, text: str, reply_to: str | None = None) -> None:
        payload: dict = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": text},
        }
        if reply_to:
            payload["context"] = {"message_id": reply_to}

        headers = {
            "Authorization": f"Bearer {self._config.page_access_token.get_secret_value()}"
        }
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    self.messages_url,
                    json=payload,
                    headers=headers,
                    timeout=self._config.send_timeout_seconds,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryFailed(
                f"WhatsApp send failed with HTTP {exc.response.status_code}: "
                f"{exc.response.text[:300]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryFailed(f"WhatsApp send failed: {exc}") from exc

        logger.debug("Reply sent to %s (%d chars)", to, len(text))


__all__ = ["WhatsAppClient"]
