"""Bedrock ``converse`` client used for classification, extraction and vision."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Optional

from botocore.exceptions import BotoCoreError
from fastapi.concurrency import run_in_threadpool

from nutrilog.config.settings import BedrockConfig, S3Config
from nutrilog.services.aws import create_boto3_client

logger = logging.getLogger(__name__)

_IMAGE_FORMATS = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


class LlmInvocationError(RuntimeError):
    """Bedrock rejected or failed the call."""


def image_format_for(mime_type: Optional[str]) -> str:
    """Bedrock image block format for a MIME type; WhatsApp photos default to jpeg."""

    return _IMAGE_FORMATS.get((mime_type or "").split(";")[0].strip().lower(), "jpeg")


def api_key_credentials(api_key: str) -> Optional[tuple[str, str]]:
    """Split a base64 ``ACCESS_KEY:SECRET`` pair; plain text pairs are accepted too."""

    raw = api_key.strip()
    try:
        decoded = base64.b64decode(raw, validate=True).decode("ascii", "ignore")
    except (binascii.Error, ValueError):
        decoded = raw
    printable = "".join(ch for ch in decoded if ch.isprintable())
    access, sep, secret = printable.partition(":")
    if not sep or not access or not secret:
        return None
    return access, secret


def converse_request(
    model_id: str,
    system_prompt: str,
    user_prompt: str,
    inference: dict[str, Any],
    image: Optional[tuple[bytes, Optional[str]]] = None,
) -> dict[str, Any]:
    content: list[dict[str, Any]] = [{"text": user_prompt}]
    if image is not None:
        data, mime_type = image
        content.append({"image": {"format": image_format_for(mime_type), "source": {"bytes": data}}})
    return {
        "modelId": model_id,
        "system": [{"text": system_prompt}],
        "messages": [{"role": "user", "content": content}],
        "inferenceConfig": inference,
    }


def output_text(response: dict[str, Any]) -> str:
    blocks = response.get("output", {}).get("message", {}).get("content", [])
    return "\n".join(block["text"] for block in blocks if block.get("text")).strip()


class BedrockLlmClient:
    """Text and vision calls against one text model and one vision model.

    ``invoke`` returns None when the client is unconfigured or the model
    produced no text; extractors treat both as an empty result.
    """

    def __init__(self, config: BedrockConfig, aws: Optional[S3Config] = None) -> None:
        self._config = config

        credentials = None
        if config.api_key:
            credentials = api_key_credentials(config.api_key.get_secret_value())
        elif aws is not None and aws.access_key and aws.secret_key:
            credentials = (aws.access_key, aws.secret_key)
        access, secret = credentials or (None, None)

        try:
            self._client = create_boto3_client(
                "bedrock-runtime",
                region_name=config.region,
                aws_access_key_id=access,
                aws_secret_access_key=secret,
                read_timeout=config.read_timeout_seconds,
            )
        except (BotoCoreError, ValueError) as exc:
            logger.warning("Bedrock client unavailable, analyses will be empty: %s", exc)
            self._client = None

    def _inference(self, max_tokens, temperature, top_p) -> dict[str, Any]:
        return {
            "maxTokens": max_tokens or self._config.max_tokens,
            "temperature": self._config.temperature if temperature is None else temperature,
            "topP": self._config.top_p if top_p is None else top_p,
        }

    async def invoke(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        image_bytes: Optional[bytes] = None,
        image_mime_type: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        model_id: Optional[str] = None,
    ) -> Optional[str]:
        model = model_id or (self._config.vision_model_id if image_bytes else self._config.model_id)
        if self._client is None or not model:
            return None

        request = converse_request(
            model,
            system_prompt,
            user_prompt,
            self._inference(max_tokens, temperature, top_p),
            image=(image_bytes, image_mime_type) if image_bytes else None,
        )
        try:
            response = await run_in_threadpool(lambda: self._client.converse(**request))
        except Exception as exc:
            raise LlmInvocationError(f"{model}: {exc}") from exc

        return output_text(response) or None


__all__ = [
    "BedrockLlmClient",
    "LlmInvocationError",
    "api_key_credentials",
    "converse_request",
    "image_format_for",
    "output_text",
]
