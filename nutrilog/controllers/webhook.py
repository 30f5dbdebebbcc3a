"""WhatsApp Cloud API webhook.

``GET`` answers Meta's subscription handshake. ``POST`` receives message
deliveries; the messages are handed to the orchestrator as a background task
so Meta gets its 200 immediately.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from nutrilog.controllers.dependencies import PipelineDep
from nutrilog.pipelines.analysis.ingestion import tasks_from_messages
from nutrilog.views import WebhookPayload

router = APIRouter(tags=["webhook"])

logger = logging.getLogger(__name__)

_HUB_MODE = Query(None, alias="hub.mode")
_HUB_TOKEN = Query(None, alias="hub.verify_token")
_HUB_CHALLENGE = Query(None, alias="hub.challenge")


@router.get("/whatsapp-webhook", response_class=PlainTextResponse)
async def verify_webhook(
    pipeline: PipelineDep,
    mode: Optional[str] = _HUB_MODE,
    token: Optional[str] = _HUB_TOKEN,
    challenge: Optional[str] = _HUB_CHALLENGE,
) -> PlainTextResponse:
    """Echo the challenge when the verify token matches."""

    expected = pipeline.meta.verify_token.get_secret_value()
    if mode == "subscribe" and expected and token == expected:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge or "")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/whatsapp-webhook")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: PipelineDep,
) -> dict[str, str]:
    try:
        body = await request.json()
        payload = WebhookPayload.model_validate(body)
    except (ValueError, ValidationError) as exc:
        logger.info("Ignoring webhook body that is not a message delivery: %s", exc)
        return {"status": "ignored"}

    tasks = tasks_from_messages(payload.messages())
    if not tasks:
        return {"status": "ignored"}

    logger.info("Webhook delivery with %d message(s)", len(tasks))
    background_tasks.add_task(pipeline.orchestrator.handle_delivery, tasks)
    return {"status": "received"}


__all__ = ["router"]
