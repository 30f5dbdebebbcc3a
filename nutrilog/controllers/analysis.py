"""Standalone analysis endpoints and the analysis log.

The webhook path calls the pipeline in-process; these endpoints expose the
same stages over HTTP. The voice-note fallback posts to ``/analyze-audio``
and ``/log-analysis``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse

from nutrilog.controllers.dependencies import PipelineDep
from nutrilog.pipelines.analysis.errors import PersistenceFailed, PipelineError
from nutrilog.pipelines.analysis.records import empty_food_record
from nutrilog.pipelines.analysis.types import FetchedMedia
from nutrilog.services.analysis_log import LoggedMedia
from nutrilog.services.llm_client import LlmInvocationError
from nutrilog.services.transcribe import TranscriptionError
from nutrilog.views import AnalyzeTextRequest, ErrorResponse, LogAnalysisResponse

router = APIRouter(tags=["analysis"])

logger = logging.getLogger(__name__)

_UPSTREAM_ERRORS = (LlmInvocationError, TranscriptionError, PipelineError)
_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}

_CAPTION_QUERY = Query(None, alias="text")


def _upstream_failure(exc: Exception) -> HTTPException:
    logger.exception("Analysis failed", exc_info=exc)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


async def _read_upload(upload: Optional[UploadFile], default_mime: str) -> FetchedMedia | None:
    if upload is None:
        return None
    data = await upload.read()
    if not data:
        return None
    return FetchedMedia(data=data, mime_type=upload.content_type or default_mime)


@router.post("/analyze-text", responses=_ERROR_RESPONSES)
async def analyze_text(request: AnalyzeTextRequest, pipeline: PipelineDep) -> dict[str, Any]:
    text = request.text.strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="text required")
    try:
        record = await pipeline.analysis.analyze_text(text)
    except _UPSTREAM_ERRORS as exc:
        raise _upstream_failure(exc) from exc
    return record.model_dump(mode="json")


@router.post("/analyze-image", responses=_ERROR_RESPONSES)
async def analyze_image(
    pipeline: PipelineDep,
    image: Optional[UploadFile] = File(None),
) -> dict[str, Any]:
    media = await _read_upload(image, "image/jpeg")
    if media is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="image required")
    try:
        record = await pipeline.analysis.analyze_image(media)
    except _UPSTREAM_ERRORS as exc:
        raise _upstream_failure(exc) from exc
    return record.model_dump(mode="json")


@router.post("/analyze-image-with-text", responses=_ERROR_RESPONSES)
async def analyze_image_with_text(
    pipeline: PipelineDep,
    image: Optional[UploadFile] = File(None),
    text: Optional[str] = Form(None),
    text_query: Optional[str] = _CAPTION_QUERY,
) -> dict[str, Any]:
    """Photo plus caption; the caption wins over what the model sees."""

    caption = (text or text_query or "").strip()
    media = await _read_upload(image, "image/jpeg")
    if media is None and not caption:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="image or text required",
        )

    try:
        if media is None:
            record = await pipeline.analysis.analyze_caption(caption)
            if record is None:
                record = empty_food_record()
        else:
            record = await pipeline.analysis.analyze_image(media, caption)
    except _UPSTREAM_ERRORS as exc:
        raise _upstream_failure(exc) from exc
    return record.model_dump(mode="json")


@router.post("/analyze-audio", responses=_ERROR_RESPONSES)
async def analyze_audio(
    pipeline: PipelineDep,
    audio: Optional[UploadFile] = File(None),
) -> dict[str, Any]:
    media = await _read_upload(audio, "audio/ogg")
    if media is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="audio required")
    try:
        record = await pipeline.voice.analyze(media.data)
    except _UPSTREAM_ERRORS as exc:
        raise _upstream_failure(exc) from exc
    return record.model_dump(mode="json")


def _parse_analysis(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return {"raw": raw}


async def _logged_media(upload: Optional[UploadFile]) -> LoggedMedia | None:
    if upload is None:
        return None
    data = await upload.read()
    if not data:
        return None
    return LoggedMedia(
        data=data,
        mime_type=upload.content_type or "application/octet-stream",
        filename=upload.filename or "file",
    )


@router.post(
    "/log-analysis",
    status_code=status.HTTP_201_CREATED,
    response_model=LogAnalysisResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def log_analysis(
    pipeline: PipelineDep,
    userId: Optional[str] = Form(None),
    user_id: Optional[str] = Form(None),
    userPhoneNumber: Optional[str] = Form(None),
    userEmail: Optional[str] = Form(None),
    user_email: Optional[str] = Form(None),
    analysisResult: Optional[str] = Form(None),
    analysis: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    audio: Optional[UploadFile] = File(None),
) -> Any:
    """Store an analysis with optional media; used by the voice-note fallback."""

    resolved_user = userId or user_id or userPhoneNumber
    if not resolved_user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="userId required")
    raw_analysis = analysisResult or analysis
    if not raw_analysis:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="analysisResult required",
        )

    try:
        row = await pipeline.analysis_log.persist(
            _parse_analysis(raw_analysis),
            user_id=resolved_user,
            user_email=userEmail or user_email,
            image=await _logged_media(image),
            audio=await _logged_media(audio),
        )
    except PersistenceFailed as exc:
        logger.error("Analysis log insert failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                detail="Failed to insert analysis log", error=str(exc)
            ).model_dump(),
        )

    return LogAnalysisResponse(row=row)


__all__ = ["router"]
