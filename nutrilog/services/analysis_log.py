"""Persist analysed messages: media to S3, the record to ``analysis_logs``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncContextManager, Callable, Mapping

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.models.analysis_log import AnalysisLog
from nutrilog.pipelines.analysis.calories import resolve_total_energy
from nutrilog.pipelines.analysis.errors import PersistenceFailed

from .storage import MediaStorage, StorageError, object_key

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


@dataclass(frozen=True)
class LoggedMedia:
    data: bytes
    mime_type: str
    filename: str


def analysis_payload(analysis: Any) -> Any:
    """JSON-ready form of a record model; mappings and raw values pass through."""

    if isinstance(analysis, BaseModel):
        return analysis.model_dump(mode="json")
    return analysis


def item_type_for(payload: Any) -> str:
    if not isinstance(payload, Mapping):
        return "unknown"
    food, workout = payload.get("food"), payload.get("workout")
    if payload.get("type") == "workout" or (workout and not food):
        return "workout"
    if payload.get("type") == "food" or (food and not workout):
        return "food"
    if food and workout:
        return "mixed"
    return "unknown"


class AnalysisLogService:
    def __init__(self, storage: MediaStorage, session_factory: SessionFactory) -> None:
        self._storage = storage
        self._session_factory = session_factory

    async def _upload(self, media: LoggedMedia | None, bucket: str, user_id: str) -> str | None:
        if media is None or not media.data:
            return None
        try:
            return await self._storage.upload(
                media.data,
                bucket=bucket,
                key=object_key(user_id, media.filename),
                content_type=media.mime_type or "application/octet-stream",
            )
        except StorageError as exc:
            logger.warning("Media upload to %s failed, logging without it: %s", bucket, exc)
            return None

    async def persist(
        self,
        analysis: Any,
        *,
        user_id: str,
        user_email: str | None = None,
        image: LoggedMedia | None = None,
        audio: LoggedMedia | None = None,
    ) -> dict[str, Any]:
        """Store one analysis and return the inserted row.

        Upload failures only leave the media URL empty; a failed insert
        raises ``PersistenceFailed``.
        """

        payload = analysis_payload(analysis)
        image_url = await self._upload(image, self._storage.image_bucket, user_id)
        audio_url = await self._upload(audio, self._storage.audio_bucket, user_id)

        row = AnalysisLog(
            user_id=user_id,
            user_email=user_email,
            item_type=item_type_for(payload),
            total_calories=resolve_total_energy(payload),
            log_details=payload,
            image_url=image_url,
            audio_url=audio_url,
        )
        async with self._session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise PersistenceFailed(f"Could not store analysis log: {exc}") from exc
            await session.refresh(row)

        logger.info(
            "Logged analysis id=%s user=%s type=%s kcal=%s",
            row.id,
            user_id,
            row.item_type,
            row.total_calories,
        )
        return row.to_dict()


__all__ = [
    "AnalysisLogService",
    "LoggedMedia",
    "analysis_payload",
    "item_type_for",
]
