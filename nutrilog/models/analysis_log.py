"""Logged food / workout analyses."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from .base import Base


class AnalysisLog(Base):
    """One analysed message: the record JSON plus links to its media."""

    __tablename__ = "analysis_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    user_email = Column(String(255), nullable=True)
    item_type = Column(String(16), nullable=False, default="unknown")
    total_calories = Column(Integer, nullable=False, default=0)
    log_details = Column(JSONB, nullable=False, default=dict)
    image_url = Column(Text, nullable=True)
    audio_url = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "item_type": self.item_type,
            "total_calories": self.total_calories,
            "log_details": self.log_details,
            "image_url": self.image_url,
            "audio_url": self.audio_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


__all__ = ["AnalysisLog"]
