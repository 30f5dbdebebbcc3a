"""Schemas for the standalone analysis endpoints."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AnalyzeTextRequest(BaseModel):
    text: str = Field("", description="Free-text meal or workout description")


class LogAnalysisResponse(BaseModel):
    """Response for ``POST /log-analysis``."""

    message: str = "Logged"
    row: Optional[Dict[str, Any]] = Field(
        None, description="The stored analysis_logs row"
    )
