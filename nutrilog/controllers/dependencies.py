"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from nutrilog.config.dependencies import Pipeline


def get_pipeline(request: Request) -> Pipeline:
    """The pipeline built at startup and stored on the application state."""

    return request.app.state.pipeline


PipelineDep = Annotated[Pipeline, Depends(get_pipeline)]


__all__ = ["PipelineDep", "get_pipeline"]
