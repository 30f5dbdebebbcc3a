"""Shared fakes for the analysis pipeline tests."""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from nutrilog.config.settings import AudioConfig, BedrockConfig, ProfileConfig  # noqa: E402
from nutrilog.pipelines.analysis.errors import DeliveryFailed, MediaUnavailable  # noqa: E402
from nutrilog.pipelines.analysis.types import FetchedMedia  # noqa: E402
from nutrilog.services.storage import StorageError  # noqa: E402


class FakeLlm:
    """Scripted stand-in for ``BedrockLlmClient``.

    Responses are served in order; an exception in the queue is raised
    instead of returned. Every call's keyword arguments are recorded.
    """

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def invoke(self, **kwargs: Any) -> str | None:
        self.calls.append(kwargs)
        if not self.responses:
            return None
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeMessenger:
    def __init__(self, *, fail_on: tuple[str, ...] = ()) -> None:
        self.sent: list[tuple[str, str, str | None]] = []
        self._fail_on = fail_on

    async def send_text(self, to: str, text: str, reply_to: str | None = None) -> None:
        if any(marker in text for marker in self._fail_on):
            raise DeliveryFailed(f"refused {text[:20]!r}")
        self.sent.append((to, text, reply_to))


class FakeFetcher:
    def __init__(self, media: dict[str, FetchedMedia] | None = None) -> None:
        self._media = media or {}

    async def fetch(self, media_id: str) -> FetchedMedia:
        if media_id not in self._media:
            raise MediaUnavailable(f"no media {media_id}")
        return self._media[media_id]


class FakeAnalysisLog:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.persisted: list[dict[str, Any]] = []
        self._error = error

    async def persist(self, analysis: Any, **kwargs: Any) -> dict[str, Any]:
        if self._error is not None:
            raise self._error
        self.persisted.append({"analysis": analysis, **kwargs})
        return {"id": len(self.persisted), "user_id": kwargs.get("user_id")}


class FakeStorage:
    image_bucket = "images"
    audio_bucket = "audio"

    def __init__(self, *, fail: bool = False) -> None:
        self.uploads: list[dict[str, Any]] = []
        self._fail = fail

    async def upload(self, data: bytes, *, bucket: str, key: str, content_type: str) -> str:
        if self._fail:
            raise StorageError("bucket unreachable")
        self.uploads.append(
            {"data": data, "bucket": bucket, "key": key, "content_type": content_type}
        )
        return f"https://{bucket}.s3.amazonaws.com/{key}"


class FakeLoopback:
    def __init__(self, result: Any = None, *, error: Exception | None = None) -> None:
        self.calls: list[tuple[bytes, str | None, str]] = []
        self._result = result
        self._error = error

    async def analyze_and_log(self, audio: bytes, mime_type: str | None, user_id: str) -> Any:
        self.calls.append((audio, mime_type, user_id))
        if self._error is not None:
            raise self._error
        return self._result


@pytest.fixture
def profile() -> ProfileConfig:
    return ProfileConfig(weight_kg=70, age=30, sex="unknown", device_adjust=1.0)


@pytest.fixture
def bedrock_config() -> BedrockConfig:
    return BedrockConfig()


@pytest.fixture
def audio_config(tmp_path: Path) -> AudioConfig:
    return AudioConfig(debug_dir=str(tmp_path), rnnoise_model_path=None)
