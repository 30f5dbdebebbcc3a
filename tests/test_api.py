"""HTTP surface: the WhatsApp webhook and the standalone analysis endpoints."""

from __future__ import annotations

from types import SimpleNamespace
import logging
import json

import pytest
from fastapi.testclient import TestClient

from nutrilog.config.settings import MetaConfig
from nutrilog.controllers.dependencies import get_pipeline
from nutrilog.main import app
from nutrilog.middleware.logging import format_line, status_colour
from nutrilog.pipelines.analysis.errors import PersistenceFailed
from nutrilog.pipelines.analysis.records import CompositeRecord, FoodRecord, WorkoutRecord
from nutrilog.pipelines.analysis.types import MessageKind
from nutrilog.services.llm_client import LlmInvocationError

MEAL = FoodRecord.model_validate(
    {"details": [{"item": "poha", "calories": 250}], "totals": {"calories": 250}}
)


class FakeOrchestrator:
    def __init__(self) -> None:
        self.deliveries = []

    async def handle_delivery(self, tasks):
        self.deliveries.append(list(tasks))
        return []


class FakeAnalysis:
    def __init__(self) -> None:
        self.captions = []

    async def analyze_text(self, text):
        if text == "throttle":
            raise LlmInvocationError("throttled")
        return MEAL

    async def analyze_image(self, image, caption=""):
        self.captions.append(caption)
        return MEAL

    async def analyze_caption(self, caption):
        self.captions.append(caption)
        if caption == "nothing":
            return None
        return WorkoutRecord()


class FakeVoice:
    async def analyze(self, audio):
        return CompositeRecord(food=MEAL, transcript="ate poha")


class FakeAnalysisLog:
    def __init__(self) -> None:
        self.calls = []
        self.error = None

    async def persist(self, analysis, **kwargs):
        if self.error is not None:
            raise self.error
        self.calls.append({"analysis": analysis, **kwargs})
        return {"id": 7, "user_id": kwargs["user_id"], "item_type": "food"}


@pytest.fixture
def pipeline():
    fake = SimpleNamespace(
        meta=MetaConfig(verify_token="hub-secret"),
        analysis=FakeAnalysis(),
        voice=FakeVoice(),
        analysis_log=FakeAnalysisLog(),
        orchestrator=FakeOrchestrator(),
    )
    app.dependency_overrides[get_pipeline] = lambda: fake
    yield fake
    app.dependency_overrides.clear()


@pytest.fixture
def client(pipeline):
    # No context manager: startup would try to create tables.
    return TestClient(app)


def _delivery(*messages):
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "waba", "changes": [{"field": "messages", "value": {"messages": list(messages)}}]}],
    }


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_webhook_verification_echoes_challenge(client):
    response = client.get(
        "/whatsapp-webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "hub-secret", "hub.challenge": "4242"},
    )

    assert response.status_code == 200
    assert response.text == "4242"


def test_webhook_verification_rejects_wrong_token(client):
    response = client.get(
        "/whatsapp-webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "4242"},
    )

    assert response.status_code == 403


def test_webhook_delivery_is_handed_to_orchestrator(client, pipeline):
    body = _delivery(
        {"from": "919800000001", "id": "wamid.1", "text": {"body": "2 eggs"}},
        {"from": "919800000001", "id": "wamid.2", "image": {"id": "img-1", "caption": "lunch"}},
    )

    response = client.post("/whatsapp-webhook", json=body)

    assert response.json() == {"status": "received"}
    tasks = pipeline.orchestrator.deliveries[0]
    assert [task.kind for task in tasks] == [MessageKind.TEXT, MessageKind.IMAGE]
    assert tasks[1].caption == "lunch"


def test_webhook_status_updates_are_ignored(client, pipeline):
    body = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1"}]}}]}]}

    assert client.post("/whatsapp-webhook", json=body).json() == {"status": "ignored"}
    assert client.post("/whatsapp-webhook", content=b"not json").json() == {"status": "ignored"}
    assert pipeline.orchestrator.deliveries == []


def test_analyze_text(client):
    assert client.post("/analyze-text", json={"text": "  "}).status_code == 400

    response = client.post("/analyze-text", json={"text": "poha"})

    assert response.status_code == 200
    assert response.json()["type"] == "food"
    assert response.json()["details"][0]["item"] == "poha"


def test_analyze_text_upstream_failure_is_bad_gateway(client):
    assert client.post("/analyze-text", json={"text": "throttle"}).status_code == 502


def test_analyze_image_requires_file(client):
    assert client.post("/analyze-image").status_code == 400

    response = client.post(
        "/analyze-image", files={"image": ("meal.jpg", b"jpeg-bytes", "image/jpeg")}
    )

    assert response.json()["totals"]["calories"] == 250


def test_analyze_image_with_text_variants(client, pipeline):
    assert client.post("/analyze-image-with-text").status_code == 400

    with_photo = client.post(
        "/analyze-image-with-text",
        data={"text": "poha, small bowl"},
        files={"image": ("meal.jpg", b"jpeg-bytes", "image/jpeg")},
    )
    caption_only = client.post("/analyze-image-with-text", params={"text": "ran 5k"})
    nothing_found = client.post("/analyze-image-with-text", data={"text": "nothing"})

    assert with_photo.json()["type"] == "food"
    assert caption_only.json()["type"] == "workout"
    assert nothing_found.json() == FoodRecord().model_dump(mode="json")
    assert pipeline.analysis.captions == ["poha, small bowl", "ran 5k", "nothing"]


def test_analyze_audio(client):
    assert client.post("/analyze-audio").status_code == 400

    response = client.post(
        "/analyze-audio", files={"audio": ("note.ogg", b"ogg-bytes", "audio/ogg")}
    )

    assert response.status_code == 200
    assert response.json()["transcript"] == "ate poha"
    assert response.json()["food"]["details"][0]["item"] == "poha"


def test_log_analysis_validates_and_stores(client, pipeline):
    assert client.post("/log-analysis", data={"analysisResult": "{}"}).status_code == 400
    assert client.post("/log-analysis", data={"userId": "1"}).status_code == 400

    response = client.post(
        "/log-analysis",
        data={
            "userId": "919800000001",
            "userEmail": "919800000001@wa",
            "analysisResult": json.dumps(MEAL.model_dump(mode="json")),
        },
        files={"audio": ("note.ogg", b"ogg-bytes", "audio/ogg")},
    )

    assert response.status_code == 201
    assert response.json() == {
        "message": "Logged",
        "row": {"id": 7, "user_id": "919800000001", "item_type": "food"},
    }
    call = pipeline.analysis_log.calls[0]
    assert call["analysis"]["type"] == "food"
    assert call["user_email"] == "919800000001@wa"
    assert call["audio"].data == b"ogg-bytes"
    assert call["image"] is None


def test_log_analysis_accepts_non_json_analysis(client, pipeline):
    client.post("/log-analysis", data={"user_id": "1", "analysis": "ate a banana"})

    assert pipeline.analysis_log.calls[0]["analysis"] == {"raw": "ate a banana"}


def test_log_analysis_insert_failure(client, pipeline):
    pipeline.analysis_log.error = PersistenceFailed("db down")

    response = client.post("/log-analysis", data={"userId": "1", "analysisResult": "{}"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to insert analysis log"


class _Lines(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.lines = []

    def emit(self, record):
        self.lines.append(record.getMessage())


@pytest.fixture
def request_lines():
    handler = _Lines()
    request_logger = logging.getLogger("nutrilog.middleware.structured")
    request_logger.addHandler(handler)
    yield handler.lines
    request_logger.removeHandler(handler)


def test_request_log_omits_verify_token(client, request_lines):
    client.get(
        "/whatsapp-webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "hub-secret", "hub.challenge": "1"},
    )
    client.get("/health")

    assert len(request_lines) == 1
    line = request_lines[0]
    assert "path=/whatsapp-webhook" in line
    assert "status_code=200" in line
    assert "hub-secret" not in line


def test_format_line_marks_missing_fields():
    line = format_line(
        {"timestamp": "t0", "method": "POST", "path": "/log-analysis", "status_code": 500}
    )

    assert line.startswith(status_colour(500))
    assert "route=-" in line
    assert "client_ip=-" in line
