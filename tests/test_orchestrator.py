"""Per-delivery orchestration: acknowledgements, routing and failure isolation."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeAnalysisLog, FakeFetcher, FakeLoopback, FakeMessenger, FakeStorage
from nutrilog.pipelines.analysis.errors import ErrorKind, PersistenceFailed
from nutrilog.pipelines.analysis.orchestrator import (
    ACK_REPLY,
    DOWNLOAD_FAILED_REPLY,
    GENERIC_FAILURE_REPLY,
    IMAGE_FAILED_REPLY,
    NO_MEDIA_REPLY,
    SELECTION_REPLY,
    TEXT_FAILED_REPLY,
    UNSUPPORTED_MEDIA_REPLY,
    UNSUPPORTED_REPLY,
    MessageOrchestrator,
)
from nutrilog.pipelines.analysis.records import CompositeRecord, FoodRecord, WorkoutRecord
from nutrilog.pipelines.analysis.replies import compose, compose_composite
from nutrilog.pipelines.analysis.types import (
    FetchedMedia,
    InboundTask,
    MessageKind,
    MessageState,
    Route,
)

SENDER = "919800000001"
OTHER = "919800000002"

MEAL = FoodRecord.model_validate(
    {"details": [{"item": "poha", "calories": 250}], "totals": {"calories": 250}}
)
RUN = WorkoutRecord.model_validate(
    {
        "details": [{"activity": "running", "duration_min": 20, "calories_burned": 147}],
        "totals": {"calories_burned": 147},
    }
)


class FakeAnalysis:
    def __init__(self) -> None:
        self.images: list[tuple[FetchedMedia, str]] = []

    async def analyze_text(self, text: str):
        if text == "boom":
            raise RuntimeError("model exploded")
        return RUN if "ran" in text else MEAL

    async def analyze_image(self, image: FetchedMedia, caption: str = ""):
        self.images.append((image, caption))
        if caption == "boom":
            raise RuntimeError("vision down")
        return MEAL


class FakeVoice:
    def __init__(self, *, error: Exception | None = None) -> None:
        self._error = error
        self.calls: list[bytes] = []

    async def analyze(self, audio: bytes) -> CompositeRecord:
        self.calls.append(audio)
        if self._error is not None:
            raise self._error
        return CompositeRecord(food=MEAL, transcript="ate poha")


def _orchestrator(audio_config, **overrides):
    parts = {
        "fetcher": FakeFetcher(
            {
                "img-1": FetchedMedia(b"jpeg", "image/jpeg"),
                "aud-1": FetchedMedia(b"ogg", "audio/ogg"),
                "vid-1": FetchedMedia(b"mp4", "video/mp4"),
                "raw-1": FetchedMedia(b"ogg", "application/octet-stream"),
            }
        ),
        "analysis": FakeAnalysis(),
        "voice": FakeVoice(),
        "messenger": FakeMessenger(),
        "analysis_log": FakeAnalysisLog(),
        "loopback": FakeLoopback(),
        "storage": FakeStorage(),
        "audio_config": audio_config,
    }
    parts.update(overrides)
    return MessageOrchestrator(**parts), parts


def _text(message_id: str, body: str, sender: str = SENDER) -> InboundTask:
    return InboundTask(sender_id=sender, message_id=message_id, kind=MessageKind.TEXT, text=body)


def _media(message_id: str, kind: MessageKind, media_id: str | None, **extra) -> InboundTask:
    return InboundTask(
        sender_id=SENDER, message_id=message_id, kind=kind, media_id=media_id, **extra
    )


@pytest.mark.asyncio
async def test_one_ack_per_sender_replying_to_first_message(audio_config):
    orchestrator, parts = _orchestrator(audio_config)
    tasks = [_text("m1", "poha"), _text("m2", "ran 5k"), _text("m3", "poha", sender=OTHER)]

    outcomes = await orchestrator.handle_delivery(tasks)

    acks = [sent for sent in parts["messenger"].sent if sent[1] == ACK_REPLY]
    assert acks == [(SENDER, ACK_REPLY, "m1"), (OTHER, ACK_REPLY, "m3")]
    assert [outcome.state for outcome in outcomes] == [MessageState.REPLIED] * 3
    assert outcomes[1].reply == compose(RUN)
    assert len(parts["analysis_log"].persisted) == 3
    assert parts["analysis_log"].persisted[0]["user_email"] == f"{SENDER}@wa"


@pytest.mark.asyncio
async def test_failed_message_does_not_stop_its_siblings(audio_config):
    orchestrator, parts = _orchestrator(audio_config)

    outcomes = await orchestrator.handle_delivery([_text("m1", "boom"), _text("m2", "poha")])

    assert outcomes[0].state is MessageState.FAILED
    assert outcomes[0].reply == TEXT_FAILED_REPLY
    assert outcomes[0].error is ErrorKind.ANALYSIS_FAILED
    assert outcomes[1].state is MessageState.REPLIED
    assert outcomes[1].reply == compose(MEAL)
    replies = [text for _, text, _ in parts["messenger"].sent]
    assert replies == [ACK_REPLY, TEXT_FAILED_REPLY, compose(MEAL)]


@pytest.mark.asyncio
async def test_ack_delivery_failure_does_not_block_processing(audio_config):
    orchestrator, parts = _orchestrator(
        audio_config, messenger=FakeMessenger(fail_on=(ACK_REPLY,))
    )

    outcomes = await orchestrator.handle_delivery([_text("m1", "poha")])

    assert outcomes[0].state is MessageState.REPLIED
    assert parts["messenger"].sent == [(SENDER, compose(MEAL), "m1")]


@pytest.mark.asyncio
async def test_reply_delivery_failure_is_recorded(audio_config):
    orchestrator, _ = _orchestrator(audio_config, messenger=FakeMessenger(fail_on=("Food:",)))

    outcome = await orchestrator.handle_task(_text("m1", "poha"))

    assert outcome.state is MessageState.LOGGED
    assert outcome.error is ErrorKind.DELIVERY_FAILED


@pytest.mark.asyncio
async def test_persistence_failure_still_replies(audio_config):
    orchestrator, parts = _orchestrator(
        audio_config, analysis_log=FakeAnalysisLog(error=PersistenceFailed("db down"))
    )

    outcome = await orchestrator.handle_task(_text("m1", "poha"))

    assert outcome.state is MessageState.REPLIED
    assert outcome.reply == compose(MEAL)
    assert outcome.error is None


@pytest.mark.asyncio
async def test_interactive_without_title_gets_selection_reply(audio_config):
    orchestrator, parts = _orchestrator(audio_config)
    task = InboundTask(sender_id=SENDER, message_id="m1", kind=MessageKind.INTERACTIVE)

    outcome = await orchestrator.handle_task(task)

    assert outcome.route is Route.INTERACTIVE
    assert outcome.reply == SELECTION_REPLY
    assert parts["analysis_log"].persisted == []


@pytest.mark.asyncio
async def test_unknown_kind_is_unsupported(audio_config):
    orchestrator, _ = _orchestrator(audio_config)
    task = InboundTask(sender_id=SENDER, message_id="m1", kind=MessageKind.UNKNOWN)

    outcome = await orchestrator.handle_task(task)

    assert outcome.route is Route.UNSUPPORTED
    assert outcome.reply == UNSUPPORTED_REPLY


@pytest.mark.asyncio
async def test_media_failures_reply_with_apologies(audio_config):
    orchestrator, _ = _orchestrator(audio_config)

    missing_id = await orchestrator.handle_task(_media("m1", MessageKind.IMAGE, None))
    not_found = await orchestrator.handle_task(_media("m2", MessageKind.IMAGE, "gone"))
    video = await orchestrator.handle_task(_media("m3", MessageKind.VIDEO, "vid-1"))

    assert missing_id.reply == NO_MEDIA_REPLY
    assert missing_id.error is ErrorKind.MEDIA_UNAVAILABLE
    assert not_found.reply == DOWNLOAD_FAILED_REPLY
    assert not_found.state is MessageState.FAILED
    assert video.reply == UNSUPPORTED_MEDIA_REPLY
    assert video.route is Route.UNSUPPORTED


@pytest.mark.asyncio
async def test_image_is_analysed_with_caption_and_logged_with_photo(audio_config):
    orchestrator, parts = _orchestrator(audio_config)

    outcome = await orchestrator.handle_task(
        _media("m1", MessageKind.IMAGE, "img-1", caption="poha with peanuts")
    )

    assert outcome.route is Route.IMAGE
    assert outcome.reply == compose(MEAL)
    assert parts["analysis"].images[0][1] == "poha with peanuts"
    logged = parts["analysis_log"].persisted[0]
    assert logged["image"].filename == "log-media.jpg"
    assert logged["image"].mime_type == "image/jpeg"


@pytest.mark.asyncio
async def test_image_analysis_failure(audio_config):
    orchestrator, _ = _orchestrator(audio_config)

    outcome = await orchestrator.handle_task(
        _media("m1", MessageKind.IMAGE, "img-1", caption="boom")
    )

    assert outcome.reply == IMAGE_FAILED_REPLY
    assert outcome.state is MessageState.FAILED


@pytest.mark.asyncio
async def test_voice_note_primary_path(audio_config):
    orchestrator, parts = _orchestrator(audio_config)

    outcome = await orchestrator.handle_task(
        _media("m1", MessageKind.AUDIO, "aud-1", is_voice=True)
    )

    assert outcome.route is Route.AUDIO
    assert outcome.reply == compose_composite(CompositeRecord(food=MEAL))
    assert parts["analysis_log"].persisted[0]["audio"].filename == "log-media.ogg"


@pytest.mark.asyncio
async def test_octet_stream_falls_back_to_webhook_mime(audio_config):
    orchestrator, parts = _orchestrator(audio_config)

    outcome = await orchestrator.handle_task(
        _media("m1", MessageKind.DOCUMENT, "raw-1", media_mime_type="audio/ogg")
    )

    assert outcome.route is Route.AUDIO
    assert parts["voice"].calls == [b"ogg"]


@pytest.mark.asyncio
async def test_voice_note_fallback_result_is_not_logged_twice(audio_config):
    loopback = FakeLoopback(RUN.model_dump(mode="json"))
    orchestrator, parts = _orchestrator(
        audio_config, voice=FakeVoice(error=RuntimeError("transcribe down")), loopback=loopback
    )

    outcome = await orchestrator.handle_task(_media("m1", MessageKind.AUDIO, "aud-1"))

    assert outcome.state is MessageState.REPLIED
    assert outcome.reply == compose(RUN)
    assert loopback.calls == [(b"ogg", "audio/ogg", SENDER)]
    assert parts["analysis_log"].persisted == []


@pytest.mark.asyncio
async def test_voice_note_double_failure_preserves_audio(audio_config):
    storage = FakeStorage(fail=True)
    orchestrator, parts = _orchestrator(
        audio_config,
        voice=FakeVoice(error=RuntimeError("transcribe down")),
        loopback=FakeLoopback(error=RuntimeError("loopback down")),
        storage=storage,
    )

    outcome = await orchestrator.handle_task(_media("m1", MessageKind.AUDIO, "aud-1"))

    assert outcome.state is MessageState.FAILED
    assert outcome.error is ErrorKind.ANALYSIS_FAILED
    saved = list(Path(audio_config.debug_dir).glob("wa-voice-*.ogg"))
    assert len(saved) == 1
    assert saved[0].read_bytes() == b"ogg"
    assert str(saved[0]) in outcome.reply
    assert "voice note" in outcome.reply


@pytest.mark.asyncio
async def test_double_failure_uploads_debug_copy_when_storage_works(audio_config):
    storage = FakeStorage()
    orchestrator, _ = _orchestrator(
        audio_config,
        voice=FakeVoice(error=RuntimeError("transcribe down")),
        loopback=FakeLoopback(error=RuntimeError("loopback down")),
        storage=storage,
    )

    await orchestrator.handle_task(_media("m1", MessageKind.AUDIO, "aud-1"))

    assert storage.uploads[0]["bucket"] == "audio"
    assert storage.uploads[0]["key"].startswith(f"failed/{SENDER}/")


@pytest.mark.asyncio
async def test_unexpected_error_gets_generic_reply(audio_config):
    class BrokenFetcher:
        async def fetch(self, media_id):
            raise KeyError(media_id)

    orchestrator, _ = _orchestrator(audio_config, fetcher=BrokenFetcher())

    outcome = await orchestrator.handle_task(_media("m1", MessageKind.IMAGE, "img-1"))

    assert outcome.reply == GENERIC_FAILURE_REPLY
    assert outcome.state is MessageState.FAILED


@pytest.mark.asyncio
async def test_double_failure_quotes_upload_when_local_copy_fails(audio_config, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_bytes(b"")
    unwritable = audio_config.model_copy(update={"debug_dir": str(blocker / "debug")})
    storage = FakeStorage()
    orchestrator, _ = _orchestrator(
        unwritable,
        voice=FakeVoice(error=RuntimeError("transcribe down")),
        loopback=FakeLoopback(error=RuntimeError("loopback down")),
        storage=storage,
    )

    outcome = await orchestrator.handle_task(_media("m1", MessageKind.AUDIO, "aud-1"))

    uploaded = f"https://audio.s3.amazonaws.com/{storage.uploads[0]['key']}"
    assert uploaded in outcome.reply
    assert str(blocker) not in outcome.reply


@pytest.mark.asyncio
async def test_double_failure_says_when_no_copy_was_kept(audio_config, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_bytes(b"")
    unwritable = audio_config.model_copy(update={"debug_dir": str(blocker / "debug")})
    orchestrator, _ = _orchestrator(
        unwritable,
        voice=FakeVoice(error=RuntimeError("transcribe down")),
        loopback=FakeLoopback(error=RuntimeError("loopback down")),
        storage=FakeStorage(fail=True),
    )

    outcome = await orchestrator.handle_task(_media("m1", MessageKind.AUDIO, "aud-1"))

    assert outcome.state is MessageState.FAILED
    assert "couldn't save a copy" in outcome.reply
    assert "saved the file" not in outcome.reply
