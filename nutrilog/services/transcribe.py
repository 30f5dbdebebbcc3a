"""Voice-note transcription over the Amazon Transcribe streaming API.

WhatsApp voice notes arrive as OGG/Opus. They are decoded to 16-bit mono
PCM with ffmpeg, streamed to Transcribe at roughly real-time pace, and the
final (non-partial) segments are joined into one transcript.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Optional

from amazon_transcribe.client import TranscribeStreamingClient
from amazon_transcribe.handlers import TranscriptResultStreamHandler
from amazon_transcribe.model import TranscriptEvent
from fastapi.concurrency import run_in_threadpool

from nutrilog.config.settings import AudioConfig, TranscribeConfig

logger = logging.getLogger(__name__)

# 16-bit mono, so a frame is two bytes
_FRAME_BYTES = 2
_CHUNK_BYTES = 8192


@dataclass(frozen=True)
class TranscriptionResult:
    transcript: str
    language_code: Optional[str] = None


class TranscriptionError(RuntimeError):
    """Voice note could not be decoded or transcribed."""


def decode_to_pcm(ffmpeg: str, audio: bytes, sample_rate_hz: int) -> bytes:
    """Decode any ffmpeg-readable audio to raw s16le mono PCM.

    The input goes through a temporary file because OGG demuxing needs to seek.
    """

    if not audio:
        raise TranscriptionError("voice note is empty")

    fd, source = tempfile.mkstemp(prefix="wa-voice-", suffix=".ogg")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(audio)
        completed = subprocess.run(
            [
                ffmpeg, "-nostdin", "-loglevel", "error", "-y",
                "-i", source,
                "-f", "s16le", "-ac", "1", "-ar", str(sample_rate_hz),
                "pipe:1",
            ],
            capture_output=True,
            check=True,
        )
    except FileNotFoundError as exc:
        raise TranscriptionError(f"ffmpeg not found at {ffmpeg}") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
        logger.error("ffmpeg could not decode voice note: %s", stderr or "no output")
        raise TranscriptionError(f"voice note decode failed: {stderr or exc}") from exc
    finally:
        if os.path.exists(source):
            os.remove(source)

    if not completed.stdout:
        raise TranscriptionError("voice note decoded to no samples")
    return completed.stdout


class _FinalSegments(TranscriptResultStreamHandler):
    """Keeps the final alternative of every completed segment."""

    def __init__(self, output_stream) -> None:
        super().__init__(output_stream)
        self.segments: list[str] = []

    async def handle_transcript_event(self, transcript_event: TranscriptEvent) -> None:
        for result in transcript_event.transcript.results:
            if result.is_partial or not result.alternatives:
                continue
            text = result.alternatives[0].transcript.strip()
            if text:
                self.segments.append(text)

    @property
    def transcript(self) -> str:
        return " ".join(self.segments)


class TranscribeService:
    def __init__(self, config: TranscribeConfig, *, audio: AudioConfig) -> None:
        self._config = config
        self._ffmpeg = audio.ffmpeg_binary
        self._client: Optional[TranscribeStreamingClient] = None

    @property
    def client(self) -> TranscribeStreamingClient:
        # Credentials come from the default AWS chain
        if self._client is None:
            self._client = TranscribeStreamingClient(region=self._config.region)
        return self._client

    async def transcribe_audio(self, audio_bytes: bytes) -> TranscriptionResult:
        """Decode a voice note and return its transcript.

        Raises ``TranscriptionError`` for decode failures as well as stream
        failures, so callers can fall back on a single exception type.
        """

        rate = self._config.sample_rate_hz
        pcm = await run_in_threadpool(decode_to_pcm, self._ffmpeg, audio_bytes, rate)

        try:
            stream = await self.client.start_stream_transcription(
                language_code=self._config.language_code,
                media_sample_rate_hz=rate,
                media_encoding="pcm",
            )
        except Exception as exc:
            raise TranscriptionError(f"could not open transcription stream: {exc}") from exc

        collector = _FinalSegments(stream.output_stream)
        seconds = len(pcm) / (rate * _FRAME_BYTES)
        logger.info("Streaming %.1fs of voice note audio to Transcribe", seconds)
        try:
            await asyncio.gather(_send_paced(stream, pcm, rate), collector.handle_events())
        except Exception as exc:
            raise TranscriptionError(f"transcription stream failed: {exc}") from exc

        transcript = collector.transcript
        logger.info("Transcribed %d segment(s), %d chars", len(collector.segments), len(transcript))
        return TranscriptionResult(transcript=transcript, language_code=self._config.language_code)


async def _send_paced(stream, pcm: bytes, sample_rate_hz: int) -> None:
    # Transcribe rejects audio that arrives much faster than real time
    pause = _CHUNK_BYTES / (sample_rate_hz * _FRAME_BYTES)
    for offset in range(0, len(pcm), _CHUNK_BYTES):
        await stream.input_stream.send_audio_event(audio_chunk=pcm[offset : offset + _CHUNK_BYTES])
        await asyncio.sleep(pause)
    await stream.input_stream.end_stream()


__all__ = ["TranscribeService", "TranscriptionError", "TranscriptionResult", "decode_to_pcm"]
