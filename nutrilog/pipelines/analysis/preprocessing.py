"""Voice-note cleanup (Stage 02): denoise, trim leading silence, normalise.

Cleanup is best effort. Whatever goes wrong, ``clean`` hands back the bytes
it was given and the rest of the audio path carries on.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile

from fastapi.concurrency import run_in_threadpool

from nutrilog.config.settings import AudioConfig
from nutrilog.telemetry import record_preprocess_degraded

from .errors import PreprocessDegraded

logger = logging.getLogger("nutrilog.pipeline")


class AudioPreprocessor:
    def __init__(self, config: AudioConfig) -> None:
        self._config = config

    def filter_chain(self) -> str:
        """ffmpeg ``-af`` value; the RNNoise stage only when its model file exists."""

        cfg = self._config
        filters = []
        if cfg.rnnoise_model_path and os.path.exists(cfg.rnnoise_model_path):
            filters.append(f"arnndn=m={cfg.rnnoise_model_path}")
        filters.append(f"silenceremove=1:0:{cfg.silence_threshold_db}dB")
        filters.append(
            f"loudnorm=i={cfg.loudness_target_lufs:g}:tp={cfg.true_peak_db:g}:lra={cfg.loudness_range:g}"
        )
        return ",".join(filters)

    async def clean(self, raw_audio: bytes) -> bytes:
        if not raw_audio:
            return raw_audio
        try:
            cleaned = await run_in_threadpool(self._run_ffmpeg, raw_audio)
        except (PreprocessDegraded, OSError, ValueError) as exc:
            record_preprocess_degraded()
            logger.warning("Audio preprocessing skipped, using raw audio: %s", exc)
            return raw_audio
        logger.info("Audio preprocessed %d -> %d bytes", len(raw_audio), len(cleaned))
        return cleaned

    def _run_ffmpeg(self, raw_audio: bytes) -> bytes:
        binary = shutil.which(self._config.ffmpeg_binary)
        if not binary:
            raise PreprocessDegraded(f"{self._config.ffmpeg_binary} not found on PATH")

        staged: list[str] = []
        try:
            with tempfile.NamedTemporaryFile(delete=False, suffix=".in") as input_file:
                staged.append(input_file.name)
                input_file.write(raw_audio)
            input_path = input_file.name
            output_path = f"{input_path}.wav"
            staged.append(output_path)
            subprocess.run(
                [
                    binary,
                    "-hide_banner",
                    "-loglevel", "error",
                    "-y",
                    "-i", input_path,
                    "-af", self.filter_chain(),
                    "-ac", "1",
                    "-ar", str(self._config.sample_rate_hz),
                    output_path,
                ],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                timeout=self._config.timeout_seconds,
            )
            with open(output_path, "rb") as output_file:
                cleaned = output_file.read()
        except subprocess.CalledProcessError as exc:
            error_msg = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else "No stderr"
            raise PreprocessDegraded(f"ffmpeg failed: {error_msg}") from exc
        except subprocess.TimeoutExpired as exc:
            raise PreprocessDegraded("ffmpeg timed out") from exc
        except (OSError, ValueError) as exc:
            raise PreprocessDegraded(f"could not stage or run ffmpeg: {exc}") from exc
        finally:
            for path in staged:
                if os.path.exists(path):
                    os.remove(path)

        if not cleaned:
            raise PreprocessDegraded("ffmpeg produced an empty file")
        return cleaned


__all__ = ["AudioPreprocessor"]
