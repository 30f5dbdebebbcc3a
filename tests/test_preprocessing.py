"""Best-effort ffmpeg cleanup of voice notes."""

from __future__ import annotations

import subprocess

import pytest

from nutrilog.config.settings import AudioConfig
from nutrilog.pipelines.analysis import preprocessing
from nutrilog.pipelines.analysis.preprocessing import AudioPreprocessor


def test_filter_chain_without_noise_model(audio_config):
    chain = AudioPreprocessor(audio_config).filter_chain()

    assert chain == "silenceremove=1:0:-50dB,loudnorm=i=-22:tp=-2:lra=7"


def test_filter_chain_adds_rnnoise_when_model_exists(tmp_path):
    model = tmp_path / "sh.rnnn"
    model.write_bytes(b"model")
    config = AudioConfig(rnnoise_model_path=str(model))

    chain = AudioPreprocessor(config).filter_chain()

    assert chain.startswith(f"arnndn=m={model},silenceremove=")


@pytest.mark.asyncio
async def test_missing_ffmpeg_returns_raw_audio(audio_config, monkeypatch):
    monkeypatch.setattr(preprocessing.shutil, "which", lambda name: None)

    assert await AudioPreprocessor(audio_config).clean(b"raw-ogg") == b"raw-ogg"


@pytest.mark.asyncio
async def test_ffmpeg_failure_returns_raw_audio(audio_config, monkeypatch):
    monkeypatch.setattr(preprocessing.shutil, "which", lambda name: "/usr/bin/ffmpeg")

    def failing_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, stderr=b"Invalid data found")

    monkeypatch.setattr(preprocessing.subprocess, "run", failing_run)

    assert await AudioPreprocessor(audio_config).clean(b"raw-ogg") == b"raw-ogg"


@pytest.mark.asyncio
async def test_successful_cleanup_returns_ffmpeg_output(audio_config, monkeypatch):
    monkeypatch.setattr(preprocessing.shutil, "which", lambda name: "/usr/bin/ffmpeg")
    commands = []

    def fake_run(cmd, **kwargs):
        commands.append(cmd)
        with open(cmd[-1], "wb") as output:
            output.write(b"clean-wav")
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(preprocessing.subprocess, "run", fake_run)

    assert await AudioPreprocessor(audio_config).clean(b"raw-ogg") == b"clean-wav"
    assert commands[0][0] == "/usr/bin/ffmpeg"
    assert "-af" in commands[0]
    assert commands[0][commands[0].index("-ar") + 1] == "16000"


@pytest.mark.asyncio
async def test_empty_input_is_passed_through(audio_config):
    assert await AudioPreprocessor(audio_config).clean(b"") == b""


@pytest.mark.asyncio
async def test_temp_file_failure_returns_raw_audio(audio_config, monkeypatch):
    monkeypatch.setattr(preprocessing.shutil, "which", lambda name: "/usr/bin/ffmpeg")

    def full_disk(*args, **kwargs):
        raise OSError("No space left on device")

    monkeypatch.setattr(preprocessing.tempfile, "NamedTemporaryFile", full_disk)

    assert await AudioPreprocessor(audio_config).clean(b"raw-ogg") == b"raw-ogg"


@pytest.mark.asyncio
async def test_invalid_ffmpeg_arguments_return_raw_audio(audio_config, monkeypatch):
    monkeypatch.setattr(preprocessing.shutil, "which", lambda name: "/usr/bin/ffmpeg")
    staged = []

    def rejected(cmd, **kwargs):
        staged.append(cmd[cmd.index("-i") + 1])
        raise ValueError("embedded null byte")

    monkeypatch.setattr(preprocessing.subprocess, "run", rejected)

    assert await AudioPreprocessor(audio_config).clean(b"raw-ogg") == b"raw-ogg"
    assert not preprocessing.os.path.exists(staged[0])
