"""Tests for the host/loader message exchange that assembles audio buffers."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from audiopreview.protocol import BufferLoader, DocumentHost, MessageType, make_message


@pytest.fixture
def three_channel_wav(tmp_path: Path) -> Path:
    sample_rate = 4000
    frames = np.stack(
        [np.linspace(-1.0, 1.0, 10_000), np.zeros(10_000), np.full(10_000, 0.5)], axis=1
    )
    path = tmp_path / "three.wav"
    sf.write(str(path), frames, sample_rate, subtype="FLOAT")
    return path


def test_host_answers_each_message_type(three_channel_wav: Path):
    host = DocumentHost(three_channel_wav, chunk_size=4096)

    info = host.handle(make_message(MessageType.READY))
    assert info["type"] == "info"
    assert info["data"]["channels"] == 3
    assert info["data"]["chunk_size"] == 4096

    prepared = host.handle(make_message(MessageType.PREPARE))
    assert prepared["data"]["length"] == 10_000
    assert prepared["data"]["duration"] == pytest.approx(2.5)

    data = host.handle(make_message(MessageType.PLAY, {"start": 9000, "end": 20_000}))
    assert data["type"] == "data"
    assert data["data"]["end"] == 10_000
    assert len(data["data"]["samples"]) == 3
    assert len(data["data"]["samples"][0]) == 1000

    assert host.handle({"type": "unknown"}) is None


def test_loader_assembles_buffer_in_chunks(three_channel_wav: Path):
    host = DocumentHost(three_channel_wav, chunk_size=3000)
    requests: list[dict] = []

    def send(message: dict) -> dict | None:
        requests.append(message)
        return host.handle(message)

    loader = BufferLoader(send)
    buffer = loader.load()

    assert buffer is not None
    assert buffer.channel_count == 3
    assert buffer.sample_rate == 4000
    assert buffer.length == 10_000
    np.testing.assert_allclose(buffer.channel_data(2), 0.5)
    np.testing.assert_allclose(buffer.channel_data(0)[[0, -1]], [-1.0, 1.0], atol=1e-6)

    play_ranges = [(m["data"]["start"], m["data"]["end"]) for m in requests if m["type"] == "play"]
    assert play_ranges == [(0, 3000), (3000, 6000), (6000, 9000), (9000, 10_000)]
    assert not loader.inert


def test_loader_chunk_size_override(three_channel_wav: Path):
    host = DocumentHost(three_channel_wav)
    plays: list[dict] = []

    def send(message: dict) -> dict | None:
        if message["type"] == "play":
            plays.append(message)
        return host.handle(message)

    assert BufferLoader(send, chunk_size=5000).load() is not None
    assert len(plays) == 2


def test_unsupported_file_leaves_loader_inert(tmp_path: Path):
    path = tmp_path / "broken.wav"
    path.write_bytes(b"RIFF\x00\x00garbage")
    host = DocumentHost(path)

    loader = BufferLoader(host.handle)
    assert loader.load() is None
    assert loader.inert
    assert loader.buffer is None


def test_missing_reply_leaves_loader_inert():
    loader = BufferLoader(lambda message: None)
    assert loader.load() is None
    assert loader.inert


def test_reload_notifies_listeners_and_restarts_exchange(three_channel_wav: Path):
    host = DocumentHost(three_channel_wav)
    received: list[dict] = []
    host.add_listener(received.append)
    loader = BufferLoader(host.handle)
    assert loader.load() is not None

    frames = np.zeros((500, 1))
    sf.write(str(three_channel_wav), frames, 8000, subtype="FLOAT")
    host.reload()

    assert received == [{"type": "reload", "data": None}]
    assert loader.handle_message(received[0]) == make_message(MessageType.READY)
    assert loader.buffer is None

    reloaded = loader.load()
    assert reloaded is not None
    assert reloaded.channel_count == 1
    assert reloaded.sample_rate == 8000


def test_play_before_prepare_returns_empty_data(three_channel_wav: Path):
    host = DocumentHost(three_channel_wav)
    reply = host.handle(make_message(MessageType.PLAY, {"start": 0, "end": 10}))
    assert reply == make_message(MessageType.DATA, None)


def test_data_before_prepare_leaves_loader_inert():
    loader = BufferLoader(lambda message: None)
    data = make_message(MessageType.DATA, {"start": 0, "end": 2, "samples": [[0.1, 0.2]]})

    assert loader.handle_message(data) is None
    assert loader.inert
    assert loader.buffer is None
