"""Tests for chunked spectrogram computation and tile streaming."""

from __future__ import annotations

import time

import numpy as np
import pytest

from audiopreview.analyze_settings import AnalyzeSettings
from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.scheduling import ManualScheduler
from audiopreview.spectrogram import (
    SpectrogramPipeline,
    SpectrogramProvider,
    SpectrogramRequest,
    SpectrogramTile,
    chunk_end,
)


def _make_buffer(channels: int = 2, sample_rate: int = 8000, duration: float = 2.0) -> AudioBufferRef:
    t = np.arange(int(sample_rate * duration)) / sample_rate
    data = [np.sin(2 * np.pi * 440.0 * (ch + 1) * t) * 0.5 for ch in range(channels)]
    return AudioBufferRef.from_channels(data, sample_rate)


def _make_settings(buffer: AudioBufferRef) -> AnalyzeSettings:
    return AnalyzeSettings(buffer.sample_rate, buffer.duration, -1.0, 1.0)


def test_chunk_end_rounds_to_whole_hops_and_caps():
    assert chunk_end(0, 100_000, 392, 10_000) == 26 * 392
    assert chunk_end(10_192, 12_000, 392, 10_000) == 12_000
    assert chunk_end(0, 100, 1000, 10) == 100


def test_provider_computes_tile_with_token():
    buffer = _make_buffer()
    settings = _make_settings(buffer)
    snapshot = settings.snapshot()
    provider = SpectrogramProvider(buffer, max_workers=0)

    tile = provider.compute(SpectrogramRequest(1, 0, 4096, snapshot, snapshot.analyze_token))

    assert tile is not None
    assert tile.channel == 1
    assert tile.token == snapshot.analyze_token
    assert tile.frame_count == -(-4096 // snapshot.hop_size)
    assert tile.bin_count == tile.frequencies.shape[0]
    assert tile.frame_start(2) == 2 * snapshot.hop_size


def test_provider_returns_none_for_missing_channel():
    buffer = _make_buffer(channels=1)
    snapshot = _make_settings(buffer).snapshot()
    provider = SpectrogramProvider(buffer, max_workers=0)
    assert provider.compute(SpectrogramRequest(3, 0, 1024, snapshot, "t")) is None


def test_provider_cache_reuses_frames_under_new_token():
    buffer = _make_buffer(channels=1)
    settings = _make_settings(buffer)
    provider = SpectrogramProvider(buffer, max_workers=0)

    first = provider.compute(SpectrogramRequest(0, 0, 2048, settings.snapshot(), "a"))
    second = provider.compute(SpectrogramRequest(0, 0, 2048, settings.snapshot(), "b"))

    assert first is not None and second is not None
    assert second.token == "b"
    assert second.magnitude_frames is first.magnitude_frames

    provider.clear_cache()
    third = provider.compute(SpectrogramRequest(0, 0, 2048, settings.snapshot(), "c"))
    assert third is not None
    assert third.magnitude_frames is not first.magnitude_frames


def test_request_and_tile_messages_round_trip():
    buffer = _make_buffer(channels=1)
    snapshot = _make_settings(buffer).snapshot()
    provider = SpectrogramProvider(buffer, max_workers=0)
    request = SpectrogramRequest(0, 0, 2048, snapshot, snapshot.analyze_token)

    message = request.to_message()
    assert message["type"] == "spectrogram"
    assert SpectrogramRequest.from_message(message) == request

    reply = provider.handle_message(message)
    assert reply is not None
    tile = SpectrogramTile.from_message(reply)
    assert tile.token == snapshot.analyze_token
    assert tile.hop_size == snapshot.hop_size
    assert tile.magnitude_frames.shape[1] == tile.frequencies.shape[0]


def test_stream_covers_visible_range_in_order():
    buffer = _make_buffer(channels=1)
    settings = _make_settings(buffer)
    scheduler = ManualScheduler()
    pipeline = SpectrogramPipeline(SpectrogramProvider(buffer, max_workers=0), scheduler, chunk_size=3000)
    snapshot = settings.snapshot()
    tiles: list[SpectrogramTile] = []

    pipeline.stream(0, snapshot, tiles.append, lambda token: token == snapshot.analyze_token)
    assert tiles == []  # Nothing is computed before the scheduler runs
    scheduler.run_until_idle()

    assert tiles[0].sample_start == 0
    assert tiles[-1].sample_end == buffer.length
    for previous, current in zip(tiles, tiles[1:]):
        assert current.sample_start == previous.sample_end
        # Chunks share one frame grid
        assert current.sample_start % snapshot.hop_size == 0


def test_stream_respects_visible_time_range():
    buffer = _make_buffer(channels=1)
    settings = _make_settings(buffer)
    settings.set_time_range(0.5, 1.0)
    scheduler = ManualScheduler()
    pipeline = SpectrogramPipeline(SpectrogramProvider(buffer, max_workers=0), scheduler)
    snapshot = settings.snapshot()
    tiles: list[SpectrogramTile] = []

    pipeline.stream(0, snapshot, tiles.append, lambda token: True)
    scheduler.run_until_idle()

    assert tiles[0].sample_start == 4000
    assert tiles[-1].sample_end == 8000


def test_stale_tiles_are_dropped_and_stop_the_stream():
    buffer = _make_buffer(channels=1)
    settings = _make_settings(buffer)
    scheduler = ManualScheduler()
    pipeline = SpectrogramPipeline(SpectrogramProvider(buffer, max_workers=0), scheduler, chunk_size=2000)
    current = {"token": settings.analyze_token}
    tiles: list[SpectrogramTile] = []

    pipeline.stream(0, settings.snapshot(), tiles.append, lambda token: token == current["token"])
    scheduler.run_pending()
    assert len(tiles) == 1

    current["token"] = settings.update_analyze_token()
    scheduler.run_until_idle()

    assert len(tiles) == 1
    assert scheduler.pending == 0


def test_stream_without_provider_or_channel_yields_nothing():
    buffer = _make_buffer(channels=1)
    snapshot = _make_settings(buffer).snapshot()
    scheduler = ManualScheduler()
    tiles: list[SpectrogramTile] = []

    SpectrogramPipeline(None, scheduler).stream(0, snapshot, tiles.append, lambda token: True)
    pipeline = SpectrogramPipeline(SpectrogramProvider(buffer, max_workers=0), scheduler)
    pipeline.stream(5, snapshot, tiles.append, lambda token: True)
    scheduler.run_until_idle()

    assert tiles == []


def test_threaded_provider_delivers_on_scheduler_thread():
    buffer = _make_buffer(channels=2)
    settings = _make_settings(buffer)
    scheduler = ManualScheduler()
    provider = SpectrogramProvider(buffer, max_workers=2)
    pipeline = SpectrogramPipeline(provider, scheduler)
    snapshot = settings.snapshot()
    tiles: list[SpectrogramTile] = []

    try:
        for channel in range(2):
            pipeline.stream(channel, snapshot, tiles.append, lambda token: True)
        finished: set[int] = set()
        deadline = time.monotonic() + 10.0
        while time.monotonic() < deadline:
            scheduler.run_until_idle()
            finished = {t.channel for t in tiles if t.sample_end == buffer.length}
            if finished == {0, 1}:
                break
            time.sleep(0.01)
        assert finished == {0, 1}
    finally:
        pipeline.shutdown()


def test_failed_computation_is_logged(caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch):
    buffer = _make_buffer(channels=1)
    snapshot = _make_settings(buffer).snapshot()
    provider = SpectrogramProvider(buffer, max_workers=0)
    scheduler = ManualScheduler()
    pipeline = SpectrogramPipeline(provider, scheduler)

    def boom(request):
        raise RuntimeError("simulated failure")

    monkeypatch.setattr(provider, "compute", boom)
    tiles: list[SpectrogramTile] = []
    with caplog.at_level("ERROR"):
        pipeline.stream(0, snapshot, tiles.append, lambda token: True)
        scheduler.run_until_idle()

    assert tiles == []
    assert "simulated failure" in caplog.text
