"""Tests for the clock-anchored transport."""

from __future__ import annotations

import math

import numpy as np
import pytest

from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.player import FRAME_INTERVAL_MS, NullAudioSink, PlayerService
from audiopreview.scheduling import ManualScheduler


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _make_player(duration: float = 10.0, **kwargs) -> tuple[PlayerService, ManualScheduler, FakeClock, NullAudioSink]:
    buffer = AudioBufferRef.from_channels([np.zeros(int(1000 * duration), dtype=np.float32)], 1000)
    scheduler = ManualScheduler()
    clock = FakeClock()
    sink = NullAudioSink()
    player = PlayerService(buffer, scheduler, clock=clock, sink=sink, **kwargs)
    return player, scheduler, clock, sink


def _record(player: PlayerService) -> list[tuple[float, float]]:
    updates: list[tuple[float, float]] = []
    player.seekbar_updated.connect(lambda value, sec: updates.append((value, sec)))
    return updates


def test_play_ticks_report_position_from_clock():
    player, scheduler, clock, sink = _make_player()
    updates = _record(player)
    states: list[bool] = []
    player.is_playing_changed.connect(states.append)

    player.play()
    assert states == [True]
    assert sink.started_at == 0.0

    clock.now += 2.5
    scheduler.advance(FRAME_INTERVAL_MS)

    assert updates[-1] == (pytest.approx(25.0), pytest.approx(2.5))
    assert player.position_sec == pytest.approx(2.5)


def test_tick_loop_keeps_a_single_pending_frame():
    player, scheduler, clock, _ = _make_player()
    player.play()
    for _ in range(5):
        clock.now += 0.016
        scheduler.advance(FRAME_INTERVAL_MS)
    player.tick()  # An extra tick must not double the loop
    assert scheduler.pending == 1


def test_playback_stops_and_rewinds_past_the_end():
    player, scheduler, clock, sink = _make_player(duration=1.0)
    updates = _record(player)
    states: list[bool] = []
    player.is_playing_changed.connect(states.append)

    player.play()
    clock.now += 1.5
    scheduler.advance(FRAME_INTERVAL_MS)

    assert states == [True, False]
    assert updates[-1] == (0.0, 0.0)
    assert player.position_sec == 0.0
    assert sink.started_at is None
    assert scheduler.pending == 0


def test_pause_keeps_position():
    player, scheduler, clock, _ = _make_player()
    player.play()
    clock.now += 3.0
    player.pause()
    clock.now += 10.0

    assert not player.is_playing
    assert player.position_sec == pytest.approx(3.0)
    assert scheduler.pending == 0

    player.stop()
    assert player.position_sec == 0.0


def test_seek_while_stopped_starts_playback_when_enabled():
    player, _, _, sink = _make_player()
    updates = _record(player)

    player.on_seek_input(50.0)

    assert player.is_playing
    assert sink.started_at == pytest.approx(5.0)
    assert updates[0] == (50.0, pytest.approx(5.0))


def test_seek_while_stopped_stays_stopped_when_disabled():
    player, _, _, _ = _make_player(enable_seek_to_play=False)
    player.on_seek_input(30.0)
    assert not player.is_playing
    assert player.position_sec == pytest.approx(3.0)


def test_seek_while_playing_restarts_from_new_offset():
    player, _, clock, sink = _make_player(enable_seek_to_play=False)
    player.play()
    clock.now += 1.0
    player.on_seek_input(80.0)

    assert player.is_playing
    assert sink.started_at == pytest.approx(8.0)
    clock.now += 0.5
    assert player.position_sec == pytest.approx(8.5)


@pytest.mark.parametrize(("value", "expected"), [(-20.0, 0.0), (150.0, 10.0)])
def test_seek_is_clamped(value: float, expected: float):
    player, _, _, _ = _make_player(enable_seek_to_play=False)
    player.on_seek_input(value)
    assert player.position_sec == pytest.approx(expected)


def test_non_finite_seek_is_ignored():
    player, _, _, _ = _make_player(enable_seek_to_play=False)
    updates = _record(player)
    player.on_seek_input(math.nan)
    assert updates == []
    assert player.position_sec == 0.0


def test_volume_is_clamped_and_forwarded():
    player, _, _, sink = _make_player(volume=0.25)
    assert sink.volume == 0.25
    volumes: list[float] = []
    player.volume_changed.connect(volumes.append)

    player.volume = 1.5
    player.volume = -1.0
    player.volume = math.inf

    assert volumes == [1.0, 0.0, 1.0]
    assert player.volume == 1.0


def test_dispose_stops_tick_loop():
    player, scheduler, _, sink = _make_player()
    player.play()
    player.dispose()
    assert not player.is_playing
    assert sink.started_at is None
    assert scheduler.pending == 0
