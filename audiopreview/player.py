"""Transport clock and playback position broadcasting."""

import logging
import math
import time
from collections.abc import Callable

from PySide6.QtCore import QObject, Signal

from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.scheduling import ScheduledCall, Scheduler
from audiopreview.utils import clamp

logger = logging.getLogger(__name__)

# Position broadcast interval, roughly one display frame
FRAME_INTERVAL_MS = 16


class AudioSink:
    """Output device the player drives. Subclasses produce actual sound."""

    def start(self, offset_sec: float) -> None:
        """Start output at ``offset_sec`` into the buffer."""
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def set_volume(self, volume: float) -> None:
        raise NotImplementedError


class NullAudioSink(AudioSink):
    """Silent sink that only records what it was asked to do."""

    def __init__(self) -> None:
        self.started_at: float | None = None
        self.volume = 1.0

    def start(self, offset_sec: float) -> None:
        self.started_at = offset_sec

    def stop(self) -> None:
        self.started_at = None

    def set_volume(self, volume: float) -> None:
        self.volume = volume


class PlayerService(QObject):
    """Clock-anchored transport with Stopped and Playing states.

    While playing, :meth:`tick` runs once per frame and broadcasts the position
    as ``seekbar_updated(value, position_sec)``, where ``value`` is the position
    scaled to 0-100 of the buffer duration.
    """

    is_playing_changed = Signal(bool)
    seekbar_updated = Signal(float, float)
    volume_changed = Signal(float)

    def __init__(
        self,
        buffer: AudioBufferRef,
        scheduler: Scheduler,
        clock: Callable[[], float] = time.monotonic,
        sink: AudioSink | None = None,
        enable_seek_to_play: bool = True,
        volume: float = 1.0,
        parent: QObject | None = None,
    ):
        """Initialize player.

        Args:
            buffer: Buffer being played; only its duration is used here.
            scheduler: Scheduler running the tick loop.
            clock: Monotonic clock returning seconds.
            sink: Audio output. Defaults to a silent sink.
            enable_seek_to_play: Start playback after a seek while stopped.
            volume: Initial gain in [0, 1].
            parent: Parent QObject.
        """
        super().__init__(parent)
        self._duration = buffer.duration
        self._scheduler = scheduler
        self._clock = clock
        self._sink = sink or NullAudioSink()
        self.enable_seek_to_play = enable_seek_to_play

        self._is_playing = False
        self._anchor = 0.0
        self._offset = 0.0
        self._tick_handle: ScheduledCall | None = None
        self._volume = 1.0
        self.volume = volume

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def position_sec(self) -> float:
        if self._is_playing:
            return self._offset + (self._clock() - self._anchor)
        return self._offset

    @property
    def seek_value(self) -> float:
        """Current position scaled to 0-100."""
        return self._to_seek_value(self.position_sec)

    def _to_seek_value(self, position: float) -> float:
        if self._duration <= 0:
            return 0.0
        return 100.0 * position / self._duration

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def play(self) -> None:
        if self._is_playing:
            return
        self._anchor = self._clock()
        self._is_playing = True
        self._sink.start(self._offset)
        self.is_playing_changed.emit(True)
        self._schedule_tick()

    def tick(self) -> None:
        """Broadcast the current position and reschedule, or stop at the end."""
        if not self._is_playing:
            return
        self._scheduler.cancel(self._tick_handle)
        self._tick_handle = None

        position = self._offset + (self._clock() - self._anchor)
        if position > self._duration:
            logger.debug("Reached end of media, stopping playback")
            self._is_playing = False
            self._offset = 0.0
            self._sink.stop()
            self.is_playing_changed.emit(False)
            self.seekbar_updated.emit(0.0, 0.0)
            return

        self.seekbar_updated.emit(self._to_seek_value(position), position)
        self._schedule_tick()

    def pause(self) -> None:
        if not self._is_playing:
            return
        self._scheduler.cancel(self._tick_handle)
        self._tick_handle = None
        self._offset += self._clock() - self._anchor
        self._is_playing = False
        self._sink.stop()
        self.is_playing_changed.emit(False)

    def stop(self) -> None:
        """Pause and rewind to the start."""
        self.pause()
        self._offset = 0.0
        self.seekbar_updated.emit(0.0, 0.0)

    def on_seek_input(self, value: float) -> None:
        """Seek to ``value`` percent (0-100) of the duration."""
        if not math.isfinite(value):
            logger.debug(f"Ignoring non-finite seek value {value!r}")
            return
        value = clamp(float(value), 0.0, 100.0)

        was_playing = self._is_playing
        if was_playing:
            self.pause()

        self._offset = value / 100.0 * self._duration
        self.seekbar_updated.emit(value, self._offset)

        if was_playing or self.enable_seek_to_play:
            self.play()

    def _schedule_tick(self) -> None:
        self._tick_handle = self._scheduler.call_later(FRAME_INTERVAL_MS, self.tick)

    # ------------------------------------------------------------------
    # Volume
    # ------------------------------------------------------------------

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, value: float) -> None:
        if not math.isfinite(value):
            value = 1.0
        self._volume = clamp(float(value), 0.0, 1.0)
        self._sink.set_volume(self._volume)
        self.volume_changed.emit(self._volume)

    def dispose(self) -> None:
        """Stop the tick loop and the sink."""
        self._scheduler.cancel(self._tick_handle)
        self._tick_handle = None
        if self._is_playing:
            self._is_playing = False
            self._sink.stop()
            self.is_playing_changed.emit(False)
