"""Chunked spectrogram computation and streaming for the preview figures."""

import logging
import math
import os
import threading
from collections import OrderedDict
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import numpy as np

from audiopreview.analyze_settings import AnalyzeSettingsSnapshot
from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.dsp import spectrogram_frames
from audiopreview.scheduling import Scheduler
from audiopreview.utils import Timer

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 10_000
DEFAULT_CACHE_SIZE = 64


@dataclass(frozen=True)
class SpectrogramRequest:
    """One chunk of work: frames starting in [sample_start, sample_end)."""

    channel: int
    sample_start: int
    sample_end: int
    settings: AnalyzeSettingsSnapshot
    token: str

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "spectrogram",
            "data": {
                "channel": self.channel,
                "start": self.sample_start,
                "end": self.sample_end,
                "settings": self.settings.to_dict(),
            },
        }

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "SpectrogramRequest":
        data = message["data"]
        settings = AnalyzeSettingsSnapshot.from_dict(data["settings"])
        return cls(
            channel=int(data["channel"]),
            sample_start=int(data["start"]),
            sample_end=int(data["end"]),
            settings=settings,
            token=settings.analyze_token,
        )


@dataclass(frozen=True, eq=False)
class SpectrogramTile:
    """Normalized spectrogram columns for one chunk.

    Attributes:
        channel: Channel index.
        sample_start: First frame start (inclusive).
        sample_end: End of the chunk (exclusive).
        token: Analysis token the tile was computed under.
        magnitude_frames: float32 array (frames x bins) in [0, 1].
        frequencies: Bin centre frequencies in Hz.
        hop_size: Distance between frame starts in samples.
    """

    channel: int
    sample_start: int
    sample_end: int
    token: str
    magnitude_frames: np.ndarray
    frequencies: np.ndarray
    hop_size: int
    settings: AnalyzeSettingsSnapshot | None = None

    @property
    def frame_count(self) -> int:
        return int(self.magnitude_frames.shape[0])

    @property
    def bin_count(self) -> int:
        return int(self.magnitude_frames.shape[1]) if self.magnitude_frames.ndim == 2 else 0

    def frame_start(self, index: int) -> int:
        """Sample index where frame ``index`` starts."""
        return self.sample_start + index * self.hop_size

    def to_message(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "channel": self.channel,
            "start": self.sample_start,
            "end": self.sample_end,
            "token": self.token,
            "hop_size": self.hop_size,
            "frequencies": self.frequencies.tolist(),
            "magnitude_frames": self.magnitude_frames.tolist(),
        }
        if self.settings is not None:
            data["settings"] = self.settings.to_dict()
        return {"type": "spectrogram", "data": data}

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "SpectrogramTile":
        data = message["data"]
        settings = data.get("settings")
        snapshot = AnalyzeSettingsSnapshot.from_dict(settings) if settings else None
        frequencies = np.asarray(data.get("frequencies", []), dtype=np.float32)
        frames = np.asarray(data.get("magnitude_frames", []), dtype=np.float32)
        if frames.ndim != 2:
            frames = frames.reshape(-1, len(frequencies))
        token = data.get("token") or (snapshot.analyze_token if snapshot else "")
        hop_size = data.get("hop_size") or (snapshot.hop_size if snapshot else 1)
        return cls(
            channel=int(data["channel"]),
            sample_start=int(data["start"]),
            sample_end=int(data["end"]),
            token=token,
            magnitude_frames=frames,
            frequencies=frequencies,
            hop_size=int(hop_size),
            settings=snapshot,
        )


def chunk_end(sample_start: int, visible_end: int, hop_size: int, chunk_size: int) -> int:
    """End of the chunk starting at ``sample_start``.

    The chunk length is rounded up to whole hops so consecutive chunks share
    one frame grid, and never runs past ``visible_end``.
    """
    hops = max(1, math.ceil(chunk_size / max(1, hop_size)))
    return min(sample_start + hops * hop_size, visible_end)


class SpectrogramProvider:
    """Computes spectrogram tiles for an audio buffer.

    Results are kept in a small LRU cache. With ``max_workers`` greater than
    zero, work runs on a thread pool; otherwise :meth:`submit` computes inline.
    """

    def __init__(
        self,
        buffer: AudioBufferRef,
        max_workers: int | None = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ):
        """Initialize provider.

        Args:
            buffer: Audio buffer to analyze.
            max_workers: Worker thread count. None picks a count from the CPU
                count, 0 disables the thread pool.
            cache_size: Maximum number of cached tiles.
        """
        self.buffer = buffer
        self._tile_cache: OrderedDict[tuple[Any, ...], SpectrogramTile] = OrderedDict()
        self._max_cache_items = cache_size
        self._cache_lock = threading.Lock()
        if max_workers is None:
            max_workers = max(2, min(8, (os.cpu_count() or 4) // 2))
        self._executor: ThreadPoolExecutor | None = None
        if max_workers > 0:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="SpecTile"
            )

    @property
    def is_async(self) -> bool:
        return self._executor is not None

    def _get_cache_key(self, request: SpectrogramRequest) -> tuple[Any, ...]:
        return (
            request.channel,
            request.sample_start,
            request.sample_end,
            request.settings.spectrogram_key(),
        )

    def compute(self, request: SpectrogramRequest) -> SpectrogramTile | None:
        """Compute one tile synchronously.

        Returns:
            The tile, or None when the channel does not exist.
        """
        if not 0 <= request.channel < self.buffer.channel_count:
            logger.debug(f"No channel {request.channel} in buffer, skipping tile")
            return None

        cache_key = self._get_cache_key(request)
        with self._cache_lock:
            cached = self._tile_cache.get(cache_key)
            if cached is not None:
                # Move to end to mark as recently used
                self._tile_cache.move_to_end(cache_key)
        if cached is not None:
            logger.debug(f"Using cached tile: ch{request.channel} [{request.sample_start}, {request.sample_end})")
            return SpectrogramTile(
                channel=cached.channel,
                sample_start=cached.sample_start,
                sample_end=cached.sample_end,
                token=request.token,
                magnitude_frames=cached.magnitude_frames,
                frequencies=cached.frequencies,
                hop_size=cached.hop_size,
                settings=request.settings,
            )

        snapshot = request.settings
        with Timer(f"Spectrogram tile ch{request.channel} [{request.sample_start}, {request.sample_end})"):
            frames, frequencies = spectrogram_frames(
                self.buffer.channel_data(request.channel),
                snapshot.sample_rate,
                request.sample_start,
                request.sample_end,
                snapshot.window_size,
                snapshot.hop_size,
                snapshot.min_frequency,
                snapshot.max_frequency,
                snapshot.spectrogram_db_floor,
                int(snapshot.frequency_scale),
                snapshot.mel_filter_count,
            )
        frames.setflags(write=False)
        frequencies.setflags(write=False)

        tile = SpectrogramTile(
            channel=request.channel,
            sample_start=request.sample_start,
            sample_end=request.sample_end,
            token=request.token,
            magnitude_frames=frames,
            frequencies=frequencies,
            hop_size=snapshot.hop_size,
            settings=snapshot,
        )

        # Cache tile with LRU eviction
        with self._cache_lock:
            self._tile_cache[cache_key] = tile
            if len(self._tile_cache) > self._max_cache_items:
                self._tile_cache.popitem(last=False)
        return tile

    def submit(self, request: SpectrogramRequest) -> "Future[SpectrogramTile | None]":
        """Schedule a tile computation and return its future."""
        if self._executor is not None:
            return self._executor.submit(self.compute, request)
        future: Future[SpectrogramTile | None] = Future()
        try:
            future.set_result(self.compute(request))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Answer a ``spectrogram`` request message with a response message."""
        tile = self.compute(SpectrogramRequest.from_message(message))
        return tile.to_message() if tile is not None else None

    def clear_cache(self) -> None:
        """Clear tile cache."""
        with self._cache_lock:
            self._tile_cache.clear()
        logger.debug("Cleared spectrogram tile cache")

    def shutdown(self) -> None:
        """Stop worker threads; pending results are discarded."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None


TileCallback = Callable[[SpectrogramTile], None]
TokenCheck = Callable[[str], bool]


class SpectrogramPipeline:
    """Streams tiles for a visible range, one chunk at a time.

    Each delivered tile is checked against ``is_current`` on the scheduler
    thread. Stale tiles are dropped and end their stream. Otherwise the next
    chunk is requested until the visible range is covered.
    """

    def __init__(
        self,
        provider: SpectrogramProvider | None,
        scheduler: Scheduler,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.provider = provider
        self.scheduler = scheduler
        self.chunk_size = chunk_size

    def stream(
        self,
        channel: int,
        settings: AnalyzeSettingsSnapshot,
        on_tile: TileCallback,
        is_current: TokenCheck,
    ) -> None:
        """Start streaming tiles covering the visible time range of ``settings``."""
        start, end = self._visible_range(settings)
        if end <= start:
            return
        self.request_tile(
            channel,
            start,
            chunk_end(start, end, settings.hop_size, self.chunk_size),
            settings,
            settings.analyze_token,
            on_tile=on_tile,
            is_current=is_current,
        )

    def request_tile(
        self,
        channel: int,
        sample_start: int,
        sample_end: int,
        settings: AnalyzeSettingsSnapshot,
        token: str,
        *,
        on_tile: TileCallback,
        is_current: TokenCheck,
    ) -> None:
        """Request one chunk; continuation chunks follow automatically."""
        provider = self.provider
        if provider is None:
            logger.debug("No spectrogram provider, nothing to stream")
            return
        if not 0 <= channel < provider.buffer.channel_count:
            logger.debug(f"Channel {channel} out of range, nothing to stream")
            return

        request = SpectrogramRequest(channel, sample_start, sample_end, settings, token)

        def deliver(future: "Future[SpectrogramTile | None]") -> None:
            if future.cancelled():
                return
            exc = future.exception()
            if exc is not None:
                logger.error(f"Spectrogram tile computation failed: {exc}", exc_info=exc)
                return
            tile = future.result()
            if tile is not None:
                self._on_tile(tile, settings, on_tile, is_current)

        if provider.is_async:
            provider.submit(request).add_done_callback(
                lambda fut: self.scheduler.call_soon_threadsafe(lambda: deliver(fut))
            )
        else:
            self.scheduler.call_soon(lambda: deliver(provider.submit(request)))

    def _on_tile(
        self,
        tile: SpectrogramTile,
        settings: AnalyzeSettingsSnapshot,
        on_tile: TileCallback,
        is_current: TokenCheck,
    ) -> None:
        if not is_current(tile.token):
            logger.debug(
                f"Dropping stale tile ch{tile.channel} [{tile.sample_start}, {tile.sample_end})"
            )
            return
        on_tile(tile)

        _, visible_end = self._visible_range(settings)
        if tile.sample_end < visible_end:
            self.request_tile(
                tile.channel,
                tile.sample_end,
                chunk_end(tile.sample_end, visible_end, settings.hop_size, self.chunk_size),
                settings,
                tile.token,
                on_tile=on_tile,
                is_current=is_current,
            )

    def _visible_range(self, settings: AnalyzeSettingsSnapshot) -> tuple[int, int]:
        start, end = settings.sample_range()
        if self.provider is not None:
            end = min(end, self.provider.buffer.length)
        return max(0, start), end

    def shutdown(self) -> None:
        if self.provider is not None:
            self.provider.shutdown()
