"""Decoded, read-only audio buffer shared by the analysis engine."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt


@dataclass(frozen=True, slots=True)
class AudioBufferRef:
    """Per-channel float samples plus the metadata the engine needs.

    Instances are immutable for the lifetime of one loaded file; channel
    arrays are marked read-only on construction.
    """

    sample_rate: int
    channels: tuple[npt.NDArray[np.float32], ...]

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if not self.channels:
            raise ValueError("audio buffer needs at least one channel")
        length = self.channels[0].shape[0]
        for data in self.channels:
            if data.ndim != 1 or data.shape[0] != length:
                raise ValueError("all channels must be 1D arrays of equal length")
            data.setflags(write=False)

    @classmethod
    def from_channels(
        cls, channels: Sequence[npt.ArrayLike], sample_rate: int
    ) -> AudioBufferRef:
        """Build a buffer from a sequence of per-channel sample arrays."""
        arrays = tuple(np.array(ch, dtype=np.float32, copy=True).reshape(-1) for ch in channels)
        return cls(sample_rate=int(sample_rate), channels=arrays)

    @classmethod
    def from_interleaved(cls, frames: npt.ArrayLike, sample_rate: int) -> AudioBufferRef:
        """Build a buffer from a (frames, channels) or mono 1D array."""
        data = np.asarray(frames, dtype=np.float32)
        if data.ndim == 1:
            return cls.from_channels([data], sample_rate)
        return cls.from_channels([data[:, ch] for ch in range(data.shape[1])], sample_rate)

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def length(self) -> int:
        """Number of sample frames per channel."""
        return int(self.channels[0].shape[0])

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.length / self.sample_rate

    def channel_data(self, channel: int) -> npt.NDArray[np.float32]:
        """Return the read-only sample array for a channel."""
        return self.channels[channel]

    def amplitude_extrema(self) -> tuple[float, float]:
        """Return observed (min, max) sample values across all channels."""
        if self.length == 0:
            return 0.0, 0.0
        lo = min(float(np.min(ch)) for ch in self.channels)
        hi = max(float(np.max(ch)) for ch in self.channels)
        return lo, hi
