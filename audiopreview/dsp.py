"""DSP utilities: windows, framing, magnitude spectra, frequency mappings."""

from typing import cast

import numpy as np
import numpy.typing as npt
from scipy import signal

# Smallest magnitude considered before dB conversion
MAGNITUDE_EPS = 1e-12


def hann_window(size: int) -> np.ndarray:
    """Generate a periodic Hann window.

    Args:
        size: Window size in samples.

    Returns:
        Hann window array (float64).
    """
    return cast(np.ndarray, signal.get_window("hann", size, fftbins=True))


def frame_signal(
    samples: np.ndarray,
    sample_start: int,
    sample_end: int,
    window_size: int,
    hop_size: int,
) -> np.ndarray:
    """Cut overlapping frames starting every ``hop_size`` samples.

    One frame starts at ``sample_start + i * hop_size`` for every start below
    ``sample_end``. Frames that reach past the end of ``samples`` are zero
    padded.

    Args:
        samples: Channel samples (1D array).
        sample_start: First frame start (inclusive).
        sample_end: Frame starts must be below this index.
        window_size: Frame length in samples.
        hop_size: Distance between frame starts.

    Returns:
        Array of shape (n_frames, window_size).
    """
    if window_size <= 0 or hop_size <= 0 or sample_end <= sample_start:
        return np.zeros((0, max(window_size, 0)), dtype=np.float64)

    starts = np.arange(sample_start, sample_end, hop_size)
    needed = int(starts[-1]) + window_size
    available = samples[sample_start : min(needed, len(samples))].astype(np.float64, copy=False)
    padded = np.zeros(needed - sample_start, dtype=np.float64)
    padded[: len(available)] = available

    offsets = (starts - sample_start)[:, None] + np.arange(window_size)[None, :]
    return padded[offsets]


def magnitude_spectrum(frames: np.ndarray, window: np.ndarray) -> np.ndarray:
    """Compute amplitude-normalized magnitude spectra of windowed frames.

    A full-scale sine centred on a bin comes out near 1.0.

    Args:
        frames: Array of shape (n_frames, window_size).
        window: Analysis window of length window_size.

    Returns:
        Array of shape (n_frames, window_size // 2 + 1).
    """
    if frames.shape[0] == 0:
        return np.zeros((0, len(window) // 2 + 1), dtype=np.float64)
    spectrum = np.fft.rfft(frames * window[None, :], axis=1)
    return cast(npt.NDArray[np.float64], np.abs(spectrum) * 2.0 / np.sum(window))


def amplitude_to_db(magnitude: np.ndarray) -> np.ndarray:
    """Convert magnitudes to decibels, flooring at ``MAGNITUDE_EPS``."""
    return cast(np.ndarray, 20.0 * np.log10(np.maximum(magnitude, MAGNITUDE_EPS)))


def power_to_db(power: np.ndarray) -> np.ndarray:
    """Convert power values to decibels."""
    return cast(np.ndarray, 10.0 * np.log10(np.maximum(power, MAGNITUDE_EPS**2)))


def normalize_db(db: np.ndarray, db_floor: float) -> np.ndarray:
    """Map decibels onto [0, 1] with ``db_floor`` at 0 and 0 dB at 1.

    Args:
        db: Decibel values.
        db_floor: Negative floor in dB.

    Returns:
        float32 array clipped to [0, 1].

    Raises:
        ValueError: If the floor is not negative.
    """
    if not db_floor < 0:
        raise ValueError("db_floor must be negative")
    normalized = (db - db_floor) / -db_floor
    return np.clip(normalized, 0.0, 1.0).astype(np.float32)


def fft_frequencies(sample_rate: int, window_size: int) -> np.ndarray:
    """Return the centre frequency of every rfft bin."""
    return cast(np.ndarray, np.fft.rfftfreq(window_size, d=1.0 / sample_rate))


def linear_bin_range(
    sample_rate: int, window_size: int, min_frequency: float, max_frequency: float
) -> tuple[int, int]:
    """Return the [lo, hi) bin slice whose centres lie in the frequency range.

    A range narrower than one bin keeps the single bin nearest its centre,
    so the slice is never empty.
    """
    frequencies = fft_frequencies(sample_rate, window_size)
    lo = int(np.searchsorted(frequencies, min_frequency, side="left"))
    hi = int(np.searchsorted(frequencies, max_frequency, side="right"))
    if hi <= lo:
        centre = (min_frequency + max_frequency) / 2
        nearest = int(np.argmin(np.abs(frequencies - centre)))
        return nearest, nearest + 1
    return lo, hi


def log_frequencies(
    sample_rate: int, window_size: int, min_frequency: float, max_frequency: float, count: int
) -> np.ndarray:
    """Return ``count`` geometrically spaced frequencies for the log axis.

    The lower edge is raised to one bin width so the geometric spacing never
    starts at 0 Hz.
    """
    if count <= 0:
        return np.zeros(0, dtype=np.float64)
    start = max(min_frequency, sample_rate / window_size)
    if start >= max_frequency:
        return cast(np.ndarray, np.linspace(min_frequency, max_frequency, count))
    return cast(np.ndarray, np.geomspace(start, max_frequency, count))


def interpolate_bins(
    magnitudes: np.ndarray, frequencies: np.ndarray, sample_rate: int, window_size: int
) -> np.ndarray:
    """Linearly interpolate magnitude spectra at arbitrary frequencies.

    Args:
        magnitudes: Array (n_frames, n_fft_bins).
        frequencies: Target frequencies in Hz.
        sample_rate: Sample rate in Hz.
        window_size: FFT size.

    Returns:
        Array (n_frames, len(frequencies)).
    """
    n_bins = magnitudes.shape[1]
    positions = np.clip(frequencies * window_size / sample_rate, 0, n_bins - 1)
    lo = np.floor(positions).astype(int)
    hi = np.minimum(lo + 1, n_bins - 1)
    weight = positions - lo
    return cast(np.ndarray, magnitudes[:, lo] * (1.0 - weight) + magnitudes[:, hi] * weight)


def hz_to_mel(frequency: npt.ArrayLike) -> np.ndarray:
    """Convert Hz to mel (HTK formula)."""
    return cast(np.ndarray, 2595.0 * np.log10(1.0 + np.asarray(frequency, dtype=np.float64) / 700.0))


def mel_to_hz(mel: npt.ArrayLike) -> np.ndarray:
    """Convert mel (HTK formula) to Hz."""
    return cast(np.ndarray, 700.0 * (10.0 ** (np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0))


def mel_filterbank(
    sample_rate: int,
    window_size: int,
    filter_count: int,
    min_frequency: float,
    max_frequency: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Build triangular mel filters over the rfft bins.

    Args:
        sample_rate: Sample rate in Hz.
        window_size: FFT size.
        filter_count: Number of filters.
        min_frequency: Lower edge of the first filter in Hz.
        max_frequency: Upper edge of the last filter in Hz.

    Returns:
        Tuple of (weights with shape (filter_count, n_fft_bins), centre
        frequencies in Hz).
    """
    edges = mel_to_hz(np.linspace(hz_to_mel(min_frequency), hz_to_mel(max_frequency), filter_count + 2))
    bins = fft_frequencies(sample_rate, window_size)
    weights = np.zeros((filter_count, len(bins)), dtype=np.float64)
    for i in range(filter_count):
        left, centre, right = edges[i], edges[i + 1], edges[i + 2]
        rising = (bins - left) / max(centre - left, MAGNITUDE_EPS)
        falling = (right - bins) / max(right - centre, MAGNITUDE_EPS)
        weights[i] = np.maximum(0.0, np.minimum(rising, falling))
        if not weights[i].any():
            # Filter narrower than one bin: sample the nearest bin
            weights[i, int(np.argmin(np.abs(bins - centre)))] = 1.0
    return weights, edges[1:-1]


def spectrogram_frames(
    samples: np.ndarray,
    sample_rate: int,
    sample_start: int,
    sample_end: int,
    window_size: int,
    hop_size: int,
    min_frequency: float,
    max_frequency: float,
    db_floor: float,
    frequency_scale: int,
    mel_filter_count: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Compute normalized spectrogram columns for one span of a channel.

    Args:
        samples: Channel samples (1D array).
        sample_rate: Sample rate in Hz.
        sample_start: First frame start.
        sample_end: Frame starts must be below this index.
        window_size: STFT window length.
        hop_size: Distance between frames.
        min_frequency: Lowest frequency shown.
        max_frequency: Highest frequency shown.
        db_floor: Negative dB value mapped to 0.
        frequency_scale: 0 linear, 1 log, 2 mel.
        mel_filter_count: Number of mel filters for the mel scale.

    Returns:
        Tuple of (float32 array (n_frames, n_bins) in [0, 1], bin centre
        frequencies in Hz).
    """
    window = hann_window(window_size)
    frames = frame_signal(samples, sample_start, sample_end, window_size, hop_size)
    magnitudes = magnitude_spectrum(frames, window)

    if frequency_scale == 2:
        weights, frequencies = mel_filterbank(
            sample_rate, window_size, mel_filter_count, min_frequency, max_frequency
        )
        db = power_to_db((magnitudes**2) @ weights.T)
    else:
        lo, hi = linear_bin_range(sample_rate, window_size, min_frequency, max_frequency)
        if frequency_scale == 1:
            frequencies = log_frequencies(
                sample_rate, window_size, min_frequency, max_frequency, hi - lo
            )
            db = amplitude_to_db(interpolate_bins(magnitudes, frequencies, sample_rate, window_size))
        else:
            frequencies = fft_frequencies(sample_rate, window_size)[lo:hi]
            db = amplitude_to_db(magnitudes[:, lo:hi])

    return normalize_db(db, db_floor), frequencies.astype(np.float32)
