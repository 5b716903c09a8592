"""Audio decoding through libsndfile (soundfile): metadata, frames, buffers."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import soundfile as sf

from audiopreview.audio_buffer import AudioBufferRef

logger = logging.getLogger(__name__)


class AudioLoadError(Exception):
    """Raised when an audio file cannot be decoded.

    Attributes:
        path: File that failed to load.
        context: Optional high-level description of the attempted action.
    """

    def __init__(self, path: Path | None, message: str, *, context: str | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.context = context


class UnsupportedFormatError(AudioLoadError):
    """Raised when libsndfile does not recognise the container or codec."""


@dataclass(frozen=True, slots=True)
class AudioLoadAdvice:
    """Represents a user-facing explanation for audio load failures."""

    reason: str
    suggestion: str


def _check_readable(file_path: Path) -> None:
    if not file_path.exists() or not file_path.is_file():
        raise FileNotFoundError(2, "No such file or directory", str(file_path))


def get_audio_info(file_path: Path) -> dict[str, Any]:
    """Get audio file metadata without decoding samples.

    Args:
        file_path: Path to audio file.

    Returns:
        Dictionary with: duration (seconds), sample_rate (Hz), channels (int),
                          frames (int), format (str), subtype (str).

    Raises:
        FileNotFoundError: If the file does not exist.
        UnsupportedFormatError: If the format is not recognised.
    """
    file_path = Path(file_path)
    _check_readable(file_path)
    try:
        info = sf.info(str(file_path))
    except sf.LibsndfileError as exc:
        raise UnsupportedFormatError(
            file_path, str(exc), context="Inspect audio metadata"
        ) from exc
    return {
        "duration": float(info.duration),
        "sample_rate": int(info.samplerate),
        "channels": int(info.channels),
        "frames": int(info.frames),
        "format": info.format,
        "subtype": info.subtype,
    }


def read_frames(file_path: Path, start: int = 0, stop: int | None = None) -> tuple[np.ndarray, int]:
    """Decode frames [start, stop) as float32.

    Returns:
        Tuple of (array shaped (frames, channels), sample rate).
    """
    file_path = Path(file_path)
    _check_readable(file_path)
    try:
        data, sample_rate = sf.read(
            str(file_path), start=start, stop=stop, dtype="float32", always_2d=True
        )
    except sf.LibsndfileError as exc:
        raise UnsupportedFormatError(file_path, str(exc), context="Decode audio") from exc
    return data, int(sample_rate)


def load_audio_buffer(file_path: Path) -> AudioBufferRef:
    """Decode a whole file into an :class:`AudioBufferRef`."""
    data, sample_rate = read_frames(file_path)
    if data.shape[1] == 0:
        raise UnsupportedFormatError(Path(file_path), "File has no audio channels")
    buffer = AudioBufferRef.from_interleaved(data, sample_rate)
    logger.info(
        f"Loaded audio: {file_path} ({buffer.channel_count} ch, {sample_rate} Hz, {buffer.duration:.2f}s)"
    )
    return buffer


def describe_audio_load_error(file_path: Path | None, error: BaseException) -> AudioLoadAdvice:
    """Convert low-level audio loading exceptions into user-facing guidance."""

    display_name = file_path.name if isinstance(file_path, Path) else "audio file"
    message = str(error) if error else ""

    if isinstance(error, FileNotFoundError):
        return AudioLoadAdvice(
            reason=f"The file '{display_name}' could not be found.",
            suggestion="Verify the file still exists at that location or choose a different file.",
        )

    if isinstance(error, PermissionError):
        return AudioLoadAdvice(
            reason="Audio Preview does not have permission to read the selected file.",
            suggestion="Adjust the file permissions or copy it to a readable location and retry.",
        )

    if isinstance(error, UnsupportedFormatError):
        return AudioLoadAdvice(
            reason=f"The file '{display_name}' uses a format or codec that cannot be decoded.",
            suggestion="Convert the file to WAV or FLAC and open it again.",
        )

    if isinstance(error, AudioLoadError):
        return AudioLoadAdvice(
            reason=f"The file '{display_name}' could not be decoded. {message}",
            suggestion="Review the application log for details or convert the file to WAV/FLAC and try again.",
        )

    if isinstance(error, ValueError):
        return AudioLoadAdvice(
            reason=f"The file '{display_name}' is not a valid audio file.",
            suggestion="Confirm the file contains audio data and convert it to WAV if necessary.",
        )

    if isinstance(error, OSError):
        return AudioLoadAdvice(
            reason=f"An OS error prevented opening '{display_name}'. {message}",
            suggestion="Ensure no other program is locking the file and that you have read access.",
        )

    return AudioLoadAdvice(
        reason="An unexpected error occurred while opening the audio file.",
        suggestion="Check the application log for more details or try converting the file to WAV/FLAC.",
    )
