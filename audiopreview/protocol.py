"""Message exchange between the preview engine and the document host.

Messages are plain dicts ``{"type": ..., "data": ...}``. The engine sends
``ready``, ``prepare`` and ``play`` requests; the host answers with ``info``,
``prepare`` and ``data``. A host may also push ``reload`` when the file changed
on disk.
"""

import logging
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np

from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.audio_io import AudioLoadError, get_audio_info, read_frames

logger = logging.getLogger(__name__)

# Frames transferred per ``play`` request
DEFAULT_CHUNK_SIZE = 1 << 18


class MessageType(str, Enum):
    READY = "ready"
    INFO = "info"
    PREPARE = "prepare"
    PLAY = "play"
    DATA = "data"
    SPECTROGRAM = "spectrogram"
    RELOAD = "reload"


def make_message(message_type: MessageType, data: Any = None) -> dict[str, Any]:
    return {"type": message_type.value, "data": data}


class DocumentHost:
    """Serves one read-only audio file to a :class:`BufferLoader`."""

    def __init__(self, path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.path = Path(path)
        self.chunk_size = chunk_size
        self._frames: np.ndarray | None = None
        self._sample_rate = 0
        self._listeners: list[Callable[[dict[str, Any]], None]] = []

    def add_listener(self, listener: Callable[[dict[str, Any]], None]) -> None:
        """Register a callback receiving unsolicited messages (``reload``)."""
        self._listeners.append(listener)

    def handle(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Answer one request message."""
        message_type = message.get("type")
        if message_type == MessageType.READY.value:
            return make_message(MessageType.INFO, self.header())
        if message_type == MessageType.PREPARE.value:
            return make_message(MessageType.PREPARE, self.prepare_data())
        if message_type == MessageType.PLAY.value:
            data = message.get("data") or {}
            return make_message(MessageType.DATA, self.frame_data(data["start"], data["end"]))
        logger.debug(f"Ignoring message of type {message_type!r}")
        return None

    def header(self) -> dict[str, Any] | None:
        """Container metadata, or None if the file cannot be inspected."""
        try:
            info = get_audio_info(self.path)
        except (AudioLoadError, OSError) as exc:
            logger.warning(f"Could not read header of {self.path}: {exc}")
            return None
        return {
            "format": info["format"],
            "subtype": info["subtype"],
            "chunk_size": self.chunk_size,
            "channels": info["channels"],
            "sample_rate": info["sample_rate"],
        }

    def prepare_data(self) -> dict[str, Any] | None:
        """Decode the file. Returns None when the format is unsupported."""
        try:
            self._frames, self._sample_rate = read_frames(self.path)
        except (AudioLoadError, OSError) as exc:
            logger.warning(f"Cannot decode {self.path}: {exc}")
            self._frames = None
            return None
        length, channel_count = self._frames.shape
        return {
            "sample_rate": self._sample_rate,
            "channel_count": channel_count,
            "length": length,
            "duration": length / self._sample_rate if self._sample_rate else 0.0,
        }

    def frame_data(self, start: int, end: int) -> dict[str, Any] | None:
        if self._frames is None:
            return None
        length, channel_count = self._frames.shape
        start = max(0, min(int(start), length))
        end = max(start, min(int(end), length))
        return {
            "samples": [self._frames[start:end, ch].tolist() for ch in range(channel_count)],
            "length": length,
            "channel_count": channel_count,
            "start": start,
            "end": end,
        }

    def reload(self) -> None:
        """Drop decoded data after an external change and notify listeners."""
        self._frames = None
        logger.info(f"Reloading {self.path}")
        for listener in list(self._listeners):
            listener(make_message(MessageType.RELOAD))


class BufferLoader:
    """Engine side of the exchange: assembles an :class:`AudioBufferRef`.

    ``send`` delivers a request to the host and returns its reply.
    """

    def __init__(self, send: Callable[[dict[str, Any]], dict[str, Any] | None], chunk_size: int | None = None):
        self._send = send
        self.chunk_size = chunk_size
        self.reset()

    def reset(self) -> None:
        self.info: dict[str, Any] | None = None
        self.meta: dict[str, Any] | None = None
        self.buffer: AudioBufferRef | None = None
        self.inert = False
        self._channels: list[np.ndarray] = []
        self._received = 0

    def load(self) -> AudioBufferRef | None:
        """Run the full exchange. Returns None when the host cannot decode."""
        self.reset()
        message: dict[str, Any] | None = make_message(MessageType.READY)
        while message is not None:
            reply = self._send(message)
            if reply is None:
                logger.warning(f"No reply to {message['type']!r}, giving up")
                self.inert = True
                return None
            message = self.handle_message(reply)
        return self.buffer

    def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Consume one host message and return the next request, if any."""
        message_type = message.get("type")
        data = message.get("data")

        if message_type == MessageType.INFO.value:
            self.info = data
            if self.chunk_size is None and data:
                self.chunk_size = int(data.get("chunk_size") or DEFAULT_CHUNK_SIZE)
            return make_message(MessageType.PREPARE)

        if message_type == MessageType.PREPARE.value:
            if not data:
                logger.info("Host could not decode the file; preview stays inert")
                self.inert = True
                return None
            self.meta = data
            self._channels = [
                np.zeros(int(data["length"]), dtype=np.float32) for _ in range(int(data["channel_count"]))
            ]
            self._received = 0
            return self._next_request(data)

        if message_type == MessageType.DATA.value:
            if not data:
                self.inert = True
                return None
            if self.meta is None:
                logger.warning("Audio data arrived before the file was prepared; preview stays inert")
                self.inert = True
                return None
            start, end = int(data["start"]), int(data["end"])
            for ch, samples in enumerate(data["samples"]):
                self._channels[ch][start:end] = np.asarray(samples, dtype=np.float32)
            self._received = end
            return self._next_request(self.meta)

        if message_type == MessageType.RELOAD.value:
            self.reset()
            return make_message(MessageType.READY)

        logger.debug(f"Ignoring message of type {message_type!r}")
        return None

    def _next_request(self, meta: dict[str, Any]) -> dict[str, Any] | None:
        length = int(meta["length"])
        if self._received >= length:
            self.buffer = AudioBufferRef.from_channels(self._channels, int(meta["sample_rate"]))
            return None
        end = min(self._received + (self.chunk_size or DEFAULT_CHUNK_SIZE), length)
        return make_message(MessageType.PLAY, {"start": self._received, "end": end})
