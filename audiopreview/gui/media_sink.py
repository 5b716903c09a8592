"""Audio output through Qt Multimedia."""

import logging
from pathlib import Path

from PySide6.QtCore import QObject, QUrl
from PySide6.QtMultimedia import QAudioOutput, QMediaPlayer

from audiopreview.player import AudioSink

logger = logging.getLogger(__name__)


class MediaPlayerSink(AudioSink):
    """Plays the opened file with QMediaPlayer, following the transport."""

    def __init__(self, path: Path, parent: QObject | None = None):
        self._audio_output = QAudioOutput(parent)
        self._player = QMediaPlayer(parent)
        self._player.setAudioOutput(self._audio_output)
        self._player.setSource(QUrl.fromLocalFile(str(path)))
        self._player.errorOccurred.connect(self._on_error)

    def start(self, offset_sec: float) -> None:
        self._player.setPosition(int(offset_sec * 1000))
        self._player.play()

    def stop(self) -> None:
        self._player.pause()

    def set_volume(self, volume: float) -> None:
        self._audio_output.setVolume(volume)

    def close(self) -> None:
        self._player.stop()
        self._player.setSource(QUrl())

    def _on_error(self, error: QMediaPlayer.Error, message: str) -> None:
        logger.warning(f"Media playback error ({error}): {message}")
