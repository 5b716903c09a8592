"""Settings manager for persistent application preferences."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from PySide6.QtCore import QSettings

from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.preview_settings import PreviewSettings
from audiopreview.utils import format_duration

logger = logging.getLogger(__name__)

MAX_RECENT_AUDIO_FILES = 10


@dataclass(frozen=True)
class RecentAudioFile:
    """A previously opened file with the stream layout seen when it was opened."""

    path: Path
    opened_at: datetime
    channel_count: int = 0
    sample_rate: int = 0
    duration: float = 0.0

    @property
    def summary(self) -> str:
        """Short layout description for menus, empty when unknown."""
        if not self.channel_count or not self.sample_rate:
            return ""
        return f"{self.channel_count} ch, {self.sample_rate} Hz, {format_duration(self.duration)}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "opened_at": self.opened_at.isoformat(),
            "channel_count": self.channel_count,
            "sample_rate": self.sample_rate,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecentAudioFile:
        return cls(
            path=Path(data["path"]),
            opened_at=datetime.fromisoformat(data["opened_at"]),
            channel_count=int(data.get("channel_count", 0)),
            sample_rate=int(data.get("sample_rate", 0)),
            duration=float(data.get("duration", 0.0)),
        )


class SettingsManager:
    """Manages persistent application settings using QSettings."""

    def __init__(self):
        """Initialize settings manager."""
        # Use QSettings with organization and application name
        self._settings = QSettings("AudioPreview", "AudioPreview")

    # ---------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------

    def _load_json(self, key: str, expected: type) -> Any:
        """Load a JSON-encoded value of type ``expected`` from QSettings."""
        raw = self._settings.value(key, "")
        if isinstance(raw, expected):
            return raw
        if isinstance(raw, str) and raw:
            try:
                data = json.loads(raw)
                if isinstance(data, expected):
                    return data
            except json.JSONDecodeError as exc:
                logger.warning("Failed to decode JSON for %s: %s", key, exc, exc_info=exc)
        return expected()

    def _store_json(self, key: str, payload: dict[str, Any] | list[Any]) -> None:
        """Persist a dictionary or list as JSON to QSettings."""
        try:
            encoded = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            logger.warning("Failed to serialise settings for %s: %s", key, exc, exc_info=exc)
            encoded = ""
        self._settings.setValue(key, encoded)
        self._settings.sync()

    # ---------------------------------------------------------------------
    # Preview preferences
    # ---------------------------------------------------------------------

    def get_preview_settings(self) -> PreviewSettings:
        """Return persisted preview preferences, or defaults when unavailable."""
        data = self._load_json("previewSettings", dict)
        if not data:
            return PreviewSettings()
        try:
            settings = PreviewSettings.from_dict(data)
        except (TypeError, ValueError) as exc:
            logger.warning("Invalid persisted preview settings: %s", exc, exc_info=exc)
            return PreviewSettings()
        for issue in settings.validate():
            logger.debug("Preview setting %s: %s", issue.field, issue.message)
        return settings

    def set_preview_settings(self, settings: PreviewSettings) -> None:
        """Persist preview preferences."""
        self._store_json("previewSettings", settings.to_dict())

    # ---------------------------------------------------------------------
    # Recent audio files
    # ---------------------------------------------------------------------

    def _load_recent_entries(self) -> list[RecentAudioFile]:
        entries = []
        for item in self._load_json("recentAudioFiles", list):
            try:
                entries.append(RecentAudioFile.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Dropping malformed recent file entry %r: %s", item, exc)
        return entries

    def _store_recent_entries(self, entries: list[RecentAudioFile]) -> None:
        self._store_json("recentAudioFiles", [entry.to_dict() for entry in entries])

    def get_recent_audio_files(self, max_count: int = MAX_RECENT_AUDIO_FILES) -> list[RecentAudioFile]:
        """Return recently opened files that still exist, most recent first."""
        entries = [entry for entry in self._load_recent_entries() if entry.path.exists()]
        entries.sort(key=lambda entry: entry.opened_at, reverse=True)
        return entries[:max_count]

    def add_recent_audio_file(
        self,
        path: Path,
        buffer: AudioBufferRef | None = None,
        max_count: int = MAX_RECENT_AUDIO_FILES,
    ) -> None:
        """Record ``path`` as the most recently opened file.

        Args:
            path: Path to audio file.
            buffer: Decoded buffer, used to remember the stream layout.
            max_count: Maximum number of entries to keep.
        """
        if not path.exists():
            return
        entry = RecentAudioFile(path, datetime.now())
        if buffer is not None:
            entry = RecentAudioFile(
                path, entry.opened_at, buffer.channel_count, buffer.sample_rate, buffer.duration
            )
        others = [e for e in self.get_recent_audio_files(max_count) if e.path != path]
        self._store_recent_entries([entry, *others][:max_count])

    def remove_recent_audio_file(self, path: Path) -> None:
        """Forget ``path``, e.g. after it could no longer be decoded."""
        entries = self._load_recent_entries()
        kept = [entry for entry in entries if entry.path != path]
        if len(kept) != len(entries):
            self._store_recent_entries(kept)

    def clear_recent_audio_files(self) -> None:
        """Clear all recent audio files."""
        self._settings.remove("recentAudioFiles")
        self._settings.sync()

    # ---------------------------------------------------------------------
    # Window geometry
    # ---------------------------------------------------------------------

    def get_window_geometry(self) -> dict[str, Any]:
        """Get saved window size and position."""
        geometry: dict[str, Any] = {}
        size = self._settings.value("windowSize", None)
        if isinstance(size, list) and len(size) == 2:
            geometry["size"] = [int(s) for s in size]
        pos = self._settings.value("windowPosition", None)
        if isinstance(pos, list) and len(pos) == 2:
            geometry["position"] = [int(p) for p in pos]
        return geometry

    def set_window_geometry(self, geometry: dict[str, Any]) -> None:
        """Set window size and position."""
        if "size" in geometry:
            self._settings.setValue("windowSize", list(geometry["size"]))
        if "position" in geometry:
            self._settings.setValue("windowPosition", list(geometry["position"]))
        self._settings.sync()
