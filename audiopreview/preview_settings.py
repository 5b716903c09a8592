"""User-facing default preferences for analysis and playback."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, ClassVar

WINDOW_SIZE_INDEX_MIN = 0
WINDOW_SIZE_INDEX_MAX = 7


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """Represents a single validation issue for preview settings."""

    field: str
    message: str


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class AnalyzeDefault:
    """Initial analysis parameters applied when a buffer is opened.

    Every field is optional; ``None`` means "use the built-in default". Values
    are range-checked later by :class:`~audiopreview.analyze_settings.AnalyzeSettings`,
    which substitutes defaults silently. ``validate`` only reports issues so a
    preferences dialog can explain them.
    """

    _SERIALIZED_FIELDS: ClassVar[tuple[str, ...]] = (
        "waveform_visible",
        "waveform_vertical_scale",
        "spectrogram_visible",
        "spectrogram_vertical_scale",
        "window_size_index",
        "min_amplitude",
        "max_amplitude",
        "min_frequency",
        "max_frequency",
        "spectrogram_db_floor",
        "frequency_scale",
        "mel_filter_count",
    )

    def __init__(self, **kwargs: Any) -> None:
        # Figure visibility and height scaling
        self.waveform_visible: bool | None = kwargs.get("waveform_visible")
        self.waveform_vertical_scale: float | None = kwargs.get("waveform_vertical_scale")
        self.spectrogram_visible: bool | None = kwargs.get("spectrogram_visible")
        self.spectrogram_vertical_scale: float | None = kwargs.get("spectrogram_vertical_scale")

        # STFT
        self.window_size_index: int | None = kwargs.get("window_size_index")

        # Ranges
        self.min_amplitude: float | None = kwargs.get("min_amplitude")
        self.max_amplitude: float | None = kwargs.get("max_amplitude")
        self.min_frequency: float | None = kwargs.get("min_frequency")
        self.max_frequency: float | None = kwargs.get("max_frequency")
        self.spectrogram_db_floor: float | None = kwargs.get("spectrogram_db_floor")

        # Frequency axis
        self.frequency_scale: int | str | None = kwargs.get("frequency_scale")
        self.mel_filter_count: int | None = kwargs.get("mel_filter_count")

    def validate(self) -> list[ValidationIssue]:
        """Return a list of validation issues for the configured defaults."""
        issues: list[ValidationIssue] = []

        for field_name in (
            "waveform_vertical_scale",
            "spectrogram_vertical_scale",
            "min_amplitude",
            "max_amplitude",
            "min_frequency",
            "max_frequency",
            "spectrogram_db_floor",
            "mel_filter_count",
        ):
            value = getattr(self, field_name)
            if value is None:
                continue
            if not _is_number(value) or not math.isfinite(float(value)):
                issues.append(
                    ValidationIssue(
                        field_name,
                        f"{field_name.replace('_', ' ').capitalize()} must be a finite number.",
                    )
                )

        if self.window_size_index is not None and (
            not isinstance(self.window_size_index, int)
            or not WINDOW_SIZE_INDEX_MIN <= self.window_size_index <= WINDOW_SIZE_INDEX_MAX
        ):
            issues.append(
                ValidationIssue("window_size_index", "Window size index must be between 0 and 7.")
            )

        if _is_number(self.mel_filter_count) and not 20 <= float(self.mel_filter_count) <= 200:
            issues.append(
                ValidationIssue("mel_filter_count", "Mel filter count must be between 20 and 200.")
            )

        if _is_number(self.spectrogram_db_floor) and not -1000.0 <= self.spectrogram_db_floor < 0.0:
            issues.append(
                ValidationIssue(
                    "spectrogram_db_floor", "Spectrogram dB floor must be in [-1000, 0)."
                )
            )

        if (
            _is_number(self.min_amplitude)
            and _is_number(self.max_amplitude)
            and self.max_amplitude <= self.min_amplitude
        ):
            issues.append(
                ValidationIssue(
                    "min_amplitude", "Minimum amplitude must be lower than maximum amplitude."
                )
            )

        if (
            _is_number(self.min_frequency)
            and _is_number(self.max_frequency)
            and self.max_frequency <= self.min_frequency
        ):
            issues.append(
                ValidationIssue(
                    "min_frequency", "Minimum frequency must be lower than maximum frequency."
                )
            )

        if self.frequency_scale is not None:
            allowed = {0, 1, 2, "linear", "log", "mel"}
            candidate = (
                self.frequency_scale.strip().lower()
                if isinstance(self.frequency_scale, str)
                else self.frequency_scale
            )
            if candidate not in allowed:
                issues.append(
                    ValidationIssue(
                        "frequency_scale", "Frequency scale must be one of: linear, log, mel."
                    )
                )

        return issues

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dictionary, omitting unset fields."""
        result: dict[str, Any] = {}
        for key in self._SERIALIZED_FIELDS:
            value = getattr(self, key, None)
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AnalyzeDefault:
        """Create defaults from a previously serialized dictionary."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise TypeError("AnalyzeDefault.from_dict expects a dictionary.")
        return cls(**{key: data[key] for key in cls._SERIALIZED_FIELDS if key in data})


class PlayerDefault:
    """Initial transport preferences."""

    def __init__(self, **kwargs: Any) -> None:
        # Volume in percent (0-100); the player works with a 0-1 gain
        volume = kwargs.get("volume", 100)
        self.volume: float = float(volume) if _is_number(volume) else 100.0
        self.enable_seek_to_play: bool = bool(kwargs.get("enable_seek_to_play", True))

    @property
    def gain(self) -> float:
        """Volume as a 0-1 gain, clamped."""
        if not math.isfinite(self.volume):
            return 1.0
        return max(0.0, min(1.0, self.volume / 100.0))

    def validate(self) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        if not math.isfinite(self.volume) or not 0.0 <= self.volume <= 100.0:
            issues.append(ValidationIssue("volume", "Volume must be between 0 and 100."))
        return issues

    def to_dict(self) -> dict[str, Any]:
        return {"volume": self.volume, "enable_seek_to_play": self.enable_seek_to_play}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PlayerDefault:
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise TypeError("PlayerDefault.from_dict expects a dictionary.")
        return cls(**data)


class PreviewSettings:
    """Container for all preview preferences."""

    def __init__(self, **kwargs: Any) -> None:
        self.auto_analyze: bool = bool(kwargs.get("auto_analyze", False))

        analyze_default = kwargs.get("analyze_default")
        if isinstance(analyze_default, dict):
            analyze_default = AnalyzeDefault.from_dict(analyze_default)
        self.analyze_default: AnalyzeDefault = analyze_default or AnalyzeDefault()

        player_default = kwargs.get("player_default")
        if isinstance(player_default, dict):
            player_default = PlayerDefault.from_dict(player_default)
        self.player_default: PlayerDefault = player_default or PlayerDefault()

    def validate(self) -> list[ValidationIssue]:
        """Return validation issues from every nested section."""
        return self.analyze_default.validate() + self.player_default.validate()

    def to_dict(self) -> dict[str, Any]:
        return {
            "auto_analyze": self.auto_analyze,
            "analyze_default": self.analyze_default.to_dict(),
            "player_default": self.player_default.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PreviewSettings:
        """Create preview settings from a previously serialized dictionary."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise TypeError("PreviewSettings.from_dict expects a dictionary.")
        return cls(**data)
