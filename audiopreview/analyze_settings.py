"""Analysis parameter store with range validation and change notifications."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Any

from PySide6.QtCore import QObject, Signal

from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.preview_settings import AnalyzeDefault
from audiopreview.utils import generate_token

logger = logging.getLogger(__name__)

WINDOW_SIZES: tuple[int, ...] = (256, 512, 1024, 2048, 4096, 8192, 16384, 32768)
DEFAULT_WINDOW_SIZE_INDEX = 2  # 1024

AMPLITUDE_MIN = -100.0
AMPLITUDE_MAX = 100.0

DB_FLOOR_MIN = -1000.0
DB_FLOOR_MAX = 0.0
DEFAULT_DB_FLOOR = -90.0

MEL_FILTER_COUNT_MIN = 20
MEL_FILTER_COUNT_MAX = 200
DEFAULT_MEL_FILTER_COUNT = 40

VERTICAL_SCALE_MIN = 0.2
VERTICAL_SCALE_MAX = 2.0
DEFAULT_VERTICAL_SCALE = 1.0

# Spectrogram canvas width the hop size is tuned against
HOP_PIXEL_COLUMNS = 1800


class FrequencyScale(IntEnum):
    """Frequency axis used for spectrogram bins."""

    LINEAR = 0
    LOG = 1
    MEL = 2

    @classmethod
    def parse(cls, value: Any, default: FrequencyScale | None = None) -> FrequencyScale:
        """Parse an int, enum or name ("linear", "log", "mel") into a scale."""
        fallback = cls.LINEAR if default is None else default
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                return fallback
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if math.isfinite(value) and int(value) in cls._value2member_map_:
                return cls(int(value))
        return fallback


def resolve_range(
    target_min: float,
    target_max: float,
    valid_min: float,
    valid_max: float,
    default_min: float,
    default_max: float,
) -> tuple[float, float]:
    """Resolve a (min, max) pair against a valid range and defaults.

    Non-finite or out-of-range bounds are replaced by the matching default
    bound. If the resolved pair is empty or inverted (``max <= min``), both
    bounds fall back to their defaults. The pair is never swapped.
    """
    min_value = float(target_min) if _is_real(target_min) else math.nan
    max_value = float(target_max) if _is_real(target_max) else math.nan

    if not math.isfinite(min_value) or min_value < valid_min:
        min_value = default_min
    if not math.isfinite(max_value) or valid_max < max_value:
        max_value = default_max

    if max_value <= min_value:
        min_value = default_min
        max_value = default_max

    return min_value, max_value


def _is_real(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _resolve_scalar(value: Any, valid_min: float, valid_max: float, default: float) -> float:
    if not _is_real(value) or not math.isfinite(value) or not valid_min <= value <= valid_max:
        return default
    return float(value)


@dataclass(frozen=True, slots=True)
class AnalyzeSettingsSnapshot:
    """Immutable copy of the analysis parameters at a point in time."""

    sample_rate: int
    window_size: int
    hop_size: int
    min_frequency: float
    max_frequency: float
    min_time: float
    max_time: float
    min_amplitude: float
    max_amplitude: float
    spectrogram_db_floor: float
    frequency_scale: FrequencyScale
    mel_filter_count: int
    analyze_token: str

    def sample_range(self) -> tuple[int, int]:
        """Visible time range as sample indices (start, end)."""
        return (
            int(round(self.min_time * self.sample_rate)),
            int(round(self.max_time * self.sample_rate)),
        )

    def spectrogram_key(self) -> tuple[Any, ...]:
        """Fields that change spectrogram data, used for cache keys."""
        return (
            self.sample_rate,
            self.window_size,
            self.hop_size,
            round(self.min_frequency, 6),
            round(self.max_frequency, 6),
            round(self.spectrogram_db_floor, 6),
            int(self.frequency_scale),
            self.mel_filter_count,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["frequency_scale"] = int(self.frequency_scale)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalyzeSettingsSnapshot:
        values = dict(data)
        values["frequency_scale"] = FrequencyScale.parse(values.get("frequency_scale"))
        return cls(**values)


class AnalyzeSettings(QObject):
    """Single live set of analysis parameters for one opened buffer.

    Every setter validates its input (see :func:`resolve_range`), commits the
    corrected value, and emits the matching ``*_changed`` signal with the
    value actually stored so editors can echo corrections. Committed changes
    that alter a value regenerate :attr:`analyze_token`.
    """

    window_size_index_changed = Signal(int)
    window_size_changed = Signal(int)
    hop_size_changed = Signal(int)
    min_frequency_changed = Signal(float)
    max_frequency_changed = Signal(float)
    min_time_changed = Signal(float)
    max_time_changed = Signal(float)
    min_amplitude_changed = Signal(float)
    max_amplitude_changed = Signal(float)
    spectrogram_db_floor_changed = Signal(float)
    frequency_scale_changed = Signal(int)
    mel_filter_count_changed = Signal(int)
    waveform_visible_changed = Signal(bool)
    waveform_vertical_scale_changed = Signal(float)
    spectrogram_visible_changed = Signal(bool)
    spectrogram_vertical_scale_changed = Signal(float)
    analyze_token_changed = Signal(str)
    # Generic notification (field name, new value) for every committed update
    settings_changed = Signal(str, object)

    def __init__(
        self,
        sample_rate: int,
        duration: float,
        min_amplitude_of_buffer: float = -1.0,
        max_amplitude_of_buffer: float = 1.0,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._sample_rate = int(sample_rate)
        self._duration = float(duration)
        self._min_amplitude_of_buffer = float(min_amplitude_of_buffer)
        self._max_amplitude_of_buffer = float(max_amplitude_of_buffer)

        self._auto_calc_hop_size = True
        self._window_size_index = DEFAULT_WINDOW_SIZE_INDEX
        self._window_size = WINDOW_SIZES[DEFAULT_WINDOW_SIZE_INDEX]
        self._min_frequency = 0.0
        self._max_frequency = self.nyquist
        self._min_time = 0.0
        self._max_time = self._duration
        self._min_amplitude = self._min_amplitude_of_buffer
        self._max_amplitude = self._max_amplitude_of_buffer
        self._spectrogram_db_floor = DEFAULT_DB_FLOOR
        self._frequency_scale = FrequencyScale.LINEAR
        self._mel_filter_count = DEFAULT_MEL_FILTER_COUNT
        self._waveform_visible = True
        self._waveform_vertical_scale = DEFAULT_VERTICAL_SCALE
        self._spectrogram_visible = True
        self._spectrogram_vertical_scale = DEFAULT_VERTICAL_SCALE
        self._hop_size = self._calc_hop_size()
        self._analyze_token = generate_token()

    @classmethod
    def from_default_setting(
        cls,
        default: AnalyzeDefault | None,
        buffer: AudioBufferRef,
        parent: QObject | None = None,
    ) -> AnalyzeSettings:
        """Create settings for a buffer, applying user defaults where valid."""
        default = default or AnalyzeDefault()
        min_amp, max_amp = buffer.amplitude_extrema()
        settings = cls(buffer.sample_rate, buffer.duration, min_amp, max_amp, parent=parent)

        settings.waveform_visible = (
            True if default.waveform_visible is None else bool(default.waveform_visible)
        )
        settings.waveform_vertical_scale = default.waveform_vertical_scale
        settings.spectrogram_visible = (
            True if default.spectrogram_visible is None else bool(default.spectrogram_visible)
        )
        settings.spectrogram_vertical_scale = default.spectrogram_vertical_scale
        settings.window_size_index = default.window_size_index
        settings.frequency_scale = FrequencyScale.parse(default.frequency_scale)
        settings.mel_filter_count = default.mel_filter_count
        settings.set_frequency_range(default.min_frequency, default.max_frequency)
        settings.set_time_range(0.0, buffer.duration)
        settings.set_amplitude_range(default.min_amplitude, default.max_amplitude)
        settings.spectrogram_db_floor = default.spectrogram_db_floor
        return settings

    # ------------------------------------------------------------------
    # Buffer-derived values
    # ------------------------------------------------------------------

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def nyquist(self) -> float:
        return self._sample_rate / 2.0

    @property
    def min_amplitude_of_buffer(self) -> float:
        return self._min_amplitude_of_buffer

    @property
    def max_amplitude_of_buffer(self) -> float:
        return self._max_amplitude_of_buffer

    # ------------------------------------------------------------------
    # Token
    # ------------------------------------------------------------------

    @property
    def analyze_token(self) -> str:
        return self._analyze_token

    def update_analyze_token(self) -> str:
        """Regenerate the token, invalidating all pending results."""
        self._analyze_token = generate_token()
        self.analyze_token_changed.emit(self._analyze_token)
        return self._analyze_token

    def _commit(self, field: str, changed: bool, value: Any) -> None:
        if changed:
            self.update_analyze_token()
        self.settings_changed.emit(field, value)

    # ------------------------------------------------------------------
    # Figures
    # ------------------------------------------------------------------

    @property
    def waveform_visible(self) -> bool:
        return self._waveform_visible

    @waveform_visible.setter
    def waveform_visible(self, value: bool) -> None:
        value = bool(value)
        changed = value != self._waveform_visible
        self._waveform_visible = value
        self.waveform_visible_changed.emit(value)
        self._commit("waveform_visible", changed, value)

    @property
    def waveform_vertical_scale(self) -> float:
        return self._waveform_vertical_scale

    @waveform_vertical_scale.setter
    def waveform_vertical_scale(self, value: float | None) -> None:
        scale = _resolve_scalar(value, VERTICAL_SCALE_MIN, VERTICAL_SCALE_MAX, DEFAULT_VERTICAL_SCALE)
        changed = scale != self._waveform_vertical_scale
        self._waveform_vertical_scale = scale
        self.waveform_vertical_scale_changed.emit(scale)
        self._commit("waveform_vertical_scale", changed, scale)

    @property
    def spectrogram_visible(self) -> bool:
        return self._spectrogram_visible

    @spectrogram_visible.setter
    def spectrogram_visible(self, value: bool) -> None:
        value = bool(value)
        changed = value != self._spectrogram_visible
        self._spectrogram_visible = value
        self.spectrogram_visible_changed.emit(value)
        self._commit("spectrogram_visible", changed, value)

    @property
    def spectrogram_vertical_scale(self) -> float:
        return self._spectrogram_vertical_scale

    @spectrogram_vertical_scale.setter
    def spectrogram_vertical_scale(self, value: float | None) -> None:
        scale = _resolve_scalar(value, VERTICAL_SCALE_MIN, VERTICAL_SCALE_MAX, DEFAULT_VERTICAL_SCALE)
        changed = scale != self._spectrogram_vertical_scale
        self._spectrogram_vertical_scale = scale
        self.spectrogram_vertical_scale_changed.emit(scale)
        self._commit("spectrogram_vertical_scale", changed, scale)

    # ------------------------------------------------------------------
    # STFT parameters
    # ------------------------------------------------------------------

    @property
    def window_size_index(self) -> int:
        return self._window_size_index

    @window_size_index.setter
    def window_size_index(self, value: int | None) -> None:
        if (
            not _is_real(value)
            or not math.isfinite(value)
            or int(value) != value
            or not 0 <= int(value) < len(WINDOW_SIZES)
        ):
            index = DEFAULT_WINDOW_SIZE_INDEX
        else:
            index = int(value)
        self.window_size = WINDOW_SIZES[index]

    @property
    def window_size(self) -> int:
        return self._window_size

    @window_size.setter
    def window_size(self, value: int) -> None:
        if value not in WINDOW_SIZES:
            logger.debug("Window size %r not supported, using default", value)
            value = WINDOW_SIZES[DEFAULT_WINDOW_SIZE_INDEX]
        value = int(value)
        changed = value != self._window_size
        self._window_size = value
        self._window_size_index = WINDOW_SIZES.index(value)
        self.window_size_index_changed.emit(self._window_size_index)
        self.window_size_changed.emit(value)
        self._commit("window_size", changed, value)
        if self._auto_calc_hop_size:
            self._set_hop_size(self._calc_hop_size())

    @property
    def hop_size(self) -> int:
        return self._hop_size

    @hop_size.setter
    def hop_size(self, value: int) -> None:
        """Pin the hop size to an explicit value."""
        if not _is_real(value) or not math.isfinite(value) or int(value) < 1:
            logger.debug("Hop size %r invalid, keeping auto calculation", value)
            self._auto_calc_hop_size = True
            self._set_hop_size(self._calc_hop_size())
            return
        self._auto_calc_hop_size = False
        self._set_hop_size(int(value))

    @property
    def auto_calc_hop_size(self) -> bool:
        return self._auto_calc_hop_size

    def pin_hop_size(self, pinned: bool) -> None:
        """Enable or disable automatic hop size calculation."""
        self._auto_calc_hop_size = not pinned
        if self._auto_calc_hop_size:
            self._set_hop_size(self._calc_hop_size())

    def _set_hop_size(self, value: int) -> None:
        changed = value != self._hop_size
        self._hop_size = value
        self.hop_size_changed.emit(value)
        self._commit("hop_size", changed, value)

    def _calc_hop_size(self) -> int:
        # Keep the drawn rectangle width above a minimum for any visible
        # duration, so long ranges render as fast as short ones, but never
        # let the hop drop below a quarter window.
        min_rect_width = 4 * self._window_size / 1024
        return max(
            int(
                min_rect_width * (self._max_time - self._min_time) * self._sample_rate
                / HOP_PIXEL_COLUMNS
            ),
            self._window_size // 4,
        )

    @property
    def frequency_scale(self) -> FrequencyScale:
        return self._frequency_scale

    @frequency_scale.setter
    def frequency_scale(self, value: FrequencyScale | int | str | None) -> None:
        scale = FrequencyScale.parse(value)
        changed = scale != self._frequency_scale
        self._frequency_scale = scale
        self.frequency_scale_changed.emit(int(scale))
        self._commit("frequency_scale", changed, scale)

    @property
    def mel_filter_count(self) -> int:
        return self._mel_filter_count

    @mel_filter_count.setter
    def mel_filter_count(self, value: float | None) -> None:
        count = DEFAULT_MEL_FILTER_COUNT
        if _is_real(value) and math.isfinite(value):
            truncated = math.trunc(value)
            if MEL_FILTER_COUNT_MIN <= truncated <= MEL_FILTER_COUNT_MAX:
                count = truncated
        changed = count != self._mel_filter_count
        self._mel_filter_count = count
        self.mel_filter_count_changed.emit(count)
        self._commit("mel_filter_count", changed, count)

    # ------------------------------------------------------------------
    # Frequency range
    # ------------------------------------------------------------------

    @property
    def min_frequency(self) -> float:
        return self._min_frequency

    @min_frequency.setter
    def min_frequency(self, value: float | None) -> None:
        self._update_frequency_range(value, self._max_frequency, "min_frequency")

    @property
    def max_frequency(self) -> float:
        return self._max_frequency

    @max_frequency.setter
    def max_frequency(self, value: float | None) -> None:
        self._update_frequency_range(self._min_frequency, value, "max_frequency")

    def set_frequency_range(self, min_frequency: float | None, max_frequency: float | None) -> None:
        """Resolve and commit both frequency bounds at once."""
        self._update_frequency_range(min_frequency, max_frequency, None)

    def reset_to_default_frequency_range(self) -> None:
        self.set_frequency_range(0.0, self.nyquist)

    def _update_frequency_range(self, target_min: Any, target_max: Any, edited: str | None) -> None:
        new_min, new_max = resolve_range(
            target_min, target_max, 0.0, self.nyquist, 0.0, self.nyquist
        )
        self._commit_pair(
            "frequency",
            new_min,
            new_max,
            edited,
            self.min_frequency_changed,
            self.max_frequency_changed,
        )

    # ------------------------------------------------------------------
    # Time range
    # ------------------------------------------------------------------

    @property
    def min_time(self) -> float:
        return self._min_time

    @min_time.setter
    def min_time(self, value: float | None) -> None:
        self._update_time_range(value, self._max_time, "min_time")

    @property
    def max_time(self) -> float:
        return self._max_time

    @max_time.setter
    def max_time(self, value: float | None) -> None:
        self._update_time_range(self._min_time, value, "max_time")

    def set_time_range(self, min_time: float | None, max_time: float | None) -> None:
        """Resolve and commit both time bounds at once."""
        self._update_time_range(min_time, max_time, None)

    def reset_to_default_time_range(self) -> None:
        self.set_time_range(0.0, self._duration)

    def _update_time_range(self, target_min: Any, target_max: Any, edited: str | None) -> None:
        new_min, new_max = resolve_range(
            target_min, target_max, 0.0, self._duration, 0.0, self._duration
        )
        changed = self._commit_pair(
            "time",
            new_min,
            new_max,
            edited,
            self.min_time_changed,
            self.max_time_changed,
        )
        if changed and self._auto_calc_hop_size:
            self._set_hop_size(self._calc_hop_size())

    # ------------------------------------------------------------------
    # Amplitude range
    # ------------------------------------------------------------------

    @property
    def min_amplitude(self) -> float:
        return self._min_amplitude

    @min_amplitude.setter
    def min_amplitude(self, value: float | None) -> None:
        self._update_amplitude_range(value, self._max_amplitude, "min_amplitude")

    @property
    def max_amplitude(self) -> float:
        return self._max_amplitude

    @max_amplitude.setter
    def max_amplitude(self, value: float | None) -> None:
        self._update_amplitude_range(self._min_amplitude, value, "max_amplitude")

    def set_amplitude_range(self, min_amplitude: float | None, max_amplitude: float | None) -> None:
        """Resolve and commit both amplitude bounds at once."""
        self._update_amplitude_range(min_amplitude, max_amplitude, None)

    def reset_to_default_amplitude_range(self) -> None:
        self.set_amplitude_range(self._min_amplitude_of_buffer, self._max_amplitude_of_buffer)

    def _update_amplitude_range(self, target_min: Any, target_max: Any, edited: str | None) -> None:
        new_min, new_max = resolve_range(
            target_min,
            target_max,
            AMPLITUDE_MIN,
            AMPLITUDE_MAX,
            self._min_amplitude_of_buffer,
            self._max_amplitude_of_buffer,
        )
        self._commit_pair(
            "amplitude",
            new_min,
            new_max,
            edited,
            self.min_amplitude_changed,
            self.max_amplitude_changed,
        )

    # ------------------------------------------------------------------
    # Spectrogram dB floor
    # ------------------------------------------------------------------

    @property
    def spectrogram_db_floor(self) -> float:
        return self._spectrogram_db_floor

    @spectrogram_db_floor.setter
    def spectrogram_db_floor(self, value: float | None) -> None:
        floor, _ = resolve_range(
            value, DB_FLOOR_MAX, DB_FLOOR_MIN, DB_FLOOR_MAX, DEFAULT_DB_FLOOR, DB_FLOOR_MAX
        )
        changed = floor != self._spectrogram_db_floor
        self._spectrogram_db_floor = floor
        self.spectrogram_db_floor_changed.emit(floor)
        self._commit("spectrogram_db_floor", changed, floor)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _commit_pair(
        self,
        name: str,
        new_min: float,
        new_max: float,
        edited: str | None,
        min_signal: Signal,
        max_signal: Signal,
    ) -> bool:
        min_attr, max_attr = f"_min_{name}", f"_max_{name}"
        old_min, old_max = getattr(self, min_attr), getattr(self, max_attr)
        setattr(self, min_attr, new_min)
        setattr(self, max_attr, new_max)

        min_changed = new_min != old_min
        max_changed = new_max != old_max
        changed = min_changed or max_changed
        if changed:
            self.update_analyze_token()

        # Always echo the edited endpoint so editors can show corrections
        if edited != f"max_{name}" or min_changed:
            min_signal.emit(new_min)
            self.settings_changed.emit(f"min_{name}", new_min)
        if edited != f"min_{name}" or max_changed:
            max_signal.emit(new_max)
            self.settings_changed.emit(f"max_{name}", new_max)
        return changed

    def snapshot(self) -> AnalyzeSettingsSnapshot:
        """Return an immutable copy of the current parameters."""
        return AnalyzeSettingsSnapshot(
            sample_rate=self._sample_rate,
            window_size=self._window_size,
            hop_size=self._hop_size,
            min_frequency=self._min_frequency,
            max_frequency=self._max_frequency,
            min_time=self._min_time,
            max_time=self._max_time,
            min_amplitude=self._min_amplitude,
            max_amplitude=self._max_amplitude,
            spectrogram_db_floor=self._spectrogram_db_floor,
            frequency_scale=self._frequency_scale,
            mel_filter_count=self._mel_filter_count,
            analyze_token=self._analyze_token,
        )

    def to_props(self) -> dict[str, Any]:
        """Serialize current values (including visibility) to a plain dictionary."""
        props = self.snapshot().to_dict()
        props.update(
            {
                "window_size_index": self._window_size_index,
                "waveform_visible": self._waveform_visible,
                "waveform_vertical_scale": self._waveform_vertical_scale,
                "spectrogram_visible": self._spectrogram_visible,
                "spectrogram_vertical_scale": self._spectrogram_vertical_scale,
            }
        )
        return props
