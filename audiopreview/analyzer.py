"""Render coordination for per-channel waveform and spectrogram figures."""

import logging
from collections.abc import Callable

import numpy as np
from PySide6.QtCore import QObject, Signal

from audiopreview.analyze_settings import AnalyzeSettings, AnalyzeSettingsSnapshot, FrequencyScale
from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.dsp import fft_frequencies, hz_to_mel, linear_bin_range, log_frequencies, mel_to_hz
from audiopreview.player import PlayerService
from audiopreview.scheduling import Scheduler
from audiopreview.spectrogram import SpectrogramPipeline, SpectrogramTile
from audiopreview.surfaces import DEFAULT_HEIGHT, DEFAULT_WIDTH, FigureKind, FigureSurface, ImageSurface

logger = logging.getLogger(__name__)

WAVEFORM_BATCH_SIZE = 10_000
AXIS_DIVISIONS = 10

# Settings fields grouped by what a change invalidates
DESTRUCTIVE_FIELDS = frozenset(
    {
        "window_size",
        "window_size_index",
        "hop_size",
        "frequency_scale",
        "mel_filter_count",
        "waveform_visible",
        "spectrogram_visible",
        "waveform_vertical_scale",
        "spectrogram_vertical_scale",
    }
)
WINDOW_FIELDS = frozenset({"min_time", "max_time"})
SPECTROGRAM_FIELDS = frozenset({"min_frequency", "max_frequency", "spectrogram_db_floor"})
WAVEFORM_FIELDS = frozenset({"min_amplitude", "max_amplitude"})

SurfaceFactory = Callable[[FigureKind, int, float], FigureSurface]


def image_surface_factory(kind: FigureKind, channel: int, vertical_scale: float) -> FigureSurface:
    """Default factory creating headless raster surfaces."""
    return ImageSurface(DEFAULT_WIDTH, int(DEFAULT_HEIGHT * vertical_scale))


def time_labels(min_time: float, max_time: float) -> list[tuple[float, str]]:
    return [
        (i / AXIS_DIVISIONS, f"{min_time + (max_time - min_time) * i / AXIS_DIVISIONS:.2f}")
        for i in range(AXIS_DIVISIONS + 1)
    ]


def amplitude_labels(min_amplitude: float, max_amplitude: float) -> list[tuple[float, str]]:
    return [
        (i / AXIS_DIVISIONS, f"{min_amplitude + (max_amplitude - min_amplitude) * i / AXIS_DIVISIONS:.2f}")
        for i in range(AXIS_DIVISIONS + 1)
    ]


def frequency_labels(settings: AnalyzeSettingsSnapshot) -> list[tuple[float, str]]:
    """Frequency labels spaced according to the frequency scale."""
    fractions = np.linspace(0.0, 1.0, AXIS_DIVISIONS + 1)
    lo, hi = settings.min_frequency, settings.max_frequency
    if settings.frequency_scale == FrequencyScale.LOG:
        values = log_frequencies(settings.sample_rate, settings.window_size, lo, hi, len(fractions))
    elif settings.frequency_scale == FrequencyScale.MEL:
        values = mel_to_hz(hz_to_mel(lo) + (hz_to_mel(hi) - hz_to_mel(lo)) * fractions)
    else:
        # Rows span the first to the last kept bin centre
        lo_bin, hi_bin = linear_bin_range(settings.sample_rate, settings.window_size, lo, hi)
        centres = fft_frequencies(settings.sample_rate, settings.window_size)[lo_bin:hi_bin]
        values = centres[0] + (centres[-1] - centres[0]) * fractions
    return [(float(p), f"{f / 1000:.2f}k") for p, f in zip(fractions, values)]


def visible_sample_range(buffer: AudioBufferRef, settings: AnalyzeSettingsSnapshot) -> tuple[int, int]:
    start, end = settings.sample_range()
    return max(0, start), min(end, buffer.length)


class Figure:
    """One visualization of one channel plus its axis overlay."""

    kind: FigureKind

    def __init__(self, channel: int, surface: FigureSurface, axis_surface: FigureSurface):
        self.channel = channel
        self.surface = surface
        self.axis_surface = axis_surface

    def clear(self) -> None:
        self.surface.clear()

    def dispose(self) -> None:
        self.surface.dispose()
        self.axis_surface.dispose()


class WaveformFigure(Figure):
    """Sample plot, drawn in batches across scheduler turns."""

    kind = FigureKind.WAVEFORM

    def __init__(self, channel: int, surface: FigureSurface, axis_surface: FigureSurface):
        super().__init__(channel, surface, axis_surface)
        self.drawn_samples = 0
        self.completed = False

    def clear(self) -> None:
        super().clear()
        self.drawn_samples = 0
        self.completed = False

    def draw_axes(self, settings: AnalyzeSettingsSnapshot) -> None:
        self.axis_surface.clear()
        self.axis_surface.draw_axes(
            time_labels(settings.min_time, settings.max_time),
            amplitude_labels(settings.min_amplitude, settings.max_amplitude),
        )

    def paint_batch(
        self,
        samples: np.ndarray,
        first_sample: int,
        visible_start: int,
        visible_end: int,
        settings: AnalyzeSettingsSnapshot,
    ) -> None:
        xs = (np.arange(first_sample, first_sample + len(samples)) - visible_start) / (
            visible_end - visible_start
        )
        span = settings.max_amplitude - settings.min_amplitude
        if span <= 0:
            ys = np.full(len(samples), 0.5)
        else:
            ys = (samples - settings.min_amplitude) / span
        inside = (ys >= 0.0) & (ys <= 1.0)
        self.surface.paint_waveform_points(xs[inside], ys[inside])
        self.drawn_samples += len(samples)


class SpectrogramFigure(Figure):
    """Time/frequency plot assembled from streamed tiles."""

    kind = FigureKind.SPECTROGRAM

    def __init__(self, channel: int, surface: FigureSurface, axis_surface: FigureSurface):
        super().__init__(channel, surface, axis_surface)
        self.painted_tokens: list[str] = []
        self.painted_ranges: list[tuple[int, int]] = []

    def clear(self) -> None:
        super().clear()
        self.painted_tokens = []
        self.painted_ranges = []

    def draw_axes(self, settings: AnalyzeSettingsSnapshot) -> None:
        self.axis_surface.clear()
        self.axis_surface.draw_axes(
            time_labels(settings.min_time, settings.max_time), frequency_labels(settings)
        )

    def paint_tile(self, tile: SpectrogramTile, visible_start: int, visible_end: int) -> None:
        visible = visible_end - visible_start
        if visible <= 0:
            return
        starts = (tile.sample_start + np.arange(tile.frame_count) * tile.hop_size - visible_start) / visible
        self.surface.paint_tile_columns(starts, tile.hop_size / visible, tile.magnitude_frames)
        self.painted_tokens.append(tile.token)
        self.painted_ranges.append((tile.sample_start, tile.sample_end))


class SeekOverlay(QObject):
    """Playback cursor shared by all figures.

    Transport seek values (0-100 of the whole buffer) are mapped into the
    visible time window, clamped to [0, 100].
    """

    position_changed = Signal(float)
    input_value_changed = Signal(float)

    def __init__(self, settings: AnalyzeSettings, player: PlayerService | None = None, parent: QObject | None = None):
        super().__init__(parent)
        self._settings = settings
        self._player = player
        self.position = 0.0
        self.input_value = 100.0
        self._last_seek_value = 0.0

    def position_percent(self, seek_value: float) -> float:
        """Map a 0-100 transport value to a 0-100 overlay position."""
        settings = self._settings
        position_sec = seek_value / 100.0 * settings.duration
        window = settings.max_time - settings.min_time
        if position_sec <= settings.min_time or window <= 0:
            return 0.0
        if position_sec >= settings.max_time:
            return 100.0
        return 100.0 * (position_sec - settings.min_time) / window

    def update_position(self, seek_value: float, position_sec: float | None = None) -> None:
        self._last_seek_value = seek_value
        self.position = self.position_percent(seek_value)
        self.position_changed.emit(self.position)

    def refresh(self) -> None:
        """Re-map the last transport value after the visible window moved."""
        self.update_position(self._last_seek_value)

    def on_overlay_input(self, value: float) -> float:
        """Translate a drag on the overlay into an absolute transport seek.

        Returns:
            The 0-100 transport value that was sent to the player.
        """
        settings = self._settings
        time_sec = settings.min_time + value / 100.0 * (settings.max_time - settings.min_time)
        seek_value = 100.0 * time_sec / settings.duration if settings.duration > 0 else 0.0
        if self._player is not None:
            self._player.on_seek_input(seek_value)
        self.input_value = 100.0
        self.input_value_changed.emit(self.input_value)
        return seek_value


class Analyzer(QObject):
    """Builds figures for every channel and keeps them in sync with settings."""

    analyzed = Signal()

    def __init__(
        self,
        buffer: AudioBufferRef,
        settings: AnalyzeSettings,
        pipeline: SpectrogramPipeline,
        player: PlayerService | None,
        scheduler: Scheduler,
        surface_factory: SurfaceFactory | None = None,
        auto_analyze: bool = False,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self.buffer = buffer
        self.settings = settings
        self.pipeline = pipeline
        self.player = player
        self.scheduler = scheduler
        self.surface_factory = surface_factory or image_surface_factory

        self.overlay = SeekOverlay(settings, player, parent=self)
        self.waveforms: list[WaveformFigure] = []
        self.spectrograms: list[SpectrogramFigure] = []

        self._waveform_token = ""
        self._spectrogram_token = ""
        self._rendered: dict | None = None
        self._route_handle = None
        self._disposed = False

        settings.settings_changed.connect(self._on_settings_changed)
        if player is not None:
            player.seekbar_updated.connect(self.overlay.update_position)

        if auto_analyze:
            self.analyze()

    @property
    def figures(self) -> list[Figure]:
        result: list[Figure] = []
        for channel in range(self.buffer.channel_count):
            result.extend(f for f in self.waveforms if f.channel == channel)
            result.extend(f for f in self.spectrograms if f.channel == channel)
        return result

    @property
    def is_analyzed(self) -> bool:
        return self._rendered is not None

    # ------------------------------------------------------------------
    # Full analysis
    # ------------------------------------------------------------------

    def analyze(self) -> None:
        """Discard all figures and rebuild them under a fresh token."""
        if self._disposed:
            return
        self._dispose_figures()
        token = self.settings.update_analyze_token()
        self._waveform_token = token
        self._spectrogram_token = token
        snapshot = self.settings.snapshot()

        for channel in range(self.buffer.channel_count):
            if self.settings.waveform_visible:
                scale = self.settings.waveform_vertical_scale
                self.waveforms.append(
                    WaveformFigure(
                        channel,
                        self.surface_factory(FigureKind.WAVEFORM, channel, scale),
                        self.surface_factory(FigureKind.WAVEFORM_AXIS, channel, scale),
                    )
                )
            if self.settings.spectrogram_visible:
                scale = self.settings.spectrogram_vertical_scale
                self.spectrograms.append(
                    SpectrogramFigure(
                        channel,
                        self.surface_factory(FigureKind.SPECTROGRAM, channel, scale),
                        self.surface_factory(FigureKind.SPECTROGRAM_AXIS, channel, scale),
                    )
                )

        logger.debug(
            f"Analyzing {self.buffer.channel_count} channel(s): "
            f"{len(self.waveforms)} waveform, {len(self.spectrograms)} spectrogram figure(s)"
        )
        self._rendered = self.settings.to_props()
        self._start_waveforms(snapshot)
        self._start_spectrograms(snapshot)
        self.overlay.refresh()
        self.analyzed.emit()

    def change_window(self) -> None:
        """Redraw every figure for a new visible time range, keeping the figures."""
        token = self.settings.analyze_token
        self._waveform_token = token
        self._spectrogram_token = token
        snapshot = self.settings.snapshot()
        self._rendered = self.settings.to_props()
        self._start_waveforms(snapshot)
        self._start_spectrograms(snapshot)
        self.overlay.refresh()

    def redraw_spectrograms(self) -> None:
        self._spectrogram_token = self.settings.analyze_token
        self._rendered = self.settings.to_props()
        self._start_spectrograms(self.settings.snapshot())

    def redraw_waveforms(self) -> None:
        self._waveform_token = self.settings.analyze_token
        self._rendered = self.settings.to_props()
        self._start_waveforms(self.settings.snapshot())

    # ------------------------------------------------------------------
    # Waveforms
    # ------------------------------------------------------------------

    def _start_waveforms(self, snapshot: AnalyzeSettingsSnapshot) -> None:
        visible_start, visible_end = visible_sample_range(self.buffer, snapshot)
        for figure in self.waveforms:
            figure.clear()
            figure.draw_axes(snapshot)
            if visible_end > visible_start:
                self._schedule_waveform_batch(figure, snapshot, self._waveform_token, visible_start)

    def _schedule_waveform_batch(
        self, figure: WaveformFigure, snapshot: AnalyzeSettingsSnapshot, token: str, position: int
    ) -> None:
        self.scheduler.call_soon(lambda: self._draw_waveform_batch(figure, snapshot, token, position))

    def _draw_waveform_batch(
        self, figure: WaveformFigure, snapshot: AnalyzeSettingsSnapshot, token: str, position: int
    ) -> None:
        if token != self._waveform_token:
            logger.debug(f"Waveform draw for channel {figure.channel} superseded")
            return
        visible_start, visible_end = visible_sample_range(self.buffer, snapshot)
        batch_end = min(position + WAVEFORM_BATCH_SIZE, visible_end)
        samples = self.buffer.channel_data(figure.channel)[position:batch_end]
        figure.paint_batch(samples, position, visible_start, visible_end, snapshot)
        if batch_end < visible_end:
            self._schedule_waveform_batch(figure, snapshot, token, batch_end)
        else:
            figure.completed = True

    # ------------------------------------------------------------------
    # Spectrograms
    # ------------------------------------------------------------------

    def _start_spectrograms(self, snapshot: AnalyzeSettingsSnapshot) -> None:
        self._spectrogram_token = snapshot.analyze_token
        visible_start, visible_end = visible_sample_range(self.buffer, snapshot)
        for figure in self.spectrograms:
            figure.clear()
            figure.draw_axes(snapshot)
            self.pipeline.stream(
                figure.channel,
                snapshot,
                on_tile=lambda tile, fig=figure: fig.paint_tile(tile, visible_start, visible_end),
                is_current=self._is_current_spectrogram_token,
            )

    def _is_current_spectrogram_token(self, token: str) -> bool:
        return not self._disposed and token == self._spectrogram_token

    # ------------------------------------------------------------------
    # Settings change routing
    # ------------------------------------------------------------------

    def _on_settings_changed(self, field: str, value: object) -> None:
        if self._rendered is None or self._disposed or self._route_handle is not None:
            return
        # Setters emit several notifications at once; route them together
        self._route_handle = self.scheduler.call_soon(self._route_changes)

    def changed_fields(self) -> set[str]:
        """Fields whose value differs from what the figures currently show."""
        if self._rendered is None:
            return set()
        current = self.settings.to_props()
        return {
            key
            for key, value in current.items()
            if key != "analyze_token" and self._rendered.get(key) != value
        }

    def _route_changes(self) -> None:
        self._route_handle = None
        if self._disposed:
            return
        changed = self.changed_fields()
        if not changed:
            return
        logger.debug(f"Settings changed: {sorted(changed)}")

        if changed & WINDOW_FIELDS and changed <= WINDOW_FIELDS | {"hop_size"} | SPECTROGRAM_FIELDS | WAVEFORM_FIELDS:
            self.change_window()
        elif changed & DESTRUCTIVE_FIELDS:
            self.analyze()
        else:
            if changed & SPECTROGRAM_FIELDS:
                self.redraw_spectrograms()
            if changed & WAVEFORM_FIELDS:
                self.redraw_waveforms()

    def dispose(self) -> None:
        """Disconnect from settings and player and drop all pending work."""
        if self._disposed:
            return
        self._disposed = True
        self.scheduler.cancel(self._route_handle)
        self._route_handle = None
        self._waveform_token = ""
        self._spectrogram_token = ""
        self.settings.settings_changed.disconnect(self._on_settings_changed)
        if self.player is not None:
            self.player.seekbar_updated.disconnect(self.overlay.update_position)
        self._dispose_figures()

    def _dispose_figures(self) -> None:
        for figure in self.figures:
            figure.dispose()
        self.waveforms = []
        self.spectrograms = []
