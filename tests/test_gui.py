"""Tests for the Qt widgets: figure surfaces, the settings panel and the main window."""

from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf
from PySide6.QtCore import QCoreApplication, QElapsedTimer
from PySide6.QtWidgets import QApplication

import audiopreview.gui.main_window as main_window_mod
from audiopreview.analyze_settings import AnalyzeSettings
from audiopreview.gui.analyze_settings_panel import AnalyzeSettingsPanel
from audiopreview.gui.figure_widget import AxisLayer, FigureWidget
from audiopreview.gui.main_window import MainWindow
from audiopreview.player import NullAudioSink
from audiopreview.surfaces import FigureKind


def _ensure_qapp() -> QApplication:
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


def _process_events(ms: int = 50) -> None:
    timer = QElapsedTimer()
    timer.start()
    while timer.elapsed() < ms:
        QCoreApplication.processEvents()


class FakeMediaSink(NullAudioSink):
    def __init__(self, path: Path, parent=None) -> None:
        super().__init__()
        self.path = path
        self.closed = False

    def close(self) -> None:
        self.closed = True


def test_figure_widget_paints_into_raster_and_axis_layer():
    _ensure_qapp()
    widget = FigureWidget(FigureKind.SPECTROGRAM, channel=0, vertical_scale=0.5)
    widget.resize(600, 120)

    widget.paint_tile_columns(np.array([0.0, 0.5]), 0.5, np.ones((2, 8), dtype=np.float32))
    widget.draw_axes([(0.0, "0.00")], [(1.0, "8.00k")])
    widget.set_cursor_percent(25.0)

    assert widget.minimumHeight() == 100
    assert isinstance(widget.axis_layer, AxisLayer)
    assert widget.axis_layer.y_labels == [(1.0, "8.00k")]
    image = widget.grab()
    assert not image.isNull()

    widget.clear()
    widget.axis_layer.clear()
    assert widget.axis_layer.x_labels == []
    widget.dispose()


def test_settings_panel_commits_edits_and_echoes_corrections():
    _ensure_qapp()
    settings = AnalyzeSettings(8000, 4.0, -1.0, 1.0)
    panel = AnalyzeSettingsPanel(settings)

    assert panel._max_time_spin.value() == pytest.approx(4.0)
    assert panel._auto_hop_checkbox.isChecked()

    panel._min_time_spin.setValue(1.5)
    panel._min_time_spin.editingFinished.emit()
    assert settings.min_time == pytest.approx(1.5)

    # Out of range value is corrected by the store and echoed back
    panel._max_time_spin.setValue(40.0)
    panel._max_time_spin.editingFinished.emit()
    assert settings.max_time == pytest.approx(4.0)
    assert panel._max_time_spin.value() == pytest.approx(4.0)

    panel._window_size_combo.setCurrentIndex(4)
    assert settings.window_size == 4096

    settings.hop_size = 300
    assert panel._hop_size_spin.value() == 300
    assert not panel._auto_hop_checkbox.isChecked()

    panel._auto_hop_checkbox.setChecked(True)
    assert settings.auto_calc_hop_size

    requested: list[bool] = []
    panel.analyze_requested.connect(lambda: requested.append(True))
    panel._analyze_button.click()
    assert requested == [True]


@pytest.fixture
def stereo_file(tmp_path: Path) -> Path:
    sample_rate = 8000
    t = np.arange(sample_rate) / sample_rate
    frames = np.column_stack([np.sin(2 * np.pi * 300 * t), np.sin(2 * np.pi * 600 * t)]) * 0.5
    path = tmp_path / "stereo.wav"
    sf.write(str(path), frames, sample_rate)
    return path


@pytest.fixture
def window(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setattr(main_window_mod, "MediaPlayerSink", FakeMediaSink)
    errors: list[str] = []
    monkeypatch.setattr(
        main_window_mod.QMessageBox, "critical", lambda parent, title, text: errors.append(text)
    )
    _ensure_qapp()
    win = MainWindow()
    win.show()
    win.errors = errors
    yield win
    win.close()


def test_main_window_loads_and_analyzes(window: MainWindow, stereo_file: Path):
    window.load_audio_file(stereo_file)
    session = window.session
    assert session is not None
    assert session.buffer.channel_count == 2
    assert not session.analyzer.is_analyzed

    session.analyzer.analyze()
    _process_events(200)

    figures = session.analyzer.figures
    assert len(figures) == 4
    for figure in figures:
        assert isinstance(figure.surface, FigureWidget)
        assert figure.axis_surface is figure.surface.axis_layer
    assert figures[0].completed
    assert window._status_label.text().startswith("Analyzed: stereo.wav (4 figure(s)")

    recent = window._settings_manager.get_recent_audio_files()
    assert recent[0].path == stereo_file
    assert recent[0].summary == "2 ch, 8000 Hz, 1.0s"


def test_main_window_overlay_moves_cursor(window: MainWindow, stereo_file: Path):
    window.load_audio_file(stereo_file)
    session = window.session
    session.analyzer.analyze()
    session.settings.set_time_range(0.0, 0.5)
    _process_events(100)

    session.player.enable_seek_to_play = False
    session.player.on_seek_input(25.0)

    for figure in session.analyzer.figures:
        assert figure.surface._cursor_percent == pytest.approx(50.0)


def test_main_window_unsupported_file_shows_advice(window: MainWindow, tmp_path: Path):
    bogus = tmp_path / "bogus.wav"
    bogus.write_text("not audio", encoding="utf-8")

    window._settings_manager.add_recent_audio_file(bogus)

    window.load_audio_file(bogus)

    assert window.session is None
    assert bogus not in [entry.path for entry in window._settings_manager.get_recent_audio_files()]
    assert window.errors
    assert "cannot be decoded" in window.errors[0]
    assert not window._play_button.isEnabled()


def test_main_window_close_disposes_session(window: MainWindow, stereo_file: Path):
    window.load_audio_file(stereo_file)
    sink = window.session.sink
    window.close()
    assert window.session is None
    assert sink.closed
