"""Main window: one audio preview with transport controls and settings panel."""

import logging
from pathlib import Path

from PySide6.QtCore import QFileSystemWatcher, Qt
from PySide6.QtGui import QAction, QCloseEvent, QKeySequence
from PySide6.QtWidgets import (
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QScrollArea,
    QSlider,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from audiopreview.analyze_settings import AnalyzeSettings
from audiopreview.analyzer import Analyzer
from audiopreview.audio_buffer import AudioBufferRef
from audiopreview.audio_io import AudioLoadError, describe_audio_load_error, get_audio_info
from audiopreview.gui.analyze_settings_panel import AnalyzeSettingsPanel
from audiopreview.gui.figure_widget import FigureWidget
from audiopreview.gui.media_sink import MediaPlayerSink
from audiopreview.gui.settings import SettingsManager
from audiopreview.player import PlayerService
from audiopreview.preview_settings import PreviewSettings
from audiopreview.protocol import BufferLoader, DocumentHost, MessageType
from audiopreview.scheduling import QtScheduler
from audiopreview.spectrogram import SpectrogramPipeline, SpectrogramProvider
from audiopreview.surfaces import FigureKind, FigureSurface
from audiopreview.utils import format_duration

logger = logging.getLogger(__name__)

# Slider resolution for 0-100 transport values
SEEK_SLIDER_STEPS = 1000

_AXIS_BASE = {
    FigureKind.WAVEFORM_AXIS: FigureKind.WAVEFORM,
    FigureKind.SPECTROGRAM_AXIS: FigureKind.SPECTROGRAM,
}


class PreviewSession:
    """Engine objects for one opened buffer."""

    def __init__(
        self,
        path: Path,
        buffer: AudioBufferRef,
        preferences: PreviewSettings,
        figure_container: QVBoxLayout,
        parent: QWidget,
    ):
        self.path = path
        self.buffer = buffer
        self._figure_container = figure_container
        self._parent = parent
        self._widgets: dict[tuple[int, FigureKind], FigureWidget] = {}

        self.scheduler = QtScheduler(parent)
        self.settings = AnalyzeSettings.from_default_setting(
            preferences.analyze_default, buffer, parent=parent
        )
        self.provider = SpectrogramProvider(buffer)
        self.pipeline = SpectrogramPipeline(self.provider, self.scheduler)
        self.sink = MediaPlayerSink(path, parent)
        self.player = PlayerService(
            buffer,
            self.scheduler,
            sink=self.sink,
            enable_seek_to_play=preferences.player_default.enable_seek_to_play,
            volume=preferences.player_default.gain,
            parent=parent,
        )
        self.analyzer = Analyzer(
            buffer,
            self.settings,
            self.pipeline,
            self.player,
            self.scheduler,
            surface_factory=self._create_surface,
            parent=parent,
        )
        self.analyzer.overlay.position_changed.connect(self._on_overlay_position)
        if preferences.auto_analyze:
            self.analyzer.analyze()

    def _create_surface(self, kind: FigureKind, channel: int, vertical_scale: float) -> FigureSurface:
        base = _AXIS_BASE.get(kind)
        if base is not None:
            return self._widgets[(channel, base)].axis_layer
        widget = FigureWidget(kind, channel, vertical_scale, self._parent)
        self._widgets[(channel, kind)] = widget
        self._figure_container.addWidget(widget)
        return widget

    def _on_overlay_position(self, percent: float) -> None:
        for figure in self.analyzer.figures:
            if isinstance(figure.surface, FigureWidget):
                figure.surface.set_cursor_percent(percent)

    def close(self) -> None:
        self.analyzer.dispose()
        self.player.dispose()
        self.pipeline.shutdown()
        self.sink.close()
        # The scheduler stays alive: a running tile worker may still post to it
        for obj in (self.analyzer, self.player, self.settings):
            obj.deleteLater()


class MainWindow(QMainWindow):
    """Main application window."""

    def __init__(self):
        """Initialize main window."""
        super().__init__()
        self._settings_manager = SettingsManager()
        self._preferences = self._settings_manager.get_preview_settings()
        self._session: PreviewSession | None = None
        self._settings_panel: AnalyzeSettingsPanel | None = None
        self._host: DocumentHost | None = None
        self._seek_dragging = False

        self._watcher = QFileSystemWatcher(self)
        self._watcher.fileChanged.connect(self._on_file_changed)

        self._setup_ui()
        self._setup_menu()
        self._restore_geometry()
        self._set_transport_enabled(False)

    # ------------------------------------------------------------------
    # UI
    # ------------------------------------------------------------------

    def _setup_ui(self) -> None:
        """Setup UI components."""
        self._splitter = QSplitter(Qt.Orientation.Horizontal)

        preview = QWidget()
        preview_layout = QVBoxLayout()
        preview_layout.setContentsMargins(4, 4, 4, 4)

        # Overlay input: a drag maps into the visible window
        self._overlay_slider = QSlider(Qt.Orientation.Horizontal)
        self._overlay_slider.setRange(0, SEEK_SLIDER_STEPS)
        self._overlay_slider.setValue(SEEK_SLIDER_STEPS)
        self._overlay_slider.setToolTip("Drag to seek within the visible range")
        self._overlay_slider.sliderReleased.connect(self._on_overlay_released)
        preview_layout.addWidget(self._overlay_slider)

        figures = QWidget()
        self._figure_layout = QVBoxLayout()
        self._figure_layout.setContentsMargins(0, 0, 0, 0)
        self._figure_layout.setSpacing(6)
        self._figure_layout.setAlignment(Qt.AlignmentFlag.AlignTop)
        figures.setLayout(self._figure_layout)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(figures)
        preview_layout.addWidget(scroll, 1)

        preview_layout.addLayout(self._create_transport_row())
        preview.setLayout(preview_layout)

        self._splitter.addWidget(preview)
        self._panel_holder = QWidget()
        self._panel_holder.setLayout(QVBoxLayout())
        self._splitter.addWidget(self._panel_holder)
        self._splitter.setSizes([1100, 300])
        self.setCentralWidget(self._splitter)

        self._status_label = QLabel("No file loaded")
        self.statusBar().addWidget(self._status_label)

    def _create_transport_row(self) -> QHBoxLayout:
        row = QHBoxLayout()
        row.setSpacing(8)

        self._play_button = QPushButton("Play")
        self._play_button.clicked.connect(self._on_play_clicked)
        row.addWidget(self._play_button)

        self._time_label = QLabel("0.0s")
        self._time_label.setMinimumWidth(70)
        self._time_label.setAlignment(Qt.AlignmentFlag.AlignRight)
        row.addWidget(self._time_label)

        self._seek_slider = QSlider(Qt.Orientation.Horizontal)
        self._seek_slider.setRange(0, SEEK_SLIDER_STEPS)
        self._seek_slider.setToolTip("Drag to seek")
        self._seek_slider.sliderPressed.connect(lambda: setattr(self, "_seek_dragging", True))
        self._seek_slider.sliderReleased.connect(self._on_seek_released)
        row.addWidget(self._seek_slider, 1)

        row.addWidget(QLabel("Volume"))
        self._volume_slider = QSlider(Qt.Orientation.Horizontal)
        self._volume_slider.setRange(0, 100)
        self._volume_slider.setMaximumWidth(120)
        self._volume_slider.setValue(int(self._preferences.player_default.gain * 100))
        self._volume_slider.valueChanged.connect(self._on_volume_changed)
        row.addWidget(self._volume_slider)
        return row

    def _setup_menu(self) -> None:
        """Setup menu bar."""
        menubar = self.menuBar()
        file_menu = menubar.addMenu("&File")

        open_action = QAction("&Open Audio File...", self)
        open_action.setShortcut(QKeySequence.StandardKey.Open)
        open_action.triggered.connect(self._on_open_file)
        file_menu.addAction(open_action)

        self._recent_audio_files_menu = file_menu.addMenu("Recent &Audio Files")
        self._recent_audio_files_menu.aboutToShow.connect(self._update_recent_files_menu)
        self._clear_recent_audio_files_action = QAction("Clear Recent Audio Files", self)
        self._clear_recent_audio_files_action.triggered.connect(self._on_clear_recent_audio_files)

        file_menu.addSeparator()

        exit_action = QAction("E&xit", self)
        exit_action.setShortcut(QKeySequence.StandardKey.Quit)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        view_menu = menubar.addMenu("&View")
        self._auto_analyze_action = QAction("Analyze on &Open", self)
        self._auto_analyze_action.setCheckable(True)
        self._auto_analyze_action.setChecked(self._preferences.auto_analyze)
        self._auto_analyze_action.toggled.connect(self._on_auto_analyze_toggled)
        view_menu.addAction(self._auto_analyze_action)

        self._seek_to_play_action = QAction("&Play After Seek", self)
        self._seek_to_play_action.setCheckable(True)
        self._seek_to_play_action.setChecked(self._preferences.player_default.enable_seek_to_play)
        self._seek_to_play_action.toggled.connect(self._on_seek_to_play_toggled)
        view_menu.addAction(self._seek_to_play_action)

        self._save_defaults_action = QAction("Save Current Settings as &Default", self)
        self._save_defaults_action.triggered.connect(self._on_save_defaults)
        view_menu.addAction(self._save_defaults_action)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_audio_file(self, file_path: Path) -> None:
        """Load audio file.

        Args:
            file_path: Path to audio file.
        """
        self._close_session()
        try:
            get_audio_info(file_path)
        except (AudioLoadError, OSError, ValueError) as exc:
            self._show_load_error(file_path, exc)
            return

        self._host = DocumentHost(file_path)
        self._host.add_listener(self._on_host_message)
        buffer = BufferLoader(self._host.handle).load()
        if buffer is None:
            self._show_load_error(file_path, AudioLoadError(file_path, "Decoding failed"))
            return

        self._session = PreviewSession(
            file_path, buffer, self._preferences, self._figure_layout, self
        )
        session = self._session
        session.player.is_playing_changed.connect(self._on_playing_changed)
        session.player.seekbar_updated.connect(self._on_seekbar_updated)
        session.player.volume_changed.connect(self._on_player_volume_changed)
        session.analyzer.overlay.input_value_changed.connect(self._on_overlay_input_reset)
        session.analyzer.analyzed.connect(self._on_analyzed)

        self._settings_panel = AnalyzeSettingsPanel(session.settings)
        self._settings_panel.analyze_requested.connect(session.analyzer.analyze)
        self._panel_holder.layout().addWidget(self._settings_panel)

        self._watcher.addPath(str(file_path))
        self._settings_manager.add_recent_audio_file(file_path, buffer)
        self._set_transport_enabled(True)
        self._status_label.setText(
            f"Loaded: {file_path.name} ({buffer.channel_count} ch, "
            f"{buffer.sample_rate} Hz, {format_duration(buffer.duration)})"
        )
        self.setWindowTitle(f"Audio Preview - {file_path.name}")
        logger.info(f"Loaded audio file: {file_path}")

    def _show_load_error(self, file_path: Path, error: BaseException) -> None:
        logger.error(f"Failed to load audio file {file_path}: {error}", exc_info=error)
        # Undecodable files are not offered again
        self._settings_manager.remove_recent_audio_file(file_path)
        advice = describe_audio_load_error(file_path, error)
        QMessageBox.critical(self, "Unable to Open Audio", f"{advice.reason}\n\n{advice.suggestion}")
        self._status_label.setText("No file loaded")
        self._set_transport_enabled(False)

    def _close_session(self) -> None:
        if self._session is not None:
            self._watcher.removePath(str(self._session.path))
            self._session.close()
            self._session = None
        if self._settings_panel is not None:
            self._settings_panel.setParent(None)
            self._settings_panel.deleteLater()
            self._settings_panel = None
        self._host = None

    def _on_file_changed(self, path: str) -> None:
        if self._host is not None and Path(path) == self._host.path:
            self._host.reload()

    def _on_host_message(self, message: dict) -> None:
        if message.get("type") == MessageType.RELOAD.value and self._host is not None:
            self.load_audio_file(self._host.path)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _set_transport_enabled(self, enabled: bool) -> None:
        for widget in (self._play_button, self._seek_slider, self._overlay_slider, self._volume_slider):
            widget.setEnabled(enabled)

    def _on_play_clicked(self) -> None:
        if self._session is None:
            return
        player = self._session.player
        if player.is_playing:
            player.pause()
        else:
            player.play()

    def _on_analyzed(self) -> None:
        if self._session is None:
            return
        session = self._session
        self._status_label.setText(
            f"Analyzed: {session.path.name} ({len(session.analyzer.figures)} figure(s), "
            f"window {session.settings.window_size}, hop {session.settings.hop_size})"
        )

    def _on_playing_changed(self, playing: bool) -> None:
        self._play_button.setText("Pause" if playing else "Play")

    def _on_seekbar_updated(self, value: float, position_sec: float) -> None:
        self._time_label.setText(format_duration(position_sec))
        if not self._seek_dragging:
            self._seek_slider.blockSignals(True)
            self._seek_slider.setValue(int(value / 100.0 * SEEK_SLIDER_STEPS))
            self._seek_slider.blockSignals(False)

    def _on_seek_released(self) -> None:
        self._seek_dragging = False
        if self._session is not None:
            self._session.player.on_seek_input(self._seek_slider.value() * 100.0 / SEEK_SLIDER_STEPS)

    def _on_overlay_released(self) -> None:
        if self._session is not None:
            self._session.analyzer.overlay.on_overlay_input(
                self._overlay_slider.value() * 100.0 / SEEK_SLIDER_STEPS
            )

    def _on_overlay_input_reset(self, value: float) -> None:
        self._overlay_slider.blockSignals(True)
        self._overlay_slider.setValue(int(value / 100.0 * SEEK_SLIDER_STEPS))
        self._overlay_slider.blockSignals(False)

    def _on_volume_changed(self, value: int) -> None:
        if self._session is not None:
            self._session.player.volume = value / 100.0

    def _on_player_volume_changed(self, volume: float) -> None:
        self._volume_slider.blockSignals(True)
        self._volume_slider.setValue(int(round(volume * 100)))
        self._volume_slider.blockSignals(False)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def _on_auto_analyze_toggled(self, checked: bool) -> None:
        self._preferences.auto_analyze = checked
        self._settings_manager.set_preview_settings(self._preferences)

    def _on_seek_to_play_toggled(self, checked: bool) -> None:
        self._preferences.player_default.enable_seek_to_play = checked
        if self._session is not None:
            self._session.player.enable_seek_to_play = checked
        self._settings_manager.set_preview_settings(self._preferences)

    def _on_save_defaults(self) -> None:
        """Store the current analysis settings as defaults for new files."""
        if self._session is None:
            return
        s = self._session.settings
        defaults = self._preferences.analyze_default
        defaults.waveform_visible = s.waveform_visible
        defaults.waveform_vertical_scale = s.waveform_vertical_scale
        defaults.spectrogram_visible = s.spectrogram_visible
        defaults.spectrogram_vertical_scale = s.spectrogram_vertical_scale
        defaults.window_size_index = s.window_size_index
        defaults.min_frequency = s.min_frequency
        defaults.max_frequency = s.max_frequency
        defaults.spectrogram_db_floor = s.spectrogram_db_floor
        defaults.frequency_scale = int(s.frequency_scale)
        defaults.mel_filter_count = s.mel_filter_count
        self._preferences.player_default.volume = self._session.player.volume * 100.0
        self._settings_manager.set_preview_settings(self._preferences)
        self._status_label.setText("Saved analysis defaults")

    def _on_open_file(self) -> None:
        file_path, _ = QFileDialog.getOpenFileName(
            self,
            "Open Audio File",
            "",
            "Audio Files (*.wav *.flac *.ogg *.aiff *.aif *.mp3);;All Files (*)",
        )
        if file_path:
            self.load_audio_file(Path(file_path))

    def _update_recent_files_menu(self) -> None:
        """Update recent files menu."""
        self._recent_audio_files_menu.clear()
        audio_files = self._settings_manager.get_recent_audio_files()
        if audio_files:
            for i, entry in enumerate(audio_files, 1):
                label = f"{i}. {entry.path.name}"
                if entry.summary:
                    label += f"  ({entry.summary})"
                action = QAction(label, self)
                action.setData(entry.path)
                action.setToolTip(str(entry.path))
                action.triggered.connect(lambda checked, p=entry.path: self.load_audio_file(p))
                self._recent_audio_files_menu.addAction(action)
            self._recent_audio_files_menu.addSeparator()
            self._recent_audio_files_menu.addAction(self._clear_recent_audio_files_action)
        else:
            no_audio_action = QAction("No recent audio files", self)
            no_audio_action.setEnabled(False)
            self._recent_audio_files_menu.addAction(no_audio_action)

    def _on_clear_recent_audio_files(self) -> None:
        self._settings_manager.clear_recent_audio_files()
        self._update_recent_files_menu()

    def _restore_geometry(self) -> None:
        geometry = self._settings_manager.get_window_geometry()
        if "size" in geometry:
            self.resize(*geometry["size"])
        else:
            self.resize(1400, 900)
        if "position" in geometry:
            self.move(*geometry["position"])

    def closeEvent(self, event: QCloseEvent) -> None:
        self._settings_manager.set_window_geometry(
            {
                "size": [self.width(), self.height()],
                "position": [self.x(), self.y()],
            }
        )
        self._close_session()
        super().closeEvent(event)

    @property
    def session(self) -> PreviewSession | None:
        return self._session
