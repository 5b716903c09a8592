"""Analysis settings panel bound to a live AnalyzeSettings store."""

import logging
from collections.abc import Callable

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDoubleSpinBox,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QPushButton,
    QScrollArea,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from audiopreview.analyze_settings import WINDOW_SIZES, AnalyzeSettings, FrequencyScale

logger = logging.getLogger(__name__)

# Editors accept anything; the store corrects and echoes back
_EDIT_RANGE = 1e9


class AnalyzeSettingsPanel(QWidget):
    """Editors for every analysis parameter.

    Edits are committed to the store on ``editingFinished``; every store
    notification is echoed back into the editors, so corrected values show up.
    """

    analyze_requested = Signal()

    def __init__(self, settings: AnalyzeSettings, parent: QWidget | None = None):
        """Initialize analysis settings panel.

        Args:
            settings: Store edited by this panel.
            parent: Parent widget.
        """
        super().__init__(parent)
        self._settings = settings

        layout = QVBoxLayout()
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(8)

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)

        content = QWidget()
        content_layout = QVBoxLayout()
        content_layout.setContentsMargins(0, 0, 0, 0)
        content_layout.setSpacing(12)
        content_layout.addWidget(self._create_figure_group())
        content_layout.addWidget(self._create_stft_group())
        content_layout.addWidget(self._create_range_group())

        self._analyze_button = QPushButton("Analyze")
        self._analyze_button.clicked.connect(self.analyze_requested.emit)
        content_layout.addWidget(self._analyze_button)
        content_layout.addStretch()

        content.setLayout(content_layout)
        scroll.setWidget(content)
        layout.addWidget(scroll)
        self.setLayout(layout)

        self._connect_store()
        self.refresh()

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def _create_figure_group(self) -> QGroupBox:
        group = QGroupBox("Figures")
        layout = QFormLayout()

        self._waveform_visible_checkbox = QCheckBox()
        self._waveform_visible_checkbox.toggled.connect(
            lambda checked: setattr(self._settings, "waveform_visible", checked)
        )
        layout.addRow("Show waveform:", self._waveform_visible_checkbox)

        self._waveform_scale_spin = self._create_double_spin(2, 0.1)
        self._commit_on_finish(self._waveform_scale_spin, "waveform_vertical_scale")
        layout.addRow("Waveform height:", self._waveform_scale_spin)

        self._spectrogram_visible_checkbox = QCheckBox()
        self._spectrogram_visible_checkbox.toggled.connect(
            lambda checked: setattr(self._settings, "spectrogram_visible", checked)
        )
        layout.addRow("Show spectrogram:", self._spectrogram_visible_checkbox)

        self._spectrogram_scale_spin = self._create_double_spin(2, 0.1)
        self._commit_on_finish(self._spectrogram_scale_spin, "spectrogram_vertical_scale")
        layout.addRow("Spectrogram height:", self._spectrogram_scale_spin)

        group.setLayout(layout)
        return group

    def _create_stft_group(self) -> QGroupBox:
        group = QGroupBox("Spectrogram")
        layout = QFormLayout()

        self._window_size_combo = QComboBox()
        self._window_size_combo.addItems([str(size) for size in WINDOW_SIZES])
        self._window_size_combo.currentIndexChanged.connect(
            lambda index: setattr(self._settings, "window_size_index", index)
        )
        layout.addRow("Window size:", self._window_size_combo)

        hop_row = QHBoxLayout()
        self._hop_size_spin = QSpinBox()
        self._hop_size_spin.setRange(-int(_EDIT_RANGE), int(_EDIT_RANGE))
        self._hop_size_spin.editingFinished.connect(
            lambda: setattr(self._settings, "hop_size", self._hop_size_spin.value())
        )
        hop_row.addWidget(self._hop_size_spin)
        self._auto_hop_checkbox = QCheckBox("Auto")
        self._auto_hop_checkbox.toggled.connect(
            lambda checked: self._settings.pin_hop_size(not checked)
        )
        hop_row.addWidget(self._auto_hop_checkbox)
        hop_widget = QWidget()
        hop_row.setContentsMargins(0, 0, 0, 0)
        hop_widget.setLayout(hop_row)
        layout.addRow("Hop size:", hop_widget)

        self._frequency_scale_combo = QComboBox()
        self._frequency_scale_combo.addItems(["Linear", "Log", "Mel"])
        self._frequency_scale_combo.currentIndexChanged.connect(
            lambda index: setattr(self._settings, "frequency_scale", FrequencyScale(index))
        )
        layout.addRow("Frequency scale:", self._frequency_scale_combo)

        self._mel_filter_spin = self._create_double_spin(0, 1.0)
        self._commit_on_finish(self._mel_filter_spin, "mel_filter_count")
        layout.addRow("Mel filters:", self._mel_filter_spin)

        self._db_floor_spin = self._create_double_spin(1, 1.0)
        self._commit_on_finish(self._db_floor_spin, "spectrogram_db_floor")
        layout.addRow("dB floor:", self._db_floor_spin)

        group.setLayout(layout)
        return group

    def _create_range_group(self) -> QGroupBox:
        group = QGroupBox("Ranges")
        layout = QFormLayout()

        self._min_time_spin = self._create_double_spin(3, 0.1)
        self._max_time_spin = self._create_double_spin(3, 0.1)
        self._commit_on_finish(self._min_time_spin, "min_time")
        self._commit_on_finish(self._max_time_spin, "max_time")
        layout.addRow("Time (s):", self._pair_row(
            self._min_time_spin, self._max_time_spin, self._settings.reset_to_default_time_range
        ))

        self._min_frequency_spin = self._create_double_spin(1, 100.0)
        self._max_frequency_spin = self._create_double_spin(1, 100.0)
        self._commit_on_finish(self._min_frequency_spin, "min_frequency")
        self._commit_on_finish(self._max_frequency_spin, "max_frequency")
        layout.addRow("Frequency (Hz):", self._pair_row(
            self._min_frequency_spin,
            self._max_frequency_spin,
            self._settings.reset_to_default_frequency_range,
        ))

        self._min_amplitude_spin = self._create_double_spin(3, 0.1)
        self._max_amplitude_spin = self._create_double_spin(3, 0.1)
        self._commit_on_finish(self._min_amplitude_spin, "min_amplitude")
        self._commit_on_finish(self._max_amplitude_spin, "max_amplitude")
        layout.addRow("Amplitude:", self._pair_row(
            self._min_amplitude_spin,
            self._max_amplitude_spin,
            self._settings.reset_to_default_amplitude_range,
        ))

        group.setLayout(layout)
        return group

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create_double_spin(self, decimals: int, step: float) -> QDoubleSpinBox:
        spin = QDoubleSpinBox()
        spin.setRange(-_EDIT_RANGE, _EDIT_RANGE)
        spin.setDecimals(decimals)
        spin.setSingleStep(step)
        spin.setKeyboardTracking(False)
        return spin

    def _commit_on_finish(self, spin: QDoubleSpinBox, field: str) -> None:
        spin.editingFinished.connect(lambda: setattr(self._settings, field, spin.value()))

    def _pair_row(
        self, min_spin: QDoubleSpinBox, max_spin: QDoubleSpinBox, reset: Callable[[], None]
    ) -> QWidget:
        row = QHBoxLayout()
        row.setContentsMargins(0, 0, 0, 0)
        row.addWidget(min_spin)
        row.addWidget(max_spin)
        reset_button = QPushButton("Reset")
        reset_button.clicked.connect(reset)
        row.addWidget(reset_button)
        widget = QWidget()
        widget.setLayout(row)
        return widget

    def _connect_store(self) -> None:
        s = self._settings
        s.waveform_visible_changed.connect(self._echo(self._waveform_visible_checkbox, "setChecked"))
        s.spectrogram_visible_changed.connect(
            self._echo(self._spectrogram_visible_checkbox, "setChecked")
        )
        s.waveform_vertical_scale_changed.connect(self._echo(self._waveform_scale_spin, "setValue"))
        s.spectrogram_vertical_scale_changed.connect(
            self._echo(self._spectrogram_scale_spin, "setValue")
        )
        s.window_size_index_changed.connect(self._echo(self._window_size_combo, "setCurrentIndex"))
        s.hop_size_changed.connect(self._echo(self._hop_size_spin, "setValue"))
        s.hop_size_changed.connect(lambda _: self._refresh_auto_hop())
        s.frequency_scale_changed.connect(
            self._echo(self._frequency_scale_combo, "setCurrentIndex")
        )
        s.mel_filter_count_changed.connect(self._echo(self._mel_filter_spin, "setValue"))
        s.spectrogram_db_floor_changed.connect(self._echo(self._db_floor_spin, "setValue"))
        s.min_time_changed.connect(self._echo(self._min_time_spin, "setValue"))
        s.max_time_changed.connect(self._echo(self._max_time_spin, "setValue"))
        s.min_frequency_changed.connect(self._echo(self._min_frequency_spin, "setValue"))
        s.max_frequency_changed.connect(self._echo(self._max_frequency_spin, "setValue"))
        s.min_amplitude_changed.connect(self._echo(self._min_amplitude_spin, "setValue"))
        s.max_amplitude_changed.connect(self._echo(self._max_amplitude_spin, "setValue"))

    @staticmethod
    def _echo(widget: QWidget, setter: str) -> Callable[[object], None]:
        def apply(value: object) -> None:
            widget.blockSignals(True)
            try:
                getattr(widget, setter)(value)
            finally:
                widget.blockSignals(False)

        return apply

    def _refresh_auto_hop(self) -> None:
        self._auto_hop_checkbox.blockSignals(True)
        self._auto_hop_checkbox.setChecked(self._settings.auto_calc_hop_size)
        self._auto_hop_checkbox.blockSignals(False)

    def refresh(self) -> None:
        """Load every editor from the store without emitting edits."""
        s = self._settings
        self._echo(self._waveform_visible_checkbox, "setChecked")(s.waveform_visible)
        self._echo(self._spectrogram_visible_checkbox, "setChecked")(s.spectrogram_visible)
        self._echo(self._waveform_scale_spin, "setValue")(s.waveform_vertical_scale)
        self._echo(self._spectrogram_scale_spin, "setValue")(s.spectrogram_vertical_scale)
        self._echo(self._window_size_combo, "setCurrentIndex")(s.window_size_index)
        self._echo(self._hop_size_spin, "setValue")(s.hop_size)
        self._echo(self._frequency_scale_combo, "setCurrentIndex")(int(s.frequency_scale))
        self._echo(self._mel_filter_spin, "setValue")(s.mel_filter_count)
        self._echo(self._db_floor_spin, "setValue")(s.spectrogram_db_floor)
        self._echo(self._min_time_spin, "setValue")(s.min_time)
        self._echo(self._max_time_spin, "setValue")(s.max_time)
        self._echo(self._min_frequency_spin, "setValue")(s.min_frequency)
        self._echo(self._max_frequency_spin, "setValue")(s.max_frequency)
        self._echo(self._min_amplitude_spin, "setValue")(s.min_amplitude)
        self._echo(self._max_amplitude_spin, "setValue")(s.max_amplitude)
        self._refresh_auto_hop()
