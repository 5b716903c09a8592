"""Qt widget surface for waveform and spectrogram figures."""

from __future__ import annotations

from typing import Any

import numpy as np
from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QColor, QImage, QPainter, QPen
from PySide6.QtWidgets import QSizePolicy, QWidget

from audiopreview.surfaces import DEFAULT_HEIGHT, DEFAULT_WIDTH, FigureKind, FigureSurface, ImageSurface


class AxisLayer(FigureSurface):
    """Axis overlay painted on top of a :class:`FigureWidget`."""

    def __init__(self, widget: FigureWidget) -> None:
        self._widget = widget
        self.x_labels: list[tuple[float, str]] = []
        self.y_labels: list[tuple[float, str]] = []

    def clear(self) -> None:
        self.x_labels = []
        self.y_labels = []
        self._widget.update()

    def paint_waveform_points(self, xs: np.ndarray, ys: np.ndarray) -> None:
        """Axis layers hold labels only."""

    def paint_tile_columns(self, x_starts: np.ndarray, x_width: float, magnitudes: np.ndarray) -> None:
        """Axis layers hold labels only."""

    def draw_axes(
        self,
        x_labels: list[tuple[float, str]],
        y_labels: list[tuple[float, str]],
    ) -> None:
        self.x_labels = list(x_labels)
        self.y_labels = list(y_labels)
        self._widget.update()


class FigureWidget(QWidget, FigureSurface):
    """Widget that scales a fixed-size raster into its rect and draws axes and cursor."""

    AXIS_MARGIN_LEFT = 48
    AXIS_MARGIN_BOTTOM = 18

    def __init__(
        self,
        kind: FigureKind,
        channel: int,
        vertical_scale: float = 1.0,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.kind = kind
        self.channel = channel
        height = int(DEFAULT_HEIGHT * vertical_scale)
        self._raster = ImageSurface(DEFAULT_WIDTH, height)
        self.axis_layer = AxisLayer(self)
        self._cursor_percent: float | None = None

        self.setMinimumHeight(height)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Fixed)

        self._theme_colors: dict[str, QColor] = {
            "background": QColor(0x1E, 0x1E, 0x1E),
            "axis": QColor(0x55, 0x55, 0x55),
            "text": QColor(0xCC, 0xCC, 0xCC),
            "cursor": QColor(0xFF, 0xCC, 0x00, 0xC0),
        }

    # ------------------------------------------------------------------
    # FigureSurface
    # ------------------------------------------------------------------

    def clear(self) -> None:
        self._raster.clear()
        self.update()

    def paint_waveform_points(self, xs: np.ndarray, ys: np.ndarray) -> None:
        self._raster.paint_waveform_points(xs, ys)
        self.update()

    def paint_tile_columns(self, x_starts: np.ndarray, x_width: float, magnitudes: np.ndarray) -> None:
        self._raster.paint_tile_columns(x_starts, x_width, magnitudes)
        self.update()

    def draw_axes(
        self,
        x_labels: list[tuple[float, str]],
        y_labels: list[tuple[float, str]],
    ) -> None:
        self.axis_layer.draw_axes(x_labels, y_labels)

    def dispose(self) -> None:
        self.setParent(None)
        self.deleteLater()

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    def set_cursor_percent(self, percent: float | None) -> None:
        """Position the shared seek cursor (0-100 of the visible window)."""
        if percent == self._cursor_percent:
            return
        self._cursor_percent = percent
        self.update()

    # ------------------------------------------------------------------
    # Painting helpers
    # ------------------------------------------------------------------

    def _plot_rect(self) -> QRectF:
        rect = QRectF(self.rect())
        return rect.adjusted(self.AXIS_MARGIN_LEFT, 0, 0, -self.AXIS_MARGIN_BOTTOM)

    def paintEvent(self, event: Any) -> None:
        painter = QPainter(self)
        painter.fillRect(self.rect(), self._theme_colors["background"])
        plot = self._plot_rect()
        if plot.width() <= 0 or plot.height() <= 0:
            return

        pixels = np.ascontiguousarray(self._raster.pixels)
        image = QImage(
            pixels.data,
            pixels.shape[1],
            pixels.shape[0],
            pixels.strides[0],
            QImage.Format.Format_RGBA8888,
        )
        painter.drawImage(plot, image)
        self._paint_axes(painter, plot)

        if self._cursor_percent is not None:
            x = plot.left() + plot.width() * self._cursor_percent / 100.0
            painter.setPen(QPen(self._theme_colors["cursor"], 1.5))
            painter.drawLine(QPointF(x, plot.top()), QPointF(x, plot.bottom()))

    def _paint_axes(self, painter: QPainter, plot: QRectF) -> None:
        painter.setPen(QPen(self._theme_colors["axis"], 1))
        painter.drawRect(plot)
        font = painter.font()
        font.setPointSizeF(7.0)
        painter.setFont(font)
        painter.setPen(self._theme_colors["text"])

        for position, label in self.axis_layer.x_labels:
            x = plot.left() + plot.width() * position
            painter.drawText(
                QRectF(x - 30, plot.bottom() + 2, 60, self.AXIS_MARGIN_BOTTOM - 2),
                Qt.AlignmentFlag.AlignHCenter | Qt.AlignmentFlag.AlignTop,
                label,
            )
        for position, label in self.axis_layer.y_labels:
            y = plot.bottom() - plot.height() * position
            painter.drawText(
                QRectF(0, y - 8, self.AXIS_MARGIN_LEFT - 4, 16),
                Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter,
                label,
            )
