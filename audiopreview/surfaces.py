"""Drawing surfaces the figures paint onto.

Coordinates passed to a surface are normalized: ``x`` runs 0..1 across the
visible time window, ``y`` runs 0..1 from the bottom of the figure to the top.
"""

import logging
from enum import Enum

import numpy as np
from matplotlib import colormaps

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 1800
DEFAULT_HEIGHT = 200

WAVEFORM_COLOR = (0x4E, 0xC9, 0xB0, 0xFF)
BACKGROUND_COLOR = (0, 0, 0, 0)


class FigureKind(str, Enum):
    """Surfaces requested per channel."""

    WAVEFORM = "waveform"
    WAVEFORM_AXIS = "waveform_axis"
    SPECTROGRAM = "spectrogram"
    SPECTROGRAM_AXIS = "spectrogram_axis"


class FigureSurface:
    """Interface for a surface owned by one figure."""

    def clear(self) -> None:
        raise NotImplementedError

    def paint_waveform_points(self, xs: np.ndarray, ys: np.ndarray) -> None:
        """Plot one point per sample at normalized coordinates."""
        raise NotImplementedError

    def paint_tile_columns(self, x_starts: np.ndarray, x_width: float, magnitudes: np.ndarray) -> None:
        """Paint spectrogram columns.

        Args:
            x_starts: Normalized left edge of every column.
            x_width: Normalized width of one column.
            magnitudes: Array (columns x bins) in [0, 1], bin 0 at the bottom.
        """
        raise NotImplementedError

    def draw_axes(
        self,
        x_labels: list[tuple[float, str]],
        y_labels: list[tuple[float, str]],
    ) -> None:
        """Draw axis labels at normalized positions."""
        raise NotImplementedError

    def dispose(self) -> None:
        """Release the surface. Default does nothing."""


class ImageSurface(FigureSurface):
    """Headless RGBA raster surface backed by a numpy array."""

    def __init__(self, width: int = DEFAULT_WIDTH, height: int = DEFAULT_HEIGHT, cmap: str = "viridis"):
        self.width = max(1, int(width))
        self.height = max(1, int(height))
        self.pixels = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        self._cmap = colormaps[cmap]
        self.x_labels: list[tuple[float, str]] = []
        self.y_labels: list[tuple[float, str]] = []
        self.point_count = 0
        self.column_count = 0

    def clear(self) -> None:
        self.pixels[:] = BACKGROUND_COLOR
        self.x_labels = []
        self.y_labels = []
        self.point_count = 0
        self.column_count = 0

    def paint_waveform_points(self, xs: np.ndarray, ys: np.ndarray) -> None:
        if len(xs) == 0:
            return
        cols = np.clip((np.asarray(xs) * self.width).astype(int), 0, self.width - 1)
        rows = np.clip(((1.0 - np.asarray(ys)) * (self.height - 1)).round().astype(int), 0, self.height - 1)
        self.pixels[rows, cols] = WAVEFORM_COLOR
        self.point_count += len(xs)

    def paint_tile_columns(self, x_starts: np.ndarray, x_width: float, magnitudes: np.ndarray) -> None:
        if magnitudes.ndim != 2 or magnitudes.shape[0] == 0 or magnitudes.shape[1] == 0:
            return
        bins = magnitudes.shape[1]
        # Row 0 is the top of the image, bin 0 the bottom of the figure
        row_bins = ((self.height - 1 - np.arange(self.height)) * bins // self.height).clip(0, bins - 1)
        colors = (self._cmap(magnitudes[:, row_bins]) * 255).astype(np.uint8)

        for index, x in enumerate(np.asarray(x_starts, dtype=np.float64)):
            left = int(np.floor(x * self.width))
            right = max(left + 1, int(np.ceil((x + x_width) * self.width)))
            left, right = max(0, left), min(self.width, right)
            if left >= right:
                continue
            self.pixels[:, left:right] = colors[index][:, None, :]
            self.column_count += 1

    def draw_axes(
        self,
        x_labels: list[tuple[float, str]],
        y_labels: list[tuple[float, str]],
    ) -> None:
        self.x_labels = list(x_labels)
        self.y_labels = list(y_labels)

    def to_rgba(self) -> np.ndarray:
        return self.pixels.copy()
