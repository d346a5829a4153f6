from typing import override

import numpy as np

from ..aesthetics import Aesthetic, AestheticMapping
from ..config import ConfigKey
from ..coordinates import CoordSystem
from ..data import is_numeric
from ..positions import Position, PositionStack, resolution
from ..primitives import DrawCommand, Point, Polygon, Rectangle
from ..processed import ProcessedData
from ..stats import Stat, StatBin, StatCount
from .base import Geom, cfg, fixed_defaults, floats, polygon_points, row_colors, row_strokes


class GeomCol(Geom):
    """
    Bars spanning `xmin`..`xmax` (or a fraction of the X resolution) that grow
    from zero to Y.
    """

    def __init__(self, width: float | ConfigKey | None = None):
        self.width = cfg("bar_width") if width is None else width

    @override
    def default_aes(self) -> AestheticMapping:
        return fixed_defaults(fill=cfg("bar_color"))

    @override
    def default_position(self) -> Position:
        return PositionStack()

    @override
    def setup_data(self, data: ProcessedData) -> ProcessedData:
        columns = {}
        if data.has(Aesthetic.Y) and not (data.has("ymin") and data.has("ymax")):
            y = data[Aesthetic.Y].astype(np.float64)
            columns["ymin"] = np.minimum(y, 0.0)
            columns["ymax"] = np.maximum(y, 0.0)

        # Numeric X gets its extents in data space so the scale trains on them.
        if (
            data.has(Aesthetic.X)
            and is_numeric(data[Aesthetic.X])
            and not (data.has("xmin") and data.has("xmax"))
        ):
            x = data[Aesthetic.X].astype(np.float64)
            half = self._width() * resolution(x) / 2
            columns["xmin"] = x - half
            columns["xmax"] = x + half

        if not columns:
            return data
        return data.with_columns(columns)

    def _width(self) -> float:
        return 0.9 if isinstance(self.width, ConfigKey) else float(self.width)

    @override
    def draw(self, data: ProcessedData, coord: CoordSystem) -> list[DrawCommand]:
        x = floats(data, Aesthetic.X)
        if data.has("xmin") and data.has("xmax"):
            xmin, xmax = floats(data, "xmin"), floats(data, "xmax")
        else:
            half = self._width() * resolution(x) / 2
            xmin, xmax = x - half, x + half
        ymin = floats(data, "ymin", 0.0)
        ymax = floats(data, "ymax") if data.has("ymax") else floats(data, Aesthetic.Y)

        fills = row_colors(data, Aesthetic.FILL, Aesthetic.COLOR)
        strokes = (
            row_strokes(data, Aesthetic.COLOR)
            if data.has(Aesthetic.FILL) and data.has(Aesthetic.COLOR)
            else [None] * data.n_rows
        )

        commands: list[DrawCommand] = []
        for i in range(data.n_rows):
            if np.isnan([xmin[i], xmax[i], ymin[i], ymax[i]]).any():
                continue
            commands.append(
                rectangle(coord, xmin[i], xmax[i], ymin[i], ymax[i], fills[i], strokes[i])
            )
        return commands


def rectangle(coord: CoordSystem, xmin, xmax, ymin, ymax, fill, stroke) -> DrawCommand:
    """
    Rectangle in scaled space as a draw command: an axis-aligned `Rectangle`
    under linear coordinates, otherwise a `Polygon` following the space.
    """
    px, py = coord.rect(xmin, xmax, ymin, ymax)
    if not coord.is_linear:
        px, py, _ = coord.clip(px, py)
        return Polygon(polygon_points(px, py), fill=fill, stroke=stroke)

    px, py, _ = coord.clip(px, py)
    left, right = float(px.min()), float(px.max())
    top, bottom = float(py.min()), float(py.max())
    return Rectangle(Point(left, top), right - left, bottom - top, fill=fill, stroke=stroke)


class GeomBar(GeomCol):
    """Bar heights are the number of observations at each X."""

    required_aes = (Aesthetic.X, Aesthetic.Y)

    @override
    def default_stat(self) -> Stat:
        return StatCount()


class GeomHistogram(GeomCol):
    """Bars over histogram bins."""

    def __init__(self, bins: int = 30, binwidth: float | None = None, **kwargs):
        super().__init__(**kwargs)
        self.bins = bins
        self.binwidth = binwidth

    @override
    def default_stat(self) -> Stat:
        return StatBin(bins=self.bins, binwidth=self.binwidth)
