from typing import override

import numpy as np

from ..aesthetics import Aesthetic, AestheticMapping
from ..coordinates import CoordSystem
from ..primitives import DrawCommand, Polygon
from ..processed import ProcessedData
from ..stats import Stat, StatDensity, StatSmooth
from .base import Geom, cfg, fixed_defaults, floats, polygon_points, row_colors
from .lines import GeomLine


class GeomRibbon(Geom):
    """
    Filled band between `ymin` and `ymax` along X, one polygon per group.
    """

    required_aes = (Aesthetic.X,)
    required_extents = ("ymin", "ymax")

    @override
    def default_aes(self) -> AestheticMapping:
        return fixed_defaults(fill=cfg("bar_color"), alpha=cfg("ribbon_alpha"))

    @override
    def draw(self, data: ProcessedData, coord: CoordSystem) -> list[DrawCommand]:
        return ribbon(data, coord)


def ribbon(data: ProcessedData, coord: CoordSystem) -> list[DrawCommand]:
    x = floats(data, Aesthetic.X)
    ymin, ymax = floats(data, "ymin"), floats(data, "ymax")
    fills = row_colors(data, Aesthetic.FILL, Aesthetic.COLOR)

    commands: list[DrawCommand] = []
    for rows in data.groups():
        rows = rows[~(np.isnan(ymin[rows]) | np.isnan(ymax[rows]))]
        if len(rows) < 2:
            continue
        rows = rows[np.argsort(x[rows], kind="stable")]
        ux, uy = coord.path(x[rows], ymax[rows])
        lx, ly = coord.path(x[rows][::-1], ymin[rows][::-1])
        px, py, _ = coord.clip(np.concat([ux, lx]), np.concat([uy, ly]))
        commands.append(Polygon(polygon_points(px, py), fill=fills[rows[0]]))
    return commands


class GeomArea(GeomRibbon):
    """Ribbon from zero up to Y."""

    required_aes = (Aesthetic.X, Aesthetic.Y)

    @override
    def setup_data(self, data: ProcessedData) -> ProcessedData:
        if not data.has(Aesthetic.Y) or (data.has("ymin") and data.has("ymax")):
            return data
        y = data[Aesthetic.Y].astype(np.float64)
        return data.with_columns({"ymin": np.minimum(y, 0.0), "ymax": np.maximum(y, 0.0)})


class GeomDensity(GeomArea):
    """Area under a kernel density estimate."""

    def __init__(self, bw_method: str | float | None = None, n: int = 512):
        self.bw_method = bw_method
        self.n = n

    @override
    def default_stat(self) -> Stat:
        return StatDensity(bw_method=self.bw_method, n=self.n)


class GeomSmooth(Geom):
    """
    Fitted curve, drawn over its confidence band when the stat provides one.
    """

    def __init__(self, method: str = "lm", se: bool = True, **kwargs):
        self.method = method
        self.se = se
        self.stat_args = kwargs
        self._line = GeomLine()

    @override
    def default_stat(self) -> Stat:
        return StatSmooth(method=self.method, se=self.se, **self.stat_args)

    @override
    def default_aes(self) -> AestheticMapping:
        return fixed_defaults(
            color=cfg("smooth_color"), linewidth=cfg("line_width"), alpha=cfg("ribbon_alpha")
        )

    @override
    def draw(self, data: ProcessedData, coord: CoordSystem) -> list[DrawCommand]:
        commands: list[DrawCommand] = []
        if self.se and data.has("ymin") and data.has("ymax"):
            # the band is a translucent grey; the line stays opaque
            band = data.with_columns(
                {Aesthetic.FILL: np.tile([0.6, 0.6, 0.6, 1.0], (data.n_rows, 1))}
            )
            commands.extend(ribbon(band, coord))
        commands.extend(self._line.draw(data.without(Aesthetic.ALPHA), coord))
        return commands
