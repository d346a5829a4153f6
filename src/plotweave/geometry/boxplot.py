from typing import override

import numpy as np

from ..aesthetics import Aesthetic, AestheticMapping
from ..colors import Colors
from ..coordinates import CoordSystem
from ..positions import Position, PositionDodge, resolution
from ..primitives import Circle, DrawCommand, Line, Point, Stroke
from ..processed import ProcessedData
from ..stats import Stat, StatBoxplot
from .bars import rectangle
from .base import Geom, cfg, fixed_defaults, floats, row_colors, row_strokes


class GeomBoxplot(Geom):
    """
    Box from the lower to the upper quartile with a median line, whiskers to
    `ymin` and `ymax`, and outliers as points.
    """

    required_extents = ("lower", "middle", "upper", "ymin", "ymax")

    def __init__(self, coef: float = 1.5, outlier_radius: float = 2.0):
        self.coef = coef
        self.outlier_radius = outlier_radius

    @override
    def default_stat(self) -> Stat:
        return StatBoxplot(coef=self.coef)

    @override
    def default_position(self) -> Position:
        return PositionDodge(width=0.75)

    @override
    def default_aes(self) -> AestheticMapping:
        return fixed_defaults(
            color=cfg("line_color"), fill=cfg("boxplot_fill"), linewidth=cfg("line_width")
        )

    @override
    def draw(self, data: ProcessedData, coord: CoordSystem) -> list[DrawCommand]:
        x = floats(data, Aesthetic.X)
        if data.has("xmin") and data.has("xmax"):
            xmin, xmax = floats(data, "xmin"), floats(data, "xmax")
        else:
            widths = floats(data, "stat:width", 0.75)
            half = widths * resolution(x) / 2
            xmin, xmax = x - half, x + half

        lower, middle, upper = floats(data, "lower"), floats(data, "middle"), floats(data, "upper")
        ymin, ymax = floats(data, "ymin"), floats(data, "ymax")
        outliers = data.get("stat:outliers")
        fills = row_colors(data, Aesthetic.FILL)
        strokes = row_strokes(data, Aesthetic.COLOR)
        colors = row_colors(data, Aesthetic.COLOR)
        # median drawn in a shade of the box fill
        medians = (
            Colors(data[Aesthetic.FILL]).modulate_lightness(0.4).to_list()
            if data.has(Aesthetic.FILL)
            else colors
        )

        commands: list[DrawCommand] = []
        for i in range(data.n_rows):
            stroke = strokes[i]
            commands.append(
                rectangle(coord, xmin[i], xmax[i], lower[i], upper[i], fills[i], stroke)
            )
            if stroke is None:
                stroke = Stroke(colors[i]) if colors[i] is not None else None
            if stroke is not None:
                median = medians[i]
                median_stroke = Stroke(median, stroke.width) if median is not None else stroke
                commands.extend(
                    _segment(coord, xmin[i], middle[i], xmax[i], middle[i], median_stroke)
                )
                commands.extend(_segment(coord, x[i], upper[i], x[i], ymax[i], stroke))
                commands.extend(_segment(coord, x[i], lower[i], x[i], ymin[i], stroke))

            if outliers is not None and outliers[i] is not None and len(outliers[i]):
                oy = np.asarray(outliers[i], dtype=np.float64)
                px, py = coord.transform(np.full(len(oy), x[i]), oy)
                px, py, keep = coord.clip(px, py)
                for j in np.flatnonzero(keep):
                    commands.append(
                        Circle(
                            Point(float(px[j]), float(py[j])),
                            self.outlier_radius,
                            fill=colors[i],
                        )
                    )
        return commands


def _segment(coord: CoordSystem, x0, y0, x1, y1, stroke: Stroke) -> list[DrawCommand]:
    px, py = coord.path(np.array([x0, x1]), np.array([y0, y1]))
    px, py, _ = coord.clip(px, py)
    return [
        Line(Point(float(px[j]), float(py[j])), Point(float(px[j + 1]), float(py[j + 1])), stroke)
        for j in range(len(px) - 1)
    ]
