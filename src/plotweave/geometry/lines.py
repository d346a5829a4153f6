from typing import override

import numpy as np
from numpy.typing import NDArray

from ..aesthetics import Aesthetic, AestheticMapping
from ..coordinates import CoordSystem
from ..primitives import DrawCommand, Line, Point
from ..processed import ProcessedData
from .base import Geom, cfg, fixed_defaults, floats, row_strokes


class GeomPath(Geom):
    """
    Connects observations in data order within each group, one line command
    per consecutive pair.
    """

    @override
    def default_aes(self) -> AestheticMapping:
        return fixed_defaults(color=cfg("line_color"), linewidth=cfg("line_width"))

    def order(self, data: ProcessedData, rows: NDArray[np.intp]) -> NDArray[np.intp]:
        return rows

    @override
    def draw(self, data: ProcessedData, coord: CoordSystem) -> list[DrawCommand]:
        x = floats(data, Aesthetic.X)
        y = floats(data, Aesthetic.Y)
        strokes = row_strokes(data, width_default=1.5)

        commands: list[DrawCommand] = []
        for rows in data.groups():
            rows = self.order(data, rows)
            for a, b in zip(rows[:-1], rows[1:]):
                stroke = strokes[a]
                if stroke is None:
                    continue
                px, py = coord.path(x[[a, b]], y[[a, b]])
                px, py, keep = coord.clip(px, py)
                if not keep.all():
                    continue
                for j in range(len(px) - 1):
                    commands.append(
                        Line(
                            Point(float(px[j]), float(py[j])),
                            Point(float(px[j + 1]), float(py[j + 1])),
                            stroke,
                        )
                    )
        return commands


class GeomLine(GeomPath):
    """Like `GeomPath`, but connects observations in order of X."""

    @override
    def order(self, data: ProcessedData, rows: NDArray[np.intp]) -> NDArray[np.intp]:
        x = data[Aesthetic.X][rows].astype(np.float64)
        return rows[np.argsort(x, kind="stable")]
