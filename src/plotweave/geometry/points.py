from typing import override

import numpy as np

from ..aesthetics import Aesthetic, AestheticMapping
from ..coordinates import CoordSystem
from ..primitives import Circle, DrawCommand, Point
from ..processed import ProcessedData
from .base import Geom, cfg, device_points, fixed_defaults, floats, row_colors


class GeomPoint(Geom):
    """One circle per observation."""

    nonmissing_aes = (Aesthetic.SIZE, Aesthetic.SHAPE)

    @override
    def default_aes(self) -> AestheticMapping:
        return fixed_defaults(
            color=cfg("point_color"), size=cfg("point_radius"), shape="circle"
        )

    @override
    def draw(self, data: ProcessedData, coord: CoordSystem) -> list[DrawCommand]:
        px, py, keep = device_points(
            coord, floats(data, Aesthetic.X), floats(data, Aesthetic.Y)
        )
        radius = floats(data, Aesthetic.SIZE, 3.0)
        fills = row_colors(data, Aesthetic.FILL, Aesthetic.COLOR)
        shapes = data.get(Aesthetic.SHAPE)

        commands: list[DrawCommand] = []
        for i in np.flatnonzero(keep):
            commands.append(
                Circle(
                    Point(float(px[i]), float(py[i])),
                    float(radius[i]),
                    fill=fills[i],
                    shape=str(shapes[i]) if shapes is not None and shapes[i] is not None else "circle",
                )
            )
        return commands
