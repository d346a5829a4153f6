from typing import override

import numpy as np

from ..aesthetics import Aesthetic, AestheticMapping
from ..colors import Color
from ..coordinates import CoordSystem
from ..data import is_missing_value
from ..primitives import DrawCommand, Point, Text
from ..processed import ProcessedData
from ..scales import default_labeler
from .base import Geom, cfg, device_points, fixed_defaults, floats, row_colors


class GeomText(Geom):
    """One text label per observation, centred on its position."""

    required_aes = (Aesthetic.X, Aesthetic.Y, Aesthetic.LABEL)
    nonmissing_aes = (Aesthetic.SIZE,)

    def __init__(self, anchor: str = "middle"):
        if anchor not in ("start", "middle", "end"):
            raise ValueError(f"Unknown text anchor: {anchor}")
        self.anchor = anchor

    @override
    def default_aes(self) -> AestheticMapping:
        return fixed_defaults(color=cfg("text_color"), size=cfg("text_size"))

    @override
    def draw(self, data: ProcessedData, coord: CoordSystem) -> list[DrawCommand]:
        px, py, keep = device_points(
            coord, floats(data, Aesthetic.X), floats(data, Aesthetic.Y)
        )
        sizes = floats(data, Aesthetic.SIZE, 11.0)
        colors = row_colors(data, Aesthetic.COLOR)
        labels = _label_strings(data[Aesthetic.LABEL])

        commands: list[DrawCommand] = []
        for i in np.flatnonzero(keep):
            commands.append(
                Text(
                    Point(float(px[i]), float(py[i])),
                    labels[i],
                    colors[i] or Color(0, 0, 0),
                    float(sizes[i]),
                    self.anchor,
                )
            )
        return commands


def _label_strings(values) -> list[str]:
    if values.dtype.kind == "f":
        return default_labeler([float(v) for v in values])
    return ["" if is_missing_value(v) else str(v) for v in values]
