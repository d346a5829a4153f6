from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import numpy as np
from numpy.typing import NDArray

from ..aesthetics import Aesthetic, AestheticMapping, Fixed
from ..colors import Color
from ..config import ConfigKey
from ..coordinates import CoordSystem
from ..errors import MissingRequiredAesthetic
from ..positions import Position, PositionIdentity
from ..primitives import DrawCommand, Point, Stroke, dash_pattern
from ..processed import ProcessedData
from ..stats import Stat, StatIdentity

logger = logging.getLogger(__name__)

# Drawn for rows whose mapped color fell outside the color scale.
NA_COLOR = Color(127, 127, 127)


class Geom(ABC):
    """
    Turns scaled layer data into draw commands.

    `draw` receives data whose positional columns hold scaled values and whose
    color columns hold [n, 4] RGBA arrays, and emits commands in input row
    order.
    """

    required_aes: ClassVar[tuple[Aesthetic, ...]] = (Aesthetic.X, Aesthetic.Y)
    required_extents: ClassVar[tuple[str, ...]] = ()
    # Optional aesthetics that cannot be drawn with a missing value.
    nonmissing_aes: ClassVar[tuple[Aesthetic, ...]] = ()

    def default_stat(self) -> Stat:
        return StatIdentity()

    def default_position(self) -> Position:
        return PositionIdentity()

    def default_aes(self) -> AestheticMapping:
        """
        Fixed values used for aesthetics the user neither mapped nor fixed.
        `ConfigKey` values are looked up in the plot's config.
        """
        return AestheticMapping()

    def setup_data(self, data: ProcessedData) -> ProcessedData:
        """Data-space preparation, run before scale training."""
        return data

    def check_required(self, data: ProcessedData):
        missing = [aes.value for aes in self.required_aes if not data.has(aes)]
        missing += [name for name in self.required_extents if not data.has(name)]
        if missing:
            raise MissingRequiredAesthetic(type(self).__name__, missing)

    def drop_missing(self, data: ProcessedData) -> tuple[ProcessedData, int]:
        """
        Remove rows with a missing value in any required or non-missing
        aesthetic. Returns the remaining data and the number of dropped rows.
        """
        keys: list[Any] = [*self.required_aes, *self.required_extents, *self.nonmissing_aes]
        mask = data.missing_mask(keys)
        dropped = int(mask.sum())
        if dropped:
            logger.debug(
                "%s dropped %d of %d rows with missing values",
                type(self).__name__,
                dropped,
                data.n_rows,
            )
            data = data.filter(~mask)
        return data, dropped

    @abstractmethod
    def draw(self, data: ProcessedData, coord: CoordSystem) -> list[DrawCommand]:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def fixed_defaults(**kwargs: Any) -> AestheticMapping:
    return AestheticMapping({k: Fixed(v) for k, v in kwargs.items()})


def cfg(key: str) -> ConfigKey:
    return ConfigKey(key)


def floats(data: ProcessedData, key: Any, default: float = np.nan) -> NDArray[np.float64]:
    if data.has(key):
        return data[key].astype(np.float64)
    return np.full(data.n_rows, default)


def row_colors(
    data: ProcessedData, *keys: Aesthetic, alpha: bool = True
) -> list[Color | None]:
    """
    Per-row concrete colors from the first present color aesthetic among
    `keys`, with ALPHA applied. Rows are None when no color aesthetic is
    present.
    """
    key = next((k for k in keys if data.has(k)), None)
    if key is None:
        return [None] * data.n_rows

    rgba = data[key]
    alphas = floats(data, Aesthetic.ALPHA, 1.0) if alpha else np.ones(data.n_rows)
    out: list[Color | None] = []
    for i in range(data.n_rows):
        row = rgba[i]
        c = NA_COLOR if np.isnan(row).any() else Color.from_floats(row)
        a = alphas[i]
        out.append(c if np.isnan(a) or a >= 1.0 else c.with_alpha(a))
    return out


def row_strokes(
    data: ProcessedData, color_key: Aesthetic = Aesthetic.COLOR, width_default: float = 1.0
) -> list[Stroke | None]:
    cols = row_colors(data, color_key)
    widths = floats(data, Aesthetic.LINEWIDTH, width_default)
    linetypes = data.get(Aesthetic.LINETYPE)
    out: list[Stroke | None] = []
    for i, c in enumerate(cols):
        if c is None:
            out.append(None)
            continue
        width = width_default if np.isnan(widths[i]) else float(widths[i])
        linetype = linetypes[i] if linetypes is not None else None
        out.append(Stroke(c, width, dash_pattern(linetype, width)))
    return out


def device_points(
    coord: CoordSystem, x: NDArray[np.float64], y: NDArray[np.float64]
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.bool_]]:
    """Transform scaled positions and apply the coordinate system's clipping."""
    px, py = coord.transform(x, y)
    return coord.clip(px, py)


def polygon_points(px: NDArray[np.float64], py: NDArray[np.float64]) -> tuple[Point, ...]:
    return tuple(Point(float(a), float(b)) for a, b in zip(px, py))
