"""
Coordinate systems map scaled positions into device space.

Positional scales produce values in a normalized range (by default [0, 1]);
a coordinate system bound to a panel rectangle turns those into pixels.
Every geom consumes positions through this interface, so non-Cartesian
systems plug in without geom changes: geoms hand over paths and rectangles
and the coordinate system decides whether they stay straight.
"""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Self, override

import numpy as np
from numpy.typing import NDArray

from .aesthetics import Aesthetic
from .config import ConfigKey

FloatArray = NDArray[np.float64]


@dataclass(frozen=True)
class Panel:
    """
    A device-space rectangle (y grows downward, as on a canvas) holding one
    facet panel.
    """

    x: float
    y: float
    width: float
    height: float
    index: int = 0
    row: int = 0
    col: int = 0
    label: str = ""

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


UNIT_PANEL = Panel(0.0, 0.0, 1.0, 1.0)


class ClipPolicy(Enum):
    CLAMP = "clamp"
    DROP = "drop"
    NONE = "none"


def _floats(values: Any) -> FloatArray:
    return np.atleast_1d(np.asarray(values, dtype=np.float64))


@dataclass
class CoordSystem(ABC):
    panel: Panel | None = None
    clip_policy: ClipPolicy = ClipPolicy.CLAMP
    aspect_ratio: float | None = None
    munch_segments: int | ConfigKey = ConfigKey("munch_segments")

    is_linear: ClassVar[bool] = True

    def with_panel(self, panel: Panel) -> Self:
        return dataclasses.replace(self, panel=panel)

    @property
    def bounds(self) -> Panel:
        return self.panel if self.panel is not None else UNIT_PANEL

    @abstractmethod
    def transform(self, x: Any, y: Any) -> tuple[FloatArray, FloatArray]:
        pass

    @abstractmethod
    def inverse(self, px: Any, py: Any) -> tuple[FloatArray, FloatArray]:
        pass

    def limits(self, aesthetic: Aesthetic) -> tuple[float, float] | None:
        """Data-space limits imposed on a positional aesthetic, if any."""
        return None

    def training_mask(self, aesthetic: Aesthetic, values: NDArray[Any]) -> NDArray[np.bool_]:
        """
        Rows whose values should contribute to scale training. Rows outside
        configured limits are left out so they do not widen the domain.
        """
        limits = self.limits(aesthetic)
        if limits is None or values.dtype.kind != "f":
            return np.ones(len(values), dtype=bool)
        lo, hi = limits
        return np.isnan(values) | ((values >= lo) & (values <= hi))

    def clip(
        self, px: Any, py: Any
    ) -> tuple[FloatArray, FloatArray, NDArray[np.bool_]]:
        """
        Apply the clip policy against the panel. Returns the (possibly clamped)
        positions and a mask of the rows to keep.
        """
        px, py = _floats(px), _floats(py)
        b = self.bounds
        match self.clip_policy:
            case ClipPolicy.CLAMP:
                with np.errstate(invalid="ignore"):
                    return (
                        np.clip(px, b.x, b.right),
                        np.clip(py, b.y, b.bottom),
                        np.ones(len(px), dtype=bool),
                    )
            case ClipPolicy.DROP:
                with np.errstate(invalid="ignore"):
                    keep = (px >= b.x) & (px <= b.right) & (py >= b.y) & (py <= b.bottom)
                return px, py, keep
            case ClipPolicy.NONE:
                return px, py, np.ones(len(px), dtype=bool)

    def _segments(self) -> int:
        if isinstance(self.munch_segments, ConfigKey):
            return 32
        return int(self.munch_segments)

    def path(self, x: Any, y: Any) -> tuple[FloatArray, FloatArray]:
        """
        Device-space vertices of a polyline through scaled positions. Non-linear
        systems subdivide each segment so it follows the curved space.
        """
        x, y = _floats(x), _floats(y)
        if self.is_linear or len(x) < 2:
            return self.transform(x, y)
        x, y = munch(x, y, self._segments())
        return self.transform(x, y)

    def rect(
        self, xmin: float, xmax: float, ymin: float, ymax: float
    ) -> tuple[FloatArray, FloatArray]:
        """Device-space outline of a rectangle in scaled space."""
        x = np.array([xmin, xmax, xmax, xmin, xmin])
        y = np.array([ymin, ymin, ymax, ymax, ymin])
        px, py = self.path(x, y)
        return px[:-1], py[:-1]


def munch(x: FloatArray, y: FloatArray, segments: int) -> tuple[FloatArray, FloatArray]:
    """Linearly subdivide each segment of a polyline into `segments` pieces."""
    t = np.linspace(0.0, 1.0, segments, endpoint=False)
    xs = [x[i] + t * (x[i + 1] - x[i]) for i in range(len(x) - 1)]
    ys = [y[i] + t * (y[i + 1] - y[i]) for i in range(len(y) - 1)]
    return (
        np.concat(xs + [x[-1:]]),
        np.concat(ys + [y[-1:]]),
    )


@dataclass
class CoordIdentity(CoordSystem):
    """
    Scaled values already are device positions; only clipping applies.
    """

    @override
    def transform(self, x: Any, y: Any) -> tuple[FloatArray, FloatArray]:
        return _floats(x), _floats(y)

    @override
    def inverse(self, px: Any, py: Any) -> tuple[FloatArray, FloatArray]:
        return _floats(px), _floats(py)


@dataclass
class CoordCartesian(CoordSystem):
    """
    Maps the normalized unit square onto the panel, with y growing upward.
    """

    xlim: tuple[float, float] | None = None
    ylim: tuple[float, float] | None = None

    def __post_init__(self):
        for name, lim in (("xlim", self.xlim), ("ylim", self.ylim)):
            if lim is not None and not lim[0] < lim[1]:
                raise ValueError(f"{name} must be increasing, got {lim}")

    @override
    def limits(self, aesthetic: Aesthetic) -> tuple[float, float] | None:
        if aesthetic == Aesthetic.X:
            return self.xlim
        if aesthetic == Aesthetic.Y:
            return self.ylim
        return None

    @override
    def transform(self, x: Any, y: Any) -> tuple[FloatArray, FloatArray]:
        b = self.bounds
        x, y = _floats(x), _floats(y)
        return b.x + x * b.width, b.bottom - y * b.height

    @override
    def inverse(self, px: Any, py: Any) -> tuple[FloatArray, FloatArray]:
        b = self.bounds
        px, py = _floats(px), _floats(py)
        return (px - b.x) / b.width, (b.bottom - py) / b.height


@dataclass
class CoordFlip(CoordCartesian):
    """Cartesian with the x and y axes swapped."""

    @override
    def transform(self, x: Any, y: Any) -> tuple[FloatArray, FloatArray]:
        return super().transform(y, x)

    @override
    def inverse(self, px: Any, py: Any) -> tuple[FloatArray, FloatArray]:
        y, x = super().inverse(px, py)
        return x, y


@dataclass
class CoordPolar(CoordSystem):
    """
    Polar coordinates: the `theta` aesthetic becomes the angle (clockwise from
    twelve o'clock when `direction` is 1) and the other the radius, centred in
    the panel.
    """

    theta: str = "x"
    start: float = 0.0
    direction: int = 1

    is_linear: ClassVar[bool] = False

    def __post_init__(self):
        if self.theta not in ("x", "y"):
            raise ValueError(f"theta must be 'x' or 'y', not {self.theta!r}")
        if self.direction not in (1, -1):
            raise ValueError("direction must be 1 or -1")

    def _geometry(self) -> tuple[float, float, float]:
        b = self.bounds
        return b.x + b.width / 2, b.y + b.height / 2, min(b.width, b.height) / 2

    @override
    def transform(self, x: Any, y: Any) -> tuple[FloatArray, FloatArray]:
        x, y = _floats(x), _floats(y)
        t, r = (x, y) if self.theta == "x" else (y, x)
        cx, cy, radius = self._geometry()
        angle = self.start + self.direction * 2 * np.pi * t
        return cx + r * radius * np.sin(angle), cy - r * radius * np.cos(angle)

    @override
    def inverse(self, px: Any, py: Any) -> tuple[FloatArray, FloatArray]:
        px, py = _floats(px), _floats(py)
        cx, cy, radius = self._geometry()
        dx, dy = px - cx, cy - py
        r = np.hypot(dx, dy) / radius
        angle = np.arctan2(dx, dy)
        t = np.mod(self.direction * (angle - self.start) / (2 * np.pi), 1.0)
        return (t, r) if self.theta == "x" else (r, t)
