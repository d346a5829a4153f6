"""
Draw commands: fully resolved, device-space drawing instructions.

Commands carry pixel geometry and concrete style values only; nothing refers
back to data, aesthetics or scales. They are produced once by a geom and
consumed once by a renderer.
"""

from __future__ import annotations

from dataclasses import dataclass

from .colors import Color


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class Stroke:
    color: Color
    width: float = 2.0
    dash: tuple[float, ...] | None = None


@dataclass(frozen=True, slots=True)
class Circle:
    center: Point
    radius: float
    fill: Color | None = None
    stroke: Stroke | None = None
    shape: str = "circle"


@dataclass(frozen=True, slots=True)
class Line:
    start: Point
    end: Point
    stroke: Stroke


@dataclass(frozen=True, slots=True)
class Rectangle:
    """Axis-aligned rectangle given by its top-left corner."""

    origin: Point
    width: float
    height: float
    fill: Color | None = None
    stroke: Stroke | None = None


@dataclass(frozen=True, slots=True)
class Polygon:
    points: tuple[Point, ...]
    fill: Color | None = None
    stroke: Stroke | None = None


@dataclass(frozen=True, slots=True)
class Text:
    position: Point
    text: str
    color: Color
    size: float = 11.0
    anchor: str = "middle"


DrawCommand = Circle | Line | Rectangle | Polygon | Text


# Dash patterns, in multiples of the stroke width.
LINETYPE_DASHES: dict[str, tuple[float, ...] | None] = {
    "solid": None,
    "dashed": (4.0, 4.0),
    "dotted": (1.0, 3.0),
    "dotdash": (1.0, 3.0, 4.0, 3.0),
    "longdash": (8.0, 4.0),
    "twodash": (2.0, 2.0, 6.0, 2.0),
}


def dash_pattern(linetype: str | None, width: float) -> tuple[float, ...] | None:
    if linetype is None:
        return None
    try:
        pattern = LINETYPE_DASHES[linetype]
    except KeyError:
        raise ValueError(f"Unknown linetype: {linetype}") from None
    if pattern is None:
        return None
    return tuple(p * width for p in pattern)
