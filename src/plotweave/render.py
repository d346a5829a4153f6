"""
Rasterization of draw commands with Pillow.
"""

from __future__ import annotations

import io
import logging
import math
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

from PIL import Image, ImageDraw, ImageFont

from .colors import Color
from .primitives import Circle, DrawCommand, Line, Point, Polygon, Rectangle, Stroke, Text

logger = logging.getLogger(__name__)


class Renderer(Protocol):
    def render(self, commands: Sequence[DrawCommand], width: float, height: float) -> Any: ...


_ANCHORS = {"start": "lm", "middle": "mm", "end": "rm"}


def _rgba(color: Color) -> tuple[int, int, int, int]:
    return (color.r, color.g, color.b, color.a)


def _dashed(start: Point, end: Point, dash: tuple[float, ...]) -> list[tuple[Point, Point]]:
    """Split a segment into the "on" pieces of a dash pattern."""
    length = math.hypot(end.x - start.x, end.y - start.y)
    if length == 0 or not dash or sum(dash) <= 0:
        return [(start, end)]
    ux, uy = (end.x - start.x) / length, (end.y - start.y) / length

    pieces = []
    pos, i = 0.0, 0
    while pos < length:
        run = dash[i % len(dash)]
        if i % 2 == 0:
            stop = min(pos + run, length)
            pieces.append(
                (
                    Point(start.x + ux * pos, start.y + uy * pos),
                    Point(start.x + ux * stop, start.y + uy * stop),
                )
            )
        pos += run
        i += 1
    return pieces


def _shape_points(shape: str, cx: float, cy: float, r: float) -> list[tuple[float, float]] | None:
    match shape:
        case "triangle":
            return [
                (cx + r * math.sin(a), cy - r * math.cos(a))
                for a in (0.0, 2 * math.pi / 3, 4 * math.pi / 3)
            ]
        case "square":
            return [(cx - r, cy - r), (cx + r, cy - r), (cx + r, cy + r), (cx - r, cy + r)]
        case "diamond":
            return [(cx, cy - r), (cx + r, cy), (cx, cy + r), (cx - r, cy)]
        case _:
            return None


class PillowRenderer:
    """
    Draws commands onto a `PIL.Image` in order, over a solid background.
    Translucent colors are blended onto what is already drawn.
    """

    def __init__(self, background: Color = Color(255, 255, 255)):
        self.background = background
        self._fonts: dict[int, Any] = {}

    def render(
        self, commands: Sequence[DrawCommand], width: float, height: float
    ) -> Image.Image:
        size = (max(1, int(math.ceil(width))), max(1, int(math.ceil(height))))
        image = Image.new("RGB", size, _rgba(self.background)[:3])
        draw = ImageDraw.Draw(image, "RGBA")

        for command in commands:
            match command:
                case Circle():
                    self._circle(draw, command)
                case Line():
                    self._line(draw, command.start, command.end, command.stroke)
                case Rectangle():
                    box = [
                        command.origin.x,
                        command.origin.y,
                        command.origin.x + command.width,
                        command.origin.y + command.height,
                    ]
                    draw.rectangle(
                        box,
                        fill=_rgba(command.fill) if command.fill else None,
                        outline=_rgba(command.stroke.color) if command.stroke else None,
                        width=max(1, round(command.stroke.width)) if command.stroke else 1,
                    )
                case Polygon():
                    xy = [(p.x, p.y) for p in command.points]
                    if len(xy) < 2:
                        continue
                    draw.polygon(
                        xy,
                        fill=_rgba(command.fill) if command.fill else None,
                        outline=_rgba(command.stroke.color) if command.stroke else None,
                    )
                case Text():
                    draw.text(
                        (command.position.x, command.position.y),
                        command.text,
                        fill=_rgba(command.color),
                        font=self._font(command.size),
                        anchor=_ANCHORS.get(command.anchor, "mm"),
                    )
                case _:
                    raise TypeError(f"Unsupported draw command: {command!r}")

        logger.debug("Rendered %d commands onto %dx%d image", len(commands), *size)
        return image

    def _font(self, size: float):
        key = max(1, round(size))
        if key not in self._fonts:
            self._fonts[key] = ImageFont.load_default(size=key)
        return self._fonts[key]

    def _circle(self, draw: ImageDraw.ImageDraw, command: Circle):
        cx, cy, r = command.center.x, command.center.y, command.radius
        fill = _rgba(command.fill) if command.fill else None
        outline = _rgba(command.stroke.color) if command.stroke else None

        if command.shape in ("cross", "plus"):
            color = fill or outline
            if color is None:
                return
            stroke = Stroke(Color(*color), max(1.0, r / 3))
            d = r * math.sqrt(0.5) if command.shape == "cross" else r
            if command.shape == "cross":
                arms = [((cx - d, cy - d), (cx + d, cy + d)), ((cx - d, cy + d), (cx + d, cy - d))]
            else:
                arms = [((cx - d, cy), (cx + d, cy)), ((cx, cy - d), (cx, cy + d))]
            for a, b in arms:
                self._line(draw, Point(*a), Point(*b), stroke)
            return

        points = _shape_points(command.shape, cx, cy, r)
        if points is None:
            draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=fill, outline=outline)
        else:
            draw.polygon(points, fill=fill, outline=outline)

    def _line(self, draw: ImageDraw.ImageDraw, start: Point, end: Point, stroke: Stroke):
        width = max(1, round(stroke.width))
        pieces = _dashed(start, end, stroke.dash) if stroke.dash else [(start, end)]
        for a, b in pieces:
            draw.line([(a.x, a.y), (b.x, b.y)], fill=_rgba(stroke.color), width=width)

    def png_bytes(
        self, commands: Sequence[DrawCommand], width: float, height: float
    ) -> bytes:
        buffer = io.BytesIO()
        self.render(commands, width, height).save(buffer, format="PNG")
        return buffer.getvalue()

    def save(
        self, commands: Sequence[DrawCommand], width: float, height: float, path: str | Path
    ):
        self.render(commands, width, height).save(path)
