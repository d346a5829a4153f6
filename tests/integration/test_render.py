import pytest

import plotweave as pw
from plotweave import aes, plot
from plotweave.primitives import Line, Point, Polygon, Rectangle, Stroke, Text
from plotweave.render import _dashed


def red_point():
    return plot({"x": [1], "y": [1]}, aes(x="x", y="y"), pw.points(color="red", size=5)).build(
        64, 48
    )


def test_render_image():
    built = red_point()
    image = built.render(pw.PillowRenderer())
    assert image.size == (64, 48)
    assert image.mode == "RGB"
    # a constant domain maps to the middle of the panel
    assert image.getpixel((32, 24)) == (255, 0, 0)
    assert image.getpixel((2, 2)) == (255, 255, 255)


def test_background():
    image = pw.PillowRenderer(background=pw.Color(0, 0, 0)).render([], 10, 10)
    assert image.getpixel((5, 5)) == (0, 0, 0)


def test_png_bytes(tmp_path):
    built = red_point()
    renderer = pw.PillowRenderer()
    data = renderer.png_bytes(built.commands, built.width, built.height)
    assert data.startswith(b"\x89PNG")

    path = tmp_path / "plot.png"
    renderer.save(built.commands, built.width, built.height, path)
    assert path.read_bytes().startswith(b"\x89PNG")


def test_all_primitives():
    blue = pw.Color(0, 0, 255)
    commands = [
        Rectangle(Point(0, 0), 10, 10, fill=blue),
        Polygon((Point(20, 0), Point(30, 0), Point(25, 10)), fill=blue),
        Line(Point(0, 20), Point(30, 20), Stroke(blue, 3.0, (4.0, 4.0))),
        Text(Point(15, 25), "hi", pw.Color(0, 0, 0), 8.0),
    ]
    image = pw.PillowRenderer().render(commands, 32, 32)
    assert image.getpixel((5, 5)) == (0, 0, 255)
    assert image.getpixel((25, 3)) == (0, 0, 255)
    assert image.getpixel((1, 20)) == (0, 0, 255)


def test_translucent_fill_is_blended():
    half_red = pw.Color(255, 0, 0, 128)
    image = pw.PillowRenderer().render([Rectangle(Point(0, 0), 4, 4, fill=half_red)], 4, 4)
    r, g, b = image.getpixel((1, 1))
    assert r == 255
    assert 120 <= g <= 135
    assert g == b


def test_dash_pieces():
    pieces = _dashed(Point(0.0, 0.0), Point(10.0, 0.0), (2.0, 3.0))
    assert [(a.x, b.x) for a, b in pieces] == [(0.0, 2.0), (5.0, 7.0)]


def test_dash_degenerate_segment():
    start = Point(1.0, 1.0)
    assert _dashed(start, start, (2.0, 3.0)) == [(start, start)]


def test_unsupported_command():
    with pytest.raises(TypeError, match="Unsupported"):
        pw.PillowRenderer().render([object()], 4, 4)
