import pytest
import numpy as np

from plotweave.aesthetics import Aesthetic
from plotweave.colors import Color
from plotweave.coordinates import CoordCartesian, Panel
from plotweave.geometry import GeomArea, GeomDensity, GeomRibbon, GeomSmooth
from plotweave.primitives import Line, Polygon
from plotweave.processed import GROUP_ID, ProcessedData
from plotweave.stats import StatDensity, StatSmooth

COORD = CoordCartesian().with_panel(Panel(0.0, 0.0, 10.0, 10.0))
BLUE = [0.0, 0.0, 1.0, 1.0]


def band(x, ymin, ymax, extra=None):
    n = len(x)
    data = {
        Aesthetic.X: np.asarray(x, dtype=np.float64),
        "ymin": np.asarray(ymin, dtype=np.float64),
        "ymax": np.asarray(ymax, dtype=np.float64),
        Aesthetic.FILL: np.tile(BLUE, (n, 1)),
    }
    data.update(extra or {})
    return ProcessedData(data)


class TestGeomRibbon:
    def test_outline(self):
        data = band([1.0, 0.0], [0.0, 0.2], [0.5, 1.0])
        (polygon,) = GeomRibbon().draw(data, COORD)
        assert isinstance(polygon, Polygon)
        assert polygon.fill == Color(0, 0, 255)
        # upper edge left to right, then lower edge back
        xs = [p.x for p in polygon.points]
        ys = [p.y for p in polygon.points]
        assert xs == [0.0, 10.0, 10.0, 0.0]
        assert ys == pytest.approx([0.0, 5.0, 10.0, 8.0])

    def test_one_polygon_per_group(self):
        data = band(
            [0.0, 0.5, 0.5, 1.0],
            [0.0, 0.0, 0.0, 0.0],
            [1.0, 1.0, 1.0, 1.0],
            {GROUP_ID: np.array([0.0, 0.0, 1.0, 1.0])},
        )
        assert len(GeomRibbon().draw(data, COORD)) == 2

    def test_short_groups_are_skipped(self):
        data = band([0.0, 0.5], [0.0, np.nan], [1.0, 1.0])
        assert GeomRibbon().draw(data, COORD) == []

    def test_alpha(self):
        data = band([0.0, 1.0], [0.0, 0.0], [1.0, 1.0], {Aesthetic.ALPHA: np.array([0.4, 0.4])})
        (polygon,) = GeomRibbon().draw(data, COORD)
        assert polygon.fill == Color(0, 0, 255, 102)


class TestGeomArea:
    def test_area_from_zero(self):
        data = ProcessedData({Aesthetic.X: np.array([1.0, 2.0]), Aesthetic.Y: np.array([3.0, -1.0])})
        result = GeomArea().setup_data(data)
        np.testing.assert_allclose(result["ymin"], [0.0, -1.0])
        np.testing.assert_allclose(result["ymax"], [3.0, 0.0])

    def test_density_stat(self):
        stat = GeomDensity(bw_method="silverman", n=64).default_stat()
        assert isinstance(stat, StatDensity)
        assert stat.n == 64


class TestGeomSmooth:
    def data(self):
        return ProcessedData(
            {
                Aesthetic.X: np.array([0.0, 0.5, 1.0]),
                Aesthetic.Y: np.array([0.2, 0.5, 0.8]),
                "ymin": np.array([0.1, 0.4, 0.7]),
                "ymax": np.array([0.3, 0.6, 0.9]),
                Aesthetic.COLOR: np.tile(BLUE, (3, 1)),
                Aesthetic.ALPHA: np.full(3, 0.4),
            }
        )

    def test_band_under_line(self):
        commands = GeomSmooth().draw(self.data(), COORD)
        assert isinstance(commands[0], Polygon)
        assert commands[0].fill.a == 102
        lines = commands[1:]
        assert len(lines) == 2
        assert all(isinstance(c, Line) for c in lines)
        # the fitted line ignores alpha
        assert lines[0].stroke.color == Color(0, 0, 255)
        assert lines[0].start.x == 0.0
        assert lines[0].start.y == pytest.approx(8.0)

    def test_without_band(self):
        commands = GeomSmooth(se=False).draw(self.data(), COORD)
        assert all(isinstance(c, Line) for c in commands)

    def test_stat_arguments(self):
        stat = GeomSmooth(method="loess", se=False, span=0.3).default_stat()
        assert isinstance(stat, StatSmooth)
        assert stat.method == "loess"
        assert stat.se is False
        assert stat.span == 0.3
