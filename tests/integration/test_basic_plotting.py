import pytest
import numpy as np

import plotweave as pw
from plotweave import Aesthetic, aes, plot
from plotweave.primitives import Circle, Line, Rectangle, Text
from plotweave.scales import ContinuousDomain

DATA = {"x": [1, 2, 3, 4], "y": [2, 4, 3, 5]}


def circles(built):
    return [c for c in built.commands if isinstance(c, Circle)]


class TestScenarios:
    def test_identity_coordinates(self):
        built = plot(
            DATA,
            aes(x="x", y="y"),
            pw.points(),
            pw.xcontinuous(range=(0, 400)),
            pw.ycontinuous(range=(400, 0)),
            pw.CoordIdentity(),
        ).build(400, 400)

        centers = [c.center for c in circles(built)]
        assert len(centers) == 4
        np.testing.assert_allclose([p.x for p in centers], [0.0, 400 / 3, 800 / 3, 400.0])
        np.testing.assert_allclose([p.y for p in centers], [400.0, 400 / 3, 800 / 3, 0.0])

    def test_fixed_color(self):
        built = plot(DATA, aes(x="x", y="y"), pw.points(color="red")).build()
        assert len(circles(built)) == 4
        assert all(c.fill == pw.Color(255, 0, 0) for c in circles(built))
        assert Aesthetic.COLOR not in built.scales

    def test_unused_user_scale(self):
        built = plot(
            DATA, aes(x="x", y="y"), pw.points(color="red"), pw.colordiscrete()
        ).build()
        assert len(circles(built)) == 4
        assert all(c.fill == pw.Color(255, 0, 0) for c in circles(built))
        assert built.scales[Aesthetic.COLOR].levels == []

    def test_missing_column_fails_one_layer(self):
        built = plot(
            DATA, aes(x="x", y="y"), pw.points(), pw.points(aes(color="age"))
        ).build()

        good, bad = built.layers
        assert good.ok
        assert good.stage == pw.Stage.RENDERED
        assert good.commands == 4
        assert isinstance(bad.error, pw.ColumnNotFound)
        assert bad.error.name == "age"
        assert len(built.commands) == 4

    def test_discrete_histogram_fails_one_layer(self):
        data = dict(DATA, g=["a", "b", "a", "b"])
        built = plot(data, aes(x="x", y="y"), pw.points(), pw.histogram(aes(x="g"))).build()

        good, bad = built.layers
        assert good.ok
        assert len(circles(built)) == 4
        assert isinstance(bad.error, pw.NonNumericAesthetic)
        assert bad.error.aesthetic == "x"


class TestPipeline:
    def test_layer_fixed_beats_plot_mapping(self):
        data = dict(DATA, g=["a", "b", "a", "b"])
        built = plot(data, aes(x="x", y="y", color="g"), pw.points(color="blue")).build()
        assert all(c.fill == pw.Color(0, 0, 255) for c in circles(built))

    def test_mapped_discrete_color(self):
        data = dict(DATA, g=["a", "b", "a", "b"])
        built = plot(data, aes(x="x", y="y", color="g")).add(pw.points()).build()
        fills = [c.fill for c in circles(built)]
        assert fills[0] == fills[2]
        assert fills[0] != fills[1]
        assert built.scales[Aesthetic.COLOR].levels == ["a", "b"]

    def test_missing_values_are_dropped_and_counted(self):
        data = {"x": [1, 2, None, 4], "y": [2, None, 3, 5]}
        built = plot(data, aes(x="x", y="y"), pw.points()).build()
        assert built.layers[0].dropped == 2
        assert len(circles(built)) == 2

    def test_missing_mapped_size_is_dropped(self):
        data = dict(DATA, s=[1, None, 3, 4])
        built = plot(data, aes(x="x", y="y", size="s"), pw.points()).build()
        assert built.layers[0].dropped == 1
        radii = [c.radius for c in circles(built)]
        assert len(radii) == 3
        assert np.isfinite(radii).all()

    def test_failed_stat_warns_and_draws_nothing(self):
        data = {"x": [1, 1, 1], "y": [1, 2, 3]}
        with pytest.warns(UserWarning, match="StatSmooth failed"):
            built = plot(data, aes(x="x", y="y"), pw.smooth()).build()
        (result,) = built.layers
        assert result.ok
        assert len(result.warnings) == 1
        assert built.commands == []

    def test_commands_in_layer_order(self):
        built = plot(DATA, aes(x="x", y="y"), pw.lines(), pw.points()).build()
        kinds = [type(c) for c in built.commands]
        assert kinds == [Line] * 3 + [Circle] * 4

    def test_build_is_repeatable(self):
        p = plot(DATA, aes(x="x", y="y"), pw.points(position=pw.PositionJitter()))
        assert p.build().commands == p.build().commands

    def test_build_leaves_user_scales_untrained(self):
        scale = pw.xcontinuous()
        p = plot(DATA, aes(x="x", y="y"), pw.points(), scale)
        built = p.build()
        assert built.scales[Aesthetic.X] is not scale
        assert scale.domain == ContinuousDomain()
        assert len(p.layers) == 1

    def test_coordinate_limits(self):
        data = {"x": [2, 5, 20], "y": [1, 2, 3]}
        built = plot(data, aes(x="x", y="y"), pw.points(), pw.CoordCartesian(xlim=(0, 10))).build()
        assert built.scales[Aesthetic.X].domain == ContinuousDomain(0.0, 10.0)

    def test_iadd(self):
        p = pw.Plot(DATA, aes(x="x", y="y"))
        p += pw.points()
        p += pw.Config(point_radius=5.0)
        assert all(c.radius == 5.0 for c in circles(p.build()))


class TestGeoms:
    def test_bar_counts(self):
        built = plot({"g": ["a", "b", "a"]}, aes(x="g"), pw.bars()).build(640, 480)
        rects = [c for c in built.commands if isinstance(c, Rectangle)]
        assert sorted(r.height for r in rects) == pytest.approx([240.0, 480.0])
        assert built.scales[Aesthetic.X].levels == ["a", "b"]

    def test_histogram(self):
        values = np.arange(20, dtype=float)
        built = plot({"v": values}, aes(x="v"), pw.histogram(bins=5)).build()
        rects = [c for c in built.commands if isinstance(c, Rectangle)]
        assert len(rects) == 5
        assert sum(r.width for r in rects) == pytest.approx(640.0)

    def test_bar_width_from_config(self):
        p = plot({"x": [1, 2], "y": [1, 1]}, aes(x="x", y="y"), pw.cols(), pw.Config(bar_width=0.5))
        rects = [c for c in p.build(640, 480).commands if isinstance(c, Rectangle)]
        # xmin..xmax spans 0.75..2.25
        assert [r.width for r in rects] == pytest.approx([640 / 3, 640 / 3])
        assert p.layers[0].geom.width == pw.ConfigKey("bar_width")

    def test_boxplot(self):
        data = {"g": ["a"] * 5 + ["b"] * 5, "v": [1, 2, 3, 4, 5, 5, 6, 7, 8, 9]}
        built = plot(data, aes(x="g", y="v"), pw.boxplot()).build()
        assert len(built.commands) == 8
        assert isinstance(built.commands[0], Rectangle)
        assert isinstance(built.commands[4], Rectangle)

    def test_text_labels(self):
        data = dict(DATA, name=["p", "q", "r", "s"])
        built = plot(data, aes(x="x", y="y", label="name"), pw.text()).build()
        assert [c.text for c in built.commands if isinstance(c, Text)] == ["p", "q", "r", "s"]


class TestFacets:
    DATA = {"x": [1, 2, 3, 4], "y": [1, 2, 3, 4], "g": ["a", "a", "b", "b"]}

    def test_wrap(self):
        built = plot(
            self.DATA, aes(x="x", y="y"), pw.points(), pw.FacetWrap("g", ncol=2)
        ).build(410, 210)
        assert len(built.panels) == 2
        xs = [c.center.x for c in circles(built)]
        assert max(xs[:2]) <= 200.0
        assert min(xs[2:]) >= 210.0
        assert xs[-1] == pytest.approx(410.0)

    def test_free_scales(self):
        built = plot(
            self.DATA, aes(x="x", y="y"), pw.points(), pw.FacetWrap("g", ncol=2, scales="free_x")
        ).build(410, 210)
        xs = [c.center.x for c in circles(built)]
        assert xs == pytest.approx([0.0, 200.0, 210.0, 410.0])


class TestGuides:
    def test_positional_guides(self):
        built = plot(DATA, aes(x="x", y="y"), pw.points()).build(640, 480)
        guides = {g.aesthetic: g for g in built.guides()}
        assert set(guides) == {Aesthetic.X, Aesthetic.Y}

        xguide = guides[Aesthetic.X]
        assert len(xguide.positions) == len(xguide.breaks) == len(xguide.labels)
        assert all(p.y == 480.0 for p in xguide.positions)
        assert all(0.0 <= p.x <= 640.0 for p in xguide.positions)
