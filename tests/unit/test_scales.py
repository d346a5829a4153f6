import pytest
import numpy as np
from types import MappingProxyType

from plotweave.aesthetics import Aesthetic
from plotweave.colors import Colors
from plotweave.config import Config, ConfigKey
from plotweave.errors import ScaleFrozen, UntrainedScale
from plotweave.scales import (
    ContinuousDomain,
    DiscreteDomain,
    ScaleContinuousColor,
    ScaleContinuousPosition,
    ScaleDiscreteColor,
    ScaleDiscretePosition,
    ScaleIdentity,
    ScaleRegistry,
    TickCoverage,
    choose_ticks,
    colorcontinuous,
    colordiscrete,
    default_scale,
    literal_colors,
    shapediscrete,
    sizecontinuous,
    sort_levels,
    xcontinuous,
    xdiscrete,
    ycontinuous,
)


def trained(scale, *batches):
    Config().replace_keys(scale)
    for batch in batches:
        scale.train(batch)
    scale.freeze()
    return scale


class TestDomains:
    def test_continuous_merge_is_order_independent(self):
        a = ContinuousDomain.of(np.array([1.0, 5.0]))
        b = ContinuousDomain.of(np.array([-2.0, 3.0]))
        assert a.merge(b) == b.merge(a) == ContinuousDomain(-2.0, 5.0)

    def test_continuous_ignores_missing(self):
        domain = ContinuousDomain.of(np.array([np.nan, 2.0, np.inf, 4.0]))
        assert domain == ContinuousDomain(2.0, 4.0)

    def test_empty_continuous(self):
        assert ContinuousDomain.of(np.array([np.nan])).is_empty()
        assert ContinuousDomain().merge(ContinuousDomain(1.0, 2.0)) == ContinuousDomain(1.0, 2.0)

    def test_discrete_union(self):
        a = DiscreteDomain.of(np.array(["a", "b", None], dtype=object))
        b = DiscreteDomain.of(np.array(["c", "a"], dtype=object))
        assert a.merge(b).ordered() == ["a", "b", "c"]

    def test_sort_levels_mixed_types(self):
        assert sort_levels([2, "a", 1]) == [1, 2, "a"]


class TestContinuousPosition:
    def test_map_to_unit_interval(self):
        scale = trained(xcontinuous(), [1.0, 2.0, 3.0])
        np.testing.assert_allclose(scale.map([1.0, 2.0, 3.0]), [0.0, 0.5, 1.0])

    def test_map_to_range(self):
        scale = trained(ycontinuous(range=(400.0, 0.0)), [2.0, 4.0, 3.0, 5.0])
        np.testing.assert_allclose(
            scale.map([2.0, 4.0, 3.0, 5.0]), [400.0, 400.0 / 3, 800.0 / 3, 0.0]
        )

    def test_inverse_round_trip(self):
        scale = trained(xcontinuous(range=(10.0, 90.0)), [-3.0, 17.0])
        values = np.array([-3.0, 0.0, 4.5, 17.0])
        np.testing.assert_allclose(scale.inverse(scale.map(values)), values, atol=1e-9)

    def test_training_order_independent(self):
        batches = [[5.0, 6.0], [-1.0], [3.0, 12.0]]
        forward = trained(xcontinuous(), *batches)
        backward = trained(xcontinuous(), *reversed(batches))
        grid = np.linspace(-5.0, 15.0, 9)
        np.testing.assert_array_equal(forward.map(grid), backward.map(grid))

    def test_missing_values_propagate(self):
        scale = trained(xcontinuous(), [0.0, 1.0])
        mapped = scale.map([0.5, np.nan])
        assert mapped[0] == 0.5
        assert np.isnan(mapped[1])

    def test_constant_domain_maps_to_middle(self):
        scale = trained(xcontinuous(), [3.0, 3.0])
        np.testing.assert_allclose(scale.map([3.0]), [0.5])

    def test_untrained_uses_default_domain(self):
        scale = trained(xcontinuous())
        np.testing.assert_allclose(scale.map([0.0, 1.0]), [0.0, 1.0])

    def test_limits_override_domain(self):
        scale = trained(xcontinuous(limits=(0.0, 10.0)), [2.0, 3.0])
        np.testing.assert_allclose(scale.map([5.0]), [0.5])

    def test_expand(self):
        scale = trained(xcontinuous(expand=0.5), [0.0, 2.0])
        np.testing.assert_allclose(scale.map([0.0, 2.0]), [0.25, 0.75])

    def test_log10_transform(self):
        scale = trained(xcontinuous(trans="log10"), [1.0, 10.0, 100.0])
        np.testing.assert_allclose(scale.map([1.0, 10.0, 100.0]), [0.0, 0.5, 1.0])
        assert scale.breaks() == pytest.approx([1.0, 10.0, 100.0])

    def test_reverse_transform(self):
        scale = trained(xcontinuous(trans="reverse"), [0.0, 10.0])
        np.testing.assert_allclose(scale.map([0.0, 10.0]), [1.0, 0.0])

    def test_unknown_transform(self):
        with pytest.raises(ValueError, match="Unknown scale transform"):
            xcontinuous(trans="cube")

    def test_non_numeric_values_rejected(self):
        scale = xcontinuous()
        with pytest.raises(ValueError, match="non-numerical"):
            scale.train(["a", "b"])

    def test_breaks_within_limits(self):
        scale = trained(xcontinuous(), [0.0, 10.0])
        breaks = scale.breaks()
        assert len(breaks) >= 2
        assert all(0.0 <= b <= 10.0 for b in breaks)
        assert breaks == sorted(breaks)


class TestScaleLifecycle:
    def test_map_before_freeze(self):
        scale = xcontinuous()
        scale.train([1.0, 2.0])
        with pytest.raises(UntrainedScale):
            scale.map([1.0])

    def test_train_after_freeze(self):
        scale = trained(xcontinuous(), [1.0, 2.0])
        with pytest.raises(ScaleFrozen):
            scale.train([3.0])

    def test_freeze_is_idempotent(self):
        scale = trained(xcontinuous(), [1.0, 2.0])
        scale.freeze()
        assert scale.frozen

    def test_discrete_without_levels(self):
        scale = trained(xdiscrete())
        with pytest.raises(UntrainedScale):
            scale.map(["a"])


class TestDiscretePosition:
    def test_levels_sorted(self):
        scale = trained(xdiscrete(), ["b", "c"], ["a", "b"])
        assert scale.levels == ["a", "b", "c"]
        assert scale.breaks() == ["a", "b", "c"]

    def test_positions_are_evenly_spaced(self):
        scale = trained(xdiscrete(), ["a", "b", "c"])
        # levels at 1, 2, 3 inside the padded extent [0.4, 3.6]
        np.testing.assert_allclose(
            scale.map(["a", "b", "c"]), [0.6 / 3.2, 1.6 / 3.2, 2.6 / 3.2]
        )

    def test_unknown_and_missing_levels(self):
        scale = trained(xdiscrete(), ["a", "b"])
        mapped = scale.map(np.array(["a", "z", None], dtype=object))
        assert not np.isnan(mapped[0])
        assert np.isnan(mapped[1:]).all()

    def test_limits_fix_order(self):
        scale = trained(xdiscrete(limits=["c", "a"]), ["a", "b", "c"])
        assert scale.levels == ["c", "a"]
        assert scale.map(["c"])[0] < scale.map(["a"])[0]
        assert np.isnan(scale.map(["b"])[0])

    def test_duplicate_limits(self):
        with pytest.raises(ValueError, match="Duplicate"):
            xdiscrete(limits=["a", "a"])

    def test_inverse_nearest_level(self):
        scale = trained(xdiscrete(), ["a", "b", "c"])
        assert scale.inverse(scale.map(["a", "b", "c"])) == ["a", "b", "c"]
        assert scale.inverse([0.0, 1.0]) == ["a", "c"]

    def test_numeric_levels(self):
        scale = trained(xdiscrete(), [3.0, 1.0, 2.0])
        assert scale.levels == [1.0, 2.0, 3.0]

    def test_whole_number_levels_are_ints(self):
        scale = trained(xdiscrete(), [3, 1, 2], [2.5])
        assert scale.levels == [1, 2, 2.5, 3]
        assert [type(v) for v in scale.levels] == [int, int, float, int]
        assert scale.map([2.0])[0] == scale.map([2])[0]


class TestColorScales:
    def test_discrete_colors(self):
        scale = trained(colordiscrete("tab10"), ["x", "y", "x"])
        colors = scale.map(np.array(["x", "y", None], dtype=object))
        assert isinstance(colors, Colors)
        assert colors.values.shape == (3, 4)
        assert not np.allclose(colors.values[0], colors.values[1])
        assert colors.missing().tolist() == [False, False, True]

    def test_discrete_inverse(self):
        scale = trained(colordiscrete("tab10"), ["p", "q", "r"])
        assert scale.inverse(scale.map(["r", "p"])) == ["r", "p"]

    def test_continuous_colors_endpoints(self):
        scale = trained(colorcontinuous("viridis"), [0.0, 10.0])
        colors = scale.map([0.0, 10.0])
        np.testing.assert_allclose(colors.values[0], scale.colormap(0.0).rgba, atol=1e-6)
        np.testing.assert_allclose(colors.values[1], scale.colormap(1.0).rgba, atol=1e-6)

    def test_continuous_inverse_is_approximate(self):
        scale = trained(colorcontinuous("viridis"), [0.0, 10.0])
        values = np.array([0.0, 2.5, 7.0, 10.0])
        np.testing.assert_allclose(scale.inverse(scale.map(values)), values, atol=0.06)

    def test_continuous_missing(self):
        scale = trained(colorcontinuous("viridis"), [0.0, 1.0])
        colors = scale.map([np.nan, 0.5])
        assert colors.missing().tolist() == [True, False]

    def test_literal_colors(self):
        colors = literal_colors(np.array(["red", None, (0, 0, 255)], dtype=object))
        np.testing.assert_allclose(colors.values[0], [1.0, 0.0, 0.0, 1.0])
        assert colors.missing().tolist() == [False, True, False]
        np.testing.assert_allclose(colors.values[2], [0.0, 0.0, 1.0, 1.0])


class TestOtherScales:
    def test_size_range(self):
        scale = trained(sizecontinuous(range=(2.0, 10.0)), [0.0, 4.0])
        np.testing.assert_allclose(scale.map([0.0, 2.0, 4.0, 8.0]), [2.0, 6.0, 10.0, 10.0])

    def test_shape_palette_cycles(self):
        scale = trained(shapediscrete(palette=("circle", "square")), ["a", "b", "c"])
        assert list(scale.map(["a", "b", "c"])) == ["circle", "square", "circle"]

    def test_identity_passes_values(self):
        scale = trained(ScaleIdentity(Aesthetic.LABEL), ["one", "two"])
        assert list(scale.map(["two"])) == ["two"]
        assert scale.breaks() == ["one", "two"]

    @pytest.mark.parametrize(
        "aes, numeric, expected",
        [
            (Aesthetic.X, True, ScaleContinuousPosition),
            (Aesthetic.Y, False, ScaleDiscretePosition),
            (Aesthetic.COLOR, True, ScaleContinuousColor),
            (Aesthetic.FILL, False, ScaleDiscreteColor),
            (Aesthetic.LABEL, False, ScaleIdentity),
        ],
    )
    def test_default_scale(self, aes, numeric, expected):
        scale = default_scale(aes, numeric)
        assert isinstance(scale, expected)
        assert scale.aesthetic == aes


class TestChooseTicks:
    def test_strict_sub_ticks_inside_range(self):
        ticks = choose_ticks(0.3, 9.7, Config().tick_params, TickCoverage.StrictSub)
        assert ticks.min() >= 0.3
        assert ticks.max() <= 9.7

    def test_strict_super_ticks_cover_range(self):
        ticks = choose_ticks(0.3, 9.7, Config().tick_params, TickCoverage.StrictSuper)
        assert ticks.min() <= 0.3
        assert ticks.max() >= 9.7

    def test_zero_span(self):
        ticks = choose_ticks(5.0, 5.0, Config().tick_params, TickCoverage.Flexible)
        np.testing.assert_array_equal(ticks, [4.0, 6.0])

    def test_coverage_from_str(self):
        assert TickCoverage.from_str("sub") == TickCoverage.StrictSub
        with pytest.raises(ValueError):
            TickCoverage.from_str("everything")


class TestScaleRegistry:
    def test_ensure_creates_default(self):
        registry = ScaleRegistry()
        scale = registry.ensure(Aesthetic.X, True, Config())
        assert isinstance(scale, ScaleContinuousPosition)
        assert registry.ensure(Aesthetic.X, False, Config()) is scale

    def test_user_scale_is_kept(self):
        user = xdiscrete()
        registry = ScaleRegistry([user])
        assert registry.ensure(Aesthetic.X, True, Config()) is user

    def test_resolve_keys_reaches_untrained_scales(self):
        registry = ScaleRegistry([colordiscrete()])
        registry.resolve_keys(Config())
        scale = registry.get(Aesthetic.COLOR)
        assert not isinstance(scale.colormap, ConfigKey)
        registry.freeze()
        assert scale.levels == []

    def test_view_requires_freeze(self):
        registry = ScaleRegistry([xcontinuous()])
        with pytest.raises(UntrainedScale):
            registry.view()

    def test_view_is_read_only(self):
        registry = ScaleRegistry([xcontinuous()])
        Config().replace_keys(registry.get(Aesthetic.X))
        registry.freeze()
        view = registry.view()
        assert isinstance(view, MappingProxyType)
        with pytest.raises(TypeError):
            view[Aesthetic.Y] = ycontinuous()

    def test_train_after_freeze(self):
        registry = ScaleRegistry([xcontinuous()])
        registry.freeze()
        with pytest.raises(ScaleFrozen):
            registry.train_partial(Aesthetic.X, ContinuousDomain(0.0, 1.0))
        with pytest.raises(ScaleFrozen):
            registry.add(ycontinuous())

    def test_panel_scales(self):
        registry = ScaleRegistry()
        registry.ensure(Aesthetic.X, True, Config())
        registry.ensure_panel(Aesthetic.X, 0)
        registry.ensure_panel(Aesthetic.X, 1)
        registry.train_partial(Aesthetic.X, ContinuousDomain(0.0, 1.0), 0)
        registry.train_partial(Aesthetic.X, ContinuousDomain(10.0, 20.0), 1)
        registry.freeze()

        left = registry.panel_view(0)[Aesthetic.X]
        right = registry.panel_view(1)[Aesthetic.X]
        assert left is not right
        np.testing.assert_allclose(left.map([1.0]), [1.0])
        np.testing.assert_allclose(right.map([15.0]), [0.5])
