import numpy as np

from plotweave.aesthetics import Aesthetic
from plotweave.positions import (
    PositionDodge,
    PositionIdentity,
    PositionJitter,
    PositionStack,
    resolution,
)
from plotweave.processed import ProcessedData


def grouped(x, y, groups):
    return ProcessedData(
        {
            Aesthetic.X: np.asarray(x, dtype=np.float64),
            Aesthetic.Y: np.asarray(y, dtype=np.float64),
            Aesthetic.GROUP: np.asarray(groups, dtype=object),
        }
    )


def test_resolution():
    assert resolution(np.array([1.0, 3.0, 4.0, 4.0])) == 1.0
    assert resolution(np.array([2.0])) == 1.0
    assert resolution(np.array(["a", "b"], dtype=object), fallback=0.5) == 0.5


def test_identity():
    data = grouped([1.0], [2.0], ["a"])
    assert PositionIdentity().adjust(data) is data


class TestPositionStack:
    def test_stacks_in_group_order(self):
        data = grouped([1.0, 1.0, 2.0], [1.0, 2.0, 3.0], ["a", "b", "a"])
        result = PositionStack().adjust(data)
        np.testing.assert_array_equal(result["ymin"], [0.0, 1.0, 0.0])
        np.testing.assert_array_equal(result["ymax"], [1.0, 3.0, 3.0])
        np.testing.assert_array_equal(result[Aesthetic.Y], [1.0, 3.0, 3.0])

    def test_negative_values_stack_down(self):
        data = grouped([1.0, 1.0, 1.0], [2.0, -1.0, -2.0], ["a", "b", "c"])
        result = PositionStack().adjust(data)
        np.testing.assert_array_equal(result["ymin"], [0.0, -1.0, -3.0])
        np.testing.assert_array_equal(result["ymax"], [2.0, 0.0, -1.0])

    def test_discrete_x(self):
        data = ProcessedData(
            {
                Aesthetic.X: np.array(["u", "u"], dtype=object),
                Aesthetic.Y: np.array([1.0, 1.0]),
                Aesthetic.FILL: np.array(["p", "q"], dtype=object),
            }
        )
        result = PositionStack().adjust(data)
        np.testing.assert_array_equal(result["ymax"], [1.0, 2.0])

    def test_runs_in_data_space(self):
        assert PositionStack.data_space
        assert not PositionDodge.data_space


class TestPositionDodge:
    def test_groups_side_by_side(self):
        data = grouped([1.0, 1.0], [3.0, 4.0], ["a", "b"])
        result = PositionDodge(width=0.9).adjust(data)
        np.testing.assert_allclose(result["xmin"], [0.55, 1.0])
        np.testing.assert_allclose(result["xmax"], [1.0, 1.45])
        np.testing.assert_allclose(result[Aesthetic.X], [0.775, 1.225])

    def test_single_group_unchanged(self):
        data = grouped([1.0, 2.0], [3.0, 4.0], ["a", "a"])
        assert PositionDodge().adjust(data) is data

    def test_uses_existing_extents(self):
        data = grouped([1.0, 1.0], [3.0, 4.0], ["a", "b"]).with_columns(
            {"xmin": np.array([0.0, 0.0]), "xmax": np.array([2.0, 2.0])}
        )
        result = PositionDodge().adjust(data)
        np.testing.assert_allclose(result["xmin"], [0.0, 1.0])
        np.testing.assert_allclose(result["xmax"], [1.0, 2.0])


class TestPositionJitter:
    def test_deterministic(self):
        data = grouped(np.arange(10.0), np.arange(10.0), ["a"] * 10)
        first = PositionJitter(seed=7).adjust(data)
        second = PositionJitter(seed=7).adjust(data)
        np.testing.assert_array_equal(first[Aesthetic.X], second[Aesthetic.X])

    def test_bounded_offsets(self):
        data = grouped(np.arange(10.0), np.arange(10.0), ["a"] * 10)
        result = PositionJitter(width=0.2).adjust(data)
        offsets = result[Aesthetic.X] - data[Aesthetic.X]
        assert np.abs(offsets).max() <= 0.2
        assert np.abs(offsets).max() > 0
        np.testing.assert_array_equal(result[Aesthetic.Y], data[Aesthetic.Y])
