import pytest
import numpy as np

from plotweave.data import ColumnSource
from plotweave.facets import FacetGrid, FacetNull, FacetWrap, PanelSpec

SOURCE = ColumnSource(
    {
        "x": [1, 2, 3, 4, 5, 6],
        "g": ["b", "a", "c", "a", None, "b"],
        "h": ["u", "u", "v", "v", "u", "v"],
    }
)


class TestFacetNull:
    def test_single_panel(self):
        facet = FacetNull()
        (spec,) = facet.train([SOURCE])
        assert spec == PanelSpec((), 0, 0, "")
        assert facet.subset(SOURCE, spec) is SOURCE


class TestFacetWrap:
    def test_panels_sorted_and_wrapped(self):
        specs = FacetWrap("g", ncol=2).train([SOURCE])
        assert [s.key for s in specs] == [("a",), ("b",), ("c",)]
        assert [(s.row, s.col) for s in specs] == [(0, 0), (0, 1), (1, 0)]
        assert [s.label for s in specs] == ["a", "b", "c"]

    def test_default_columns(self):
        specs = FacetWrap("x").train([SOURCE])
        # six panels wrap into rows of three
        assert max(s.col for s in specs) == 2
        assert max(s.row for s in specs) == 1

    def test_levels_from_all_layers(self):
        other = ColumnSource({"g": ["z"]})
        specs = FacetWrap("g").train([SOURCE, other])
        assert [s.key[0] for s in specs] == ["a", "b", "c", "z"]

    def test_subset(self):
        facet = FacetWrap("g")
        specs = facet.train([SOURCE])
        subset = facet.subset(SOURCE, specs[0])
        np.testing.assert_array_equal(subset.column("x"), [2.0, 4.0])

    def test_layer_without_variable_is_repeated(self):
        facet = FacetWrap("g")
        specs = facet.train([SOURCE])
        other = ColumnSource({"x": [9]})
        assert all(facet.subset(other, s) is other for s in specs)

    def test_unknown_variable(self):
        with pytest.raises(ValueError, match="not a column"):
            FacetWrap("missing").train([SOURCE])

    def test_validation(self):
        with pytest.raises(ValueError):
            FacetWrap("g", ncol=0)
        with pytest.raises(ValueError):
            FacetWrap("g", scales="loose")

    def test_free_scales(self):
        assert FacetWrap("g", scales="free_x").free_x
        assert not FacetWrap("g", scales="free_x").free_y
        assert FacetWrap("g", scales="free").free_y


class TestFacetGrid:
    def test_grid(self):
        facet = FacetGrid(rows="h", cols="g")
        specs = facet.train([SOURCE])
        assert len(specs) == 6
        assert specs[0].key == ("u", "a")
        assert (specs[-1].row, specs[-1].col) == (1, 2)
        assert specs[-1].label == "v / c"

        cell = facet.subset(SOURCE, specs[1])
        np.testing.assert_array_equal(cell.column("x"), [1.0])

    def test_needs_a_variable(self):
        with pytest.raises(ValueError):
            FacetGrid()


class TestLayout:
    def test_equal_cells(self):
        facet = FacetWrap("g", ncol=2)
        panels = facet.layout(facet.train([SOURCE]), 410.0, 210.0, spacing=10.0)
        assert [(p.x, p.y) for p in panels] == [(0.0, 0.0), (210.0, 0.0), (0.0, 110.0)]
        assert all(p.width == 200.0 and p.height == 100.0 for p in panels)
        assert [p.index for p in panels] == [0, 1, 2]
        assert panels[2].label == "c"

    def test_canvas_too_small(self):
        facet = FacetWrap("x", ncol=6)
        with pytest.raises(ValueError, match="too small"):
            facet.layout(facet.train([SOURCE]), 40.0, 40.0, spacing=10.0)
