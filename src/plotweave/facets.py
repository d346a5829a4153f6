"""
Faceting: partitioning data into panels laid out on an equal grid.

Panel keys come from the sorted union of facet variable levels across every
layer's data. A layer whose data lacks a facet variable is repeated in every
panel. Each panel's data is a row subset of the layer's source.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, override

import numpy as np

from .coordinates import Panel
from .data import DataSource, SubsetSource, missing_mask
from .scales import sort_levels

logger = logging.getLogger(__name__)

FACET_SCALES = ("fixed", "free_x", "free_y", "free")

PanelKey = tuple[Any, ...]


@dataclass(frozen=True)
class PanelSpec:
    key: PanelKey
    row: int
    col: int
    label: str


class Facet(ABC):
    def __init__(self, scales: str = "fixed"):
        if scales not in FACET_SCALES:
            raise ValueError(f"scales must be one of {', '.join(FACET_SCALES)}, not {scales!r}")
        self.scales = scales

    @property
    def free_x(self) -> bool:
        return self.scales in ("free_x", "free")

    @property
    def free_y(self) -> bool:
        return self.scales in ("free_y", "free")

    @abstractmethod
    def variables(self) -> tuple[str, ...]:
        pass

    @abstractmethod
    def train(self, sources: Sequence[DataSource]) -> list[PanelSpec]:
        """Determine the panels from the data of every layer."""
        pass

    def subset(self, source: DataSource, spec: PanelSpec) -> DataSource:
        names = set(source.column_names())
        variables = self.variables()
        if not variables or not all(v in names for v in variables):
            return source

        keep = np.ones(source.row_count(), dtype=bool)
        for var, level in zip(variables, spec.key):
            column = source.column(var)
            present = ~missing_mask(column)
            keep &= present & np.array(
                [_key(value) == level for value in column], dtype=bool
            )
        return SubsetSource(source, np.flatnonzero(keep))

    def layout(
        self, panels: Sequence[PanelSpec], width: float, height: float, spacing: float
    ) -> list[Panel]:
        """Split the canvas into equal cells, one per panel grid position."""
        nrow = max((p.row for p in panels), default=0) + 1
        ncol = max((p.col for p in panels), default=0) + 1
        cell_width = (width - (ncol - 1) * spacing) / ncol
        cell_height = (height - (nrow - 1) * spacing) / nrow
        if cell_width <= 0 or cell_height <= 0:
            raise ValueError(
                f"Canvas {width}x{height} is too small for {nrow}x{ncol} panels"
            )
        return [
            Panel(
                x=p.col * (cell_width + spacing),
                y=p.row * (cell_height + spacing),
                width=cell_width,
                height=cell_height,
                index=i,
                row=p.row,
                col=p.col,
                label=p.label,
            )
            for i, p in enumerate(panels)
        ]

    def _levels(self, sources: Sequence[DataSource], var: str) -> list[Any]:
        levels: set[Any] = set()
        found = False
        for source in sources:
            if var not in source.column_names():
                continue
            found = True
            column = source.column(var)
            missing = missing_mask(column)
            if missing.any():
                logger.warning(
                    "Dropping %d rows with missing facet variable '%s'", int(missing.sum()), var
                )
            levels.update(_key(v) for v, m in zip(column, missing) if not m)
        if not found:
            raise ValueError(f"Facet variable '{var}' is not a column of any layer's data")
        return sort_levels(levels)


def _key(value: Any) -> Any:
    return value.item() if isinstance(value, np.generic) else value


class FacetNull(Facet):
    """A single panel holding all data."""

    @override
    def variables(self) -> tuple[str, ...]:
        return ()

    @override
    def train(self, sources: Sequence[DataSource]) -> list[PanelSpec]:
        return [PanelSpec((), 0, 0, "")]


class FacetWrap(Facet):
    """
    One panel per level of `by`, wrapped into rows of `ncol` panels.
    """

    def __init__(self, by: str, ncol: int | None = None, scales: str = "fixed"):
        super().__init__(scales)
        if ncol is not None and ncol < 1:
            raise ValueError("ncol must be positive")
        self.by = by
        self.ncol = ncol

    @override
    def variables(self) -> tuple[str, ...]:
        return (self.by,)

    @override
    def train(self, sources: Sequence[DataSource]) -> list[PanelSpec]:
        levels = self._levels(sources, self.by)
        ncol = self.ncol or max(1, math.ceil(math.sqrt(len(levels))))
        return [
            PanelSpec((level,), i // ncol, i % ncol, str(level))
            for i, level in enumerate(levels)
        ]


class FacetGrid(Facet):
    """
    Panels on a grid with one row per level of `rows` and one column per level
    of `cols`.
    """

    def __init__(self, rows: str | None = None, cols: str | None = None, scales: str = "fixed"):
        super().__init__(scales)
        if rows is None and cols is None:
            raise ValueError("FacetGrid needs at least one of rows or cols")
        self.rows = rows
        self.cols = cols

    @override
    def variables(self) -> tuple[str, ...]:
        return tuple(v for v in (self.rows, self.cols) if v is not None)

    @override
    def train(self, sources: Sequence[DataSource]) -> list[PanelSpec]:
        row_levels = self._levels(sources, self.rows) if self.rows is not None else [None]
        col_levels = self._levels(sources, self.cols) if self.cols is not None else [None]

        panels = []
        for i, row_level in enumerate(row_levels):
            for j, col_level in enumerate(col_levels):
                key = tuple(
                    level
                    for var, level in ((self.rows, row_level), (self.cols, col_level))
                    if var is not None
                )
                label = " / ".join(str(level) for level in key)
                panels.append(PanelSpec(key, i, j, label))
        return panels
