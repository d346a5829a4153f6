from __future__ import annotations

from typing import Any, ClassVar, override

import numpy as np
from numpy.typing import NDArray

from .aesthetics import Aesthetic
from .data import missing_mask
from .processed import ProcessedData


def resolution(values: NDArray[Any], fallback: float = 1.0) -> float:
    """
    Smallest non-zero gap between distinct finite values, used as the natural
    width of bars and dodged groups.
    """
    if values.dtype.kind != "f":
        return fallback
    finite = np.unique(values[np.isfinite(values)])
    if len(finite) < 2:
        return fallback
    gaps = np.diff(finite)
    gaps = gaps[gaps > 0]
    return float(gaps.min()) if len(gaps) else fallback


def _group_index(data: ProcessedData) -> tuple[NDArray[np.intp], int]:
    groups = data.groups()
    index = np.zeros(data.n_rows, dtype=np.intp)
    for i, rows in enumerate(groups):
        index[rows] = i
    return index, len(groups)


class Position:
    """
    Position adjustment policy. Adjustments in data space run before scale
    training so that the scales see the adjusted extents; the others run on
    scaled values just before drawing.
    """

    data_space: ClassVar[bool] = False

    def adjust(self, data: ProcessedData) -> ProcessedData:
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class PositionIdentity(Position):
    pass


class PositionStack(Position):
    """
    Stack Y values that share an X position, in group order. Positive and
    negative values stack separately away from zero.
    """

    data_space = True

    @override
    def adjust(self, data: ProcessedData) -> ProcessedData:
        if not (data.has(Aesthetic.X) and data.has(Aesthetic.Y)) or data.n_rows == 0:
            return data

        x = data[Aesthetic.X]
        y = data[Aesthetic.Y].astype(np.float64)
        ymin = np.full(data.n_rows, np.nan)
        ymax = np.full(data.n_rows, np.nan)
        above: dict[Any, float] = {}
        below: dict[Any, float] = {}
        xmissing = missing_mask(x)

        for rows in data.groups():
            for i in rows:
                if xmissing[i] or np.isnan(y[i]):
                    continue
                key = x[i].item() if isinstance(x[i], np.generic) else x[i]
                stacks = above if y[i] >= 0 else below
                base = stacks.get(key, 0.0)
                top = base + y[i]
                stacks[key] = top
                ymin[i], ymax[i] = min(base, top), max(base, top)

        return data.with_columns(
            {Aesthetic.Y: np.where(y >= 0, ymax, ymin), "ymin": ymin, "ymax": ymax}
        )


class PositionDodge(Position):
    """
    Place groups sharing an X position side by side within the slot width.
    """

    def __init__(self, width: float = 0.9):
        self.width = width

    @override
    def adjust(self, data: ProcessedData) -> ProcessedData:
        if not data.has(Aesthetic.X) or data.n_rows == 0:
            return data

        index, ngroups = _group_index(data)
        if ngroups < 2:
            return data

        x = data[Aesthetic.X].astype(np.float64)
        if data.has("xmin") and data.has("xmax"):
            xmin = data["xmin"].astype(np.float64)
            slot = data["xmax"].astype(np.float64) - xmin
        else:
            slot = np.full(len(x), self.width * resolution(x))
            xmin = x - slot / 2

        step = slot / ngroups
        new_xmin = xmin + index * step
        return data.with_columns(
            {
                Aesthetic.X: new_xmin + step / 2,
                "xmin": new_xmin,
                "xmax": new_xmin + step,
            }
        )


class PositionJitter(Position):
    """
    Random displacement as a fraction of each axis' resolution. Seeded so
    repeated builds give identical output.
    """

    def __init__(self, width: float = 0.4, height: float = 0.0, seed: int = 0):
        self.width = width
        self.height = height
        self.seed = seed

    @override
    def adjust(self, data: ProcessedData) -> ProcessedData:
        rng = np.random.default_rng(self.seed)
        columns = {}
        for aes, amount in ((Aesthetic.X, self.width), (Aesthetic.Y, self.height)):
            if not data.has(aes) or amount == 0:
                continue
            values = data[aes].astype(np.float64)
            offset = rng.uniform(-1.0, 1.0, len(values)) * amount * resolution(values)
            columns[aes] = values + offset
        if not columns:
            return data
        return data.with_columns(columns)
