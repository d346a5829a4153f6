"""
Data sources: the named-column lookup capability consumed by the pipeline.

The pipeline never inspects a concrete backing type. Anything providing
`column_names()`, `column(name)` and `row_count()` will do; `as_data_source`
adapts common inputs (mappings of columns, flat arrays, tabular frames).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from functools import singledispatch
from numbers import Number
from typing import Any, Protocol, runtime_checkable, override

import numpy as np
from numpy.typing import NDArray

from .errors import ColumnNotFound, RowCountMismatch


@runtime_checkable
class DataSource(Protocol):
    def column_names(self) -> Sequence[str]: ...

    def column(self, name: str) -> NDArray[Any]: ...

    def row_count(self) -> int: ...


def is_missing_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and np.isnan(value):
        return True
    if isinstance(value, np.floating) and np.isnan(value):
        return True
    # pandas.NA, polars nulls and friends refuse to be truthy
    if type(value).__name__ in ("NAType", "NaTType"):
        return True
    return False


def normalize_column(values: Any) -> NDArray[Any]:
    """
    Convert a column into the pipeline's representation: a float64 array with
    NaN as the missing marker when every present value is numeric, otherwise an
    object array with None as the missing marker.
    """

    if isinstance(values, np.ndarray):
        if values.dtype.kind in "iuf":
            return values.astype(np.float64)
        values = list(values)
    elif isinstance(values, (str, bytes)):
        values = [values]
    else:
        values = list(values)

    all_numeric = True
    for value in values:
        if is_missing_value(value):
            continue
        if isinstance(value, bool) or not isinstance(value, Number):
            all_numeric = False
            break

    if all_numeric:
        return np.array(
            [np.nan if is_missing_value(v) else float(v) for v in values],
            dtype=np.float64,
        )

    out = np.empty(len(values), dtype=object)
    for i, value in enumerate(values):
        out[i] = None if is_missing_value(value) else value
    return out


def missing_mask(values: NDArray[Any]) -> NDArray[np.bool_]:
    """Per-row missing markers for a normalized column."""
    if values.dtype.kind == "f":
        if values.ndim == 2:
            return np.isnan(values).any(axis=1)
        return np.isnan(values)
    if values.dtype.kind in "biu":
        return np.zeros(len(values), dtype=bool)
    return np.fromiter((is_missing_value(v) for v in values), dtype=bool, count=len(values))


def is_numeric(values: NDArray[Any]) -> bool:
    return values.dtype.kind in "biuf"


class ColumnSource:
    """
    In-memory table: a mapping of column name to a sequence of values.
    """

    def __init__(self, columns: Mapping[str, Any]):
        self._columns: dict[str, NDArray[Any]] = {}
        nrows: int | None = None
        for name, values in columns.items():
            column = normalize_column(values)
            if nrows is None:
                nrows = len(column)
            elif len(column) != nrows:
                raise RowCountMismatch(
                    f"Column '{name}' has {len(column)} rows, expected {nrows}"
                )
            column.setflags(write=False)
            self._columns[str(name)] = column
        self._nrows = nrows if nrows is not None else 0

    def column_names(self) -> list[str]:
        return list(self._columns.keys())

    def column(self, name: str) -> NDArray[Any]:
        try:
            return self._columns[name]
        except KeyError:
            raise ColumnNotFound(name, self.column_names()) from None

    def row_count(self) -> int:
        return self._nrows

    def __repr__(self) -> str:
        return f"ColumnSource({self.column_names()}, rows={self._nrows})"


class ArraySource(ColumnSource):
    """
    A single flat numeric array exposed as one named column.
    """

    def __init__(self, values: Any, name: str = "value"):
        super().__init__({name: values})
        self.name = name

    @override
    def __repr__(self) -> str:
        return f"ArraySource({self.name!r}, rows={self.row_count()})"


class FrameSource:
    """
    Adapter for tabular frames exposing `columns` and per-column `to_numpy()`
    (pandas and polars frames both qualify). Columns are normalized lazily and
    cached.
    """

    def __init__(self, frame: Any):
        self._frame = frame
        self._names = [str(c) for c in frame.columns]
        self._cache: dict[str, NDArray[Any]] = {}

    def column_names(self) -> list[str]:
        return list(self._names)

    def column(self, name: str) -> NDArray[Any]:
        if name not in self._names:
            raise ColumnNotFound(name, self._names)
        if name not in self._cache:
            series = self._frame[name]
            raw = series.to_numpy() if hasattr(series, "to_numpy") else list(series)
            column = normalize_column(raw)
            column.setflags(write=False)
            self._cache[name] = column
        return self._cache[name]

    def row_count(self) -> int:
        if hasattr(self._frame, "height"):
            return int(self._frame.height)
        return len(self._frame)


class SubsetSource:
    """
    A row subset of another data source, used to partition data into facet
    panels without copying the underlying source.
    """

    def __init__(self, source: DataSource, indices: NDArray[np.intp]):
        self._source = source
        self._indices = np.asarray(indices, dtype=np.intp)

    def column_names(self) -> Sequence[str]:
        return self._source.column_names()

    def column(self, name: str) -> NDArray[Any]:
        return self._source.column(name)[self._indices]

    def row_count(self) -> int:
        return len(self._indices)


@singledispatch
def as_data_source(value) -> DataSource:
    if isinstance(value, DataSource):
        return value
    if hasattr(value, "columns") and hasattr(value, "__getitem__"):
        return FrameSource(value)
    raise TypeError(f"Type {type(value)} can't be used as a data source.")


@as_data_source.register(dict)
def _(value) -> DataSource:
    return ColumnSource(value)


@as_data_source.register(list)
def _(value) -> DataSource:
    return ArraySource(value)


@as_data_source.register(np.ndarray)
def _(value) -> DataSource:
    if value.ndim != 1:
        raise ValueError("Only flat arrays can be used directly as a data source.")
    return ArraySource(value)
