from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, TypeAlias

import numpy as np
from numpy.typing import NDArray

from .aesthetics import GROUPING_AES, Aesthetic
from .data import is_missing_value, is_numeric, missing_mask
from .errors import RowCountMismatch

ColumnKey: TypeAlias = Aesthetic | str

# Integer group index assigned in data space, so grouping survives scaling.
GROUP_ID = "group_id"


class ProcessedData:
    """
    The pipeline's record-of-arrays. Each aesthetic (and each computed column,
    such as `stat:count` or `xmin`) holds one array, and row i across all
    arrays describes one visual mark.

    All arrays share one length. Arrays may carry missing markers (NaN or
    None), which propagate through scaling and are dropped at draw time.
    Instances are never modified in place; every operation returns a new one.
    """

    __slots__ = ("_columns", "_nrows")

    def __init__(
        self, columns: Mapping[ColumnKey, Any] | None = None, nrows: int | None = None
    ):
        self._columns: dict[ColumnKey, NDArray[Any]] = {}
        for key, values in (columns or {}).items():
            array = values if isinstance(values, np.ndarray) else _as_array(values)
            if nrows is None:
                nrows = len(array)
            elif len(array) != nrows:
                name = key.value if isinstance(key, Aesthetic) else key
                raise RowCountMismatch(
                    f"Column '{name}' has {len(array)} rows, expected {nrows}"
                )
            self._columns[key] = array
        self._nrows = nrows if nrows is not None else 0

    @staticmethod
    def empty() -> ProcessedData:
        return ProcessedData({}, 0)

    @property
    def n_rows(self) -> int:
        return self._nrows

    def __len__(self) -> int:
        return self._nrows

    def __contains__(self, key: object) -> bool:
        return key in self._columns

    def __repr__(self) -> str:
        names = [k.value if isinstance(k, Aesthetic) else k for k in self._columns]
        return f"ProcessedData({names}, rows={self._nrows})"

    def keys(self) -> list[ColumnKey]:
        return list(self._columns.keys())

    def aesthetics(self) -> list[Aesthetic]:
        return [k for k in self._columns if isinstance(k, Aesthetic)]

    def has(self, key: ColumnKey) -> bool:
        return key in self._columns

    def get(self, key: ColumnKey, default: Any = None) -> Any:
        return self._columns.get(key, default)

    def __getitem__(self, key: ColumnKey) -> NDArray[Any]:
        return self._columns[key]

    def items(self):
        return self._columns.items()

    def with_columns(self, columns: Mapping[ColumnKey, Any]) -> ProcessedData:
        merged: dict[ColumnKey, Any] = dict(self._columns)
        merged.update(columns)
        nrows = self._nrows if self._columns or not columns else None
        return ProcessedData(merged, nrows)

    def without(self, *keys: ColumnKey) -> ProcessedData:
        return ProcessedData(
            {k: v for k, v in self._columns.items() if k not in keys}, self._nrows
        )

    def take(self, indices: Sequence[int] | NDArray[np.intp]) -> ProcessedData:
        idx = np.asarray(indices, dtype=np.intp)
        return ProcessedData({k: v[idx] for k, v in self._columns.items()}, len(idx))

    def filter(self, mask: NDArray[np.bool_]) -> ProcessedData:
        return self.take(np.flatnonzero(mask))

    def missing_mask(self, keys: Iterable[ColumnKey] | None = None) -> NDArray[np.bool_]:
        """
        Rows that carry a missing marker in any of `keys` (default: all columns).
        """
        mask = np.zeros(self._nrows, dtype=bool)
        for key in self._columns if keys is None else keys:
            if key in self._columns:
                mask |= missing_mask(self._columns[key])
        return mask

    def grouping_keys(self) -> list[Aesthetic]:
        """
        Aesthetics that split rows into groups: GROUP whatever its type, and
        the other grouping aesthetics when they hold discrete values.
        """
        return [
            aes
            for aes in GROUPING_AES
            if aes in self._columns
            and (aes is Aesthetic.GROUP or not is_numeric(self._columns[aes]))
            and self._columns[aes].ndim == 1
        ]

    def groups(self) -> list[NDArray[np.intp]]:
        """
        Row indices of each group, groups in order of first appearance and rows
        in input order within a group.
        """
        if GROUP_ID in self._columns:
            ids = self._columns[GROUP_ID]
            return [np.flatnonzero(ids == g) for g in dict.fromkeys(ids.tolist())]

        keys = self.grouping_keys()
        if not keys:
            return [np.arange(self._nrows, dtype=np.intp)]
        groups: dict[tuple[Any, ...], list[int]] = {}
        columns = [self._columns[aes] for aes in keys]
        for i in range(self._nrows):
            key = tuple(
                None if is_missing_value(column[i]) else column[i] for column in columns
            )
            groups.setdefault(key, []).append(i)
        return [np.asarray(rows, dtype=np.intp) for rows in groups.values()]

    def with_group_ids(self) -> ProcessedData:
        ids = np.zeros(self._nrows, dtype=np.float64)
        for g, rows in enumerate(self.groups()):
            ids[rows] = g
        return self.with_columns({GROUP_ID: ids})

    @staticmethod
    def concat(parts: Sequence[ProcessedData]) -> ProcessedData:
        """
        Row-wise concatenation. Every part must carry the same columns.
        """
        parts = [p for p in parts if p.n_rows > 0 or p.keys()]
        if not parts:
            return ProcessedData.empty()
        keys = parts[0].keys()
        for part in parts[1:]:
            if set(part.keys()) != set(keys):
                raise ValueError("Cannot concatenate data with differing columns")
        columns = {}
        for key in keys:
            arrays = [p[key] for p in parts]
            if any(a.dtype == object for a in arrays):
                arrays = [a.astype(object) for a in arrays]
            columns[key] = np.concatenate(arrays, axis=0)
        return ProcessedData(columns, sum(p.n_rows for p in parts))


def _as_array(values: Any) -> NDArray[Any]:
    if isinstance(values, np.ndarray):
        return values
    values = list(values)
    try:
        array = np.asarray(values, dtype=np.float64)
        if array.ndim == 1:
            return array
    except (TypeError, ValueError):
        pass
    out = np.empty(len(values), dtype=object)
    for i, v in enumerate(values):
        out[i] = v
    return out
