"""
Aesthetic mapping evaluation.

Evaluation happens in passes around the stat:

  1. `evaluate_aesthetics` resolves column-mapped and computed specs against
     the data source, producing raw (unscaled) values.
  2. `evaluate_after_stat` resolves specs that reference stat-computed
     variables once the stat has run.
  3. `apply_fixed` broadcasts fixed literals to the final row count, which the
     stat may have changed.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Any

import numpy as np
from numpy.typing import NDArray

from .aesthetics import (
    STAT_PREFIX,
    Aesthetic,
    AestheticMapping,
    Computed,
    Fixed,
    Mapped,
)
from .data import DataSource, normalize_column
from .errors import ColumnNotFound, NoPositionalAesthetic, RowCountMismatch
from .processed import ProcessedData


def _check_lengths(columns: dict[Aesthetic, NDArray[Any]], what: str) -> int | None:
    lengths = {aes: len(values) for aes, values in columns.items()}
    if not lengths:
        return None
    nrows = max(lengths.values())
    for aes, n in lengths.items():
        if n == 1 and nrows != 1:
            columns[aes] = np.repeat(columns[aes], nrows)
        elif n != nrows:
            raise RowCountMismatch(
                f"Aesthetic '{aes.value}' resolved to {n} {what}, expected {nrows}"
            )
    return nrows


def evaluate_aesthetics(
    source: DataSource,
    mapping: AestheticMapping,
    required: Collection[Aesthetic] = (),
) -> ProcessedData:
    """
    Resolve mapped and computed aesthetics against `source`.

    Fixed specs and specs referencing stat variables are left for later passes.
    The observation count is that of the largest resolved column; when no
    column determines it and a positional aesthetic is required, evaluation
    fails with `NoPositionalAesthetic`.
    """

    columns: dict[Aesthetic, NDArray[Any]] = {}
    for aes, spec in mapping.items():
        match spec:
            case Mapped() if spec.is_stat:
                continue
            case Mapped(name=name):
                columns[aes] = source.column(name)
            case Computed(fn=fn, after_stat=False):
                columns[aes] = normalize_column(_as_sequence(fn(source.column)))
            case _:
                continue

    nrows = _check_lengths(columns, "observations")
    if nrows is None:
        if any(aes.is_positional() for aes in required):
            raise NoPositionalAesthetic(
                "No mapped column determines the number of observations, "
                "but the geom requires positional aesthetics"
            )
        nrows = max(source.row_count(), 1)

    return ProcessedData(columns, nrows)


def stat_lookup(data: ProcessedData):
    """
    Column lookup over stat output: accepts stat variable names (with or
    without the `stat:` prefix), aesthetic names and computed column names.
    """

    def lookup(name: str) -> NDArray[Any]:
        candidates: list[Any] = []
        if name.startswith(STAT_PREFIX):
            candidates.append(name)
        else:
            candidates.append(STAT_PREFIX + name)
            candidates.append(name)
            try:
                candidates.append(Aesthetic.parse(name))
            except ValueError:
                pass
        for key in candidates:
            if data.has(key):
                return data[key]
        raise ColumnNotFound(name, [str(k) for k in data.keys() if isinstance(k, str)])

    return lookup


def evaluate_after_stat(
    data: ProcessedData,
    mapping: AestheticMapping,
    computed_vars: Collection[str],
) -> ProcessedData:
    """
    Resolve specs that reference stat-computed variables. A reference to a
    variable the stat does not declare fails with `ColumnNotFound`.
    """

    columns: dict[Aesthetic, NDArray[Any]] = {}
    lookup = stat_lookup(data)
    for aes, spec in mapping.items():
        match spec:
            case Mapped() if spec.is_stat:
                var = spec.stat_var
                if var not in computed_vars or not data.has(spec.name):
                    raise ColumnNotFound(
                        spec.name, [STAT_PREFIX + v for v in sorted(computed_vars)]
                    )
                columns[aes] = data[spec.name]
            case Computed(fn=fn, after_stat=True):
                values = normalize_column(_as_sequence(fn(lookup)))
                if len(values) == 1 and data.n_rows != 1:
                    values = np.repeat(values, data.n_rows)
                if len(values) != data.n_rows:
                    raise RowCountMismatch(
                        f"Aesthetic '{aes.value}' computed {len(values)} values "
                        f"after the stat, expected {data.n_rows}"
                    )
                columns[aes] = values
            case _:
                continue

    if not columns:
        return data
    return data.with_columns(columns)


def apply_fixed(data: ProcessedData, mapping: AestheticMapping) -> ProcessedData:
    """
    Broadcast fixed literals across every observation.
    """

    columns: dict[Aesthetic, NDArray[Any]] = {}
    for aes, spec in mapping.of_kind(Fixed).items():
        columns[aes] = broadcast(spec.value, data.n_rows)

    if not columns:
        return data
    return data.with_columns(columns)


def broadcast(value: Any, n: int) -> NDArray[Any]:
    if isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(
        value, bool
    ):
        return np.full(n, float(value), dtype=np.float64)
    out = np.empty(n, dtype=object)
    for i in range(n):
        out[i] = value
    return out


def _as_sequence(values: Any) -> Any:
    if isinstance(values, np.ndarray):
        return values if values.ndim > 0 else values.reshape(1)
    if isinstance(values, (str, bytes)) or not hasattr(values, "__iter__"):
        return [values]
    return values
