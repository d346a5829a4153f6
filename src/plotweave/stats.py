"""
Statistical transforms applied to evaluated, unscaled layer data.

A stat consumes a layer's `ProcessedData` and returns new data that may add
computed variables (stored under the `stat:` prefix) and positional extents,
and may change the row count. Stats run independently per group and per
facet panel.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, ClassVar, override

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sps

from .aesthetics import (
    GROUPING_AES,
    STAT_PREFIX,
    Aesthetic,
    AestheticMapping,
    after_stat,
)
from .data import is_numeric, normalize_column
from .errors import MissingRequiredAesthetic, NonNumericAesthetic, StatComputationFailed
from .processed import ProcessedData
from .scales import sort_levels

logger = logging.getLogger(__name__)


def _var(name: str) -> str:
    return STAT_PREFIX + name


class Stat(ABC):
    """
    Base statistical transform. Subclasses declare the aesthetics they need,
    the variables they compute, and implement `compute_group`.
    """

    required_aes: ClassVar[tuple[Aesthetic, ...]] = ()
    computed_vars: ClassVar[tuple[str, ...]] = ()
    numeric_aes: ClassVar[tuple[Aesthetic, ...]] = ()

    def default_aes(self) -> AestheticMapping:
        """Mappings applied beneath user mappings, e.g. Y from a computed count."""
        return AestheticMapping()

    def check_required(self, data: ProcessedData):
        missing = [aes.value for aes in self.required_aes if not data.has(aes)]
        if missing:
            raise MissingRequiredAesthetic(type(self).__name__, missing)
        for aes in self.numeric_aes:
            if data.has(aes) and not is_numeric(data[aes]):
                raise NonNumericAesthetic(type(self).__name__, aes.value)

    def drop_missing(self, data: ProcessedData) -> tuple[ProcessedData, int]:
        mask = data.missing_mask(self.required_aes)
        dropped = int(mask.sum())
        if dropped:
            logger.debug("%s dropped %d rows with missing values", type(self).__name__, dropped)
            data = data.filter(~mask)
        return data, dropped

    def setup_params(self, data: ProcessedData) -> dict[str, Any]:
        """Parameters computed once over all groups (e.g. shared bin edges)."""
        return {}

    def compute(self, data: ProcessedData, mapping: AestheticMapping) -> ProcessedData:
        self.check_required(data)
        if data.n_rows == 0:
            return self.empty_result(data)

        params = self.setup_params(data)
        parts = []
        for rows in data.groups():
            group = data.take(rows)
            result = self.compute_group(group, params)
            parts.append(_carry_group_columns(group, result))
        return ProcessedData.concat(parts)

    @abstractmethod
    def compute_group(self, data: ProcessedData, params: dict[str, Any]) -> ProcessedData:
        pass

    def empty_result(self, data: ProcessedData) -> ProcessedData:
        keys = list(self.required_aes) + [_var(v) for v in self.computed_vars]
        return ProcessedData({k: np.zeros(0) for k in keys}, 0)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def _carry_group_columns(group: ProcessedData, result: ProcessedData) -> ProcessedData:
    # Grouping aesthetics are constant within a group, so collapsed rows keep them.
    carried = {}
    for aes in GROUPING_AES:
        if group.has(aes) and not result.has(aes) and group.n_rows > 0:
            values = np.empty(result.n_rows, dtype=group[aes].dtype)
            values[:] = group[aes][0]
            carried[aes] = values
    if not carried:
        return result
    return result.with_columns(carried)


class StatIdentity(Stat):
    """Leaves the data unchanged."""

    @override
    def drop_missing(self, data: ProcessedData) -> tuple[ProcessedData, int]:
        return data, 0

    @override
    def compute(self, data: ProcessedData, mapping: AestheticMapping) -> ProcessedData:
        return data

    @override
    def compute_group(self, data: ProcessedData, params: dict[str, Any]) -> ProcessedData:
        return data


class StatBin(Stat):
    """
    Histogram binning of X. Bin edges are shared across groups so that bars
    from different groups line up.
    """

    required_aes = (Aesthetic.X,)
    numeric_aes = (Aesthetic.X,)
    computed_vars = ("count", "density", "ncount", "width")

    def __init__(
        self,
        bins: int = 30,
        binwidth: float | None = None,
        boundary: float | None = None,
        closed: str = "right",
    ):
        if bins < 1:
            raise ValueError("bins must be positive")
        if binwidth is not None and binwidth <= 0:
            raise ValueError("binwidth must be positive")
        if closed not in ("left", "right"):
            raise ValueError(f"closed must be 'left' or 'right', not {closed!r}")
        self.bins = bins
        self.binwidth = binwidth
        self.boundary = boundary
        self.closed = closed

    @override
    def default_aes(self) -> AestheticMapping:
        return AestheticMapping({Aesthetic.Y: after_stat("count")})

    @override
    def setup_params(self, data: ProcessedData) -> dict[str, Any]:
        x = data[Aesthetic.X].astype(np.float64)
        lo, hi = float(np.min(x)), float(np.max(x))
        return {"edges": self.edges(lo, hi)}

    def edges(self, lo: float, hi: float) -> NDArray[np.float64]:
        if self.binwidth is not None:
            width = self.binwidth
            boundary = self.boundary if self.boundary is not None else width / 2
            start = boundary + math.floor((lo - boundary) / width) * width
            nbins = max(1, math.ceil((hi - start) / width))
            if start + nbins * width < hi:
                nbins += 1
            return start + width * np.arange(nbins + 1, dtype=np.float64)

        if lo == hi:
            lo, hi = lo - 0.5, hi + 0.5
        return np.histogram_bin_edges(np.array([lo, hi]), bins=self.bins, range=(lo, hi))

    def _counts(self, x: NDArray[np.float64], edges: NDArray[np.float64]) -> NDArray[np.float64]:
        if self.closed == "left":
            counts, _ = np.histogram(x, bins=edges)
            return counts.astype(np.float64)

        # right-closed bins (a, b], with the first bin also including its left edge
        nbins = len(edges) - 1
        idx = np.searchsorted(edges, x, side="left") - 1
        idx = np.clip(idx, 0, nbins - 1)
        inside = (x >= edges[0]) & (x <= edges[-1])
        return np.bincount(idx[inside], minlength=nbins).astype(np.float64)

    @override
    def compute_group(self, data: ProcessedData, params: dict[str, Any]) -> ProcessedData:
        edges = params["edges"]
        x = data[Aesthetic.X].astype(np.float64)
        counts = self._counts(x, edges)
        widths = np.diff(edges)
        total = counts.sum()
        density = counts / (total * widths) if total > 0 else np.zeros_like(counts)
        ncount = counts / counts.max() if counts.max() > 0 else np.zeros_like(counts)

        return ProcessedData(
            {
                Aesthetic.X: (edges[:-1] + edges[1:]) / 2,
                "xmin": edges[:-1].copy(),
                "xmax": edges[1:].copy(),
                _var("count"): counts,
                _var("density"): density,
                _var("ncount"): ncount,
                _var("width"): widths,
            }
        )


class StatCount(Stat):
    """Number of observations at each distinct X."""

    required_aes = (Aesthetic.X,)
    computed_vars = ("count", "prop")

    @override
    def default_aes(self) -> AestheticMapping:
        return AestheticMapping({Aesthetic.Y: after_stat("count")})

    @override
    def compute_group(self, data: ProcessedData, params: dict[str, Any]) -> ProcessedData:
        x = data[Aesthetic.X]
        counts: dict[Any, int] = {}
        for value in x:
            key = value.item() if isinstance(value, np.generic) else value
            counts[key] = counts.get(key, 0) + 1

        levels = sort_levels(counts.keys())
        count = np.array([counts[level] for level in levels], dtype=np.float64)
        return ProcessedData(
            {
                Aesthetic.X: normalize_column(levels),
                _var("count"): count,
                _var("prop"): count / count.sum(),
            }
        )


def _tricube(u: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.clip(1 - np.abs(u) ** 3, 0.0, None) ** 3


class StatSmooth(Stat):
    """
    Fitted curve with an optional confidence band: ordinary least squares
    (`method="lm"`) or local linear regression with tricube weights
    (`method="loess"`).
    """

    required_aes = (Aesthetic.X, Aesthetic.Y)
    numeric_aes = (Aesthetic.X, Aesthetic.Y)
    computed_vars = ("se",)

    def __init__(
        self,
        method: str = "lm",
        n: int = 80,
        span: float = 0.75,
        se: bool = True,
        level: float = 0.95,
    ):
        if method not in ("lm", "loess"):
            raise ValueError(f"Unknown smoothing method: {method}")
        if n < 2:
            raise ValueError("n must be at least 2")
        if not 0 < level < 1:
            raise ValueError("level must be in (0, 1)")
        self.method = method
        self.n = n
        self.span = span
        self.se = se
        self.level = level

    @override
    def compute_group(self, data: ProcessedData, params: dict[str, Any]) -> ProcessedData:
        x = data[Aesthetic.X].astype(np.float64)
        y = data[Aesthetic.Y].astype(np.float64)
        ndistinct = len(np.unique(x))
        needed = 2 if self.method == "lm" else 3
        if ndistinct < needed:
            raise StatComputationFailed(
                f"{self.method} smoothing needs at least {needed} distinct x values, got {ndistinct}"
            )

        grid = np.linspace(x.min(), x.max(), self.n)
        if self.method == "lm":
            fit, se, df = self._lm(x, y, grid)
        else:
            fit, se, df = self._loess(x, y, grid)

        columns: dict[Any, Any] = {
            Aesthetic.X: grid,
            Aesthetic.Y: fit,
            _var("se"): se,
        }
        if self.se:
            if df > 0:
                tcrit = sps.t.ppf((1 + self.level) / 2, df)
                columns["ymin"] = fit - tcrit * se
                columns["ymax"] = fit + tcrit * se
            else:
                columns["ymin"] = np.full(len(grid), np.nan)
                columns["ymax"] = np.full(len(grid), np.nan)
        return ProcessedData(columns)

    def _lm(self, x, y, grid) -> tuple[NDArray[np.float64], NDArray[np.float64], float]:
        n = len(x)
        slope, intercept = np.polyfit(x, y, 1)
        fit = intercept + slope * grid
        df = n - 2
        if df <= 0:
            return fit, np.full(len(grid), np.nan), 0.0
        resid = y - (intercept + slope * x)
        sigma = np.sqrt((resid**2).sum() / df)
        xbar = x.mean()
        sxx = ((x - xbar) ** 2).sum()
        se = sigma * np.sqrt(1 / n + (grid - xbar) ** 2 / sxx)
        return fit, se, float(df)

    def _smoother_rows(self, x: NDArray[np.float64], at: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Rows of the linear smoother matrix: fitted(at[j]) = rows[j] @ y.
        """
        n = len(x)
        q = min(n, max(3, int(math.ceil(self.span * n))))
        rows = np.empty((len(at), n))
        for j, x0 in enumerate(at):
            d = np.abs(x - x0)
            h = np.sort(d)[q - 1]
            if self.span > 1:
                h *= self.span
            if h == 0:
                h = 1.0
            w = _tricube(d / h)
            basis = np.column_stack([np.ones(n), x - x0])
            xtw = basis.T * w
            rows[j] = np.linalg.pinv(xtw @ basis)[0] @ xtw
        return rows

    def _loess(self, x, y, grid) -> tuple[NDArray[np.float64], NDArray[np.float64], float]:
        rows = self._smoother_rows(x, grid)
        fit = rows @ y
        hat = self._smoother_rows(x, x)
        resid = y - hat @ y
        df = len(x) - float(np.trace(hat))
        if df <= 0:
            return fit, np.full(len(grid), np.nan), 0.0
        sigma = np.sqrt((resid**2).sum() / df)
        se = sigma * np.sqrt((rows**2).sum(axis=1))
        return fit, se, df


class StatBoxplot(Stat):
    """
    Five number summary of Y at each X: quartiles, median, whiskers reaching
    the most extreme points within `coef` interquartile ranges, and outliers.
    """

    required_aes = (Aesthetic.X, Aesthetic.Y)
    numeric_aes = (Aesthetic.Y,)
    computed_vars = ("n", "outliers", "width")

    def __init__(self, coef: float = 1.5, width: float = 0.75):
        self.coef = coef
        self.width = width

    @override
    def compute_group(self, data: ProcessedData, params: dict[str, Any]) -> ProcessedData:
        x = data[Aesthetic.X]
        y = data[Aesthetic.Y].astype(np.float64)

        by_x: dict[Any, list[int]] = {}
        for i, value in enumerate(x):
            key = value.item() if isinstance(value, np.generic) else value
            by_x.setdefault(key, []).append(i)

        levels = sort_levels(by_x.keys())
        n = len(levels)
        lower, middle, upper = np.empty(n), np.empty(n), np.empty(n)
        ymin, ymax, counts = np.empty(n), np.empty(n), np.empty(n)
        outliers = np.empty(n, dtype=object)

        for j, level in enumerate(levels):
            values = y[by_x[level]]
            q1, q2, q3 = np.percentile(values, [25, 50, 75])
            iqr = q3 - q1
            inside = (values >= q1 - self.coef * iqr) & (values <= q3 + self.coef * iqr)
            lower[j], middle[j], upper[j] = q1, q2, q3
            ymin[j] = values[inside].min()
            ymax[j] = values[inside].max()
            counts[j] = len(values)
            outliers[j] = np.sort(values[~inside])

        return ProcessedData(
            {
                Aesthetic.X: normalize_column(levels),
                Aesthetic.Y: middle.copy(),
                "lower": lower,
                "middle": middle,
                "upper": upper,
                "ymin": ymin,
                "ymax": ymax,
                _var("n"): counts,
                _var("outliers"): outliers,
                _var("width"): np.full(n, self.width),
            }
        )


class StatDensity(Stat):
    """
    Gaussian kernel density estimate of X, evaluated on `n` points spanning
    the layer's X range.
    """

    required_aes = (Aesthetic.X,)
    numeric_aes = (Aesthetic.X,)
    computed_vars = ("density", "count", "scaled")

    def __init__(self, bw_method: str | float | None = None, n: int = 512):
        self.bw_method = bw_method
        self.n = n

    @override
    def default_aes(self) -> AestheticMapping:
        return AestheticMapping({Aesthetic.Y: after_stat("density")})

    @override
    def setup_params(self, data: ProcessedData) -> dict[str, Any]:
        x = data[Aesthetic.X].astype(np.float64)
        return {"grid": np.linspace(x.min(), x.max(), self.n)}

    @override
    def compute_group(self, data: ProcessedData, params: dict[str, Any]) -> ProcessedData:
        x = data[Aesthetic.X].astype(np.float64)
        if len(x) < 2:
            raise StatComputationFailed(
                f"Density estimation needs at least 2 points, got {len(x)}"
            )
        try:
            kde = sps.gaussian_kde(x, bw_method=self.bw_method)
        except np.linalg.LinAlgError as e:
            raise StatComputationFailed(f"Density estimation failed: {e}") from e

        grid = params["grid"]
        density = kde(grid)
        peak = density.max()
        return ProcessedData(
            {
                Aesthetic.X: grid.copy(),
                _var("density"): density,
                _var("count"): density * len(x),
                _var("scaled"): density / peak if peak > 0 else density,
            }
        )
