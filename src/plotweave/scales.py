from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from numbers import Number
from types import MappingProxyType
from typing import Any, ClassVar, NamedTuple, override

import numpy as np
from cmap import Colormap
from numpy.typing import NDArray

from .aesthetics import Aesthetic
from .colors import Colors, color
from .config import ChooseTicksParams, Config, ConfigKey
from .data import is_numeric, missing_mask, normalize_column
from .errors import ScaleFrozen, UntrainedScale

logger = logging.getLogger(__name__)


# ---- Transforms -----------------------------------------------------------------


@dataclass(frozen=True)
class Transform:
    """
    A bijection applied to continuous data before scaling. Scales train and
    rescale in transformed space.
    """

    name: str
    forward: Callable[[NDArray[np.float64]], NDArray[np.float64]]
    inverse: Callable[[NDArray[np.float64]], NDArray[np.float64]]


def _log10(x: NDArray[np.float64]) -> NDArray[np.float64]:
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.log10(x)
    out[~np.isfinite(out)] = np.nan
    return out


def _sqrt(x: NDArray[np.float64]) -> NDArray[np.float64]:
    with np.errstate(invalid="ignore"):
        return np.sqrt(x)


TRANSFORMS: dict[str, Transform] = {
    "identity": Transform("identity", lambda x: x, lambda x: x),
    "log10": Transform("log10", _log10, lambda x: np.power(10.0, x)),
    "sqrt": Transform("sqrt", _sqrt, lambda x: np.square(x)),
    "reverse": Transform("reverse", lambda x: -x, lambda x: -x),
}


def _transform(trans: str | Transform) -> Transform:
    if isinstance(trans, Transform):
        return trans
    try:
        return TRANSFORMS[trans]
    except KeyError:
        raise ValueError(f"Unknown scale transform: {trans}") from None


# ---- Domains ----------------------------------------------------------------------


@dataclass(frozen=True)
class ContinuousDomain:
    """
    Observed value range. Merging is commutative and idempotent, so training
    order never affects the result.
    """

    lo: float | None = None
    hi: float | None = None

    def is_empty(self) -> bool:
        return self.lo is None

    def merge(self, other: ContinuousDomain) -> ContinuousDomain:
        if other.is_empty():
            return self
        if self.is_empty():
            return other
        assert self.lo is not None and self.hi is not None
        assert other.lo is not None and other.hi is not None
        return ContinuousDomain(min(self.lo, other.lo), max(self.hi, other.hi))

    @staticmethod
    def of(values: NDArray[np.float64]) -> ContinuousDomain:
        finite = values[np.isfinite(values)]
        if finite.size == 0:
            return ContinuousDomain()
        return ContinuousDomain(float(finite.min()), float(finite.max()))


@dataclass(frozen=True)
class DiscreteDomain:
    """
    Set of observed levels. Merging is set union.
    """

    levels: frozenset[Any] = frozenset()

    def is_empty(self) -> bool:
        return not self.levels

    def merge(self, other: DiscreteDomain) -> DiscreteDomain:
        return DiscreteDomain(self.levels | other.levels)

    @staticmethod
    def of(values: NDArray[Any]) -> DiscreteDomain:
        missing = missing_mask(values)
        return DiscreteDomain(
            frozenset(_level_key(v) for v, m in zip(values, missing) if not m)
        )

    def ordered(self) -> list[Any]:
        return sort_levels(self.levels)


def _level_key(value: Any) -> Any:
    # numpy scalars hash like their python counterparts but print differently
    if isinstance(value, np.generic):
        value = value.item()
    # integer columns arrive as float64; keep whole levels as ints
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def sort_levels(levels: Iterable[Any]) -> list[Any]:
    """
    Deterministic level order: natural sort where the values are mutually
    comparable, otherwise by type name and then string form.
    """
    levels = list(levels)
    try:
        return sorted(levels)
    except TypeError:
        return sorted(levels, key=lambda v: (type(v).__name__, str(v)))


Domain = ContinuousDomain | DiscreteDomain


# ---- Labels and ticks -------------------------------------------------------------


def _label_numbers(xs: np.ndarray) -> NDArray[np.str_]:
    """
    Format an array of numbers with consistent precision.
    Determines appropriate precision based on the differences between values.
    """
    MAX_PRECISION = 5
    fmt_str = f"{{:.{MAX_PRECISION}f}}"

    if len(xs) == 0:
        return np.array([], dtype=str)

    xstrs = [fmt_str.format(x) for x in xs]
    trim = min([len(xstr) - len(xstr.rstrip("0")) for xstr in xstrs])
    if trim == MAX_PRECISION:
        trim += 1

    if trim == 0:
        return np.array(xstrs, dtype=str)
    return np.array([xstr[:-trim] for xstr in xstrs], dtype=str)


def default_labeler(values: Sequence[Any]) -> list[str]:
    """
    Default labeler function that converts a collection of values to strings.

    For numeric values, formats all numbers with matching precision.
    For other types, uses str() conversion.
    """
    if not values:
        return []

    if all(isinstance(v, Number) and not isinstance(v, bool) for v in values):
        arr = np.array([float(v) for v in values], dtype=np.float64)
        return list(_label_numbers(arr))
    else:
        return [str(v) for v in values]


class TickStep(NamedTuple):
    tick_step: float
    subtick_step: float
    niceness: float


TICK_STEP_OPTIONS = [
    TickStep(1.0, 0.5, 1.0),
    TickStep(5.0, 1.0, 0.9),
    TickStep(2.0, 1.0, 0.7),
    TickStep(2.5, 0.5, 0.5),
    TickStep(3.0, 1.0, 0.2),
]


class TickCoverage(Enum):
    Flexible = 1
    StrictSub = 2
    StrictSuper = 3

    @classmethod
    def from_str(cls, value: str) -> "TickCoverage":
        value = value.lower()
        if value == "flexible":
            return cls.Flexible
        elif value == "strictsub" or value == "sub":
            return cls.StrictSub
        elif value == "strictsuper" or value == "super":
            return cls.StrictSuper
        else:
            raise ValueError(f"Invalid tick coverage: {value}")


def choose_ticks(
    lo: float, hi: float, params: ChooseTicksParams, coverage: TickCoverage
) -> NDArray[np.float64]:
    """
    Continuous scale tick optimization via a version of Wilkinson's ad-hoc scoring method.
    """

    scale_span = hi - lo

    if scale_span == 0.0:
        return np.array([round(lo - 1.0), round(lo + 1.0)], dtype=float)

    CONSTRAINT_PENALTY = 10000.0
    high_score = -np.inf

    oom_best = 0.0
    k_best = 0
    t0_best = 0.0
    step_best = 0.0

    # Consider all orders of magnitude where we can span the range with k_max ticks
    oom = np.ceil(np.log10(scale_span))
    while params.k_max * 10.0 ** (oom + 1) > scale_span:
        # Consider numbers of ticks
        for k in range(params.k_min, params.k_max + 1):
            # Consider steps
            for step in TICK_STEP_OPTIONS:
                step_size = step.tick_step * 10.0**oom
                if step_size == 0.0:
                    continue

                t0 = step_size * np.floor(lo / step_size)

                # Consider tick starting places
                while t0 <= hi:
                    score = step.niceness * params.niceness_weight

                    tk = t0 + (k - 1) * step_size

                    has_zero = t0 <= 0 and np.abs(t0 / step_size) < k
                    if has_zero:
                        score += params.simplicity_weight

                    if 0 < k and k < 2 * params.k_ideal:
                        score += (
                            1 - abs(k - params.k_ideal) / params.k_ideal
                        ) * params.granularity_weight

                    coverage_jaccard = (min(hi, tk) - max(lo, t0)) / (
                        max(hi, tk) - min(lo, t0)
                    )
                    score += coverage_jaccard * params.coverage_weight

                    # strict-ish limits on coverage
                    if coverage == TickCoverage.StrictSub and (t0 < lo or tk > hi):
                        score -= CONSTRAINT_PENALTY
                    elif coverage == TickCoverage.StrictSuper and (
                        t0 > lo or tk < hi
                    ):
                        score -= CONSTRAINT_PENALTY

                    if score > high_score:
                        high_score = score
                        oom_best = oom
                        k_best = k
                        t0_best = t0
                        step_best = step.tick_step

                    t0 += step_size / 2

        oom -= 1

    if not np.isfinite(high_score):
        return np.array([round(lo - 1.0), round(lo + 1.0)], dtype=float)

    step_size = step_best * 10.0**oom_best
    return t0_best + step_size * np.arange(k_best, dtype=float)


# ---- Scales -----------------------------------------------------------------------


class Scale(ABC):
    """
    Scales map data values onto visual values (positions, colors, sizes, ...).

    Lifecycle: created empty, trained by any number of `train` calls which
    accumulate the domain, frozen, then used read-only by `map`, `inverse`,
    `breaks` and `labels`. Training a frozen scale is a programming error.
    """

    is_discrete: ClassVar[bool] = False

    def __init__(self, aesthetic: Aesthetic | str):
        self._aesthetic = Aesthetic.parse(aesthetic)
        self._frozen = False

    @property
    def aesthetic(self) -> Aesthetic:
        return self._aesthetic

    @property
    def frozen(self) -> bool:
        return self._frozen

    @abstractmethod
    def domain_of(self, values: NDArray[Any]) -> Domain:
        """Partial domain of a batch of values, without touching the scale."""
        pass

    @abstractmethod
    def train_domain(self, domain: Domain) -> None:
        pass

    def train(self, values: Any) -> None:
        self.train_domain(self.domain_of(_as_column(values)))

    @abstractmethod
    def freeze(self) -> None:
        pass

    @abstractmethod
    def map(self, values: Any) -> Any:
        pass

    @abstractmethod
    def inverse(self, values: Any) -> Any:
        pass

    @abstractmethod
    def breaks(self) -> list[Any]:
        pass

    def labels(self) -> list[str]:
        return default_labeler(self.breaks())

    def _check_trainable(self):
        if self._frozen:
            raise ScaleFrozen(
                f"Scale for '{self.aesthetic.value}' is frozen and cannot be retrained"
            )

    def _check_frozen(self):
        if not self._frozen:
            raise UntrainedScale(
                f"Scale for '{self.aesthetic.value}' must be trained and frozen before mapping"
            )

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "training"
        return f"{type(self).__name__}({self.aesthetic.value}, {state})"


def _as_column(values: Any) -> NDArray[Any]:
    if isinstance(values, np.ndarray):
        return values
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        values = [values]
    return normalize_column(values)


def _as_float(values: Any, aesthetic: Aesthetic) -> NDArray[np.float64]:
    column = _as_column(values)
    if not is_numeric(column):
        # The all-missing object column is still a valid (empty) numeric batch
        if missing_mask(column).all():
            return np.full(len(column), np.nan)
        raise ValueError(
            f"Cannot use continuous scale for '{aesthetic.value}' with non-numerical values"
        )
    return column.astype(np.float64)


class ScaleContinuous(Scale, ABC):
    """
    Continuous scale trained on the min/max of observed values in transformed
    space. An untrained scale falls back to the default domain [0, 1].
    """

    DEFAULT_DOMAIN: ClassVar[tuple[float, float]] = (0.0, 1.0)

    def __init__(
        self,
        aesthetic: Aesthetic | str,
        limits: tuple[float, float] | None = None,
        trans: str | Transform = "identity",
        expand: float | ConfigKey = 0.0,
        tick_coverage: str | TickCoverage | ConfigKey = ConfigKey("tick_coverage"),
        tick_params: ChooseTicksParams | ConfigKey = ConfigKey("tick_params"),
    ):
        super().__init__(aesthetic)
        self.trans = _transform(trans)
        self.limits = limits
        self.expand = expand
        self.tick_coverage = tick_coverage
        self.tick_params = tick_params
        self._domain = ContinuousDomain()
        self._lo = 0.0
        self._hi = 1.0

    @property
    def domain(self) -> ContinuousDomain:
        return self._domain

    @override
    def domain_of(self, values: NDArray[Any]) -> ContinuousDomain:
        return ContinuousDomain.of(self.trans.forward(_as_float(values, self.aesthetic)))

    @override
    def train_domain(self, domain: Domain) -> None:
        self._check_trainable()
        if not isinstance(domain, ContinuousDomain):
            raise TypeError(f"Continuous scale for '{self.aesthetic.value}' got {domain!r}")
        self._domain = self._domain.merge(domain)

    @override
    def freeze(self) -> None:
        if self._frozen:
            return

        if self.limits is not None:
            lo, hi = self.trans.forward(np.asarray(self.limits, dtype=np.float64))
            lo, hi = float(min(lo, hi)), float(max(lo, hi))
        elif not self._domain.is_empty():
            assert self._domain.lo is not None and self._domain.hi is not None
            lo, hi = self._domain.lo, self._domain.hi
        else:
            logger.debug(
                "Scale for '%s' was never trained; using default domain",
                self.aesthetic.value,
            )
            lo, hi = self.DEFAULT_DOMAIN

        expand = float(self.expand) if not isinstance(self.expand, ConfigKey) else 0.0
        span = hi - lo
        self._lo = lo - expand * span
        self._hi = hi + expand * span
        self._frozen = True

    def rescale(self, values: Any) -> NDArray[np.float64]:
        """Map values onto [0, 1] over the frozen domain."""
        self._check_frozen()
        t = self.trans.forward(_as_float(values, self.aesthetic))
        span = self._hi - self._lo
        if span == 0.0:
            return np.where(np.isnan(t), np.nan, 0.5)
        return (t - self._lo) / span

    def unrescale(self, values: Any) -> NDArray[np.float64]:
        self._check_frozen()
        u = np.asarray(values, dtype=np.float64)
        return self.trans.inverse(self._lo + u * (self._hi - self._lo))

    def limits_in_data_space(self) -> tuple[float, float]:
        self._check_frozen()
        lo, hi = self.trans.inverse(np.array([self._lo, self._hi], dtype=np.float64))
        return float(min(lo, hi)), float(max(lo, hi))

    @override
    def breaks(self) -> list[float]:
        self._check_frozen()
        lo, hi = self.limits_in_data_space()

        if self.trans.name == "log10":
            ticks = 10.0 ** np.arange(np.ceil(np.log10(lo)), np.floor(np.log10(hi)) + 1)
        else:
            coverage = self.tick_coverage
            if isinstance(coverage, str):
                coverage = TickCoverage.from_str(coverage)
            if not isinstance(coverage, TickCoverage):
                coverage = TickCoverage.StrictSub
            params = self.tick_params
            if not isinstance(params, ChooseTicksParams):
                params = Config().tick_params
            ticks = choose_ticks(lo, hi, params, coverage)

        eps = 1e-9 * max(abs(hi - lo), 1.0)
        ticks = ticks[(ticks >= lo - eps) & (ticks <= hi + eps)]
        return [float(t) for t in ticks]


class ScaleContinuousPosition(ScaleContinuous):
    """
    Continuous positional scale onto a numeric range, by default the
    normalized interval [0, 1] which coordinate systems map into a panel.
    """

    def __init__(
        self,
        aesthetic: Aesthetic | str,
        range: tuple[float, float] = (0.0, 1.0),
        limits: tuple[float, float] | None = None,
        trans: str | Transform = "identity",
        expand: float | ConfigKey = ConfigKey("position_expand"),
        **kwargs: Any,
    ):
        super().__init__(aesthetic, limits, trans, expand, **kwargs)
        self.range = range

    @override
    def map(self, values: Any) -> NDArray[np.float64]:
        r0, r1 = self.range
        return r0 + self.rescale(values) * (r1 - r0)

    @override
    def inverse(self, values: Any) -> NDArray[np.float64]:
        r0, r1 = self.range
        p = np.asarray(values, dtype=np.float64)
        return self.unrescale((p - r0) / (r1 - r0))


class ScaleContinuousRange(ScaleContinuous):
    """
    Continuous scale onto a numeric visual range, e.g. point radius, alpha or
    line width.
    """

    def __init__(
        self,
        aesthetic: Aesthetic | str,
        range: tuple[float, float] | ConfigKey,
        limits: tuple[float, float] | None = None,
        trans: str | Transform = "identity",
        **kwargs: Any,
    ):
        super().__init__(aesthetic, limits, trans, **kwargs)
        self.range = range

    @override
    def map(self, values: Any) -> NDArray[np.float64]:
        r0, r1 = self._range()
        u = np.clip(self.rescale(values), 0.0, 1.0)
        return r0 + u * (r1 - r0)

    @override
    def inverse(self, values: Any) -> NDArray[np.float64]:
        r0, r1 = self._range()
        p = np.asarray(values, dtype=np.float64)
        return self.unrescale((p - r0) / (r1 - r0))

    def _range(self) -> tuple[float, float]:
        if isinstance(self.range, ConfigKey):
            raise ValueError(f"ConfigKey {self.range} was not resolved before mapping")
        return float(self.range[0]), float(self.range[1])


class ScaleContinuousColor(ScaleContinuous):
    colormap: Colormap | ConfigKey

    def __init__(
        self,
        aesthetic: Aesthetic | str = Aesthetic.COLOR,
        colormap: Any = ConfigKey("continuous_cmap"),
        limits: tuple[float, float] | None = None,
        trans: str | Transform = "identity",
        **kwargs: Any,
    ):
        if not isinstance(colormap, (ConfigKey, Colormap)):
            colormap = Colormap(colormap)
        self.colormap = colormap
        super().__init__(aesthetic, limits, trans, **kwargs)

    def _colormap(self) -> Colormap:
        if not isinstance(self.colormap, Colormap):
            raise ValueError(f"ConfigKey {self.colormap} was not resolved before mapping")
        return self.colormap

    @override
    def map(self, values: Any) -> Colors:
        u = self.rescale(values)
        if len(u) == 0:
            return Colors(np.zeros((0, 4)))
        missing = np.isnan(u)
        rgba = np.asarray(
            self._colormap()(np.clip(np.where(missing, 0.0, u), 0.0, 1.0)),
            dtype=np.float64,
        ).reshape(len(u), 4)
        rgba[missing, :] = np.nan
        return Colors(rgba)

    @override
    def inverse(self, values: Any) -> NDArray[np.float64]:
        """
        Approximate inverse: the data value whose color is nearest to each
        given color, searched over a fine sampling of the gradient.
        """
        self._check_frozen()
        target = values.values if isinstance(values, Colors) else np.asarray(values)
        samples = np.linspace(0.0, 1.0, 1024)
        ramp = np.asarray(self._colormap()(samples), dtype=np.float64)
        dist = ((target[:, None, :] - ramp[None, :, :]) ** 2).sum(axis=-1)
        return self.unrescale(samples[dist.argmin(axis=1)])


class ScaleDiscrete(Scale, ABC):
    """
    Discrete scale over the union of observed (hashable) levels. Levels are
    presented in sorted order unless explicit `limits` fix the level set and
    order.
    """

    is_discrete = True

    def __init__(
        self,
        aesthetic: Aesthetic | str,
        limits: Sequence[Any] | None = None,
        labeler: Callable[[Sequence[Any]], list[str]] = default_labeler,
    ):
        super().__init__(aesthetic)
        if limits is not None and len(set(limits)) != len(limits):
            raise ValueError(f"Duplicate values in limits {limits}")
        self.limits = list(limits) if limits is not None else None
        self.labeler = labeler
        self._domain = DiscreteDomain()
        self.levels: list[Any] = []
        self._index: dict[Any, int] = {}

    @property
    def domain(self) -> DiscreteDomain:
        return self._domain

    @override
    def domain_of(self, values: NDArray[Any]) -> DiscreteDomain:
        return DiscreteDomain.of(_as_column(values))

    @override
    def train_domain(self, domain: Domain) -> None:
        self._check_trainable()
        if not isinstance(domain, DiscreteDomain):
            raise TypeError(f"Discrete scale for '{self.aesthetic.value}' got {domain!r}")
        self._domain = self._domain.merge(domain)

    @override
    def freeze(self) -> None:
        if self._frozen:
            return
        if self.limits is not None:
            self.levels = list(self.limits)
        else:
            self.levels = self._domain.ordered()
        self._index = {level: i for i, level in enumerate(self.levels)}
        self._frozen = True
        self._finalize()

    def _finalize(self) -> None:
        pass

    def indices(self, values: Any) -> NDArray[np.float64]:
        """
        Level index per value; NaN for missing values and values outside the
        level set.
        """
        self._check_frozen()
        if not self.levels:
            raise UntrainedScale(
                f"Discrete scale for '{self.aesthetic.value}' has no levels; "
                "train it or give explicit limits"
            )
        column = _as_column(values)
        missing = missing_mask(column)
        out = np.full(len(column), np.nan, dtype=np.float64)
        for i, (value, m) in enumerate(zip(column, missing)):
            if not m:
                idx = self._index.get(_level_key(value))
                if idx is not None:
                    out[i] = idx
        return out

    @override
    def breaks(self) -> list[Any]:
        self._check_frozen()
        return list(self.levels)

    @override
    def labels(self) -> list[str]:
        return self.labeler(self.breaks())


class ScaleDiscretePosition(ScaleDiscrete):
    """
    Discrete positional scale. Level i sits at continuous position i + 1 inside
    the padded extent [1 - pad, n + pad], which is mapped linearly onto the
    range.
    """

    def __init__(
        self,
        aesthetic: Aesthetic | str,
        range: tuple[float, float] = (0.0, 1.0),
        limits: Sequence[Any] | None = None,
        pad: float | ConfigKey = ConfigKey("discrete_pad"),
        **kwargs: Any,
    ):
        super().__init__(aesthetic, limits, **kwargs)
        self.range = range
        self.pad = pad

    def _extent(self) -> tuple[float, float]:
        pad = float(self.pad) if not isinstance(self.pad, ConfigKey) else 0.6
        return 1.0 - pad, len(self.levels) + pad

    def _positions_to_range(self, positions: NDArray[np.float64]) -> NDArray[np.float64]:
        lo, hi = self._extent()
        r0, r1 = self.range
        return r0 + (positions - lo) / (hi - lo) * (r1 - r0)

    @override
    def map(self, values: Any) -> NDArray[np.float64]:
        return self._positions_to_range(self.indices(values) + 1.0)

    @override
    def inverse(self, values: Any) -> list[Any]:
        """Nearest level for each mapped position."""
        self._check_frozen()
        lo, hi = self._extent()
        r0, r1 = self.range
        p = np.asarray(values, dtype=np.float64)
        positions = lo + (p - r0) / (r1 - r0) * (hi - lo)
        idx = np.clip(np.rint(positions - 1.0), 0, len(self.levels) - 1).astype(int)
        return [self.levels[i] for i in idx]


class ScaleDiscreteColor(ScaleDiscrete):
    colormap: Colormap | ConfigKey

    def __init__(
        self,
        aesthetic: Aesthetic | str = Aesthetic.COLOR,
        colormap: Any = ConfigKey("discrete_cmap"),
        limits: Sequence[Any] | None = None,
        **kwargs: Any,
    ):
        if not isinstance(colormap, (ConfigKey, Colormap)):
            colormap = Colormap(colormap)
        self.colormap = colormap
        super().__init__(aesthetic, limits, **kwargs)
        self.targets = np.zeros((0, 4), dtype=np.float64)

    @override
    def _finalize(self) -> None:
        if not isinstance(self.colormap, Colormap):
            raise ValueError(
                f"ConfigKey {self.colormap} was not resolved before freeze"
            )
        colormap = self.colormap

        n = len(self.levels)
        if n == 0:
            return
        targets = np.arange(n, dtype=np.float64)

        # spacing depends on whether the colormap is cyclic or not
        c0 = np.asarray(colormap(0.0).rgba)
        c1 = np.asarray(colormap(1.0).rgba)
        iscyclic = np.sqrt(((c0 - c1) ** 2).sum()) < 1e-1
        if iscyclic:
            targets /= n
        elif n > 1:
            targets /= n - 1

        self.targets = np.asarray(colormap(targets), dtype=np.float64).reshape(n, 4)

    @override
    def map(self, values: Any) -> Colors:
        idx = self.indices(values)
        missing = np.isnan(idx)
        rgba = np.full((len(idx), 4), np.nan, dtype=np.float64)
        rgba[~missing] = self.targets[idx[~missing].astype(int)]
        return Colors(rgba)

    @override
    def inverse(self, values: Any) -> list[Any]:
        self._check_frozen()
        target = values.values if isinstance(values, Colors) else np.asarray(values)
        dist = ((target[:, None, :] - self.targets[None, :, :]) ** 2).sum(axis=-1)
        return [self.levels[i] for i in dist.argmin(axis=1)]


class ScaleDiscretePalette(ScaleDiscrete):
    """
    Discrete scale onto a palette of visual values (shapes, line types, or
    evenly spaced numbers). Levels beyond the palette length cycle.
    """

    def __init__(
        self,
        aesthetic: Aesthetic | str,
        palette: Sequence[Any] | ConfigKey,
        limits: Sequence[Any] | None = None,
        **kwargs: Any,
    ):
        super().__init__(aesthetic, limits, **kwargs)
        self.palette = palette

    @override
    def _finalize(self) -> None:
        if isinstance(self.palette, ConfigKey):
            raise ValueError(f"ConfigKey {self.palette} was not resolved before freeze")
        if len(self.levels) > len(self.palette):
            logger.warning(
                "Scale for '%s' has %d levels but only %d palette values; values will repeat",
                self.aesthetic.value,
                len(self.levels),
                len(self.palette),
            )

    @override
    def map(self, values: Any) -> NDArray[Any]:
        assert not isinstance(self.palette, ConfigKey)
        idx = self.indices(values)
        out = np.empty(len(idx), dtype=object)
        for i, j in enumerate(idx):
            out[i] = None if np.isnan(j) else self.palette[int(j) % len(self.palette)]
        return out

    @override
    def inverse(self, values: Any) -> list[Any]:
        self._check_frozen()
        assert not isinstance(self.palette, ConfigKey)
        out = []
        for value in values:
            i = list(self.palette).index(value) if value in self.palette else 0
            out.append(self.levels[i % len(self.levels)])
        return out


def discrete_range_palette(lo: float, hi: float, n: int) -> list[float]:
    if n == 1:
        return [hi]
    return list(np.linspace(lo, hi, n))


class ScaleDiscreteRange(ScaleDiscrete):
    """
    Discrete scale onto evenly spaced numbers within a range (e.g. discrete
    sizes or alphas).
    """

    def __init__(
        self,
        aesthetic: Aesthetic | str,
        range: tuple[float, float] | ConfigKey,
        limits: Sequence[Any] | None = None,
        **kwargs: Any,
    ):
        super().__init__(aesthetic, limits, **kwargs)
        self.range = range
        self.targets = np.zeros(0)

    @override
    def _finalize(self) -> None:
        if isinstance(self.range, ConfigKey):
            raise ValueError(f"ConfigKey {self.range} was not resolved before freeze")
        if self.levels:
            self.targets = np.asarray(
                discrete_range_palette(self.range[0], self.range[1], len(self.levels))
            )

    @override
    def map(self, values: Any) -> NDArray[np.float64]:
        idx = self.indices(values)
        out = np.full(len(idx), np.nan)
        ok = ~np.isnan(idx)
        out[ok] = self.targets[idx[ok].astype(int)]
        return out

    @override
    def inverse(self, values: Any) -> list[Any]:
        self._check_frozen()
        p = np.asarray(values, dtype=np.float64)
        idx = np.abs(p[:, None] - self.targets[None, :]).argmin(axis=1)
        return [self.levels[i] for i in idx]


class ScaleIdentity(Scale):
    """
    Passes values through unchanged; used for labels, groups and aesthetics
    already holding visual values (e.g. a column of color names).
    """

    def __init__(self, aesthetic: Aesthetic | str):
        super().__init__(aesthetic)
        self._domain = DiscreteDomain()

    @override
    def domain_of(self, values: NDArray[Any]) -> DiscreteDomain:
        column = _as_column(values)
        if column.ndim != 1:
            return DiscreteDomain()
        return DiscreteDomain.of(column)

    @override
    def train_domain(self, domain: Domain) -> None:
        self._check_trainable()
        if isinstance(domain, DiscreteDomain):
            self._domain = self._domain.merge(domain)

    @override
    def freeze(self) -> None:
        self._frozen = True

    @override
    def map(self, values: Any) -> Any:
        self._check_frozen()
        column = _as_column(values)
        if self.aesthetic in (Aesthetic.COLOR, Aesthetic.FILL):
            return literal_colors(column)
        return column

    @override
    def inverse(self, values: Any) -> Any:
        return values

    @override
    def breaks(self) -> list[Any]:
        self._check_frozen()
        return self._domain.ordered()


def literal_colors(values: NDArray[Any]) -> Colors:
    """Convert a column of color-like literals into `Colors`, NaN where missing."""
    rgba = np.full((len(values), 4), np.nan, dtype=np.float64)
    missing = missing_mask(values)
    for i, (value, m) in enumerate(zip(values, missing)):
        if not m:
            rgba[i, :] = color(value).as_floats()
    return Colors(rgba)


# ---- Defaults ---------------------------------------------------------------------


def xcontinuous(*args: Any, **kwargs: Any) -> ScaleContinuousPosition:
    return ScaleContinuousPosition(Aesthetic.X, *args, **kwargs)


def ycontinuous(*args: Any, **kwargs: Any) -> ScaleContinuousPosition:
    return ScaleContinuousPosition(Aesthetic.Y, *args, **kwargs)


def xdiscrete(*args: Any, **kwargs: Any) -> ScaleDiscretePosition:
    return ScaleDiscretePosition(Aesthetic.X, *args, **kwargs)


def ydiscrete(*args: Any, **kwargs: Any) -> ScaleDiscretePosition:
    return ScaleDiscretePosition(Aesthetic.Y, *args, **kwargs)


def colorcontinuous(*args: Any, **kwargs: Any) -> ScaleContinuousColor:
    return ScaleContinuousColor(Aesthetic.COLOR, *args, **kwargs)


def colordiscrete(*args: Any, **kwargs: Any) -> ScaleDiscreteColor:
    return ScaleDiscreteColor(Aesthetic.COLOR, *args, **kwargs)


def fillcontinuous(*args: Any, **kwargs: Any) -> ScaleContinuousColor:
    return ScaleContinuousColor(Aesthetic.FILL, *args, **kwargs)


def filldiscrete(*args: Any, **kwargs: Any) -> ScaleDiscreteColor:
    return ScaleDiscreteColor(Aesthetic.FILL, *args, **kwargs)


class ScaleContinuousSize(ScaleContinuousRange):
    """Point radius in pixels."""

    def __init__(self, range: Any = ConfigKey("size_range"), **kwargs: Any):
        super().__init__(Aesthetic.SIZE, range, **kwargs)


class ScaleContinuousAlpha(ScaleContinuousRange):
    def __init__(self, range: Any = ConfigKey("alpha_range"), **kwargs: Any):
        super().__init__(Aesthetic.ALPHA, range, **kwargs)


class ScaleContinuousLinewidth(ScaleContinuousRange):
    def __init__(self, range: Any = ConfigKey("linewidth_range"), **kwargs: Any):
        super().__init__(Aesthetic.LINEWIDTH, range, **kwargs)


class ScaleDiscreteShape(ScaleDiscretePalette):
    def __init__(self, palette: Any = ConfigKey("shapes"), **kwargs: Any):
        super().__init__(Aesthetic.SHAPE, palette, **kwargs)


class ScaleDiscreteLinetype(ScaleDiscretePalette):
    def __init__(self, palette: Any = ConfigKey("linetypes"), **kwargs: Any):
        super().__init__(Aesthetic.LINETYPE, palette, **kwargs)


def sizecontinuous(*args: Any, **kwargs: Any) -> ScaleContinuousSize:
    return ScaleContinuousSize(*args, **kwargs)


def alphacontinuous(*args: Any, **kwargs: Any) -> ScaleContinuousAlpha:
    return ScaleContinuousAlpha(*args, **kwargs)


def linewidthcontinuous(*args: Any, **kwargs: Any) -> ScaleContinuousLinewidth:
    return ScaleContinuousLinewidth(*args, **kwargs)


def shapediscrete(*args: Any, **kwargs: Any) -> ScaleDiscreteShape:
    return ScaleDiscreteShape(*args, **kwargs)


def linetypediscrete(*args: Any, **kwargs: Any) -> ScaleDiscreteLinetype:
    return ScaleDiscreteLinetype(*args, **kwargs)


_RANGE_KEYS: dict[Aesthetic, str] = {
    Aesthetic.SIZE: "size_range",
    Aesthetic.ALPHA: "alpha_range",
    Aesthetic.LINEWIDTH: "linewidth_range",
}


def default_scale(aesthetic: Aesthetic, numeric: bool) -> Scale:
    """
    Choose a scale for an aesthetic from the kind of values mapped to it.
    """
    match aesthetic:
        case Aesthetic.X | Aesthetic.Y:
            if numeric:
                return ScaleContinuousPosition(aesthetic)
            return ScaleDiscretePosition(aesthetic)
        case Aesthetic.COLOR | Aesthetic.FILL:
            if numeric:
                return ScaleContinuousColor(aesthetic)
            return ScaleDiscreteColor(aesthetic)
        case Aesthetic.SIZE:
            return ScaleContinuousSize() if numeric else _discrete_range(aesthetic)
        case Aesthetic.ALPHA:
            return ScaleContinuousAlpha() if numeric else _discrete_range(aesthetic)
        case Aesthetic.LINEWIDTH:
            if numeric:
                return ScaleContinuousLinewidth()
            return _discrete_range(aesthetic)
        case Aesthetic.SHAPE:
            return ScaleDiscreteShape()
        case Aesthetic.LINETYPE:
            return ScaleDiscreteLinetype()
        case Aesthetic.LABEL | Aesthetic.GROUP:
            return ScaleIdentity(aesthetic)


def _discrete_range(aesthetic: Aesthetic) -> ScaleDiscreteRange:
    return ScaleDiscreteRange(aesthetic, range=ConfigKey(_RANGE_KEYS[aesthetic]))


# ---- Registry ---------------------------------------------------------------------


class ScaleRegistry:
    """
    One scale per aesthetic, owned exclusively by the plot.

    Layers contribute partial domains which are folded into the scales with a
    commutative merge; after `freeze`, layers only see the read-only `view`.
    Free facet scales are kept per panel.
    """

    def __init__(self, scales: Iterable[Scale] = ()):
        self._scales: dict[Aesthetic, Scale] = {}
        self._panel_scales: dict[tuple[Aesthetic, int], Scale] = {}
        self._frozen = False
        for scale in scales:
            self.add(scale)

    def add(self, scale: Scale) -> None:
        if self._frozen:
            raise ScaleFrozen("Cannot add scales to a frozen registry")
        self._scales[scale.aesthetic] = scale

    def __contains__(self, aesthetic: object) -> bool:
        return aesthetic in self._scales

    def get(self, aesthetic: Aesthetic, panel: int | None = None) -> Scale | None:
        if panel is not None and (aesthetic, panel) in self._panel_scales:
            return self._panel_scales[(aesthetic, panel)]
        return self._scales.get(aesthetic)

    def ensure(self, aesthetic: Aesthetic, numeric: bool, config: Config) -> Scale:
        """Return the scale for `aesthetic`, creating a default one if needed."""
        scale = self._scales.get(aesthetic)
        if scale is None:
            scale = default_scale(aesthetic, numeric)
            config.replace_keys(scale)
            self.add(scale)
            logger.debug("Created default %r", scale)
        else:
            config.replace_keys(scale)
        return scale

    def ensure_panel(self, aesthetic: Aesthetic, panel: int) -> Scale:
        """
        Per-panel copy of the (untrained) prototype scale, for free facet scales.
        """
        key = (aesthetic, panel)
        if key not in self._panel_scales:
            prototype = self._scales[aesthetic]
            self._panel_scales[key] = copy.deepcopy(prototype)
        return self._panel_scales[key]

    def train_partial(
        self, aesthetic: Aesthetic, domain: Domain, panel: int | None = None
    ) -> None:
        scale = self.get(aesthetic, panel)
        if scale is None:
            raise KeyError(f"No scale registered for '{aesthetic.value}'")
        scale.train_domain(domain)

    def resolve_keys(self, config: Config) -> None:
        """Replace config placeholders in every scale, trained by data or not."""
        for scale in self._scales.values():
            config.replace_keys(scale)
        for scale in self._panel_scales.values():
            config.replace_keys(scale)

    def freeze(self) -> None:
        for scale in self._scales.values():
            scale.freeze()
        for scale in self._panel_scales.values():
            scale.freeze()
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def view(self) -> MappingProxyType[Aesthetic, Scale]:
        if not self._frozen:
            raise UntrainedScale("Scale registry must be frozen before it is shared")
        return MappingProxyType(self._scales)

    def panel_view(self, panel: int) -> MappingProxyType[Aesthetic, Scale]:
        scales = dict(self._scales)
        for (aesthetic, p), scale in self._panel_scales.items():
            if p == panel:
                scales[aesthetic] = scale
        return MappingProxyType(scales)
