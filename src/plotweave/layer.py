from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from .aesthetics import Aesthetic, AestheticMapping, Fixed, fixed as fixed_aes
from .config import Config, ConfigKey
from .geometry import (
    Geom,
    GeomArea,
    GeomBar,
    GeomBoxplot,
    GeomCol,
    GeomDensity,
    GeomHistogram,
    GeomLine,
    GeomPath,
    GeomPoint,
    GeomSmooth,
    GeomText,
)
from .positions import Position
from .stats import Stat


@dataclass
class Layer:
    """
    One geom with its stat, mappings, fixed aesthetics, optional data and
    position adjustment. Stat and position default to the geom's.
    """

    geom: Geom
    stat: Stat | None = None
    mapping: AestheticMapping = field(default_factory=AestheticMapping)
    fixed: AestheticMapping = field(default_factory=AestheticMapping)
    data: Any = None
    position: Position | None = None
    inherit_aes: bool = True

    def __post_init__(self):
        if not isinstance(self.mapping, AestheticMapping):
            self.mapping = AestheticMapping(self.mapping)
        if not isinstance(self.fixed, AestheticMapping):
            self.fixed = fixed_aes(**{_name(k): v for k, v in self.fixed.items()})
        for aes, spec in self.fixed.items():
            if not isinstance(spec, Fixed):
                raise TypeError(f"Fixed aesthetic '{aes.value}' must be a literal value")
        if self.stat is None:
            self.stat = self.geom.default_stat()
        if self.position is None:
            self.position = self.geom.default_position()

    @property
    def name(self) -> str:
        return type(self.geom).__name__

    def configured(self, config: Config) -> Layer:
        """Copy of this layer whose geom has its config keys resolved."""
        return replace(self, geom=config.replace_keys(copy.deepcopy(self.geom)))

    def resolved_mapping(
        self, plot_mapping: AestheticMapping | None, config: Config
    ) -> AestheticMapping:
        """
        Effective mapping of this layer. Precedence, lowest first: stat
        defaults, plot mapping, layer mapping, layer fixed values. Geom
        defaults only fill aesthetics none of those specify.
        """
        assert self.stat is not None
        merged = self.stat.default_aes()
        if self.inherit_aes:
            merged = merged.merge(plot_mapping)
        merged = merged.merge(self.mapping).merge(self.fixed)

        defaults: dict[Aesthetic, Fixed] = {}
        for aes, spec in self.geom.default_aes().items():
            if aes in merged or not isinstance(spec, Fixed):
                continue
            value = spec.value
            defaults[aes] = Fixed(config.get(value) if isinstance(value, ConfigKey) else value)
        return AestheticMapping(defaults).merge(merged)


def _name(key: Aesthetic | str) -> str:
    return key.value if isinstance(key, Aesthetic) else key


_LAYER_ARGS = ("data", "stat", "position", "inherit_aes")


def _layer(geom: Geom, mapping: Mapping[Any, Any] | None, kwargs: dict[str, Any]) -> Layer:
    layer_args = {k: kwargs.pop(k) for k in _LAYER_ARGS if k in kwargs}
    return Layer(
        geom,
        mapping=AestheticMapping(mapping) if mapping is not None else AestheticMapping(),
        fixed=fixed_aes(**kwargs),
        **layer_args,
    )


def points(mapping=None, **kwargs) -> Layer:
    """
    Scatter plot layer. Keyword arguments naming aesthetics are fixed values,
    e.g. `points(aes(x="a", y="b"), color="red")`.
    """
    return _layer(GeomPoint(), mapping, kwargs)


def lines(mapping=None, **kwargs) -> Layer:
    return _layer(GeomLine(), mapping, kwargs)


def path(mapping=None, **kwargs) -> Layer:
    return _layer(GeomPath(), mapping, kwargs)


def bars(mapping=None, **kwargs) -> Layer:
    return _layer(GeomBar(), mapping, kwargs)


def cols(mapping=None, width: float | None = None, **kwargs) -> Layer:
    return _layer(GeomCol(width=width), mapping, kwargs)


def histogram(mapping=None, bins: int = 30, binwidth: float | None = None, **kwargs) -> Layer:
    return _layer(GeomHistogram(bins=bins, binwidth=binwidth), mapping, kwargs)


def boxplot(mapping=None, coef: float = 1.5, **kwargs) -> Layer:
    return _layer(GeomBoxplot(coef=coef), mapping, kwargs)


def smooth(mapping=None, method: str = "lm", se: bool = True, **kwargs) -> Layer:
    stat_args = {k: kwargs.pop(k) for k in ("n", "span", "level") if k in kwargs}
    return _layer(GeomSmooth(method=method, se=se, **stat_args), mapping, kwargs)


def text(mapping=None, **kwargs) -> Layer:
    return _layer(GeomText(), mapping, kwargs)


def area(mapping=None, **kwargs) -> Layer:
    return _layer(GeomArea(), mapping, kwargs)


def density(mapping=None, bw_method: str | float | None = None, **kwargs) -> Layer:
    return _layer(GeomDensity(bw_method=bw_method), mapping, kwargs)
