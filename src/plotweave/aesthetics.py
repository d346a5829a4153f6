from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeAlias

STAT_PREFIX = "stat:"


class Aesthetic(Enum):
    X = "x"
    Y = "y"
    COLOR = "color"
    FILL = "fill"
    SIZE = "size"
    ALPHA = "alpha"
    SHAPE = "shape"
    LINETYPE = "linetype"
    LINEWIDTH = "linewidth"
    LABEL = "label"
    GROUP = "group"

    @classmethod
    def parse(cls, value: str | Aesthetic) -> Aesthetic:
        if isinstance(value, Aesthetic):
            return value
        name = value.lower()
        if name == "colour":
            name = "color"
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown aesthetic: {value}") from None

    def is_positional(self) -> bool:
        return self in (Aesthetic.X, Aesthetic.Y)


# Computed columns that live in x or y space and are scaled alongside them.
POSITION_EXTENTS: dict[Aesthetic, tuple[str, ...]] = {
    Aesthetic.X: ("xmin", "xmax", "xend"),
    Aesthetic.Y: ("ymin", "ymax", "yend", "lower", "middle", "upper", "stat:outliers"),
}

# Aesthetics whose discrete values split data into groups.
GROUPING_AES = (
    Aesthetic.GROUP,
    Aesthetic.COLOR,
    Aesthetic.FILL,
    Aesthetic.SHAPE,
    Aesthetic.LINETYPE,
    Aesthetic.LABEL,
)


@dataclass(frozen=True)
class Mapped:
    """
    Aesthetic drawn from a data column, or from a stat-computed variable when
    the name carries the `stat:` prefix.
    """

    name: str

    @property
    def is_stat(self) -> bool:
        return self.name.startswith(STAT_PREFIX)

    @property
    def stat_var(self) -> str:
        return self.name[len(STAT_PREFIX) :]


@dataclass(frozen=True)
class Fixed:
    """
    Aesthetic set to a single literal value broadcast across all observations.
    """

    value: Any


@dataclass(frozen=True)
class Computed:
    """
    Aesthetic computed by a pure function of the data. The function receives a
    column lookup (`lookup(name) -> array`) and returns one value per row.
    With `after_stat`, the lookup also resolves stat-computed variables.
    """

    fn: Callable[[Callable[[str], Any]], Any]
    after_stat: bool = False


AestheticSpec: TypeAlias = Mapped | Fixed | Computed


def after_stat(name: str) -> Mapped:
    """Reference a stat-computed variable, e.g. `after_stat("count")`."""
    return Mapped(STAT_PREFIX + name)


def _coerce_spec(value: Any) -> AestheticSpec:
    if isinstance(value, (Mapped, Fixed, Computed)):
        return value
    if isinstance(value, str):
        return Mapped(value)
    if callable(value):
        return Computed(value)
    return Fixed(value)


class AestheticMapping(Mapping[Aesthetic, AestheticSpec]):
    """
    Immutable mapping from aesthetic to specification. Keys are unique and
    ordering is irrelevant for equality.
    """

    __slots__ = ("_specs",)

    def __init__(
        self, specs: Mapping[Aesthetic | str, Any] | None = None, **kwargs: Any
    ):
        merged: dict[Aesthetic, AestheticSpec] = {}
        items = list((specs or {}).items()) + list(kwargs.items())
        for key, value in items:
            aes = Aesthetic.parse(key)
            if aes in merged:
                raise ValueError(f"Duplicate aesthetic {aes.value} in mapping")
            merged[aes] = _coerce_spec(value)
        self._specs = merged

    def __getitem__(self, key: Aesthetic) -> AestheticSpec:
        return self._specs[key]

    def __iter__(self) -> Iterator[Aesthetic]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AestheticMapping):
            return NotImplemented
        return self._specs == other._specs

    def __hash__(self):
        return hash(frozenset(self._specs.items()))

    def __repr__(self) -> str:
        inner = ", ".join(f"{k.value}={v!r}" for k, v in self._specs.items())
        return f"aes({inner})"

    def merge(self, other: Mapping[Aesthetic, AestheticSpec] | None) -> AestheticMapping:
        """
        Combine two mappings. Entries in `other` win on key collision.
        """
        if not other:
            return self
        specs = dict(self._specs)
        specs.update(other)
        return AestheticMapping(specs)

    def without(self, *keys: Aesthetic) -> AestheticMapping:
        return AestheticMapping({k: v for k, v in self._specs.items() if k not in keys})

    def of_kind(self, kind: type) -> dict[Aesthetic, AestheticSpec]:
        return {k: v for k, v in self._specs.items() if isinstance(v, kind)}


def aes(**kwargs: Any) -> AestheticMapping:
    """
    Aesthetic mapping constructor. Strings map to columns, callables are
    computed and anything else is fixed, e.g. `aes(x="time", y="value", alpha=0.5)`.
    """
    return AestheticMapping(kwargs)


def fixed(**kwargs: Any) -> AestheticMapping:
    """
    Fixed aesthetics constructor where every value is literal, including
    strings (e.g. `fixed(color="red")`).
    """
    return AestheticMapping({k: v if isinstance(v, Fixed) else Fixed(v) for k, v in kwargs.items()})
