"""
Plot-wide defaults, optionally overridden from a TOML file.

Geoms and scales refer to defaults through `ConfigKey` placeholders, which
are swapped for configured values when a plot is built.
"""

import os
import tomllib
import warnings
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from cmap import Colormap

from .colors import Color, color


@dataclass(frozen=True)
class ConfigKey:
    """Placeholder for the `Config` attribute named `key`."""

    key: str


@dataclass
class ChooseTicksParams:
    k_min: int
    k_max: int
    k_ideal: int
    granularity_weight: float
    simplicity_weight: float
    coverage_weight: float
    niceness_weight: float


CONFIG_NAME = ".plotweaverc.toml"


def config_search_paths() -> tuple[Path, ...]:
    """Candidate config files, highest priority first."""
    home = Path.home()
    xdg = Path(os.environ.get("XDG_CONFIG_HOME") or home / ".config")
    return (Path.cwd() / CONFIG_NAME, home / CONFIG_NAME, xdg / "plotweave" / "config.toml")


def _read_toml(path: Path) -> dict[str, Any] | None:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from {path}: {e}")
        return None


def _parse_config_value(key: str, value: Any) -> Any:
    """Convert a TOML value into the type the config attribute holds."""
    match value:
        case str() if key.endswith(("_color", "_fill")):
            return color(value)
        case str() if key.endswith("_cmap"):
            return Colormap(value)
        case list() if key.endswith("_range") or key in ("shapes", "linetypes"):
            return tuple(value)
        case dict() if key == "tick_params":
            return ChooseTicksParams(**value)
        case _:
            return value


@dataclass
class Config:
    # Canvas, in device pixels
    canvas_width: float = 640.0
    canvas_height: float = 480.0

    # Geom defaults
    point_radius: float = 3.0
    point_color: Color = field(default_factory=lambda: color("#333333"))
    line_color: Color = field(default_factory=lambda: color("#333333"))
    line_width: float = 1.5
    bar_color: Color = field(default_factory=lambda: color("#595959"))
    bar_width: float = 0.9
    text_color: Color = field(default_factory=lambda: color("#333333"))
    text_size: float = 11.0
    boxplot_fill: Color = field(default_factory=lambda: color("#ffffff"))
    smooth_color: Color = field(default_factory=lambda: color("#3366ff"))
    ribbon_alpha: float = 0.4

    # Non-positional scale ranges
    size_range: tuple[float, float] = (1.0, 6.0)
    alpha_range: tuple[float, float] = (0.1, 1.0)
    linewidth_range: tuple[float, float] = (0.5, 3.0)
    discrete_cmap: Colormap = field(default_factory=lambda: Colormap("tab10"))
    continuous_cmap: Colormap = field(
        default_factory=lambda: Colormap("colorcet:cet_l20")
    )
    shapes: tuple[str, ...] = (
        "circle",
        "triangle",
        "square",
        "diamond",
        "cross",
        "plus",
    )
    linetypes: tuple[str, ...] = (
        "solid",
        "dashed",
        "dotted",
        "dotdash",
        "longdash",
        "twodash",
    )

    # Positional scales and ticks
    position_expand: float = 0.0
    discrete_pad: float = 0.6
    tick_coverage: str = "sub"
    tick_params: ChooseTicksParams = field(
        default_factory=lambda: ChooseTicksParams(
            k_min=2,
            k_max=10,
            k_ideal=5,
            granularity_weight=1 / 4,
            simplicity_weight=1 / 6,
            coverage_weight=1 / 2,
            niceness_weight=1 / 4,
        )
    )

    # Panels and coordinates
    facet_spacing: float = 10.0
    munch_segments: int = 32

    @classmethod
    def load(cls, path: Optional[Path | str] = None) -> "Config":
        """
        Read overrides from `path`, or from the first existing file among
        `config_search_paths()`. Missing files give the defaults.
        """
        candidates = (Path(path),) if path is not None else config_search_paths()
        for candidate in candidates:
            if candidate.is_file():
                values = _read_toml(candidate)
                if values is not None:
                    return cls.from_dict(values)
        return cls()

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "Config":
        config = cls()
        for key, value in values.items():
            if key not in config.__dataclass_fields__:
                warnings.warn(f"Ignoring unknown config key '{key}'")
                continue
            setattr(config, key, _parse_config_value(key, value))
        return config

    def get(self, key: ConfigKey) -> Any:
        return getattr(self, key.key)

    def resolve(self, value: Any) -> Any:
        return self.get(value) if isinstance(value, ConfigKey) else value

    def replace_keys(self, obj: Any) -> Any:
        """
        Swap every `ConfigKey` reachable from `obj` (through containers and
        object attributes) for its configured value, in place. Returns `obj`,
        or the resolved value when `obj` is itself a key.
        """
        match obj:
            case ConfigKey():
                return self.get(obj)
            case list() | tuple():
                for item in obj:
                    self.replace_keys(item)
            case dict():
                for key, value in obj.items():
                    obj[key] = self.replace_keys(value)
            case type() | Enum() | Colormap() | Config():
                pass
            case _ if hasattr(obj, "__dict__"):
                for name, value in vars(obj).items():
                    if isinstance(value, ConfigKey):
                        setattr(obj, name, self.get(value))
                    else:
                        self.replace_keys(value)
        return obj


_default_config: Optional[Config] = None


def default_config() -> Config:
    """The config from the standard locations, read once per process."""
    global _default_config
    if _default_config is None:
        _default_config = Config.load()
    return _default_config
