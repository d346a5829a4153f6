from __future__ import annotations

from dataclasses import dataclass
from functools import singledispatch
from numbers import Real

import numpy as np
from cmap import Color as CmapColor
from numpy.typing import NDArray


@dataclass(frozen=True, slots=True)
class Color:
    """
    A concrete 8-bit RGBA color, as carried by draw commands.
    """

    r: int
    g: int
    b: int
    a: int = 255

    def __post_init__(self):
        for channel in (self.r, self.g, self.b, self.a):
            if not 0 <= channel <= 255:
                raise ValueError(f"Color channel out of range [0, 255]: {channel}")

    @property
    def hex(self) -> str:
        if self.a == 255:
            return f"#{self.r:02x}{self.g:02x}{self.b:02x}"
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}{self.a:02x}"

    def with_alpha(self, alpha: float) -> Color:
        """Multiply the color's alpha by `alpha` in [0, 1]."""
        a = int(round(self.a * min(max(alpha, 0.0), 1.0)))
        return Color(self.r, self.g, self.b, a)

    def as_floats(self) -> tuple[float, float, float, float]:
        return (self.r / 255.0, self.g / 255.0, self.b / 255.0, self.a / 255.0)

    @staticmethod
    def from_floats(rgba: NDArray[np.float64] | tuple[float, ...]) -> Color:
        r, g, b, a = (int(round(255.0 * min(max(float(c), 0.0), 1.0))) for c in rgba)
        return Color(r, g, b, a)


# RGBA encoded colors stored in a [n, 4] float array. Rows of NaN mark missing
# values that have propagated through a color scale.
@dataclass
class Colors:
    values: NDArray[np.float64]

    def __post_init__(self):
        values = np.asarray(self.values, dtype=np.float64)
        if values.ndim == 1:
            values = values.reshape(1, -1)
        if values.shape[1] == 3:
            values = np.concatenate([values, np.ones((values.shape[0], 1))], axis=-1)
        self.values = values

    def __len__(self) -> int:
        return self.values.shape[0]

    def __getitem__(self, key) -> Colors:
        if isinstance(key, int):
            return Colors(self.values[key : key + 1])
        return Colors(self.values[key])

    def missing(self) -> NDArray[np.bool_]:
        return np.isnan(self.values).any(axis=1)

    def color_at(self, i: int) -> Color | None:
        row = self.values[i]
        if np.isnan(row).any():
            return None
        return Color.from_floats(row)

    def to_list(self) -> list[Color | None]:
        return [self.color_at(i) for i in range(len(self))]

    def is_light(self) -> NDArray[np.bool_]:
        """
        Classify colors as light or dark by their perceptual lightness.
        """
        lab = rgb_to_oklab(self.values[:, 0:3])
        return lab[:, 0] >= 0.6

    def modulate_lightness(self, delta: float = 0.1) -> Colors:
        """
        Lighten or darken the color to produce a color that is similar but with a perceptible tweak.
        """

        lab = rgb_to_oklab(self.values[:, 0:3])
        light = self.is_light()
        lab[:, 0] += delta
        lab[light, 0] -= 2 * delta
        rgb = oklab_to_rgb(lab)
        return Colors(np.concat([rgb.clip(0.0, 1.0), self.values[:, 3:4]], axis=-1))


@singledispatch
def color(value) -> Color:
    """
    Convert a color-like value (name, hex string, RGB(A) tuple, `cmap.Color`)
    into a concrete `Color`.
    """
    raise TypeError(f"Type {type(value)} can't be converted to a color.")


@color.register(Color)
def _(value) -> Color:
    return value


@color.register(str)
def _(value) -> Color:
    return color(CmapColor(value))


@color.register(CmapColor)
def _(value) -> Color:
    rgba = value.rgba
    return Color.from_floats((rgba.r, rgba.g, rgba.b, rgba.a))


@color.register(tuple)
def _(value) -> Color:
    if len(value) not in (3, 4):
        raise ValueError(f"Color tuples need 3 or 4 channels, got {value!r}")

    # Integer tuples are 8-bit channels, float tuples are fractions.
    if all(isinstance(c, (int, np.integer)) for c in value):
        channels = [int(c) for c in value]
        if len(channels) == 3:
            channels.append(255)
        return Color(*channels)

    if not all(isinstance(c, Real) for c in value):
        raise TypeError(f"Color tuple channels must be numbers, got {value!r}")

    floats = list(value) + ([1.0] if len(value) == 3 else [])
    return Color.from_floats(tuple(floats))


_RGB_TO_XYZ = np.array(
    [
        [0.41245645, 0.35757607, 0.18043749],
        [0.21267284, 0.71515214, 0.072175],
        [0.0193339, 0.11919203, 0.9503041],
    ],
    dtype=np.float64,
)

_RGB_TO_XYZ_INV = np.array(
    [
        [3.240454, -1.5371385, -0.4985314],
        [-0.96926594, 1.8760108, 0.041556],
        [0.05564343, -0.20402591, 1.0572252],
    ],
    dtype=np.float64,
)


def linearize_srgb(rgb: NDArray[np.float64]) -> NDArray[np.float64]:
    output = rgb / 12.92
    mask = rgb > 0.04045
    output[mask] = np.pow((rgb[mask] + 0.055) / 1.055, 2.4)
    return output


def linearize_srgb_inv(rgb: NDArray[np.float64]) -> NDArray[np.float64]:
    output = rgb * 12.92
    mask = rgb > 0.0031308
    output[mask] = 1.055 * np.pow(rgb[mask], 1 / 2.4) - 0.055
    return output


_OKLAB_M1 = np.array(
    [
        [0.818933, 0.36186674, -0.12885971],
        [0.03298454, 0.9293119, 0.03614564],
        [0.0482003, 0.26436627, 0.6338517],
    ],
    dtype=np.float64,
)

_OKLAB_M1_INV = np.array(
    [
        [1.2270138, -0.5578, 0.28125614],
        [-0.04058018, 1.1122569, -0.07167668],
        [-0.07638128, -0.42148197, 1.5861632],
    ],
    dtype=np.float64,
)

_OKLAB_M2 = np.array(
    [
        [0.21045426, 0.7936178, -0.00407205],
        [1.9779985, -2.4285922, 0.4505937],
        [0.02590404, 0.78277177, -0.80867577],
    ],
    dtype=np.float64,
)

_OKLAB_M2_INV = np.array(
    [
        [1.0, 0.39633778, 0.21580376],
        [1.0, -0.10556135, -0.06385417],
        [1.0, -0.08948418, -1.2914855],
    ],
    dtype=np.float64,
)


def rgb_to_oklab(rgb: NDArray[np.float64]) -> NDArray[np.float64]:
    xyz = linearize_srgb(np.array(rgb, dtype=np.float64)) @ _RGB_TO_XYZ.transpose()
    lms = xyz @ _OKLAB_M1.transpose()
    return np.cbrt(lms) @ _OKLAB_M2.transpose()


def oklab_to_rgb(oklab: NDArray[np.float64]) -> NDArray[np.float64]:
    lms = np.power(oklab @ _OKLAB_M2_INV.transpose(), 3)
    xyz = lms @ _OKLAB_M1_INV.transpose()
    return linearize_srgb_inv(xyz @ _RGB_TO_XYZ_INV.transpose())
