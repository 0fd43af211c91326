"""
Orbit to pixel-grid normalization.

Vectorized with numpy. Pixel coordinates span [0, width] x [0, height]
with row 0 at the top.
"""

import warnings
from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np

from chaosflame.core.sampler import Orbit
from chaosflame.errors import DegenerateBoundsWarning


@dataclass(frozen=True)
class Bounds:
    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @classmethod
    def of(cls, orbit: Orbit) -> Optional["Bounds"]:
        """Extrema of an orbit, or None when the orbit is empty."""
        if len(orbit) == 0:
            return None
        return cls(
            float(orbit.xs.min()),
            float(orbit.xs.max()),
            float(orbit.ys.min()),
            float(orbit.ys.max()),
        )

    @classmethod
    def union(cls, bounds: Iterable[Optional["Bounds"]]) -> Optional["Bounds"]:
        present = [b for b in bounds if b is not None]
        if not present:
            return None
        return cls(
            min(b.min_x for b in present),
            max(b.max_x for b in present),
            min(b.min_y for b in present),
            max(b.max_y for b in present),
        )

    def to_array(self) -> np.ndarray:
        return np.array([self.min_x, self.max_x, self.min_y, self.max_y], dtype=np.float64)

    @classmethod
    def from_array(cls, values: np.ndarray) -> Optional["Bounds"]:
        """Inverse of ``to_array``; NaN rows stand for an empty orbit."""
        if np.isnan(values).any():
            return None
        return cls(*(float(v) for v in values))

    @property
    def degenerate_axes(self) -> List[str]:
        axes = []
        if self.max_x == self.min_x:
            axes.append("x")
        if self.max_y == self.min_y:
            axes.append("y")
        return axes


# Fixed-size stand-in for "no bounds" in the bounds collective
EMPTY_BOUNDS = np.full(4, np.nan)


@dataclass
class PixelPoints:
    """Pixel coordinates with the provenance tag of each point."""

    px: np.ndarray
    py: np.ndarray
    indices: np.ndarray

    def __len__(self) -> int:
        return len(self.px)

    def slice(self, start: int, stop: int) -> "PixelPoints":
        return PixelPoints(self.px[start:stop], self.py[start:stop], self.indices[start:stop])


def _scale_axis(values: np.ndarray, lo: float, hi: float, extent: int) -> np.ndarray:
    span = hi - lo
    if span == 0:
        return np.zeros(len(values), dtype=np.int32)
    scaled = (values - lo) / span * extent
    # Round half away from zero; scaled is non-negative inside the bounds
    return (np.sign(scaled) * np.floor(np.abs(scaled) + 0.5)).astype(np.int32)


def normalize(
    orbit: Orbit,
    width: int,
    height: int,
    bounds: Optional[Bounds] = None,
) -> PixelPoints:
    """
    Map orbit points into the pixel grid.

    Args:
        orbit: Orbit, already post-transformed.
        width: Target raster width.
        height: Target raster height.
        bounds: Extrema to scale against. Defaults to the orbit's own
            extrema; pass a shared box to place several orbits in one frame.

    Returns:
        PixelPoints with ``px = round((x - min_x) / (max_x - min_x) * width)``
        and ``py = height - round((y - min_y) / (max_y - min_y) * height)``.
        A degenerate axis maps every point to normalized 0.
    """
    if len(orbit) == 0:
        empty = np.empty(0, dtype=np.int32)
        return PixelPoints(empty, empty.copy(), np.empty(0, dtype=np.intp))

    if bounds is None:
        bounds = Bounds.of(orbit)

    degenerate = bounds.degenerate_axes
    if degenerate:
        warnings.warn(
            f"orbit collapsed on axis {', '.join(degenerate)}; mapping to 0",
            DegenerateBoundsWarning,
            stacklevel=2,
        )

    px = _scale_axis(orbit.xs, bounds.min_x, bounds.max_x, width)
    py = height - _scale_axis(orbit.ys, bounds.min_y, bounds.max_y, height)
    return PixelPoints(px, py.astype(np.int32), orbit.indices)
