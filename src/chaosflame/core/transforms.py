"""
Affine maps, weighted transforms and the transform set.

A TransformSet is built once, validated at construction, and then shared
read-only by every sampling worker.
"""

import math
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from chaosflame.core.variations import KIND_CODES, NO_VARIATION, Variation, apply_variations
from chaosflame.errors import ConfigurationError, NumericDegeneracy

RGB = Tuple[float, float, float]

# Endpoints of the default color ramp
RAMP_START: RGB = (0.0, 0.0, 1.0)  # blue
RAMP_END: RGB = (1.0, 0.0, 0.0)  # red


def color_map(value: float) -> RGB:
    """Map a scalar in [0, 1] (clamped) onto the blue-to-red ramp."""
    value = min(max(float(value), 0.0), 1.0)
    return tuple(s + value * (e - s) for s, e in zip(RAMP_START, RAMP_END))


@dataclass(frozen=True)
class AffineMap:
    """x' = a*x + b*y + c, y' = d*x + e*y + f"""

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 0.0
    e: float = 1.0
    f: float = 0.0

    def __post_init__(self):
        coeffs = self.coefficients
        if not all(math.isfinite(v) for v in coeffs):
            raise ConfigurationError(f"Affine coefficients must be finite, got {coeffs}")

    @property
    def coefficients(self) -> Tuple[float, ...]:
        return (self.a, self.b, self.c, self.d, self.e, self.f)

    @classmethod
    def identity(cls) -> "AffineMap":
        return cls()

    @classmethod
    def translation(cls, dx: float, dy: float) -> "AffineMap":
        return cls(c=dx, f=dy)

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        return (
            self.a * x + self.b * y + self.c,
            self.d * x + self.e * y + self.f,
        )

    def apply_array(self, xs: np.ndarray, ys: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorized apply over coordinate arrays."""
        return (
            self.a * xs + self.b * ys + self.c,
            self.d * xs + self.e * ys + self.f,
        )


def recentering(min_x: float, min_y: float) -> AffineMap:
    """
    Post transform that shifts an orbit by the magnitude of its minima.

    Moves an orbit whose minima are negative into non-negative coordinates.
    """
    return AffineMap.translation(abs(min_x), abs(min_y))


@dataclass(frozen=True)
class Transform:
    """One weighted IFS map: an affine map followed by a variation sequence."""

    affine: AffineMap = field(default_factory=AffineMap)
    variations: Tuple[Variation, ...] = ()
    weight: float = 1.0
    color: RGB = (1.0, 1.0, 1.0)

    def __post_init__(self):
        object.__setattr__(self, "variations", tuple(self.variations))
        object.__setattr__(self, "color", tuple(float(v) for v in self.color))

        if not math.isfinite(self.weight) or self.weight < 0:
            raise ConfigurationError(f"Transform weight must be finite and >= 0, got {self.weight}")
        if len(self.color) != 3 or not all(0.0 <= v <= 1.0 for v in self.color):
            raise ConfigurationError(f"Transform color must be an RGB triple in [0, 1], got {self.color}")

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        """Affine map, then the variations in order."""
        x, y = self.affine.apply(x, y)
        if not self.variations:
            if not (math.isfinite(x) and math.isfinite(y)):
                raise NumericDegeneracy(f"affine map produced non-finite point ({x}, {y})")
            return x, y
        return apply_variations(x, y, self.variations, self.affine.c, self.affine.f)


class TransformSet:
    """
    Ordered, non-empty collection of transforms with weighted selection.

    Weights need not sum to 1; they are normalized here. A transform's
    index in the set is the provenance tag carried by every sampled point.
    """

    def __init__(self, transforms: Sequence[Transform], name: Optional[str] = None):
        transforms = list(transforms)
        if not transforms:
            raise ConfigurationError("TransformSet needs at least one transform")

        weights = np.array([t.weight for t in transforms], dtype=np.float64)
        if np.any(weights < 0):
            raise ConfigurationError(f"Negative transform weight in {weights.tolist()}")
        total = float(weights.sum())
        if not total > 0:
            raise ConfigurationError("Transform weights must sum to a positive value")

        self.name = name
        self._transforms: List[Transform] = transforms
        self._probabilities = weights / total
        self._probabilities.setflags(write=False)
        self._colors = np.array([t.color for t in transforms], dtype=np.float64)
        self._colors.setflags(write=False)
        self._coefficients, self._variation_codes, self._variation_scales = _pack_tables(transforms)

    def __len__(self) -> int:
        return len(self._transforms)

    def __getitem__(self, index: int) -> Transform:
        return self._transforms[index]

    def __iter__(self) -> Iterator[Transform]:
        return iter(self._transforms)

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<TransformSet{label} with {len(self)} transforms>"

    @property
    def probabilities(self) -> np.ndarray:
        """Selection probability per transform index (read-only)."""
        return self._probabilities

    @property
    def colors(self) -> np.ndarray:
        """(N, 3) array of transform colors (read-only)."""
        return self._colors

    def select(self, rng: np.random.Generator) -> int:
        """Draw one transform index with probability weight_i / sum(weights)."""
        return int(rng.choice(len(self._transforms), p=self._probabilities))

    def select_many(self, rng: np.random.Generator, count: int) -> np.ndarray:
        """Draw ``count`` independent transform indices."""
        return rng.choice(len(self._transforms), size=count, p=self._probabilities)

    @property
    def kernel_tables(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        The set packed for the compiled sampling kernel.

        Returns:
            (coefficients, codes, scales): (N, 6) affine coefficients,
            (N, V) variation codes padded with NO_VARIATION, and (N, V)
            variation scales, where V is the longest variation sequence.
        """
        return self._coefficients, self._variation_codes, self._variation_scales


def _pack_tables(transforms: Sequence[Transform]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    width = max(1, max(len(t.variations) for t in transforms))
    coefficients = np.array([t.affine.coefficients for t in transforms], dtype=np.float64)
    codes = np.full((len(transforms), width), NO_VARIATION, dtype=np.int64)
    scales = np.ones((len(transforms), width), dtype=np.float64)
    for i, t in enumerate(transforms):
        for j, variation in enumerate(t.variations):
            codes[i, j] = KIND_CODES[variation.kind]
            scales[i, j] = variation.scale
    for table in (coefficients, codes, scales):
        table.setflags(write=False)
    return coefficients, codes, scales
