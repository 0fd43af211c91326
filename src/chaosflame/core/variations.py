"""
Nonlinear variations applied after a transform's affine map.

The variation set is closed; dispatch is a single if/elif chain over
VariationKind rather than per-variation classes.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Tuple

from chaosflame.errors import ConfigurationError, NumericDegeneracy

# Substituted for r when a variation divides by a zero radius
EPSILON = 1e-12


class VariationKind(str, Enum):
    IDENTITY = "identity"
    SINUSOIDAL = "sinusoidal"
    SPHERICAL = "spherical"
    SWIRL = "swirl"
    HORSESHOE = "horseshoe"
    POPCORN = "popcorn"
    EXPONENTIAL = "exponential"
    COSINE = "cosine"


# Integer code per kind for the compiled kernels; -1 pads unused slots
KIND_CODES = {kind: code for code, kind in enumerate(VariationKind)}
NO_VARIATION = -1

# Kinds whose formula takes a scale parameter
SCALED_KINDS = frozenset({VariationKind.EXPONENTIAL, VariationKind.COSINE})

# "linear" is the name used by most flame editors for the identity warp
_ALIASES = {"linear": VariationKind.IDENTITY}


@dataclass(frozen=True)
class Variation:
    """A variation kind plus its scale (only used by scaled kinds)."""

    kind: VariationKind
    scale: float = 1.0

    def __post_init__(self):
        if not isinstance(self.kind, VariationKind):
            object.__setattr__(self, "kind", _lookup_kind(self.kind))
        try:
            object.__setattr__(self, "scale", float(self.scale))
        except (TypeError, ValueError):
            raise ConfigurationError(f"Variation scale must be a number, got {self.scale!r}") from None
        if not math.isfinite(self.scale):
            raise ConfigurationError(f"Variation scale must be finite, got {self.scale}")

    @classmethod
    def parse(cls, token: str) -> "Variation":
        """
        Parse a variation token such as ``"swirl"`` or ``"cosine:0.77"``.
        """
        name, _, scale = token.strip().partition(":")
        kind = _lookup_kind(name)
        if scale:
            if kind not in SCALED_KINDS:
                raise ConfigurationError(f"Variation '{kind.value}' takes no scale")
            try:
                return cls(kind, float(scale))
            except ValueError:
                raise ConfigurationError(f"Bad variation scale in '{token}'") from None
        return cls(kind)

    def to_token(self) -> str:
        if self.kind in SCALED_KINDS:
            return f"{self.kind.value}:{self.scale!r}"
        return self.kind.value


def _lookup_kind(name) -> VariationKind:
    key = str(name).strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return VariationKind(key)
    except ValueError:
        known = ", ".join(k.value for k in VariationKind)
        raise ConfigurationError(f"Unknown variation '{name}' (known: {known})") from None


def apply_variations(
    x: float,
    y: float,
    variations: Sequence[Variation],
    c: float = 0.0,
    f: float = 0.0,
) -> Tuple[float, float]:
    """
    Run a point through a variation sequence.

    Args:
        x, y: Point after the affine map.
        variations: Applied in order, each consuming the previous output.
        c, f: Translation terms of the owning affine map (used by popcorn).

    Returns:
        The warped point.

    Raises:
        NumericDegeneracy: If the result is not finite.
    """
    try:
        for variation in variations:
            x, y = _apply_one(x, y, variation, c, f)
    except (OverflowError, ValueError) as exc:
        # math.* raises on inf/nan inputs and on exp overflow
        raise NumericDegeneracy(f"variation failed at ({x}, {y}): {exc}") from None

    if not (math.isfinite(x) and math.isfinite(y)):
        raise NumericDegeneracy(f"variation produced non-finite point ({x}, {y})")
    return x, y


def _apply_one(x: float, y: float, variation: Variation, c: float, f: float) -> Tuple[float, float]:
    kind = variation.kind
    r = math.sqrt(x * x + y * y)

    if kind is VariationKind.IDENTITY:
        return x, y
    if kind is VariationKind.SINUSOIDAL:
        return math.sin(x), math.sin(y)
    if kind is VariationKind.SPHERICAL:
        r2 = max(r, EPSILON) ** 2
        return x / r2, y / r2
    if kind is VariationKind.SWIRL:
        sin_r, cos_r = math.sin(r), math.cos(r)
        return x * sin_r - y * cos_r, x * cos_r + y * sin_r
    if kind is VariationKind.HORSESHOE:
        r = max(r, EPSILON)
        return (x - y) / r, (x + y) / r
    if kind is VariationKind.POPCORN:
        return x + c * math.sin(math.tan(3.0 * y)), y + f * math.sin(math.tan(3.0 * x))
    if kind is VariationKind.EXPONENTIAL:
        return (
            math.exp(x) * variation.scale * math.cos(x),
            math.exp(y) * variation.scale * math.sin(y),
        )
    if kind is VariationKind.COSINE:
        # y output scales by x as well
        return (
            math.cos(math.pi * x) * variation.scale * x,
            math.cos(math.pi * y) * variation.scale * x,
        )
    raise ConfigurationError(f"Unhandled variation {kind}")  # pragma: no cover
