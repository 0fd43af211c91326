"""
Built-in transform sets.
"""

from typing import Callable, Dict, List

from chaosflame.core.transforms import AffineMap, Transform, TransformSet, color_map
from chaosflame.core.variations import Variation, VariationKind
from chaosflame.errors import ConfigurationError


def fern4() -> TransformSet:
    """Four linear maps, colored along the blue-red ramp."""
    rows = [
        # a, b, c, d, e, f, weight, ramp
        (-0.870, -0.100, -0.930, -0.350, 0.500, -0.500, 0.370, 0.1),
        (0.590, -0.620, -0.800, -0.110, 0.100, -0.900, 0.570, 0.3),
        (-0.056, 0.310, 0.920, 0.170, 0.000, -0.100, 0.022, 0.5),
        (0.910, -0.190, 0.330, 0.240, -0.600, 0.900, 0.058, 0.7),
    ]
    return TransformSet(
        [Transform(AffineMap(*r[:6]), (), r[6], color_map(r[7])) for r in rows],
        name="fern4",
    )


def pentagon() -> TransformSet:
    """Five-fold rotational set with an exponential/cosine leaf."""
    identity = (Variation(VariationKind.IDENTITY),)
    rows = [
        ((-0.223797, 0.807016, 0.405636, 0.0169888, 0.609383, 0.242596), 0.5,
         (Variation(VariationKind.EXPONENTIAL, 0.223734), Variation(VariationKind.COSINE, 0.776266)),
         (179, 201, 158)),
        ((-0.41212, 0.506177, 0.64082, 0.197125, 0.458698, -0.850915), 0.5, identity, (91, 149, 116)),
        ((-1.0, 0.0, 0.0, 1.0, 0.0, 0.0), 1.0, identity, (155, 200, 143)),
        ((-0.809017, 0.587785, -0.587785, -0.809017, 0.0, 0.0), 1.0, identity, (137, 189, 128)),
        ((-0.809017, -0.587785, 0.587785, -0.809017, 0.0, 0.0), 1.0, identity, (254, 191, 42)),
        ((0.309017, 0.951057, -0.951057, 0.309017, 0.0, 0.0), 1.0, identity, (210, 110, 0)),
        ((0.309017, -0.951057, 0.951057, 0.309017, 0.0, 0.0), 1.0, identity, (252, 202, 64)),
    ]
    return TransformSet(
        [
            Transform(AffineMap(*affine), variations, weight, tuple(c / 255.0 for c in rgb))
            for affine, weight, variations, rgb in rows
        ],
        name="pentagon",
    )


def showcase() -> TransformSet:
    """One transform per nonlinear variation, for eyeballing each warp."""
    kinds = [
        VariationKind.SINUSOIDAL,
        VariationKind.SPHERICAL,
        VariationKind.SWIRL,
        VariationKind.HORSESHOE,
        VariationKind.POPCORN,
    ]
    transforms = [
        Transform(
            AffineMap(0.5, 0.0, 0.1 * i, 0.0, 0.5, -0.1 * i),
            (Variation(kind),),
            1.0,
            color_map(i / (len(kinds) - 1)),
        )
        for i, kind in enumerate(kinds)
    ]
    return TransformSet(transforms, name="showcase")


PRESETS: Dict[str, Callable[[], TransformSet]] = {
    "fern4": fern4,
    "pentagon": pentagon,
    "showcase": showcase,
}


def preset_names() -> List[str]:
    return sorted(PRESETS)


def load_preset(name: str) -> TransformSet:
    try:
        factory = PRESETS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown preset '{name}' (known: {', '.join(preset_names())})") from None
    return factory()
