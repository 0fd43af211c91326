"""
JSON flame files.

Schema::

    {
      "name": "optional label",
      "transforms": [
        {"affine": [a, b, c, d, e, f],
         "variations": ["exponential:0.22", "cosine:0.78"],
         "weight": 0.5,
         "color": [r, g, b]}
      ],
      "post_transform": [a, b, c, d, e, f]
    }

``variations`` defaults to identity, ``weight`` to 1.0. Colors may be given
in [0, 1] or, with ``"color_scale": 255``, as 8-bit values.
"""

import json
import math
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from chaosflame.core.transforms import AffineMap, Transform, TransformSet
from chaosflame.core.variations import Variation
from chaosflame.errors import ConfigurationError


def _affine(values, where: str) -> AffineMap:
    try:
        coeffs = [float(v) for v in values]
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where}: affine must be a list of 6 numbers") from None
    if len(coeffs) != 6:
        raise ConfigurationError(f"{where}: affine needs 6 coefficients, got {len(coeffs)}")
    return AffineMap(*coeffs)


def transform_from_dict(data: Dict[str, Any], color_scale: float = 1.0, where: str = "transform") -> Transform:
    if "affine" not in data:
        raise ConfigurationError(f"{where}: missing 'affine'")
    variations = tuple(Variation.parse(str(token)) for token in data.get("variations", []))
    color = data.get("color", [1.0, 1.0, 1.0])
    try:
        color = tuple(float(c) / color_scale for c in color)
        weight = float(data.get("weight", 1.0))
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where}: color and weight must be numeric") from None
    return Transform(_affine(data["affine"], where), variations, weight, color)


def transform_set_from_dict(data: Dict[str, Any]) -> Tuple[TransformSet, Optional[AffineMap]]:
    """Build a transform set and optional post transform from parsed JSON."""
    if not isinstance(data, dict) or not isinstance(data.get("transforms"), list):
        raise ConfigurationError("flame must be an object with a 'transforms' list")
    try:
        color_scale = float(data.get("color_scale", 1.0))
    except (TypeError, ValueError):
        raise ConfigurationError("color_scale must be a number") from None
    if not (math.isfinite(color_scale) and color_scale > 0):
        raise ConfigurationError(f"color_scale must be positive, got {color_scale}")
    transforms = [
        transform_from_dict(t, color_scale, where=f"transforms[{i}]")
        for i, t in enumerate(data["transforms"])
    ]
    post = data.get("post_transform")
    post_transform = _affine(post, "post_transform") if post is not None else None
    return TransformSet(transforms, name=data.get("name")), post_transform


def transform_set_to_dict(
    transform_set: TransformSet,
    post_transform: Optional[AffineMap] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if transform_set.name:
        data["name"] = transform_set.name
    data["transforms"] = [
        {
            "affine": list(t.affine.coefficients),
            "variations": [v.to_token() for v in t.variations],
            "weight": t.weight,
            "color": list(t.color),
        }
        for t in transform_set
    ]
    if post_transform is not None:
        data["post_transform"] = list(post_transform.coefficients)
    return data


def load_flame(path: Union[str, Path]) -> Tuple[TransformSet, Optional[AffineMap]]:
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path}: invalid JSON ({exc})") from exc
    return transform_set_from_dict(data)


def save_flame(
    transform_set: TransformSet,
    path: Union[str, Path],
    post_transform: Optional[AffineMap] = None,
) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(transform_set_to_dict(transform_set, post_transform), f, indent=2)
    return path
