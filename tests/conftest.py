"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from chaosflame.core.transforms import AffineMap, Transform, TransformSet
from chaosflame.core.variations import Variation, VariationKind

RED = (1.0, 0.0, 0.0)
GREEN = (0.0, 1.0, 0.0)
BLUE = (0.0, 0.0, 1.0)


@pytest.fixture
def rng() -> np.random.Generator:
    """Reproducible random stream."""
    return np.random.default_rng(42)


@pytest.fixture
def identity_set() -> TransformSet:
    """
    Single identity transform colored red.

    Every orbit under this set stays at its starting point.
    """
    return TransformSet([
        Transform(AffineMap.identity(), (Variation(VariationKind.IDENTITY),), 1.0, RED),
    ])


@pytest.fixture
def rgb_set() -> TransformSet:
    """Three contracting maps toward different corners, colored R, G, B."""
    return TransformSet([
        Transform(AffineMap(0.5, 0.0, 0.0, 0.0, 0.5, 0.0), (), 1.0, RED),
        Transform(AffineMap(0.5, 0.0, 0.5, 0.0, 0.5, 0.0), (), 1.0, GREEN),
        Transform(AffineMap(0.5, 0.0, 0.25, 0.0, 0.5, 0.5), (), 1.0, BLUE),
    ])
