"""
Sampling and histogram engine: variations, transforms, chaos game,
normalization and accumulation.
"""

from chaosflame.core.histogram import (
    AccumulationMode,
    Histogram,
    HistogramAccumulator,
    HistogramEntry,
    MergePolicy,
    merge_into,
    reduce_histograms,
)
from chaosflame.core.normalizer import Bounds, PixelPoints, normalize
from chaosflame.core.sampler import WARMUP, ChaosGameSampler, Orbit, SamplerState
from chaosflame.core.transforms import AffineMap, Transform, TransformSet, color_map, recentering
from chaosflame.core.variations import Variation, VariationKind, apply_variations
