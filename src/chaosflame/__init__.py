"""
chaosflame: chaos game sampling and histogram aggregation for IFS flames.
"""

from chaosflame.core import (
    AccumulationMode,
    AffineMap,
    ChaosGameSampler,
    Histogram,
    HistogramAccumulator,
    HistogramEntry,
    MergePolicy,
    Transform,
    TransformSet,
    Variation,
    VariationKind,
)
from chaosflame.distributed import DistributedMerger, ThreadGroup
from chaosflame.errors import (
    CollectiveStallError,
    ConfigurationError,
    FlameError,
    NumericDegeneracy,
    SerializationError,
)
from chaosflame.pipeline import FlameConfig, FlamePipeline

__version__ = "0.1.0"
