"""
Chaos game sampler.

The whole orbit is a single evolving point: every iteration picks a
transform at random, applies it to the current point, and (after warmup)
records the result tagged with the transform index. A step whose result
is not finite is dropped and the orbit continues from the last good point.
The step loop itself runs in ``kernels.orbit_kernel``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from chaosflame.core.kernels import orbit_kernel
from chaosflame.core.transforms import AffineMap, TransformSet
from chaosflame.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Iterations discarded while the orbit converges onto the attractor
WARMUP = 20

# Transform indices are pre-drawn in blocks of this size
SELECTION_CHUNK = 65536


class SamplerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    WARMING = "warming"
    SAMPLING = "sampling"
    DONE = "done"


@dataclass
class Orbit:
    """Recorded orbit points and the transform index that produced each."""

    xs: np.ndarray
    ys: np.ndarray
    indices: np.ndarray
    dropped: int = 0

    def __len__(self) -> int:
        return len(self.xs)

    @classmethod
    def empty(cls) -> "Orbit":
        return cls(
            np.empty(0, dtype=np.float64),
            np.empty(0, dtype=np.float64),
            np.empty(0, dtype=np.intp),
        )

    def apply(self, post_transform: AffineMap) -> "Orbit":
        """Return a new orbit with ``post_transform`` applied to every point."""
        xs, ys = post_transform.apply_array(self.xs, self.ys)
        return Orbit(xs, ys, self.indices.copy(), self.dropped)

    def minima(self) -> Tuple[float, float]:
        if len(self) == 0:
            return 0.0, 0.0
        return float(self.xs.min()), float(self.ys.min())


def iteration_range(iterations: int, rank: int = 0, size: int = 1) -> range:
    """Iterations owned by ``rank`` when ``iterations`` are split over ``size`` workers."""
    local = iterations // size
    start = rank * local
    return range(start, start + local)


class ChaosGameSampler:
    """
    Runs one worker's orbit.

    States move UNINITIALIZED -> WARMING -> SAMPLING -> DONE. Each worker
    warms up on its own first ``warmup`` iterations from its own random
    starting point; workers never share orbit state.
    """

    def __init__(
        self,
        transform_set: TransformSet,
        iterations: int,
        rng: Optional[np.random.Generator] = None,
        warmup: int = WARMUP,
        rank: int = 0,
        size: int = 1,
    ):
        if iterations < 0:
            raise ConfigurationError(f"iterations must be >= 0, got {iterations}")
        if warmup < 0:
            raise ConfigurationError(f"warmup must be >= 0, got {warmup}")
        if size < 1 or not 0 <= rank < size:
            raise ConfigurationError(f"invalid rank/size {rank}/{size}")

        self.transform_set = transform_set
        self.iterations = iterations
        self.rng = rng if rng is not None else np.random.default_rng()
        self.warmup = warmup
        self.rank = rank
        self.size = size
        self.state = SamplerState.UNINITIALIZED

    @property
    def iteration_range(self) -> range:
        return iteration_range(self.iterations, self.rank, self.size)

    def _random_point(self) -> Tuple[float, float]:
        x, y = self.rng.uniform(-1.0, 1.0, size=2)
        return float(x), float(y)

    def run(self) -> Orbit:
        """Iterate the chaos game and return the recorded orbit."""
        if self.state is not SamplerState.UNINITIALIZED:
            raise RuntimeError(f"sampler already ran (state={self.state.value})")

        total = len(self.iteration_range)
        kept = max(total - self.warmup, 0)
        xs = np.empty(kept, dtype=np.float64)
        ys = np.empty(kept, dtype=np.float64)
        indices = np.empty(kept, dtype=np.intp)

        coefficients, codes, scales = self.transform_set.kernel_tables
        x, y = self._random_point()
        self.state = SamplerState.WARMING if self.warmup > 0 else SamplerState.SAMPLING

        n = 0
        dropped = 0
        done = 0
        while done < total:
            chunk = self.transform_set.select_many(self.rng, min(SELECTION_CHUNK, total - done))
            x, y, n, chunk_dropped = orbit_kernel(
                chunk, coefficients, codes, scales, x, y, done, self.warmup, xs, ys, indices, n
            )
            dropped += chunk_dropped
            done += len(chunk)
            if done >= self.warmup:
                self.state = SamplerState.SAMPLING

        self.state = SamplerState.DONE
        if dropped:
            logger.info("worker %d dropped %d degenerate samples", self.rank, dropped)
        return Orbit(xs[:n], ys[:n], indices[:n], dropped)
