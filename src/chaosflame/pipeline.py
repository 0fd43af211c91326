"""
Main flame rendering pipeline.

Orchestrates one worker's flow from transform set to global histogram
(sample, post-transform, normalize, accumulate, merge) and runs a group of
in-process workers against a thread collective.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np

from chaosflame.core.histogram import AccumulationMode, Histogram, HistogramAccumulator, MergePolicy
from chaosflame.core.normalizer import EMPTY_BOUNDS, Bounds, normalize
from chaosflame.core.sampler import WARMUP, ChaosGameSampler, Orbit
from chaosflame.core.transforms import AffineMap, TransformSet, recentering
from chaosflame.distributed.comm import DEFAULT_TIMEOUT, Communicator, ThreadGroup
from chaosflame.distributed.merger import DistributedMerger
from chaosflame.errors import CollectiveStallError, ConfigurationError
from chaosflame.io.rasterizer import BLACK, rasterize

logger = logging.getLogger(__name__)


@dataclass
class FlameConfig:
    """Run configuration for a flame render."""

    width: int = 1600
    height: int = 1200
    iterations: int = 1_000_000
    warmup: int = WARMUP

    # Randomness: one root seed, or an explicit seed per rank
    seed: Optional[int] = None
    rank_seeds: Optional[Sequence[int]] = None

    # Parallelism
    workers: int = 1
    local_tasks: int = 1
    timeout: Optional[float] = DEFAULT_TIMEOUT

    # Reduction behavior. Defaults reproduce the reference output.
    accumulation: AccumulationMode = AccumulationMode.LEGACY
    merge_policy: MergePolicy = MergePolicy.FIRST_WINS
    # Fold of one worker's local_tasks slices; None sums hits and halves colors
    local_merge_policy: Optional[MergePolicy] = None
    shared_bounds: bool = False

    # Shift the orbit into non-negative coordinates before normalizing
    recenter: bool = True

    background: Tuple[float, float, float] = BLACK

    def validate(self) -> "FlameConfig":
        if self.width < 1 or self.height < 1:
            raise ConfigurationError(f"image size must be positive, got {self.width}x{self.height}")
        if self.iterations < 0 or self.warmup < 0:
            raise ConfigurationError("iterations and warmup must be >= 0")
        if self.workers < 1 or self.local_tasks < 1:
            raise ConfigurationError("workers and local_tasks must be >= 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        if self.rank_seeds is not None and len(self.rank_seeds) != self.workers:
            raise ConfigurationError(
                f"rank_seeds has {len(self.rank_seeds)} seeds for {self.workers} workers"
            )
        try:
            self.accumulation = AccumulationMode(self.accumulation)
            self.merge_policy = MergePolicy(self.merge_policy)
            if self.local_merge_policy is not None:
                self.local_merge_policy = MergePolicy(self.local_merge_policy)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from None
        return self

    def corrected(self) -> "FlameConfig":
        """Copy using true-mean colors, summed hits and one shared bounding box."""
        return replace(
            self,
            accumulation=AccumulationMode.MEAN,
            merge_policy=MergePolicy.WEIGHTED,
            local_merge_policy=MergePolicy.WEIGHTED,
            shared_bounds=True,
        )


class FlamePipeline:
    """
    Transform set to global histogram.

    Every worker runs ``run_worker`` with its own communicator; all workers
    return the same global histogram.
    """

    def __init__(
        self,
        transform_set: TransformSet,
        config: Optional[FlameConfig] = None,
        post_transform: Optional[AffineMap] = None,
    ):
        self.transform_set = transform_set
        self.cfg = (config or FlameConfig()).validate()
        self.post_transform = post_transform

    def seed_for_rank(self, rank: int, size: int) -> np.random.SeedSequence:
        if self.cfg.rank_seeds is not None:
            return np.random.SeedSequence(self.cfg.rank_seeds[rank])
        return np.random.SeedSequence(self.cfg.seed).spawn(size)[rank]

    def _gather_bounds(self, comm: Communicator, orbit: Orbit) -> Optional[Bounds]:
        local = Bounds.of(orbit)
        row = local.to_array() if local is not None else EMPTY_BOUNDS
        gathered = comm.allgather_fixed(row)
        return Bounds.union(Bounds.from_array(r) for r in gathered)

    def _post_transform_for(self, comm: Communicator, orbit: Orbit) -> Optional[AffineMap]:
        if self.post_transform is not None:
            return self.post_transform
        if not self.cfg.recenter:
            return None
        if self.cfg.shared_bounds:
            raw = self._gather_bounds(comm, orbit)
            if raw is None:
                return None
            return recentering(raw.min_x, raw.min_y)
        return recentering(*orbit.minima())

    def sample(self, rank: int = 0, size: int = 1, seed: Optional[np.random.SeedSequence] = None) -> Orbit:
        if seed is None:
            seed, _ = self.seed_for_rank(rank, size).spawn(2)
        sampler = ChaosGameSampler(
            self.transform_set,
            self.cfg.iterations,
            rng=np.random.default_rng(seed),
            warmup=self.cfg.warmup,
            rank=rank,
            size=size,
        )
        return sampler.run()

    def local_histogram(self, comm: Communicator) -> Histogram:
        """Sample, post-transform, normalize and accumulate one worker's orbit."""
        cfg = self.cfg
        t0 = time.time()
        sample_seed, color_seed = self.seed_for_rank(comm.rank, comm.size).spawn(2)
        orbit = self.sample(comm.rank, comm.size, sample_seed)

        post = self._post_transform_for(comm, orbit)
        if post is not None:
            orbit = orbit.apply(post)

        if cfg.shared_bounds:
            bounds = self._gather_bounds(comm, orbit)
        else:
            bounds = Bounds.of(orbit)
        pixels = normalize(orbit, cfg.width, cfg.height, bounds)

        accumulator = HistogramAccumulator(
            self.transform_set,
            mode=cfg.accumulation,
            rng=np.random.default_rng(color_seed),
            tasks=cfg.local_tasks,
            merge_policy=cfg.local_merge_policy or MergePolicy.BLEND,
        )
        histogram = accumulator.accumulate(pixels)
        logger.info(
            "rank %d: %d points -> %d pixels in %.2fs",
            comm.rank, len(orbit), len(histogram), time.time() - t0,
        )
        return histogram

    def run_worker(self, comm: Communicator) -> Histogram:
        """Full per-worker flow. Aborts the group if this worker fails."""
        try:
            local = self.local_histogram(comm)
            return DistributedMerger(comm, self.cfg.merge_policy).run(local)
        except Exception:
            logger.error("rank %d failed; aborting group", comm.rank)
            comm.abort()
            raise

    def render(self) -> Histogram:
        """Run ``cfg.workers`` thread workers and return the global histogram."""
        group = ThreadGroup(self.cfg.workers, timeout=self.cfg.timeout)
        with ThreadPoolExecutor(max_workers=self.cfg.workers) as pool:
            futures = [pool.submit(self.run_worker, comm) for comm in group.communicators()]
            errors: List[BaseException] = [f.exception() for f in futures]

        failures = [e for e in errors if e is not None]
        if failures:
            # Prefer the worker's own failure over the stalls it caused in peers
            root = next((e for e in failures if not isinstance(e, CollectiveStallError)), failures[0])
            raise root
        return futures[0].result()

    def render_image(self, histogram: Optional[Histogram] = None) -> np.ndarray:
        if histogram is None:
            histogram = self.render()
        return rasterize(histogram, self.cfg.width, self.cfg.height, self.cfg.background)


def print_histogram(histogram: Histogram, limit: Optional[int] = None):
    """Dump histogram entries to stdout, sorted by pixel."""
    for i, key in enumerate(sorted(histogram)):
        if limit is not None and i >= limit:
            print(f"... {len(histogram) - limit} more")
            break
        entry = histogram[key]
        r, g, b = entry.color
        print(f"Pixel ({key[0]}, {key[1]}): Color ({r:.2f}, {g:.2f}, {b:.2f}), Hits: {entry.hits}")
