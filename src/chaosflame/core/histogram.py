"""
Per-pixel color + density histogram and its merge policies.

The reference accumulation rule halves toward each new contributor's color
(an exponentially decaying running average, seeded from one random
reference color per build). MEAN mode replaces it with a true running mean.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Tuple

import numpy as np

from chaosflame.core.kernels import accumulate_kernel, pixel_slots
from chaosflame.core.normalizer import PixelPoints
from chaosflame.core.transforms import RGB, TransformSet, color_map
from chaosflame.errors import ConfigurationError

PixelCoord = Tuple[int, int]


@dataclass
class HistogramEntry:
    color: RGB
    hits: int = 0

    def __eq__(self, other):
        if not isinstance(other, HistogramEntry):
            return NotImplemented
        return self.hits == other.hits and tuple(self.color) == tuple(other.color)


class Histogram:
    """Mapping of pixel coordinate to HistogramEntry."""

    def __init__(self, entries: Optional[Dict[PixelCoord, HistogramEntry]] = None):
        self.entries: Dict[PixelCoord, HistogramEntry] = dict(entries or {})

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key) -> bool:
        return key in self.entries

    def __getitem__(self, key: PixelCoord) -> HistogramEntry:
        return self.entries[key]

    def __iter__(self) -> Iterator[PixelCoord]:
        return iter(self.entries)

    def __eq__(self, other):
        if not isinstance(other, Histogram):
            return NotImplemented
        return self.entries == other.entries

    def __repr__(self) -> str:
        return f"<Histogram {len(self)} pixels, {self.total_hits} hits>"

    def items(self):
        return self.entries.items()

    @property
    def max_hits(self) -> int:
        return max((e.hits for e in self.entries.values()), default=0)

    @property
    def total_hits(self) -> int:
        return sum(e.hits for e in self.entries.values())

    def copy(self) -> "Histogram":
        return Histogram({k: HistogramEntry(v.color, v.hits) for k, v in self.entries.items()})


def _halve(a: RGB, b: RGB) -> RGB:
    return ((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0, (a[2] + b[2]) / 2.0)


class AccumulationMode(str, Enum):
    LEGACY = "legacy"  # halving blend seeded by a random reference color
    MEAN = "mean"  # true running mean of contributor colors


class MergePolicy(str, Enum):
    FIRST_WINS = "first_wins"  # first histogram to reach a pixel keeps it
    BLEND = "blend"  # sum hits, halve colors
    WEIGHTED = "weighted"  # sum hits, hit-weighted mean color


def merge_into(acc: Histogram, other: Histogram, policy: MergePolicy) -> Histogram:
    """Fold ``other`` into ``acc`` in place and return ``acc``."""
    policy = MergePolicy(policy)
    entries = acc.entries
    for key, incoming in other.items():
        current = entries.get(key)
        if current is None:
            entries[key] = HistogramEntry(tuple(incoming.color), incoming.hits)
        elif policy is MergePolicy.FIRST_WINS:
            continue
        elif policy is MergePolicy.BLEND:
            current.hits += incoming.hits
            current.color = _halve(current.color, incoming.color)
        else:
            total = current.hits + incoming.hits
            if total > 0:
                wa, wb = current.hits / total, incoming.hits / total
                current.color = tuple(
                    ca * wa + cb * wb for ca, cb in zip(current.color, incoming.color)
                )
            current.hits = total
    return acc


def reduce_histograms(histograms: Iterable[Histogram], policy: MergePolicy) -> Histogram:
    """Merge histograms in iteration order into a new histogram."""
    result = Histogram()
    for histogram in histograms:
        merge_into(result, histogram, policy)
    return result


class HistogramAccumulator:
    """
    Folds pixel-tagged points into a Histogram.

    With ``tasks > 1`` the points are cut into disjoint contiguous slices,
    each accumulated into a private histogram on a thread pool, then folded
    in slice order with ``merge_policy``.
    """

    def __init__(
        self,
        transform_set: TransformSet,
        mode: AccumulationMode = AccumulationMode.LEGACY,
        rng: Optional[np.random.Generator] = None,
        tasks: int = 1,
        merge_policy: MergePolicy = MergePolicy.BLEND,
    ):
        if tasks < 1:
            raise ConfigurationError(f"tasks must be >= 1, got {tasks}")
        self.transform_set = transform_set
        self.mode = AccumulationMode(mode)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.tasks = tasks
        self.merge_policy = MergePolicy(merge_policy)

    def reference_color(self) -> RGB:
        """One random ramp color, drawn once per histogram build."""
        return color_map(self.rng.uniform(0.0, 1.0))

    def accumulate(self, points: PixelPoints) -> Histogram:
        reference = self.reference_color() if self.mode is AccumulationMode.LEGACY else None

        if self.tasks == 1 or len(points) < 2 * self.tasks:
            return self._accumulate_slice(points, reference)

        bounds = np.linspace(0, len(points), self.tasks + 1).astype(int)
        slices = [points.slice(lo, hi) for lo, hi in zip(bounds[:-1], bounds[1:])]
        with ThreadPoolExecutor(max_workers=self.tasks) as pool:
            partials = list(pool.map(lambda s: self._accumulate_slice(s, reference), slices))
        return reduce_histograms(partials, self.merge_policy)

    def _accumulate_slice(self, points: PixelPoints, reference: Optional[RGB]) -> Histogram:
        if len(points) == 0:
            return Histogram()
        xs, ys, slots = pixel_slots(points.px, points.py)
        colors = np.zeros((len(xs), 3), dtype=np.float64)
        hits = np.zeros(len(xs), dtype=np.int64)
        legacy = reference is not None
        accumulate_kernel(
            slots,
            np.asarray(points.indices, dtype=np.int64),
            self.transform_set.colors,
            np.asarray(reference if legacy else (0.0, 0.0, 0.0), dtype=np.float64),
            legacy,
            colors,
            hits,
        )
        return Histogram({
            (x, y): HistogramEntry(tuple(rgb), h)
            for x, y, rgb, h in zip(xs.tolist(), ys.tolist(), colors.tolist(), hits.tolist())
        })
