"""Tests for histogram accumulation and merge policies."""

import numpy as np
import pytest

from chaosflame.core.histogram import (
    AccumulationMode,
    Histogram,
    HistogramAccumulator,
    HistogramEntry,
    MergePolicy,
    merge_into,
    reduce_histograms,
)
from chaosflame.core.normalizer import PixelPoints

RED = (1.0, 0.0, 0.0)
GREEN = (0.0, 1.0, 0.0)
BLUE = (0.0, 0.0, 1.0)


def _points(coords, indices):
    px = np.array([c[0] for c in coords], dtype=np.int32)
    py = np.array([c[1] for c in coords], dtype=np.int32)
    return PixelPoints(px, py, np.array(indices, dtype=np.intp))


class _FixedAccumulator(HistogramAccumulator):
    """Accumulator with a known reference color."""

    def __init__(self, *args, reference=GREEN, **kwargs):
        super().__init__(*args, **kwargs)
        self._reference = reference

    def reference_color(self):
        return self._reference


class TestLegacyAccumulation:
    def test_first_hit_blends_with_reference(self, rgb_set):
        acc = _FixedAccumulator(rgb_set, reference=GREEN)
        hist = acc.accumulate(_points([(1, 1)], [0]))
        assert hist[(1, 1)] == HistogramEntry((0.5, 0.5, 0.0), 1)

    def test_later_hits_halve_toward_new_color(self, rgb_set):
        acc = _FixedAccumulator(rgb_set, reference=GREEN)
        hist = acc.accumulate(_points([(1, 1), (1, 1), (1, 1)], [0, 2, 2]))
        entry = hist[(1, 1)]
        assert entry.hits == 3
        # (G+R)/2 -> ((G+R)/2 + B)/2 -> (that + B)/2
        assert entry.color == pytest.approx((0.125, 0.125, 0.75))

    def test_reference_drawn_once_per_build(self, rgb_set):
        acc = HistogramAccumulator(rgb_set, rng=np.random.default_rng(9))
        hist = acc.accumulate(_points([(0, 0), (5, 5)], [0, 0]))
        assert hist[(0, 0)].color == hist[(5, 5)].color

    def test_hits_are_plain_counts(self, rgb_set):
        acc = HistogramAccumulator(rgb_set, rng=np.random.default_rng(0))
        coords = [(0, 0)] * 7 + [(2, 3)] * 4
        hist = acc.accumulate(_points(coords, [0, 1, 2] * 3 + [0, 1]))
        assert hist[(0, 0)].hits == 7
        assert hist[(2, 3)].hits == 4
        assert hist.total_hits == 11
        assert hist.max_hits == 7

    def test_single_color_converges(self, identity_set):
        acc = HistogramAccumulator(identity_set, rng=np.random.default_rng(0))
        hist = acc.accumulate(_points([(4, 4)] * 200, [0] * 200))
        assert hist[(4, 4)].color == pytest.approx(RED, abs=1e-12)


class TestMeanAccumulation:
    def test_true_mean(self, rgb_set):
        acc = HistogramAccumulator(rgb_set, mode=AccumulationMode.MEAN)
        hist = acc.accumulate(_points([(0, 0)] * 4, [0, 0, 0, 2]))
        assert hist[(0, 0)].color == pytest.approx((0.75, 0.0, 0.25))

    def test_no_reference_color(self, rgb_set):
        acc = HistogramAccumulator(rgb_set, mode="mean")
        hist = acc.accumulate(_points([(3, 3)], [1]))
        assert hist[(3, 3)].color == GREEN


class TestMergePolicies:
    def _pair(self):
        a = Histogram({(0, 0): HistogramEntry(RED, 3), (1, 0): HistogramEntry(RED, 1)})
        b = Histogram({(0, 0): HistogramEntry(BLUE, 1), (2, 2): HistogramEntry(GREEN, 5)})
        return a, b

    def test_first_wins(self):
        a, b = self._pair()
        merged = reduce_histograms([a, b], MergePolicy.FIRST_WINS)
        assert merged[(0, 0)] == HistogramEntry(RED, 3)
        assert len(merged) == 3

    def test_first_wins_depends_only_on_order(self):
        a, b = self._pair()
        assert reduce_histograms([b, a], "first_wins")[(0, 0)] == HistogramEntry(BLUE, 1)

    def test_blend(self):
        a, b = self._pair()
        merged = reduce_histograms([a, b], MergePolicy.BLEND)
        assert merged[(0, 0)] == HistogramEntry((0.5, 0.0, 0.5), 4)

    def test_weighted(self):
        a, b = self._pair()
        merged = reduce_histograms([a, b], MergePolicy.WEIGHTED)
        assert merged[(0, 0)].hits == 4
        assert merged[(0, 0)].color == pytest.approx((0.75, 0.0, 0.25))
        assert merged[(2, 2)] == HistogramEntry(GREEN, 5)

    def test_inputs_not_mutated(self):
        a, b = self._pair()
        before = a.copy()
        reduce_histograms([a, b], MergePolicy.WEIGHTED)
        assert a == before

    def test_merge_into_returns_accumulator(self):
        a, b = self._pair()
        assert merge_into(a, b, MergePolicy.BLEND) is a


class TestLocalTasks:
    def test_weighted_fan_out_matches_serial(self, rgb_set):
        rng = np.random.default_rng(11)
        n = 5000
        coords = list(zip(rng.integers(0, 8, n).tolist(), rng.integers(0, 8, n).tolist()))
        indices = rng.integers(0, 3, n).tolist()
        points = _points(coords, indices)

        serial = HistogramAccumulator(rgb_set, mode="mean").accumulate(points)
        parallel = HistogramAccumulator(
            rgb_set, mode="mean", tasks=4, merge_policy=MergePolicy.WEIGHTED,
        ).accumulate(points)

        assert set(serial) == set(parallel)
        for key in serial:
            assert parallel[key].hits == serial[key].hits
            assert parallel[key].color == pytest.approx(serial[key].color)

    def test_blend_fan_out_keeps_counts(self, rgb_set):
        points = _points([(0, 0)] * 100, [0] * 100)
        hist = HistogramAccumulator(rgb_set, tasks=4, merge_policy="blend").accumulate(points)
        assert hist[(0, 0)].hits == 100
