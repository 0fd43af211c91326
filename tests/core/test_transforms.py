"""Tests for affine maps, transforms and weighted selection."""

import numpy as np
import pytest

from chaosflame.core.transforms import (
    AffineMap,
    Transform,
    TransformSet,
    color_map,
    recentering,
)
from chaosflame.errors import ConfigurationError


class TestAffineMap:
    def test_apply(self):
        m = AffineMap(1.0, 2.0, 3.0, 4.0, 5.0, 6.0)
        assert m.apply(1.0, 1.0) == (6.0, 15.0)

    def test_apply_array_matches_scalar(self):
        m = AffineMap(-0.87, -0.1, -0.93, -0.35, 0.5, -0.5)
        xs = np.array([0.1, -0.4, 2.0])
        ys = np.array([0.3, 0.7, -1.0])
        ax, ay = m.apply_array(xs, ys)
        for i in range(3):
            sx, sy = m.apply(xs[i], ys[i])
            assert ax[i] == pytest.approx(sx)
            assert ay[i] == pytest.approx(sy)

    def test_recentering_shifts_by_magnitude(self):
        post = recentering(-2.5, 1.5)
        assert post.apply(-2.5, 0.0) == (0.0, 1.5)

    def test_rejects_non_finite(self):
        with pytest.raises(ConfigurationError):
            AffineMap(float("nan"))


class TestTransform:
    def test_color_out_of_range(self):
        with pytest.raises(ConfigurationError):
            Transform(color=(179.0, 201.0, 158.0))

    def test_negative_weight(self):
        with pytest.raises(ConfigurationError):
            Transform(weight=-0.1)


class TestTransformSet:
    def test_empty_fails(self):
        with pytest.raises(ConfigurationError):
            TransformSet([])

    def test_all_zero_weights_fail(self):
        with pytest.raises(ConfigurationError):
            TransformSet([Transform(weight=0.0), Transform(weight=0.0)])

    def test_zero_weight_never_selected(self, rng):
        ts = TransformSet([Transform(weight=0.0), Transform(weight=2.0)])
        picks = ts.select_many(rng, 1000)
        assert set(picks.tolist()) == {1}

    def test_probabilities_normalized(self):
        ts = TransformSet([Transform(weight=1.0), Transform(weight=3.0)])
        np.testing.assert_allclose(ts.probabilities, [0.25, 0.75])

    def test_probabilities_read_only(self):
        ts = TransformSet([Transform(weight=1.0)])
        with pytest.raises(ValueError):
            ts.probabilities[0] = 0.5

    def test_select_frequencies_converge(self, rng):
        weights = [0.37, 0.57, 0.022, 0.058]
        ts = TransformSet([Transform(weight=w) for w in weights])
        n = 200_000
        counts = np.bincount(ts.select_many(rng, n), minlength=4)
        np.testing.assert_allclose(counts / n, np.array(weights) / sum(weights), atol=0.005)

    def test_single_select_frequencies(self, rng):
        ts = TransformSet([Transform(weight=1.0), Transform(weight=4.0)])
        picks = [ts.select(rng) for _ in range(5000)]
        assert picks.count(1) / 5000 == pytest.approx(0.8, abs=0.03)

    def test_indexing_and_len(self, rgb_set):
        assert len(rgb_set) == 3
        assert rgb_set[1].color == (0.0, 1.0, 0.0)
        assert rgb_set.colors.shape == (3, 3)


class TestColorMap:
    def test_endpoints(self):
        assert color_map(0.0) == (0.0, 0.0, 1.0)
        assert color_map(1.0) == (1.0, 0.0, 0.0)

    def test_clamped(self):
        assert color_map(-3.0) == color_map(0.0)
        assert color_map(7.0) == color_map(1.0)
