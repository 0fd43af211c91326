"""End-to-end tests for the flame pipeline."""

import warnings

import numpy as np
import pytest

from chaosflame.core.histogram import AccumulationMode, MergePolicy
from chaosflame.core.transforms import AffineMap
from chaosflame.distributed.comm import ThreadGroup
from chaosflame.errors import CollectiveStallError, ConfigurationError
from chaosflame.pipeline import FlameConfig, FlamePipeline
from chaosflame.presets import load_preset

RED = (1.0, 0.0, 0.0)


@pytest.fixture(autouse=True)
def _quiet_degenerate_bounds():
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        yield


class TestSingleWorker:
    def test_identity_collapses_to_one_pixel(self, identity_set):
        config = FlameConfig(width=10, height=10, iterations=1000, seed=3)
        hist = FlamePipeline(identity_set, config).render()
        assert len(hist) == 1
        key = next(iter(hist))
        assert key == (0, 10)
        assert hist[key].hits == 980
        assert hist[key].color == pytest.approx(RED, abs=1e-9)

    def test_local_tasks_keep_every_hit(self, rgb_set):
        config = FlameConfig(width=8, height=8, iterations=20020, seed=1, local_tasks=4)
        hist = FlamePipeline(rgb_set, config).render()
        assert hist.total_hits == 20000

    def test_local_tasks_match_serial_counts(self, rgb_set):
        serial = FlamePipeline(rgb_set, FlameConfig(width=16, height=16, iterations=6000, seed=8)).render()
        split = FlamePipeline(
            rgb_set, FlameConfig(width=16, height=16, iterations=6000, seed=8, local_tasks=3),
        ).render()
        assert set(split) == set(serial)
        assert all(split[k].hits == serial[k].hits for k in serial)

    def test_identity_pixel_is_drawn(self, identity_set):
        config = FlameConfig(width=10, height=10, iterations=1000, seed=3)
        image = FlamePipeline(identity_set, config).render_image()
        assert image.shape == (10, 10, 3)
        assert image[9, 0, 0] >= 254
        assert np.count_nonzero(image.any(axis=2)) == 1

    def test_seeded_runs_are_identical(self, rgb_set):
        config = FlameConfig(width=64, height=48, iterations=5000, seed=123)
        a = FlamePipeline(rgb_set, config).render()
        b = FlamePipeline(rgb_set, config).render()
        assert a == b

    def test_hits_account_for_every_point(self, rgb_set):
        config = FlameConfig(width=64, height=48, iterations=3000, seed=1)
        hist = FlamePipeline(rgb_set, config).render()
        assert hist.total_hits == 3000 - 20

    def test_pixels_within_frame(self, rgb_set):
        config = FlameConfig(width=32, height=24, iterations=4000, seed=2)
        hist = FlamePipeline(rgb_set, config).render()
        xs = [k[0] for k in hist]
        ys = [k[1] for k in hist]
        assert min(xs) >= 0 and max(xs) <= 32
        assert min(ys) >= 0 and max(ys) <= 24

    def test_explicit_post_transform(self, identity_set):
        config = FlameConfig(width=10, height=10, iterations=100, seed=3)
        pipeline = FlamePipeline(identity_set, config, post_transform=AffineMap.translation(5.0, 5.0))
        hist = pipeline.render()
        assert hist[(0, 10)].hits == 80

    def test_preset_renders(self):
        config = FlameConfig(width=80, height=60, iterations=20000, seed=4)
        hist = FlamePipeline(load_preset("fern4"), config).render()
        assert len(hist) > 50
        assert hist.max_hits > 1


class TestMultipleWorkers:
    def test_per_worker_hits_not_combined(self, identity_set):
        config = FlameConfig(
            width=10, height=10, iterations=2000, workers=2,
            rank_seeds=[1, 2], shared_bounds=True,
        )
        hist = FlamePipeline(identity_set, config).render()
        assert len(hist) == 2
        assert [hist[k].hits for k in sorted(hist)] == [980, 980]
        # Shared box puts the two constant orbits in opposite corners
        assert {k[0] for k in hist} == {0, 10}
        assert {k[1] for k in hist} == {0, 10}

    def test_local_bounds_overlap_first_wins(self, identity_set):
        config = FlameConfig(width=10, height=10, iterations=2000, workers=2, rank_seeds=[1, 2])
        hist = FlamePipeline(identity_set, config).render()
        # Both degenerate orbits land on the same corner; hits are not summed
        assert len(hist) == 1
        assert hist[(0, 10)].hits == 980

    def test_weighted_merge_sums_hits(self, identity_set):
        config = FlameConfig(
            width=10, height=10, iterations=2000, workers=2,
            rank_seeds=[1, 2], merge_policy=MergePolicy.WEIGHTED,
        )
        hist = FlamePipeline(identity_set, config).render()
        assert hist[(0, 10)].hits == 1960

    def test_deterministic_across_runs(self, rgb_set):
        config = FlameConfig(width=40, height=30, iterations=8000, workers=3, seed=99)
        first = FlamePipeline(rgb_set, config).render()
        assert FlamePipeline(rgb_set, config).render() == first

    def test_corrected_mode(self, rgb_set):
        config = FlameConfig(width=40, height=30, iterations=8000, workers=4, seed=5).corrected()
        hist = FlamePipeline(rgb_set, config).render()
        assert hist.total_hits == 8000 - 4 * 20

    def test_failing_worker_aborts_group(self, rgb_set, monkeypatch):
        config = FlameConfig(width=20, height=20, iterations=1000, workers=3, seed=1, timeout=30.0)
        pipeline = FlamePipeline(rgb_set, config)
        original = pipeline.local_histogram

        def flaky(comm):
            if comm.rank == 1:
                raise RuntimeError("worker crashed")
            return original(comm)

        monkeypatch.setattr(pipeline, "local_histogram", flaky)
        with pytest.raises(RuntimeError, match="worker crashed"):
            pipeline.render()

    def test_absent_worker_stalls_with_error(self, rgb_set):
        config = FlameConfig(width=20, height=20, iterations=500, workers=2, seed=1, timeout=0.3)
        pipeline = FlamePipeline(rgb_set, config)
        comm = ThreadGroup(2, timeout=0.3).communicator(0)
        with pytest.raises(CollectiveStallError):
            pipeline.run_worker(comm)


class TestFlameConfig:
    def test_defaults_reproduce_reference(self):
        cfg = FlameConfig()
        assert cfg.accumulation is AccumulationMode.LEGACY
        assert cfg.merge_policy is MergePolicy.FIRST_WINS
        assert cfg.shared_bounds is False

    def test_corrected(self):
        cfg = FlameConfig().corrected()
        assert cfg.accumulation is AccumulationMode.MEAN
        assert cfg.merge_policy is MergePolicy.WEIGHTED
        assert cfg.shared_bounds is True

    def test_string_enums_coerced(self):
        cfg = FlameConfig(accumulation="mean", merge_policy="blend").validate()
        assert cfg.accumulation is AccumulationMode.MEAN
        assert cfg.merge_policy is MergePolicy.BLEND

    @pytest.mark.parametrize("kwargs", [
        {"width": 0},
        {"iterations": -1},
        {"workers": 0},
        {"timeout": 0.0},
        {"merge_policy": "sum"},
        {"workers": 2, "rank_seeds": [1]},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            FlameConfig(**kwargs).validate()
