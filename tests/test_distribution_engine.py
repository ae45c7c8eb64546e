import math

import pytest

from reachability.errors import ConfigError
from reachability.models.domain import BucketKind
from reachability.schemas.distribution import DistributionConfig
from reachability.services.distribution import engine
from reachability.services.distribution.expected import distance_weight, expected_distribution


def _weights(buckets):
    return [bucket.total_weight for bucket in buckets]


def test_bucketize_with_width_closes_last_bucket():
    buckets = engine.bucketize([(5, 10), (15, 20), (20, 1)], {"bucket_width": 10})

    assert [(bucket.range_start, bucket.range_end) for bucket in buckets[:-1]] == [(0, 10), (10, 20)]
    # 20 sits on the last edge and belongs to the closed final bucket
    assert _weights(buckets) == [10, 21, 0]
    assert buckets[-1].kind is BucketKind.OVERFLOW
    assert buckets[-1].range_end == math.inf


def test_bucketize_boundary_goes_to_upper_bucket():
    buckets = engine.bucketize([(10, 1)], {"bucket_edges": [0, 10, 20, 30]})
    assert _weights(buckets) == [0, 1, 0, 0]


def test_bucketize_cutoff_routes_excess_to_overflow():
    buckets = engine.bucketize([(5, 1), (25, 2), (45, 4)], {"bucket_width": 10, "max_cutoff": 30})

    assert buckets[-2].range_end == 30
    assert buckets[-1].kind is BucketKind.OVERFLOW
    assert buckets[-1].total_weight == 4
    assert sum(_weights(buckets)) == 7


def test_bucketize_width_with_count_fixes_edges():
    buckets = engine.bucketize([(1, 1), (100, 1)], {"bucket_width": 5, "bucket_count": 4})
    assert [bucket.range_start for bucket in buckets] == [0, 5, 10, 15, 20]
    assert buckets[-1].total_weight == 1


def test_bucketize_sturges_default():
    costs = [(float(value), 1.0) for value in range(1, 17)]
    buckets = engine.bucketize(costs)
    # 16 values -> ceil(log2(16)) + 1 = 5 regular buckets
    assert len(buckets) == 6
    assert buckets[-2].range_end == 16
    assert sum(_weights(buckets)) == 16
    assert buckets[-1].total_weight == 0


def test_bucketize_empty_input_is_all_zero():
    buckets = engine.bucketize([], {"bucket_width": 10})
    assert buckets
    assert all(bucket.total_weight == 0 and bucket.count == 0 for bucket in buckets)


def test_bucketize_skips_nan():
    buckets = engine.bucketize([(float("nan"), 5), (3, 1)], {"bucket_width": 10})
    assert sum(_weights(buckets)) == 1


def test_bucketize_is_idempotent():
    costs = [(1.5, 2), (7.2, 1), (12.0, 4), (30.0, 1)]
    config = {"bucket_edges": [0, 5, 10, 20]}
    assert engine.bucketize(costs, config) == engine.bucketize(costs, config)


@pytest.mark.parametrize(
    "config",
    [
        {"bucket_width": 0},
        {"bucket_width": -5},
        {"bucket_edges": [0, 10, 5]},
        {"bucket_edges": [5, 10]},
        {"bucket_edges": [0]},
        {"bucket_edges": [0, 10], "bucket_width": 5},
        {"bucket_width": 5, "bucket_count": 3, "max_cutoff": 20},
        {"bucket_count": 0},
        {"bucket_count": 1001},
        {"bucket_width": 0.01, "max_cutoff": 1000},
        {"bucket_edges": list(range(1002))},
    ],
)
def test_invalid_config_raises_config_error(config):
    with pytest.raises(ConfigError):
        engine.bucketize([(1, 1)], config)


def test_tiny_width_over_large_costs_is_rejected():
    with pytest.raises(ConfigError) as excinfo:
        engine.bucketize([(10000.0, 1.0)], {"bucket_width": 0.001})
    assert "1000" in str(excinfo.value)


def test_width_at_bucket_limit_is_accepted():
    buckets = engine.bucketize([(1000.0, 1.0)], {"bucket_width": 1})
    # 1000 regular buckets plus overflow
    assert len(buckets) == 1001
    assert buckets[-2].total_weight == 1.0


def test_bucket_totals_are_exact_for_many_small_weights():
    buckets = engine.bucketize([(5, 0.1)] * 10, {"bucket_width": 10})
    assert buckets[0].total_weight == 1.0


def test_resolve_config_revalidates_models():
    config = DistributionConfig.model_construct(bucket_width=-1.0, bucket_edges=None, bucket_count=None, max_cutoff=None)
    with pytest.raises(ConfigError):
        engine.resolve_config(config)


def test_weighted_summary():
    summary = engine.summarize([(5, 10), (15, 20)])
    assert summary.mean == pytest.approx((5 * 10 + 15 * 20) / 30)
    assert summary.median == 15
    assert summary.minimum == 5
    assert summary.maximum == 15
    assert engine.summarize([]).mean is None


def test_weighted_percentile_bounds():
    with pytest.raises(ValueError):
        engine.weighted_percentile([(1, 1)], 1.5)
    assert engine.weighted_percentile([], 0.5) is None


def test_expected_distribution_sums_to_total():
    for kind in ("uniform", "near", "far", "normal", "lognormal"):
        bins = expected_distribution(kind, 15, 2000, 100)
        assert len(bins) == 15
        assert sum(bins) == pytest.approx(100)
        assert all(value >= 0 for value in bins)


def test_expected_distribution_shapes():
    near = expected_distribution("near", 10, 1000, 1)
    far = expected_distribution("far", 10, 1000, 1)
    assert near[0] > near[-1]
    assert far[-1] > far[0]
    assert expected_distribution("uniform", 4, 1000, 8) == [2, 2, 2, 2]


def test_expected_distribution_rejects_unknown_kind():
    with pytest.raises(ValueError):
        expected_distribution("triangular", 5, 1000, 1)
    with pytest.raises(ValueError):
        expected_distribution("uniform", 0, 1000, 1)


def test_distance_weight_has_floor():
    assert distance_weight("near", 1000, 1000) == pytest.approx(0.01)
    assert distance_weight("lognormal", 0, 1000) == pytest.approx(0.01)
    assert distance_weight("uniform", 250, 1000) == 1.0
