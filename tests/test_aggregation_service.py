import asyncio
import math

import pytest

from reachability.errors import ConfigError
from reachability.models.domain import LatLng, PopulationPoint, RouteResult, RouteStatus, Target
from reachability.services.aggregation import AggregationSession, aggregate, conservation_gap, run_analysis
from reachability.services.aggregation.core import aggregate_async
from reachability.services.routing import BeelineProvider, RouteCache, RouteCost, RouteService
from reachability.services.targets import TargetService


def _point(pid: str, weight: float, lat: float = 52.5, lon: float = 13.4) -> PopulationPoint:
    return PopulationPoint(id=pid, location=LatLng(lat, lon), weight=weight)


def _target(tid: str, lat: float = 52.51, lon: float = 13.41) -> Target:
    return Target(id=tid, location=LatLng(lat, lon))


def _result(pid: str, tid: str, cost=None, status=RouteStatus.REACHABLE, generation: int = 0, mode: str = "foot"):
    return RouteResult(
        population_point_id=pid,
        target_id=tid,
        mode=mode,
        status=status,
        cost=cost,
        generation=generation,
    )


def test_weighted_example_with_unreachable_point():
    points = [_point("p1", 10), _point("p2", 20), _point("p3", 30)]
    targets = [_target("A")]
    results = [
        _result("p1", "A", 5),
        _result("p2", "A", 15),
        _result("p3", "A", status=RouteStatus.UNREACHABLE),
    ]

    outcome = aggregate(points, targets, results, {"bucket_width": 10}, mode="foot")

    assert outcome.total_weight == 60
    assert outcome.unreachable_weight == 30
    assert [(bucket.range_start, bucket.range_end, bucket.total_weight) for bucket in outcome.buckets[:2]] == [
        (0, 10, 10),
        (10, 20, 20),
    ]
    assert outcome.buckets[-1].total_weight == 0
    assert outcome.unreachable_bucket.total_weight == 30
    assert outcome.complete
    assert conservation_gap(outcome) == 0


def test_totals_do_not_drift_over_many_small_weights():
    points = [_point(f"p{index}", 0.1) for index in range(10)]
    reachable = aggregate(points, [_target("A")], [_result(point.id, "A", 5) for point in points], {"bucket_width": 10})
    unreachable = aggregate(
        points,
        [_target("A")],
        [_result(point.id, "A", status=RouteStatus.UNREACHABLE) for point in points],
        {"bucket_width": 10},
    )

    assert reachable.total_weight == 1.0
    assert reachable.buckets[0].total_weight == 1.0
    assert conservation_gap(reachable) == 0
    assert unreachable.unreachable_weight == 1.0
    assert unreachable.unreachable_fraction == 1.0


def test_empty_population_is_not_an_error():
    outcome = aggregate([], [_target("A")], [], {"bucket_width": 10})
    assert outcome.total_weight == 0
    assert outcome.unreachable_weight == 0
    assert all(bucket.total_weight == 0 for bucket in outcome.buckets)
    assert outcome.complete


def test_empty_selection_makes_everyone_unreachable():
    outcome = aggregate([_point("p1", 4), _point("p2", 6)], [], [])
    assert outcome.unreachable_weight == 10
    assert outcome.complete
    assert conservation_gap(outcome) == 0


def test_nearest_target_wins_with_id_tiebreak():
    points = [_point("p1", 1), _point("p2", 1)]
    targets = [_target("10"), _target("9", lat=52.6), _target("B", lat=52.7)]
    results = [
        _result("p1", "10", 8),
        _result("p1", "9", 3),
        _result("p1", "B", 3),
        _result("p2", "10", 4),
        _result("p2", "9", 4),
    ]

    outcome = aggregate(points, targets, results)
    by_point = {entry.point_id: entry for entry in outcome.point_costs}

    # numeric ids order before text ids, and 9 before 10
    assert by_point["p1"].target_id == "9"
    assert by_point["p1"].cost == 3
    assert by_point["p2"].target_id == "9"


def test_results_outside_selection_are_ignored():
    points = [_point("p1", 5)]
    results = [_result("p1", "A", 2), _result("p1", "B", 50)]

    only_b = aggregate(points, [_target("B")], results)
    assert only_b.point_costs[0].cost == 50
    assert only_b.target_selection == frozenset({"B"})


def test_missing_results_are_pending():
    points = [_point("p1", 5), _point("p2", 7)]
    targets = [_target("A"), _target("B", lat=52.6)]
    results = [_result("p1", "A", 3), _result("p2", "A", status=RouteStatus.UNREACHABLE)]

    outcome = aggregate(points, targets, results)
    by_point = {entry.point_id: entry for entry in outcome.point_costs}

    assert not outcome.complete
    assert outcome.pending_count == 2
    assert by_point["p1"].status is RouteStatus.REACHABLE
    assert by_point["p2"].status is RouteStatus.PENDING
    assert outcome.pending_weight == 7
    assert outcome.unreachable_weight == 7
    assert conservation_gap(outcome) == 0


def test_all_failed_point_is_reported_failed():
    outcome = aggregate([_point("p1", 2)], [_target("A")], [_result("p1", "A", status=RouteStatus.FAILED)])
    assert outcome.point_costs[0].status is RouteStatus.FAILED
    assert outcome.unreachable_weight == 2
    assert outcome.complete


def test_newest_generation_wins_per_pair():
    results = [_result("p1", "A", 40, generation=1), _result("p1", "A", 4, generation=2)]
    outcome = aggregate([_point("p1", 1)], [_target("A")], results)
    assert outcome.point_costs[0].cost == 4


def test_invalid_config_raises():
    with pytest.raises(ConfigError):
        aggregate([_point("p1", 1)], [_target("A")], [], {"bucket_width": -1})


def test_async_aggregate_matches_sync():
    points = [_point(f"p{index}", index + 1) for index in range(25)]
    results = [_result(point.id, "A", float(index)) for index, point in enumerate(points)]
    config = {"bucket_width": 5}

    sync = aggregate(points, [_target("A")], results, config)
    chunked = asyncio.run(aggregate_async(points, [_target("A")], results, config, chunk_size=4))

    assert chunked.buckets == sync.buckets
    assert chunked.total_weight == sync.total_weight
    assert math.isclose(sum(bucket.total_weight for bucket in chunked.buckets), sync.total_weight)


class TableProvider:
    """Costs looked up by target location; counts calls."""

    name = "table"

    def __init__(self, minutes_by_target: dict, on_call=None):
        self.minutes_by_target = minutes_by_target
        self.on_call = on_call
        self.calls = 0

    async def route(self, origin, destination, mode):
        self.calls += 1
        if self.on_call is not None:
            self.on_call(origin, destination)
        return RouteCost(duration_min=self.minutes_by_target[destination], distance_m=1000.0)


def _session(provider, targets, population):
    registry = TargetService()
    registry.add_many(targets)
    session = AggregationSession(RouteService(provider, RouteCache()), registry, mode="foot")
    session.set_population(population)
    return session


def test_session_refresh_routes_and_publishes():
    a, b = _target("1"), _target("2", lat=52.6)
    provider = TableProvider({a.location: 12.0, b.location: 4.0})
    session = _session(provider, [a, b], [_point("p1", 3), _point("p2", 5, lat=52.55)])

    outcome = asyncio.run(session.refresh())

    assert outcome.complete
    assert {entry.target_id for entry in outcome.point_costs} == {"2"}
    assert outcome.total_weight == 8
    assert session.current_result is outcome
    assert provider.calls == 4


def test_selection_change_depends_only_on_new_selection():
    a, b = _target("1"), _target("2", lat=52.6)
    provider = TableProvider({a.location: 12.0, b.location: 4.0})
    session = _session(provider, [a, b], [_point("p1", 3)])
    asyncio.run(session.refresh())

    narrowed = session.set_selection(["1"])
    fresh = aggregate(session.population, [a], session.available_results(), session.effective_config(), mode="foot")

    assert narrowed.point_costs[0].cost == 12.0
    assert narrowed.buckets == fresh.buckets
    assert narrowed.target_selection == frozenset({"1"})
    # served from cache, no new routing
    assert asyncio.run(session.refresh()).point_costs[0].cost == 12.0
    assert provider.calls == 2


def test_removed_target_leaves_the_result():
    a, b = _target("1"), _target("2", lat=52.6)
    provider = TableProvider({a.location: 12.0, b.location: 4.0})
    session = _session(provider, [a, b], [_point("p1", 3)])
    asyncio.run(session.refresh())

    session.targets.remove_target("2")

    current = session.current_result
    assert current.target_selection == frozenset({"1"})
    assert current.point_costs[0].target_id == "1"
    assert current.point_costs[0].cost == 12.0


def test_superseded_refresh_does_not_leak_into_new_result():
    a, b = _target("1"), _target("2", lat=52.6)
    provider = TableProvider({a.location: 1.0, b.location: 9.0})
    session = _session(provider, [a, b], [_point("p1", 3)])
    session.set_selection(["1"])
    started = session.generation

    def switch_selection(origin, destination):
        if destination == a.location and session.generation == started:
            session.set_selection(["2"])

    provider.on_call = switch_selection
    interrupted = asyncio.run(session.refresh())

    assert interrupted.target_selection == frozenset({"2"})
    assert not interrupted.complete
    assert session.route_service.stats["stale_dropped"] == 1

    provider.on_call = None
    final = asyncio.run(session.refresh())
    assert final.complete
    assert final.point_costs[0].target_id == "2"
    assert final.point_costs[0].cost == 9.0


def test_bad_config_keeps_previous_result():
    a = _target("1")
    session = _session(TableProvider({a.location: 7.0}), [a], [_point("p1", 2)])
    previous = asyncio.run(session.refresh())

    with pytest.raises(ConfigError):
        session.set_config({"bucket_edges": [0, 5, 5]})

    assert session.current_result is previous
    assert session.config.bucket_edges is None


def test_width_too_fine_for_cached_costs_keeps_previous_config():
    a = _target("1")
    session = _session(TableProvider({a.location: 7.0}), [a], [_point("p1", 2)])
    session.set_config({"bucket_width": 5})
    previous = asyncio.run(session.refresh())

    with pytest.raises(ConfigError):
        session.set_config({"bucket_width": 0.001})

    assert session.current_result is previous
    assert session.config.bucket_width == 5


def test_run_analysis_applies_parameters():
    a, b = _target("1"), _target("2", lat=52.6)
    session = _session(TableProvider({a.location: 7.0, b.location: 3.0}), [a, b], [_point("p1", 2)])

    outcome = asyncio.run(run_analysis(session, selection=["1"], config={"bucket_width": 5}))

    assert outcome.target_selection == frozenset({"1"})
    assert outcome.buckets[1].range_start == 5
    assert outcome.buckets[1].total_weight == 2
    assert session.config.bucket_width == 5


def test_run_analysis_with_bad_config_changes_nothing():
    a = _target("1")
    session = _session(TableProvider({a.location: 7.0}), [a], [_point("p1", 2)])
    generation = session.generation

    with pytest.raises(ConfigError):
        asyncio.run(run_analysis(session, selection=[], mode="bike", config={"bucket_width": 0}))

    assert session.generation == generation
    assert session.mode == "foot"


def test_route_segments_follow_each_points_nearest_target():
    near, far = _target("A"), _target("B", lat=52.6, lon=13.4)
    session = _session(BeelineProvider(), [near, far], [_point("p1", 3), _point("p2", 5)])
    asyncio.run(session.refresh())

    segments = session.route_segments()

    # both points share the beeline to A; routes to B are not chosen
    assert len(segments) == 1
    assert segments[0].count == 2
    assert segments[0].weight == 8
    assert (segments[0].start, segments[0].end) == (LatLng(52.5, 13.4), near.location)
    assert session.route_segments("lazy_overlap")[0].count == 2


def test_route_segments_skip_results_without_geometry():
    a = _target("1")
    session = _session(TableProvider({a.location: 7.0}), [a], [_point("p1", 2)])
    asyncio.run(session.refresh())
    assert session.route_segments() == []
