"""Join population, targets and route results into a weighted distribution."""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

from ...models.domain import (
    AggregationResult,
    PointCost,
    PopulationPoint,
    RouteResult,
    RouteStatus,
    Target,
    id_sort_key,
)
from ...schemas.distribution import DistributionConfig
from ..distribution.engine import bucketize, resolve_config, summarize

FINAL_STATUSES = (RouteStatus.REACHABLE, RouteStatus.UNREACHABLE, RouteStatus.FAILED)


@dataclass(slots=True)
class _Tally:
    # summed once with fsum in _finalize
    weights: list[float] = field(default_factory=list)
    unreachable: list[float] = field(default_factory=list)
    pending: list[float] = field(default_factory=list)
    pending_pairs: int = 0


def latest_by_pair(
    route_results: Iterable[RouteResult],
    point_ids: frozenset[str],
    selection: frozenset[str],
    mode: Optional[str],
) -> dict[tuple[str, str], RouteResult]:
    """Keep the newest result per pair, ignoring foreign points, targets and modes."""

    latest: dict[tuple[str, str], RouteResult] = {}
    for result in route_results:
        if result.target_id not in selection or result.population_point_id not in point_ids:
            continue
        if mode is not None and result.mode != mode:
            continue
        current = latest.get(result.pair)
        if current is None or result.generation >= current.generation:
            latest[result.pair] = result
    return latest


def _effective_cost(
    point: PopulationPoint,
    ordered_targets: Sequence[str],
    latest: Mapping[tuple[str, str], RouteResult],
) -> tuple[PointCost, int]:
    """Nearest-target cost for one point plus the number of unresolved pairs."""

    best: Optional[tuple[float, tuple, str]] = None
    unresolved = 0
    failed = 0
    for target_id in ordered_targets:
        result = latest.get((point.id, target_id))
        if result is None or result.status not in FINAL_STATUSES:
            unresolved += 1
            continue
        if result.status is RouteStatus.FAILED:
            failed += 1
        if not result.is_reachable:
            continue
        candidate = (result.cost, id_sort_key(target_id), target_id)
        if best is None or candidate[:2] < best[:2]:
            best = candidate

    if best is not None:
        status = RouteStatus.REACHABLE
    elif unresolved:
        status = RouteStatus.PENDING
    elif failed and failed == len(ordered_targets):
        status = RouteStatus.FAILED
    else:
        status = RouteStatus.UNREACHABLE

    point_cost = PointCost(
        point_id=point.id,
        location=point.location,
        weight=point.weight,
        status=status,
        target_id=best[2] if best else None,
        cost=best[0] if best else None,
    )
    return point_cost, unresolved


def _iter_point_costs(
    points: Sequence[PopulationPoint],
    targets: Sequence[Target],
    route_results: Iterable[RouteResult],
    mode: Optional[str],
) -> Iterator[tuple[PointCost, int]]:
    selection = frozenset(target.id for target in targets)
    ordered_targets = sorted(selection, key=id_sort_key)
    ordered_points = sorted(points, key=lambda point: id_sort_key(point.id))
    latest = latest_by_pair(route_results, frozenset(point.id for point in points), selection, mode)
    for point in ordered_points:
        yield _effective_cost(point, ordered_targets, latest)


def _finalize(
    point_costs: list[PointCost],
    tally: _Tally,
    targets: Sequence[Target],
    config: DistributionConfig,
    mode: Optional[str],
    generation: int,
) -> AggregationResult:
    costs = [(entry.cost, entry.weight) for entry in point_costs if entry.status is RouteStatus.REACHABLE]
    return AggregationResult(
        target_selection=frozenset(target.id for target in targets),
        mode=mode or "",
        buckets=tuple(bucketize(costs, config)),
        unreachable_weight=math.fsum(tally.unreachable),
        total_weight=math.fsum(tally.weights),
        unreachable_count=len(tally.unreachable),
        pending_weight=math.fsum(tally.pending),
        pending_count=tally.pending_pairs,
        complete=tally.pending_pairs == 0,
        point_costs=tuple(point_costs),
        summary=summarize(costs),
        generation=generation,
    )


def _account(tally: _Tally, point_cost: PointCost, unresolved: int) -> None:
    tally.weights.append(point_cost.weight)
    tally.pending_pairs += unresolved
    if point_cost.status is RouteStatus.REACHABLE:
        return
    tally.unreachable.append(point_cost.weight)
    if point_cost.status is RouteStatus.PENDING:
        tally.pending.append(point_cost.weight)


def aggregate(
    points: Sequence[PopulationPoint],
    targets: Sequence[Target],
    route_results: Iterable[RouteResult],
    config: DistributionConfig | Mapping[str, Any] | None = None,
    *,
    mode: Optional[str] = None,
    generation: int = 0,
) -> AggregationResult:
    """Build an AggregationResult with nearest-target semantics.

    ``targets`` is the selected target set. A point's effective cost is the
    minimum over its reachable results to those targets, ties going to the
    lowest target id. Points without a reachable result count towards
    ``unreachable_weight``; points still waiting on a result are additionally
    reported as pending and the result is flagged incomplete.

    Raises ConfigError for an invalid distribution config.
    """

    resolved = resolve_config(config)
    tally = _Tally()
    point_costs: list[PointCost] = []
    for point_cost, unresolved in _iter_point_costs(points, targets, route_results, mode):
        _account(tally, point_cost, unresolved)
        point_costs.append(point_cost)
    return _finalize(point_costs, tally, targets, resolved, mode, generation)


async def aggregate_async(
    points: Sequence[PopulationPoint],
    targets: Sequence[Target],
    route_results: Iterable[RouteResult],
    config: DistributionConfig | Mapping[str, Any] | None = None,
    *,
    mode: Optional[str] = None,
    generation: int = 0,
    chunk_size: int = 2000,
) -> AggregationResult:
    """Same result as ``aggregate``, yielding to the event loop every ``chunk_size`` points."""

    resolved = resolve_config(config)
    chunk_size = max(1, chunk_size)
    tally = _Tally()
    point_costs: list[PointCost] = []
    for index, (point_cost, unresolved) in enumerate(
        _iter_point_costs(points, targets, route_results, mode), start=1
    ):
        _account(tally, point_cost, unresolved)
        point_costs.append(point_cost)
        if index % chunk_size == 0:
            await asyncio.sleep(0)
    return _finalize(point_costs, tally, targets, resolved, mode, generation)


def conservation_gap(result: AggregationResult) -> float:
    """Difference between total weight and unreachable + bucketed weight (0 when consistent)."""
    accounted = math.fsum([result.unreachable_weight, *(bucket.total_weight for bucket in result.buckets)])
    return result.total_weight - accounted
