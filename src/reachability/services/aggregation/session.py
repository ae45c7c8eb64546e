"""Stateful orchestration: population + targets + routes -> current AggregationResult."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, Iterable, Mapping, Optional, Sequence

from ...config import settings
from ...errors import ConfigError
from ...models.domain import AggregationResult, PopulationPoint, RouteResult, RouteSegment, RouteStatus, Target
from ...schemas.distribution import DistributionConfig
from ..distribution.engine import resolve_config
from ..population.loader import PopulationLoad, load_population
from ..routing.service import CostMetric, RouteOptions, RouteService
from ..targets.registry import TargetChange, TargetService
from .core import aggregate, aggregate_async, conservation_gap
from .segments import SegmentMethod, aggregate_route_segments

logger = logging.getLogger(__name__)


class AggregationSession:
    """Holds the inputs of one accessibility analysis and keeps its result current.

    Target changes, selection changes and mode changes advance the route
    generation so in-flight routing from before the change is discarded. The
    published result is replaced whole, never patched.
    """

    def __init__(
        self,
        route_service: RouteService | None = None,
        target_service: TargetService | None = None,
        *,
        population: Sequence[PopulationPoint] = (),
        mode: Optional[str] = None,
        metric: CostMetric = "time",
        config: DistributionConfig | Mapping[str, Any] | None = None,
    ) -> None:
        self.route_service = route_service or RouteService()
        self.targets = target_service or TargetService()
        self._unsubscribe = self.targets.subscribe(self._on_target_change)
        self._population: tuple[PopulationPoint, ...] = tuple(population)
        self._selection: Optional[frozenset[str]] = None
        self._mode = mode or settings.routing_profile
        self._metric: CostMetric = metric
        self._config = resolve_config(config)
        self._results: dict[tuple[str, str], RouteResult] = {}
        self.current_result: Optional[AggregationResult] = None

    @property
    def population(self) -> tuple[PopulationPoint, ...]:
        return self._population

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def metric(self) -> CostMetric:
        return self._metric

    @property
    def config(self) -> DistributionConfig:
        return self._config

    @property
    def generation(self) -> int:
        return self.route_service.generation

    def close(self) -> None:
        self._unsubscribe()

    def selected_targets(self) -> list[Target]:
        targets = self.targets.list_targets()
        if self._selection is None:
            return targets
        return [target for target in targets if target.id in self._selection]

    def load_population(self, records: Iterable[Mapping[str, Any]]) -> PopulationLoad:
        outcome = load_population(records)
        self.set_population(outcome.points)
        return outcome

    def set_population(self, points: Sequence[PopulationPoint]) -> AggregationResult:
        self._population = tuple(points)
        # point ids may be reused with new locations, so cached routes go too
        self.route_service.invalidate()
        self._results.clear()
        return self.recompute()

    def set_selection(self, target_ids: Optional[Iterable[str]]) -> AggregationResult:
        """Restrict aggregation to the given target ids (None selects every target)."""
        if target_ids is None:
            self._selection = None
        else:
            requested = frozenset(str(target_id) for target_id in target_ids)
            unknown = requested - self.targets.ids()
            if unknown:
                logger.warning(f"Ignoring unknown target ids in selection: {sorted(unknown)}")
            self._selection = requested & self.targets.ids()
        return self._invalidate_and_recompute("target selection changed")

    def set_mode(self, mode: str, metric: Optional[CostMetric] = None) -> AggregationResult:
        self._mode = mode
        if metric is not None:
            self._metric = metric
        return self._invalidate_and_recompute("routing mode changed")

    def set_config(self, config: DistributionConfig | Mapping[str, Any] | None) -> AggregationResult:
        """Apply a new distribution config; ConfigError leaves the previous result untouched."""
        resolved = resolve_config(config)
        previous = self._config
        self._config = resolved
        try:
            return self.recompute()
        except ConfigError:
            # data-dependent limits (bucket count) only show up while bucketing
            self._config = previous
            raise

    def route_options(self) -> RouteOptions:
        return RouteOptions(mode=self._mode, metric=self._metric)

    def effective_config(self) -> DistributionConfig:
        config = self._config
        if (
            settings.default_max_cutoff is not None
            and config.bucket_edges is None
            and config.max_cutoff is None
            and not (config.bucket_width is not None and config.bucket_count is not None)
        ):
            return config.model_copy(update={"max_cutoff": settings.default_max_cutoff})
        return config

    def available_results(self) -> list[RouteResult]:
        """Latest known result for every selected pair (session results first, then the cache)."""
        options = self.route_options()
        targets = self.selected_targets()
        available: list[RouteResult] = []
        for point in self._population:
            for target in targets:
                result = self._results.get((point.id, target.id))
                if result is None:
                    result = self.route_service.cached_result(point.id, target.id, options)
                if result is not None:
                    available.append(result)
        return available

    def route_segments(self, method: Optional[SegmentMethod] = None) -> list[RouteSegment]:
        """Shared segments of each reachable point's route to its nearest target, weighted by population."""
        result = self.current_result or self.recompute()
        chosen = {
            (entry.point_id, entry.target_id): entry.weight
            for entry in result.point_costs
            if entry.status is RouteStatus.REACHABLE
        }
        routes: list[tuple] = []
        weights: list[float] = []
        for route in self.available_results():
            weight = chosen.get(route.pair)
            if weight is None or len(route.geometry) < 2:
                continue
            routes.append(route.geometry)
            weights.append(weight)
        return aggregate_route_segments(routes, method or settings.segment_aggregation_method, weights=weights)

    def recompute(self) -> AggregationResult:
        result = aggregate(
            self._population,
            self.selected_targets(),
            self.available_results(),
            self.effective_config(),
            mode=self._mode,
            generation=self.generation,
        )
        return self._publish(result)

    async def recompute_async(self) -> AggregationResult:
        generation = self.generation
        result = await aggregate_async(
            self._population,
            self.selected_targets(),
            self.available_results(),
            self.effective_config(),
            mode=self._mode,
            generation=self.generation,
            chunk_size=settings.aggregation_chunk_size,
        )
        if self.generation != generation:
            # inputs changed while we yielded; a newer recompute owns the result
            return self.current_result or result
        return self._publish(result)

    async def refresh(self, publish_every: Optional[int] = None) -> AggregationResult:
        """Route every selected pair and publish best-effort results while they arrive.

        Stops early when the generation moves on; the caller that changed the
        inputs is expected to refresh again.
        """

        generation = self.generation
        targets = self.selected_targets()
        publish_every = publish_every or settings.route_batch_size
        received = 0

        stream = self.route_service.request_routes(self._population, targets, self.route_options())
        async with aclosing(stream):
            async for result in stream:
                if self.generation != generation:
                    logger.info(f"Refresh for generation {generation} superseded by {self.generation}")
                    return self.current_result or self.recompute()
                self._results[result.pair] = result
                received += 1
                if received % publish_every == 0:
                    await self.recompute_async()

        if self.generation != generation:
            return self.current_result or self.recompute()
        final = await self.recompute_async()
        logger.info(
            f"Aggregation complete={final.complete}: {received} routes, "
            f"{final.unreachable_weight:g}/{final.total_weight:g} weight unreachable"
        )
        return final

    def _publish(self, result: AggregationResult) -> AggregationResult:
        gap = conservation_gap(result)
        if abs(gap) > 1e-6 * max(1.0, result.total_weight):
            logger.warning(f"Aggregation weight mismatch of {gap:g} for generation {result.generation}")
        self.current_result = result
        return result

    def _invalidate_and_recompute(self, reason: str) -> AggregationResult:
        self._results.clear()
        generation = self.route_service.begin_generation()
        logger.debug(f"{reason}; generation {generation}")
        return self.recompute()

    def _on_target_change(self, change: TargetChange) -> None:
        if change.kind in ("removed", "cleared"):
            self.route_service.invalidate(target_ids=change.target_ids)
            self._results.clear()
            if self._selection is not None:
                self._selection = self._selection - set(change.target_ids)
            logger.debug(f"Targets {change.kind}: {len(change.target_ids)} ids")
            self.recompute()
        else:
            self._invalidate_and_recompute(f"targets {change.kind}")


async def run_analysis(
    session: AggregationSession,
    *,
    selection: Optional[Iterable[str]] = None,
    mode: Optional[str] = None,
    metric: Optional[CostMetric] = None,
    config: DistributionConfig | Mapping[str, Any] | None = None,
) -> AggregationResult:
    """Apply parameter changes (config first, so a bad config changes nothing) and refresh."""

    if config is not None:
        session.set_config(config)
    if mode is not None and (mode != session.mode or (metric is not None and metric != session.metric)):
        session.set_mode(mode, metric)
    elif metric is not None and metric != session.metric:
        session.set_mode(session.mode, metric)
    if selection is not None:
        session.set_selection(selection)
    return await session.refresh()
