"""Routing orchestration service."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import AsyncIterator, Iterable, Literal, Optional, Sequence

from ...config import settings
from ...errors import RouteUnavailable, StaleResult
from ...models.domain import PopulationPoint, RouteResult, RouteStatus, Target
from .cache import RouteCache
from .providers import RoutingProvider, get_provider

logger = logging.getLogger(__name__)

CostMetric = Literal["time", "distance"]


@dataclass(slots=True)
class RouteOptions:
    mode: str = field(default_factory=lambda: settings.routing_profile)
    metric: CostMetric = "time"
    batch_size: Optional[int] = None
    max_concurrency: Optional[int] = None

    def resolved_batch_size(self) -> int:
        return max(1, self.batch_size or settings.route_batch_size)

    def resolved_concurrency(self) -> int:
        return max(1, self.max_concurrency or settings.route_max_concurrency)


def project_cost(result: RouteResult, metric: CostMetric) -> RouteResult:
    """Cached results carry minutes; switch the cost to metres for the distance metric."""
    if metric == "distance" and result.status is RouteStatus.REACHABLE:
        return replace(result, cost=result.distance_m)
    return result


def pending_result(point: PopulationPoint, target: Target, mode: str, generation: int) -> RouteResult:
    return RouteResult(
        population_point_id=point.id,
        target_id=target.id,
        mode=mode,
        status=RouteStatus.PENDING,
        generation=generation,
    )


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class RouteService:
    """Batched, cached, cancellable routing between population points and targets."""

    def __init__(self, provider: RoutingProvider | None = None, cache: RouteCache | None = None) -> None:
        self.provider = provider or get_provider()
        self.cache = cache or RouteCache()
        self.stats: Counter[str] = Counter()

    @property
    def generation(self) -> int:
        return self.cache.generation

    def begin_generation(self) -> int:
        """Abandon in-flight work without dropping cached results."""
        return self.cache.begin_generation()

    def invalidate(self, target_ids: Iterable[str] | None = None, mode: str | None = None) -> int:
        return self.cache.invalidate(target_ids=target_ids, mode=mode)

    def cached_result(self, point_id: str, target_id: str, options: RouteOptions) -> Optional[RouteResult]:
        cached = self.cache.get(point_id, target_id, options.mode)
        return project_cost(cached, options.metric) if cached else None

    async def request_routes(
        self,
        points: Sequence[PopulationPoint],
        targets: Sequence[Target],
        options: RouteOptions | None = None,
    ) -> AsyncIterator[RouteResult]:
        """Yield one RouteResult per (point, target) pair as results become available.

        Cached pairs are yielded first. The remaining pairs are fetched batch by
        batch; results from a superseded generation are dropped on arrival and
        later batches are not started.
        """

        options = options or RouteOptions()
        generation = self.cache.generation
        mode = options.mode

        missing: list[tuple[PopulationPoint, Target]] = []
        for point in points:
            for target in targets:
                cached = self.cache.get(point.id, target.id, mode)
                if cached is not None:
                    self.stats["cache_hits"] += 1
                    yield project_cost(cached, options.metric)
                else:
                    missing.append((point, target))

        if not missing:
            return

        batch_size = options.resolved_batch_size()
        semaphore = asyncio.Semaphore(options.resolved_concurrency())
        total_batches = (len(missing) + batch_size - 1) // batch_size
        logger.info(
            f"Requesting {len(missing)} routes in {total_batches} batches "
            f"(mode={mode}, generation={generation}, provider={self.provider.name})"
        )

        for batch_index, batch in enumerate(_chunks(missing, batch_size), start=1):
            if self.cache.generation != generation:
                logger.info(f"Generation {generation} superseded; abandoning {total_batches - batch_index + 1} batches")
                return
            tasks = [
                asyncio.ensure_future(self._fetch(point, target, mode, generation, semaphore))
                for point, target in batch
            ]
            try:
                for next_done in asyncio.as_completed(tasks):
                    result = await next_done
                    try:
                        accepted = self.cache.accept(result)
                    except StaleResult as stale:
                        self.stats["stale_dropped"] += 1
                        logger.debug(f"Dropping route {result.pair}: {stale}")
                        continue
                    yield project_cost(accepted, options.metric)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
            logger.debug(f"Finished batch {batch_index}/{total_batches} for generation {generation}")

    async def _fetch(
        self,
        point: PopulationPoint,
        target: Target,
        mode: str,
        generation: int,
        semaphore: asyncio.Semaphore,
    ) -> RouteResult:
        async with semaphore:
            if self.cache.generation != generation:
                # superseded while queued; skip the network call
                return pending_result(point, target, mode, generation)
            self.stats["requests"] += 1
            try:
                cost = await self.provider.route(point.location, target.location, mode)
            except RouteUnavailable as exc:
                status = RouteStatus.FAILED if exc.transient else RouteStatus.UNREACHABLE
                self.stats[status.value] += 1
                logger.warning(f"Route {point.id} -> {target.id} ({mode}) {status.value}: {exc}")
                return RouteResult(
                    population_point_id=point.id,
                    target_id=target.id,
                    mode=mode,
                    status=status,
                    generation=generation,
                    error=str(exc),
                )
            except Exception as exc:
                self.stats["failed"] += 1
                logger.error(f"Unexpected routing error for {point.id} -> {target.id}: {exc}")
                return RouteResult(
                    population_point_id=point.id,
                    target_id=target.id,
                    mode=mode,
                    status=RouteStatus.FAILED,
                    generation=generation,
                    error=str(exc),
                )
        return RouteResult(
            population_point_id=point.id,
            target_id=target.id,
            mode=mode,
            status=RouteStatus.REACHABLE,
            cost=cost.duration_min,
            distance_m=cost.distance_m,
            generation=generation,
            geometry=cost.geometry,
        )
