"""Process-wide analysis state shared by the routers."""

from __future__ import annotations

from functools import lru_cache

from ..services.aggregation.session import AggregationSession
from ..services.routing.cache import RouteCache
from ..services.routing.providers import get_provider
from ..services.routing.service import RouteService
from ..services.targets.overpass import OverpassClient
from ..services.targets.registry import TargetService


@lru_cache(maxsize=1)
def get_session() -> AggregationSession:
    route_service = RouteService(get_provider(), RouteCache())
    return AggregationSession(route_service, TargetService())


@lru_cache(maxsize=1)
def get_overpass_client() -> OverpassClient:
    return OverpassClient()
