"""Routing service helpers."""

from .cache import RouteCache
from .providers import BeelineProvider, GraphHopperClient, RouteCost, RoutingProvider, get_provider
from .service import RouteOptions, RouteService

__all__ = [
    "BeelineProvider",
    "GraphHopperClient",
    "RouteCache",
    "RouteCost",
    "RouteOptions",
    "RouteService",
    "RoutingProvider",
    "get_provider",
]
