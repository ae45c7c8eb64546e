"""Aggregation service helpers."""

from .core import aggregate, aggregate_async, conservation_gap
from .segments import aggregate_route_segments
from .session import AggregationSession, run_analysis

__all__ = [
    "AggregationSession",
    "aggregate",
    "aggregate_async",
    "aggregate_route_segments",
    "conservation_gap",
    "run_analysis",
]
