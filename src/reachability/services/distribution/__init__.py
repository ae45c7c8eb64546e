"""Distribution engine helpers."""

from .engine import bucketize, resolve_config, resolve_edges, summarize, weighted_percentile
from .expected import distance_weight, expected_distribution

__all__ = [
    "bucketize",
    "resolve_config",
    "resolve_edges",
    "summarize",
    "weighted_percentile",
    "distance_weight",
    "expected_distribution",
]
