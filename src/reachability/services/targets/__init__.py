"""Target service helpers."""

from .overpass import OverpassClient, parse_school_elements
from .registry import TargetChange, TargetService

__all__ = [
    "OverpassClient",
    "TargetChange",
    "TargetService",
    "parse_school_elements",
]
