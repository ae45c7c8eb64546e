"""Count how many routes share each piece of road."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Sequence

from shapely import LineString, STRtree

from ...models.domain import LatLng, RouteSegment

logger = logging.getLogger(__name__)

SegmentMethod = Literal["simple", "lazy_overlap"]
SEGMENT_METHODS = ("simple", "lazy_overlap")

# matching grids in degrees (~10 m and ~8 m)
SIMPLE_KEY_GRID_DEG = 0.0001
OVERLAP_KEY_GRID_DEG = 0.00008
OVERLAP_TOLERANCE_DEG = 0.0001
OVERLAP_MAX_ANGLE_RAD = math.pi / 8
SPLIT_EPSILON = 1e-6

Coordinate = tuple[float, float]


@dataclass(slots=True)
class _Piece:
    start: Coordinate
    end: Coordinate
    weight: float


@dataclass(slots=True)
class _Merged:
    start: Coordinate
    end: Coordinate
    count: int = 0
    weight: float = 0.0


def _segment_key(start: Coordinate, end: Coordinate, grid: float) -> tuple:
    a = (round(start[0] / grid), round(start[1] / grid))
    b = (round(end[0] / grid), round(end[1] / grid))
    # direction does not matter
    return (a, b) if a <= b else (b, a)


def _collect_pieces(
    routes: Iterable[Sequence[Coordinate]], weights: Optional[Sequence[float]]
) -> list[_Piece]:
    routes = list(routes)
    if weights is None:
        weights = [1.0] * len(routes)
    elif len(weights) != len(routes):
        raise ValueError(f"Got {len(weights)} weights for {len(routes)} routes.")

    pieces: list[_Piece] = []
    for route, weight in zip(routes, weights):
        if not route or len(route) < 2:
            continue
        for start, end in zip(route, route[1:]):
            pieces.append(_Piece((start[0], start[1]), (end[0], end[1]), weight))
    return pieces


def _merge(pieces: Iterable[_Piece], grid: float) -> list[RouteSegment]:
    merged: dict[tuple, _Merged] = {}
    for piece in pieces:
        key = _segment_key(piece.start, piece.end, grid)
        entry = merged.get(key)
        if entry is None:
            # first occurrence keeps its original coordinates for drawing
            entry = merged[key] = _Merged(piece.start, piece.end)
        entry.count += 1
        entry.weight += piece.weight
    return [
        RouteSegment(start=LatLng(*entry.start), end=LatLng(*entry.end), count=entry.count, weight=entry.weight)
        for entry in merged.values()
    ]


def _project(point: Coordinate, a: Coordinate, b: Coordinate) -> tuple[float, float]:
    """Clamped position ``t`` of ``point`` along a->b and its distance to the segment."""
    abx, aby = b[0] - a[0], b[1] - a[1]
    apx, apy = point[0] - a[0], point[1] - a[1]
    length_sq = abx * abx + aby * aby
    if length_sq == 0:
        return 0.0, math.hypot(apx, apy)
    t = max(0.0, min(1.0, (apx * abx + apy * aby) / length_sq))
    return t, math.hypot(point[0] - (a[0] + abx * t), point[1] - (a[1] + aby * t))


def _angle(a1: Coordinate, a2: Coordinate, b1: Coordinate, b2: Coordinate) -> float:
    va = (a2[0] - a1[0], a2[1] - a1[1])
    vb = (b2[0] - b1[0], b2[1] - b1[1])
    len_a = math.hypot(*va)
    len_b = math.hypot(*vb)
    if len_a == 0 or len_b == 0:
        return 0.0
    cosine = (va[0] * vb[0] + va[1] * vb[1]) / (len_a * len_b)
    return math.acos(max(-1.0, min(1.0, cosine)))


def _covered_span(host: _Piece, other: _Piece) -> Optional[tuple[float, float]]:
    """Span of ``host`` (as t0, t1) that ``other`` lies on, or None."""
    angle = _angle(host.start, host.end, other.start, other.end)
    if min(angle, math.pi - angle) > OVERLAP_MAX_ANGLE_RAD:
        return None
    t0, d0 = _project(other.start, host.start, host.end)
    t1, d1 = _project(other.end, host.start, host.end)
    if d0 > OVERLAP_TOLERANCE_DEG or d1 > OVERLAP_TOLERANCE_DEG:
        return None
    return min(t0, t1), max(t0, t1)


def _point_at(piece: _Piece, t: float) -> Coordinate:
    return (
        piece.start[0] + (piece.end[0] - piece.start[0]) * t,
        piece.start[1] + (piece.end[1] - piece.start[1]) * t,
    )


def _split_overlaps(pieces: Sequence[_Piece]) -> list[_Piece]:
    """Cut every piece where another piece starts or ends on top of it."""

    if not pieces:
        return []
    lines = [LineString([piece.start, piece.end]) for piece in pieces]
    tree = STRtree(lines)

    split_points: list[set[float]] = [{0.0, 1.0} for _ in pieces]
    for index, piece in enumerate(pieces):
        candidates = tree.query(lines[index].buffer(OVERLAP_TOLERANCE_DEG))
        for other_index in candidates:
            other_index = int(other_index)
            if other_index == index:
                continue
            span = _covered_span(piece, pieces[other_index])
            if span is not None:
                split_points[index].update(span)

    result: list[_Piece] = []
    for piece, ts in zip(pieces, split_points):
        if len(ts) <= 2:
            result.append(piece)
            continue
        ordered = sorted(ts)
        for t0, t1 in zip(ordered, ordered[1:]):
            if t1 - t0 > SPLIT_EPSILON:
                result.append(_Piece(_point_at(piece, t0), _point_at(piece, t1), piece.weight))
    return result


def aggregate_route_segments(
    routes: Iterable[Sequence[Coordinate]],
    method: SegmentMethod = "simple",
    weights: Optional[Sequence[float]] = None,
) -> list[RouteSegment]:
    """Merge route polylines into segments with the number of routes using each.

    ``routes`` are sequences of (lat, lon) points. ``simple`` merges
    consecutive point pairs that snap to the same ~10 m grid, regardless of
    direction. ``lazy_overlap`` first splits segments where a nearly parallel
    segment lies on them, so partly shared roads are counted on the shared
    part only. ``weights`` (one per route, default 1) are summed per segment.
    """

    pieces = _collect_pieces(routes, weights)
    if method == "simple":
        segments = _merge(pieces, SIMPLE_KEY_GRID_DEG)
    elif method == "lazy_overlap":
        segments = _merge(_split_overlaps(pieces), OVERLAP_KEY_GRID_DEG)
    else:
        raise ValueError(f"Unknown segment aggregation method '{method}'.")
    logger.debug(f"Aggregated {len(pieces)} route pieces into {len(segments)} segments ({method})")
    return segments
