"""GeoJSON export utilities."""

from __future__ import annotations

from bisect import bisect_right
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ...models.domain import AggregationResult, BucketKind, DistributionBucket, RouteSegment, RouteStatus, Target
from ..geospatial import route_length_m

# viridis, dark to light
VIRIDIS = [
    "#440154", "#482878", "#3e4989", "#31688e", "#26828e",
    "#1f9e89", "#35b779", "#6ece58", "#b5de2b", "#fde725",
]
UNREACHABLE_COLOR = "#9e9e9e"


def bucket_color(index: int, bucket_count: int, reverse: bool = True) -> str:
    """Sample the viridis ramp; reversed by default so short travel is bright."""
    if bucket_count <= 1:
        position = 0.0
    else:
        position = index / (bucket_count - 1)
    if reverse:
        position = 1.0 - position
    return VIRIDIS[min(int(round(position * (len(VIRIDIS) - 1))), len(VIRIDIS) - 1)]


def bucket_index_for(cost: float, buckets: Sequence[DistributionBucket]) -> Optional[int]:
    """Index of the bucket holding ``cost``, with the same edge rules as bucketization."""
    regular = [bucket for bucket in buckets if bucket.kind is BucketKind.REGULAR]
    if not regular:
        return None
    last_edge = regular[-1].range_end
    if cost > last_edge:
        return len(regular) if len(buckets) > len(regular) else None
    if cost == last_edge:
        return len(regular) - 1
    starts = [bucket.range_start for bucket in regular]
    return max(bisect_right(starts, cost) - 1, 0)


def _point_feature(coordinates: tuple[float, float], properties: Dict[str, Any]) -> Dict[str, Any]:
    lat, lon = coordinates
    return {
        "type": "Feature",
        # GeoJSON uses [lon, lat]
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": properties,
    }


def export_aggregation_to_geojson(
    result: AggregationResult,
    targets: Sequence[Target] = (),
    segments: Sequence[RouteSegment] = (),
    segment_method: Optional[str] = None,
) -> Dict[str, Any]:
    """Convert an aggregation result to a GeoJSON FeatureCollection.

    Population points and targets become Point features; shared route
    segments become two-point LineStrings carrying how many routes use them.
    """

    features: List[Dict[str, Any]] = []
    bucket_total = len(result.buckets)

    for entry in result.point_costs:
        index = bucket_index_for(entry.cost, result.buckets) if entry.status is RouteStatus.REACHABLE else None
        features.append(
            _point_feature(
                entry.location,
                {
                    "kind": "population",
                    "point_id": entry.point_id,
                    "weight": entry.weight,
                    "status": entry.status.value,
                    "target_id": entry.target_id,
                    "cost": entry.cost,
                    "bucket": index,
                    "color": bucket_color(index, bucket_total) if index is not None else UNREACHABLE_COLOR,
                },
            )
        )

    for target in targets:
        features.append(
            _point_feature(
                target.location,
                {
                    "kind": "target",
                    "target_id": target.id,
                    "name": target.name,
                    "category": target.category,
                    "selected": target.id in result.target_selection,
                },
            )
        )

    for index, segment in enumerate(segments):
        features.append(
            {
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[segment.start.lon, segment.start.lat], [segment.end.lon, segment.end.lat]],
                },
                "properties": {
                    "kind": "segment",
                    "segment_index": index,
                    "count": segment.count,
                    "weight": segment.weight,
                    "length_m": route_length_m([segment.start, segment.end]),
                },
            }
        )

    return {
        "type": "FeatureCollection",
        "features": features,
        "metadata": {
            "exportDate": datetime.now(timezone.utc).isoformat(),
            "mode": result.mode,
            "generation": result.generation,
            "complete": result.complete,
            "totalWeight": result.total_weight,
            "unreachableWeight": result.unreachable_weight,
            "pointCount": len(result.point_costs),
            "targetCount": len(result.target_selection),
            "segmentCount": len(segments),
            "aggregationMethod": segment_method,
        },
    }

