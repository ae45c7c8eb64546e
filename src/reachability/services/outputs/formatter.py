"""Serializers for aggregation outputs."""

from __future__ import annotations

import csv
import io
import math
from typing import Optional

from ...models.domain import AggregationResult, DistributionBucket, DistributionSummary


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


def bucket_to_json(bucket: DistributionBucket) -> dict:
    # JSON has no infinity; open bucket bounds become null
    return {
        "range_start": _finite_or_none(bucket.range_start),
        "range_end": _finite_or_none(bucket.range_end),
        "total_weight": bucket.total_weight,
        "count": bucket.count,
        "kind": bucket.kind.value,
    }


def summary_to_json(summary: DistributionSummary) -> dict:
    return {
        "mean": summary.mean,
        "median": summary.median,
        "p90": summary.p90,
        "min": summary.minimum,
        "max": summary.maximum,
    }


def aggregation_result_to_json(result: AggregationResult, *, include_points: bool = True) -> dict:
    payload = {
        "target_selection": sorted(result.target_selection),
        "mode": result.mode,
        "generation": result.generation,
        "complete": result.complete,
        "pending_count": result.pending_count,
        "pending_weight": result.pending_weight,
        "total_weight": result.total_weight,
        "unreachable_weight": result.unreachable_weight,
        "unreachable_count": result.unreachable_count,
        "unreachable_fraction": result.unreachable_fraction,
        "buckets": [bucket_to_json(bucket) for bucket in result.buckets],
        "unreachable_bucket": bucket_to_json(result.unreachable_bucket),
        "summary": summary_to_json(result.summary),
    }
    if include_points:
        payload["point_costs"] = [
            {
                "point_id": entry.point_id,
                "lat": entry.location.lat,
                "lon": entry.location.lon,
                "weight": entry.weight,
                "status": entry.status.value,
                "target_id": entry.target_id,
                "cost": entry.cost,
            }
            for entry in result.point_costs
        ]
    return payload


def point_costs_to_csv(result: AggregationResult) -> str:
    buffer = io.StringIO()
    fieldnames = ["point_id", "lat", "lon", "weight", "status", "target_id", "cost"]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for entry in result.point_costs:
        writer.writerow(
            {
                "point_id": entry.point_id,
                "lat": entry.location.lat,
                "lon": entry.location.lon,
                "weight": entry.weight,
                "status": entry.status.value,
                "target_id": entry.target_id or "",
                "cost": "" if entry.cost is None else entry.cost,
            }
        )
    return buffer.getvalue()
