"""Aggregation request/response schemas."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class AggregationRequest(BaseModel):
    target_ids: Optional[List[str]] = Field(default=None, description="Selected targets; all targets when omitted.")
    mode: Optional[str] = Field(default=None, description="Routing profile, e.g. foot, bike, pt.")
    metric: Optional[Literal["time", "distance"]] = None
    # validated by the distribution engine so bad values surface as 400, not 422
    distribution: Optional[Dict[str, Any]] = None
    include_points: bool = True


class BucketModel(BaseModel):
    range_start: Optional[float]
    range_end: Optional[float]
    total_weight: float
    count: int
    kind: str


class SummaryModel(BaseModel):
    mean: Optional[float] = None
    median: Optional[float] = None
    p90: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None


class PointCostModel(BaseModel):
    point_id: str
    lat: float
    lon: float
    weight: float
    status: str
    target_id: Optional[str] = None
    cost: Optional[float] = None


class AggregationResponse(BaseModel):
    target_selection: List[str]
    mode: str
    generation: int
    complete: bool
    pending_count: int
    pending_weight: float
    total_weight: float
    unreachable_weight: float
    unreachable_count: int
    unreachable_fraction: float
    buckets: List[BucketModel]
    unreachable_bucket: BucketModel
    summary: SummaryModel
    point_costs: Optional[List[PointCostModel]] = None
