"""Population request/response schemas."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PopulationUploadRequest(BaseModel):
    records: List[Dict[str, Any]] = Field(..., description="Records with at least lat, lon and weight.")


class PopulationUploadResponse(BaseModel):
    loaded: int
    skipped: int
    total_weight: float
    errors: List[str] = Field(default_factory=list, description="Sample of validation messages for skipped records.")


class BoundingBoxModel(BaseModel):
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float


class PopulationSummary(BaseModel):
    count: int
    total_weight: float
    bounds: Optional[BoundingBoxModel] = None
