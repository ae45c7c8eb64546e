"""Target request/response schemas."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.domain import LatLng, Target


class TargetModel(BaseModel):
    id: str
    lat: float
    lon: float
    category: str = "school"
    name: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, target: Target) -> "TargetModel":
        return cls(
            id=target.id,
            lat=target.location.lat,
            lon=target.location.lon,
            category=target.category,
            name=target.name,
            metadata=target.metadata,
        )


class TargetCreateRequest(BaseModel):
    id: Optional[str] = Field(default=None, description="Explicit id; a numeric id is assigned when omitted.")
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    category: str = "school"
    name: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> Target:
        return Target(
            id=self.id or "",
            location=LatLng(self.lat, self.lon),
            category=self.category,
            name=self.name,
            metadata=dict(self.metadata),
        )


class SchoolSearchRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    radius_m: float = Field(default=500, gt=0, le=10000)
    add_to_targets: bool = True


class SchoolSearchResponse(BaseModel):
    found: int
    added: int
    targets: List[TargetModel]
