"""Distribution configuration and expected-distribution schemas."""

from __future__ import annotations

import math
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DistributionKind = Literal["uniform", "near", "far", "normal", "lognormal"]

MAX_BUCKETS = 1000


class DistributionConfig(BaseModel):
    """How reachable costs are bucketed.

    ``bucket_width`` and ``bucket_edges`` are mutually exclusive. With neither,
    the bucket count follows Sturges' rule over the observed costs.
    """

    bucket_width: Optional[float] = Field(default=None, gt=0)
    bucket_edges: Optional[List[float]] = None
    bucket_count: Optional[int] = Field(default=None, ge=1, le=MAX_BUCKETS)
    max_cutoff: Optional[float] = Field(default=None, gt=0)

    @field_validator("bucket_edges")
    @classmethod
    def _check_edges(cls, value: Optional[List[float]]) -> Optional[List[float]]:
        if value is None:
            return value
        if len(value) < 2:
            raise ValueError("bucket_edges needs at least two edges.")
        if len(value) > MAX_BUCKETS + 1:
            raise ValueError(f"bucket_edges allows at most {MAX_BUCKETS} buckets.")
        if any(not math.isfinite(edge) for edge in value):
            raise ValueError("bucket_edges must be finite.")
        if value[0] != 0:
            raise ValueError("bucket_edges must start at 0.")
        if any(later <= earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("bucket_edges must be strictly increasing.")
        return value

    @model_validator(mode="after")
    def _check_combination(self) -> "DistributionConfig":
        if self.bucket_edges is not None:
            if self.bucket_width is not None or self.bucket_count is not None:
                raise ValueError("bucket_edges cannot be combined with bucket_width or bucket_count.")
            if self.max_cutoff is not None:
                raise ValueError("bucket_edges already define the cutoff; drop max_cutoff.")
        if self.bucket_width is not None and self.bucket_count is not None and self.max_cutoff is not None:
            raise ValueError("bucket_width with bucket_count already defines the cutoff.")
        if self.bucket_width is not None and self.max_cutoff is not None:
            if math.ceil(self.max_cutoff / self.bucket_width) > MAX_BUCKETS:
                raise ValueError(f"max_cutoff / bucket_width exceeds {MAX_BUCKETS} buckets.")
        return self


class ExpectedDistributionRequest(BaseModel):
    kind: DistributionKind = "lognormal"
    num_bins: int = Field(default=15, ge=1, le=500)
    radius_m: float = Field(default=2000.0, gt=0)
    total: float = Field(default=100.0, ge=0)


class ExpectedDistributionResponse(BaseModel):
    kind: DistributionKind
    bin_size_m: float
    bins: List[float]
