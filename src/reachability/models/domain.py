"""Domain models for population points, targets, routes and distributions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional


class LatLng(NamedTuple):
    lat: float
    lon: float


@dataclass(slots=True, frozen=True)
class PopulationPoint:
    """A populated location; weight is the number of residents it stands for."""

    id: str
    location: LatLng
    weight: float = 1.0


@dataclass(slots=True, frozen=True)
class Target:
    """A facility population points are evaluated against (e.g. a school)."""

    id: str
    location: LatLng
    category: str = "school"
    name: Optional[str] = None
    metadata: dict = field(default_factory=dict, compare=False, hash=False)


class RouteStatus(str, Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class RouteResult:
    """Normalized travel cost between a population point and a target."""

    population_point_id: str
    target_id: str
    mode: str
    status: RouteStatus
    cost: Optional[float] = None
    distance_m: Optional[float] = None
    generation: int = 0
    error: Optional[str] = None
    geometry: tuple[LatLng, ...] = ()

    @property
    def pair(self) -> tuple[str, str]:
        return (self.population_point_id, self.target_id)

    @property
    def is_reachable(self) -> bool:
        return self.status is RouteStatus.REACHABLE and self.cost is not None and math.isfinite(self.cost)


class BucketKind(str, Enum):
    REGULAR = "regular"
    OVERFLOW = "overflow"
    UNREACHABLE = "unreachable"


@dataclass(slots=True, frozen=True)
class DistributionBucket:
    range_start: float
    range_end: float
    total_weight: float = 0.0
    count: int = 0
    kind: BucketKind = BucketKind.REGULAR


@dataclass(slots=True, frozen=True)
class DistributionSummary:
    """Population-weighted statistics over reachable costs."""

    mean: Optional[float] = None
    median: Optional[float] = None
    p90: Optional[float] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None


@dataclass(slots=True, frozen=True)
class PointCost:
    """Effective (nearest-target) cost of one population point."""

    point_id: str
    location: LatLng
    weight: float
    status: RouteStatus
    target_id: Optional[str] = None
    cost: Optional[float] = None


@dataclass(slots=True, frozen=True)
class RouteSegment:
    """A straight route piece shared by ``count`` routes; ``weight`` sums their population."""

    start: LatLng
    end: LatLng
    count: int = 1
    weight: float = 0.0


@dataclass(slots=True, frozen=True)
class AggregationResult:
    target_selection: frozenset[str]
    mode: str
    buckets: tuple[DistributionBucket, ...]
    unreachable_weight: float
    total_weight: float
    unreachable_count: int = 0
    pending_weight: float = 0.0
    pending_count: int = 0
    complete: bool = True
    point_costs: tuple[PointCost, ...] = ()
    summary: DistributionSummary = field(default_factory=DistributionSummary)
    generation: int = 0

    @property
    def unreachable_bucket(self) -> DistributionBucket:
        """Explicit bucket for points without a reachable target."""
        return DistributionBucket(
            range_start=math.inf,
            range_end=math.inf,
            total_weight=self.unreachable_weight,
            count=self.unreachable_count,
            kind=BucketKind.UNREACHABLE,
        )

    def histogram(self) -> tuple[DistributionBucket, ...]:
        return (*self.buckets, self.unreachable_bucket)

    @property
    def reachable_weight(self) -> float:
        return self.total_weight - self.unreachable_weight

    @property
    def unreachable_fraction(self) -> float:
        if not self.total_weight:
            return 0.0
        return self.unreachable_weight / self.total_weight


def id_sort_key(value: str) -> tuple[int, int, str]:
    """Order ids numerically when they look like integers, otherwise lexically."""

    text = str(value)
    stripped = text.strip()
    if stripped.lstrip("-").isdigit():
        return (0, int(stripped), text)
    return (1, 0, text)
