"""API routes for population data."""

from __future__ import annotations

from fastapi import APIRouter, status

from .. import state
from ...schemas.population import (
    BoundingBoxModel,
    PopulationSummary,
    PopulationUploadRequest,
    PopulationUploadResponse,
)
from ...services.geospatial import BoundingBox

router = APIRouter(prefix="/population", tags=["population"])


@router.post("", response_model=PopulationUploadResponse, status_code=status.HTTP_200_OK)
def upload_population(payload: PopulationUploadRequest) -> PopulationUploadResponse:
    """Replace the population; invalid records are skipped and reported, not fatal."""
    outcome = state.get_session().load_population(payload.records)
    return PopulationUploadResponse(
        loaded=outcome.loaded,
        skipped=outcome.skipped,
        total_weight=outcome.total_weight,
        errors=list(outcome.errors),
    )


@router.get("", response_model=PopulationSummary)
def get_population() -> PopulationSummary:
    points = state.get_session().population
    bounds = None
    if points:
        box = BoundingBox.from_points(point.location for point in points)
        bounds = BoundingBoxModel(
            min_lat=box.min_lat, min_lon=box.min_lon, max_lat=box.max_lat, max_lon=box.max_lon
        )
    return PopulationSummary(
        count=len(points),
        total_weight=sum(point.weight for point in points),
        bounds=bounds,
    )
