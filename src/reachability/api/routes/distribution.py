"""API routes for reference distance distributions."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ...schemas.distribution import ExpectedDistributionRequest, ExpectedDistributionResponse
from ...services.distribution.expected import expected_distribution

router = APIRouter(prefix="/distribution", tags=["distribution"])


@router.post("/expected", response_model=ExpectedDistributionResponse)
def expected(payload: ExpectedDistributionRequest) -> ExpectedDistributionResponse:
    """Expected share of start points per distance bin for a synthetic distribution."""
    try:
        bins = expected_distribution(payload.kind, payload.num_bins, payload.radius_m, payload.total)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ExpectedDistributionResponse(
        kind=payload.kind,
        bin_size_m=payload.radius_m / payload.num_bins,
        bins=bins,
    )
