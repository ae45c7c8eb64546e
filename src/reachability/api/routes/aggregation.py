"""API routes for the travel-cost distribution."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Query, status

from .. import state
from ...config import settings
from ...errors import ConfigError
from ...schemas.aggregation import AggregationRequest, AggregationResponse
from ...services.aggregation.session import run_analysis
from ...services.export.geojson import export_aggregation_to_geojson
from ...services.outputs.formatter import aggregation_result_to_json

router = APIRouter(prefix="/aggregation", tags=["aggregation"])


@router.post("", response_model=AggregationResponse)
async def run_aggregation(payload: AggregationRequest) -> dict:
    """Route the selected targets for the loaded population and return the distribution."""
    session = state.get_session()
    try:
        result = await run_analysis(
            session,
            selection=payload.target_ids,
            mode=payload.mode,
            metric=payload.metric,
            config=payload.distribution,
        )
    except ConfigError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return aggregation_result_to_json(result, include_points=payload.include_points)


@router.get("", response_model=AggregationResponse)
def current_aggregation(include_points: bool = Query(default=False)) -> dict:
    session = state.get_session()
    result = session.current_result or session.recompute()
    return aggregation_result_to_json(result, include_points=include_points)


@router.get("/geojson")
def aggregation_geojson(
    segments: bool = Query(default=True, description="Include shared route segments as LineStrings."),
    method: Optional[Literal["simple", "lazy_overlap"]] = Query(default=None),
) -> dict:
    session = state.get_session()
    result = session.current_result or session.recompute()
    route_segments = session.route_segments(method) if segments else ()
    return export_aggregation_to_geojson(
        result,
        session.targets.list_targets(),
        segments=route_segments,
        segment_method=(method or settings.segment_aggregation_method) if segments else None,
    )
