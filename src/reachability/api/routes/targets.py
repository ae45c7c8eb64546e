"""API routes for the target set."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, HTTPException, status

from .. import state
from ...errors import ValidationError
from ...schemas.targets import SchoolSearchRequest, SchoolSearchResponse, TargetCreateRequest, TargetModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/targets", tags=["targets"])


@router.get("", response_model=List[TargetModel])
def list_targets() -> List[TargetModel]:
    return [TargetModel.from_domain(target) for target in state.get_session().targets.list_targets()]


@router.post("", response_model=TargetModel, status_code=status.HTTP_201_CREATED)
def create_target(payload: TargetCreateRequest) -> TargetModel:
    registry = state.get_session().targets
    try:
        if payload.id:
            target = payload.to_domain()
            created = target if registry.add_target(target) else None
        else:
            created = registry.add_location(
                payload.lat,
                payload.lon,
                category=payload.category,
                name=payload.name,
                metadata=payload.metadata,
            )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if created is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A target with this id or at this location already exists.",
        )
    return TargetModel.from_domain(created)


@router.delete("/{target_id}", status_code=status.HTTP_200_OK)
def delete_target(target_id: str) -> dict:
    removed = state.get_session().targets.remove_target(target_id)
    if removed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Target '{target_id}' not found.")
    return {"removed": target_id}


@router.post("/search-schools", response_model=SchoolSearchResponse)
async def search_schools(payload: SchoolSearchRequest) -> SchoolSearchResponse:
    """Look up schools around a location on OpenStreetMap, optionally adding them as targets."""
    try:
        schools = await state.get_overpass_client().search_schools(payload.lat, payload.lon, payload.radius_m)
    except ConnectionError as exc:
        logger.error(f"School search failed: {exc}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    added = []
    if payload.add_to_targets:
        added = state.get_session().targets.add_many(schools)
    return SchoolSearchResponse(
        found=len(schools),
        added=len(added),
        targets=[TargetModel.from_domain(target) for target in schools],
    )
