"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings
from ...services.routing.providers import check_health

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/routing", status_code=status.HTTP_200_OK)
def health_routing() -> dict:
    """Check the routing backend; reports the beeline fallback when none is configured."""
    if not settings.routing_base_url:
        return {"service": "routing", "healthy": False, "provider": "beeline"}
    return {"service": "routing", "healthy": check_health(), "provider": "graphhopper"}
