"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...services.routing.cache import route_cache_stats

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Liveness check with a snapshot of the route cache."""
    return {"status": "ok", "route_cache": route_cache_stats()}
