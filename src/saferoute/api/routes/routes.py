"""Routing endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...schemas.routing import RouteComparisonResponse, RouteRequest, RouteResultModel
from ...services.routing.cache import clear_route_cache, route_cache_stats
from ...services.routing.service import calculate_route, calculate_route_geojson, compare_routes

router = APIRouter(prefix="/routes", tags=["routes"])


@router.post("/calculate", response_model=RouteResultModel, status_code=status.HTTP_200_OK)
def calculate(payload: RouteRequest) -> RouteResultModel:
    try:
        return calculate_route(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error calculating route: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to calculate route: {str(exc)}"
        ) from exc


@router.post("/calculate/geojson", status_code=status.HTTP_200_OK)
def calculate_geojson(payload: RouteRequest) -> dict:
    """Same as ``/calculate`` but returns a GeoJSON Feature ([lon, lat] order)."""
    try:
        return calculate_route_geojson(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error calculating route GeoJSON: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to calculate route: {str(exc)}"
        ) from exc


@router.post("/compare", response_model=RouteComparisonResponse, status_code=status.HTTP_200_OK)
def compare(payload: RouteRequest) -> RouteComparisonResponse:
    """Fastest, safest and balanced routes side by side, with a recommendation."""
    try:
        return compare_routes(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error comparing routes: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to compare routes: {str(exc)}"
        ) from exc


@router.get("/cache/stats", status_code=status.HTTP_200_OK)
def cache_stats() -> dict:
    return route_cache_stats()


@router.post("/cache/clear", status_code=status.HTTP_200_OK)
def cache_clear() -> dict:
    cleared = clear_route_cache()
    logging.info(f"Route cache cleared ({cleared} entries)")
    return {
        "success": True,
        "cleared": cleared,
        "message": f"Cleared {cleared} cached route(s)"
    }
