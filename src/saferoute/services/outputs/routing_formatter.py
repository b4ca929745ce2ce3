"""Serializers for routing outputs."""

from __future__ import annotations

from typing import Any

from ..routing.models import RouteComparison, RouteResult


def route_result_to_json(result: RouteResult) -> dict:
    """Plain record: coordinates as [lat, lon] pairs, meters, seconds, 0-100 score."""

    return {
        "route_type": result.route_type.value,
        "coordinates": [[point.latitude, point.longitude] for point in result.path],
        "distance_m": result.distance_m,
        "duration_s": result.duration_s,
        "safety_score": result.safety_score,
        "avoided_zones_count": result.avoided_count,
        "fallback": result.fallback,
        "alternatives": [route_result_to_json(alternative) for alternative in result.alternatives],
    }


def comparison_to_json(comparison: RouteComparison) -> dict:
    return {
        "fastest": route_result_to_json(comparison.fastest),
        "safest": route_result_to_json(comparison.safest),
        "balanced": route_result_to_json(comparison.balanced),
        "analysis": {
            "time_saved_s": comparison.time_saved_s,
            "distance_difference_m": comparison.distance_difference_m,
            "safety_improvement": comparison.safety_improvement,
            "recommendation": comparison.recommendation.value,
        },
    }


def route_result_to_geojson(result: RouteResult) -> dict[str, Any]:
    """GeoJSON Feature for map clients.

    GeoJSON uses [lon, lat] order, unlike the plain record.
    """

    if len(result.path) < 2:
        raise ValueError("LineString must have at least 2 coordinates")
    return {
        "type": "Feature",
        "geometry": {
            "type": "LineString",
            "coordinates": [[point.longitude, point.latitude] for point in result.path],
        },
        "properties": {
            "route_type": result.route_type.value,
            "distance_m": round(result.distance_m, 1),
            "duration_s": round(result.duration_s, 1),
            "safety_score": result.safety_score,
            "avoided_zones_count": result.avoided_count,
            "fallback": result.fallback,
        },
    }
