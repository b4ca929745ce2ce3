"""Geospatial helper functions.

Coordinates are handled as (latitude, longitude); shapely geometries are built
in (x=longitude, y=latitude) order.
"""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Sequence

from shapely.geometry import LineString, Point, Polygon

from ..errors import GeometryError
from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_M = EARTH_RADIUS_KM * 1000.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def segment_length_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle length of the segment ``a``-``b`` in meters."""

    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude) * 1000.0


def path_length_meters(path: Sequence[Coordinate]) -> float:
    return sum(segment_length_meters(a, b) for a, b in zip(path, path[1:]))


def bearing_degrees(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the initial bearing from (lat1, lon1) to (lat2, lon2)."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)
    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360) % 360


def bearing(a: Coordinate, b: Coordinate) -> float:
    return bearing_degrees(a.latitude, a.longitude, b.latitude, b.longitude)


def destination_point(origin: Coordinate, distance_m: float, bearing_deg: float) -> Coordinate:
    """Project ``distance_m`` meters from ``origin`` along ``bearing_deg`` on the sphere."""

    angular = distance_m / EARTH_RADIUS_M
    theta = math.radians(bearing_deg)
    phi1 = math.radians(origin.latitude)
    lambda1 = math.radians(origin.longitude)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(angular) + math.cos(phi1) * math.sin(angular) * math.cos(theta)
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(angular) * math.cos(phi1),
        math.cos(angular) - math.sin(phi1) * math.sin(phi2),
    )
    longitude = (math.degrees(lambda2) + 540.0) % 360.0 - 180.0
    latitude = max(-90.0, min(90.0, math.degrees(phi2)))
    return Coordinate(latitude, longitude)


def _validated_ring(ring: Sequence[Coordinate]) -> tuple[Coordinate, ...]:
    points = tuple(ring)
    if len(set(points)) < 3:
        raise GeometryError(f"Polygon ring needs at least 3 distinct points, got {len(set(points))}.")
    if points[0] != points[-1]:
        points = points + (points[0],)
    return points


@lru_cache(maxsize=1024)
def _polygon_for_ring(ring: tuple[Coordinate, ...]) -> Polygon:
    polygon = Polygon([(point.longitude, point.latitude) for point in ring])
    if polygon.area == 0:
        raise GeometryError("Polygon ring is degenerate (zero area).")
    return polygon


def ring_to_polygon(ring: Sequence[Coordinate]) -> Polygon:
    """Build (and memoize) the shapely polygon for a ring of coordinates."""

    return _polygon_for_ring(_validated_ring(ring))


def path_to_linestring(path: Sequence[Coordinate]) -> LineString | Point:
    if not path:
        raise GeometryError("Path must contain at least one coordinate.")
    if len(path) == 1:
        return Point(path[0].longitude, path[0].latitude)
    return LineString([(point.longitude, point.latitude) for point in path])


def point_in_polygon(point: Coordinate, ring: Sequence[Coordinate]) -> bool:
    """Return True if the point lies strictly inside the ring.

    Points exactly on an edge or vertex count as outside.
    """

    polygon = ring_to_polygon(ring)
    return polygon.contains(Point(point.longitude, point.latitude))


def line_intersects_polygon(path: Sequence[Coordinate], ring: Sequence[Coordinate]) -> bool:
    """Return True if any path segment touches or crosses the ring, or any path point lies inside it."""

    polygon = ring_to_polygon(ring)
    return path_to_linestring(path).intersects(polygon)


def point_to_path_distance_meters(point: Coordinate, path: Sequence[Coordinate]) -> float:
    """Distance from ``point`` to the nearest point of the ``path`` polyline.

    Uses an equirectangular projection centred on ``point``; accurate for the
    sub-10 km distances hazard radii work with.
    """

    if not path:
        raise GeometryError("Path must contain at least one coordinate.")
    cos_lat = math.cos(math.radians(point.latitude))

    def project(coord: Coordinate) -> tuple[float, float]:
        x = math.radians(coord.longitude - point.longitude) * cos_lat * EARTH_RADIUS_M
        y = math.radians(coord.latitude - point.latitude) * EARTH_RADIUS_M
        return x, y

    projected = [project(coord) for coord in path]
    if len(projected) == 1:
        return math.hypot(*projected[0])
    return min(_origin_to_segment(a, b) for a, b in zip(projected, projected[1:]))


def _origin_to_segment(a: tuple[float, float], b: tuple[float, float]) -> float:
    ax, ay = a
    dx, dy = b[0] - ax, b[1] - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(ax, ay)
    t = max(0.0, min(1.0, -(ax * dx + ay * dy) / length_sq))
    return math.hypot(ax + t * dx, ay + t * dy)
