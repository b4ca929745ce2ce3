"""Distance, duration and safety estimates for a coordinate path."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from ...config import settings
from ...models.domain import Coordinate, Hazard, RiskZone
from ..geospatial import path_length_meters
from . import risk
from .models import RouteType

# Average travel speed per route class (km/h).
AVERAGE_SPEED_KMH: dict[RouteType, float] = {
    RouteType.FASTEST: 60.0,
    RouteType.SAFEST: 35.0,
    RouteType.BALANCED: 45.0,
}
RUSH_HOUR_SPEED_FACTOR = 0.75
NIGHT_SPEED_FACTOR = 0.9
NO_HIGHWAY_MAX_SPEED_KMH = 50.0


def distance(path: Sequence[Coordinate]) -> float:
    """Path length in meters."""

    return path_length_meters(path)


def average_speed(route_type: RouteType, at_time: datetime, *, avoid_highways: bool = False) -> float:
    speed = AVERAGE_SPEED_KMH[RouteType(route_type)]
    if avoid_highways:
        speed = min(speed, NO_HIGHWAY_MAX_SPEED_KMH)
    if risk.is_rush_hour(at_time.hour):
        speed *= RUSH_HOUR_SPEED_FACTOR
    elif risk.is_night(at_time.hour):
        speed *= NIGHT_SPEED_FACTOR
    return speed


def duration(
    path: Sequence[Coordinate],
    route_type: RouteType,
    at_time: datetime,
    *,
    avoid_highways: bool = False,
) -> float:
    """Travel time in seconds."""

    speed_mps = average_speed(route_type, at_time, avoid_highways=avoid_highways) / 3.6
    return distance(path) / speed_mps


def safety_score(
    path: Sequence[Coordinate],
    zones: Iterable[RiskZone],
    hazards: Iterable[Hazard],
    at_time: datetime,
) -> int:
    """0-100 score; 100 means the path touches no in-force zone or hazard.

    Each unit of raw penalty removes ``settings.safety_score_scale`` points, so
    exposures add up linearly until the score bottoms out at 0.
    """

    penalty = risk.penalty_for_path(path, zones, hazards, at_time)
    score = 100.0 - penalty * settings.safety_score_scale
    return int(max(0, min(100, round(score))))


def avoided_count(
    path: Sequence[Coordinate],
    origin: Coordinate,
    destination: Coordinate,
    zones: Iterable[RiskZone],
    hazards: Iterable[Hazard],
    at_time: datetime,
) -> int:
    """In-force zones and hazards on the straight origin-destination line that ``path`` stays clear of."""

    direct = (origin, destination)
    zones_in_force = risk.active_zones(zones, at_time)
    hazards_in_force = risk.active_hazards(hazards, at_time)
    on_route_zones = {id(zone) for zone in risk.touched_zones(path, zones_in_force)}
    on_route_hazards = {id(hazard) for hazard in risk.touched_hazards(path, hazards_in_force)}
    avoided = sum(1 for zone in risk.touched_zones(direct, zones_in_force) if id(zone) not in on_route_zones)
    avoided += sum(
        1 for hazard in risk.touched_hazards(direct, hazards_in_force) if id(hazard) not in on_route_hazards
    )
    return avoided
