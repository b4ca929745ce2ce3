"""Risk model: obstacle rasterization, soft cell penalties and path penalties."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Sequence

import numpy as np
import shapely

from ...models.domain import (
    Coordinate,
    Hazard,
    HazardType,
    RiskLevel,
    RiskZone,
    Severity,
    ZoneCategory,
)
from ..geospatial import (
    EARTH_RADIUS_M,
    line_intersects_polygon,
    point_to_path_distance_meters,
    ring_to_polygon,
)
from .grid import GridCell, SpatialGrid

logger = logging.getLogger(__name__)

RISK_LEVEL_WEIGHTS: dict[RiskLevel, float] = {
    RiskLevel.LOW: 0.25,
    RiskLevel.MEDIUM: 0.5,
    RiskLevel.HIGH: 1.0,
    RiskLevel.CRITICAL: 1.6,
}

CATEGORY_WEIGHTS: dict[ZoneCategory, float] = {
    ZoneCategory.TRAFFIC: 0.8,
    ZoneCategory.CONSTRUCTION: 0.9,
    ZoneCategory.ACCIDENT_PRONE: 1.1,
    ZoneCategory.CRIME_HOTSPOT: 1.2,
    ZoneCategory.WEATHER_AFFECTED: 1.0,
    ZoneCategory.ROAD_CONDITION: 0.9,
    ZoneCategory.ENVIRONMENTAL: 0.8,
    ZoneCategory.TEMPORARY: 0.9,
    ZoneCategory.OTHER: 1.0,
}

SEVERITY_WEIGHTS: dict[Severity, float] = {
    Severity.MINOR: 1.0,
    Severity.MODERATE: 1.5,
    Severity.MAJOR: 2.0,
    Severity.CRITICAL: 3.0,
}

HAZARD_TYPE_WEIGHTS: dict[HazardType, float] = {
    HazardType.ACCIDENT: 2.0,
    HazardType.ROAD_CLOSURE: 3.0,
    HazardType.CONSTRUCTION: 1.5,
    HazardType.TRAFFIC_JAM: 1.2,
    HazardType.WEATHER_INCIDENT: 1.8,
    HazardType.POLICE_ACTIVITY: 1.3,
    HazardType.EVENT_CONGESTION: 1.2,
    HazardType.VEHICLE_BREAKDOWN: 1.1,
    HazardType.DEBRIS: 1.4,
    HazardType.FLOODING: 2.5,
    HazardType.OTHER: 1.0,
}

# Relative weight of a hazard against a zone in the raw penalty.
HAZARD_WEIGHT = 0.5

# Grows cell boxes slightly so cells that merely touch a zone edge are caught.
_BOX_INFLATION = 1e-6
_METERS_PER_DEGREE = math.radians(1.0) * EARTH_RADIUS_M


@dataclass(frozen=True, slots=True)
class TimeOfDayWeights:
    """Edge-cost multipliers for one time-of-day period.

    Road classes are not modelled, so ``uniform`` applies to every traversable
    cell; ``high_traffic`` applies on top of it to cells inside traffic zones.
    """

    period: str
    uniform: float
    high_traffic: float


NIGHT_WEIGHTS = TimeOfDayWeights(period="night", uniform=1.25, high_traffic=1.0)
RUSH_WEIGHTS = TimeOfDayWeights(period="rush", uniform=1.0, high_traffic=1.6)
DAY_WEIGHTS = TimeOfDayWeights(period="day", uniform=1.0, high_traffic=1.0)


def is_night(hour: int) -> bool:
    return hour >= 22 or hour <= 5


def is_rush_hour(hour: int) -> bool:
    return 7 <= hour <= 9 or 17 <= hour <= 19


def time_of_day_weights(hour: int) -> TimeOfDayWeights:
    if not 0 <= hour <= 23:
        raise ValueError(f"hour must be within 0..23, got {hour}")
    if is_night(hour):
        return NIGHT_WEIGHTS
    if is_rush_hour(hour):
        return RUSH_WEIGHTS
    return DAY_WEIGHTS


@dataclass(slots=True)
class CostSurface:
    """Soft per-cell penalties and the set of high-traffic cells for one search."""

    penalties: dict[GridCell, float] = field(default_factory=dict)
    high_traffic: frozenset[GridCell] = frozenset()

    def is_free(self, cell: GridCell) -> bool:
        return cell not in self.penalties and cell not in self.high_traffic


def active_zones(zones: Iterable[RiskZone], at_time: datetime) -> tuple[RiskZone, ...]:
    return tuple(zone for zone in zones if zone.in_force(at_time))


def active_hazards(hazards: Iterable[Hazard], at_time: datetime) -> tuple[Hazard, ...]:
    return tuple(hazard for hazard in hazards if hazard.in_force(at_time))


def zone_penalty(zone: RiskZone) -> float:
    return zone.risk_multiplier * RISK_LEVEL_WEIGHTS[zone.risk_level] * CATEGORY_WEIGHTS[zone.category]


def hazard_penalty(hazard: Hazard, distance_m: float) -> float:
    """Penalty contributed by ``hazard`` at ``distance_m``; zero at or beyond its radius."""

    if distance_m >= hazard.affected_radius_m:
        return 0.0
    falloff = 1.0 - max(0.0, distance_m) / hazard.affected_radius_m
    return (
        HAZARD_WEIGHT
        * SEVERITY_WEIGHTS[hazard.severity]
        * HAZARD_TYPE_WEIGHTS[hazard.hazard_type]
        * falloff
    )


def zone_cells(grid: SpatialGrid, zone: RiskZone) -> set[GridCell]:
    """Cells whose square overlaps the zone polygon, edges included.

    Every cell under the polygon's bounding box is tested.
    """

    polygon = ring_to_polygon(zone.ring)
    columns, rows = grid.index_range(*polygon.bounds)
    if not columns or not rows:
        return set()
    xs = np.asarray(columns, dtype=float)
    ys = np.asarray(rows, dtype=float)
    cx, cy = np.meshgrid(grid.min_lon + xs / grid.scale, grid.min_lat + ys / grid.scale)
    half = 0.5 / grid.scale + _BOX_INFLATION / grid.scale
    boxes = shapely.box(cx - half, cy - half, cx + half, cy + half)
    hits = shapely.intersects(polygon, boxes)
    row_idx, col_idx = np.nonzero(hits)
    return {GridCell(columns[c], rows[r]) for r, c in zip(row_idx.tolist(), col_idx.tolist())}


def _hazard_cell_distances(grid: SpatialGrid, hazard: Hazard) -> dict[GridCell, float]:
    """Distance (m) from the hazard to the nearest point of every cell within its radius."""

    center = hazard.location
    dlat = hazard.affected_radius_m / _METERS_PER_DEGREE
    dlon = dlat / max(math.cos(math.radians(center.latitude)), 1e-6)
    columns, rows = grid.index_range(
        center.longitude - dlon,
        center.latitude - dlat,
        center.longitude + dlon,
        center.latitude + dlat,
    )
    if not columns or not rows:
        return {}
    xs = np.asarray(columns, dtype=float)
    ys = np.asarray(rows, dtype=float)
    cx, cy = np.meshgrid(grid.min_lon + xs / grid.scale, grid.min_lat + ys / grid.scale)
    half = 0.5 / grid.scale
    nearest_lon = np.clip(center.longitude, cx - half, cx + half)
    nearest_lat = np.clip(center.latitude, cy - half, cy + half)
    distances = _haversine_m(center.latitude, center.longitude, nearest_lat, nearest_lon)
    inside = distances <= hazard.affected_radius_m
    row_idx, col_idx = np.nonzero(inside)
    return {
        GridCell(columns[c], rows[r]): float(distances[r, c])
        for r, c in zip(row_idx.tolist(), col_idx.tolist())
    }


def hazard_cells(grid: SpatialGrid, hazard: Hazard) -> set[GridCell]:
    return set(_hazard_cell_distances(grid, hazard))


def rasterize_obstacles(
    grid: SpatialGrid,
    zones: Iterable[RiskZone],
    hazards: Iterable[Hazard],
    at_time: datetime,
) -> frozenset[GridCell]:
    """Mark every cell covered by an in-force zone or within an in-force hazard's radius."""

    obstacles: set[GridCell] = set()
    zones_in_force = active_zones(zones, at_time)
    hazards_in_force = active_hazards(hazards, at_time)
    for zone in zones_in_force:
        obstacles |= zone_cells(grid, zone)
    for hazard in hazards_in_force:
        obstacles |= hazard_cells(grid, hazard)
    logger.debug(
        f"Rasterized {len(obstacles)} obstacle cells from {len(zones_in_force)} zones "
        f"and {len(hazards_in_force)} hazards"
    )
    return frozenset(obstacles)


def cost_surface(
    grid: SpatialGrid,
    zones: Iterable[RiskZone],
    hazards: Iterable[Hazard],
    at_time: datetime,
) -> CostSurface:
    """Soft penalties for in-force zones/hazards that are not hard obstacles.

    High-traffic cells are those inside in-force ``traffic`` zones.
    """

    penalties: dict[GridCell, float] = {}
    high_traffic: set[GridCell] = set()
    for zone in active_zones(zones, at_time):
        contribution = zone_penalty(zone)
        cells = zone_cells(grid, zone)
        for cell in cells:
            penalties[cell] = penalties.get(cell, 0.0) + contribution
        if zone.category is ZoneCategory.TRAFFIC:
            high_traffic |= cells
    for hazard in active_hazards(hazards, at_time):
        for cell, distance in _hazard_cell_distances(grid, hazard).items():
            contribution = hazard_penalty(hazard, distance)
            if contribution > 0:
                penalties[cell] = penalties.get(cell, 0.0) + contribution
    return CostSurface(penalties=penalties, high_traffic=frozenset(high_traffic))


def touched_zones(path: Sequence[Coordinate], zones: Iterable[RiskZone]) -> list[RiskZone]:
    return [zone for zone in zones if line_intersects_polygon(path, zone.ring)]


def touched_hazards(path: Sequence[Coordinate], hazards: Iterable[Hazard]) -> list[Hazard]:
    return [
        hazard
        for hazard in hazards
        if point_to_path_distance_meters(hazard.location, path) < hazard.affected_radius_m
    ]


def penalty_for_path(
    path: Sequence[Coordinate],
    zones: Iterable[RiskZone],
    hazards: Iterable[Hazard],
    at_time: datetime,
) -> float:
    """Raw risk exposure of ``path``; never decreases when zones, hazards or multipliers grow."""

    total = 0.0
    for zone in touched_zones(path, active_zones(zones, at_time)):
        total += zone_penalty(zone)
    for hazard in active_hazards(hazards, at_time):
        distance = point_to_path_distance_meters(hazard.location, path)
        total += hazard_penalty(hazard, distance)
    return total


def _haversine_m(lat1: float, lon1: float, lat2: np.ndarray, lon2: np.ndarray) -> np.ndarray:
    phi1 = math.radians(lat1)
    phi2 = np.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = np.radians(lon2 - lon1)
    a = np.sin(d_phi / 2) ** 2 + math.cos(phi1) * np.cos(phi2) * np.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
