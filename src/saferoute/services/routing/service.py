"""Routing orchestration service."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo

from ...config import settings
from ...errors import NoPathFoundError
from ...models.domain import (
    Coordinate,
    Hazard,
    RiskLevel,
    RiskZone,
    Severity,
    TimeSlot,
    ensure_aware,
)
from ...schemas.routing import (
    HazardModel,
    RiskZoneModel,
    RouteComparisonResponse,
    RouteOptionsModel,
    RouteRequest,
    RouteResultModel,
)
from ..geospatial import line_intersects_polygon, point_to_path_distance_meters
from ..outputs.routing_formatter import comparison_to_json, route_result_to_geojson, route_result_to_json
from . import estimator
from .cache import ROUTE_CACHE, RouteCache, build_cache_key
from .grid import GridCell, SpatialGrid
from .models import RouteComparison, RouteOptions, RouteResult, RouteType
from .pathfinder import find_path, smooth_path
from .risk import active_hazards, active_zones, cost_surface, rasterize_obstacles, time_of_day_weights

logger = logging.getLogger(__name__)

# Soft-penalty weight per search class, multiplied by safety_priority / 100.
# Fastest ignores soft penalties so non-critical zones still cost it score.
RISK_WEIGHT_BY_CLASS = {
    RouteType.FASTEST: 0.0,
    RouteType.SAFEST: 1.0,
}
# safety_priority at or above this turns low-risk zones and minor hazards into obstacles.
HIGH_SAFETY_PRIORITY = 70
# Extra travel time under which the safest route is always recommended.
RECOMMEND_SAFEST_MAX_DELAY_S = 600.0


def resolve_request_time(at_time: datetime | None) -> datetime:
    """Timezone-aware request time floored to the minute."""

    if at_time is None:
        at_time = datetime.now(ZoneInfo(settings.local_timezone))
    return ensure_aware(at_time).replace(second=0, microsecond=0)


def _split_zones(
    route_class: RouteType,
    zones: Sequence[RiskZone],
    options: RouteOptions,
) -> tuple[list[RiskZone], list[RiskZone]]:
    """Partition zones into hard obstacles and soft penalties for one search class."""

    if route_class is RouteType.FASTEST:
        threshold = RiskLevel.CRITICAL
    elif options.safety_priority >= HIGH_SAFETY_PRIORITY:
        threshold = RiskLevel.LOW
    else:
        threshold = RiskLevel.MEDIUM
    hard = [zone for zone in zones if zone.risk_level.rank >= threshold.rank]
    soft = [zone for zone in zones if zone.risk_level.rank < threshold.rank]
    return hard, soft


def _split_hazards(
    route_class: RouteType,
    hazards: Sequence[Hazard],
    options: RouteOptions,
) -> tuple[list[Hazard], list[Hazard]]:
    if route_class is RouteType.FASTEST:
        threshold = Severity.CRITICAL
    elif options.safety_priority >= HIGH_SAFETY_PRIORITY:
        threshold = Severity.MINOR
    else:
        threshold = Severity.MODERATE
    hard = [hazard for hazard in hazards if hazard.severity.rank >= threshold.rank]
    soft = [hazard for hazard in hazards if hazard.severity.rank < threshold.rank]
    return hard, soft


def _release_endpoint_obstacles(
    zones: Sequence[RiskZone],
    hazards: Sequence[Hazard],
    endpoints: Sequence[Coordinate],
) -> tuple[list[RiskZone], list[Hazard], list[RiskZone], list[Hazard]]:
    """Separate hard zones/hazards that cover an endpoint from the ones that stay obstacles.

    A traveller standing inside a zone or a hazard radius has to cross it to
    get out, so those are demoted to soft penalties rather than walling the
    endpoint in.
    """

    kept_zones: list[RiskZone] = []
    released_zones: list[RiskZone] = []
    for zone in zones:
        if any(line_intersects_polygon([point], zone.ring) for point in endpoints):
            released_zones.append(zone)
        else:
            kept_zones.append(zone)

    kept_hazards: list[Hazard] = []
    released_hazards: list[Hazard] = []
    for hazard in hazards:
        if any(
            point_to_path_distance_meters(hazard.location, [point]) <= hazard.affected_radius_m
            for point in endpoints
        ):
            released_hazards.append(hazard)
        else:
            kept_hazards.append(hazard)
    return kept_zones, kept_hazards, released_zones, released_hazards


def _cells_to_path(
    grid: SpatialGrid,
    cells: Sequence[GridCell],
    kept: Sequence[int],
    origin: Coordinate,
    destination: Coordinate,
) -> tuple[Coordinate, ...]:
    interior = [grid.to_coord(cells[index]) for index in kept[1:-1]]
    return (origin, *interior, destination)


class RouteOrchestrator:
    """Entry point that turns a routing request into a scored ``RouteResult``.

    Each call owns its grid, obstacle set and search state; only the result
    cache is shared between calls.
    """

    def __init__(self, cache: RouteCache | None = None) -> None:
        self.cache = cache if cache is not None else ROUTE_CACHE

    def calculate(
        self,
        origin: Coordinate,
        destination: Coordinate,
        route_type: RouteType = RouteType.BALANCED,
        zones: Iterable[RiskZone] = (),
        hazards: Iterable[Hazard] = (),
        at_time: datetime | None = None,
        options: RouteOptions | None = None,
    ) -> RouteResult:
        route_type = RouteType(route_type)
        zones = tuple(zones)
        hazards = tuple(hazards)
        at_time = resolve_request_time(at_time)
        options = options or RouteOptions()
        key = build_cache_key(origin, destination, route_type, zones, hazards, at_time, options)
        return self.cache.get_or_compute(
            key,
            lambda: self._compute(origin, destination, route_type, zones, hazards, at_time, options),
        )

    def compare(
        self,
        origin: Coordinate,
        destination: Coordinate,
        zones: Iterable[RiskZone] = (),
        hazards: Iterable[Hazard] = (),
        at_time: datetime | None = None,
        options: RouteOptions | None = None,
    ) -> RouteComparison:
        zones = tuple(zones)
        hazards = tuple(hazards)
        at_time = resolve_request_time(at_time)
        options = options or RouteOptions()
        # The safest and balanced results reuse the cached fastest candidate.
        fastest = self._candidate(RouteType.FASTEST, origin, destination, zones, hazards, at_time, options)
        safest = self.calculate(origin, destination, RouteType.SAFEST, zones, hazards, at_time, options)
        balanced = self.calculate(origin, destination, RouteType.BALANCED, zones, hazards, at_time, options)
        time_saved = safest.duration_s - fastest.duration_s
        if safest.safety_score >= settings.balanced_min_safety_score or abs(time_saved) < RECOMMEND_SAFEST_MAX_DELAY_S:
            recommendation = RouteType.SAFEST
        else:
            recommendation = RouteType.BALANCED
        return RouteComparison(
            fastest=fastest,
            safest=safest,
            balanced=balanced,
            time_saved_s=time_saved,
            distance_difference_m=safest.distance_m - fastest.distance_m,
            safety_improvement=safest.safety_score - fastest.safety_score,
            recommendation=recommendation,
        )

    def _compute(
        self,
        origin: Coordinate,
        destination: Coordinate,
        route_type: RouteType,
        zones: tuple[RiskZone, ...],
        hazards: tuple[Hazard, ...],
        at_time: datetime,
        options: RouteOptions,
    ) -> RouteResult:
        if route_type is RouteType.FASTEST:
            return self._route_for_class(RouteType.FASTEST, origin, destination, zones, hazards, at_time, options)
        if route_type is RouteType.SAFEST:
            if options.max_detour_percent is None:
                return self._route_for_class(RouteType.SAFEST, origin, destination, zones, hazards, at_time, options)
            safest = self._candidate(RouteType.SAFEST, origin, destination, zones, hazards, at_time, options)
            fastest = self._candidate(RouteType.FASTEST, origin, destination, zones, hazards, at_time, options)
            detour = _detour_percent(safest, fastest)
            if detour > options.max_detour_percent:
                logger.warning(
                    f"Safest route rejected: detour {detour:.1f}% exceeds "
                    f"max_detour_percent={options.max_detour_percent}; returning fastest route"
                )
                return fastest
            return safest
        return self._balanced(origin, destination, zones, hazards, at_time, options)

    def _balanced(
        self,
        origin: Coordinate,
        destination: Coordinate,
        zones: tuple[RiskZone, ...],
        hazards: tuple[Hazard, ...],
        at_time: datetime,
        options: RouteOptions,
    ) -> RouteResult:
        """Compute fastest and safest independently and keep one geometry.

        The safest geometry wins when its score reaches the configured minimum
        and its detour over fastest stays within the configured maximum. The
        detour is measured on distance: each class is timed at its own average
        speed, so their durations are not comparable.
        """

        with ThreadPoolExecutor(max_workers=2) as pool:
            fastest_future = pool.submit(
                self._candidate, RouteType.FASTEST, origin, destination, zones, hazards, at_time, options
            )
            safest_future = pool.submit(
                self._candidate, RouteType.SAFEST, origin, destination, zones, hazards, at_time, options
            )
            fastest = fastest_future.result()
            safest = safest_future.result()

        max_detour = settings.balanced_max_detour_percent
        if options.max_detour_percent is not None:
            max_detour = min(max_detour, options.max_detour_percent)
        detour = _detour_percent(safest, fastest)
        use_safest = safest.safety_score >= settings.balanced_min_safety_score and detour <= max_detour
        chosen = safest if use_safest else fastest
        logger.info(
            f"Balanced route picked {chosen.route_type.value}: safest score={safest.safety_score}, "
            f"fastest score={fastest.safety_score}, detour={detour:.1f}%"
        )
        return RouteResult(
            route_type=RouteType.BALANCED,
            path=chosen.path,
            distance_m=chosen.distance_m,
            duration_s=estimator.duration(
                chosen.path, RouteType.BALANCED, at_time, avoid_highways=options.avoid_highways
            ),
            safety_score=chosen.safety_score,
            avoided_count=chosen.avoided_count,
            fallback=chosen.fallback,
            alternatives=(fastest, safest),
        )

    def _candidate(
        self,
        route_class: RouteType,
        origin: Coordinate,
        destination: Coordinate,
        zones: tuple[RiskZone, ...],
        hazards: tuple[Hazard, ...],
        at_time: datetime,
        options: RouteOptions,
    ) -> RouteResult:
        """Uncapped per-class route, shared through the cache with plain fastest/safest requests."""

        return self.calculate(
            origin, destination, route_class, zones, hazards, at_time, replace(options, max_detour_percent=None)
        )

    def _route_for_class(
        self,
        route_class: RouteType,
        origin: Coordinate,
        destination: Coordinate,
        zones: tuple[RiskZone, ...],
        hazards: tuple[Hazard, ...],
        at_time: datetime,
        options: RouteOptions,
    ) -> RouteResult:
        zones_in_force = active_zones(zones, at_time)
        hazards_in_force = active_hazards(hazards, at_time)
        hard_zones, soft_zones = _split_zones(route_class, zones_in_force, options)
        hard_hazards, soft_hazards = _split_hazards(route_class, hazards_in_force, options)
        hard_zones, hard_hazards, released_zones, released_hazards = _release_endpoint_obstacles(
            hard_zones, hard_hazards, (origin, destination)
        )
        if released_zones or released_hazards:
            logger.info(
                f"{route_class.value}: {len(released_zones)} zones and {len(released_hazards)} hazards "
                "cover an endpoint and are scored as penalties instead of obstacles"
            )
            soft_zones = [*soft_zones, *released_zones]
            soft_hazards = [*soft_hazards, *released_hazards]

        grid = SpatialGrid.from_endpoints(origin, destination)
        start = grid.to_cell(origin)
        goal = grid.to_cell(destination)
        obstacles = rasterize_obstacles(grid, hard_zones, hard_hazards, at_time) - {start, goal}
        surface = cost_surface(grid, soft_zones, soft_hazards, at_time)
        risk_weight = RISK_WEIGHT_BY_CLASS[route_class] * options.safety_priority / 100.0

        fallback = False
        try:
            search = find_path(
                grid,
                start,
                goal,
                obstacles,
                surface=surface,
                weights=time_of_day_weights(at_time.hour),
                risk_weight=risk_weight,
            )
        except NoPathFoundError as exc:
            logger.warning(
                f"No {route_class.value} path on {grid.width}x{grid.height} grid "
                f"({len(obstacles)} obstacle cells): {exc}. Using direct line."
            )
            path: tuple[Coordinate, ...] = (origin, destination)
            fallback = True
        else:
            # Fastest shortcuts straight through soft zones; only obstacles block it.
            kept = smooth_path(
                grid,
                search.cells,
                obstacles,
                surface if route_class is RouteType.SAFEST else None,
                start_point=grid.to_grid_space(origin),
                end_point=grid.to_grid_space(destination),
            )
            path = _cells_to_path(grid, search.cells, kept, origin, destination)
            logger.debug(
                f"{route_class.value} search expanded {search.expanded} cells; "
                f"{len(search.cells)} cells smoothed to {len(path)} points"
            )

        return RouteResult(
            route_type=route_class,
            path=path,
            distance_m=estimator.distance(path),
            duration_s=estimator.duration(path, route_class, at_time, avoid_highways=options.avoid_highways),
            safety_score=estimator.safety_score(path, zones_in_force, hazards_in_force, at_time),
            avoided_count=estimator.avoided_count(
                path, origin, destination, zones_in_force, hazards_in_force, at_time
            ),
            fallback=fallback,
        )


def _detour_percent(candidate: RouteResult, reference: RouteResult) -> float:
    if reference.distance_m <= 0:
        return 0.0
    return (candidate.distance_m - reference.distance_m) / reference.distance_m * 100.0


def _coordinate(latitude: float, longitude: float) -> Coordinate:
    return Coordinate(latitude=latitude, longitude=longitude)


def _build_zones(models: Sequence[RiskZoneModel]) -> tuple[RiskZone, ...]:
    return tuple(
        RiskZone(
            name=model.name,
            ring=tuple(_coordinate(lat, lon) for lat, lon in model.coordinates),
            risk_level=model.risk_level,
            risk_multiplier=model.risk_multiplier,
            category=model.category,
            valid_from=model.valid_from,
            valid_to=model.valid_to,
            active=model.active,
            time_slots=tuple(
                TimeSlot(day_of_week=slot.day_of_week, start=slot.start, end=slot.end)
                for slot in model.time_slots
            ),
        )
        for model in models
    )


def _build_hazards(models: Sequence[HazardModel]) -> tuple[Hazard, ...]:
    return tuple(
        Hazard(
            location=_coordinate(model.location.latitude, model.location.longitude),
            severity=model.severity,
            hazard_type=model.type,
            affected_radius_m=model.affected_radius_m,
            expires_at=model.expires_at,
            active=model.active,
        )
        for model in models
    )


def _build_options(payload: RouteOptionsModel) -> RouteOptions:
    return RouteOptions(
        avoid_highways=payload.avoid_highways,
        max_detour_percent=payload.max_detour_percent,
        safety_priority=payload.safety_priority,
    )


_orchestrator = RouteOrchestrator()


def get_orchestrator() -> RouteOrchestrator:
    return _orchestrator


def _calculate(payload: RouteRequest) -> RouteResult:
    return get_orchestrator().calculate(
        origin=_coordinate(payload.origin.latitude, payload.origin.longitude),
        destination=_coordinate(payload.destination.latitude, payload.destination.longitude),
        route_type=payload.route_type,
        zones=_build_zones(payload.zones),
        hazards=_build_hazards(payload.hazards),
        at_time=payload.at_time,
        options=_build_options(payload.options),
    )


def calculate_route(payload: RouteRequest) -> RouteResultModel:
    result = _calculate(payload)
    logger.info(
        f"Route {payload.route_type.value}: {len(result.path)} points, "
        f"{result.distance_m:.0f} m, score {result.safety_score}, fallback={result.fallback}"
    )
    return RouteResultModel(**route_result_to_json(result))


def calculate_route_geojson(payload: RouteRequest) -> dict:
    return route_result_to_geojson(_calculate(payload))


def compare_routes(payload: RouteRequest) -> RouteComparisonResponse:
    comparison = get_orchestrator().compare(
        origin=_coordinate(payload.origin.latitude, payload.origin.longitude),
        destination=_coordinate(payload.destination.latitude, payload.destination.longitude),
        zones=_build_zones(payload.zones),
        hazards=_build_hazards(payload.hazards),
        at_time=payload.at_time,
        options=_build_options(payload.options),
    )
    return RouteComparisonResponse(**comparison_to_json(comparison))
