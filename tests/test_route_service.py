from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from src.saferoute.errors import OutOfBoundsError
from src.saferoute.models.domain import Coordinate, Hazard, HazardType, RiskLevel, RiskZone, Severity
from src.saferoute.schemas.routing import CoordinateModel, RiskZoneModel, RouteRequest
from src.saferoute.services.geospatial import line_intersects_polygon, segment_length_meters
from src.saferoute.services.routing import service as routing_service
from src.saferoute.services.routing.cache import RouteCache
from src.saferoute.services.routing.models import RouteOptions, RouteResult, RouteType
from src.saferoute.services.routing.service import RouteOrchestrator

ORIGIN = Coordinate(9.9312, 76.2673)
DESTINATION = Coordinate(9.9400, 76.2800)
MIDPOINT = Coordinate(9.9356, 76.27365)
NOON = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _zone(
    center: Coordinate = MIDPOINT,
    level: RiskLevel = RiskLevel.HIGH,
    multiplier: float = 1.5,
    half: float = 0.001,
) -> RiskZone:
    lat, lon = center.latitude, center.longitude
    ring = (
        Coordinate(lat - half, lon - half),
        Coordinate(lat - half, lon + half),
        Coordinate(lat + half, lon + half),
        Coordinate(lat + half, lon - half),
        Coordinate(lat - half, lon - half),
    )
    return RiskZone(name="zone", ring=ring, risk_level=level, risk_multiplier=multiplier)


def _box(name: str, level: RiskLevel, south: float, west: float, north: float, east: float) -> RiskZone:
    ring = (
        Coordinate(south, west),
        Coordinate(south, east),
        Coordinate(north, east),
        Coordinate(north, west),
        Coordinate(south, west),
    )
    return RiskZone(name=name, ring=ring, risk_level=level)


def _frame(center: Coordinate, level: RiskLevel = RiskLevel.HIGH, inner: float = 0.0005, outer: float = 0.001):
    """Four strips walling in ``center`` without covering it."""

    lat, lon = center.latitude, center.longitude
    return [
        _box("south", level, lat - outer, lon - outer, lat - inner, lon + outer),
        _box("north", level, lat + inner, lon - outer, lat + outer, lon + outer),
        _box("west", level, lat - outer, lon - outer, lat + outer, lon - inner),
        _box("east", level, lat - outer, lon + inner, lat + outer, lon + outer),
    ]


def _orchestrator() -> RouteOrchestrator:
    return RouteOrchestrator(cache=RouteCache(ttl_s=300, max_entries=32))


def _stub_result(route_type: RouteType, score: int, distance_m: float) -> RouteResult:
    return RouteResult(
        route_type=route_type,
        path=(ORIGIN, DESTINATION),
        distance_m=distance_m,
        duration_s=distance_m / 10.0,
        safety_score=score,
        avoided_count=0,
    )


def _stub_classes(monkeypatch, fastest: RouteResult, safest: RouteResult) -> None:
    def fake(self, route_class, *args):
        return fastest if route_class is RouteType.FASTEST else safest

    monkeypatch.setattr(RouteOrchestrator, "_route_for_class", fake)


@pytest.mark.parametrize("route_type", list(RouteType))
def test_unobstructed_route_is_near_great_circle(route_type):
    result = _orchestrator().calculate(ORIGIN, DESTINATION, route_type, at_time=NOON)

    direct = segment_length_meters(ORIGIN, DESTINATION)
    assert result.path[0] == ORIGIN
    assert result.path[-1] == DESTINATION
    assert direct <= result.distance_m <= direct * 1.05
    assert result.safety_score == 100
    assert result.fallback is False
    assert result.duration_s > 0


@pytest.mark.parametrize("half", [0.0002, 0.0005, 0.001, 0.002])
@pytest.mark.parametrize("hour", [3, 8, 12])
def test_safest_route_avoids_high_risk_zone(half, hour):
    zone = _zone(multiplier=2.5, half=half)
    at_time = NOON.replace(hour=hour)
    orchestrator = _orchestrator()
    fastest = orchestrator.calculate(ORIGIN, DESTINATION, RouteType.FASTEST, [zone], at_time=at_time)
    safest = orchestrator.calculate(ORIGIN, DESTINATION, RouteType.SAFEST, [zone], at_time=at_time)

    assert line_intersects_polygon(fastest.path, zone.ring)
    assert fastest.safety_score == 50
    assert not line_intersects_polygon(safest.path, zone.ring)
    assert safest.safety_score == 100
    assert safest.safety_score > fastest.safety_score
    assert safest.avoided_count == 1
    assert safest.distance_m > segment_length_meters(ORIGIN, DESTINATION)


def test_fastest_route_keeps_straight_line_through_soft_zone():
    zone = _zone(level=RiskLevel.MEDIUM, multiplier=2.0)
    result = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.FASTEST, [zone], at_time=NOON)

    assert result.path == (ORIGIN, DESTINATION)
    assert result.safety_score == 80
    assert result.avoided_count == 0


@pytest.mark.parametrize("endpoint", [ORIGIN, DESTINATION])
def test_hazard_at_an_endpoint_keeps_other_obstacles(endpoint):
    hazard = Hazard(
        location=endpoint,
        severity=Severity.MODERATE,
        hazard_type=HazardType.ACCIDENT,
        affected_radius_m=20.0,
    )
    zone = _zone(multiplier=2.5)
    result = _orchestrator().calculate(
        ORIGIN, DESTINATION, RouteType.SAFEST, [zone], hazards=[hazard], at_time=NOON
    )

    assert result.fallback is False
    assert not line_intersects_polygon(result.path, zone.ring)
    assert result.avoided_count == 1


def test_zone_covering_the_destination_is_crossed_not_walled():
    covering = _zone(center=DESTINATION, half=0.0005)
    midway = _zone(multiplier=2.5)
    result = _orchestrator().calculate(
        ORIGIN, DESTINATION, RouteType.SAFEST, [covering, midway], at_time=NOON
    )

    assert result.fallback is False
    assert line_intersects_polygon(result.path, covering.ring)
    assert not line_intersects_polygon(result.path, midway.ring)


def test_balanced_reports_both_candidates():
    zone = _zone()
    result = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.BALANCED, [zone], at_time=NOON)

    assert result.route_type is RouteType.BALANCED
    fastest, safest = result.alternatives
    assert fastest.route_type is RouteType.FASTEST
    assert safest.route_type is RouteType.SAFEST
    # Safest scores 100 with a small detour, so its geometry is kept.
    assert result.path == safest.path
    assert result.safety_score == safest.safety_score


def test_enclosed_destination_falls_back_to_direct_line():
    zones = _frame(DESTINATION)
    result = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.SAFEST, zones, at_time=NOON)

    assert result.fallback is True
    assert result.path == (ORIGIN, DESTINATION)
    assert result.distance_m == pytest.approx(segment_length_meters(ORIGIN, DESTINATION))
    assert result.safety_score < 100


def test_critical_zone_blocks_even_the_fastest_route():
    zones = _frame(DESTINATION, level=RiskLevel.CRITICAL)
    result = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.FASTEST, zones, at_time=NOON)
    assert result.fallback is True
    assert result.safety_score < 100


def test_expired_hazard_does_not_affect_the_route():
    hazard = Hazard(
        location=MIDPOINT,
        severity=Severity.CRITICAL,
        affected_radius_m=200.0,
        expires_at=NOON - timedelta(hours=1),
    )
    result = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.SAFEST, hazards=[hazard], at_time=NOON)
    assert result.safety_score == 100


def test_identical_calls_are_deterministic():
    zone = _zone()
    first = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.SAFEST, [zone], at_time=NOON)
    second = _orchestrator().calculate(
        ORIGIN, DESTINATION, RouteType.SAFEST, [zone], at_time=NOON + timedelta(seconds=40)
    )
    assert first == second


def test_repeated_requests_hit_the_cache(monkeypatch):
    calls = []
    original = routing_service.find_path

    def counting_find_path(*args, **kwargs):
        calls.append(1)
        return original(*args, **kwargs)

    monkeypatch.setattr(routing_service, "find_path", counting_find_path)
    orchestrator = _orchestrator()

    orchestrator.calculate(ORIGIN, DESTINATION, RouteType.FASTEST, at_time=NOON)
    orchestrator.calculate(ORIGIN, DESTINATION, RouteType.FASTEST, at_time=NOON.replace(second=30))
    assert len(calls) == 1

    orchestrator.calculate(ORIGIN, DESTINATION, RouteType.FASTEST, at_time=NOON + timedelta(minutes=1))
    assert len(calls) == 2
    assert orchestrator.cache.snapshot()["hits"] == 1


def test_identical_endpoints_raise():
    with pytest.raises(OutOfBoundsError):
        _orchestrator().calculate(ORIGIN, ORIGIN, RouteType.FASTEST, at_time=NOON)


def test_balanced_prefers_fastest_when_safest_scores_low(monkeypatch):
    fastest = _stub_result(RouteType.FASTEST, score=40, distance_m=1000.0)
    safest = _stub_result(RouteType.SAFEST, score=60, distance_m=1100.0)
    _stub_classes(monkeypatch, fastest, safest)

    result = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.BALANCED, at_time=NOON)
    assert result.safety_score == 40
    assert result.distance_m == 1000.0
    assert result.alternatives == (fastest, safest)


def test_balanced_prefers_fastest_when_detour_is_too_long(monkeypatch):
    fastest = _stub_result(RouteType.FASTEST, score=40, distance_m=1000.0)
    safest = _stub_result(RouteType.SAFEST, score=95, distance_m=1400.0)
    _stub_classes(monkeypatch, fastest, safest)

    result = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.BALANCED, at_time=NOON)
    assert result.safety_score == 40


def test_balanced_prefers_safest_within_limits(monkeypatch):
    fastest = _stub_result(RouteType.FASTEST, score=40, distance_m=1000.0)
    safest = _stub_result(RouteType.SAFEST, score=95, distance_m=1200.0)
    _stub_classes(monkeypatch, fastest, safest)

    result = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.BALANCED, at_time=NOON)
    assert result.safety_score == 95
    assert result.distance_m == 1200.0
    assert result.duration_s != safest.duration_s


def test_safest_over_detour_cap_returns_fastest(monkeypatch):
    fastest = _stub_result(RouteType.FASTEST, score=40, distance_m=1000.0)
    safest = _stub_result(RouteType.SAFEST, score=95, distance_m=1500.0)
    _stub_classes(monkeypatch, fastest, safest)
    orchestrator = _orchestrator()

    capped = orchestrator.calculate(
        ORIGIN, DESTINATION, RouteType.SAFEST, at_time=NOON, options=RouteOptions(max_detour_percent=20.0)
    )
    assert capped == fastest

    relaxed = orchestrator.calculate(
        ORIGIN, DESTINATION, RouteType.SAFEST, at_time=NOON, options=RouteOptions(max_detour_percent=60.0)
    )
    assert relaxed == safest


def test_compare_recommends_safest_when_it_scores_well(monkeypatch):
    fastest = _stub_result(RouteType.FASTEST, score=40, distance_m=1000.0)
    safest = _stub_result(RouteType.SAFEST, score=90, distance_m=1200.0)
    _stub_classes(monkeypatch, fastest, safest)

    comparison = _orchestrator().compare(ORIGIN, DESTINATION, at_time=NOON)
    assert comparison.recommendation is RouteType.SAFEST
    assert comparison.safety_improvement == 50
    assert comparison.distance_difference_m == pytest.approx(200.0)
    assert comparison.time_saved_s == pytest.approx(20.0)


def test_compare_recommends_balanced_for_slow_unsafe_safest(monkeypatch):
    fastest = _stub_result(RouteType.FASTEST, score=20, distance_m=10_000.0)
    safest = _stub_result(RouteType.SAFEST, score=50, distance_m=20_000.0)
    _stub_classes(monkeypatch, fastest, safest)

    comparison = _orchestrator().compare(ORIGIN, DESTINATION, at_time=NOON)
    assert comparison.time_saved_s == pytest.approx(1000.0)
    assert comparison.recommendation is RouteType.BALANCED


def test_calculate_route_from_payload(monkeypatch):
    monkeypatch.setattr(routing_service, "_orchestrator", _orchestrator())
    zone = _zone()
    payload = RouteRequest(
        origin=CoordinateModel(latitude=ORIGIN.latitude, longitude=ORIGIN.longitude),
        destination=CoordinateModel(latitude=DESTINATION.latitude, longitude=DESTINATION.longitude),
        route_type=RouteType.SAFEST,
        zones=[
            RiskZoneModel(
                name="market",
                coordinates=[(point.latitude, point.longitude) for point in zone.ring[:-1]],
                risk_level=RiskLevel.HIGH,
            )
        ],
        at_time=NOON,
    )

    response = routing_service.calculate_route(payload)
    assert response.route_type is RouteType.SAFEST
    assert response.safety_score == 100
    assert response.avoided_zones_count == 1
    assert response.coordinates[0] == (ORIGIN.latitude, ORIGIN.longitude)
    assert response.coordinates[-1] == (DESTINATION.latitude, DESTINATION.longitude)


@pytest.mark.parametrize("options", [RouteOptions(), RouteOptions(max_detour_percent=20.0)])
def test_compare_computes_each_class_once(monkeypatch, options):
    calls = []
    original = RouteOrchestrator._route_for_class

    def counting(self, route_class, *args):
        calls.append(route_class)
        return original(self, route_class, *args)

    monkeypatch.setattr(RouteOrchestrator, "_route_for_class", counting)
    comparison = _orchestrator().compare(ORIGIN, DESTINATION, [_zone()], at_time=NOON, options=options)

    assert sorted(calls) == [RouteType.FASTEST, RouteType.SAFEST]
    assert comparison.balanced.alternatives[0] == comparison.fastest


def test_balanced_detour_is_measured_on_distance(monkeypatch):
    fastest = _stub_result(RouteType.FASTEST, score=40, distance_m=1000.0)
    # Twice the travel time but only a 20 % longer path.
    safest = replace(_stub_result(RouteType.SAFEST, score=95, distance_m=1200.0), duration_s=200.0)
    _stub_classes(monkeypatch, fastest, safest)

    result = _orchestrator().calculate(ORIGIN, DESTINATION, RouteType.BALANCED, at_time=NOON)
    assert result.safety_score == 95
    assert result.distance_m == 1200.0
