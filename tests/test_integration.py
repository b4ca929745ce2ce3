import pytest
from fastapi.testclient import TestClient

from src.saferoute.main import create_app

AT_TIME = "2026-10-19T12:00:00+00:00"


def _request(**overrides) -> dict:
    payload = {
        "origin": {"latitude": 9.9312, "longitude": 76.2673},
        "destination": {"latitude": 9.9400, "longitude": 76.2800},
        "route_type": "fastest",
        "at_time": AT_TIME,
    }
    payload.update(overrides)
    return payload


def _square(lat: float, lon: float, half: float = 0.001) -> list[list[float]]:
    return [
        [lat - half, lon - half],
        [lat - half, lon + half],
        [lat + half, lon + half],
        [lat + half, lon - half],
    ]


@pytest.fixture(autouse=True)
def clear_route_cache():
    from src.saferoute.services.routing.cache import ROUTE_CACHE

    ROUTE_CACHE.clear()
    yield
    ROUTE_CACHE.clear()


@pytest.fixture
def api_client() -> TestClient:
    return TestClient(create_app())


def test_health_endpoint(api_client: TestClient):
    response = api_client.get("/api/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert "hits" in payload["route_cache"]


def test_calculate_endpoint(api_client: TestClient):
    response = api_client.post("/api/routes/calculate", json=_request())

    assert response.status_code == 200
    payload = response.json()
    assert payload["route_type"] == "fastest"
    assert payload["safety_score"] == 100
    assert payload["fallback"] is False
    assert payload["coordinates"][0] == [9.9312, 76.2673]
    assert payload["coordinates"][-1] == [9.94, 76.28]
    assert payload["distance_m"] > 0
    assert payload["duration_s"] > 0


def test_calculate_endpoint_with_zone(api_client: TestClient):
    zone = {"name": "market", "coordinates": _square(9.9356, 76.27365), "risk_level": "high"}
    response = api_client.post("/api/routes/calculate", json=_request(route_type="safest", zones=[zone]))

    assert response.status_code == 200
    payload = response.json()
    assert payload["safety_score"] == 100
    assert payload["avoided_zones_count"] == 1
    assert len(payload["coordinates"]) > 2


def test_balanced_endpoint_reports_alternatives(api_client: TestClient):
    response = api_client.post("/api/routes/calculate", json=_request(route_type="balanced"))

    assert response.status_code == 200
    alternatives = response.json()["alternatives"]
    assert [item["route_type"] for item in alternatives] == ["fastest", "safest"]


def test_identical_endpoints_return_400(api_client: TestClient):
    request = _request(destination={"latitude": 9.9312, "longitude": 76.2673})
    response = api_client.post("/api/routes/calculate", json=request)
    assert response.status_code == 400


@pytest.mark.parametrize(
    "overrides",
    [
        {"origin": {"latitude": 95.0, "longitude": 76.2673}},
        {"route_type": "scenic"},
        {"zones": [{"name": "tiny", "coordinates": [[9.93, 76.27], [9.94, 76.27]]}]},
        {"zones": [{"name": "x", "coordinates": _square(9.9356, 76.27365), "risk_multiplier": 9.0}]},
        {"options": {"safety_priority": 150}},
    ],
)
def test_invalid_requests_are_rejected(api_client: TestClient, overrides):
    response = api_client.post("/api/routes/calculate", json=_request(**overrides))
    assert response.status_code == 422


def test_geojson_endpoint(api_client: TestClient):
    response = api_client.post("/api/routes/calculate/geojson", json=_request())

    assert response.status_code == 200
    feature = response.json()
    assert feature["type"] == "Feature"
    assert feature["geometry"]["type"] == "LineString"
    assert feature["geometry"]["coordinates"][0] == [76.2673, 9.9312]
    assert feature["properties"]["safety_score"] == 100


def test_compare_endpoint(api_client: TestClient):
    zone = {"name": "market", "coordinates": _square(9.9356, 76.27365), "risk_level": "high"}
    response = api_client.post("/api/routes/compare", json=_request(zones=[zone]))

    assert response.status_code == 200
    payload = response.json()
    assert payload["fastest"]["route_type"] == "fastest"
    assert payload["safest"]["route_type"] == "safest"
    assert payload["balanced"]["route_type"] == "balanced"
    assert payload["analysis"]["recommendation"] == "safest"
    assert payload["analysis"]["safety_improvement"] > 0


def test_cache_stats_and_clear(api_client: TestClient):
    api_client.post("/api/routes/calculate", json=_request())
    api_client.post("/api/routes/calculate", json=_request())

    stats = api_client.get("/api/routes/cache/stats").json()
    assert stats["size"] == 1
    assert stats["hits"] >= 1

    cleared = api_client.post("/api/routes/cache/clear").json()
    assert cleared["success"] is True
    assert cleared["cleared"] == 1
    assert api_client.get("/api/routes/cache/stats").json()["size"] == 0
