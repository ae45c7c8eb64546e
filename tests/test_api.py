import pytest
from fastapi.testclient import TestClient

from reachability.api import state
from reachability.api.routes import health as health_routes
from reachability.main import create_app
from reachability.models.domain import LatLng, Target
from reachability.services.aggregation import AggregationSession
from reachability.services.routing import BeelineProvider, RouteCache, RouteService
from reachability.services.targets import TargetService

PREFIX = "/api"


class DummyOverpass:
    def __init__(self, schools=None, error=None):
        self.schools = schools or []
        self.error = error

    async def search_schools(self, lat, lon, radius_m=500):
        if self.error is not None:
            raise self.error
        return list(self.schools)


@pytest.fixture
def session() -> AggregationSession:
    return AggregationSession(RouteService(BeelineProvider(), RouteCache()), TargetService(), mode="foot")


@pytest.fixture
def api_client(session: AggregationSession, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(state, "get_session", lambda: session)
    monkeypatch.setattr(state, "get_overpass_client", lambda: DummyOverpass())
    return TestClient(create_app())


def test_health(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    assert api_client.get(f"{PREFIX}/health").json() == {"status": "ok"}
    monkeypatch.setattr(health_routes.settings, "routing_base_url", None)
    body = api_client.get(f"{PREFIX}/health/routing").json()
    assert body["provider"] == "beeline"
    assert body["healthy"] is False


def test_target_lifecycle(api_client: TestClient):
    created = api_client.post(f"{PREFIX}/targets", json={"lat": 52.51, "lon": 13.41, "name": "School A"})
    assert created.status_code == 201
    assert created.json()["id"] == "1"

    duplicate = api_client.post(f"{PREFIX}/targets", json={"lat": 52.51, "lon": 13.41})
    assert duplicate.status_code == 409

    invalid = api_client.post(f"{PREFIX}/targets", json={"lat": 120, "lon": 13.41})
    assert invalid.status_code == 422

    assert [target["id"] for target in api_client.get(f"{PREFIX}/targets").json()] == ["1"]
    assert api_client.delete(f"{PREFIX}/targets/1").status_code == 200
    assert api_client.delete(f"{PREFIX}/targets/1").status_code == 404


def test_population_upload_and_aggregation(api_client: TestClient, session: AggregationSession):
    session.targets.add_target(Target("A", LatLng(52.51, 13.41)))
    upload = api_client.post(
        f"{PREFIX}/population",
        json={
            "records": [
                {"id": "p1", "lat": 52.50, "lon": 13.40, "weight": 10},
                {"id": "p2", "lat": 52.52, "lon": 13.42, "weight": 20},
                {"id": "bad", "lat": 200, "lon": 13.42, "weight": 5},
            ]
        },
    )
    assert upload.status_code == 200
    assert upload.json()["loaded"] == 2
    assert upload.json()["skipped"] == 1

    summary = api_client.get(f"{PREFIX}/population").json()
    assert summary["count"] == 2
    assert summary["bounds"]["max_lat"] == 52.52

    response = api_client.post(f"{PREFIX}/aggregation", json={"distribution": {"bucket_width": 5}})
    assert response.status_code == 200
    body = response.json()
    assert body["complete"] is True
    assert body["total_weight"] == 30
    assert body["unreachable_weight"] == 0
    assert sum(bucket["total_weight"] for bucket in body["buckets"]) == pytest.approx(30)
    assert body["buckets"][-1]["range_end"] is None
    assert len(body["point_costs"]) == 2

    current = api_client.get(f"{PREFIX}/aggregation").json()
    assert current["generation"] == body["generation"]
    assert current["point_costs"] is None

    geojson = api_client.get(f"{PREFIX}/aggregation/geojson").json()
    assert geojson["type"] == "FeatureCollection"
    kinds = [feature["properties"]["kind"] for feature in geojson["features"]]
    # one beeline segment per population point
    assert sorted(kinds) == ["population", "population", "segment", "segment", "target"]
    assert geojson["metadata"]["aggregationMethod"] == "simple"

    bare = api_client.get(f"{PREFIX}/aggregation/geojson", params={"segments": False}).json()
    assert len(bare["features"]) == 3
    assert bare["metadata"]["aggregationMethod"] is None

    lazy = api_client.get(f"{PREFIX}/aggregation/geojson", params={"method": "lazy_overlap"})
    assert lazy.status_code == 200
    assert lazy.json()["metadata"]["aggregationMethod"] == "lazy_overlap"
    assert api_client.get(f"{PREFIX}/aggregation/geojson", params={"method": "dense"}).status_code == 422


def test_invalid_distribution_config_is_rejected(api_client: TestClient, session: AggregationSession):
    session.targets.add_target(Target("A", LatLng(52.51, 13.41)))
    response = api_client.post(f"{PREFIX}/aggregation", json={"distribution": {"bucket_edges": [0, 10, 5]}})
    assert response.status_code == 400
    assert "bucket_edges" in response.json()["detail"]


def test_bucket_width_needing_too_many_buckets_is_rejected(api_client: TestClient, session: AggregationSession):
    session.targets.add_target(Target("A", LatLng(52.51, 13.41)))
    api_client.post(f"{PREFIX}/population", json={"records": [{"id": "p1", "lat": 52.50, "lon": 13.40, "weight": 1}]})
    assert api_client.post(f"{PREFIX}/aggregation", json={"distribution": {"bucket_width": 5}}).status_code == 200

    response = api_client.post(f"{PREFIX}/aggregation", json={"distribution": {"bucket_width": 0.001}})
    assert response.status_code == 400
    assert "1000" in response.json()["detail"]

    too_fine = api_client.post(
        f"{PREFIX}/aggregation", json={"distribution": {"bucket_width": 0.01, "max_cutoff": 1000}}
    )
    assert too_fine.status_code == 400


def test_school_search_adds_targets(api_client: TestClient, session: AggregationSession, monkeypatch: pytest.MonkeyPatch):
    schools = [Target("osm-node-1", LatLng(52.5, 13.4), name="Grundschule")]
    monkeypatch.setattr(state, "get_overpass_client", lambda: DummyOverpass(schools))

    response = api_client.post(f"{PREFIX}/targets/search-schools", json={"lat": 52.5, "lon": 13.4})

    assert response.status_code == 200
    assert response.json()["added"] == 1
    assert "osm-node-1" in session.targets


def test_school_search_failure_maps_to_bad_gateway(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(state, "get_overpass_client", lambda: DummyOverpass(error=ConnectionError("all down")))
    response = api_client.post(f"{PREFIX}/targets/search-schools", json={"lat": 52.5, "lon": 13.4})
    assert response.status_code == 502


def test_expected_distribution_endpoint(api_client: TestClient):
    response = api_client.post(
        f"{PREFIX}/distribution/expected",
        json={"kind": "near", "num_bins": 4, "radius_m": 1000, "total": 10},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["bin_size_m"] == 250
    assert sum(body["bins"]) == pytest.approx(10)

    assert api_client.post(f"{PREFIX}/distribution/expected", json={"kind": "bogus"}).status_code == 422
