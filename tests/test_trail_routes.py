import httpx
import pytest
from fastapi.testclient import TestClient

from fieldtrack.models import SnappedRoute, TravelMode
from fieldtrack.routes.trail_routes import get_session
from fieldtrack.session import TrailTrackingSession
from fieldtrack.trail_aggregator import TrailAggregator
from main import app

from conftest import make_track, point


class FakeSnapper:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def snap_to_roads(self, points, mode=TravelMode.driving):
        self.calls.append((list(points), mode))
        if self.error:
            raise self.error
        return self.result

    async def aclose(self):
        pass


@pytest.fixture
def aggregator(agent_user):
    return TrailAggregator([
        make_track("a", user=agent_user, locations=[point(1, 1, 1714550400000), point(1.01, 1.01, 1714550460000)]),
        make_track("b", user="u2", locations=[point(2, 2, 1714550400000)]),
    ])


@pytest.fixture
def snapper():
    return FakeSnapper(SnappedRoute(coordinates=[(1.0, 1.0), (1.01, 1.01)], distance_meters=1600, duration_seconds=120))


@pytest.fixture
def client(aggregator, snapper):
    session = TrailTrackingSession(client=None, snapper=snapper, aggregator=aggregator)
    app.dependency_overrides[get_session] = lambda: session
    # No context manager: the lifespan (and its remote load) does not run
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "fieldtrack-api"}


def test_no_session_is_unavailable():
    app.state.session = None
    response = TestClient(app).get("/trails")
    assert response.status_code == 503


def test_list_trails(client):
    response = client.get("/trails")
    assert response.status_code == 200
    trails = {t["user"]["id"]: t for t in response.json()}
    assert set(trails) == {"u1", "u2"}
    assert trails["u1"]["user"]["display_name"] == "Achieng Otieno"
    assert [p["timestamp"] for p in trails["u1"]["path"]] == [1714550400000, 1714550460000]


def test_list_trails_for_user(client):
    assert [t["user"]["id"] for t in client.get("/trails", params={"user_id": "u2"}).json()] == ["u2"]
    assert client.get("/trails", params={"user_id": "nobody"}).json() == []


def test_summary(client, aggregator):
    body = client.get("/trails/summary").json()
    assert body["track_count"] == 2
    assert body["total_distance_meters"] == pytest.approx(aggregator.total_distance())
    assert body["total_distance_display"].endswith("km")
    counts = {s["user"]["id"]: s["point_count"] for s in body["trails"]}
    assert counts == {"u1": 2, "u2": 1}


def test_heatmap(client):
    body = client.get("/heatmap").json()
    assert len(body) == 3
    assert all(p["intensity"] == 1 for p in body)


def test_snap(client, snapper):
    response = client.get("/trails/u1/snap", params={"mode": "walking"})
    assert response.status_code == 200
    assert response.json()["distance_meters"] == 1600
    points, mode = snapper.calls[0]
    assert len(points) == 2
    assert mode == TravelMode.walking


def test_snap_unknown_user(client):
    assert client.get("/trails/ghost/snap").status_code == 404


def test_snap_invalid_mode(client):
    assert client.get("/trails/u1/snap", params={"mode": "flying"}).status_code == 422


def test_snap_without_route_is_null(client, snapper):
    snapper.result = None
    response = client.get("/trails/u2/snap")
    assert response.status_code == 200
    assert response.json() is None


def test_snap_routing_unreachable(client, snapper):
    snapper.error = httpx.ConnectError("connection refused")
    assert client.get("/trails/u1/snap").status_code == 502
