# tests/test_api.py
"""
Test the HTTP and WebSocket surface.

Runs the FastAPI app over pre-wired in-memory services; no store
connections are opened.
"""

import pytest
from fastapi.testclient import TestClient

from socialgrid.main import create_app
from socialgrid.realtime.notifier import TOPIC_MISSILE_LAUNCH


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


@pytest.fixture
def client_without_graph(services_without_graph):
    return TestClient(create_app(services_without_graph))


def _create_user(client, username, rating=50.0, **fields):
    response = client.post("/api/users", json={"username": username, "socialRating": rating, **fields})
    assert response.status_code == 201
    return response.json()


class TestHealth:
    """Tests for health endpoints."""

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_db_health_reports_graph(self, client, client_without_graph):
        assert client.get("/health/db").json()["graph"] == "connected"
        assert client_without_graph.get("/health/db").json()["graph"] == "disabled"


class TestUserRoutes:
    """Tests for /api/users."""

    def test_create_and_get(self, client):
        created = _create_user(client, "ivan", 95.0)

        fetched = client.get(f"/api/users/{created['id']}").json()

        assert fetched["username"] == "ivan"
        assert fetched["status"] == "VIP"
        assert fetched["active"] is True

    def test_duplicate_username_is_400(self, client):
        _create_user(client, "ivan")

        assert client.post("/api/users", json={"username": "ivan"}).status_code == 400

    def test_rename_to_taken_username_is_400(self, client):
        _create_user(client, "alice")
        bob = _create_user(client, "bob")

        response = client.put(f"/api/users/{bob['id']}", json={"username": "alice"})

        assert response.status_code == 400

    def test_users_by_status(self, client):
        _create_user(client, "vip", 95.0)
        _create_user(client, "low", 10.0)

        response = client.get("/api/users/status/VIP")

        assert [u["username"] for u in response.json()] == ["vip"]
        assert client.get("/api/users/status/NOBODY").status_code == 422

    def test_unknown_user_is_404(self, client):
        assert client.get("/api/users/missing").status_code == 404
        assert client.put("/api/users/missing/social-rating", params={"rating": 10}).status_code == 404
        assert client.delete("/api/users/missing").status_code == 404

    def test_rating_outside_scale_is_422(self, client):
        user = _create_user(client, "ivan")

        response = client.put(f"/api/users/{user['id']}/social-rating", params={"rating": 150})

        assert response.status_code == 422

    def test_peer_rating(self, client):
        rater = _create_user(client, "rater", 50.0)
        target = _create_user(client, "vip", 95.0)

        response = client.post(
            f"/api/users/{rater['id']}/rate/{target['id']}",
            params={"ratingChange": 1},
        )

        assert response.status_code == 200
        assert response.json()["socialRating"] == 55.0

    def test_location_update(self, client):
        user = _create_user(client, "anna")

        response = client.put(
            f"/api/users/{user['id']}/location",
            params={"latitude": 55.75, "longitude": 37.61, "regionId": "r1"},
        )

        body = response.json()
        assert body["currentLocation"]["latitude"] == 55.75
        assert body["regionId"] == "r1"
        assert body["lastLocationUpdateTimestamp"] > 0


class TestRegionRoutes:
    """Tests for /api/regions."""

    def test_parent_rules_enforced(self, client):
        assert client.post(
            "/api/regions", json={"name": "C", "type": "COUNTRY", "parentRegionId": "x"}
        ).status_code == 422
        assert client.post("/api/regions", json={"name": "D", "type": "DISTRICT"}).status_code == 422

    def test_assess_and_strike(self, client):
        district = client.post(
            "/api/regions", json={"name": "D", "type": "DISTRICT", "parentRegionId": "k"}
        ).json()
        users = [
            _create_user(client, f"u{i}", 10.0, regionId=district["id"], districtId=district["id"])
            for i in range(3)
        ]

        recomputed = client.post(f"/api/regions/{district['id']}/recompute").json()
        assessment = client.get(f"/api/regions/{district['id']}/assessment").json()
        strike = client.post(f"/api/regions/{district['id']}/strike").json()

        assert recomputed["populationCount"] == 3
        assert recomputed["underThreat"] is True
        assert assessment == {
            "regionId": district["id"],
            "shouldStrike": True,
            "shouldStrikeByCalculation": True,
        }
        assert strike == {"regionId": district["id"], "executed": True}
        assert all(
            client.get(f"/api/users/{u['id']}").json()["active"] is False for u in users
        )

    def test_regions_below_rating(self, client):
        client.post("/api/regions", json={"name": "C", "type": "COUNTRY"})

        response = client.get("/api/regions/below-rating/10")

        assert [r["name"] for r in response.json()] == ["C"]

    def test_unknown_region_is_404(self, client):
        assert client.get("/api/regions/missing").status_code == 404
        assert client.post("/api/regions/missing/recompute").status_code == 404
        assert client.post("/api/regions/missing/strike").status_code == 404

    def test_delete_region(self, client):
        country = client.post("/api/regions", json={"name": "C", "type": "COUNTRY"}).json()

        assert client.delete(f"/api/regions/{country['id']}").status_code == 204
        assert client.get(f"/api/regions/{country['id']}").status_code == 404


class TestSupplyRoutes:
    """Tests for /api/missile-supply."""

    def _depot(self, client, depot_id):
        return client.post(
            "/api/missile-supply/depots",
            params={"depotId": depot_id, "name": depot_id, "latitude": 55.0, "longitude": 37.0, "capacity": 100},
        )

    def test_create_depot_and_route(self, client):
        assert self._depot(client, "a").status_code == 201
        assert self._depot(client, "b").status_code == 201

        route = client.post(
            "/api/missile-supply/routes",
            params={"sourceDepotId": "a", "targetDepotId": "b", "distance": 10, "riskFactor": 0.2},
        )
        optimal = client.get("/api/missile-supply/routes/optimal", params={"fromDepotId": "a", "toDepotId": "b"})

        assert route.status_code == 201
        assert [s["type"] for s in optimal.json()] == ["depot", "route", "depot"]

    def test_route_to_unknown_depot_is_400(self, client):
        self._depot(client, "a")

        response = client.post(
            "/api/missile-supply/routes",
            params={"sourceDepotId": "a", "targetDepotId": "zzz", "distance": 10, "riskFactor": 0.2},
        )

        assert response.status_code == 400

    def test_missing_path_is_404(self, client):
        self._depot(client, "a")
        self._depot(client, "b")

        response = client.get("/api/missile-supply/routes/optimal", params={"fromDepotId": "a", "toDepotId": "b"})

        assert response.status_code == 404

    def test_add_missiles(self, client):
        self._depot(client, "a")
        client.post(
            "/api/missile-supply/missile-types",
            params={"missileTypeId": "M", "name": "Oreshnik", "range": 5000, "effectRadius": 2.5},
        )

        response = client.post("/api/missile-supply/depots/a/missiles", params={"missileTypeId": "M", "quantity": 7})
        missing = client.post("/api/missile-supply/depots/zzz/missiles", params={"missileTypeId": "M", "quantity": 7})

        assert response.json()["currentStock"] == 7
        assert missing.status_code == 404

    def test_graph_unavailable_degrades_to_empty(self, client_without_graph):
        created = self._depot(client_without_graph, "a")
        chain = client_without_graph.get("/api/missile-supply/chain/visualization")
        depots = client_without_graph.get("/api/missile-supply/depots")

        assert created.status_code == 201
        assert created.content == b""
        assert chain.status_code == 200
        assert chain.json() == {"depots": [], "routes": []}
        assert depots.json() == []


class TestRealtimeSocket:
    """Tests for the /ws push channel."""

    def test_subscribe_and_receive(self, client, services):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"command": "SUBSCRIBE", "destination": TOPIC_MISSILE_LAUNCH})
            assert ws.receive_json() == {"subscribed": TOPIC_MISSILE_LAUNCH}

            services.notifier.notify_missile_launch("r1", "ORESHNIK")

            frame = ws.receive_json()
            assert frame["destination"] == TOPIC_MISSILE_LAUNCH
            assert frame["payload"] == {"regionId": "r1", "missileType": "ORESHNIK"}

    def test_invalid_destination(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"command": "SUBSCRIBE", "destination": "/app/nowhere"})

            assert "error" in ws.receive_json()
