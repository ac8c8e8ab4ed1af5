"""Tests for the FastAPI API endpoints."""
import pytest
from fastapi.testclient import TestClient

from api import api
from simulation import SimulationManager


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(api)


@pytest.fixture(autouse=True)
def reset_simulation():
    """Start every test without a simulation."""
    SimulationManager.reset_instance()
    yield
    SimulationManager.reset_instance()


@pytest.fixture
def initialized(client):
    response = client.post("/simulation/init", json={"seed": 3})
    assert response.status_code == 200
    client.get("/simulation/deltas")
    return client


def tick(client, count=1):
    response = client.post("/simulation/tick", json={"count": count})
    assert response.status_code == 200
    return response.json()


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestSimulationEndpoints:
    """Tests for lifecycle and stepping."""

    def test_status_before_init(self, client):
        assert client.get("/simulation/status").json() == {"initialized": False, "is_running": False}

    @pytest.mark.parametrize("method,path", [
        ("post", "/simulation/start"),
        ("post", "/simulation/tick"),
        ("get", "/simulation/snapshot"),
        ("get", "/simulation/deltas"),
        ("get", "/events"),
        ("get", "/chronicles"),
    ])
    def test_requires_init(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 400
        assert response.json() == {"status": "error", "message": "Simulation not initialized"}

    def test_init_without_body(self, client):
        response = client.post("/simulation/init")
        assert response.status_code == 200
        assert response.json()["status"] == "success"

    def test_init_publishes_snapshot(self, client):
        client.post("/simulation/init", json={"seed": 1, "casual_mode": False})
        messages = client.get("/simulation/deltas").json()["messages"]
        assert messages[0]["type"] == "snapshot"
        assert len(messages[0]["payload"]["regions"]) == 14

    def test_tick_and_deltas(self, initialized):
        result = tick(initialized, count=3)
        assert result["tick"] == 3
        messages = initialized.get("/simulation/deltas", params={"limit": 2}).json()["messages"]
        assert [m["payload"]["tick"] for m in messages] == [1, 2]
        assert initialized.get("/simulation/status").json()["pending_messages"] == 1

    def test_bad_tick_request(self, initialized):
        assert initialized.post("/simulation/tick", json={"count": 0}).status_code == 422
        assert initialized.post("/simulation/tick", json={"dt": -1}).status_code == 422

    def test_bad_delta_limit(self, initialized):
        response = initialized.get("/simulation/deltas", params={"limit": 0})
        assert response.status_code == 422
        assert response.json()["status"] == "error"

    def test_snapshot(self, initialized):
        tick(initialized)
        snapshot = initialized.get("/simulation/snapshot").json()["snapshot"]
        assert snapshot["tick"] == 1
        assert {f["id"] for f in snapshot["factions"]} == {"mitigators", "technocrats"}

    def test_stop_when_not_running(self, initialized):
        response = initialized.post("/simulation/stop")
        assert response.status_code == 200
        assert response.json()["status"] == "error"

    def test_start_then_stop(self, initialized):
        assert initialized.post("/simulation/start").json()["status"] == "success"
        assert initialized.post("/simulation/tick").status_code == 400
        assert initialized.post("/simulation/stop").json()["status"] == "success"


class TestActionEndpoints:
    """Tests for the action catalogue and execution."""

    def test_list_actions(self, client):
        data = client.get("/actions").json()
        assert data["status"] == "success"
        assert "investigate" in {a["id"] for a in data["player"]}
        assert "steal_tech" in {a["id"] for a in data["agent"]}

    def test_unknown_action_is_404(self, initialized):
        response = initialized.post("/actions/execute", json={"action_id": "orbital_laser"})
        assert response.status_code == 404
        assert response.json()["status"] == "error"

    def test_unknown_region_is_404(self, initialized):
        response = initialized.post("/actions/execute",
                                    json={"action_id": "diplomatic_mission", "region_id": "atlantis"})
        assert response.status_code == 404

    def test_execute_applies_next_tick(self, initialized):
        response = initialized.post("/actions/execute",
                                    json={"action_id": "diplomatic_mission", "region_id": "south_asia"})
        assert response.json() == {"status": "success", "message": "execute_action queued"}
        tick(initialized)
        events = initialized.get("/events", params={"event_type": "ACTION_EXECUTED"}).json()["events"]
        assert events[0]["data"]["actionId"] == "diplomatic_mission"


class TestEntityEndpoints:
    """Tests for threats, buildings, agents, units and research."""

    def test_debug_threat(self, initialized):
        response = initialized.post("/debug/threats", json={"domain": "CYBER", "lat": 45.0, "lon": -100.0,
                                                            "severity": 0.4})
        assert response.status_code == 200
        tick(initialized)
        snapshot = initialized.get("/simulation/snapshot").json()["snapshot"]
        assert [t["domain"] for t in snapshot["threats"]] == ["CYBER"]

    def test_bad_domain_is_422(self, initialized):
        response = initialized.post("/debug/threats", json={"domain": "MAGIC", "lat": 0.0, "lon": 0.0})
        assert response.status_code == 422

    def test_bad_position_is_422(self, initialized):
        response = initialized.post("/debug/threats", json={"domain": "BIO", "lat": 120.0, "lon": 0.0})
        assert response.status_code == 422

    def test_building(self, initialized):
        assert initialized.post("/buildings", json={"region_id": "north_america",
                                                    "building_type": "SENSOR"}).status_code == 200
        assert initialized.post("/buildings", json={"region_id": "north_america",
                                                    "building_type": "CASTLE"}).status_code == 422
        assert initialized.post("/buildings", json={"region_id": "atlantis",
                                                    "building_type": "SENSOR"}).status_code == 404
        tick(initialized)
        snapshot = initialized.get("/simulation/snapshot").json()["snapshot"]
        assert snapshot["buildings"][0]["type"] == "SENSOR"

    def test_agent_recruit(self, initialized):
        assert initialized.post("/agents", json={"region_id": "north_america"}).status_code == 200
        tick(initialized)
        snapshot = initialized.get("/simulation/snapshot").json()["snapshot"]
        assert len(snapshot["agents"]) == 1

    def test_unit_build_and_move(self, initialized):
        assert initialized.post("/units", json={"region_id": "north_america",
                                                "unit_type": "AIRCRAFT"}).status_code == 200
        tick(initialized)
        unit_id = initialized.get("/simulation/snapshot").json()["snapshot"]["units"][0]["id"]
        response = initialized.post(f"/units/{unit_id}/move", json={"lat": 50.0, "lon": 10.0})
        assert response.status_code == 200
        tick(initialized)
        unit = initialized.get("/simulation/snapshot").json()["snapshot"]["units"][0]
        assert unit["status"] == "MOVING"

    def test_bad_unit_type(self, initialized):
        response = initialized.post("/units", json={"region_id": "north_america", "unit_type": "TANK"})
        assert response.status_code == 422

    def test_research(self, initialized):
        assert initialized.post("/research", json={"project_id": "advanced_materials"}).status_code == 200
        assert initialized.post("/research", json={"project_id": "time_travel"}).status_code == 422
        tick(initialized)
        snapshot = initialized.get("/simulation/snapshot").json()["snapshot"]
        assert snapshot["research"]["active_project"] == "advanced_materials"


class TestNarrativeEndpoints:
    """Tests for events and chronicles."""

    def test_events_filters(self, initialized):
        initialized.post("/agents", json={"region_id": "north_america"})
        tick(initialized)
        events = initialized.get("/events").json()["events"]
        assert events
        first_id = events[0]["id"]
        later = initialized.get("/events", params={"since_id": first_id}).json()["events"]
        assert first_id not in [e["id"] for e in later]

    def test_chronicles(self, initialized):
        response = initialized.get("/chronicles")
        assert response.status_code == 200
        assert response.json()["chronicles"] == []
