"""Tests for the read-only status API."""

import pytest
from fastapi.testclient import TestClient

from api_server import create_app
from conftest import SequenceSampleSource
from incident_log import IncidentKind, IncidentLog
from quickshield import build_engine


@pytest.fixture
def engine(shield_settings, fake_firewall, fake_dial, timer_factory):
    engine = build_engine(
        shield_settings,
        fake_firewall,
        rcon_dial=fake_dial,
        sample_source_factory=lambda: SequenceSampleSource([1000]),
        incidents=IncidentLog(console=False),
    )
    engine.shield._timer_factory = timer_factory
    return engine


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))


class TestHealth:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "online"

    def test_health_when_stopped(self, client):
        data = client.get("/health").json()

        assert data == {"status": "stopped", "monitoring": False, "shield_active": False}

    def test_health_when_running(self, client, engine):
        engine.is_running = True

        assert client.get("/health").json()["status"] == "healthy"


class TestStatus:
    def test_shield_idle(self, client):
        data = client.get("/shield").json()

        assert data["active"] is False
        assert data["shield_duration_seconds"] == 180.0
        assert data["rollback_deadline"] is None

    def test_shield_active(self, client, engine):
        engine.shield.on_attack_detected("eth0", 5000)

        data = client.get("/shield").json()

        assert data["active"] is True
        assert data["activations"] == 1
        assert data["rollback_remaining_seconds"] > 0

    def test_detector(self, client, engine):
        engine.detector.poll()

        data = client.get("/detector").json()

        assert data["interface"] == "eth0"
        assert data["max_bytes"] == 100
        assert data["polls"] == 1
        assert data["last_delta"] is None


class TestIncidents:
    def test_latest(self, client, engine):
        engine.shield.on_attack_detected("eth0", 5000)

        data = client.get("/incidents/latest").json()

        assert [item["kind"] for item in data] == ["shield_activated", "attack_detected"]
        assert data[1]["metadata"] == {"interface": "eth0", "observed_bytes": 5000}

    def test_filter_and_limit(self, client, engine):
        for n in range(3):
            engine.incidents.record(IncidentKind.ACTIVATION_ABORTED, f"abort {n}")
        engine.incidents.record(IncidentKind.ATTACK_DETECTED, "attack")

        data = client.get("/incidents/latest", params={"kind": "activation_aborted",
                                                       "limit": 2}).json()

        assert [item["message"] for item in data] == ["abort 2", "abort 1"]

    def test_unknown_kind(self, client):
        response = client.get("/incidents/latest", params={"kind": "meteor_strike"})

        assert response.status_code == 400

    def test_limit_out_of_range(self, client):
        assert client.get("/incidents/latest", params={"limit": 0}).status_code == 422

    def test_count(self, client, engine):
        engine.incidents.record(IncidentKind.ATTACK_DETECTED, "attack")
        engine.incidents.record(IncidentKind.ACTIVATION_ABORTED, "no players")

        data = client.get("/incidents/count").json()

        assert data["total"] == 2
        assert data["by_kind"]["attack_detected"] == 1
        assert data["by_kind"]["shield_deactivated"] == 0
