"""Unit tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from emergency_buddy.config import settings
from emergency_buddy.main import app, get_engine, get_location_tracker
from emergency_buddy.models.escalation import EscalationConfig
from emergency_buddy.models.location import LocationTracker


@pytest.fixture
def tracker():
    return LocationTracker()


@pytest.fixture
def client(make_engine, sample_contacts, tracker):
    engine = make_engine(contacts=sample_contacts)
    engine.location_source = tracker
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_location_tracker] = lambda: tracker
    # Not used as a context manager, so the lifespan never opens real devices.
    test_client = TestClient(app)
    test_client.engine = engine
    yield test_client
    app.dependency_overrides.clear()


class TestHealth:
    """Test health endpoints."""

    def test_health(self, client):
        """Test the basic health check reports healthy."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Correlation-ID" in response.headers

    def test_correlation_id_echoed(self, client):
        """Test a caller supplied correlation id is echoed back."""
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"

    def test_detailed_health_without_services(self, client):
        """Test detailed health is unavailable before startup."""
        response = client.get("/health/detailed")
        assert response.status_code == 503
        assert response.json()["error"] == "Services not initialized"


class TestEmergencyEndpoints:
    """Test trigger, cancel and status."""

    def test_status_idle(self, client):
        """Test status reports idle before any trigger."""
        response = client.get("/api/v1/emergency/status")
        assert response.status_code == 200
        assert response.json()["state"] == "idle"

    def test_trigger_then_conflict(self, client):
        """Test a second trigger while active returns 409."""
        response = client.post("/api/v1/emergency/trigger")
        assert response.status_code == 200
        assert response.json()["status"]["state"] == "countdown"
        assert response.json()["status"]["remaining_seconds"] == 5

        again = client.post("/api/v1/emergency/trigger")
        assert again.status_code == 409

    def test_cancel(self, client):
        """Test cancel ends the run and reports the outcome."""
        client.post("/api/v1/emergency/trigger")

        response = client.post("/api/v1/emergency/cancel")

        assert response.status_code == 200
        body = response.json()
        assert body["status"]["state"] == "idle"
        assert body["status"]["last_outcome"] == "cancelled"

    def test_cancel_when_idle(self, client):
        """Test cancel with nothing running still succeeds."""
        response = client.post("/api/v1/emergency/cancel")
        assert response.status_code == 200
        assert response.json()["status"]["last_outcome"] is None

    def test_trigger_with_invalid_configuration(self, client):
        """Test invalid durations are reported with their field names."""
        client.engine.config_source.config = EscalationConfig(
            cancel_window_seconds=5,
            contact_timeout_seconds=0,
            recording_duration_seconds=30,
        )

        response = client.post("/api/v1/emergency/trigger")

        assert response.status_code == 422
        assert response.json()["error"]["fields"] == ["contact_timeout_seconds"]
        assert client.engine.state.value == "idle"

    def test_progress_visible_in_status(self, client, scheduler):
        """Test status shows the contact being alerted."""
        client.post("/api/v1/emergency/trigger")
        scheduler.advance(36)

        status = client.get("/api/v1/emergency/status").json()

        assert status["state"] == "alerting"
        assert status["current_contact"]["name"] == "Bob"
        assert status["remaining_seconds"] == 14


class TestVoiceAndLocation:
    """Test voice transcripts and location updates."""

    def test_transcript_triggers(self, client):
        """Test a trigger phrase in a transcript starts the countdown."""
        response = client.post("/api/v1/voice/transcript", json={"transcript": "please help me"})
        assert response.status_code == 200
        assert response.json()["triggered"] is True
        assert response.json()["state"] == "countdown"

    def test_transcript_without_phrase(self, client):
        """Test ordinary speech leaves the engine idle."""
        response = client.post("/api/v1/voice/transcript", json={"transcript": "hello there"})
        assert response.json()["triggered"] is False
        assert response.json()["state"] == "idle"

    def test_location_update(self, client, tracker):
        """Test a location update returns its map link."""
        response = client.put("/api/v1/location", json={"lat": 52.52, "lng": 13.405})

        assert response.status_code == 200
        assert response.json()["map_link"] == "https://maps.google.com/?q=52.52,13.405"
        assert tracker.get_last_known_location().lat == 52.52

    def test_location_used_by_next_trigger(self, client, telephony, scheduler):
        """Test the alert message carries the last reported location."""
        client.put("/api/v1/location", json={"lat": 52.52, "lng": 13.405})
        client.post("/api/v1/emergency/trigger")
        scheduler.advance(35)

        assert "q=52.52,13.405" in telephony.contact_calls[0][2]

    def test_location_out_of_range(self, client):
        """Test out of range coordinates are rejected."""
        response = client.put("/api/v1/location", json={"lat": 120, "lng": 0})
        assert response.status_code == 422


class TestConfigInfo:
    """Test configuration endpoints."""

    def test_api_routes_use_configured_prefix(self):
        """Test API routes are mounted under the configured version prefix."""
        paths = {route.path for route in app.routes}
        assert f"{settings.API_V1_STR}/emergency/trigger" in paths
        assert f"{settings.API_V1_STR}/location" in paths

    def test_config_info(self, client):
        """Test configuration info exposes escalation timing."""
        body = client.get("/api/v1/config/info").json()
        assert body["escalation"]["cancel_window_seconds"] == 5
        assert body["trigger_phrases"]
