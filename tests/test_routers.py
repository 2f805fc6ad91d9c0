"""
API tests for the events, status and changes routers
"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from core.container import container
from main import app
from models.database import utc_now
from models.snapshots import IncidentMember, IncidentSnapshot, ScalarSnapshot


@pytest.fixture
def client(settings):
    container.reset_singletons()
    container.settings.override(settings)
    with TestClient(app) as test_client:
        yield test_client
    container.settings.reset_override()
    container.reset_singletons()


def observe(client, source, entity_id, name, status, minutes_ago=0):
    async def run():
        return await container.event_emitter().observe(
            source,
            ScalarSnapshot(entity_id=entity_id, entity_name=name, status=status),
            now=utc_now() - timedelta(minutes=minutes_ago),
        )
    return client.portal.call(run)


def drain(client):
    client.portal.call(container.cache().drain)


class TestEventsApi:
    """GET /api/events"""

    def test_empty_log(self, client):
        response = client.get("/api/events")

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"events", "total", "limit", "offset", "summary", "last_updated"}
        assert body["total"] == 0
        assert body["summary"]["active_count"] == 0

    def test_lists_emitted_events(self, client):
        observe(client, "service", "1", "Halo", "outage", minutes_ago=20)
        observe(client, "service", "1", "Halo", "operational", minutes_ago=10)

        body = client.get("/api/events", params={"source": "service"}).json()

        assert body["total"] == 2
        assert [e["event_type"] for e in body["events"]] == ["resolved", "outage"]
        assert all(e["resolved_at"] for e in body["events"])

    def test_invalid_severity_is_400(self, client):
        response = client.get("/api/events", params={"severity": "fatal"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid parameter"
        assert "Severity must be one of" in response.json()["message"]

    def test_invalid_source_is_400(self, client):
        assert client.get("/api/events", params={"source": "nope"}).status_code == 400

    def test_response_is_cached_until_invalidated(self, client):
        first = client.get("/api/events").json()
        drain(client)
        observe(client, "service", "9", "Kaseya", "outage")

        second = client.get("/api/events").json()
        assert second["total"] == first["total"] == 0

    def test_summary_endpoint(self, client):
        observe(client, "service", "1", "Halo", "outage")
        body = client.get("/api/events/summary", params={"days": 1}).json()

        assert body["by_severity"] == [{"severity": "critical", "count": 1}]
        assert body["active_count"] == 1


class TestStatusApi:
    """GET /api/status/{domain}"""

    def test_domain_status(self, client):
        observe(client, "service", "1", "Halo", "operational")
        observe(client, "service", "2", "IT Glue", "outage")

        body = client.get("/api/status/services").json()

        assert body["overall_status"] == "outage"
        assert {s["entity_name"] for s in body["statuses"]} == {"Halo", "IT Glue"}

    def test_unknown_domain_is_400(self, client):
        assert client.get("/api/status/weather").status_code == 400

    def test_history_and_uptime(self, client):
        observe(client, "service", "1", "Halo", "operational", minutes_ago=30)
        observe(client, "service", "1", "Halo", "outage", minutes_ago=20)
        observe(client, "service", "1", "Halo", "operational", minutes_ago=10)
        observe(client, "service", "1", "Halo", "operational", minutes_ago=5)

        body = client.get("/api/status/services/1/history", params={"days": 1}).json()

        assert len(body["history"]) == 4
        assert body["uptime"] == 75.0

    def test_incident_scope_details(self, client):
        async def run():
            await container.incident_differ().diff("cloud", IncidentSnapshot(
                scope="aws", entity_name="AWS",
                members=[IncidentMember(id="i-1", title="EC2 API errors", start_time="2026-03-02T09:00:00Z")],
            ))
        client.portal.call(run)

        status = client.get("/api/status/cloud").json()["statuses"][0]
        assert status["status"] == "degraded"
        assert status["details"][0]["title"] == "EC2 API errors"


class TestChangesApi:
    """GET /api/changes"""

    def test_changes_since_checkpoint(self, client):
        checkpoint = (utc_now() - timedelta(minutes=1)).isoformat() + "Z"
        observe(client, "isp", "comcast", "Comcast", "operational")

        body = client.get("/api/changes", params={"since": checkpoint}).json()

        updated = [c for c in body["changes"] if c["updated"]]
        assert [c["domain"] for c in updated] == ["internet"]
        assert body["checkpoint"] == updated[0]["timestamp"]
        assert len(body["changes"]) == 5
        assert body["poll_interval"] > 0

    def test_invalid_checkpoint_is_400(self, client):
        assert client.get("/api/changes", params={"since": "yesterday"}).status_code == 400


class TestHealth:
    """GET /health"""

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["checks"] == {"database": True, "cache": True}
        assert body["features"]["redis"] is False
