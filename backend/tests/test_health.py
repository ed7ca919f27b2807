"""Tests for the health endpoint."""


def test_health_reports_dispatcher(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    # Disabled under tests; the dispatcher still reports its settings
    assert body["outbox"]["running"] is False
    assert body["outbox"]["batchSize"] == 10
