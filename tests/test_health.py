"""Test health check endpoint."""

from fastapi.testclient import TestClient

from interviewmate.main import app

client = TestClient(app)


def test_health_check():
    """Test that /health returns 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


def test_unknown_route_uses_error_body():
    response = client.get("/v1/does-not-exist")
    assert response.status_code == 404
    assert "error" in response.json()
