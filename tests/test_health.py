"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version and registry_configured
  - No authentication required
"""

from __future__ import annotations

from api.main import VERSION


def test_health_returns_200_with_registry_flag(api_client):
    """Health endpoint returns 200 with status, version and registry_configured."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == VERSION
    assert data["registry_configured"] is True


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _, http_session = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    # Health never probes the registry.
    http_session.get.assert_not_called()
