from __future__ import annotations

from shared.rig import build_client


def test_control_panel_returns_html():
    client, _ = build_client()
    response = client.get("/ui")
    assert response.status_code == 200
    assert "MCP Chaos Rig" in response.text
    assert "/api/state" in response.text


def test_health_endpoint():
    client, _ = build_client()
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_unknown_route_uses_error_shape():
    client, _ = build_client()
    response = client.get("/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_inbound_requests_are_recorded_with_session_id():
    client, runtime = build_client()
    response = client.post(
        "/mcp",
        json={"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
        headers={"Authorization": "Bearer test-token-123"},
    )
    entries = runtime.activity_log.entries()
    assert len(entries) == 1
    assert entries[0].status == 200
    assert entries[0].session_id == response.headers["mcp-session-id"]


def test_rejected_requests_are_recorded():
    client, runtime = build_client()
    response = client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "ping"})
    assert response.status_code == 401
    assert runtime.activity_log.entries()[0].status == 401
