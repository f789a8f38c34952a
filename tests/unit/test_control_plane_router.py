"""Unit tests for control plane router endpoints."""

from __future__ import annotations

import pytest
from shared.rig import build_client, initialize


def test_state_snapshot() -> None:
    client, _ = build_client()
    initialize(client)
    state = client.get("/api/state").json()
    assert state["auth_mode"] == "bearer"
    assert state["session_count"] == 1
    assert len(state["sessions"]) == 1
    tools = {tool["name"]: tool for tool in state["tools"]}
    assert tools["add"] == {
        "name": "add",
        "enabled": True,
        "has_versions": True,
        "current_version": "v1",
        "params": ["a", "b"],
    }
    assert tools["reverse"]["has_versions"] is False
    assert tools["reverse"]["current_version"] is None


def test_urls() -> None:
    client, _ = build_client()
    assert client.get("/api/urls").json() == {"base_url": "http://testserver"}


def test_auth_mode_reports_disconnected_sessions() -> None:
    client, runtime = build_client()
    initialize(client)
    initialize(client)
    response = client.post("/api/auth-mode", json={"mode": "none"})
    assert response.status_code == 200
    assert response.json() == {"auth_mode": "none", "disconnected_sessions": 2}
    assert runtime.sessions.count() == 0


def test_auth_mode_invalid() -> None:
    client, _ = build_client()
    response = client.post("/api/auth-mode", json={"mode": "magic"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid auth mode"}


def test_bearer_token_required() -> None:
    client, runtime = build_client()
    assert client.post("/api/bearer-token", json={"token": ""}).status_code == 400
    assert client.post("/api/bearer-token", json={"token": "abc"}).status_code == 200
    assert runtime.store.config.bearer_token == "abc"


def test_tool_toggle_accepts_camel_case() -> None:
    client, runtime = build_client()
    response = client.post("/api/tool-toggle", json={"toolName": "reverse", "enabled": True})
    assert response.status_code == 200
    assert runtime.store.config.enabled_tools["reverse"] is True


def test_tool_toggle_unknown_tool() -> None:
    client, _ = build_client()
    response = client.post("/api/tool-toggle", json={"tool_name": "nope", "enabled": True})
    assert response.status_code == 400
    assert response.json() == {"error": "Unknown tool"}


@pytest.mark.parametrize(
    ("tool_name", "version", "message"),
    [("echo", "v9", "Invalid version"), ("reverse", "v2", "Tool has no versions")],
)
def test_tool_version_validation(tool_name: str, version: str, message: str) -> None:
    client, _ = build_client()
    response = client.post("/api/tool-version", json={"tool_name": tool_name, "version": version})
    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_slow_mode_clamps() -> None:
    client, _ = build_client()
    response = client.post("/api/slow-mode", json={"enabled": True, "minMs": -1, "maxMs": 50})
    assert response.json() == {"slow_mode": {"enabled": True, "min_ms": 0, "max_ms": 50}}


def test_flaky_tools_clamps() -> None:
    client, _ = build_client()
    response = client.post("/api/flaky-tools", json={"enabled": True, "pct": 150})
    assert response.json() == {"flaky": {"enabled": True, "pct": 100}}


def test_reject_auth() -> None:
    client, _ = build_client()
    response = client.post("/api/reject-auth", json={"target": "oauth", "mode": "500"})
    assert response.json() == {"reject_bearer": "none", "reject_oauth": "500"}
    assert client.post("/api/reject-auth", json={"target": "x", "mode": "500"}).status_code == 400


def test_oauth_settings() -> None:
    client, _ = build_client()
    response = client.post(
        "/api/oauth-settings", json={"access_token_ttl_secs": 60, "strict_refresh_tokens": True}
    )
    assert response.json() == {
        "access_token_ttl_secs": 60,
        "fail_oauth_refresh": False,
        "strict_refresh_tokens": True,
    }


def test_log_and_clear_log() -> None:
    client, _ = build_client()
    initialize(client)
    entries = client.get("/api/log").json()["entries"]
    assert entries[-1]["path"] == "/mcp"
    assert entries[-1]["rpc_method"] == "initialize"
    assert client.post("/api/clear-log").json() == {"cleared": True}
    assert client.get("/api/log").json() == {"entries": []}


def test_control_plane_requests_are_not_logged() -> None:
    client, runtime = build_client()
    client.get("/api/state")
    client.post("/api/flaky-tools", json={"pct": 10})
    assert len(runtime.activity_log) == 0


def test_contacts_and_reset() -> None:
    client, runtime = build_client()
    runtime.contacts.delete(1)
    assert len(client.get("/api/contacts").json()["contacts"]) == 2
    assert client.post("/api/reset-db").json() == {"reset": True}
    assert len(client.get("/api/contacts").json()["contacts"]) == 3


@pytest.mark.parametrize(
    ("path", "body", "error"),
    [
        ("/api/auth-mode", {}, "Missing required field: mode"),
        ("/api/tool-toggle", {"tool_name": "echo"}, "Missing required field: enabled"),
    ],
)
def test_missing_fields_are_bad_requests(path: str, body: dict, error: str) -> None:
    client, _ = build_client()
    response = client.post(path, json=body)
    assert response.status_code == 400
    assert response.json() == {"error": error}


def test_mistyped_field_is_bad_request() -> None:
    client, runtime = build_client()
    response = client.post("/api/tool-toggle", json={"tool_name": "echo", "enabled": "maybe"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid value for enabled")
    assert runtime.store.config.enabled_tools["echo"] is True
