"""Slow and flaky modes observed through the protocol endpoint."""

from __future__ import annotations

import random
import time

import pytest
from shared.rig import build_client, call_tool, initialize

pytestmark = pytest.mark.integration


def _echo(client, session_id: str) -> dict:
    return call_tool(client, session_id, "echo", {"message": "hello"})["result"]


def test_flaky_at_100_pct_fails_every_call() -> None:
    client, _ = build_client(rng=random.Random(3))
    session_id = initialize(client)
    client.post("/api/flaky-tools", json={"enabled": True, "pct": 100})
    for _ in range(20):
        result = _echo(client, session_id)
        assert result["isError"] is True
        assert result["content"][0]["text"] == 'Error: tool "echo" failed (simulated flaky failure)'


def test_flaky_at_0_pct_never_fails() -> None:
    client, _ = build_client(rng=random.Random(3))
    session_id = initialize(client)
    client.post("/api/flaky-tools", json={"enabled": True, "pct": 0})
    for _ in range(20):
        result = _echo(client, session_id)
        assert "isError" not in result
        assert result["content"][0]["text"] == "hello"


def test_flaky_mode_survives_version_swap() -> None:
    client, _ = build_client(rng=random.Random(3))
    session_id = initialize(client)
    client.post("/api/flaky-tools", json={"enabled": True, "pct": 100})
    client.post("/api/tool-version", json={"tool_name": "echo", "version": "v2"})
    result = call_tool(client, session_id, "echo", {"message": "hi", "format": "plain"})["result"]
    assert result["isError"] is True


def test_flaky_failures_do_not_touch_protocol_methods() -> None:
    client, _ = build_client(rng=random.Random(3))
    session_id = initialize(client)
    client.post("/api/flaky-tools", json={"enabled": True, "pct": 100})
    response = client.post(
        "/mcp",
        json={"jsonrpc": "2.0", "id": 5, "method": "tools/list"},
        headers={"Authorization": "Bearer test-token-123", "mcp-session-id": session_id},
    )
    assert response.status_code == 200
    assert response.json()["result"]["tools"]


def test_slow_mode_delays_protocol_requests() -> None:
    client, _ = build_client()
    client.post("/api/slow-mode", json={"enabled": True, "min_ms": 150, "max_ms": 150})
    started = time.monotonic()
    initialize(client)
    assert time.monotonic() - started >= 0.15


def test_slow_mode_does_not_delay_control_plane() -> None:
    client, _ = build_client()
    client.post("/api/slow-mode", json={"enabled": True, "min_ms": 2000, "max_ms": 2000})
    started = time.monotonic()
    client.get("/api/state")
    assert time.monotonic() - started < 1.5
