from __future__ import annotations

import json

from chaos_rig.server import activity


def test_should_record() -> None:
    assert activity.should_record("/mcp")
    assert activity.should_record("/oauth/token")
    assert not activity.should_record("/api/state")
    assert not activity.should_record("/ui")
    assert not activity.should_record("/health")


def test_classify_source() -> None:
    assert activity.classify_source("/mcp") == "mcp"
    assert activity.classify_source("/oauth/authorize") == "auth"
    assert activity.classify_source("/.well-known/oauth-protected-resource/mcp") == "auth"
    assert activity.classify_source("/register") == "auth"
    assert activity.classify_source("/introspect") == "auth"


def test_parse_body() -> None:
    assert activity.parse_body(b'{"a": 1}', "application/json") == {"a": 1}
    assert activity.parse_body(b"a=1&b=", "application/x-www-form-urlencoded") == {"a": "1", "b": ""}
    assert activity.parse_body(b"{bad", "application/json") is None
    assert activity.parse_body(b"", "application/json") is None
    assert activity.parse_body(b"raw", "text/plain") is None


def test_build_entry_for_tool_call() -> None:
    entry = activity.build_activity_entry(
        method="POST",
        path="/mcp",
        status=200,
        session_id="abc",
        body={
            "jsonrpc": "2.0",
            "id": 7,
            "method": "tools/call",
            "params": {"name": "add", "arguments": {"a": 1, "b": 2}},
        },
    )
    assert entry.direction == "in"
    assert entry.source == "mcp"
    assert entry.rpc_method == "tools/call"
    assert entry.rpc_id == 7
    assert entry.tool_name == "add"
    assert json.loads(entry.tool_args or "") == {"a": 1, "b": 2}
    assert entry.body is None


def test_build_entry_for_form_post() -> None:
    entry = activity.build_activity_entry(
        method="POST", path="/oauth/token", status=400, body={"grant_type": "refresh_token"}
    )
    assert entry.source == "auth"
    assert entry.rpc_method is None
    assert json.loads(entry.body or "") == {"grant_type": "refresh_token"}


def test_build_entry_for_get_keeps_query() -> None:
    entry = activity.build_activity_entry(
        method="GET", path="/oauth/authorize", status=200, query="client_id=x"
    )
    assert entry.query == "client_id=x"
    assert entry.body is None
