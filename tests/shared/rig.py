"""Helpers for driving the rig through its HTTP surface in tests."""

from __future__ import annotations

import base64
import hashlib
import random
import re
import secrets
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx
from fastapi.testclient import TestClient

from chaos_rig.models import ServerConfig
from chaos_rig.runtime import Runtime
from chaos_rig.server.app import create_app

BEARER_TOKEN = "test-token-123"
AUTH_HEADERS = {"Authorization": f"Bearer {BEARER_TOKEN}"}
REDIRECT_URI = "http://localhost:9999/callback"
SESSION_HEADER = "mcp-session-id"

_PENDING_ID = re.compile(r'name="id" value="([^"]+)"')


def build_client(
    config: ServerConfig | None = None, rng: random.Random | None = None
) -> tuple[TestClient, Runtime]:
    runtime = Runtime.build(base_url="http://testserver", database_path=":memory:", config=config, rng=rng)
    return TestClient(create_app(runtime)), runtime


def initialize(client: TestClient, headers: dict[str, str] | None = None) -> str:
    """Open a protocol session and return its id."""
    response = client.post(
        "/mcp",
        json={
            "jsonrpc": "2.0",
            "id": 0,
            "method": "initialize",
            "params": {
                "protocolVersion": "2025-06-18",
                "capabilities": {},
                "clientInfo": {"name": "pytest", "version": "1.0"},
            },
        },
        headers=headers if headers is not None else AUTH_HEADERS,
    )
    assert response.status_code == 200, response.text
    return response.headers[SESSION_HEADER]


def rpc(
    client: TestClient,
    session_id: str | None,
    method: str,
    params: dict[str, Any] | None = None,
    request_id: int = 1,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    request_headers = dict(headers if headers is not None else AUTH_HEADERS)
    if session_id:
        request_headers[SESSION_HEADER] = session_id
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return client.post("/mcp", json=message, headers=request_headers)


def call_tool(
    client: TestClient,
    session_id: str,
    name: str,
    arguments: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    response = rpc(
        client,
        session_id,
        "tools/call",
        {"name": name, "arguments": arguments or {}},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()


def tool_names(client: TestClient, session_id: str, headers: dict[str, str] | None = None) -> list[str]:
    response = rpc(client, session_id, "tools/list", headers=headers)
    assert response.status_code == 200, response.text
    return [tool["name"] for tool in response.json()["result"]["tools"]]


def make_pkce_pair() -> tuple[str, str]:
    verifier = secrets.token_urlsafe(48)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return verifier, challenge


def register_client(client: TestClient, redirect_uri: str = REDIRECT_URI) -> dict[str, Any]:
    response = client.post(
        "/oauth/register",
        json={"redirect_uris": [redirect_uri], "client_name": "pytest client"},
    )
    assert response.status_code == 201, response.text
    return response.json()


def start_authorization(
    client: TestClient,
    registered: dict[str, Any],
    challenge: str,
    state: str = "state-123",
) -> str:
    """Request the consent page and return the pending authorization id."""
    response = client.get(
        "/oauth/authorize",
        params={
            "client_id": registered["client_id"],
            "redirect_uri": registered["redirect_uris"][0],
            "response_type": "code",
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "state": state,
            "scope": "mcp:tools",
        },
    )
    assert response.status_code == 200, response.text
    match = _PENDING_ID.search(response.text)
    assert match is not None
    return match.group(1)


def decide(client: TestClient, pending_id: str, action: str) -> httpx.Response:
    return client.post(
        "/oauth/authorize-decision",
        data={"id": pending_id, "action": action},
        follow_redirects=False,
    )


def redirect_params(response: httpx.Response) -> dict[str, str]:
    query = parse_qs(urlsplit(response.headers["location"]).query)
    return {key: values[0] for key, values in query.items()}


def exchange_code(
    client: TestClient, registered: dict[str, Any], code: str, verifier: str
) -> httpx.Response:
    return client.post(
        "/oauth/token",
        data={
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": verifier,
            "redirect_uri": registered["redirect_uris"][0],
            "client_id": registered["client_id"],
            "client_secret": registered["client_secret"],
        },
    )


def refresh(client: TestClient, registered: dict[str, Any], refresh_token: str) -> httpx.Response:
    return client.post(
        "/oauth/token",
        data={
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": registered["client_id"],
            "client_secret": registered["client_secret"],
        },
    )


def obtain_tokens(client: TestClient) -> tuple[dict[str, Any], dict[str, Any]]:
    """Run register, consent approval and code exchange; return (client, tokens)."""
    registered = register_client(client)
    verifier, challenge = make_pkce_pair()
    pending_id = start_authorization(client, registered, challenge)
    decision = decide(client, pending_id, "approve")
    assert decision.status_code == 302
    response = exchange_code(client, registered, redirect_params(decision)["code"], verifier)
    assert response.status_code == 200, response.text
    return registered, response.json()
