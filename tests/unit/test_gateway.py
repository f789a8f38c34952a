"""Tests for per-mode request authentication."""

from __future__ import annotations

import pytest

from chaos_rig.config_store import ConfigStore
from chaos_rig.gateway import AuthGateway, extract_bearer_token
from chaos_rig.oauth import AuthFlowEngine

RESOURCE_METADATA_URL = "http://rig.test/.well-known/oauth-protected-resource/mcp"


def _gateway(mode: str = "bearer") -> tuple[AuthGateway, ConfigStore, AuthFlowEngine]:
    store = ConfigStore()
    store.set_auth_mode(mode)
    engine = AuthFlowEngine(store, "http://rig.test", signing_secret="secret")
    return AuthGateway(store, engine, RESOURCE_METADATA_URL), store, engine


def _oauth_token(engine: AuthFlowEngine) -> str:
    client = engine.register_client(["http://localhost/cb"])
    return engine.exchange_refresh_token(client, "seed").access_token


def test_extract_bearer_token() -> None:
    assert extract_bearer_token("Bearer abc") == "abc"
    assert extract_bearer_token("bearer abc") == "abc"


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer", "Bearer a b"])
def test_extract_bearer_token_rejects_bad_headers(header: str | None) -> None:
    with pytest.raises(ValueError):
        extract_bearer_token(header)


def test_none_mode_allows_everything() -> None:
    gateway, _, _ = _gateway("none")
    assert gateway.authenticate(None).allowed is True


def test_bearer_mode_accepts_matching_token() -> None:
    gateway, _, _ = _gateway()
    assert gateway.authenticate("Bearer test-token-123").allowed is True
    assert gateway.authenticate("BEARER test-token-123").allowed is True


@pytest.mark.parametrize("header", [None, "Basic dGVzdA==", "Bearer wrong"])
def test_bearer_mode_rejects(header: str | None) -> None:
    gateway, _, _ = _gateway()
    decision = gateway.authenticate(header)
    assert decision.allowed is False
    assert decision.status_code == 401


def test_bearer_mode_follows_token_changes() -> None:
    gateway, store, _ = _gateway()
    store.set_bearer_token("rotated")
    assert gateway.authenticate("Bearer test-token-123").allowed is False
    assert gateway.authenticate("Bearer rotated").allowed is True


def test_bearer_injected_401_rejects_valid_token() -> None:
    gateway, store, _ = _gateway()
    store.set_reject("bearer", "401")
    decision = gateway.authenticate("Bearer test-token-123")
    assert decision.status_code == 401
    assert decision.to_body() == {"error": "Invalid bearer token"}


def test_bearer_injected_500() -> None:
    gateway, store, _ = _gateway()
    store.set_reject("bearer", "500")
    decision = gateway.authenticate("Bearer test-token-123")
    assert decision.allowed is False
    assert decision.status_code == 500


def test_oauth_mode_accepts_issued_token() -> None:
    gateway, _, engine = _gateway("oauth")
    assert gateway.authenticate(f"Bearer {_oauth_token(engine)}").allowed is True


def test_oauth_mode_rejection_carries_resource_metadata() -> None:
    gateway, _, _ = _gateway("oauth")
    decision = gateway.authenticate(None)
    assert decision.status_code == 401
    assert decision.error == "invalid_token"
    challenge = decision.headers["WWW-Authenticate"]
    assert challenge.startswith('Bearer error="invalid_token"')
    assert f'resource_metadata="{RESOURCE_METADATA_URL}"' in challenge


def test_oauth_injected_401_rejects_valid_token() -> None:
    gateway, store, engine = _gateway("oauth")
    token = _oauth_token(engine)
    store.set_reject("oauth", "401")
    decision = gateway.authenticate(f"Bearer {token}")
    assert decision.status_code == 401
    assert decision.error_description == "Invalid or expired token"


def test_oauth_injected_500_has_no_challenge() -> None:
    gateway, store, engine = _gateway("oauth")
    token = _oauth_token(engine)
    store.set_reject("oauth", "500")
    decision = gateway.authenticate(f"Bearer {token}")
    assert decision.status_code == 500
    assert decision.headers == {}


def test_shared_secret_not_accepted_in_oauth_mode() -> None:
    gateway, _, _ = _gateway("oauth")
    assert gateway.authenticate("Bearer test-token-123").allowed is False
