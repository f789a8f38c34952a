"""Per-request authentication for the protocol endpoint.

One strategy per auth mode; the gateway picks the strategy named by the
current configuration on every request. Injected rejections are checked
before the request is looked at and produce the same response shape as a
real rejection.
"""

from __future__ import annotations

from typing import Protocol

import structlog

from .config_store import ConfigStore
from .exceptions import InvalidTokenError, OAuthError
from .models import AuthDecision, AuthMode
from .oauth import AuthFlowEngine

logger = structlog.get_logger(__name__)

ALLOW = AuthDecision(allowed=True)


def extract_bearer_token(auth_header: str | None) -> str:
    """Extract the bearer token from an Authorization header."""
    if not auth_header:
        raise ValueError("Missing Authorization header")
    scheme, _, token = auth_header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise ValueError("Invalid Authorization header format, expected 'Bearer TOKEN'")
    return token


class AuthStrategy(Protocol):
    def authenticate(self, auth_header: str | None) -> AuthDecision: ...


class NoAuth:
    def authenticate(self, auth_header: str | None) -> AuthDecision:
        return ALLOW


class SharedSecretAuth:
    def __init__(self, store: ConfigStore) -> None:
        self._store = store

    @staticmethod
    def _unauthorized(message: str) -> AuthDecision:
        return AuthDecision(allowed=False, status_code=401, error=message)

    def authenticate(self, auth_header: str | None) -> AuthDecision:
        config = self._store.config
        if config.reject_bearer == "401":
            return self._unauthorized("Invalid bearer token")
        if config.reject_bearer == "500":
            return AuthDecision(allowed=False, status_code=500, error="Internal server error")

        try:
            token = extract_bearer_token(auth_header)
        except ValueError as exc:
            return self._unauthorized(str(exc))
        if token != config.bearer_token:
            return self._unauthorized("Invalid bearer token")
        return ALLOW


class DelegatedFlowAuth:
    def __init__(self, engine: AuthFlowEngine, resource_metadata_url: str) -> None:
        self._engine = engine
        self._resource_metadata_url = resource_metadata_url

    def _from_error(self, error: OAuthError) -> AuthDecision:
        headers: dict[str, str] = {}
        if error.status_code != 500:
            headers["WWW-Authenticate"] = (
                f'Bearer error="{error.error_code}", '
                f'error_description="{error.message}", '
                f'resource_metadata="{self._resource_metadata_url}"'
            )
        return AuthDecision(
            allowed=False,
            status_code=401 if error.status_code != 500 else 500,
            error=error.error_code,
            error_description=error.message,
            headers=headers,
        )

    def authenticate(self, auth_header: str | None) -> AuthDecision:
        try:
            self._engine.raise_injected_rejection()
            try:
                token = extract_bearer_token(auth_header)
            except ValueError as exc:
                raise InvalidTokenError(str(exc)) from exc
            self._engine.verify_access_token(token)
        except OAuthError as exc:
            return self._from_error(exc)
        return ALLOW


class AuthGateway:
    def __init__(self, store: ConfigStore, engine: AuthFlowEngine, resource_metadata_url: str) -> None:
        self._store = store
        self._strategies: dict[AuthMode, AuthStrategy] = {
            "none": NoAuth(),
            "bearer": SharedSecretAuth(store),
            "oauth": DelegatedFlowAuth(engine, resource_metadata_url),
        }

    def authenticate(self, auth_header: str | None) -> AuthDecision:
        mode = self._store.config.auth_mode
        decision = self._strategies[mode].authenticate(auth_header)
        if not decision.allowed:
            logger.warning(
                "auth_rejected",
                mode=mode,
                status_code=decision.status_code,
                error=decision.error,
            )
        return decision
