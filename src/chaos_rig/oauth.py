"""OAuth 2.1 authorization-code flow with an interactive consent decision.

The engine keeps registered clients, pending consent requests, authorization
codes and issued tokens in memory. Every rejection toggle is read from the
config store at call time, so operators can flip behaviour between two
requests of the same flow.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog

from .config_store import ConfigStore
from .exceptions import (
    AuthorizationExpiredError,
    ConfigValidationError,
    InvalidClientError,
    InvalidClientMetadataError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidTokenError,
    ServerError,
)
from .models import (
    AuthorizationCodeGrant,
    AuthorizationParams,
    IssuedToken,
    OAuthClient,
    PendingAuthorization,
    RefreshGrant,
    TokenResponse,
)
from .scheduler import DeferredActions
from .token import create_access_token, new_opaque_token, verify_access_token_signature

logger = structlog.get_logger(__name__)

PENDING_AUTHORIZATION_TTL_SECONDS = 5 * 60
DEFAULT_SCOPES = ["mcp:tools"]
BOGUS_AUTHORIZATION_CODE = "invalid-bogus-code-000"
TAMPERED_STATE = "tampered-wrong-state-value"
DECISION_ACTIONS = ("approve", "decline", "wrong-code", "wrong-state")


def add_query_params(url: str, params: dict[str, str]) -> str:
    """Append query parameters to ``url``, keeping any it already carries."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def pkce_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class AuthFlowEngine:
    def __init__(
        self,
        store: ConfigStore,
        base_url: str,
        clock: Callable[[], float] = time.time,
        scheduler: DeferredActions | None = None,
        signing_secret: str | None = None,
    ) -> None:
        self._store = store
        self._base_url = base_url.rstrip("/")
        self._clock = clock
        self._scheduler = scheduler or DeferredActions()
        self._signing_secret = signing_secret or secrets.token_urlsafe(32)
        self._clients: dict[str, OAuthClient] = {}
        self._pending: dict[str, PendingAuthorization] = {}
        self._codes: dict[str, AuthorizationCodeGrant] = {}
        self._tokens: dict[str, IssuedToken] = {}
        self._refresh_grants: dict[str, RefreshGrant] = {}

    @property
    def issuer(self) -> str:
        return f"{self._base_url}/oauth"

    # Discovery

    def authorization_server_metadata(self) -> dict[str, Any]:
        issuer = self.issuer
        return {
            "issuer": issuer,
            "authorization_endpoint": f"{issuer}/authorize",
            "token_endpoint": f"{issuer}/token",
            "registration_endpoint": f"{issuer}/register",
            "introspection_endpoint": f"{issuer}/introspect",
            "scopes_supported": DEFAULT_SCOPES,
            "response_types_supported": ["code"],
            "grant_types_supported": ["authorization_code", "refresh_token"],
            "token_endpoint_auth_methods_supported": ["client_secret_post", "none"],
            "code_challenge_methods_supported": ["S256"],
        }

    def protected_resource_metadata(self, resource_path: str = "") -> dict[str, Any]:
        return {
            "resource": f"{self._base_url}{resource_path}",
            "authorization_servers": [self.issuer],
            "scopes_supported": DEFAULT_SCOPES,
        }

    # Clients

    def register_client(
        self,
        redirect_uris: list[str],
        client_name: str | None = None,
        token_endpoint_auth_method: str | None = None,
        grant_types: list[str] | None = None,
        response_types: list[str] | None = None,
        scope: str | None = None,
    ) -> OAuthClient:
        if not redirect_uris:
            raise InvalidClientMetadataError("redirect_uris must contain at least one URI")
        auth_method = token_endpoint_auth_method or "client_secret_post"
        if auth_method not in ("client_secret_post", "none"):
            raise InvalidClientMetadataError(
                f"Unsupported token_endpoint_auth_method: {auth_method}"
            )
        client = OAuthClient(
            client_id=new_opaque_token(),
            client_secret=None if auth_method == "none" else secrets.token_hex(32),
            client_id_issued_at=int(self._clock()),
            redirect_uris=redirect_uris,
            client_name=client_name,
            token_endpoint_auth_method=auth_method,
            grant_types=grant_types or ["authorization_code", "refresh_token"],
            response_types=response_types or ["code"],
            scope=scope,
        )
        self._clients[client.client_id] = client
        logger.info(
            "oauth_client_registered",
            client_id=client.client_id,
            client_name=client_name,
            auth_method=auth_method,
        )
        return client

    def get_client(self, client_id: str) -> OAuthClient | None:
        return self._clients.get(client_id)

    def authenticate_client(self, client_id: str | None, client_secret: str | None) -> OAuthClient:
        if not client_id:
            raise InvalidRequestError("client_id is required")
        client = self._clients.get(client_id)
        if client is None:
            raise InvalidClientError("Invalid client_id")
        if client.client_secret is not None:
            if not client_secret:
                raise InvalidClientError("Client secret is required")
            if not secrets.compare_digest(client.client_secret, client_secret):
                raise InvalidClientError("Invalid client_secret")
        return client

    def resolve_redirect_uri(self, client_id: str | None, redirect_uri: str | None) -> tuple[OAuthClient, str]:
        """Find the client and the redirect target errors may be sent to.

        Failures here cannot be redirected and must be shown to the caller.
        """
        if not client_id:
            raise InvalidRequestError("client_id is required")
        client = self._clients.get(client_id)
        if client is None:
            raise InvalidClientError("Invalid client_id")
        if redirect_uri is None:
            if len(client.redirect_uris) != 1:
                raise InvalidRequestError(
                    "redirect_uri must be specified when client has multiple registered URIs"
                )
            return client, client.redirect_uris[0]
        if redirect_uri not in client.redirect_uris:
            raise InvalidRequestError("Unregistered redirect_uri")
        return client, redirect_uri

    # Authorization

    def build_authorization_params(
        self,
        redirect_uri: str,
        response_type: str | None,
        code_challenge: str | None,
        code_challenge_method: str | None,
        state: str | None = None,
        scope: str | None = None,
        resource: str | None = None,
    ) -> AuthorizationParams:
        if response_type != "code":
            raise InvalidRequestError("response_type must be 'code'")
        if not code_challenge:
            raise InvalidRequestError("code_challenge is required")
        if code_challenge_method != "S256":
            raise InvalidRequestError("code_challenge_method must be 'S256'")
        return AuthorizationParams(
            redirect_uri=redirect_uri,
            state=state,
            scopes=scope.split() if scope else [],
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            resource=resource,
        )

    def begin_authorization(
        self, client: OAuthClient, params: AuthorizationParams
    ) -> PendingAuthorization:
        """Park the request until an operator decides on the consent page."""
        pending = PendingAuthorization(
            id=new_opaque_token(),
            client=client,
            params=params,
            created_at=self._clock(),
        )
        self._pending[pending.id] = pending
        self._scheduler.schedule(
            pending.id,
            PENDING_AUTHORIZATION_TTL_SECONDS,
            lambda: self._expire_pending(pending.id),
        )
        logger.info("authorization_pending", pending_id=pending.id, client_id=client.client_id)
        return pending

    def _expire_pending(self, pending_id: str) -> None:
        if self._pending.pop(pending_id, None) is not None:
            logger.info("authorization_pending_expired", pending_id=pending_id)

    def get_pending(self, pending_id: str) -> PendingAuthorization | None:
        pending = self._pending.get(pending_id)
        if pending is None:
            return None
        if self._clock() - pending.created_at >= PENDING_AUTHORIZATION_TTL_SECONDS:
            self._scheduler.cancel(pending_id)
            self._expire_pending(pending_id)
            return None
        return pending

    def pending_count(self) -> int:
        return len(self._pending)

    def submit_decision(self, pending_id: str, action: str) -> str:
        """Consume a pending authorization and return the redirect URL."""
        if action not in DECISION_ACTIONS:
            raise ConfigValidationError("Unknown action")
        pending = self.get_pending(pending_id)
        if pending is None:
            logger.warning("authorization_decision_stale", pending_id=pending_id, action=action)
            raise AuthorizationExpiredError()

        del self._pending[pending_id]
        self._scheduler.cancel(pending_id)
        params = pending.params
        query: dict[str, str] = {}

        if action == "approve":
            query["code"] = self._issue_code(pending)
            if params.state:
                query["state"] = params.state
        elif action == "decline":
            query["error"] = "access_denied"
            query["error_description"] = "User declined authorization"
            if params.state:
                query["state"] = params.state
        elif action == "wrong-code":
            query["code"] = BOGUS_AUTHORIZATION_CODE
            if params.state:
                query["state"] = params.state
        else:
            query["code"] = self._issue_code(pending)
            query["state"] = TAMPERED_STATE

        logger.info(
            "authorization_decided",
            pending_id=pending_id,
            client_id=pending.client.client_id,
            action=action,
        )
        return add_query_params(params.redirect_uri, query)

    def _issue_code(self, pending: PendingAuthorization) -> str:
        code = new_opaque_token()
        self._codes[code] = AuthorizationCodeGrant(
            code=code, client=pending.client, params=pending.params
        )
        return code

    # Token endpoint

    def exchange_authorization_code(
        self,
        client: OAuthClient,
        code: str,
        code_verifier: str | None = None,
        redirect_uri: str | None = None,
    ) -> TokenResponse:
        grant = self._codes.get(code)
        if grant is None:
            logger.warning("authorization_code_invalid", client_id=client.client_id)
            raise InvalidGrantError("Invalid authorization code")
        if grant.client.client_id != client.client_id:
            raise InvalidGrantError("Authorization code was not issued to this client")
        if grant.params.code_challenge:
            if not code_verifier:
                raise InvalidRequestError("code_verifier is required")
            if pkce_challenge(code_verifier) != grant.params.code_challenge:
                logger.warning("pkce_verification_failed", client_id=client.client_id)
                raise InvalidGrantError("code_verifier does not match the challenge")
        if redirect_uri is not None and redirect_uri != grant.params.redirect_uri:
            raise InvalidGrantError("redirect_uri does not match the authorization request")

        del self._codes[code]
        return self._mint(client.client_id, grant.params.scopes, grant.params.resource)

    def exchange_refresh_token(
        self,
        client: OAuthClient,
        refresh_token: str,
        scopes: list[str] | None = None,
    ) -> TokenResponse:
        config = self._store.config
        if config.fail_oauth_refresh:
            logger.warning("refresh_rejected_by_toggle", client_id=client.client_id)
            raise InvalidTokenError("Refresh token rejected")
        if not refresh_token:
            raise InvalidRequestError("refresh_token is required")

        granted_scopes = scopes
        if config.strict_refresh_tokens:
            grant = self._refresh_grants.get(refresh_token)
            if grant is None or grant.client_id != client.client_id:
                logger.warning("refresh_token_unknown", client_id=client.client_id)
                raise InvalidGrantError("Invalid refresh token")
            del self._refresh_grants[refresh_token]
            granted_scopes = scopes or grant.scopes
        return self._mint(client.client_id, granted_scopes or list(DEFAULT_SCOPES), None)

    def _mint(self, client_id: str, scopes: list[str], resource: str | None) -> TokenResponse:
        ttl = self._store.config.access_token_ttl_secs
        self._prune_expired_tokens()
        access_token = create_access_token(
            client_id,
            scopes,
            ttl,
            self._signing_secret,
            issuer=self.issuer,
            audience=resource,
        )
        self._tokens[access_token] = IssuedToken(
            token=access_token,
            client_id=client_id,
            scopes=scopes,
            expires_at=self._clock() + ttl,
            resource=resource,
        )
        refresh_token = new_opaque_token()
        if self._store.config.strict_refresh_tokens:
            self._refresh_grants[refresh_token] = RefreshGrant(
                token=refresh_token, client_id=client_id, scopes=scopes
            )
        logger.info("access_token_issued", client_id=client_id, ttl=ttl, scopes=scopes)
        return TokenResponse(
            access_token=access_token,
            expires_in=ttl,
            scope=" ".join(scopes),
            refresh_token=refresh_token,
        )

    def _prune_expired_tokens(self) -> None:
        now = self._clock()
        expired = [value for value, issued in self._tokens.items() if issued.expires_at <= now]
        for value in expired:
            del self._tokens[value]

    # Verification

    def raise_injected_rejection(self) -> None:
        """Raise the operator-selected token rejection, if one is active."""
        reject = self._store.config.reject_oauth
        if reject == "401":
            raise InvalidTokenError("Invalid or expired token")
        if reject == "500":
            raise ServerError("Internal Server Error")

    def verify_access_token(self, token: str) -> IssuedToken:
        self.raise_injected_rejection()
        verify_access_token_signature(token, self._signing_secret)
        issued = self._tokens.get(token)
        if issued is None or self._clock() >= issued.expires_at:
            logger.warning("access_token_rejected", known=issued is not None)
            raise InvalidTokenError("Invalid or expired token")
        return issued

    def introspect(self, token: str) -> dict[str, Any]:
        issued = self.verify_access_token(token)
        return {
            "active": True,
            "client_id": issued.client_id,
            "scope": " ".join(issued.scopes),
            "exp": int(issued.expires_at),
        }

    def shutdown(self) -> None:
        self._scheduler.cancel_all()
