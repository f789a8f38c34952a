from __future__ import annotations

import time
import uuid
from typing import Any, cast

import jwt
import structlog

from .exceptions import InvalidTokenError

logger = structlog.get_logger(__name__)


def create_access_token(
    client_id: str,
    scopes: list[str],
    ttl: int,
    secret: str,
    issuer: str | None = None,
    audience: str | None = None,
) -> str:
    """Create a signed JWT access token value for an OAuth client."""
    issued_at = int(time.time())
    payload: dict[str, Any] = {
        "sub": client_id,
        "client_id": client_id,
        "scope": " ".join(scopes),
        "iat": issued_at,
        "exp": issued_at + ttl,
        "jti": str(uuid.uuid4()),
    }
    if issuer:
        payload["iss"] = issuer
    if audience:
        payload["aud"] = audience
    return jwt.encode(payload, secret, algorithm="HS256")


def verify_access_token_signature(token_str: str, secret: str) -> dict[str, Any]:
    """Check the token signature and return its claims.

    Expiry is not checked here: the issuing engine owns the authoritative
    expiry of every access token it minted.

    Raises:
        InvalidTokenError: If the token is malformed or the signature is invalid
    """
    try:
        payload = jwt.decode(
            token_str,
            secret,
            algorithms=["HS256"],
            options={"verify_exp": False, "verify_aud": False},
        )
    except jwt.InvalidTokenError as exc:
        logger.warning("access_token_invalid", error=str(exc))
        raise InvalidTokenError("Invalid or expired token") from exc
    return cast(dict[str, Any], payload)


def new_opaque_token() -> str:
    """Return a fresh opaque value for codes, refresh tokens and pending ids."""
    return str(uuid.uuid4())
