"""Custom exception classes for the MCP chaos rig.

Each failure category the rig can produce has its own exception type so the
HTTP layer can translate it into the right status code and response body:
- Validation failures from control-plane input
- Session failures on continuation or termination requests
- OAuth failures (flow errors, real and injected token rejections)
- JSON-RPC protocol errors
"""

from __future__ import annotations

from typing import Any


class ChaosRigError(Exception):
    """Base exception class for all chaos rig errors."""

    pass


class ConfigValidationError(ChaosRigError):
    """Raised when control-plane input names an unknown tool, mode or version."""

    pass


class SessionError(ChaosRigError):
    """Base exception class for protocol session errors."""

    pass


class SessionNotFoundError(SessionError):
    """Raised when a session id is missing or does not name a live session."""

    def __init__(self, session_id: str | None = None) -> None:
        super().__init__("Invalid or missing session ID")
        self.session_id = session_id


class SessionAlreadyInitializedError(SessionError):
    """Raised when a second initialize request reaches an existing session."""

    pass


class StreamConflictError(SessionError):
    """Raised when a second standalone event stream is opened for a session."""

    pass


class OAuthError(ChaosRigError):
    """Base exception class for OAuth errors.

    ``error_code`` is the RFC 6749 error string sent back to clients and
    ``status_code`` the HTTP status the token and registration endpoints use.
    """

    error_code = "server_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response_object(self) -> dict[str, Any]:
        return {"error": self.error_code, "error_description": self.message}


class InvalidRequestError(OAuthError):
    error_code = "invalid_request"


class InvalidClientError(OAuthError):
    error_code = "invalid_client"
    status_code = 401


class InvalidClientMetadataError(OAuthError):
    error_code = "invalid_client_metadata"


class InvalidGrantError(OAuthError):
    """Raised when an authorization code or refresh token cannot be used."""

    error_code = "invalid_grant"


class InvalidTokenError(OAuthError):
    """Raised when an access or refresh token is rejected."""

    error_code = "invalid_token"


class UnsupportedGrantTypeError(OAuthError):
    error_code = "unsupported_grant_type"


class ServerError(OAuthError):
    error_code = "server_error"
    status_code = 500


class AuthorizationExpiredError(OAuthError):
    """Raised when a consent decision refers to an expired or consumed request."""

    error_code = "invalid_request"

    def __init__(self) -> None:
        super().__init__("Authorization request expired or already used.")


class JsonRpcError(ChaosRigError):
    """A JSON-RPC error object raised from method dispatch."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_ERROR = -32000
    SESSION_NOT_FOUND = -32001

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_error_object(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error
