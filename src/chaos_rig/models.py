from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

AuthMode = Literal["none", "bearer", "oauth"]
RejectMode = Literal["none", "401", "500"]
ToolVersion = Literal["v1", "v2"]

AUTH_MODES: tuple[str, ...] = ("none", "bearer", "oauth")
REJECT_MODES: tuple[str, ...] = ("none", "401", "500")
REJECT_TARGETS: tuple[str, ...] = ("bearer", "oauth")
TOOL_VERSIONS: tuple[str, ...] = ("v1", "v2")


class SlowModeConfig(BaseModel):
    enabled: bool = False
    min_ms: int = 500
    max_ms: int = 3000


class FlakyConfig(BaseModel):
    enabled: bool = False
    pct: int = 20


def _default_enabled_tools() -> dict[str, bool]:
    return {
        "echo": True,
        "add": True,
        "get-time": False,
        "random-number": False,
        "reverse": False,
        "list-contacts": True,
        "search-contacts": True,
        "create-contact": True,
        "update-contact": True,
        "delete-contact": True,
    }


def _default_tool_versions() -> dict[str, ToolVersion]:
    return {"echo": "v1", "add": "v1"}


class ServerConfig(BaseModel):
    """Every toggle the rig exposes. Mutated only through ConfigStore."""

    auth_mode: AuthMode = "bearer"
    bearer_token: str = "test-token-123"
    reject_bearer: RejectMode = "none"
    reject_oauth: RejectMode = "none"
    slow_mode: SlowModeConfig = Field(default_factory=SlowModeConfig)
    access_token_ttl_secs: int = 15
    fail_oauth_refresh: bool = False
    strict_refresh_tokens: bool = False
    flaky: FlakyConfig = Field(default_factory=FlakyConfig)
    enabled_tools: dict[str, bool] = Field(default_factory=_default_enabled_tools)
    tool_versions: dict[str, ToolVersion] = Field(default_factory=_default_tool_versions)


class ActivityLogEntry(BaseModel):
    """One inbound request or outbound protocol message."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    direction: Literal["in", "out"] = "in"
    source: Literal["mcp", "auth"] = "mcp"
    method: str
    path: str
    session_id: str | None = None
    status: int | None = None
    rpc_method: str | None = None
    rpc_id: str | int | None = None
    tool_name: str | None = None
    tool_args: str | None = None
    query: str | None = None
    body: str | None = None


class AuthDecision(BaseModel):
    allowed: bool
    status_code: int = 200
    error: str | None = None
    error_description: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error}
        if self.error_description is not None:
            body["error_description"] = self.error_description
        return body


class OAuthClient(BaseModel):
    """A dynamically registered OAuth client."""

    client_id: str
    client_secret: str | None = None
    client_id_issued_at: int
    redirect_uris: list[str]
    client_name: str | None = None
    token_endpoint_auth_method: str = "client_secret_post"
    grant_types: list[str] = Field(default_factory=lambda: ["authorization_code", "refresh_token"])
    response_types: list[str] = Field(default_factory=lambda: ["code"])
    scope: str | None = None

    @field_validator("redirect_uris")
    @classmethod
    def _redirect_uris_non_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("redirect_uris must contain at least one URI")
        return value

    def display_name(self) -> str:
        return self.client_name or self.client_id


class AuthorizationParams(BaseModel):
    redirect_uri: str
    state: str | None = None
    scopes: list[str] = Field(default_factory=list)
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    resource: str | None = None


class PendingAuthorization(BaseModel):
    id: str
    client: OAuthClient
    params: AuthorizationParams
    created_at: float


class AuthorizationCodeGrant(BaseModel):
    code: str
    client: OAuthClient
    params: AuthorizationParams


class IssuedToken(BaseModel):
    token: str
    client_id: str
    scopes: list[str]
    expires_at: float
    resource: str | None = None


class RefreshGrant(BaseModel):
    token: str
    client_id: str
    scopes: list[str]


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    scope: str | None = None
    refresh_token: str


class Contact(BaseModel):
    id: int
    name: str
    email: str
    company: str
    notes: str
    created_at: str
