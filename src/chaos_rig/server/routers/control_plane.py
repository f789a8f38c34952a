"""Control plane router: state snapshots and every operator toggle.

Handlers are ``async def`` so configuration changes and the notifications
they trigger run on the event loop, alongside protocol traffic.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from chaos_rig import capabilities
from chaos_rig.exceptions import ConfigValidationError
from chaos_rig.runtime import Runtime
from chaos_rig.server.dependencies import get_runtime
from chaos_rig.server.logging_config import get_logger, mask_token

logger = get_logger(__name__)


class ControlRequest(BaseModel):
    """Accepts both snake_case and camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthModeRequest(ControlRequest):
    mode: str


class BearerTokenRequest(ControlRequest):
    token: str = ""


class ToolToggleRequest(ControlRequest):
    tool_name: str
    enabled: bool


class ToolVersionRequest(ControlRequest):
    tool_name: str
    version: str


class SlowModeRequest(ControlRequest):
    enabled: bool | None = None
    min_ms: int | None = None
    max_ms: int | None = None


class FlakyToolsRequest(ControlRequest):
    enabled: bool | None = None
    pct: int | None = None


class RejectAuthRequest(ControlRequest):
    target: str
    mode: str


class OAuthSettingsRequest(ControlRequest):
    access_token_ttl_secs: int | None = None
    fail_oauth_refresh: bool | None = None
    strict_refresh_tokens: bool | None = None


router = APIRouter(prefix="/api", tags=["control-plane"])


def _bad_request(exc: ConfigValidationError) -> HTTPException:
    logger.warning("control_plane_rejected", error=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _tool_info(runtime: Runtime) -> list[dict[str, Any]]:
    config = runtime.store.config
    tools: list[dict[str, Any]] = []
    for name in capabilities.all_names():
        definition = capabilities.configured_definition(config, name)
        tools.append(
            {
                "name": name,
                "enabled": config.enabled_tools.get(name, False),
                "has_versions": capabilities.has_versions(name),
                "current_version": config.tool_versions.get(name),
                "params": definition.param_names() if definition else [],
            }
        )
    return tools


@router.get("/urls")
async def get_urls(runtime: Runtime = Depends(get_runtime)) -> dict[str, str]:
    return {"base_url": runtime.base_url}


@router.get("/state")
async def get_state(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    state = runtime.store.snapshot().model_dump()
    state["session_count"] = runtime.sessions.count()
    state["sessions"] = runtime.sessions.ids()
    state["tools"] = _tool_info(runtime)
    return state


@router.post("/auth-mode")
async def set_auth_mode(
    request: AuthModeRequest, runtime: Runtime = Depends(get_runtime)
) -> dict[str, Any]:
    open_sessions = runtime.sessions.count()
    try:
        runtime.store.set_auth_mode(request.mode)
    except ConfigValidationError as exc:
        raise _bad_request(exc) from exc
    return {"auth_mode": request.mode, "disconnected_sessions": open_sessions}


@router.post("/bearer-token")
async def set_bearer_token(
    request: BearerTokenRequest, runtime: Runtime = Depends(get_runtime)
) -> dict[str, str]:
    try:
        runtime.store.set_bearer_token(request.token)
    except ConfigValidationError as exc:
        raise _bad_request(exc) from exc
    logger.info("bearer_token_set", token_preview=mask_token(request.token))
    return {"bearer_token": request.token}


@router.post("/tool-toggle")
async def toggle_tool(
    request: ToolToggleRequest, runtime: Runtime = Depends(get_runtime)
) -> dict[str, Any]:
    try:
        runtime.store.set_tool_enabled(request.tool_name, request.enabled)
    except ConfigValidationError as exc:
        raise _bad_request(exc) from exc
    return {"tool_name": request.tool_name, "enabled": request.enabled}


@router.post("/tool-version")
async def set_tool_version(
    request: ToolVersionRequest, runtime: Runtime = Depends(get_runtime)
) -> dict[str, str]:
    try:
        runtime.store.set_tool_version(request.tool_name, request.version)
    except ConfigValidationError as exc:
        raise _bad_request(exc) from exc
    return {"tool_name": request.tool_name, "version": request.version}


@router.get("/log")
async def get_log(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return {"entries": [entry.model_dump(exclude_none=True) for entry in runtime.activity_log.entries()]}


@router.post("/clear-log")
async def clear_log(runtime: Runtime = Depends(get_runtime)) -> dict[str, bool]:
    runtime.activity_log.clear()
    return {"cleared": True}


@router.post("/slow-mode")
async def set_slow_mode(
    request: SlowModeRequest, runtime: Runtime = Depends(get_runtime)
) -> dict[str, Any]:
    runtime.store.set_slow_mode(request.enabled, request.min_ms, request.max_ms)
    return {"slow_mode": runtime.store.config.slow_mode.model_dump()}


@router.post("/flaky-tools")
async def set_flaky_tools(
    request: FlakyToolsRequest, runtime: Runtime = Depends(get_runtime)
) -> dict[str, Any]:
    runtime.store.set_flaky(request.enabled, request.pct)
    return {"flaky": runtime.store.config.flaky.model_dump()}


@router.post("/reject-auth")
async def set_reject_auth(
    request: RejectAuthRequest, runtime: Runtime = Depends(get_runtime)
) -> dict[str, str]:
    try:
        runtime.store.set_reject(request.target, request.mode)
    except ConfigValidationError as exc:
        raise _bad_request(exc) from exc
    config = runtime.store.config
    return {"reject_bearer": config.reject_bearer, "reject_oauth": config.reject_oauth}


@router.post("/oauth-settings")
async def set_oauth_settings(
    request: OAuthSettingsRequest, runtime: Runtime = Depends(get_runtime)
) -> dict[str, Any]:
    runtime.store.set_oauth_settings(
        request.access_token_ttl_secs,
        request.fail_oauth_refresh,
        request.strict_refresh_tokens,
    )
    config = runtime.store.config
    return {
        "access_token_ttl_secs": config.access_token_ttl_secs,
        "fail_oauth_refresh": config.fail_oauth_refresh,
        "strict_refresh_tokens": config.strict_refresh_tokens,
    }


@router.get("/contacts")
async def list_contacts(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return {"contacts": [contact.model_dump() for contact in runtime.contacts.list_all()]}


@router.post("/reset-db")
async def reset_db(runtime: Runtime = Depends(get_runtime)) -> dict[str, bool]:
    runtime.contacts.reset()
    return {"reset": True}
