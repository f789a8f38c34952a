"""OAuth authorization server endpoints.

Everything here answers 404 unless the rig is in ``oauth`` auth mode. The
consent page is where the operator picks the outcome of each authorization
request: approve, decline, or one of the deliberately broken redirects.
"""

from __future__ import annotations

import html
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel, ValidationError
from starlette.datastructures import FormData

from chaos_rig.exceptions import (
    AuthorizationExpiredError,
    ConfigValidationError,
    InvalidClientMetadataError,
    InvalidRequestError,
    OAuthError,
    UnsupportedGrantTypeError,
)
from chaos_rig.models import PendingAuthorization, TokenResponse
from chaos_rig.oauth import add_query_params
from chaos_rig.runtime import Runtime
from chaos_rig.server.dependencies import get_runtime, inject_latency, require_oauth_active
from chaos_rig.server.logging_config import get_logger, mask_token

logger = get_logger(__name__)

NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}

router = APIRouter(
    tags=["oauth"],
    dependencies=[Depends(require_oauth_active), Depends(inject_latency)],
)

# Mounted without the mode check: clients probing /register outside OAuth
# mode get an OAuth-shaped error rather than a bare 404.
fallback_router = APIRouter(tags=["oauth"], dependencies=[Depends(inject_latency)])


class ClientRegistrationRequest(BaseModel):
    """RFC 7591 client metadata accepted by the registration endpoint."""

    redirect_uris: list[str] = []
    client_name: str | None = None
    token_endpoint_auth_method: str | None = None
    grant_types: list[str] | None = None
    response_types: list[str] | None = None
    scope: str | None = None


def _form_value(form: FormData, key: str) -> str | None:
    value = form.get(key)
    return value if isinstance(value, str) and value != "" else None


def _oauth_error(exc: OAuthError, status_code: int | None = None) -> JSONResponse:
    return JSONResponse(
        exc.to_response_object(),
        status_code=status_code or exc.status_code,
        headers=NO_STORE,
    )


# Discovery


@router.get("/.well-known/oauth-authorization-server")
@router.get("/.well-known/oauth-authorization-server/mcp")
@router.get("/.well-known/oauth-authorization-server/oauth")
@router.get("/.well-known/openid-configuration")
@router.get("/.well-known/openid-configuration/mcp")
@router.get("/.well-known/openid-configuration/oauth")
@router.get("/oauth/.well-known/oauth-authorization-server")
@router.get("/oauth/.well-known/openid-configuration")
async def authorization_server_metadata(
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    return runtime.auth_flow.authorization_server_metadata()


@router.get("/.well-known/oauth-protected-resource")
async def protected_resource_metadata(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.auth_flow.protected_resource_metadata()


@router.get("/.well-known/oauth-protected-resource/mcp")
async def protected_resource_metadata_mcp(
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    return runtime.auth_flow.protected_resource_metadata("/mcp")


# Registration


async def _register(request: Request, runtime: Runtime) -> JSONResponse:
    try:
        metadata = ClientRegistrationRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        logger.warning("client_registration_invalid", error=str(exc))
        return _oauth_error(InvalidClientMetadataError("Invalid client metadata"))
    try:
        client = runtime.auth_flow.register_client(
            metadata.redirect_uris,
            client_name=metadata.client_name,
            token_endpoint_auth_method=metadata.token_endpoint_auth_method,
            grant_types=metadata.grant_types,
            response_types=metadata.response_types,
            scope=metadata.scope,
        )
    except OAuthError as exc:
        return _oauth_error(exc)
    return JSONResponse(client.model_dump(exclude_none=True), status_code=201, headers=NO_STORE)


@router.post("/oauth/register")
async def register_client(request: Request, runtime: Runtime = Depends(get_runtime)) -> Response:
    return await _register(request, runtime)


@fallback_router.post("/register")
async def register_client_fallback(
    request: Request, runtime: Runtime = Depends(get_runtime)
) -> Response:
    if runtime.store.config.auth_mode != "oauth":
        return _oauth_error(InvalidRequestError("OAuth not active"), status_code=400)
    return await _register(request, runtime)


# Authorization


def _consent_page(pending: PendingAuthorization) -> str:
    client_name = html.escape(pending.client.display_name())
    redirect_uri = html.escape(pending.params.redirect_uri)
    scopes = html.escape(" ".join(pending.params.scopes) or "(none requested)")
    pending_id = html.escape(pending.id, quote=True)
    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>Authorize {client_name}</title>
    <style>
      body {{ font-family: ui-sans-serif, system-ui, sans-serif; margin: 2rem; max-width: 40rem; }}
      dl {{ background: #f6f8fa; padding: 1rem; border-radius: 8px; }}
      button {{ margin: 0.25rem; padding: 0.5rem 1rem; }}
      .broken {{ color: #9a3412; }}
    </style>
  </head>
  <body>
    <h1>Authorize {client_name}?</h1>
    <dl>
      <dt>Redirect URI</dt><dd>{redirect_uri}</dd>
      <dt>Scopes</dt><dd>{scopes}</dd>
    </dl>
    <form method="post" action="/oauth/authorize-decision">
      <input type="hidden" name="id" value="{pending_id}" />
      <button type="submit" name="action" value="approve">Approve</button>
      <button type="submit" name="action" value="decline">Decline</button>
      <button type="submit" name="action" value="wrong-code" class="broken">Approve with wrong code</button>
      <button type="submit" name="action" value="wrong-state" class="broken">Approve with wrong state</button>
    </form>
  </body>
</html>"""


def _error_page(status_code: int, message: str) -> HTMLResponse:
    body = f"""<!doctype html>
<html lang="en">
  <head><meta charset="utf-8" /><title>Authorization error</title></head>
  <body><h1>Authorization error</h1><p>{html.escape(message)}</p></body>
</html>"""
    return HTMLResponse(content=body, status_code=status_code, headers=NO_STORE)


@router.get("/oauth/authorize")
@router.post("/oauth/authorize")
async def authorize(request: Request, runtime: Runtime = Depends(get_runtime)) -> Response:
    if request.method == "POST":
        fields = {key: value for key, value in (await request.form()).items() if isinstance(value, str)}
    else:
        fields = dict(request.query_params)
    engine = runtime.auth_flow

    # Errors are only redirected once the redirect target is known to be registered.
    try:
        client, redirect_uri = engine.resolve_redirect_uri(
            fields.get("client_id"), fields.get("redirect_uri")
        )
    except OAuthError as exc:
        logger.warning("authorize_rejected", error=exc.error_code, reason=exc.message)
        return _oauth_error(exc, status_code=400)

    state = fields.get("state")
    try:
        params = engine.build_authorization_params(
            redirect_uri,
            response_type=fields.get("response_type"),
            code_challenge=fields.get("code_challenge"),
            code_challenge_method=fields.get("code_challenge_method"),
            state=state,
            scope=fields.get("scope"),
            resource=fields.get("resource"),
        )
    except OAuthError as exc:
        logger.warning("authorize_rejected", error=exc.error_code, reason=exc.message)
        query = {"error": exc.error_code, "error_description": exc.message}
        if state:
            query["state"] = state
        return RedirectResponse(add_query_params(redirect_uri, query), status_code=302)

    pending = engine.begin_authorization(client, params)
    return HTMLResponse(content=_consent_page(pending), headers=NO_STORE)


@router.post("/oauth/authorize-decision")
@router.post("/authorize-decision")
async def authorize_decision(request: Request, runtime: Runtime = Depends(get_runtime)) -> Response:
    form = await request.form()
    pending_id = _form_value(form, "id") or ""
    action = _form_value(form, "action") or ""
    try:
        location = runtime.auth_flow.submit_decision(pending_id, action)
    except ConfigValidationError as exc:
        return _error_page(400, str(exc))
    except AuthorizationExpiredError as exc:
        return _error_page(400, exc.message)
    return RedirectResponse(location, status_code=302)


# Tokens


@router.post("/oauth/token")
async def token(request: Request, runtime: Runtime = Depends(get_runtime)) -> Response:
    form = await request.form()
    grant_type = _form_value(form, "grant_type")
    engine = runtime.auth_flow
    tokens: TokenResponse
    try:
        client = engine.authenticate_client(
            _form_value(form, "client_id"), _form_value(form, "client_secret")
        )
        if grant_type == "authorization_code":
            code = _form_value(form, "code")
            if code is None:
                raise InvalidRequestError("code is required")
            tokens = engine.exchange_authorization_code(
                client,
                code,
                code_verifier=_form_value(form, "code_verifier"),
                redirect_uri=_form_value(form, "redirect_uri"),
            )
        elif grant_type == "refresh_token":
            scope = _form_value(form, "scope")
            tokens = engine.exchange_refresh_token(
                client,
                _form_value(form, "refresh_token") or "",
                scopes=scope.split() if scope else None,
            )
        else:
            raise UnsupportedGrantTypeError(f"Unsupported grant_type: {grant_type}")
    except OAuthError as exc:
        logger.warning(
            "token_request_rejected",
            grant_type=grant_type,
            error=exc.error_code,
            reason=exc.message,
        )
        return _oauth_error(exc)
    return JSONResponse(tokens.model_dump(exclude_none=True), headers=NO_STORE)


@router.post("/oauth/introspect")
@router.post("/introspect")
async def introspect(request: Request, runtime: Runtime = Depends(get_runtime)) -> Response:
    form = await request.form()
    token_value = _form_value(form, "token")
    if token_value is None:
        return JSONResponse({"error": "Token is required"}, status_code=400)
    try:
        return JSONResponse(runtime.auth_flow.introspect(token_value))
    except OAuthError as exc:
        logger.info(
            "introspection_inactive",
            token_preview=mask_token(token_value),
            error=exc.error_code,
        )
        return JSONResponse({"active": False}, status_code=500 if exc.status_code == 500 else 401)
