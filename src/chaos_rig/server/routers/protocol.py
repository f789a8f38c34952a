"""Streamable HTTP endpoint for the JSON-RPC protocol.

POST carries client messages, GET opens the server-to-client event stream
and DELETE ends a session. Every request passes the slow-mode delay and the
auth gateway before the session is looked at.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from chaos_rig.exceptions import (
    JsonRpcError,
    SessionAlreadyInitializedError,
    SessionNotFoundError,
    StreamConflictError,
)
from chaos_rig.models import AuthDecision
from chaos_rig.protocol import Message, error_response, is_initialize_request
from chaos_rig.runtime import Runtime
from chaos_rig.server.dependencies import get_runtime, inject_latency
from chaos_rig.server.logging_config import get_logger

logger = get_logger(__name__)

SESSION_HEADER = "mcp-session-id"

router = APIRouter(prefix="/mcp", tags=["protocol"], dependencies=[Depends(inject_latency)])


def _rejection(decision: AuthDecision) -> JSONResponse:
    return JSONResponse(
        decision.to_body(), status_code=decision.status_code, headers=decision.headers
    )


def _rpc_error(status_code: int, error: JsonRpcError, request_id: Any = None) -> JSONResponse:
    return JSONResponse(error_response(request_id, error), status_code=status_code)


def _request_id(payload: Any) -> Any:
    if isinstance(payload, dict):
        return payload.get("id")
    return None


def _internal_error() -> JSONResponse:
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def _invalid_session(exc: SessionNotFoundError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


@router.post("")
async def post_message(request: Request, runtime: Runtime = Depends(get_runtime)) -> Response:
    decision = runtime.gateway.authenticate(request.headers.get("authorization"))
    if not decision.allowed:
        return _rejection(decision)

    try:
        payload = json.loads(await request.body())
    except ValueError:
        return _rpc_error(400, JsonRpcError(JsonRpcError.PARSE_ERROR, "Parse error"))

    session_id = request.headers.get(SESSION_HEADER)
    session = runtime.sessions.get(session_id)
    if session is None:
        if not is_initialize_request(payload):
            if session_id:
                logger.warning("session_not_found", session_id=session_id[:8])
                return _rpc_error(
                    404,
                    JsonRpcError(JsonRpcError.SESSION_NOT_FOUND, "Session not found"),
                    _request_id(payload),
                )
            return _rpc_error(
                400,
                JsonRpcError(
                    JsonRpcError.SERVER_ERROR, "Bad Request: No valid session ID provided"
                ),
                _request_id(payload),
            )
        session = runtime.sessions.create()
        created = True
    else:
        created = False

    headers = {SESSION_HEADER: session.session_id}
    try:
        reply: Message | list[Message] | None = await session.handle_payload(payload)
    except SessionAlreadyInitializedError as exc:
        if created:
            session.close()
        return _rpc_error(
            400,
            JsonRpcError(JsonRpcError.INVALID_REQUEST, str(exc)),
            _request_id(payload),
        )
    except Exception as exc:
        logger.error(
            "protocol_request_failed",
            session_id=session.session_id[:8],
            error=str(exc),
            exc_info=True,
        )
        if created:
            session.close()
        return _internal_error()

    if created and not session.initialized:
        # Sessions whose initialize failed are dropped.
        logger.warning("initialize_failed", session_id=session.session_id[:8])
        session.close()
        return JSONResponse(reply)

    if reply is None:
        return Response(status_code=202, headers=headers)
    return JSONResponse(reply, headers=headers)


@router.get("")
async def open_event_stream(request: Request, runtime: Runtime = Depends(get_runtime)) -> Response:
    decision = runtime.gateway.authenticate(request.headers.get("authorization"))
    if not decision.allowed:
        return _rejection(decision)

    try:
        session = runtime.sessions.require(request.headers.get(SESSION_HEADER))
    except SessionNotFoundError as exc:
        return _invalid_session(exc)

    try:
        messages = session.transport.open_stream()
    except StreamConflictError as exc:
        logger.warning("stream_conflict", session_id=session.session_id[:8])
        return _rpc_error(409, JsonRpcError(JsonRpcError.SERVER_ERROR, f"Conflict: {exc}"))

    async def events() -> Any:
        async for message in messages:
            yield {"event": "message", "data": json.dumps(message)}

    logger.info("stream_opened", session_id=session.session_id[:8])
    return EventSourceResponse(events(), headers={SESSION_HEADER: session.session_id})


@router.delete("")
async def delete_session(request: Request, runtime: Runtime = Depends(get_runtime)) -> Response:
    decision = runtime.gateway.authenticate(request.headers.get("authorization"))
    if not decision.allowed:
        return _rejection(decision)

    try:
        runtime.sessions.terminate(request.headers.get(SESSION_HEADER))
    except SessionNotFoundError as exc:
        return _invalid_session(exc)
    return Response(status_code=200)
