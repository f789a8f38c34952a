"""JSON-RPC protocol sessions.

A ``ProtocolSession`` owns the tools it currently exposes, one
``CapabilityRegistration`` handle per tool name, and a ``SessionTransport``
carrying server-initiated messages to the client's event stream. Changing
registrations never touches the transport beyond announcing the change.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog
from pydantic import ValidationError

from .capabilities import CapabilityContext, CapabilityDefinition, ToolResult, text_result
from .exceptions import (
    JsonRpcError,
    SessionAlreadyInitializedError,
    StreamConflictError,
)
from .faults import FaultInjector

logger = structlog.get_logger(__name__)

SERVER_NAME = "MCP Chaos Rig"
SERVER_VERSION = "1.0.0"
LATEST_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

Message = dict[str, Any]

_STREAM_CLOSED = object()


def is_initialize_request(payload: Any) -> bool:
    messages = payload if isinstance(payload, list) else [payload]
    return any(
        isinstance(message, dict) and message.get("method") == "initialize" and "id" in message
        for message in messages
    )


def error_response(request_id: Any, error: JsonRpcError) -> Message:
    return {"jsonrpc": "2.0", "id": request_id, "error": error.to_error_object()}


class SessionTransport:
    """Server-to-client channel of a session.

    Messages sent while no event stream is attached are dropped, as the
    Streamable HTTP transport does for its standalone stream.
    """

    def __init__(
        self,
        session_id: str,
        on_outbound: Callable[[str, Message], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self._on_outbound = on_outbound
        self._queue: asyncio.Queue[Any] | None = None
        self._close_callbacks: list[Callable[[], None]] = []
        self.closed = False

    @property
    def stream_attached(self) -> bool:
        return self._queue is not None

    def on_close(self, callback: Callable[[], None]) -> None:
        self._close_callbacks.append(callback)

    def send(self, message: Message) -> bool:
        """Deliver ``message`` to the attached stream; return whether it was queued."""
        if self.closed:
            return False
        if self._queue is None:
            logger.debug("outbound_dropped_no_stream", session_id=self.session_id[:8])
            return False
        self._queue.put_nowait(message)
        if self._on_outbound is not None:
            self._on_outbound(self.session_id, message)
        return True

    def open_stream(self) -> AsyncIterator[Message]:
        if self.closed:
            raise StreamConflictError("Session transport is closed")
        if self._queue is not None:
            raise StreamConflictError("Only one SSE stream is allowed per session")
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._queue = queue
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[Any]) -> AsyncIterator[Message]:
        try:
            while True:
                message = await queue.get()
                if message is _STREAM_CLOSED:
                    return
                yield message
        finally:
            if self._queue is queue:
                self._queue = None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._queue is not None:
            self._queue.put_nowait(_STREAM_CLOSED)
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback()


class CapabilityRegistration:
    """Handle to one tool registered on a session."""

    def __init__(self, session: ProtocolSession, definition: CapabilityDefinition) -> None:
        self._session = session
        self._definition = definition

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def definition(self) -> CapabilityDefinition:
        return self._definition

    def update(self, definition: CapabilityDefinition) -> None:
        if definition.name != self._definition.name:
            raise ValueError("A registration cannot change its tool name")
        self._definition = definition
        self._session.notify_tools_changed()

    def remove(self) -> None:
        self._session.unregister(self.name)


class ProtocolSession:
    def __init__(
        self,
        session_id: str,
        transport: SessionTransport,
        faults: FaultInjector,
        context: CapabilityContext,
    ) -> None:
        self.session_id = session_id
        self.transport = transport
        self._faults = faults
        self._context = context
        self.registered: dict[str, CapabilityRegistration] = {}
        self.initialized = False
        self.protocol_version: str | None = None
        self.client_info: dict[str, Any] | None = None

    def register(self, definition: CapabilityDefinition) -> CapabilityRegistration:
        if definition.name in self.registered:
            raise ValueError(f"Tool {definition.name} is already registered")
        registration = CapabilityRegistration(self, definition)
        self.registered[definition.name] = registration
        self.notify_tools_changed()
        return registration

    def unregister(self, name: str) -> bool:
        if self.registered.pop(name, None) is None:
            return False
        self.notify_tools_changed()
        return True

    def notify_tools_changed(self) -> None:
        if not self.initialized or self.transport.closed:
            return
        self.transport.send({"jsonrpc": "2.0", "method": "notifications/tools/list_changed"})

    def tool_names(self) -> list[str]:
        return list(self.registered)

    def close(self) -> None:
        self.transport.close()

    async def handle_payload(self, payload: Any) -> Message | list[Message] | None:
        """Handle a single message or a batch; None when nothing needs a reply."""
        if isinstance(payload, list):
            if not payload:
                return error_response(
                    None, JsonRpcError(JsonRpcError.INVALID_REQUEST, "Invalid Request: empty batch")
                )
            replies = [reply for reply in [await self.handle_message(m) for m in payload] if reply]
            return replies or None
        return await self.handle_message(payload)

    async def handle_message(self, message: Any) -> Message | None:
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            return error_response(
                None, JsonRpcError(JsonRpcError.INVALID_REQUEST, "Invalid Request")
            )
        method = message.get("method")
        if method is None:
            # Client responses to server requests; the rig never sends any.
            return None
        if "id" not in message:
            self._handle_notification(method)
            return None

        request_id = message["id"]
        params = message.get("params") or {}
        try:
            if not isinstance(params, dict):
                raise JsonRpcError(JsonRpcError.INVALID_PARAMS, "params must be an object")
            result = await self._dispatch(method, params)
        except JsonRpcError as exc:
            logger.warning(
                "rpc_error",
                session_id=self.session_id[:8],
                rpc_method=method,
                code=exc.code,
                error=exc.message,
            )
            return error_response(request_id, exc)
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    def _handle_notification(self, method: str) -> None:
        if method == "notifications/initialized":
            logger.debug("client_initialized", session_id=self.session_id[:8])

    async def _dispatch(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        if method == "initialize":
            return self._initialize(params)
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": [reg.definition.describe() for reg in self.registered.values()]}
        if method == "tools/call":
            return await self._call_tool(params)
        raise JsonRpcError(JsonRpcError.METHOD_NOT_FOUND, f"Method not found: {method}")

    def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        if self.initialized:
            raise SessionAlreadyInitializedError("Invalid Request: Server already initialized")
        requested = params.get("protocolVersion")
        self.protocol_version = (
            requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        )
        client_info = params.get("clientInfo")
        self.client_info = client_info if isinstance(client_info, dict) else None
        self.initialized = True
        logger.info(
            "session_initialized",
            session_id=self.session_id[:8],
            protocol_version=self.protocol_version,
            client=(self.client_info or {}).get("name"),
        )
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": {"tools": {"listChanged": True}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }

    async def _call_tool(self, params: dict[str, Any]) -> ToolResult:
        name = params.get("name")
        registration = self.registered.get(name) if isinstance(name, str) else None
        if registration is None:
            raise JsonRpcError(JsonRpcError.INVALID_PARAMS, f"Tool {name} not found")
        definition = registration.definition

        if self._faults.roll_failure():
            logger.info("tool_flaky_failure", session_id=self.session_id[:8], tool_name=name)
            return text_result(
                f'Error: tool "{name}" failed (simulated flaky failure)', is_error=True
            )

        try:
            arguments = definition.arguments.model_validate(params.get("arguments") or {})
        except ValidationError as exc:
            return text_result(
                f"Input validation error: Invalid arguments for tool {name}: {exc}",
                is_error=True,
            )

        try:
            return await definition.handler(arguments, self._context)
        except Exception as exc:
            logger.error("tool_handler_failed", tool_name=name, error=str(exc), exc_info=True)
            return text_result(str(exc), is_error=True)
