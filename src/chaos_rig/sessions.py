"""Registry of live protocol sessions kept in sync with the config store."""

from __future__ import annotations

import json
import time
import uuid

import structlog

from .activity_log import ActivityLog
from .capabilities import CapabilityContext, active_definitions, configured_definition
from .config_store import AuthChanged, CapabilityChanged, ConfigEvent, ConfigStore
from .exceptions import SessionNotFoundError
from .faults import FaultInjector
from .models import ActivityLogEntry
from .protocol import Message, ProtocolSession, SessionTransport

logger = structlog.get_logger(__name__)


class SessionRegistry:
    """Owns every ProtocolSession, keyed by the server-issued session id.

    Subscribes to the config store on construction: capability changes are
    applied to every live session in place, and an auth mode change closes
    all of them.
    """

    def __init__(
        self,
        store: ConfigStore,
        faults: FaultInjector,
        activity_log: ActivityLog,
        context: CapabilityContext,
    ) -> None:
        self._store = store
        self._faults = faults
        self._activity_log = activity_log
        self._context = context
        self._sessions: dict[str, ProtocolSession] = {}
        self._unsubscribe = store.subscribe(self.on_config_event)

    def create(self) -> ProtocolSession:
        session_id = str(uuid.uuid4())
        transport = SessionTransport(session_id, on_outbound=self._record_outbound)
        session = ProtocolSession(session_id, transport, self._faults, self._context)
        for definition in active_definitions(self._store.config):
            session.register(definition)
        self._sessions[session_id] = session
        transport.on_close(lambda: self._forget(session_id))
        logger.info("session_created", session_id=session_id[:8], tools=session.tool_names())
        return session

    def _forget(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info("session_closed", session_id=session_id[:8])

    def get(self, session_id: str | None) -> ProtocolSession | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def require(self, session_id: str | None) -> ProtocolSession:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def terminate(self, session_id: str | None) -> None:
        self.require(session_id).close()

    def close_all(self) -> int:
        sessions = list(self._sessions.values())
        for session in sessions:
            session.close()
        if sessions:
            logger.info("sessions_disconnected", count=len(sessions))
        return len(sessions)

    def count(self) -> int:
        return len(self._sessions)

    def ids(self) -> list[str]:
        return list(self._sessions)

    def on_config_event(self, event: ConfigEvent) -> None:
        if isinstance(event, AuthChanged):
            self.close_all()
            return
        for session in list(self._sessions.values()):
            self._apply_capability_change(session, event)

    def _apply_capability_change(self, session: ProtocolSession, change: CapabilityChanged) -> None:
        config = self._store.config
        existing = session.registered.get(change.tool_name)

        if change.kind == "toggle":
            if change.enabled and existing is None:
                definition = configured_definition(config, change.tool_name)
                if definition is not None:
                    session.register(definition)
            elif not change.enabled and existing is not None:
                existing.remove()
            return

        definition = configured_definition(config, change.tool_name)
        if definition is None:
            return
        if existing is not None:
            existing.update(definition)
        elif config.enabled_tools.get(change.tool_name):
            session.register(definition)

    def _record_outbound(self, session_id: str, message: Message) -> None:
        logger.info(
            "protocol_outbound",
            session_id=session_id[:8],
            rpc_method=message.get("method"),
            rpc_id=message.get("id"),
        )
        self._activity_log.append(
            ActivityLogEntry(
                timestamp=int(time.time() * 1000),
                direction="out",
                source="mcp",
                method="SSE",
                path="/mcp",
                session_id=session_id,
                rpc_method=message.get("method"),
                rpc_id=message.get("id"),
                body=json.dumps(message),
            )
        )

    def shutdown(self) -> None:
        self._unsubscribe()
        self.close_all()
