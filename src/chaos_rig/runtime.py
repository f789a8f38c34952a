"""Explicit construction of the rig's components."""

from __future__ import annotations

import random
from dataclasses import dataclass

from .activity_log import ActivityLog
from .capabilities import CapabilityContext
from .config_store import ConfigStore
from .contacts import ContactStore
from .faults import FaultInjector
from .gateway import AuthGateway
from .models import ServerConfig
from .oauth import AuthFlowEngine
from .sessions import SessionRegistry


@dataclass
class Runtime:
    base_url: str
    store: ConfigStore
    faults: FaultInjector
    activity_log: ActivityLog
    contacts: ContactStore
    auth_flow: AuthFlowEngine
    gateway: AuthGateway
    sessions: SessionRegistry

    @classmethod
    def build(
        cls,
        base_url: str = "http://localhost:4100",
        database_path: str = ":memory:",
        config: ServerConfig | None = None,
        rng: random.Random | None = None,
    ) -> Runtime:
        base_url = base_url.rstrip("/")
        store = ConfigStore(config)
        faults = FaultInjector(store, rng=rng)
        activity_log = ActivityLog()
        contacts = ContactStore(database_path)
        auth_flow = AuthFlowEngine(store, base_url)
        gateway = AuthGateway(
            store,
            auth_flow,
            resource_metadata_url=f"{base_url}/.well-known/oauth-protected-resource/mcp",
        )
        sessions = SessionRegistry(store, faults, activity_log, CapabilityContext(contacts=contacts))
        return cls(
            base_url=base_url,
            store=store,
            faults=faults,
            activity_log=activity_log,
            contacts=contacts,
            auth_flow=auth_flow,
            gateway=gateway,
            sessions=sessions,
        )

    def shutdown(self) -> None:
        self.sessions.shutdown()
        self.auth_flow.shutdown()
        self.contacts.close()
