"""FastAPI routers for the control, protocol and OAuth planes."""

from __future__ import annotations

from chaos_rig.server.routers.control_plane import router as control_plane_router
from chaos_rig.server.routers.oauth import fallback_router as oauth_fallback_router
from chaos_rig.server.routers.oauth import router as oauth_router
from chaos_rig.server.routers.protocol import router as protocol_router

__all__ = [
    "control_plane_router",
    "oauth_fallback_router",
    "oauth_router",
    "protocol_router",
]
