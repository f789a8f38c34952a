"""FastAPI dependencies and process configuration.

Settings come from environment variables. The default Runtime is built once
per process and reused; tests build their own Runtime and pass it to
``create_app`` instead.
"""

from __future__ import annotations

import os

from fastapi import Depends, HTTPException, Request

from chaos_rig.runtime import Runtime

DEFAULT_PORT = 4100
DEFAULT_HOST = "127.0.0.1"
DEFAULT_DB_PATH = "data.db"

# Module-level cache (initialized once per process)
_runtime: Runtime | None = None


def get_port() -> int:
    """Get the listening port from PORT (default 4100).

    Raises:
        RuntimeError: If PORT is not an integer
    """
    raw = os.environ.get("PORT", str(DEFAULT_PORT))
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"PORT must be an integer, got {raw!r}") from exc


def get_host() -> str:
    return os.environ.get("HOST", DEFAULT_HOST)


def get_base_url() -> str:
    """Public base URL advertised in discovery documents.

    Set BASE_URL when the rig sits behind a tunnel or reverse proxy.
    """
    return os.environ.get("BASE_URL") or f"http://localhost:{get_port()}"


def get_database_path() -> str:
    return os.environ.get("CHAOS_RIG_DB_PATH", DEFAULT_DB_PATH)


def get_default_runtime() -> Runtime:
    """Get the process-wide Runtime, building it on first call."""
    global _runtime
    if _runtime is None:
        _runtime = Runtime.build(base_url=get_base_url(), database_path=get_database_path())
    return _runtime


def reset_default_runtime() -> None:
    global _runtime
    if _runtime is not None:
        _runtime.shutdown()
    _runtime = None


def get_runtime(request: Request) -> Runtime:
    """Runtime of the app serving ``request``."""
    runtime: Runtime = request.app.state.runtime
    return runtime


async def inject_latency(runtime: Runtime = Depends(get_runtime)) -> None:
    """Hold the request for the slow-mode delay, if slow mode is on."""
    await runtime.faults.delay()


async def require_oauth_active(runtime: Runtime = Depends(get_runtime)) -> None:
    if runtime.store.config.auth_mode != "oauth":
        raise HTTPException(status_code=404, detail="OAuth not active")
