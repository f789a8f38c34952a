from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chaos_rig import __version__
from chaos_rig.runtime import Runtime
from chaos_rig.server.activity import build_activity_entry, parse_body, should_record
from chaos_rig.server.dependencies import get_default_runtime
from chaos_rig.server.logging_config import configure_logging, get_logger
from chaos_rig.server.routers import (
    control_plane_router,
    oauth_fallback_router,
    oauth_router,
    protocol_router,
)

logger = get_logger(__name__)

SESSION_HEADER = "mcp-session-id"

CONTROL_PANEL_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>MCP Chaos Rig</title>
    <style>
      body { font-family: ui-sans-serif, system-ui, sans-serif; margin: 2rem; }
      h1 { margin-bottom: 0.5rem; }
      section { margin: 1.5rem 0; }
      pre { background: #f6f8fa; padding: 1rem; border-radius: 8px; max-height: 28rem; overflow: auto; }
      button { margin-right: 0.5rem; }
    </style>
  </head>
  <body>
    <h1>MCP Chaos Rig</h1>
    <p>Protocol endpoint: <code id="endpoint"></code></p>
    <section>
      <h2>Auth mode</h2>
      <button data-mode="none">none</button>
      <button data-mode="bearer">bearer</button>
      <button data-mode="oauth">oauth</button>
    </section>
    <section>
      <h2>State</h2>
      <pre id="state">Loading...</pre>
    </section>
    <section>
      <h2>Activity</h2>
      <button id="clear-log">Clear</button>
      <pre id="log">Loading...</pre>
    </section>
    <script>
      async function load(endpoint, target, transform) {
        try {
          const response = await fetch(endpoint);
          const data = await response.json();
          document.getElementById(target).textContent =
            JSON.stringify(transform ? transform(data) : data, null, 2);
        } catch (err) {
          document.getElementById(target).textContent = `${err} (${endpoint})`;
        }
      }
      async function post(endpoint, body) {
        await fetch(endpoint, {
          method: 'POST',
          headers: { 'Content-Type': 'application/json' },
          body: JSON.stringify(body || {}),
        });
        refresh();
      }
      function refresh() {
        load('/api/state', 'state');
        load('/api/log', 'log', (data) => data.entries.slice().reverse());
      }
      document.querySelectorAll('button[data-mode]').forEach((button) => {
        button.addEventListener('click', () => post('/api/auth-mode', { mode: button.dataset.mode }));
      });
      document.getElementById('clear-log').addEventListener('click', () => post('/api/clear-log'));
      fetch('/api/urls').then((r) => r.json()).then((data) => {
        document.getElementById('endpoint').textContent = `${data.base_url}/mcp`;
      });
      refresh();
      setInterval(refresh, 2000);
    </script>
  </body>
</html>"""


def validation_message(exc: RequestValidationError) -> str:
    """Describe the first problem with a request body in one line."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "body"
    if first.get("type") == "missing":
        return f"Missing required field: {field}"
    return f"Invalid value for {field}: {first.get('msg', 'invalid')}"


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """Build the ASGI app around ``runtime`` (the process default when omitted).

    A runtime built here is shut down with the app; one passed in belongs to
    the caller.
    """
    configure_logging()
    owns_runtime = runtime is None
    active_runtime = runtime or get_default_runtime()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("server_started", base_url=active_runtime.base_url)
        yield
        if owns_runtime:
            active_runtime.shutdown()
        logger.info("server_stopped")

    app = FastAPI(title="MCP Chaos Rig", version=__version__, lifespan=lifespan)
    app.state.runtime = active_runtime

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            {"error": exc.detail}, status_code=exc.status_code, headers=exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = validation_message(exc)
        logger.warning("request_invalid", path=request.url.path, error=message)
        return JSONResponse({"error": message}, status_code=400)

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        path = request.url.path
        recorded = should_record(path)
        body = await request.body() if recorded and request.method == "POST" else b""
        start_time = time.monotonic()
        response = await call_next(request)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        session_id = request.headers.get(SESSION_HEADER) or response.headers.get(SESSION_HEADER)
        logger.info(
            "request_complete",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            session_id=session_id[:8] if session_id else None,
        )
        if recorded:
            active_runtime.activity_log.append(
                build_activity_entry(
                    method=request.method,
                    path=path,
                    status=response.status_code,
                    session_id=session_id,
                    query=request.url.query,
                    body=parse_body(body, request.headers.get("content-type")),
                )
            )
        return response

    @app.get("/ui", response_class=HTMLResponse)
    async def control_panel() -> HTMLResponse:
        return HTMLResponse(content=CONTROL_PANEL_HTML, headers={"Cache-Control": "no-store"})

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(control_plane_router)
    app.include_router(protocol_router)
    app.include_router(oauth_router)
    app.include_router(oauth_fallback_router)
    return app
