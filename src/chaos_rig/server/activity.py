"""Activity log helpers for inbound HTTP requests."""

from __future__ import annotations

import json
import time
from typing import Any
from urllib.parse import parse_qsl

from chaos_rig.models import ActivityLogEntry

UNRECORDED_PREFIXES = ("/api", "/ui", "/favicon", "/health", "/docs", "/openapi.json")
AUTH_PATHS = ("/register", "/authorize-decision", "/introspect")


def should_record(path: str) -> bool:
    return not path.startswith(UNRECORDED_PREFIXES)


def classify_source(path: str) -> str:
    if path.startswith("/oauth") or "well-known" in path or path in AUTH_PATHS:
        return "auth"
    return "mcp"


def parse_body(body: bytes, content_type: str | None) -> Any | None:
    """Decode a JSON or form body for logging; None for anything else."""
    if not body:
        return None
    content_type = (content_type or "").lower()
    if "application/json" in content_type:
        try:
            return json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return None
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
    return None


def _preview(value: Any) -> str | None:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return None


def build_activity_entry(
    *,
    method: str,
    path: str,
    status: int,
    session_id: str | None = None,
    query: str | None = None,
    body: Any | None = None,
) -> ActivityLogEntry:
    fields: dict[str, Any] = {
        "timestamp": int(time.time() * 1000),
        "direction": "in",
        "source": classify_source(path),
        "method": method,
        "path": path,
        "session_id": session_id,
        "status": status,
        "query": query or None,
    }
    if method == "POST" and isinstance(body, dict):
        rpc_method = body.get("method")
        if isinstance(rpc_method, str):
            fields["rpc_method"] = rpc_method
            rpc_id = body.get("id")
            if isinstance(rpc_id, str | int):
                fields["rpc_id"] = rpc_id
            params = body.get("params")
            if rpc_method == "tools/call" and isinstance(params, dict):
                if params.get("name"):
                    fields["tool_name"] = str(params["name"])
                if params.get("arguments"):
                    fields["tool_args"] = _preview(params["arguments"])
        else:
            fields["body"] = _preview(body)
    elif method == "POST" and body is not None:
        fields["body"] = _preview(body)
    return ActivityLogEntry(**fields)
