"""Live-mutable configuration with a synchronous change channel.

The store is the single source of truth for every toggle the rig exposes.
Other components receive the store at construction time, read it directly
and subscribe to change events. Events are delivered synchronously, in
subscription order, before the mutating setter returns.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

import structlog

from .exceptions import ConfigValidationError
from .models import (
    AUTH_MODES,
    REJECT_MODES,
    REJECT_TARGETS,
    TOOL_VERSIONS,
    AuthMode,
    RejectMode,
    ServerConfig,
    ToolVersion,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthChanged:
    mode: AuthMode


@dataclass(frozen=True)
class CapabilityChanged:
    tool_name: str
    kind: Literal["toggle", "version"]
    enabled: bool | None = None
    version: ToolVersion | None = None


ConfigEvent = AuthChanged | CapabilityChanged
ConfigListener = Callable[[ConfigEvent], None]


class ConfigStore:
    def __init__(self, config: ServerConfig | None = None) -> None:
        self._config = config if config is not None else ServerConfig()
        self._listeners: list[ConfigListener] = []

    @property
    def config(self) -> ServerConfig:
        """Current configuration. Treat as read-only; mutate via the setters."""
        return self._config

    def snapshot(self) -> ServerConfig:
        return self._config.model_copy(deep=True)

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: ConfigEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def set_auth_mode(self, mode: str) -> None:
        if mode not in AUTH_MODES:
            raise ConfigValidationError("Invalid auth mode")
        previous = self._config.auth_mode
        self._config.auth_mode = mode  # type: ignore[assignment]
        logger.info("auth_mode_changed", previous=previous, mode=mode)
        self._emit(AuthChanged(mode=self._config.auth_mode))

    def set_bearer_token(self, token: str) -> None:
        if not token:
            raise ConfigValidationError("Token required")
        self._config.bearer_token = token
        logger.info("bearer_token_changed")

    def set_tool_enabled(self, tool_name: str, enabled: bool) -> None:
        if tool_name not in self._config.enabled_tools:
            raise ConfigValidationError("Unknown tool")
        self._config.enabled_tools[tool_name] = enabled
        logger.info("tool_toggled", tool_name=tool_name, enabled=enabled)
        self._emit(CapabilityChanged(tool_name=tool_name, kind="toggle", enabled=enabled))

    def set_tool_version(self, tool_name: str, version: str) -> None:
        if version not in TOOL_VERSIONS:
            raise ConfigValidationError("Invalid version")
        if tool_name not in self._config.tool_versions:
            raise ConfigValidationError("Tool has no versions")
        self._config.tool_versions[tool_name] = version  # type: ignore[assignment]
        logger.info("tool_version_changed", tool_name=tool_name, version=version)
        self._emit(
            CapabilityChanged(
                tool_name=tool_name,
                kind="version",
                version=self._config.tool_versions[tool_name],
            )
        )

    def set_slow_mode(
        self,
        enabled: bool | None = None,
        min_ms: int | None = None,
        max_ms: int | None = None,
    ) -> None:
        """Update slow mode, clamping negatives to zero and keeping min <= max.

        When a single bound is written past the other one, the other bound
        follows it. When both are written, max is raised to min.
        """
        slow = self._config.slow_mode
        if enabled is not None:
            slow.enabled = enabled
        if min_ms is not None:
            slow.min_ms = max(0, min_ms)
        if max_ms is not None:
            slow.max_ms = max(0, max_ms)
        if slow.min_ms > slow.max_ms:
            if max_ms is not None and min_ms is None:
                slow.min_ms = slow.max_ms
            else:
                slow.max_ms = slow.min_ms
        logger.info(
            "slow_mode_changed",
            enabled=slow.enabled,
            min_ms=slow.min_ms,
            max_ms=slow.max_ms,
        )

    def set_flaky(self, enabled: bool | None = None, pct: int | None = None) -> None:
        flaky = self._config.flaky
        if enabled is not None:
            flaky.enabled = enabled
        if pct is not None:
            flaky.pct = max(0, min(100, pct))
        logger.info("flaky_mode_changed", enabled=flaky.enabled, pct=flaky.pct)

    def set_reject(self, target: str, mode: str) -> None:
        if target not in REJECT_TARGETS or mode not in REJECT_MODES:
            raise ConfigValidationError("Invalid target or mode")
        reject_mode: RejectMode = mode  # type: ignore[assignment]
        if target == "bearer":
            self._config.reject_bearer = reject_mode
        else:
            self._config.reject_oauth = reject_mode
        logger.info("reject_mode_changed", target=target, mode=mode)

    def set_oauth_settings(
        self,
        access_token_ttl_secs: int | None = None,
        fail_oauth_refresh: bool | None = None,
        strict_refresh_tokens: bool | None = None,
    ) -> None:
        if access_token_ttl_secs is not None:
            self._config.access_token_ttl_secs = max(1, access_token_ttl_secs)
        if fail_oauth_refresh is not None:
            self._config.fail_oauth_refresh = fail_oauth_refresh
        if strict_refresh_tokens is not None:
            self._config.strict_refresh_tokens = strict_refresh_tokens
        logger.info(
            "oauth_settings_changed",
            access_token_ttl_secs=self._config.access_token_ttl_secs,
            fail_oauth_refresh=self._config.fail_oauth_refresh,
            strict_refresh_tokens=self._config.strict_refresh_tokens,
        )
