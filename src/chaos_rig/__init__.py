from .activity_log import MAX_LOG_ENTRIES, ActivityLog
from .config_store import AuthChanged, CapabilityChanged, ConfigStore
from .exceptions import (
    AuthorizationExpiredError,
    ChaosRigError,
    ConfigValidationError,
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidTokenError,
    JsonRpcError,
    OAuthError,
    ServerError,
    SessionAlreadyInitializedError,
    SessionError,
    SessionNotFoundError,
    StreamConflictError,
    UnsupportedGrantTypeError,
)
from .faults import FaultInjector
from .gateway import AuthGateway, extract_bearer_token
from .models import (
    ActivityLogEntry,
    AuthDecision,
    FlakyConfig,
    ServerConfig,
    SlowModeConfig,
)
from .oauth import AuthFlowEngine
from .runtime import Runtime
from .scheduler import DeferredActions
from .sessions import SessionRegistry

__all__ = [
    # Models
    "ActivityLogEntry",
    "AuthDecision",
    "FlakyConfig",
    "ServerConfig",
    "SlowModeConfig",
    # Components
    "ActivityLog",
    "AuthChanged",
    "AuthFlowEngine",
    "AuthGateway",
    "CapabilityChanged",
    "ConfigStore",
    "DeferredActions",
    "FaultInjector",
    "MAX_LOG_ENTRIES",
    "Runtime",
    "SessionRegistry",
    "extract_bearer_token",
    # Exceptions
    "AuthorizationExpiredError",
    "ChaosRigError",
    "ConfigValidationError",
    "InvalidClientError",
    "InvalidGrantError",
    "InvalidRequestError",
    "InvalidTokenError",
    "JsonRpcError",
    "OAuthError",
    "ServerError",
    "SessionAlreadyInitializedError",
    "SessionError",
    "SessionNotFoundError",
    "StreamConflictError",
    "UnsupportedGrantTypeError",
]

__version__ = "0.1.0"
