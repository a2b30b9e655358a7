"""idiamant2mqtt.

Bridge between Netatmo iDiamant (Bubendorff roller shutters) and MQTT.
"""

from importlib.metadata import PackageNotFoundError, version

from idiamant2mqtt._api import NetatmoApi, NetatmoPort, OAuthClient
from idiamant2mqtt._app import Bridge
from idiamant2mqtt._clock import ClockPort, SystemClock
from idiamant2mqtt._context import EngineContext
from idiamant2mqtt._engine import SyncEngine
from idiamant2mqtt._errors import (
    AuthError,
    BridgeError,
    EmptyTopologyError,
    ErrorPayload,
    ErrorPublisher,
    FatalAuthError,
    InvalidCommandError,
    InvalidTokenResponse,
    NoCredentialsError,
    RequestError,
    TokenExpiredError,
    TransientAuthError,
    UnknownModuleError,
    build_error_payload,
)
from idiamant2mqtt._events import EventSink, MqttEventSink
from idiamant2mqtt._health import AvailabilityReporter, build_will_config
from idiamant2mqtt._logging import JsonFormatter, configure_logging
from idiamant2mqtt._models import (
    AuthorizationResult,
    Location,
    Module,
    ModuleType,
    ResolvedCommand,
    TelemetryFrame,
    Token,
)
from idiamant2mqtt._mqtt import (
    MessageCallback,
    MockMqttClient,
    MqttClient,
    MqttLifecycle,
    MqttMessageHandler,
    MqttPort,
    NullMqttClient,
    WillConfig,
)
from idiamant2mqtt._settings import (
    LoggingSettings,
    MqttSettings,
    NetatmoSettings,
    Settings,
)
from idiamant2mqtt._state import StateStore
from idiamant2mqtt._telemetry import normalize
from idiamant2mqtt._token import TokenManager

try:
    # Prefer the generated version file (setuptools_scm at build time)
    from idiamant2mqtt._version import __version__
except ImportError:
    try:
        # Fallback to installed package metadata
        __version__ = version("idiamant2mqtt")
    except PackageNotFoundError:
        # Last resort fallback for editable installs without metadata
        __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Bridge
    "Bridge",
    "EngineContext",
    "SyncEngine",
    # Netatmo
    "NetatmoApi",
    "NetatmoPort",
    "OAuthClient",
    "TokenManager",
    "normalize",
    # Models
    "AuthorizationResult",
    "Location",
    "Module",
    "ModuleType",
    "ResolvedCommand",
    "TelemetryFrame",
    "Token",
    # Clock
    "ClockPort",
    "SystemClock",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # MQTT
    "MessageCallback",
    "MockMqttClient",
    "MqttClient",
    "MqttLifecycle",
    "MqttMessageHandler",
    "MqttPort",
    "NullMqttClient",
    "WillConfig",
    # Events
    "AvailabilityReporter",
    "EventSink",
    "MqttEventSink",
    "StateStore",
    "build_will_config",
    # Errors
    "AuthError",
    "BridgeError",
    "EmptyTopologyError",
    "ErrorPayload",
    "ErrorPublisher",
    "FatalAuthError",
    "InvalidCommandError",
    "InvalidTokenResponse",
    "NoCredentialsError",
    "RequestError",
    "TokenExpiredError",
    "TransientAuthError",
    "UnknownModuleError",
    "build_error_payload",
    # Settings
    "LoggingSettings",
    "MqttSettings",
    "NetatmoSettings",
    "Settings",
]
