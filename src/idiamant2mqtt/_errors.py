"""Exception taxonomy and structured error frames.

Exceptions
----------

::

    BridgeError
    ├── AuthError
    │   ├── TransientAuthError
    │   │   └── TokenExpiredError      ← 401/403 + vendor code 3
    │   └── FatalAuthError
    │       ├── InvalidTokenResponse   ← refresh grant missing fields
    │       └── NoCredentialsError     ← no access and no refresh token
    ├── RequestError                   ← any other HTTP/vendor failure
    ├── UnknownModuleError
    ├── InvalidCommandError
    └── EmptyTopologyError

Error frames
------------

Errors surfaced to MQTT consumers are published to ``{prefix}/error``::

    {
        "id": "error",
        "error_type": "request_failed",
        "message": "HTTP request /api/setstate failed: ... (403)",
        "device": "70:ee:50:00:00:01" | null,
        "timestamp": "2026-02-14T12:34:56+00:00",
        "data": {"code": 13, "message": "Operation forbidden"}
    }

``data`` carries the vendor error payload when there is one.

Diagnostics that are not failures (an unknown module showing up in a
status response) go to ``{prefix}/infos`` as ``{"id": "infos",
"data": "..."}``.

Publication is **not retained**, **QoS 1**, and **fire-and-forget**:
failures to publish are logged, never propagated.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from idiamant2mqtt._mqtt import MqttPort

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class BridgeError(Exception):
    """Base class for every error raised by the bridge."""


class AuthError(BridgeError):
    """Authentication with the Netatmo API failed."""


class TransientAuthError(AuthError):
    """The token was rejected mid-request; a refresh may fix it."""


class TokenExpiredError(TransientAuthError):
    """HTTP 401/403 carrying vendor error code 3 (expired token)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class FatalAuthError(AuthError):
    """The bridge cannot authenticate without user re-authorization."""


class InvalidTokenResponse(FatalAuthError):
    """The token endpoint answered without a complete token."""


class NoCredentialsError(FatalAuthError):
    """Neither a usable access token nor a refresh token is available."""


class RequestError(BridgeError):
    """A vendor API call failed.

    Attributes:
        path: API path of the failed request.
        status_code: HTTP status, ``None`` for transport failures.
        payload: Vendor ``error`` object when the response carried one.
    """

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.status_code = status_code
        self.payload = payload


class UnknownModuleError(BridgeError):
    """A module id is not present in the registry."""

    def __init__(self, module_id: str) -> None:
        super().__init__(f"{module_id} is unknown, please make refresh")
        self.module_id = module_id


class InvalidCommandError(BridgeError):
    """An inbound command payload cannot be turned into a request."""


class EmptyTopologyError(BridgeError):
    """Discovery found no location with Bubendorff products."""


ERROR_TYPE_MAP: dict[type[Exception], str] = {
    TokenExpiredError: "token_expired",
    FatalAuthError: "auth_failed",
    InvalidTokenResponse: "invalid_token_response",
    NoCredentialsError: "no_credentials",
    RequestError: "request_failed",
    UnknownModuleError: "unknown_module",
    InvalidCommandError: "invalid_command",
    EmptyTopologyError: "empty_topology",
}
"""Default exception-class → ``error_type`` mapping (exact class match)."""

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    """Immutable structured error frame."""

    error_type: str
    message: str
    device: str | None
    timestamp: str
    data: Any = None
    id: str = field(default="error")

    def to_json(self) -> str:
        """Serialise to a JSON string."""
        return json.dumps(asdict(self), default=str)


# ---------------------------------------------------------------------------
# Payload builder
# ---------------------------------------------------------------------------


def build_error_payload(
    error: Exception,
    *,
    error_type_map: dict[type[Exception], str] | None = None,
    device: str | None = None,
    data: Any = None,
    clock: Callable[[], datetime] | None = None,
) -> ErrorPayload:
    """Convert an exception into an :class:`ErrorPayload`.

    Looks up the exact class of the exception; subclasses are not
    matched.  When *data* is not given and the error is a
    :class:`RequestError`, its vendor payload is used.

    Args:
        error: The exception to convert.
        error_type_map: Mapping from exception types to ``error_type``
            strings.  Defaults to :data:`ERROR_TYPE_MAP`; unmapped
            types fall back to ``"error"``.
        device: Module id the error relates to, if any.
        data: Vendor error payload to attach.
        clock: Callable returning the timestamp.  Defaults to
            ``datetime.now(UTC)``.
    """
    resolved_map = ERROR_TYPE_MAP if error_type_map is None else error_type_map
    error_type = resolved_map.get(type(error), "error")
    if data is None and isinstance(error, RequestError):
        data = error.payload
    now = clock() if clock is not None else datetime.now(UTC)
    return ErrorPayload(
        error_type=error_type,
        message=str(error),
        device=device,
        timestamp=now.isoformat(),
        data=data,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class ErrorPublisher:
    """Publishes error and info frames to MQTT.

    Args:
        mqtt: MQTT port used for publishing.
        topic_prefix: Base prefix (e.g. ``"idiamant"``).
        error_type_map: Exception type → ``error_type`` mapping.
        clock: Optional timestamp source for deterministic tests.
    """

    mqtt: MqttPort
    topic_prefix: str
    error_type_map: dict[type[Exception], str] = field(
        default_factory=lambda: dict(ERROR_TYPE_MAP),
    )
    clock: Callable[[], datetime] | None = field(default=None, repr=False)

    async def publish(
        self,
        error: Exception,
        *,
        device: str | None = None,
        data: Any = None,
    ) -> None:
        """Publish *error* as an error frame on ``{prefix}/error``.

        Building, serialising and publishing are all fire-and-forget.
        """
        try:
            payload = build_error_payload(
                error,
                error_type_map=self.error_type_map,
                device=device,
                data=data,
                clock=self.clock,
            )
            payload_json = payload.to_json()
        except Exception:
            logger.exception(
                "Failed to build error payload for %r (device=%s)",
                error,
                device,
            )
            return

        logger.warning(
            "Publishing error: %s (type=%s, device=%s)",
            payload.message,
            payload.error_type,
            device,
        )
        await self._safe_publish(f"{self.topic_prefix}/error", payload_json)

    async def publish_info(self, message: str) -> None:
        """Publish a diagnostic message on ``{prefix}/infos``."""
        logger.info("%s", message)
        await self._safe_publish(
            f"{self.topic_prefix}/infos",
            json.dumps({"id": "infos", "data": message}),
        )

    async def _safe_publish(self, topic: str, payload: str) -> None:
        try:
            await self.mqtt.publish(topic, payload, retain=False, qos=1)
        except Exception:
            logger.exception("Failed to publish to %s", topic)
