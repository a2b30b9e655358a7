"""Value objects shared by the synchronization engine.

Everything here is a frozen dataclass: locations and modules are
immutable once discovered, tokens are replaced wholesale on refresh,
and telemetry frames are built once per module per poll cycle.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ModuleType(StrEnum):
    """Bubendorff module families as reported by the Netatmo API."""

    REVERSIBLE_MOTOR = "NBR"
    OPAQUE_MOTOR = "NBO"
    SLAT_MOTOR = "NBS"
    GATEWAY = "NBG"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: object) -> ModuleType:
        """Map a vendor type string to a member, ``OTHER`` when unknown."""
        try:
            return cls(str(raw))
        except ValueError:
            return cls.OTHER

    @property
    def is_flap(self) -> bool:
        """True for the motorized-cover family that accepts positions."""
        return self in _FLAP_TYPES

    @property
    def is_bubendorff(self) -> bool:
        return self is not ModuleType.OTHER


_FLAP_TYPES = frozenset(
    {ModuleType.REVERSIBLE_MOTOR, ModuleType.OPAQUE_MOTOR, ModuleType.SLAT_MOTOR},
)


@dataclass(frozen=True, slots=True)
class Token:
    """OAuth bearer token with its refresh token.

    Attributes:
        access_token: Bearer token sent on every API call.  Empty when
            unknown or invalidated.
        refresh_token: Token used for the refresh grant.  Empty when
            unknown.
        expires_at: Unix time (seconds) at which ``access_token``
            stops being accepted.
    """

    access_token: str = ""
    refresh_token: str = ""
    expires_at: float = 0.0

    def is_usable(self, now: float) -> bool:
        """True iff there is an access token and it expires after *now*."""
        return bool(self.access_token) and self.expires_at > now


@dataclass(frozen=True, slots=True)
class AuthorizationResult:
    """Token grant as returned by the OAuth token endpoint."""

    access_token: str
    refresh_token: str
    expires_in: float

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> AuthorizationResult | None:
        """Build from a token response, ``None`` if a field is missing or bad."""
        access = data.get("access_token")
        refresh = data.get("refresh_token")
        expires_in = data.get("expires_in")
        if not access or not refresh or not expires_in:
            return None
        try:
            lifetime = float(expires_in)
        except (TypeError, ValueError):
            return None
        return cls(
            access_token=str(access),
            refresh_token=str(refresh),
            expires_in=lifetime,
        )

    def to_token(self, now: float) -> Token:
        return Token(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=now + self.expires_in,
        )


@dataclass(frozen=True, slots=True)
class Location:
    """A Netatmo home."""

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class Module:
    """A device inside a location.

    ``bridge_id`` is the gateway (NBG) the module talks through and
    ``position_step`` the granularity of ``target_position`` the motor
    accepts; both are optional in the vendor payload.
    """

    id: str
    name: str
    type: ModuleType
    location_id: str
    bridge_id: str | None = None
    position_step: int | None = None

    def to_config(self, location: Location) -> dict[str, object]:
        """Discovery announcement published once per module."""
        config: dict[str, object] = {
            "id": self.id,
            "name": self.name,
            "type": str(self.type),
            "home": location.name,
        }
        if self.bridge_id is not None:
            config["gateway"] = self.bridge_id
        if self.position_step is not None:
            config["position_step"] = self.position_step
        return config


@dataclass(frozen=True, slots=True)
class ResolvedCommand:
    """A set-state request resolved against the registry."""

    location_id: str
    module_id: str
    bridge_id: str | None
    target_position: int

    def to_request(self) -> dict[str, object]:
        """Body of ``POST /api/setstate``."""
        module: dict[str, object] = {
            "id": self.module_id,
            "target_position": self.target_position,
        }
        if self.bridge_id is not None:
            module["bridge"] = self.bridge_id
        return {"home": {"id": self.location_id, "modules": [module]}}


@dataclass(frozen=True, slots=True)
class TelemetryFrame:
    """Normalized state of one module for one poll cycle.

    Every optional attribute is ``None`` when the vendor record did
    not carry the field.  :meth:`to_dict` drops those, so consumers
    never see a placeholder that could be mistaken for a reading.
    """

    id: str
    reachable: bool
    position: int | None = None
    battery: int | None = None
    rfstatus: int | None = None
    wifistatus: int | None = None
    timeutc: int | None = None
    gateway: str | None = None
    position_step: int | None = None

    def to_dict(self) -> dict[str, object]:
        frame: dict[str, object] = {
            "id": self.id,
            "reachable": 1 if self.reachable else 0,
        }
        for key in _OPTIONAL_FRAME_FIELDS:
            value = getattr(self, key)
            if value is not None:
                frame[key] = value
        return frame

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


_OPTIONAL_FRAME_FIELDS = (
    "position",
    "battery",
    "rfstatus",
    "wifistatus",
    "timeutc",
    "gateway",
    "position_step",
)
