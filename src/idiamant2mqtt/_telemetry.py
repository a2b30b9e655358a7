"""Normalization of vendor module records into telemetry frames."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from idiamant2mqtt._models import TelemetryFrame

# vendor key -> frame attribute
FIELD_MAP: dict[str, str] = {
    "current_position": "position",
    "battery_level": "battery",
    "rf_strength": "rfstatus",
    "wifi_strength": "wifistatus",
    "last_seen": "timeutc",
    "bridge": "gateway",
    "target_position:step": "position_step",
}


def normalize(record: Mapping[str, Any]) -> TelemetryFrame:
    """Map one ``homestatus`` module record to a :class:`TelemetryFrame`.

    Only fields present in *record* are carried over; a vendor ``null``
    counts as absent.
    """
    values = {
        attribute: record[key]
        for key, attribute in FIELD_MAP.items()
        if record.get(key) is not None
    }
    return TelemetryFrame(
        id=str(record["id"]),
        reachable=bool(record.get("reachable")),
        **values,
    )
