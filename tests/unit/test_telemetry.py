"""Tests for idiamant2mqtt._telemetry — status record normalization.

Test Techniques Used:
    - Specification-based Testing: vendor key → frame attribute mapping
    - Equivalence Partitioning: present, absent and null fields
"""

from __future__ import annotations

from idiamant2mqtt._models import TelemetryFrame
from idiamant2mqtt._telemetry import FIELD_MAP, normalize


class TestNormalize:
    """normalize() mapping.

    Technique: Specification-based Testing.
    """

    def test_full_record(self) -> None:
        """Every mapped vendor key lands on its frame attribute."""
        record = {
            "id": "m1",
            "type": "NBR",
            "reachable": True,
            "current_position": 50,
            "battery_level": 80,
            "rf_strength": 70,
            "wifi_strength": 60,
            "last_seen": 1_700_000_000,
            "bridge": "g1",
            "target_position:step": 100,
        }
        assert normalize(record) == TelemetryFrame(
            id="m1",
            reachable=True,
            position=50,
            battery=80,
            rfstatus=70,
            wifistatus=60,
            timeutc=1_700_000_000,
            gateway="g1",
            position_step=100,
        )

    def test_sparse_record(self) -> None:
        """A record with only a battery yields only id, reachable, battery."""
        frame = normalize({"id": "m1", "reachable": True, "battery_level": 80})
        assert frame.to_dict() == {"id": "m1", "reachable": 1, "battery": 80}

    def test_null_counts_as_absent(self) -> None:
        frame = normalize({"id": "m1", "reachable": True, "current_position": None})
        assert frame.position is None
        assert "position" not in frame.to_dict()

    def test_missing_reachable_is_false(self) -> None:
        """A module that does not report reachability is unreachable."""
        assert normalize({"id": "m1"}).reachable is False

    def test_unmapped_keys_are_dropped(self) -> None:
        """Vendor keys outside the map never reach the frame."""
        frame = normalize({"id": "m1", "reachable": True, "firmware_revision": 3})
        assert set(frame.to_dict()) == {"id", "reachable"}

    def test_position_zero_is_kept(self) -> None:
        """A closed shutter (0) is a reading, not an absent value."""
        assert normalize({"id": "m1", "current_position": 0}).position == 0

    def test_field_map_targets_frame_attributes(self) -> None:
        """Every mapped attribute exists on TelemetryFrame."""
        fields = set(TelemetryFrame.__dataclass_fields__)
        assert set(FIELD_MAP.values()) <= fields
