"""Unit tests for idiamant2mqtt._clock — clock port and system adapter.

Test Techniques Used:
    - Specification-based Testing: Verifying ClockPort protocol
      contract
    - Protocol Conformance: isinstance checks for structural
      subtyping
    - Oracle Comparison: SystemClock against time.time()
"""

from __future__ import annotations

import time

from idiamant2mqtt._clock import ClockPort, SystemClock
from idiamant2mqtt.testing import FakeClock


class TestSystemClock:
    """Tests for SystemClock production implementation.

    Technique: Specification-based Testing.
    """

    def test_satisfies_clock_port_protocol(self) -> None:
        """SystemClock is recognized as ClockPort."""
        assert isinstance(SystemClock(), ClockPort)

    def test_now_is_wall_clock(self) -> None:
        """now() tracks unix time so persisted expiries stay valid."""
        before = time.time()
        result = SystemClock().now()
        after = time.time()
        assert isinstance(result, float)
        assert before <= result <= after


class TestFakeClock:
    """Tests for the FakeClock test double.

    Technique: Protocol Conformance + State Inspection.
    """

    def test_satisfies_clock_port_protocol(self) -> None:
        """FakeClock is a drop-in ClockPort."""
        assert isinstance(FakeClock(), ClockPort)

    def test_advance_moves_time_forward(self) -> None:
        """advance() adds seconds to the pinned time."""
        clock = FakeClock(1000.0)
        clock.advance(60)
        assert clock.now() == 1060.0

    def test_class_without_now_does_not_satisfy(self) -> None:
        """A class without now() does not satisfy ClockPort."""

        class NotAClock:
            pass

        assert not isinstance(NotAClock(), ClockPort)
