"""Wall-clock port and system adapter.

Token expiry is an absolute unix timestamp handed out by the OAuth
server and persisted across restarts, so the bridge measures time with
the wall clock (``time.time()``), not a monotonic clock.  Components
receive a :class:`ClockPort` so tests can pin "now" with a fake.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockPort(Protocol):
    """Source of the current unix time in seconds."""

    def now(self) -> float:
        """Return the current unix time in seconds."""
        ...


class SystemClock:
    """Production clock wrapping ``time.time()``.

    Satisfies :class:`ClockPort` via structural subtyping.
    """

    def now(self) -> float:
        """Return the current unix time in seconds."""
        return time.time()
