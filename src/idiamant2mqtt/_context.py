"""Runtime context shared by the synchronization components.

:class:`EngineContext` bundles what the registry, poller, command
dispatcher and engine all need: the Netatmo port, the token manager,
the event sink, the clock and the shutdown event.  The composition
root builds one instance and hands it to every component, so tests can
swap any collaborator by building their own.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field

from idiamant2mqtt._api import NetatmoPort
from idiamant2mqtt._clock import ClockPort
from idiamant2mqtt._events import EventSink
from idiamant2mqtt._settings import Settings
from idiamant2mqtt._token import TokenManager


@dataclass
class EngineContext:
    """Collaborators of the synchronization engine.

    Attributes:
        settings: Application settings instance.
        api: Netatmo API port.
        tokens: Bearer-token lifecycle manager.
        sink: Outward event boundary.
        clock: Wall clock.
        shutdown_event: Set when the bridge must stop.
    """

    settings: Settings
    api: NetatmoPort
    tokens: TokenManager
    sink: EventSink
    clock: ClockPort
    shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def topic_prefix(self) -> str:
        return self.settings.mqtt.topic_prefix

    @property
    def shutdown_requested(self) -> bool:
        """True once a shutdown was requested."""
        return self.shutdown_event.is_set()

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    async def sleep(self, seconds: float) -> None:
        """Shutdown-aware sleep.

        Returns early (without exception) if shutdown is requested during
        the sleep period::

            while not ctx.shutdown_requested:
                await ctx.sleep(30)
                # ... retry ...
        """
        sleep_task = asyncio.ensure_future(asyncio.sleep(seconds))
        shutdown_task = asyncio.ensure_future(self.shutdown_event.wait())

        _, pending = await asyncio.wait(
            {sleep_task, shutdown_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
