"""Periodic status polling.

One recurring task sleeps ``polling_interval`` seconds and then runs a
poll cycle.  A cycle fetches ``/api/homestatus`` for every known
location concurrently and emits one telemetry frame per module, in
module order within a location.

Overlapping cycles are dropped: while a cycle is running, a new tick or
:meth:`PollingScheduler.poll_now` is skipped rather than queued.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from idiamant2mqtt._context import EngineContext
from idiamant2mqtt._errors import FatalAuthError, RequestError, UnknownModuleError
from idiamant2mqtt._models import Location
from idiamant2mqtt._registry import DeviceRegistry
from idiamant2mqtt._telemetry import normalize

logger = logging.getLogger(__name__)

AuthFailureCallback = Callable[[FatalAuthError], Awaitable[None]]


class PollingScheduler:
    """Runs poll cycles on a fixed interval.

    Args:
        ctx: Engine context providing the API port and event sink.
        registry: Known locations and modules.
        on_auth_failure: Awaited when a location could not be polled
            because authentication is no longer possible.
    """

    def __init__(
        self,
        ctx: EngineContext,
        registry: DeviceRegistry,
        *,
        on_auth_failure: AuthFailureCallback | None = None,
    ) -> None:
        self._ctx = ctx
        self._registry = registry
        self._on_auth_failure = on_auth_failure
        self._task: asyncio.Task[None] | None = None
        self._cycle_task: asyncio.Task[bool] | None = None
        self._in_progress = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_progress(self) -> bool:
        """True while a poll cycle is running."""
        return self._in_progress

    def start(self, interval: float) -> None:
        """Start the recurring poll task; no-op when already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(interval))
        logger.info("iDiamant poller started (every %ss)", interval)

    async def stop(self) -> None:
        """Stop future ticks.

        A cycle already in flight is not cancelled; it is awaited so the
        caller can rely on no frame being emitted afterwards.  Safe to
        call when not running.
        """
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.debug("Poller stopped")
        cycle = self._cycle_task
        if cycle is not None and not cycle.done():
            await asyncio.wait({cycle})

    async def poll_now(self) -> bool:
        """Run one cycle out of band.

        Returns:
            ``False`` when skipped because a cycle was already running.
        """
        return await self._run_cycle()

    async def poll_location(self, location: Location) -> None:
        """Fetch and publish the status of a single location."""
        try:
            status = await self._ctx.api.home_status(location.id)
        except RequestError as exc:
            logger.error("Status poll for location %s failed: %s", location.name, exc)
            await self._ctx.sink.error(exc)
            return
        except FatalAuthError as exc:
            logger.error("Status poll for location %s failed: %s", location.name, exc)
            if self._on_auth_failure is not None:
                await self._on_auth_failure(exc)
            return

        records = status.get("modules") if status else None
        if not isinstance(records, list):
            logger.warning("No modules returned by API for location %s", location.name)
            return
        for record in records:
            module_id = str(record.get("id", ""))
            if module_id not in self._registry:
                await self._ctx.sink.info(str(UnknownModuleError(module_id)))
                continue
            await self._ctx.sink.telemetry(normalize(record))

    async def _loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self._run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Poll cycle crashed")

    async def _run_cycle(self) -> bool:
        if self._in_progress:
            logger.debug("Poll cycle already in progress, tick skipped")
            return False
        self._in_progress = True
        self._cycle_task = asyncio.ensure_future(self._cycle())
        # cancelling the caller must not abort the fetches already sent
        return await asyncio.shield(self._cycle_task)

    async def _cycle(self) -> bool:
        try:
            locations = self._registry.locations
            logger.debug("Polling %d location(s)", len(locations))
            await asyncio.gather(*(self.poll_location(loc) for loc in locations))
        finally:
            self._in_progress = False
        return True
