"""Synchronization engine.

:class:`SyncEngine` is the orchestrator between the MQTT side and the
Netatmo side.  It owns the registry, the poller and the command
dispatcher and reacts to four inbound events:

- the transport (MQTT) connecting or disconnecting,
- a command for a module,
- an explicit refresh request,
- a new authorization result.

Lifecycle::

    authenticate()                ── API state published on {prefix}/api
    on_transport_state(True)      ── first time: discover → poll → start
                                     afterwards: poll (no re-discovery)
    refresh()                     ── stop → reset → discover → poll → start
    stop()

A discovery pass that finds no Bubendorff location is fatal: an error
frame is published, the poller is never started and shutdown is
requested.  Losing authentication is not fatal: the API state flips to
``disconnected`` and the bridge keeps retrying.
"""

from __future__ import annotations

import asyncio
import logging

from idiamant2mqtt._commands import CommandDispatcher
from idiamant2mqtt._context import EngineContext
from idiamant2mqtt._errors import EmptyTopologyError, FatalAuthError, RequestError
from idiamant2mqtt._health import API_CONNECTED, API_DISCONNECTED
from idiamant2mqtt._models import AuthorizationResult
from idiamant2mqtt._poller import PollingScheduler
from idiamant2mqtt._registry import DeviceRegistry

logger = logging.getLogger(__name__)


class SyncEngine:
    """Keeps MQTT in sync with the Netatmo account.

    Args:
        ctx: Engine context shared with every component.
    """

    def __init__(self, ctx: EngineContext) -> None:
        self._ctx = ctx
        self.registry = DeviceRegistry(ctx)
        self.poller = PollingScheduler(
            ctx,
            self.registry,
            on_auth_failure=self._on_auth_lost,
        )
        self.commands = CommandDispatcher(
            ctx,
            self.registry,
            self.poller,
            on_auth_failure=self._on_auth_lost,
        )
        self._api_connected = False
        self._transport_connected = False
        self.fatal_error: EmptyTopologyError | None = None
        self._sync_lock = asyncio.Lock()

    @property
    def api_connected(self) -> bool:
        return self._api_connected

    @property
    def transport_connected(self) -> bool:
        return self._transport_connected

    # --- Authentication ------------------------------------------------------

    async def authenticate(self) -> bool:
        """Authenticate against Netatmo and publish the API state."""
        logger.debug("Attempting connection to Netatmo")
        self._api_connected = await self._ctx.tokens.authenticate()
        await self._ctx.sink.connection_state(
            API_CONNECTED if self._api_connected else API_DISCONNECTED,
        )
        return self._api_connected

    async def apply_authorization(self, result: AuthorizationResult) -> bool:
        """Install an externally generated token, authenticate, resume."""
        await self._ctx.tokens.apply(result)
        if not await self.authenticate():
            return False
        await self.resume()
        return True

    async def _on_auth_lost(self, error: FatalAuthError) -> None:
        if not self._api_connected:
            return
        self._api_connected = False
        logger.error("Netatmo authorization lost, re-authorize the bridge: %s", error)
        await self._ctx.sink.connection_state(API_DISCONNECTED)

    # --- Transport -----------------------------------------------------------

    async def on_transport_state(self, connected: bool) -> None:
        """React to the MQTT connection going up or down."""
        self._transport_connected = connected
        if not connected:
            logger.info("MQTT disconnected")
            return
        await self.resume()

    async def resume(self) -> None:
        """Start or resume synchronization once both sides are up."""
        if not (self._transport_connected and self._api_connected):
            return
        async with self._sync_lock:
            if len(self.registry) == 0:
                await self._bootstrap()
                return
            logger.info("Reconnected, republishing status")
            await self.poller.poll_now()
            self.poller.start(self._ctx.settings.netatmo.polling_interval)

    # --- Inbound requests ----------------------------------------------------

    async def handle_command(self, module_id: str, payload: str) -> None:
        await self.commands.handle_command(module_id, payload)

    async def refresh(self) -> None:
        """Forget the topology and discover it again."""
        logger.info("Refresh requested")
        async with self._sync_lock:
            await self.poller.stop()
            self.registry.reset()
            await self._bootstrap()

    async def stop(self) -> None:
        await self.poller.stop()

    # --- Internals -----------------------------------------------------------

    async def _bootstrap(self) -> None:
        try:
            await self.registry.discover()
        except RequestError as exc:
            logger.error("Discovery failed: %s", exc)
            await self._ctx.sink.error(exc)
            return
        except FatalAuthError as exc:
            await self._on_auth_lost(exc)
            return

        if len(self.registry) == 0:
            error = EmptyTopologyError("No location with Bubendorff products")
            logger.critical("%s, exiting", error)
            await self._ctx.sink.error(error)
            self.fatal_error = error
            self._ctx.request_shutdown()
            return

        await self.poller.poll_now()
        self.poller.start(self._ctx.settings.netatmo.polling_interval)
