"""Bridge orchestrator.

The :class:`Bridge` class is the composition root.  It builds the MQTT
adapter, the Netatmo clients, the token manager and the
:class:`~idiamant2mqtt._engine.SyncEngine`, wires inbound MQTT traffic
to the engine and runs until a shutdown signal arrives.

Typical usage::

    from idiamant2mqtt import Bridge

    Bridge().cli()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import uuid
from collections.abc import Coroutine
from typing import Any

import httpx

from idiamant2mqtt._api import NetatmoApi, OAuthClient, create_http_client
from idiamant2mqtt._clock import ClockPort, SystemClock
from idiamant2mqtt._context import EngineContext
from idiamant2mqtt._engine import SyncEngine
from idiamant2mqtt._errors import ErrorPublisher
from idiamant2mqtt._events import MqttEventSink
from idiamant2mqtt._health import (
    API_CONNECTED,
    API_DISCONNECTED,
    AvailabilityReporter,
    build_will_config,
)
from idiamant2mqtt._logging import configure_logging
from idiamant2mqtt._models import Token
from idiamant2mqtt._mqtt import MqttClient, MqttLifecycle, MqttMessageHandler, MqttPort
from idiamant2mqtt._router import TopicRouter
from idiamant2mqtt._settings import Settings
from idiamant2mqtt._state import StateStore
from idiamant2mqtt._token import TokenManager

logger = logging.getLogger(__name__)


def initial_token(store: StateStore, settings: Settings) -> Token:
    """Load the persisted token, seeding the refresh token from settings.

    The state file wins: its refresh token is rotated on every refresh,
    while the configured one is only valid until first use.
    """
    token = store.load()
    seed = settings.netatmo.refresh_token
    if not token.refresh_token and seed is not None:
        logger.info("Using the configured refresh token")
        return Token(refresh_token=seed.get_secret_value())
    return token


class Bridge:
    """Composition root and lifecycle orchestrator.

    Args:
        name: Application name (used as MQTT client id prefix and in logs).
        version: Application version string.
        description: Short description for CLI help text.
        settings_class: Settings subclass to instantiate at startup.
    """

    def __init__(
        self,
        name: str = "idiamant2mqtt",
        version: str = "0.0.0",
        *,
        description: str = "iDiamant to MQTT bridge",
        settings_class: type[Settings] = Settings,
    ) -> None:
        self._name = name
        self._version = version
        self._description = description
        self._settings_class = settings_class
        self._tasks: set[asyncio.Task[None]] = set()
        self.engine: SyncEngine | None = None

    # --- Lifecycle ---------------------------------------------------------

    def run(
        self,
        *,
        mqtt: MqttPort | None = None,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        """Start the bridge (blocking, synchronous entrypoint).

        All parameters are optional and intended for programmatic or
        test use.

        See Also:
            :meth:`cli` for the entrypoint with argument parsing.
        """
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(
                self._run_async(
                    mqtt=mqtt,
                    settings=settings,
                    shutdown_event=shutdown_event,
                    clock=clock,
                    http=http,
                ),
            )

    def cli(self) -> None:
        """Start the bridge with CLI argument parsing."""
        from idiamant2mqtt._cli import build_cli

        cli = build_cli(self)
        cli(standalone_mode=True)

    async def _run_async(
        self,
        *,
        mqtt: MqttPort | None = None,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        """Async orchestration.

        Orchestration order:

        1. Bootstrap infrastructure (settings, logging, state, HTTP, MQTT).
        2. Authenticate against Netatmo, then connect to the broker.
        3. Block until shutdown, retrying authentication when lost.
        4. Tear down (engine, availability offline, MQTT, HTTP).

        Parameters are provided for testability: inject a
        :class:`~idiamant2mqtt._mqtt.MockMqttClient`, a fake clock, an
        ``httpx.AsyncClient`` and a manual :class:`asyncio.Event` to
        avoid real I/O in tests.

        Raises:
            EmptyTopologyError: The account has no Bubendorff location.
        """
        # --- Phase 1: Bootstrap infrastructure ---
        resolved_settings = settings if settings is not None else self._settings_class()
        prefix = resolved_settings.mqtt.topic_prefix
        configure_logging(
            resolved_settings.logging,
            service=self._name,
            version=self._version,
        )
        resolved_clock = clock if clock is not None else SystemClock()

        store = StateStore(resolved_settings.netatmo.state_file)
        token = initial_token(store, resolved_settings)

        owns_http = http is None
        http_client = http if http is not None else create_http_client(
            resolved_settings.netatmo.base_url,
            resolved_settings.netatmo.request_timeout,
        )

        mqtt = self._create_mqtt(mqtt, resolved_settings, prefix)
        availability = AvailabilityReporter(mqtt=mqtt, topic_prefix=prefix)
        sink = MqttEventSink(
            mqtt=mqtt,
            topic_prefix=prefix,
            store=store,
            errors=ErrorPublisher(mqtt=mqtt, topic_prefix=prefix),
            availability=availability,
        )

        netatmo = resolved_settings.netatmo
        grant = OAuthClient(
            http_client,
            client_id=netatmo.client_id,
            client_secret=netatmo.client_secret.get_secret_value(),
        )
        tokens = TokenManager(
            grant,
            resolved_clock,
            token=token,
            on_update=sink.token_updated,
        )
        ctx = EngineContext(
            settings=resolved_settings,
            api=NetatmoApi(http_client, tokens),
            tokens=tokens,
            sink=sink,
            clock=resolved_clock,
            shutdown_event=self._install_signal_handlers(shutdown_event),
        )
        engine = SyncEngine(ctx)
        self.engine = engine

        try:
            # --- Phase 2: Netatmo first, then MQTT ---
            await engine.authenticate()

            router = TopicRouter(
                topic_prefix=prefix,
                on_command=engine.handle_command,
                on_refresh=engine.refresh,
            )
            await self._subscribe_and_connect(mqtt, router, engine, availability)

            # --- Phase 3: Run ---
            reauth_task = asyncio.create_task(self._reauth_loop(ctx, engine))
            await ctx.shutdown_event.wait()

            # --- Phase 4: Tear down ---
            reauth_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reauth_task
            await self._cancel_tasks()
            await engine.stop()
            await availability.publish_offline()
        finally:
            if isinstance(mqtt, MqttLifecycle):
                await mqtt.stop()
            if owns_http:
                await http_client.aclose()

        logger.info("Shutdown complete")
        if engine.fatal_error is not None:
            raise engine.fatal_error

    # --- _run_async helpers ------------------------------------------------

    def _create_mqtt(
        self,
        mqtt: MqttPort | None,
        resolved_settings: Settings,
        prefix: str,
    ) -> MqttPort:
        """Create the MQTT client, or return the injected one.

        When no explicit ``client_id`` is configured, generates one
        from the app name and a short random suffix (e.g.
        ``"idiamant2mqtt-a1b2c3d4"``).
        """
        if mqtt is not None:
            return mqtt
        mqtt_settings = resolved_settings.mqtt
        if not mqtt_settings.client_id:
            generated_id = f"{self._name}-{uuid.uuid4().hex[:8]}"
            mqtt_settings = mqtt_settings.model_copy(
                update={"client_id": generated_id},
            )
        will = build_will_config(prefix)
        return MqttClient(settings=mqtt_settings, will=will)

    @staticmethod
    def _install_signal_handlers(
        shutdown_event: asyncio.Event | None,
    ) -> asyncio.Event:
        """Install SIGTERM/SIGINT handlers. Returns the shutdown event."""
        if shutdown_event is not None:
            return shutdown_event
        event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, event.set)
        return event

    async def _subscribe_and_connect(
        self,
        mqtt: MqttPort,
        router: TopicRouter,
        engine: SyncEngine,
        availability: AvailabilityReporter,
    ) -> None:
        """Wire inbound traffic, subscribe to the refresh topic and connect.

        Engine work runs in background tasks so a slow Netatmo call
        never stalls the MQTT message loop.
        """

        async def _on_message(topic: str, payload: str) -> None:
            self._spawn(router.route(topic, payload))

        async def _on_connection(connected: bool) -> None:
            if connected:
                await availability.publish_online()
                await availability.publish_api_state(
                    API_CONNECTED if engine.api_connected else API_DISCONNECTED,
                )
            self._spawn(engine.on_transport_state(connected))

        if isinstance(mqtt, MqttMessageHandler):
            mqtt.on_message(_on_message)
            mqtt.on_connection_change(_on_connection)
        await mqtt.subscribe(router.refresh_topic)
        if isinstance(mqtt, MqttLifecycle):
            await mqtt.start()

    @staticmethod
    async def _reauth_loop(ctx: EngineContext, engine: SyncEngine) -> None:
        """Retry authentication every ``reauth_interval`` while disconnected."""
        interval = ctx.settings.netatmo.reauth_interval
        while not ctx.shutdown_requested:
            await ctx.sleep(interval)
            if ctx.shutdown_requested:
                return
            if not engine.api_connected and not await engine.authenticate():
                continue
            if not engine.poller.running:
                await engine.resume()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait until every background task spawned so far has finished."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _cancel_tasks(self) -> None:
        """Cancel in-flight background tasks and wait for completion."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(
                result,
                asyncio.CancelledError,
            ):
                logger.error("Task error during shutdown: %s", result)
