"""MQTT client port and adapters.

Provides MqttPort (Protocol) and three implementations:

- MqttClient — real aiomqtt-based client with reconnection
- MockMqttClient — test double that records calls
- NullMqttClient — silent no-op adapter

Design decisions:

- aiomqtt imported lazily inside MqttClient._connection_loop() so Mock/Null
  work without aiomqtt installed
- Subscriptions tracked internally and restored on reconnect
- MessageCallback dispatches (topic, payload) to registered handlers
- ConnectionCallback reports broker connect/disconnect to the engine
- WillConfig abstracts LWT without leaking aiomqtt types
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import ssl
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from idiamant2mqtt._settings import MqttSettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

MessageCallback = Callable[[str, str], Awaitable[None]]
"""Async callback receiving (topic, payload) for each inbound message."""

ConnectionCallback = Callable[[bool], Awaitable[None]]
"""Async callback receiving ``True`` on connect and ``False`` on loss."""

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WillConfig:
    """Last-Will-and-Testament configuration.

    Abstracts ``aiomqtt.Will`` so that callers never depend on the
    aiomqtt package directly.
    """

    topic: str
    payload: str = "0"
    qos: int = 1
    retain: bool = True


# ---------------------------------------------------------------------------
# Ports (Protocols)
# ---------------------------------------------------------------------------


@runtime_checkable
class MqttPort(Protocol):
    """Port contract for MQTT publish/subscribe."""

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None: ...

    async def subscribe(self, topic: str) -> None: ...


@runtime_checkable
class MqttMessageHandler(Protocol):
    """Adapters that deliver inbound messages and connection changes."""

    def on_message(self, callback: MessageCallback) -> None: ...

    def on_connection_change(self, callback: ConnectionCallback) -> None: ...


@runtime_checkable
class MqttLifecycle(Protocol):
    """Adapters that own a background connection."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


# ---------------------------------------------------------------------------
# Null adapter
# ---------------------------------------------------------------------------


@dataclass
class NullMqttClient:
    """Silent no-op MQTT adapter.

    Every method is a no-op that logs at DEBUG level.
    """

    async def publish(
        self,
        topic: str,
        payload: str,  # noqa: ARG002
        *,
        retain: bool = False,  # noqa: ARG002
        qos: int = 1,  # noqa: ARG002
    ) -> None:
        """Silently discard a publish request."""
        logger.debug("NullMqttClient.publish(%s) — discarded", topic)

    async def subscribe(self, topic: str) -> None:
        """Silently discard a subscribe request."""
        logger.debug("NullMqttClient.subscribe(%s) — discarded", topic)


# ---------------------------------------------------------------------------
# Mock / test-double adapter
# ---------------------------------------------------------------------------


@dataclass
class MockMqttClient:
    """In-memory test double that records MQTT interactions.

    Records publishes and subscriptions for assertion.  ``deliver()``
    simulates an inbound message and ``set_connected()`` a broker
    connect or disconnect.
    """

    published: list[tuple[str, str, bool, int]] = field(
        default_factory=list,
    )
    subscriptions: list[str] = field(default_factory=list)
    raise_on_publish: Exception | None = None
    _callbacks: list[MessageCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _connection_callbacks: list[ConnectionCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )

    # -- MqttPort methods --------------------------------------------------

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None:
        """Record a publish call, or raise ``raise_on_publish`` if set."""
        if self.raise_on_publish is not None:
            raise self.raise_on_publish
        self.published.append((topic, payload, retain, qos))

    async def subscribe(self, topic: str) -> None:
        """Record a subscribe call."""
        self.subscriptions.append(topic)

    # -- MqttMessageHandler methods ----------------------------------------

    def on_message(self, callback: MessageCallback) -> None:
        self._callbacks.append(callback)

    def on_connection_change(self, callback: ConnectionCallback) -> None:
        self._connection_callbacks.append(callback)

    # -- Test helpers -------------------------------------------------------

    async def deliver(self, topic: str, payload: str) -> None:
        """Simulate an inbound message by invoking all callbacks."""
        for cb in self._callbacks:
            await cb(topic, payload)

    async def set_connected(self, connected: bool) -> None:
        """Simulate a broker connect (``True``) or disconnect (``False``)."""
        for cb in self._connection_callbacks:
            await cb(connected)

    def get_messages_for(
        self,
        topic: str,
    ) -> list[tuple[str, bool, int]]:
        """Return ``(payload, retain, qos)`` tuples for *topic*."""
        return [
            (payload, retain, qos)
            for t, payload, retain, qos in self.published
            if t == topic
        ]


# ---------------------------------------------------------------------------
# Real adapter
# ---------------------------------------------------------------------------


def build_tls_context(settings: MqttSettings) -> ssl.SSLContext | None:
    """Return the TLS context for *settings*, ``None`` for plain TCP."""
    if not settings.tls:
        return None
    context = ssl.create_default_context()
    if not settings.verify_cert:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def next_backoff(current: float, settings: MqttSettings) -> float:
    """Double *current*, capped at ``reconnect_max_interval``."""
    return min(current * 2, settings.reconnect_max_interval)


@dataclass
class MqttClient:
    """Production MQTT adapter backed by *aiomqtt*.

    Uses a background task that maintains a persistent connection
    with automatic reconnection and exponential backoff.  Connection
    changes are reported through :meth:`on_connection_change`
    callbacks, which is how the engine learns that it can start
    discovery.
    """

    settings: MqttSettings
    will: WillConfig | None = None

    # internal state --------------------------------------------------------
    _callbacks: list[MessageCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _connection_callbacks: list[ConnectionCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _subscriptions: set[str] = field(
        default_factory=set,
        init=False,
        repr=False,
    )
    _client: Any = field(default=None, init=False, repr=False)
    _listen_task: asyncio.Task[None] | None = field(
        default=None,
        init=False,
        repr=False,
    )
    _connected: asyncio.Event = field(
        default_factory=asyncio.Event,
        init=False,
        repr=False,
    )
    _stopping: bool = field(default=False, init=False, repr=False)

    # -- MqttPort methods --------------------------------------------------

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None:
        """Publish a message to the broker.

        Raises:
            RuntimeError: If the client is not connected.
        """
        if self._client is None:
            msg = "MqttClient is not connected"
            raise RuntimeError(msg)
        await self._client.publish(
            topic,
            payload,
            retain=retain,
            qos=qos,
        )
        logger.debug(
            "Published to %s (qos=%d, retain=%s)",
            topic,
            qos,
            retain,
        )

    async def subscribe(self, topic: str) -> None:
        """Subscribe to *topic*.

        The subscription is tracked internally so it can be restored
        after a reconnection.
        """
        self._subscriptions.add(topic)
        if self._client is not None:
            await self._client.subscribe(
                topic,
                qos=self.settings.qos,
            )
            logger.info("Subscribed to %s", topic)

    # -- Callback registration ---------------------------------------------

    def on_message(self, callback: MessageCallback) -> None:
        self._callbacks.append(callback)

    def on_connection_change(self, callback: ConnectionCallback) -> None:
        self._connection_callbacks.append(callback)

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start the background connection loop."""
        if self._listen_task is not None and not self._listen_task.done():
            logger.debug("MqttClient.start() called while already running")
            return
        self._stopping = False
        self._listen_task = asyncio.create_task(
            self._connection_loop(),
        )

    async def stop(self) -> None:
        """Stop the connection loop and clean up.

        Idempotent — safe to call multiple times.
        """
        self._stopping = True
        if self._listen_task is not None:
            self._listen_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listen_task
            self._listen_task = None
        self._client = None
        self._connected.clear()

    # -- Internal -----------------------------------------------------------

    async def _connection_loop(self) -> None:
        """Maintain a persistent connection with auto-reconnect.

        ``aiomqtt`` is imported lazily here so that ``MockMqttClient``
        and ``NullMqttClient`` work without the dependency.
        """
        try:
            import aiomqtt  # noqa: PLC0415
        except ModuleNotFoundError as exc:
            msg = "aiomqtt is required to use MqttClient"
            raise RuntimeError(msg) from exc

        delay = self.settings.reconnect_interval
        while not self._stopping:
            try:
                password: str | None = None
                if self.settings.password is not None:
                    password = self.settings.password.get_secret_value()

                will: aiomqtt.Will | None = None
                if self.will is not None:
                    will = aiomqtt.Will(
                        topic=self.will.topic,
                        payload=self.will.payload,
                        qos=self.will.qos,
                        retain=self.will.retain,
                    )

                async with aiomqtt.Client(
                    hostname=self.settings.host,
                    port=self.settings.port,
                    username=self.settings.username,
                    password=password,
                    identifier=self.settings.client_id or None,
                    will=will,
                    tls_context=build_tls_context(self.settings),
                ) as client:
                    self._client = client
                    try:
                        for topic in list(self._subscriptions):
                            await client.subscribe(
                                topic,
                                qos=self.settings.qos,
                            )

                        self._connected.set()
                        delay = self.settings.reconnect_interval
                        logger.info(
                            "MQTT connected to %s:%d",
                            self.settings.host,
                            self.settings.port,
                        )
                        await self._notify_connection(True)

                        async for message in client.messages:
                            await self._dispatch(message)
                    finally:
                        was_connected = self._connected.is_set()
                        self._connected.clear()
                        self._client = None
                        if was_connected and not self._stopping:
                            await self._notify_connection(False)

            except asyncio.CancelledError:
                raise
            except Exception:
                wait = delay * random.uniform(0.5, 1.0)  # noqa: S311
                logger.warning(
                    "MQTT connection lost, reconnecting in %.1fs",
                    wait,
                    exc_info=True,
                )
                await asyncio.sleep(wait)
                delay = next_backoff(delay, self.settings)

    async def _notify_connection(self, connected: bool) -> None:
        for cb in self._connection_callbacks:
            try:
                await cb(connected)
            except Exception:
                logger.exception("Error in connection callback")

    async def _dispatch(self, message: Any) -> None:
        """Decode and fan-out an inbound message to callbacks."""
        topic = str(message.topic)

        if message.payload is None:
            logger.debug(
                "Skipping message with None payload on %s",
                topic,
            )
            return

        payload = (
            message.payload.decode("utf-8")
            if isinstance(message.payload, (bytes, bytearray))
            else str(message.payload)
        )

        for cb in self._callbacks:
            try:
                await cb(topic, payload)
            except Exception:
                logger.exception(
                    "Error in message callback for %s",
                    topic,
                )
