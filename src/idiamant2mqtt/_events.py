"""Outward event boundary of the synchronization engine.

The engine never talks to MQTT or the state file directly; it emits
events through an :class:`EventSink`.  :class:`MqttEventSink` is the
production implementation:

========================  =========================================
event                     effect
========================  =========================================
``telemetry``             ``{prefix}/{module_id}`` JSON frame
``module_config``         ``{prefix}/{module_id}/config`` (retained)
``error``                 ``{prefix}/error`` error frame
``info``                  ``{prefix}/infos`` info frame
``subscribe``             subscribe to ``{prefix}/{module_id}/set``
``token_updated``         rewrite the state file
``connection_state``      ``{prefix}/api`` (retained)
========================  =========================================
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from idiamant2mqtt._errors import ErrorPublisher
from idiamant2mqtt._health import AvailabilityReporter
from idiamant2mqtt._models import Location, Module, TelemetryFrame, Token
from idiamant2mqtt._mqtt import MqttPort
from idiamant2mqtt._state import StateStore

logger = logging.getLogger(__name__)


@runtime_checkable
class EventSink(Protocol):
    """Port for everything the engine reports to the outside world."""

    async def telemetry(self, frame: TelemetryFrame) -> None: ...

    async def module_config(self, module: Module, location: Location) -> None: ...

    async def error(
        self,
        error: Exception,
        *,
        device: str | None = None,
        data: Any = None,
    ) -> None: ...

    async def info(self, message: str) -> None: ...

    async def subscribe(self, module_id: str) -> None: ...

    async def token_updated(self, token: Token) -> None: ...

    async def connection_state(self, state: str) -> None: ...


def command_topic(topic_prefix: str, module_id: str) -> str:
    return f"{topic_prefix}/{module_id}/set"


@dataclass
class MqttEventSink:
    """Publishes engine events to MQTT and persists tokens."""

    mqtt: MqttPort
    topic_prefix: str
    store: StateStore
    errors: ErrorPublisher
    availability: AvailabilityReporter

    async def telemetry(self, frame: TelemetryFrame) -> None:
        topic = f"{self.topic_prefix}/{frame.id}"
        logger.debug("Publish frame to topic [%s]", topic)
        await self._safe_publish(topic, frame.to_json())

    async def module_config(self, module: Module, location: Location) -> None:
        await self._safe_publish(
            f"{self.topic_prefix}/{module.id}/config",
            json.dumps(module.to_config(location)),
            retain=True,
        )

    async def error(
        self,
        error: Exception,
        *,
        device: str | None = None,
        data: Any = None,
    ) -> None:
        await self.errors.publish(error, device=device, data=data)

    async def info(self, message: str) -> None:
        await self.errors.publish_info(message)

    async def subscribe(self, module_id: str) -> None:
        topic = command_topic(self.topic_prefix, module_id)
        logger.debug("Request subscribe to topic: %s", topic)
        try:
            await self.mqtt.subscribe(topic)
        except Exception:
            logger.exception("Unable to subscribe to %s", topic)

    async def token_updated(self, token: Token) -> None:
        try:
            self.store.save(token)
        except OSError:
            logger.exception("Failed to save updated state file: %s", self.store.path)

    async def connection_state(self, state: str) -> None:
        await self.availability.publish_api_state(state)

    async def _safe_publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
    ) -> None:
        try:
            await self.mqtt.publish(topic, payload, retain=retain, qos=1)
        except Exception as exc:
            logger.warning("Unable to publish frame to %s (%s)", topic, exc)
