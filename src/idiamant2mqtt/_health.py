"""Bridge availability over MQTT.

Topic layout::

    {prefix}/connected   ← "1" while the bridge is up, "0" otherwise (retained)
    {prefix}/api         ← "connected" / "disconnected" Netatmo API state (retained)

LWT integration:

- The broker publishes ``"0"`` to ``{prefix}/connected`` if the bridge
  disconnects unexpectedly.  :func:`build_will_config` creates the
  matching :class:`WillConfig`.
- On every (re)connection the bridge overwrites it with ``"1"``.
- During graceful shutdown the bridge publishes ``"0"`` explicitly.

Publication is retained, QoS 1 and fire-and-forget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from idiamant2mqtt._mqtt import MqttPort, WillConfig

logger = logging.getLogger(__name__)

API_CONNECTED = "connected"
API_DISCONNECTED = "disconnected"


def build_will_config(topic_prefix: str) -> WillConfig:
    """Create the LWT targeting ``{topic_prefix}/connected`` with ``"0"``."""
    return WillConfig(
        topic=f"{topic_prefix}/connected",
        payload="0",
        qos=1,
        retain=True,
    )


@dataclass
class AvailabilityReporter:
    """Publishes bridge and API availability.

    Args:
        mqtt: MQTT port used for publishing.
        topic_prefix: Base prefix (e.g. ``"idiamant"``).
    """

    mqtt: MqttPort
    topic_prefix: str

    async def publish_online(self) -> None:
        await self._safe_publish(f"{self.topic_prefix}/connected", "1")

    async def publish_offline(self) -> None:
        await self._safe_publish(f"{self.topic_prefix}/connected", "0")

    async def publish_api_state(self, state: str) -> None:
        """Publish the Netatmo API connection state."""
        logger.info("Netatmo API %s", state)
        await self._safe_publish(f"{self.topic_prefix}/api", state)

    async def _safe_publish(self, topic: str, payload: str) -> None:
        try:
            await self.mqtt.publish(topic, payload, retain=True, qos=1)
        except Exception:
            logger.exception("Failed to publish availability to %s", topic)
