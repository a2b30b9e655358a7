"""MQTT inbound topic routing.

Topic convention::

    {prefix}/{module_id}/set   → position command (subscribed per flap)
    {prefix}/refresh           → "refresh" rebuilds the topology
    {prefix}/{module_id}       → telemetry (published, not routed)
    {prefix}/{module_id}/config→ discovery config (published, not routed)

Everything else is ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

CommandHandler = Callable[[str, str], Awaitable[None]]
"""Async callback receiving ``(module_id, payload)``."""

RefreshHandler = Callable[[], Awaitable[None]]

REFRESH_PAYLOAD = "refresh"


class TopicRouter:
    """Routes inbound MQTT messages to the engine.

    Args:
        topic_prefix: Base prefix (e.g. ``"idiamant"``).
        on_command: Called for ``{prefix}/{module_id}/set``.
        on_refresh: Called for ``{prefix}/refresh`` carrying ``"refresh"``.
    """

    def __init__(
        self,
        *,
        topic_prefix: str,
        on_command: CommandHandler,
        on_refresh: RefreshHandler,
    ) -> None:
        self._topic_prefix = topic_prefix
        self._on_command = on_command
        self._on_refresh = on_refresh

    @property
    def refresh_topic(self) -> str:
        return f"{self._topic_prefix}/refresh"

    async def route(self, topic: str, payload: str) -> None:
        """Route an inbound MQTT message.

        A refresh topic with any payload other than ``"refresh"`` and
        topics matching no pattern are ignored.
        """
        if topic == self.refresh_topic:
            logger.debug("Topic %s received", topic)
            if payload.strip() == REFRESH_PAYLOAD:
                await self._on_refresh()
            return

        module_id = self._extract_module(topic)
        if module_id is None:
            return
        await self._on_command(module_id, payload)

    def _extract_module(self, topic: str) -> str | None:
        """Extract the module id from *topic*.

        Returns:
            The module id if *topic* matches ``{prefix}/{module_id}/set``,
            otherwise ``None``.
        """
        prefix = self._topic_prefix + "/"
        suffix = "/set"
        if not (topic.startswith(prefix) and topic.endswith(suffix)):
            return None
        middle = topic[len(prefix) : -len(suffix)]
        if "/" in middle or not middle:
            return None
        return middle
