"""Inbound position commands.

A command arrives on ``{prefix}/{module_id}/set`` with a JSON payload::

    {"target_position": 100}

A bare integer (``"100"``) is accepted as well.  The command is resolved
against the registry, sent through ``POST /api/setstate`` and, once the
vendor accepted it, the module's location is polled out of cycle so the
new position shows up without waiting for the next tick.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from idiamant2mqtt._api import PATH_SET_STATE
from idiamant2mqtt._context import EngineContext
from idiamant2mqtt._errors import FatalAuthError, InvalidCommandError, RequestError
from idiamant2mqtt._poller import AuthFailureCallback, PollingScheduler
from idiamant2mqtt._registry import DeviceRegistry

logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"-?\d+")


def _as_int(value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise InvalidCommandError(f"Invalid target_position: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INTEGER.fullmatch(value.strip()):
        return int(value)
    raise InvalidCommandError(f"Invalid target_position: {value!r}")


def parse_target_position(payload: str) -> int:
    """Extract the target position from a command payload.

    Raises:
        InvalidCommandError: The payload is not valid JSON, lacks
            ``target_position`` or carries a non-integer value.
    """
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise InvalidCommandError(f"Invalid command payload: {payload!r}") from exc
    if isinstance(data, dict):
        if "target_position" not in data:
            raise InvalidCommandError(f"Missing target_position in {payload!r}")
        return _as_int(data["target_position"])
    return _as_int(data)


def vendor_errors(response: dict[str, Any]) -> list[Any]:
    """Errors reported in a 200 ``setstate`` answer (``body.errors``)."""
    body = response.get("body")
    if not isinstance(body, dict):
        return []
    errors = body.get("errors")
    return errors if isinstance(errors, list) else []


class CommandDispatcher:
    """Turns inbound commands into ``setstate`` requests.

    Args:
        ctx: Engine context providing the API port and event sink.
        registry: Resolves module ids to their location and bridge.
        poller: Used for the out-of-cycle refresh after a command.
        on_auth_failure: Awaited when the command could not be sent
            because authentication is no longer possible.
    """

    def __init__(
        self,
        ctx: EngineContext,
        registry: DeviceRegistry,
        poller: PollingScheduler,
        *,
        on_auth_failure: AuthFailureCallback | None = None,
    ) -> None:
        self._ctx = ctx
        self._registry = registry
        self._poller = poller
        self._on_auth_failure = on_auth_failure

    async def handle_command(self, module_id: str, payload: str) -> None:
        """Send a position command for *module_id*.

        Failures are reported as error frames, never raised.
        """
        module = self._registry.lookup(module_id)
        if module is None:
            logger.warning("Module %s not found, command dropped", module_id)
            return

        try:
            if not module.type.is_flap:
                msg = f"Module {module_id} of type {module.type} accepts no commands"
                raise InvalidCommandError(msg)
            position = parse_target_position(payload)
        except InvalidCommandError as exc:
            await self._ctx.sink.error(exc, device=module_id)
            return

        command = self._registry.resolve_command(module_id, position)
        logger.info("%s: %s", module_id, json.dumps(command.to_request()))
        try:
            response = await self._ctx.api.set_state(command)
        except RequestError as exc:
            await self._ctx.sink.error(exc, device=module_id)
            return
        except FatalAuthError as exc:
            logger.error("Command for %s not sent: %s", module_id, exc)
            if self._on_auth_failure is not None:
                await self._on_auth_failure(exc)
            return

        errors = vendor_errors(response)
        if errors:
            logger.warning("%s", json.dumps(response))
            rejected = RequestError(
                f"HTTP request {PATH_SET_STATE} rejected for module {module_id}",
                path=PATH_SET_STATE,
                payload=errors[0],
            )
            await self._ctx.sink.error(rejected, device=module_id)
            return

        location = self._registry.location(module.location_id)
        if location is not None:
            await self._poller.poll_location(location)
