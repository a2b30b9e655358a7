"""Location and module discovery.

The registry is built incrementally by :meth:`DeviceRegistry.discover`
and only ever shrinks through :meth:`DeviceRegistry.reset` (an explicit
refresh request).  Discovery is idempotent: a location already known is
skipped, so running it twice against the same account changes nothing.
A pass is all-or-nothing: if one location fails, none of the locations
of that pass are stored and the next pass starts over.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from idiamant2mqtt._context import EngineContext
from idiamant2mqtt._errors import UnknownModuleError
from idiamant2mqtt._models import Location, Module, ModuleType, ResolvedCommand

logger = logging.getLogger(__name__)


def _has_bubendorff_modules(home: Mapping[str, Any]) -> bool:
    modules = home.get("modules")
    if not isinstance(modules, list):
        return False
    return any(ModuleType.parse(m.get("type")).is_bubendorff for m in modules)


def _position_step(record: Mapping[str, Any]) -> int | None:
    step = record.get("target_position:step")
    return int(step) if step is not None else None


class DeviceRegistry:
    """Known locations and the flat module index.

    Args:
        ctx: Engine context providing the API port and event sink.
    """

    def __init__(self, ctx: EngineContext) -> None:
        self._ctx = ctx
        self._locations: dict[str, Location] = {}
        self._modules: dict[str, Module] = {}

    def __len__(self) -> int:
        return len(self._locations)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    @property
    def locations(self) -> list[Location]:
        return list(self._locations.values())

    def modules(self) -> Iterator[Module]:
        return iter(self._modules.values())

    def location(self, location_id: str) -> Location | None:
        return self._locations.get(location_id)

    def lookup(self, module_id: str) -> Module | None:
        return self._modules.get(module_id)

    def resolve(self, module_id: str) -> Module:
        """Return the module for *module_id*.

        Raises:
            UnknownModuleError: The module was never discovered.
        """
        module = self._modules.get(module_id)
        if module is None:
            raise UnknownModuleError(module_id)
        return module

    def resolve_command(self, module_id: str, target_position: int) -> ResolvedCommand:
        """Resolve a position command against the registry.

        Raises:
            UnknownModuleError: The module was never discovered.
        """
        module = self.resolve(module_id)
        return ResolvedCommand(
            location_id=module.location_id,
            module_id=module.id,
            bridge_id=module.bridge_id,
            target_position=target_position,
        )

    def reset(self) -> None:
        """Forget everything; :meth:`discover` must run again."""
        logger.info("Registry cleared")
        self._locations.clear()
        self._modules.clear()

    async def discover(self) -> list[Location]:
        """Discover locations with Bubendorff products.

        Returns:
            The locations added by this pass.

        Raises:
            RequestError: A vendor call failed; nothing from this pass
                is stored.
            FatalAuthError: No token could be obtained.
        """
        pending: list[tuple[Location, list[Any], dict[Any, Any]]] = []
        for home in await self._ctx.api.homes_data():
            home_id = str(home.get("id", ""))
            name = str(home.get("name", home_id))
            if not _has_bubendorff_modules(home):
                logger.info("Location %s have no Bubendorff products", name)
                continue
            if home_id in self._locations:
                logger.debug("Existing location : %s", name)
                continue

            logger.info("Location %s: reading Bubendorff products", name)
            status = await self._ctx.api.home_status(home_id)
            records = status.get("modules") if status else None
            if not isinstance(records, list) or not records:
                logger.warning("No modules returned by API for location %s", name)
                continue

            names = {m.get("id"): m.get("name") for m in home["modules"]}
            pending.append((Location(id=home_id, name=name), records, names))

        # nothing is stored until every location has answered
        for location, records, names in pending:
            self._locations[location.id] = location
            for record in records:
                await self._add_module(location, record, names)
        return [location for location, _, _ in pending]

    async def _add_module(
        self,
        location: Location,
        record: Mapping[str, Any],
        names: Mapping[Any, Any],
    ) -> None:
        module_id = str(record["id"])
        bridge = record.get("bridge")
        module = Module(
            id=module_id,
            name=str(names.get(module_id) or module_id),
            type=ModuleType.parse(record.get("type")),
            location_id=location.id,
            bridge_id=str(bridge) if bridge is not None else None,
            position_step=_position_step(record),
        )
        self._modules[module_id] = module
        logger.debug("Module found : %s", module.to_config(location))
        await self._ctx.sink.module_config(module, location)
        if module.type.is_flap:
            await self._ctx.sink.subscribe(module_id)
