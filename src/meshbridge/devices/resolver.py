"""Entity registry: maps topic identifiers to a device or group plus its capability set.

Resolution returns one of two variants, ``ResolvedDevice`` or ``ResolvedGroup``, tagged by
``kind``. Downstream code switches on ``kind`` instead of inspecting handle types.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from meshbridge.converters.base import Converter, ConverterMap
from meshbridge.converters.defaults import DEFAULT_GROUP_CONVERTERS
from meshbridge.devices.base_device import MeshDevice
from meshbridge.devices.definitions import Definition, DefinitionRegistry
from meshbridge.devices.endpoint import GroupTarget, MeshEndpoint, OutboundQueue
from meshbridge.devices.group import MeshGroup
from meshbridge.logging_abstraction import get_logger
from meshbridge.settings import BridgeSettings, EntityOptions
from meshbridge.structs import EntityKind

__all__ = [
    "EntityEvent",
    "EntityListener",
    "EntityRegistry",
    "ResolvedDevice",
    "ResolvedEntity",
    "ResolvedGroup",
]

logger = get_logger(__name__)


class EntityEvent(StrEnum):
    REMOVED = "removed"
    RECONFIGURED = "reconfigured"


type EntityListener = Callable[[str, EntityEvent], None]


@dataclass(slots=True)
class ResolvedDevice:
    entity_id: str
    name: str
    device: MeshDevice
    definition: Definition | None
    endpoint: MeshEndpoint
    options: dict[str, Any]
    endpoint_name: str | None = None
    kind: EntityKind = field(default=EntityKind.DEVICE, init=False)

    @property
    def converters(self) -> ConverterMap:
        if self.definition is None:
            return ConverterMap(())
        return self.definition.converter_map

    @property
    def target(self) -> MeshEndpoint:
        return self.endpoint

    def endpoint_for(self, endpoint_name: str) -> MeshEndpoint | None:
        """Endpoint declared under ``endpoint_name`` by the device's definition."""
        if self.definition is None:
            return None
        address = self.definition.endpoint_address(endpoint_name)
        if address is None:
            return None
        return self.device.get_endpoint(address)


@dataclass(slots=True)
class ResolvedGroup:
    entity_id: str
    name: str
    group: MeshGroup
    converters: ConverterMap
    options: dict[str, Any]
    kind: EntityKind = field(default=EntityKind.GROUP, init=False)

    @property
    def target(self) -> GroupTarget:
        return self.group.target

    @property
    def member_ids(self) -> list[str]:
        return self.group.member_ids


type ResolvedEntity = ResolvedDevice | ResolvedGroup


class EntityRegistry:
    """In-memory device and group registry.

    Entities are looked up by friendly name first, then by id. Removing or reconfiguring an
    entity notifies subscribers so pending work tied to it can be dropped.
    """

    lp: str = "EntityRegistry:"

    def __init__(self, definitions: DefinitionRegistry) -> None:
        self.definitions: DefinitionRegistry = definitions
        self.devices: dict[str, MeshDevice] = {}
        self.groups: dict[str, MeshGroup] = {}
        self._options: dict[str, EntityOptions] = {}
        self._listeners: list[EntityListener] = []

    @classmethod
    def from_settings(
        cls,
        settings: BridgeSettings,
        outbound: OutboundQueue,
        definitions: DefinitionRegistry | None = None,
    ) -> EntityRegistry:
        lp = f"{cls.lp}from_settings:"
        registry = cls(definitions or DefinitionRegistry.builtin())

        for device_id, device_cfg in settings.devices.items():
            endpoint_ids = list(device_cfg.endpoints)
            definition = registry.definitions.find(device_cfg.model)
            if definition is not None and definition.endpoints:
                endpoint_ids.extend(ep for ep in definition.endpoints.values() if ep not in endpoint_ids)
            device = MeshDevice(
                device_id,
                device_cfg.friendly_name,
                device_cfg.model,
                outbound,
                endpoint_ids=endpoint_ids,
            )
            registry.add_device(device, device_cfg.options())

        for group_id, group_cfg in settings.groups.items():
            members: list[MeshDevice] = []
            for member_ref in group_cfg.members:
                member = registry.find_device(member_ref)
                if member is None:
                    logger.warning(
                        "%s group '%s' references unknown device '%s', skipping member",
                        lp,
                        group_cfg.friendly_name,
                        member_ref,
                    )
                    continue
                members.append(member)
            group = MeshGroup(group_id, group_cfg.friendly_name, outbound, members=members)
            registry.add_group(group, group_cfg.options())

        logger.info("%s registered %d device(s) and %d group(s)", lp, len(registry.devices), len(registry.groups))
        return registry

    # -- listeners -----------------------------------------------------

    def subscribe(self, listener: EntityListener) -> None:
        self._listeners.append(listener)

    def _notify(self, entity_id: str, event: EntityEvent) -> None:
        for listener in self._listeners:
            listener(entity_id, event)

    # -- mutation ------------------------------------------------------

    def add_device(self, device: MeshDevice, options: EntityOptions | None = None) -> None:
        replacing = device.id in self.devices
        self.devices[device.id] = device
        self._options[device.id] = options or EntityOptions()
        if replacing:
            self._notify(device.id, EntityEvent.RECONFIGURED)

    def add_group(self, group: MeshGroup, options: EntityOptions | None = None) -> None:
        replacing = group.id in self.groups
        self.groups[group.id] = group
        self._options[group.id] = options or EntityOptions()
        if replacing:
            self._notify(group.id, EntityEvent.RECONFIGURED)

    def remove(self, entity_ref: str) -> bool:
        """Remove a device or group by friendly name or id. Returns False when unknown."""
        device = self.find_device(entity_ref)
        if device is not None:
            del self.devices[device.id]
            self._options.pop(device.id, None)
            for group in self.groups.values():
                group.remove_member(device.id)
            logger.info("%s removed device %s", self.lp, device.friendly_name)
            self._notify(device.id, EntityEvent.REMOVED)
            return True

        group = self.find_group(entity_ref)
        if group is not None:
            del self.groups[group.id]
            self._options.pop(group.id, None)
            logger.info("%s removed group %s", self.lp, group.friendly_name)
            self._notify(group.id, EntityEvent.REMOVED)
            return True
        return False

    def update_options(self, entity_ref: str, options: EntityOptions | Mapping[str, Any]) -> bool:
        entity_id = self._entity_id(entity_ref)
        if entity_id is None:
            return False
        if not isinstance(options, EntityOptions):
            merged = {**self._options.get(entity_id, EntityOptions()).as_dict(), **options}
            options = EntityOptions.model_validate(merged)
        self._options[entity_id] = options
        self._notify(entity_id, EntityEvent.RECONFIGURED)
        return True

    # -- lookup --------------------------------------------------------

    def find_device(self, entity_ref: str) -> MeshDevice | None:
        for device in self.devices.values():
            if device.friendly_name == entity_ref:
                return device
        return self.devices.get(entity_ref)

    def find_group(self, entity_ref: str) -> MeshGroup | None:
        for group in self.groups.values():
            if group.friendly_name == entity_ref:
                return group
        return self.groups.get(entity_ref)

    def _entity_id(self, entity_ref: str) -> str | None:
        device = self.find_device(entity_ref)
        if device is not None:
            return device.id
        group = self.find_group(entity_ref)
        return group.id if group is not None else None

    def options_for(self, entity_id: str) -> dict[str, Any]:
        return self._options.get(entity_id, EntityOptions()).as_dict()

    def name_for(self, entity_id: str) -> str | None:
        if entity_id in self.devices:
            return self.devices[entity_id].friendly_name
        if entity_id in self.groups:
            return self.groups[entity_id].friendly_name
        return None

    def group_converters(self, group: MeshGroup) -> ConverterMap:
        """Union of the members' converters, or the generic default set when that is empty."""
        seen: set[int] = set()
        converters: list[Converter] = []
        for member in group.members:
            definition = self.definitions.find(member.model_id)
            if definition is None:
                continue
            for converter in definition.converters:
                if id(converter) not in seen:
                    seen.add(id(converter))
                    converters.append(converter)
        if not converters:
            return ConverterMap.for_converters(DEFAULT_GROUP_CONVERTERS)
        return ConverterMap.for_converters(converters)

    def resolve(self, entity_id: str, endpoint_name: str | None = None) -> ResolvedEntity | None:
        """Resolve ``entity_id`` (friendly name or id) to a device or group.

        Returns None when nothing matches, or when ``endpoint_name`` is given and the device's
        definition does not declare it. Devices without a known definition resolve with
        ``definition=None``; the caller decides what to do with them.
        """
        device = self.find_device(entity_id)
        if device is not None:
            definition = self.definitions.find(device.model_id)
            endpoint: MeshEndpoint | None = device.default_endpoint
            if endpoint_name is not None:
                address = definition.endpoint_address(endpoint_name) if definition else None
                endpoint = device.get_endpoint(address) if address is not None else None
                if endpoint is None:
                    logger.debug("%s device '%s' has no endpoint '%s'", self.lp, device.friendly_name, endpoint_name)
                    return None
            return ResolvedDevice(
                entity_id=device.id,
                name=device.friendly_name,
                device=device,
                definition=definition,
                endpoint=endpoint,
                options=self.options_for(device.id),
                endpoint_name=endpoint_name,
            )

        group = self.find_group(entity_id)
        if group is not None and endpoint_name is None:
            return ResolvedGroup(
                entity_id=group.id,
                name=group.friendly_name,
                group=group,
                converters=self.group_converters(group),
                options=self.options_for(group.id),
            )
        return None
