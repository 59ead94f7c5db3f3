"""Core data structures and typing protocols for the mesh bridge."""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from meshbridge.devices.resolver import ResolvedEntity


class Action(StrEnum):
    GET = "get"
    SET = "set"


class EntityKind(StrEnum):
    DEVICE = "device"
    GROUP = "group"


@dataclass(frozen=True, slots=True)
class CommandDescriptor:
    """Decoded form of ``<base>/<entity_id>[/<endpoint_name>]/<get|set>[/<attribute>]``."""

    entity_id: str
    action: Action
    endpoint_name: str | None = None
    attribute: str | None = None

    @property
    def entity_key(self) -> str:
        """Entity id with the endpoint segment re-attached, as used in log lines."""
        if self.endpoint_name:
            return f"{self.entity_id}/{self.endpoint_name}"
        return self.entity_id


class MeshTargetProtocol(Protocol):
    """A device endpoint or a group that converters talk to.

    Implementations perform network I/O and may suspend; they raise on failure.
    """

    @property
    def address(self) -> str:
        """Stable identifier used for single-use converter tracking."""
        ...

    async def command(
        self,
        cluster: str,
        command: str,
        payload: Mapping[str, Any] | None = None,
    ) -> None:
        """Send a cluster command (e.g. genOnOff/on)."""
        ...

    async def write(self, cluster: str, attributes: Mapping[str, Any]) -> None:
        """Write cluster attributes."""
        ...

    async def read(self, cluster: str, attributes: list[str]) -> None:
        """Request a read; the answer arrives later through the device's reporting channel."""
        ...


class StateStoreProtocol(Protocol):
    """Cached prior state per entity id."""

    def get(self, entity_id: str) -> dict[str, Any]:
        """Return a copy of the cached state (empty when unknown)."""
        ...

    def hold(self, *entity_ids: str) -> AbstractAsyncContextManager[None]:
        """Hold the entity locks across a read-modify-write of their state."""
        ...

    async def merge(self, entity_id: str, delta: Mapping[str, Any]) -> dict[str, Any]:
        """Merge ``delta`` into the cached state under the entity lock; return the new state."""
        ...


class PublisherProtocol(Protocol):
    """Outbound state publication keyed by entity id."""

    async def publish_entity_state(self, entity_id: str, payload: Mapping[str, Any]) -> bool:
        """Publish a flat state map for one entity."""
        ...

    async def publish_bridge_log(self, record: Mapping[str, Any]) -> bool:
        """Publish a structured record on the legacy diagnostic topic."""
        ...


class MQTTClientProtocol(Protocol):
    """The slice of the MQTT client used by the publishing helpers."""

    lp: str

    @property
    def is_connected(self) -> bool: ...

    async def publish(self, topic: str, msg_data: bytes) -> bool: ...

    async def publish_json_msg(self, topic: str, msg_data: Mapping[str, Any]) -> bool: ...


class ResolverProtocol(Protocol):
    """Maps an entity id (and optional endpoint name) to a device or group."""

    def resolve(self, entity_id: str, endpoint_name: str | None = None) -> ResolvedEntity | None:
        ...

    def name_for(self, entity_id: str) -> str | None:
        """Friendly name for an entity or member id, if known."""
        ...
