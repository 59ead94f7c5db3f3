"""Optimistic state accumulation and publication.

A ``PublishBuffer`` collects the predicted deltas of one message, per entity or group
member, and is flushed once after the whole message was dispatched. ``StateUpdateHelper``
is what the flush talks to: it records the delta in the state store and publishes it to
``<base_topic>/<friendly_name>``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from meshbridge.const import BRIDGE_LOG_SUFFIX
from meshbridge.logging_abstraction import get_logger
from meshbridge.structs import MQTTClientProtocol, PublisherProtocol, ResolverProtocol, StateStoreProtocol

__all__ = ["PublishBuffer", "StateUpdateHelper"]

logger = get_logger(__name__)


class PublishBuffer:
    """Identifier -> accumulated flat state, flushed exactly once."""

    lp: str = "PublishBuffer:"

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, Any]] = {}
        self._flushed: bool = False

    @property
    def flushed(self) -> bool:
        return self._flushed

    def add(self, identifier: str, delta: Mapping[str, Any]) -> None:
        if self._flushed:
            msg = f"PublishBuffer already flushed, refusing update for '{identifier}'"
            raise RuntimeError(msg)
        if not delta:
            return
        self._entries.setdefault(identifier, {}).update(delta)

    def get(self, identifier: str) -> dict[str, Any]:
        return dict(self._entries.get(identifier, {}))

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def flush(self, publisher: PublisherProtocol) -> dict[str, dict[str, Any]]:
        """Publish every non-empty entry once; returns what was handed to the publisher."""
        if self._flushed:
            msg = "PublishBuffer flushed twice"
            raise RuntimeError(msg)
        self._flushed = True
        published: dict[str, dict[str, Any]] = {}
        for identifier, payload in self._entries.items():
            if not payload:
                continue
            await publisher.publish_entity_state(identifier, payload)
            published[identifier] = dict(payload)
        logger.debug("%s flushed %d entr(y/ies)", self.lp, len(published))
        return published


class StateUpdateHelper:
    """Publisher backed by the MQTT client and the state store."""

    def __init__(
        self,
        mqtt_client: MQTTClientProtocol,
        state_store: StateStoreProtocol,
        resolver: ResolverProtocol,
        base_topic: str,
    ) -> None:
        """Initialize the state update helper.

        Args:
            mqtt_client: client used for the actual publish calls
            state_store: cache the published deltas are merged into
            resolver: maps entity ids to the friendly names used in state topics
            base_topic: root of every published topic

        """
        self.client: MQTTClientProtocol = mqtt_client
        self.state_store: StateStoreProtocol = state_store
        self.resolver: ResolverProtocol = resolver
        self.base_topic: str = base_topic

    def state_topic(self, entity_id: str) -> str:
        return f"{self.base_topic}/{self.resolver.name_for(entity_id) or entity_id}"

    async def publish_entity_state(self, entity_id: str, payload: Mapping[str, Any]) -> bool:
        """Merge ``payload`` into the cached state and publish it (the delta only)."""
        lp = f"{self.client.lp}publish_entity_state:"
        _ = await self.state_store.merge(entity_id, payload)
        topic = self.state_topic(entity_id)
        logger.debug("%s %s -> %s", lp, topic, dict(payload))
        published = await self.client.publish_json_msg(topic, dict(payload))
        if not published:
            logger.warning("%s publishing state to %s failed", lp, topic)
        return published

    async def publish_bridge_log(self, record: Mapping[str, Any]) -> bool:
        lp = f"{self.client.lp}publish_bridge_log:"
        topic = f"{self.base_topic}/{BRIDGE_LOG_SUFFIX}"
        logger.debug("%s %s -> %s", lp, topic, dict(record))
        return await self.client.publish_json_msg(topic, dict(record))
