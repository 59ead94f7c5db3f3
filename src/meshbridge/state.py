"""Cached prior state per entity.

Several inbound messages may target the same entity at once. A message holds the locks of
every entity it touches (``hold``) from the moment it reads prior state until its optimistic
deltas are merged, so a second message always computes from the first one's result.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from meshbridge.logging_abstraction import get_logger

__all__ = ["StateStore"]

logger = get_logger(__name__)


class StateStore:
    lp: str = "StateStore:"

    def __init__(self) -> None:
        self._state: dict[str, dict[str, Any]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # entity id -> task currently inside hold() for it
        self._holders: dict[str, asyncio.Task[Any] | None] = {}

    def lock_for(self, entity_id: str) -> asyncio.Lock:
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = self._locks[entity_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, *entity_ids: str) -> AsyncIterator[None]:
        """Serialise read-modify-write on ``entity_ids``.

        Locks are taken in sorted id order, so a group message and a message to one of its
        members can never wait on each other in a cycle. ``merge`` calls made by the holding
        task inside the block do not re-acquire.
        """
        task = asyncio.current_task()
        acquired: list[tuple[str, asyncio.Lock]] = []
        try:
            for entity_id in sorted(set(entity_ids)):
                lock = self.lock_for(entity_id)
                await lock.acquire()
                acquired.append((entity_id, lock))
                self._holders[entity_id] = task
            yield
        finally:
            for entity_id, lock in reversed(acquired):
                if self._holders.get(entity_id) is task:
                    del self._holders[entity_id]
                lock.release()

    def get(self, entity_id: str) -> dict[str, Any]:
        """Copy of the cached state; converters may not mutate the cache through it."""
        return copy.deepcopy(self._state.get(entity_id, {}))

    async def merge(self, entity_id: str, delta: Mapping[str, Any]) -> dict[str, Any]:
        if entity_id in self._holders and self._holders[entity_id] is asyncio.current_task():
            return self._merge(entity_id, delta)
        async with self.lock_for(entity_id):
            return self._merge(entity_id, delta)

    def _merge(self, entity_id: str, delta: Mapping[str, Any]) -> dict[str, Any]:
        current = self._state.setdefault(entity_id, {})
        current.update(delta)
        logger.debug("%s %s <- %s", self.lp, entity_id, dict(delta))
        return dict(current)

    def forget(self, entity_id: str) -> None:
        """Drop cached state, e.g. after the entity was removed from the registry."""
        self._state.pop(entity_id, None)
        if entity_id not in self._holders:
            self._locks.pop(entity_id, None)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._state
