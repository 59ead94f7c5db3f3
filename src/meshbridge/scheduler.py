"""Deferred confirmatory reads.

A write that does not self-report its result asks for a read after a short delay. The
read runs independently of the message that scheduled it; its handle is cancelled when
the entity is removed or reconfigured before the delay elapses.

``loop.call_later`` snapshots the current ``contextvars`` context, so the read runs under
the correlation id of the message that scheduled it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from meshbridge.correlation import get_correlation_id
from meshbridge.devices.resolver import EntityEvent
from meshbridge.logging_abstraction import get_logger

__all__ = ["ReadFactory", "ReadScheduler", "ScheduledRead"]

logger = get_logger(__name__)

type ReadFactory = Callable[[], Awaitable[None]]


class ScheduledRead:
    """Cancellable handle for one deferred read."""

    def __init__(self, entity_id: str, description: str, delay: float) -> None:
        self.entity_id: str = entity_id
        self.description: str = description
        self.delay: float = delay
        self.correlation_id: str | None = get_correlation_id()
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._cancelled: bool = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def started(self) -> bool:
        return self._task is not None

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "started" if self.started else "pending"
        return f"<ScheduledRead {self.entity_id} {self.description} +{self.delay}s {state}>"


class ReadScheduler:
    lp: str = "ReadScheduler:"

    def __init__(self) -> None:
        self._pending: dict[str, set[ScheduledRead]] = {}

    def schedule(self, entity_id: str, delay: float, read: ReadFactory, description: str = "") -> ScheduledRead:
        """Run ``read()`` after ``delay`` seconds unless the handle is cancelled first."""
        handle = ScheduledRead(entity_id, description, delay)
        loop = asyncio.get_running_loop()
        handle._timer = loop.call_later(max(0.0, delay), self._start, handle, read)
        self._pending.setdefault(entity_id, set()).add(handle)
        logger.debug("%s scheduled %r", self.lp, handle)
        return handle

    def _start(self, handle: ScheduledRead, read: ReadFactory) -> None:
        if handle.cancelled:
            self._discard(handle)
            return
        handle._task = asyncio.get_running_loop().create_task(self._run(handle, read))

    async def _run(self, handle: ScheduledRead, read: ReadFactory) -> None:
        lp = f"{self.lp}run:"
        try:
            logger.debug("%s firing %r", lp, handle)
            await read()
        except asyncio.CancelledError:
            logger.debug("%s cancelled %r", lp, handle)
            raise
        except Exception:
            logger.exception("%s confirmatory read %s for '%s' failed", lp, handle.description, handle.entity_id)
        finally:
            self._discard(handle)

    def _discard(self, handle: ScheduledRead) -> None:
        pending = self._pending.get(handle.entity_id)
        if pending is None:
            return
        pending.discard(handle)
        if not pending:
            del self._pending[handle.entity_id]

    def pending(self, entity_id: str) -> list[ScheduledRead]:
        return list(self._pending.get(entity_id, ()))

    def cancel_entity(self, entity_id: str) -> int:
        """Cancel every read pending for ``entity_id``; returns how many were cancelled."""
        handles = self._pending.pop(entity_id, set())
        for handle in handles:
            handle.cancel()
        if handles:
            logger.info("%s cancelled %d pending read(s) for '%s'", self.lp, len(handles), entity_id)
        return len(handles)

    def on_entity_event(self, entity_id: str, event: EntityEvent) -> None:
        """Registry listener: pending reads die with the entity's removal or reconfiguration."""
        logger.debug("%s entity '%s' %s", self.lp, entity_id, event)
        self.cancel_entity(entity_id)

    def cancel_all(self) -> None:
        for entity_id in list(self._pending):
            self.cancel_entity(entity_id)
