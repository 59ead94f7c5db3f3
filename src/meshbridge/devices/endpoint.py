"""Protocol layer handles that converters write to.

Neither class talks to the radio itself: each operation becomes a ``MeshFrame`` on the
shared outbound queue, which the mesh transport drains. A bounded queue makes a busy
transport push back on the dispatcher instead of buffering without limit.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, override

from meshbridge.logging_abstraction import get_logger

__all__ = ["FrameKind", "GroupTarget", "MeshEndpoint", "MeshFrame", "OutboundQueue"]

logger = get_logger(__name__)


class FrameKind(StrEnum):
    COMMAND = "command"
    WRITE = "write"
    READ = "read"


@dataclass(frozen=True, slots=True)
class MeshFrame:
    kind: FrameKind
    destination: str
    cluster: str
    payload: dict[str, Any] = field(default_factory=dict)
    command: str | None = None
    is_group: bool = False


type OutboundQueue = asyncio.Queue[MeshFrame]


class _FrameTarget:
    lp: str = "FrameTarget:"

    def __init__(self, outbound: OutboundQueue) -> None:
        self._outbound: OutboundQueue = outbound

    @property
    def address(self) -> str:
        raise NotImplementedError

    @property
    def is_group(self) -> bool:
        return False

    async def _send(self, frame: MeshFrame) -> None:
        logger.debug("%s queueing %s %s %s %s", self.lp, frame.kind, frame.cluster, frame.command or "", frame.payload)
        await self._outbound.put(frame)

    async def command(self, cluster: str, command: str, payload: Mapping[str, Any] | None = None) -> None:
        await self._send(
            MeshFrame(
                kind=FrameKind.COMMAND,
                destination=self.address,
                cluster=cluster,
                command=command,
                payload=dict(payload or {}),
                is_group=self.is_group,
            ),
        )

    async def write(self, cluster: str, attributes: Mapping[str, Any]) -> None:
        await self._send(
            MeshFrame(
                kind=FrameKind.WRITE,
                destination=self.address,
                cluster=cluster,
                payload=dict(attributes),
                is_group=self.is_group,
            ),
        )

    async def read(self, cluster: str, attributes: list[str]) -> None:
        await self._send(
            MeshFrame(
                kind=FrameKind.READ,
                destination=self.address,
                cluster=cluster,
                payload={"attributes": list(attributes)},
                is_group=self.is_group,
            ),
        )


class MeshEndpoint(_FrameTarget):
    """One addressable endpoint of a device (e.g. one gang of a two-gang switch)."""

    def __init__(self, device_id: str, endpoint_id: int, outbound: OutboundQueue) -> None:
        super().__init__(outbound)
        self.device_id: str = device_id
        self.endpoint_id: int = endpoint_id
        self.lp = f"MeshEndpoint:{self.address}:"

    @property
    @override
    def address(self) -> str:
        return f"{self.device_id}/{self.endpoint_id}"

    @override
    def __repr__(self) -> str:
        return f"<MeshEndpoint {self.address}>"


class GroupTarget(_FrameTarget):
    """Group-cast destination: one frame reaches every member."""

    def __init__(self, group_id: str, outbound: OutboundQueue) -> None:
        super().__init__(outbound)
        self.group_id: str = group_id
        self.lp = f"GroupTarget:{group_id}:"

    @property
    @override
    def address(self) -> str:
        return f"group:{self.group_id}"

    @property
    @override
    def is_group(self) -> bool:
        return True

    @override
    def __repr__(self) -> str:
        return f"<GroupTarget {self.group_id}>"
