"""Mesh group model."""

from __future__ import annotations

from meshbridge.devices.base_device import MeshDevice
from meshbridge.devices.endpoint import GroupTarget, OutboundQueue


class MeshGroup:
    """A configured group; commands go out as a single group-cast frame."""

    lp: str = "MeshGroup:"

    def __init__(
        self,
        group_id: str,
        friendly_name: str,
        outbound: OutboundQueue,
        members: list[MeshDevice] | None = None,
    ) -> None:
        if not group_id:
            msg = "Group ID must be provided"
            raise ValueError(msg)
        self.id: str = group_id
        self.friendly_name: str = friendly_name or f"group_{group_id}"
        self.members: list[MeshDevice] = list(members or [])
        self.target: GroupTarget = GroupTarget(group_id, outbound)
        self.lp = f"MeshGroup:{self.friendly_name}({group_id}):"

    @property
    def member_ids(self) -> list[str]:
        return [member.id for member in self.members]

    def add_member(self, device: MeshDevice) -> None:
        if device.id not in self.member_ids:
            self.members.append(device)

    def remove_member(self, device_id: str) -> bool:
        before = len(self.members)
        self.members = [m for m in self.members if m.id != device_id]
        return len(self.members) != before

    def __repr__(self) -> str:
        return f"<MeshGroup {self.friendly_name} id={self.id} members={self.member_ids}>"
