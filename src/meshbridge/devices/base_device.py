"""Mesh device model."""

from __future__ import annotations

from meshbridge.devices.endpoint import MeshEndpoint, OutboundQueue


class MeshDevice:
    """A device on the mesh, addressed by its network id and one or more endpoints."""

    lp: str = "MeshDevice:"

    def __init__(
        self,
        device_id: str,
        friendly_name: str,
        model_id: str | None,
        outbound: OutboundQueue,
        endpoint_ids: list[int] | None = None,
    ) -> None:
        if not device_id:
            msg = "Device ID must be provided"
            raise ValueError(msg)
        self.id: str = device_id
        self.friendly_name: str = friendly_name or device_id
        self.model_id: str | None = model_id
        self.endpoints: dict[int, MeshEndpoint] = {
            ep_id: MeshEndpoint(device_id, ep_id, outbound) for ep_id in (endpoint_ids or [1])
        }
        self.lp = f"MeshDevice:{self.friendly_name}({device_id}):"

    @property
    def default_endpoint(self) -> MeshEndpoint:
        return next(iter(self.endpoints.values()))

    def get_endpoint(self, endpoint_id: int | None = None) -> MeshEndpoint | None:
        """Endpoint by address, or the first declared endpoint when ``endpoint_id`` is None."""
        if endpoint_id is None:
            return self.default_endpoint
        return self.endpoints.get(endpoint_id)

    def __repr__(self) -> str:
        return f"<MeshDevice {self.friendly_name} id={self.id} model={self.model_id}>"
