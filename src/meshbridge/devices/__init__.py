"""Device and group models, definitions and the entity registry."""

from .base_device import MeshDevice
from .definitions import BUILTIN_DEFINITIONS, Definition, DefinitionRegistry
from .endpoint import FrameKind, GroupTarget, MeshEndpoint, MeshFrame
from .group import MeshGroup
from .resolver import EntityEvent, EntityRegistry, ResolvedDevice, ResolvedEntity, ResolvedGroup

__all__ = [
    "BUILTIN_DEFINITIONS",
    "Definition",
    "DefinitionRegistry",
    "EntityEvent",
    "EntityRegistry",
    "FrameKind",
    "GroupTarget",
    "MeshDevice",
    "MeshEndpoint",
    "MeshFrame",
    "MeshGroup",
    "ResolvedDevice",
    "ResolvedEntity",
    "ResolvedGroup",
]
