"""Converter model shared by every capability handler.

A converter translates one or more named attributes (``state``, ``brightness``...) into
mesh write/command/read operations. Converters are stateless module-level objects and
are compared by identity, which is what single-use tracking in the dispatcher relies on.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from meshbridge.structs import MeshTargetProtocol

__all__ = [
    "ConversionResult",
    "Converter",
    "ConverterMap",
    "DispatchMeta",
    "GetFn",
    "SetFn",
]


@dataclass(slots=True)
class ConversionResult:
    """What a write predicts about the entity once the mesh has applied it.

    Attributes:
        state: Flat optimistic state delta for the addressed entity
        members_state: Per-member deltas for group fan-out, keyed by member id
        read_after_write: Seconds to wait before re-reading, for writes that do not self-report

    """

    state: dict[str, Any] = field(default_factory=dict)
    members_state: dict[str, dict[str, Any]] = field(default_factory=dict)
    read_after_write: float | None = None


@dataclass(slots=True)
class DispatchMeta:
    """Per-attribute context handed to a converter. Built fresh for every attribute."""

    endpoint_name: str | None
    options: dict[str, Any]
    # Copy of the decoded message with endpoint-suffixed keys rewritten to their bare form
    message: dict[str, Any]
    state: dict[str, Any]
    members_state: dict[str, dict[str, Any]] | None = None
    device: Any = None
    mapped: Any = None


SetFn = Callable[["MeshTargetProtocol", str, Any, DispatchMeta], Awaitable[ConversionResult | None]]
GetFn = Callable[["MeshTargetProtocol", str, DispatchMeta], Awaitable[None]]


@dataclass(frozen=True, eq=False)
class Converter:
    name: str
    keys: frozenset[str]
    convert_set: SetFn | None = None
    convert_get: GetFn | None = None

    def __repr__(self) -> str:
        return f"<Converter {self.name} keys={sorted(self.keys)}>"


class ConverterMap:
    """Attribute name -> converter lookup, precomputed once per capability set.

    When several converters declare the same key the first one in declaration order
    wins, so definitions list their preferred converter first.
    """

    _cache: dict[tuple[int, ...], ConverterMap] = {}

    def __init__(self, converters: Iterable[Converter]) -> None:
        self.converters: tuple[Converter, ...] = tuple(converters)
        self._by_key: dict[str, Converter] = {}
        for converter in self.converters:
            for key in converter.keys:
                self._by_key.setdefault(key, converter)

    @classmethod
    def for_converters(cls, converters: Iterable[Converter]) -> ConverterMap:
        converters = tuple(converters)
        cache_key = tuple(id(c) for c in converters)
        cached = cls._cache.get(cache_key)
        if cached is None or cached.converters != converters:
            cached = cls(converters)
            cls._cache[cache_key] = cached
        return cached

    def find(self, key: str) -> Converter | None:
        return self._by_key.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __len__(self) -> int:
        return len(self.converters)

    @property
    def keys(self) -> Mapping[str, Converter]:
        return self._by_key
