"""Small value helpers shared by the converter modules."""

from __future__ import annotations

from typing import Any

from meshbridge.converters.base import ConversionResult, DispatchMeta

BRIGHTNESS_MAX = 254
MIREDS_MIN = 153
MIREDS_MAX = 500


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def to_number(key: str, value: Any) -> float:
    """Coerce a payload value to a number, raising ValueError with the attribute name."""
    if isinstance(value, bool):
        msg = f"'{key}' expects a number, got {value!r}"
        raise ValueError(msg)
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        msg = f"'{key}' expects a number, got {value!r}"
        raise ValueError(msg) from e


def transition_seconds(meta: DispatchMeta) -> float | None:
    """Transition from the message, falling back to the entity's configured default."""
    raw = meta.message.get("transition", meta.options.get("transition"))
    if raw is None:
        return None
    return max(0.0, to_number("transition", raw))


def transtime(meta: DispatchMeta) -> int:
    """Transition in the tenths-of-a-second unit the mesh commands expect."""
    seconds = transition_seconds(meta)
    return round(seconds * 10) if seconds else 0


def with_fan_out(meta: DispatchMeta, state: dict[str, Any], read_after_write: float | None = None) -> ConversionResult:
    """Build a result, copying ``state`` to every group member when targeting a group."""
    members_state: dict[str, dict[str, Any]] = {}
    if meta.members_state is not None:
        members_state = {member_id: dict(state) for member_id in meta.members_state}
    return ConversionResult(state=state, members_state=members_state, read_after_write=read_after_write)


def lower_str(value: Any) -> str | None:
    return value.lower() if isinstance(value, str) else None


def prior_value(meta: DispatchMeta, key: str) -> Any:
    """Cached value of ``key`` for the endpoint being written; endpoint state is stored suffixed."""
    if meta.endpoint_name:
        return meta.state.get(f"{key}_{meta.endpoint_name}")
    return meta.state.get(key)
