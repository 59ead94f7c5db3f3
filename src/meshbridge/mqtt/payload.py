"""Payload decoding and the attribute ordering applied before dispatch."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from meshbridge.const import POWER_ATTRIBUTES, STATE_WORDS
from meshbridge.exceptions import InvalidPayloadError
from meshbridge.structs import CommandDescriptor

__all__ = ["decode_payload", "drop_redundant_state", "order_attributes"]

_COLOR_ATTRIBUTES = ("color", "color_temp")


def _as_text(payload: str | bytes | bytearray) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return bytes(payload).decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidPayloadError(repr(payload)) from e


def decode_payload(descriptor: CommandDescriptor, payload: str | bytes | bytearray) -> dict[str, Any]:
    """Turn a raw payload into a flat ``attribute -> value`` map.

    With an attribute in the topic the payload is that attribute's value: parsed JSON when it
    parses, the raw string otherwise. Without one it must be a JSON object or a bare state
    word (``ON``, ``toggle``...), which becomes ``{"state": <word>}`` with its case kept.

    Raises:
        InvalidPayloadError: payload is neither a JSON object nor a bare state word

    """
    text = _as_text(payload)

    if descriptor.attribute is not None:
        try:
            value = json.loads(text)
        except ValueError:
            value = text
        return {descriptor.attribute: value}

    try:
        decoded = json.loads(text)
    except ValueError:
        decoded = text

    if isinstance(decoded, dict):
        return decoded
    if isinstance(decoded, str) and decoded.strip().lower() in STATE_WORDS:
        return {"state": decoded.strip()}
    raise InvalidPayloadError(text)


def drop_redundant_state(message: dict[str, Any], prior_state: Mapping[str, Any]) -> dict[str, Any]:
    """Drop ``state`` from a colour change sent to a light that is already on.

    Home Assistant sends ``{"state": "ON", "color_temp": ...}`` for every colour change;
    writing ``state`` again costs an extra round trip on the mesh.
    """
    previous = prior_state.get("state")
    is_on = isinstance(previous, str) and previous.lower() == "on"
    sets_color = any(key in message for key in _COLOR_ATTRIBUTES)
    if is_on and sets_color and "brightness" not in message and "state" in message:
        return {key: value for key, value in message.items() if key != "state"}
    return message


def order_attributes(message: Mapping[str, Any]) -> list[tuple[str, Any]]:
    """Order attributes so power and colour writes reach the device in a workable sequence.

    Turning off: colour attributes first, then ``state``/``brightness``, since most bulbs
    ignore colour writes once off. Otherwise power attributes first so the bulb is on before
    it is recoloured. Order within each group is preserved.
    """
    state = message.get("state")
    sorter = 1 if isinstance(state, str) and state.lower() == "off" else -1
    return sorted(message.items(), key=lambda item: sorter if item[0] in POWER_ATTRIBUTES else -sorter)
