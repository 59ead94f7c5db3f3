"""Non-lighting converters: plain switches, covers, locks, thermostats, identify effects."""

from __future__ import annotations

from typing import Any

from meshbridge.converters.base import ConversionResult, Converter, DispatchMeta
from meshbridge.converters.helpers import clamp, lower_str, prior_value, to_number, with_fan_out
from meshbridge.structs import MeshTargetProtocol

__all__ = [
    "cover_position_tilt",
    "cover_state",
    "effect",
    "ignore_transition",
    "lock",
    "on_off",
    "thermostat_occupied_heating_setpoint",
    "tint_scene",
]

# Locks report their bolt state asynchronously and not always; re-read after this long
LOCK_READ_AFTER_WRITE: float = 0.2

IDENTIFY_EFFECTS: dict[str, int] = {
    "blink": 0,
    "breathe": 1,
    "okay": 2,
    "channel_change": 11,
    "finish_effect": 254,
    "stop_effect": 255,
}


async def _on_off_set(target: MeshTargetProtocol, key: str, value: Any, meta: DispatchMeta) -> ConversionResult | None:
    state = lower_str(value)
    if state not in ("on", "off", "toggle"):
        msg = f"Invalid state value '{value}'"
        raise ValueError(msg)
    await target.command("genOnOff", state)
    if state == "toggle":
        previous = lower_str(prior_value(meta, "state"))
        if previous is None:
            return None
        return with_fan_out(meta, {"state": "OFF" if previous == "on" else "ON"})
    return with_fan_out(meta, {"state": state.upper()})


async def _on_off_get(target: MeshTargetProtocol, key: str, meta: DispatchMeta) -> None:
    await target.read("genOnOff", ["onOff"])


on_off = Converter(name="on_off", keys=frozenset({"state"}), convert_set=_on_off_set, convert_get=_on_off_get)


_COVER_COMMANDS = {"open": "upOpen", "close": "downClose", "stop": "stop"}


async def _cover_state_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    state = lower_str(value)
    if state not in _COVER_COMMANDS:
        msg = f"Invalid cover state '{value}'"
        raise ValueError(msg)
    await target.command("closuresWindowCovering", _COVER_COMMANDS[state])
    if state == "stop":
        return None
    return with_fan_out(meta, {"state": state.upper()})


cover_state = Converter(name="cover_state", keys=frozenset({"state"}), convert_set=_cover_state_set)


async def _cover_position_tilt_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    percent = round(clamp(to_number(key, value), 0, 100))
    # the mesh counts lift/tilt as percentage closed
    device_value = percent if meta.options.get("invert_cover") else 100 - percent
    if key == "position":
        await target.command("closuresWindowCovering", "goToLiftPercentage", {"percentageliftvalue": device_value})
    else:
        await target.command("closuresWindowCovering", "goToTiltPercentage", {"percentagetiltvalue": device_value})
    return with_fan_out(meta, {key: percent})


async def _cover_position_tilt_get(target: MeshTargetProtocol, key: str, meta: DispatchMeta) -> None:
    attribute = "currentPositionLiftPercentage" if key == "position" else "currentPositionTiltPercentage"
    await target.read("closuresWindowCovering", [attribute])


cover_position_tilt = Converter(
    name="cover_position_tilt",
    keys=frozenset({"position", "tilt"}),
    convert_set=_cover_position_tilt_set,
    convert_get=_cover_position_tilt_get,
)


async def _heating_setpoint_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    celsius = to_number(key, value)
    await target.write("hvacThermostat", {"occupiedHeatingSetpoint": round(celsius * 100)})
    return with_fan_out(meta, {key: celsius})


async def _heating_setpoint_get(target: MeshTargetProtocol, key: str, meta: DispatchMeta) -> None:
    await target.read("hvacThermostat", ["occupiedHeatingSetpoint"])


thermostat_occupied_heating_setpoint = Converter(
    name="thermostat_occupied_heating_setpoint",
    keys=frozenset({"occupied_heating_setpoint"}),
    convert_set=_heating_setpoint_set,
    convert_get=_heating_setpoint_get,
)


async def _tint_scene_set(target: MeshTargetProtocol, key: str, value: Any, meta: DispatchMeta) -> ConversionResult | None:
    scene = round(to_number(key, value))
    await target.write("genBasic", {"tintSceneId": scene})
    return with_fan_out(meta, {key: scene})


tint_scene = Converter(name="tint_scene", keys=frozenset({"tint_scene"}), convert_set=_tint_scene_set)


async def _lock_set(target: MeshTargetProtocol, key: str, value: Any, meta: DispatchMeta) -> ConversionResult | None:
    state = lower_str(value)
    if state not in ("lock", "unlock"):
        msg = f"Invalid lock state '{value}'"
        raise ValueError(msg)
    await target.command("closuresDoorLock", f"{state}Door", {"pincodevalue": ""})
    return ConversionResult(state={"state": state.upper()}, read_after_write=LOCK_READ_AFTER_WRITE)


async def _lock_get(target: MeshTargetProtocol, key: str, meta: DispatchMeta) -> None:
    await target.read("closuresDoorLock", ["lockState"])


lock = Converter(name="lock", keys=frozenset({"state"}), convert_set=_lock_set, convert_get=_lock_get)


async def _effect_set(target: MeshTargetProtocol, key: str, value: Any, meta: DispatchMeta) -> ConversionResult | None:
    name = lower_str(value)
    if name not in IDENTIFY_EFFECTS:
        msg = f"Unknown effect '{value}', expected one of {sorted(IDENTIFY_EFFECTS)}"
        raise ValueError(msg)
    await target.command("genIdentify", "triggerEffect", {"effectid": IDENTIFY_EFFECTS[name], "effectvariant": 0})
    return None


effect = Converter(name="effect", keys=frozenset({"effect"}), convert_set=_effect_set)


async def _ignore_transition_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    # transition is consumed by the converter of the attribute it accompanies
    return None


ignore_transition = Converter(name="ignore_transition", keys=frozenset({"transition"}), convert_set=_ignore_transition_set)
