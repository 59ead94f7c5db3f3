"""Lighting converters: on/off with brightness, colour, colour temperature and the
move/step families used by dimmer remotes."""

from __future__ import annotations

import math
from typing import Any

from meshbridge.converters.base import ConversionResult, Converter, DispatchMeta
from meshbridge.converters.helpers import (
    BRIGHTNESS_MAX,
    MIREDS_MAX,
    MIREDS_MIN,
    clamp,
    lower_str,
    prior_value,
    to_number,
    transition_seconds,
    transtime,
    with_fan_out,
)
from meshbridge.structs import MeshTargetProtocol

__all__ = [
    "light_brightness_move",
    "light_brightness_step",
    "light_color_colortemp",
    "light_colortemp_move",
    "light_colortemp_step",
    "light_hue_saturation_move",
    "light_hue_saturation_step",
    "light_onoff_brightness",
]


def _target_brightness(message: dict[str, Any]) -> int | None:
    if "brightness" in message:
        return round(clamp(to_number("brightness", message["brightness"]), 0, BRIGHTNESS_MAX))
    if "brightness_percent" in message:
        percent = clamp(to_number("brightness_percent", message["brightness_percent"]), 0, 100)
        return round(percent * BRIGHTNESS_MAX / 100)
    return None


def _toggled(meta: DispatchMeta) -> str | None:
    previous = lower_str(prior_value(meta, "state"))
    if previous is None:
        return None
    return "OFF" if previous == "on" else "ON"


async def _onoff_brightness_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    # state and brightness travel together: one call covers both keys of the message
    state = lower_str(meta.message.get("state"))
    brightness = _target_brightness(meta.message)
    seconds = transition_seconds(meta)

    if "state" in meta.message and state not in ("on", "off", "toggle"):
        msg = f"Invalid state value '{meta.message.get('state')}'"
        raise ValueError(msg)

    if state == "toggle":
        await target.command("genOnOff", "toggle")
        toggled = _toggled(meta)
        return with_fan_out(meta, {"state": toggled} if toggled else {})

    if state == "off" or brightness == 0:
        if seconds:
            await target.command("genLevelCtrl", "moveToLevelWithOnOff", {"level": 0, "transtime": transtime(meta)})
        else:
            await target.command("genOnOff", "off")
        return with_fan_out(meta, {"state": "OFF"}, seconds)

    if brightness is not None:
        await target.command(
            "genLevelCtrl",
            "moveToLevelWithOnOff",
            {"level": brightness, "transtime": transtime(meta)},
        )
        return with_fan_out(meta, {"state": "ON", "brightness": brightness}, seconds)

    await target.command("genOnOff", "on")
    return with_fan_out(meta, {"state": "ON"}, seconds)


async def _onoff_brightness_get(target: MeshTargetProtocol, key: str, meta: DispatchMeta) -> None:
    if key == "state":
        await target.read("genOnOff", ["onOff"])
    else:
        await target.read("genLevelCtrl", ["currentLevel"])


light_onoff_brightness = Converter(
    name="light_onoff_brightness",
    keys=frozenset({"state", "brightness", "brightness_percent"}),
    convert_set=_onoff_brightness_set,
    convert_get=_onoff_brightness_get,
)


def _rgb_to_xy(red: float, green: float, blue: float) -> tuple[float, float]:
    """sRGB (0-255) to CIE 1931 xy, using the wide-gamut D65 matrix."""

    def linear(channel: float) -> float:
        c = channel / 255
        return ((c + 0.055) / 1.055) ** 2.4 if c > 0.04045 else c / 12.92

    r, g, b = linear(red), linear(green), linear(blue)
    x = r * 0.664511 + g * 0.154324 + b * 0.162028
    y = r * 0.283881 + g * 0.668433 + b * 0.047685
    z = r * 0.000088 + g * 0.072310 + b * 0.986039
    total = x + y + z
    if total == 0:
        return 0.0, 0.0
    return round(x / total, 4), round(y / total, 4)


def _hex_to_rgb(value: str) -> tuple[int, int, int]:
    digits = value.lstrip("#")
    if len(digits) != 6:
        msg = f"Invalid hex color '{value}'"
        raise ValueError(msg)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def _color_to_xy(color: Any) -> tuple[float, float] | None:
    if isinstance(color, str):
        return _rgb_to_xy(*_hex_to_rgb(color))
    if not isinstance(color, dict):
        msg = f"Invalid color value '{color}'"
        raise ValueError(msg)
    if "x" in color and "y" in color:
        return to_number("x", color["x"]), to_number("y", color["y"])
    if "hex" in color:
        return _rgb_to_xy(*_hex_to_rgb(str(color["hex"])))
    if {"r", "g", "b"} <= color.keys():
        return _rgb_to_xy(to_number("r", color["r"]), to_number("g", color["g"]), to_number("b", color["b"]))
    return None


async def _color_colortemp_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    seconds = transition_seconds(meta)

    if key in ("color_temp", "color_temp_percent"):
        if key == "color_temp_percent":
            percent = clamp(to_number(key, value), 0, 100)
            mireds = round(MIREDS_MIN + (MIREDS_MAX - MIREDS_MIN) * percent / 100)
        else:
            mireds = round(clamp(to_number(key, value), MIREDS_MIN, MIREDS_MAX))
        await target.command("lightingColorCtrl", "moveToColorTemp", {"colortemp": mireds, "transtime": transtime(meta)})
        return with_fan_out(meta, {"color_temp": mireds, "color_mode": "color_temp"}, seconds)

    xy = _color_to_xy(value)
    if xy is not None:
        payload = {"colorx": round(xy[0] * 65535), "colory": round(xy[1] * 65535), "transtime": transtime(meta)}
        await target.command("lightingColorCtrl", "moveToColor", payload)
        return with_fan_out(meta, {"color": {"x": xy[0], "y": xy[1]}, "color_mode": "xy"}, seconds)

    if isinstance(value, dict) and "hue" in value and "saturation" in value:
        hue = to_number("hue", value["hue"]) % 360
        saturation = clamp(to_number("saturation", value["saturation"]), 0, 100)
        payload = {
            "hue": round(hue * BRIGHTNESS_MAX / 360),
            "saturation": round(saturation * BRIGHTNESS_MAX / 100),
            "transtime": transtime(meta),
        }
        await target.command("lightingColorCtrl", "moveToHueAndSaturation", payload)
        return with_fan_out(meta, {"color": {"hue": hue, "saturation": saturation}, "color_mode": "hs"}, seconds)

    msg = f"Unsupported color value '{value}'"
    raise ValueError(msg)


async def _color_colortemp_get(target: MeshTargetProtocol, key: str, meta: DispatchMeta) -> None:
    if key == "color":
        await target.read("lightingColorCtrl", ["currentX", "currentY"])
    else:
        await target.read("lightingColorCtrl", ["colorTemperature"])


light_color_colortemp = Converter(
    name="light_color_colortemp",
    keys=frozenset({"color", "color_temp", "color_temp_percent"}),
    convert_set=_color_colortemp_set,
    convert_get=_color_colortemp_get,
)


def _direction(key: str, value: Any, up: int, down: int) -> tuple[int, int]:
    """Split a signed rate/step into (mode, magnitude); ``stop`` and 0 yield magnitude 0."""
    if lower_str(value) == "stop":
        return up, 0
    number = to_number(key, value)
    return (up if number >= 0 else down), abs(round(number))


async def _brightness_move_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    mode, rate = _direction(key, value, 0, 1)
    if rate == 0:
        await target.command("genLevelCtrl", "stop")
        return None
    command = "moveWithOnOff" if key == "brightness_move_onoff" else "move"
    await target.command("genLevelCtrl", command, {"movemode": mode, "rate": rate})
    return None


light_brightness_move = Converter(
    name="light_brightness_move",
    keys=frozenset({"brightness_move", "brightness_move_onoff"}),
    convert_set=_brightness_move_set,
)


async def _brightness_step_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    step = round(to_number(key, value))
    with_onoff = key == "brightness_step_onoff"
    command = "stepWithOnOff" if with_onoff else "step"
    await target.command(
        "genLevelCtrl",
        command,
        {"stepmode": 0 if step >= 0 else 1, "stepsize": abs(step), "transtime": transtime(meta)},
    )

    previous = prior_value(meta, "brightness")
    if not isinstance(previous, (int, float)):
        return None
    brightness = round(clamp(previous + step, 0, BRIGHTNESS_MAX))
    if with_onoff:
        return with_fan_out(meta, {"brightness": brightness, "state": "ON" if brightness > 0 else "OFF"})
    return with_fan_out(meta, {"brightness": max(brightness, 1)})


light_brightness_step = Converter(
    name="light_brightness_step",
    keys=frozenset({"brightness_step", "brightness_step_onoff"}),
    convert_set=_brightness_step_set,
)


async def _colortemp_step_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    step = round(to_number(key, value))
    await target.command(
        "lightingColorCtrl",
        "stepColorTemp",
        {
            "stepmode": 1 if step >= 0 else 3,
            "stepsize": abs(step),
            "transtime": transtime(meta),
            "minimum": MIREDS_MIN,
            "maximum": MIREDS_MAX,
        },
    )
    previous = prior_value(meta, "color_temp")
    if not isinstance(previous, (int, float)):
        return None
    return with_fan_out(meta, {"color_temp": round(clamp(previous + step, MIREDS_MIN, MIREDS_MAX))})


light_colortemp_step = Converter(
    name="light_colortemp_step",
    keys=frozenset({"color_temp_step"}),
    convert_set=_colortemp_step_set,
)


async def _colortemp_move_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    mode, rate = _direction(key, value, 1, 3)
    await target.command(
        "lightingColorCtrl",
        "moveColorTemp",
        {"movemode": mode if rate else 0, "rate": rate, "minimum": MIREDS_MIN, "maximum": MIREDS_MAX},
    )
    return None


light_colortemp_move = Converter(
    name="light_colortemp_move",
    keys=frozenset({"colortemp_move", "color_temp_move"}),
    convert_set=_colortemp_move_set,
)


async def _hue_saturation_move_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    mode, rate = _direction(key, value, 1, 3)
    command = "moveHue" if key == "hue_move" else "moveSaturation"
    await target.command("lightingColorCtrl", command, {"movemode": mode if rate else 0, "rate": rate})
    return None


light_hue_saturation_move = Converter(
    name="light_hue_saturation_move",
    keys=frozenset({"hue_move", "saturation_move"}),
    convert_set=_hue_saturation_move_set,
)


async def _hue_saturation_step_set(
    target: MeshTargetProtocol,
    key: str,
    value: Any,
    meta: DispatchMeta,
) -> ConversionResult | None:
    mode, size = _direction(key, value, 1, 3)
    command = "stepHue" if key == "hue_step" else "stepSaturation"
    await target.command(
        "lightingColorCtrl",
        command,
        {"stepmode": mode, "stepsize": size, "transtime": transtime(meta)},
    )
    if key != "hue_step":
        return None
    color = prior_value(meta, "color")
    if not isinstance(color, dict) or not isinstance(color.get("hue"), (int, float)):
        return None
    signed = size if mode == 1 else -size
    hue = math.fmod(color["hue"] + signed, 360) % 360
    return with_fan_out(meta, {"color": {**color, "hue": hue}})


light_hue_saturation_step = Converter(
    name="light_hue_saturation_step",
    keys=frozenset({"hue_step", "saturation_step"}),
    convert_set=_hue_saturation_step_set,
)
