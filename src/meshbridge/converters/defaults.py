"""Capability set used for groups whose members contribute no converters of their own.

Groups are often empty or mix device types; these generic lighting, cover, thermostat
and scene handlers keep the common operations reachable.
"""

from __future__ import annotations

from meshbridge.converters.base import Converter
from meshbridge.converters.general import (
    cover_position_tilt,
    effect,
    ignore_transition,
    thermostat_occupied_heating_setpoint,
    tint_scene,
)
from meshbridge.converters.lighting import (
    light_brightness_move,
    light_brightness_step,
    light_color_colortemp,
    light_colortemp_move,
    light_colortemp_step,
    light_hue_saturation_move,
    light_hue_saturation_step,
    light_onoff_brightness,
)

DEFAULT_GROUP_CONVERTERS: tuple[Converter, ...] = (
    light_onoff_brightness,
    light_color_colortemp,
    effect,
    ignore_transition,
    cover_position_tilt,
    thermostat_occupied_heating_setpoint,
    tint_scene,
    light_brightness_move,
    light_brightness_step,
    light_colortemp_step,
    light_colortemp_move,
    light_hue_saturation_move,
    light_hue_saturation_step,
)
