"""Device definitions: which converters a model supports and how its endpoints are named."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import cached_property

from meshbridge.converters.base import Converter, ConverterMap
from meshbridge.converters.general import (
    cover_position_tilt,
    cover_state,
    effect,
    ignore_transition,
    lock,
    on_off,
    thermostat_occupied_heating_setpoint,
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
from meshbridge.logging_abstraction import get_logger

__all__ = ["BUILTIN_DEFINITIONS", "Definition", "DefinitionRegistry"]

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class Definition:
    model: str
    vendor: str
    description: str
    converters: tuple[Converter, ...]
    # endpoint name -> endpoint address; None for single-endpoint devices
    endpoints: Mapping[str, int] | None = field(default=None)

    @cached_property
    def converter_map(self) -> ConverterMap:
        return ConverterMap.for_converters(self.converters)

    def endpoint_address(self, endpoint_name: str) -> int | None:
        if not self.endpoints:
            return None
        return self.endpoints.get(endpoint_name)

    def __repr__(self) -> str:
        return f"<Definition {self.vendor} {self.model}>"


_LIGHT_MOVES: tuple[Converter, ...] = (
    light_brightness_move,
    light_brightness_step,
    effect,
    ignore_transition,
)

BUILTIN_DEFINITIONS: tuple[Definition, ...] = (
    Definition(
        model="generic_dimmer",
        vendor="Generic",
        description="Dimmable light",
        converters=(light_onoff_brightness, *_LIGHT_MOVES),
    ),
    Definition(
        model="color_light",
        vendor="Generic",
        description="Colour and white spectrum light",
        converters=(
            light_onoff_brightness,
            light_color_colortemp,
            *_LIGHT_MOVES,
            light_colortemp_step,
            light_colortemp_move,
            light_hue_saturation_move,
            light_hue_saturation_step,
        ),
    ),
    Definition(
        model="dual_switch",
        vendor="Generic",
        description="Two-gang wall switch",
        converters=(on_off,),
        endpoints={"left": 1, "right": 2},
    ),
    Definition(
        model="cover",
        vendor="Generic",
        description="Roller shade / blind motor",
        converters=(cover_state, cover_position_tilt),
    ),
    Definition(
        model="thermostat",
        vendor="Generic",
        description="Radiator thermostat",
        converters=(thermostat_occupied_heating_setpoint,),
    ),
    Definition(
        model="door_lock",
        vendor="Generic",
        description="Door lock",
        converters=(lock,),
    ),
)


class DefinitionRegistry:
    """Model id -> definition lookup. Devices whose model is absent are unsupported."""

    lp: str = "DefinitionRegistry:"

    def __init__(self, definitions: Iterable[Definition] | None = None) -> None:
        self._definitions: dict[str, Definition] = {}
        for definition in definitions or ():
            self.register(definition)

    @classmethod
    def builtin(cls) -> DefinitionRegistry:
        return cls(BUILTIN_DEFINITIONS)

    def register(self, definition: Definition) -> None:
        if definition.model in self._definitions:
            logger.warning("%s replacing definition for model '%s'", self.lp, definition.model)
        self._definitions[definition.model] = definition

    def find(self, model_id: str | None) -> Definition | None:
        if model_id is None:
            return None
        return self._definitions.get(model_id)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
