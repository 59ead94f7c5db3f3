"""Bridge settings loaded from YAML and validated with pydantic.

The file mirrors what an operator edits by hand::

    homeassistant: true
    mqtt:
      base_topic: meshbridge
      server: mqtt://localhost
    advanced:
      legacy_api: true
    devices:
      "0x00124b0001":
        friendly_name: lamp1
        model: color_light
        filtered_optimistic: [color_mode]
    groups:
      "1":
        friendly_name: living_room
        members: ["0x00124b0001"]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from meshbridge.const import (
    DEFAULT_BASE_TOPIC,
    MESHBRIDGE_MQTT_HOST,
    MESHBRIDGE_MQTT_PASS,
    MESHBRIDGE_MQTT_PORT,
    MESHBRIDGE_MQTT_USER,
)
from meshbridge.exceptions import ConfigError
from meshbridge.logging_abstraction import get_logger

__all__ = [
    "AdvancedSettings",
    "BridgeSettings",
    "DeviceConfig",
    "EntityOptions",
    "GroupConfig",
    "MqttSettings",
    "load_settings",
]

logger = get_logger(__name__)


class EntityOptions(BaseModel):
    """Per-device or per-group options.

    Unknown keys are kept so converters can read vendor-specific options from
    ``meta.options``.
    """

    model_config = ConfigDict(extra="allow")

    optimistic: bool = True
    filtered_optimistic: list[str] = Field(default_factory=list)
    retrieve_state: bool = False
    transition: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump()


class DeviceConfig(EntityOptions):
    friendly_name: str
    model: str | None = None
    # Endpoint addresses this device exposes; the definition's named endpoints map onto these
    endpoints: list[int] = Field(default_factory=lambda: [1])

    def options(self) -> EntityOptions:
        return EntityOptions.model_validate(
            self.model_dump(exclude={"friendly_name", "model", "endpoints"}),
        )


class GroupConfig(EntityOptions):
    friendly_name: str
    members: list[str] = Field(default_factory=list)

    def options(self) -> EntityOptions:
        return EntityOptions.model_validate(self.model_dump(exclude={"friendly_name", "members"}))


class MqttSettings(BaseModel):
    base_topic: str = DEFAULT_BASE_TOPIC
    server: str = "localhost"
    port: int = 1883
    user: str | None = None
    password: str | None = None
    client_id: str | None = None
    keepalive: int = 60


class AdvancedSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    # Mirror selected failures to <base_topic>/bridge/log for older consumers
    legacy_api: bool = True


class BridgeSettings(BaseModel):
    """Root settings object handed to the dispatcher and the MQTT client."""

    homeassistant: bool = False
    mqtt: MqttSettings = Field(default_factory=MqttSettings)
    advanced: AdvancedSettings = Field(default_factory=AdvancedSettings)
    devices: dict[str, DeviceConfig] = Field(default_factory=dict)
    groups: dict[str, GroupConfig] = Field(default_factory=dict)

    @property
    def base_topic(self) -> str:
        return self.mqtt.base_topic

    @property
    def legacy_api(self) -> bool:
        return self.advanced.legacy_api

    def apply_env_overrides(self) -> BridgeSettings:
        """Let MESHBRIDGE_MQTT_* environment variables win over the file."""
        overrides: dict[str, object] = {}
        if MESHBRIDGE_MQTT_HOST:
            overrides["server"] = MESHBRIDGE_MQTT_HOST
        if MESHBRIDGE_MQTT_PORT:
            overrides["port"] = MESHBRIDGE_MQTT_PORT
        if MESHBRIDGE_MQTT_USER:
            overrides["user"] = MESHBRIDGE_MQTT_USER
        if MESHBRIDGE_MQTT_PASS:
            overrides["password"] = MESHBRIDGE_MQTT_PASS
        if overrides:
            logger.debug("Applying MQTT overrides from environment: %s", sorted(overrides))
            self.mqtt = self.mqtt.model_copy(update=overrides)
        return self


def load_settings(path: str | Path) -> BridgeSettings:
    """Read and validate the YAML settings file at ``path``.

    Raises:
        ConfigError: the file is missing, is not valid YAML, or fails validation

    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError("file not found", str(config_path))

    try:
        with config_path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML: {e}", str(config_path)) from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("top level must be a mapping", str(config_path))

    try:
        settings = BridgeSettings.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(str(e), str(config_path)) from e

    logger.info(
        "Loaded settings from %s: %d device(s), %d group(s), base_topic='%s'",
        config_path,
        len(settings.devices),
        len(settings.groups),
        settings.base_topic,
    )
    return settings.apply_env_overrides()
