"""
Shared fixtures for unit tests.

Builds a small mesh: a colour light, a two-gang switch, a door lock, a device of an
unknown model and two groups, wired to an in-memory state store and a mock publisher.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from meshbridge.devices.endpoint import MeshFrame
from meshbridge.devices.resolver import EntityRegistry
from meshbridge.mqtt.command_routing import CommandRouter
from meshbridge.scheduler import ReadScheduler
from meshbridge.settings import BridgeSettings
from meshbridge.state import StateStore

LAMP_ID = "0x0001"
SWITCH_ID = "0x0002"
LOCK_ID = "0x0003"
MYSTERY_ID = "0x0009"
EMPTY_GROUP_ID = "1"
LIGHTS_GROUP_ID = "2"


def drain(queue: asyncio.Queue[MeshFrame]) -> list[MeshFrame]:
    """Pop every frame currently queued."""
    frames = []
    while not queue.empty():
        frames.append(queue.get_nowait())
    return frames


@pytest.fixture
def settings_data():
    """Raw settings mapping, as it would come out of the YAML file."""
    return {
        "homeassistant": False,
        "mqtt": {"base_topic": "base"},
        "advanced": {"legacy_api": True},
        "devices": {
            LAMP_ID: {"friendly_name": "lamp1", "model": "color_light"},
            SWITCH_ID: {"friendly_name": "switch1", "model": "dual_switch"},
            LOCK_ID: {"friendly_name": "lock1", "model": "door_lock", "retrieve_state": True},
            MYSTERY_ID: {"friendly_name": "mystery", "model": "does_not_exist"},
        },
        "groups": {
            EMPTY_GROUP_ID: {"friendly_name": "group1"},
            LIGHTS_GROUP_ID: {"friendly_name": "lights", "members": ["lamp1", SWITCH_ID]},
        },
    }


@pytest.fixture
def settings(settings_data):
    return BridgeSettings.model_validate(settings_data)


@pytest.fixture
def outbound():
    return asyncio.Queue()


@pytest.fixture
def registry(settings, outbound):
    return EntityRegistry.from_settings(settings, outbound)


@pytest.fixture
def state_store():
    return StateStore()


@pytest.fixture
def scheduler():
    return ReadScheduler()


@pytest.fixture
def publisher():
    """
    Mock publisher.

    Records entity state publishes and bridge log records without any MQTT connection.
    """
    pub = MagicMock()
    pub.publish_entity_state = AsyncMock(return_value=True)
    pub.publish_bridge_log = AsyncMock(return_value=True)
    return pub


@pytest.fixture
def router(settings, registry, state_store, publisher, scheduler):
    return CommandRouter(settings, registry, state_store, publisher, scheduler)


@pytest.fixture
def mock_mqtt_client():
    """
    Mock MQTT client for testing.

    Returns a MagicMock exposing the async publish methods used by the publishing helpers.
    """
    client = MagicMock()
    client.lp = "mqtt:"
    client.is_connected = True
    client.publish = AsyncMock(return_value=True)
    client.publish_json_msg = AsyncMock(return_value=True)
    return client
