"""
Unit tests for the entity registry and device definitions.
"""

import asyncio
from unittest.mock import MagicMock

from conftest import EMPTY_GROUP_ID, LAMP_ID, LIGHTS_GROUP_ID, MYSTERY_ID, SWITCH_ID

from meshbridge.converters import DEFAULT_GROUP_CONVERTERS
from meshbridge.converters.general import on_off
from meshbridge.converters.lighting import light_color_colortemp, light_onoff_brightness
from meshbridge.devices import DefinitionRegistry, EntityEvent, EntityRegistry, MeshDevice, ResolvedDevice, ResolvedGroup
from meshbridge.settings import BridgeSettings
from meshbridge.structs import EntityKind


class TestDefinitionRegistry:
    """Tests for DefinitionRegistry"""

    def test_builtin_models(self):
        """Test the built-in definitions are registered by model id"""
        definitions = DefinitionRegistry.builtin()

        for model in ("generic_dimmer", "color_light", "dual_switch", "cover", "thermostat", "door_lock"):
            assert model in definitions
        assert definitions.find("nope") is None
        assert definitions.find(None) is None

    def test_endpoint_names(self):
        """Test named endpoints map to addresses"""
        dual = DefinitionRegistry.builtin().find("dual_switch")

        assert dual.endpoint_address("left") == 1
        assert dual.endpoint_address("right") == 2
        assert dual.endpoint_address("center") is None


class TestResolveDevice:
    """Tests for resolving devices"""

    def test_by_friendly_name_and_id(self, registry):
        """Test devices resolve by friendly name or id"""
        by_name = registry.resolve("lamp1")
        by_id = registry.resolve(LAMP_ID)

        assert isinstance(by_name, ResolvedDevice)
        assert by_name.kind is EntityKind.DEVICE
        assert by_name.entity_id == by_id.entity_id == LAMP_ID
        assert by_name.name == "lamp1"
        assert by_name.target.address == f"{LAMP_ID}/1"

    def test_unknown(self, registry):
        """Test unknown identifiers resolve to None"""
        assert registry.resolve("unknown") is None

    def test_topic_endpoint(self, registry):
        """Test a declared endpoint name retargets the handle"""
        resolved = registry.resolve("switch1", "right")

        assert resolved.endpoint_name == "right"
        assert resolved.target.address == f"{SWITCH_ID}/2"

    def test_undeclared_topic_endpoint(self, registry):
        """Test an endpoint the device does not declare does not resolve"""
        assert registry.resolve("lamp1", "left") is None

    def test_endpoint_for(self, registry):
        """Test endpoint lookup by name on a resolved device"""
        resolved = registry.resolve("switch1")

        assert resolved.endpoint_for("left").address == f"{SWITCH_ID}/1"
        assert resolved.endpoint_for("top") is None

    def test_unknown_model(self, registry):
        """Test devices without a definition resolve with no converters"""
        resolved = registry.resolve("mystery")

        assert resolved.entity_id == MYSTERY_ID
        assert resolved.definition is None
        assert len(resolved.converters) == 0

    def test_options(self, registry):
        """Test configured options travel with the resolved entity"""
        resolved = registry.resolve("lock1")

        assert resolved.options["retrieve_state"] is True
        assert resolved.options["optimistic"] is True


class TestResolveGroup:
    """Tests for resolving groups"""

    def test_empty_group_uses_defaults(self, registry):
        """Test a group without member converters falls back to the default set"""
        resolved = registry.resolve("group1")

        assert isinstance(resolved, ResolvedGroup)
        assert resolved.kind is EntityKind.GROUP
        assert resolved.entity_id == EMPTY_GROUP_ID
        assert resolved.converters.converters == DEFAULT_GROUP_CONVERTERS
        assert resolved.converters.find("state") is light_onoff_brightness
        assert resolved.target.address == f"group:{EMPTY_GROUP_ID}"

    def test_member_union(self, registry):
        """Test a group's capability set is the deduplicated union of its members'"""
        resolved = registry.resolve("lights")
        color_light = registry.definitions.find("color_light")

        converters = resolved.converters.converters
        assert converters == (*color_light.converters, on_off)
        assert resolved.converters.find("state") is light_onoff_brightness
        assert resolved.converters.find("color") is light_color_colortemp
        assert resolved.converters.find("occupied_heating_setpoint") is None
        assert resolved.member_ids == [LAMP_ID, SWITCH_ID]

    def test_group_with_endpoint(self, registry):
        """Test groups have no endpoints"""
        assert registry.resolve("group1", "left") is None

    def test_unknown_member_skipped(self):
        """Test members not found among devices are dropped"""
        settings = BridgeSettings.model_validate(
            {"groups": {"5": {"friendly_name": "g", "members": ["ghost"]}}},
        )
        registry = EntityRegistry.from_settings(settings, asyncio.Queue())

        assert registry.resolve("g").member_ids == []


class TestRegistryLifecycle:
    """Tests for registry mutation and listeners"""

    def test_name_for(self, registry):
        """Test friendly name lookup by id"""
        assert registry.name_for(LAMP_ID) == "lamp1"
        assert registry.name_for(LIGHTS_GROUP_ID) == "lights"
        assert registry.name_for("nope") is None

    def test_remove_device_notifies_and_leaves_groups(self, registry):
        """Test removing a device notifies listeners and drops group membership"""
        listener = MagicMock()
        registry.subscribe(listener)

        assert registry.remove("lamp1") is True

        listener.assert_called_once_with(LAMP_ID, EntityEvent.REMOVED)
        assert registry.resolve("lamp1") is None
        assert registry.resolve("lights").member_ids == [SWITCH_ID]

    def test_remove_unknown(self, registry):
        """Test removing an unknown entity is a no-op"""
        assert registry.remove("nope") is False

    def test_update_options_merges(self, registry):
        """Test option updates merge and notify as reconfiguration"""
        listener = MagicMock()
        registry.subscribe(listener)

        assert registry.update_options("lamp1", {"optimistic": False}) is True

        listener.assert_called_once_with(LAMP_ID, EntityEvent.RECONFIGURED)
        options = registry.resolve("lamp1").options
        assert options["optimistic"] is False
        assert options["retrieve_state"] is False

    def test_readding_device_is_reconfiguration(self, registry, outbound):
        """Test replacing a device with the same id notifies reconfiguration"""
        listener = MagicMock()
        registry.subscribe(listener)

        registry.add_device(MeshDevice(LAMP_ID, "lamp1", "generic_dimmer", outbound))

        listener.assert_called_once_with(LAMP_ID, EntityEvent.RECONFIGURED)
        assert registry.resolve("lamp1").definition.model == "generic_dimmer"
