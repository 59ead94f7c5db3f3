"""
Unit tests for the command topic grammar.
"""

import pytest

from meshbridge.mqtt.topics import parse_topic
from meshbridge.structs import Action, CommandDescriptor


class TestParseTopic:
    """Tests for parse_topic"""

    def test_plain_set(self):
        """Test entity id and action are extracted"""
        assert parse_topic("base/lamp1/set", "base") == CommandDescriptor("lamp1", Action.SET)

    def test_get_with_attribute(self):
        """Test trailing attribute segment"""
        descriptor = parse_topic("base/lamp1/get/brightness", "base")

        assert descriptor is not None
        assert descriptor.action is Action.GET
        assert descriptor.attribute == "brightness"
        assert descriptor.endpoint_name is None

    def test_endpoint_segment(self):
        """Test a known endpoint name between entity and action"""
        descriptor = parse_topic("base/switch1/left/set", "base")

        assert descriptor == CommandDescriptor("switch1", Action.SET, endpoint_name="left")
        assert descriptor.entity_key == "switch1/left"

    def test_endpoint_and_attribute(self):
        """Test endpoint and attribute together"""
        descriptor = parse_topic("base/switch1/right/set/state", "base")

        assert descriptor == CommandDescriptor("switch1", Action.SET, endpoint_name="right", attribute="state")

    def test_entity_id_with_slash(self):
        """Test friendly names containing '/' stay whole when the segment is not an endpoint"""
        descriptor = parse_topic("base/living/lamp/set", "base")

        assert descriptor is not None
        assert descriptor.entity_id == "living/lamp"
        assert descriptor.endpoint_name is None

    def test_multi_word_endpoint_preferred(self):
        """Test endpoint names sharing a suffix resolve to the longest one"""
        descriptor = parse_topic("base/panel/bottom_left/set", "base")

        assert descriptor is not None
        assert descriptor.entity_id == "panel"
        assert descriptor.endpoint_name == "bottom_left"

    @pytest.mark.parametrize(
        "topic",
        [
            "other/lamp1/set",
            "basement/lamp1/set",
            "base/lamp1",
            "base/lamp1/state",
            "base/lamp1/set/a/b",
            "base/set",
            "lamp1/set",
        ],
    )
    def test_not_applicable(self, topic):
        """Test topics outside the grammar yield None"""
        assert parse_topic(topic, "base") is None

    def test_bridge_namespace_ignored(self):
        """Test the reserved bridge namespace never resolves to an entity"""
        assert parse_topic("base/bridge/request/set", "base") is None
        assert parse_topic("base/bridge/set", "base") is None

    def test_bridge_prefix_in_name_allowed(self):
        """Test entity names merely starting with 'bridge' are still entities"""
        descriptor = parse_topic("base/bridge_lamp/set", "base")

        assert descriptor is not None
        assert descriptor.entity_id == "bridge_lamp"

    def test_base_topic_with_slash(self):
        """Test nested base topics are stripped whole"""
        descriptor = parse_topic("home/mesh/lamp1/set", "home/mesh")

        assert descriptor == CommandDescriptor("lamp1", Action.SET)
