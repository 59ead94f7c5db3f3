"""Command topic grammar: ``<base>/<entity_id>[/<endpoint_name>]/<get|set>[/<attribute>]``."""

from __future__ import annotations

import re
from functools import lru_cache

from meshbridge.const import BRIDGE_NAMESPACE, ENDPOINT_NAMES
from meshbridge.structs import Action, CommandDescriptor

__all__ = ["command_topic_pattern", "parse_topic"]


@lru_cache(maxsize=8)
def command_topic_pattern(base_topic: str) -> re.Pattern[str]:
    endpoints = "|".join(re.escape(name) for name in ENDPOINT_NAMES)
    # entity ids may contain '/', so the id is matched lazily and the endpoint segment is optional
    return re.compile(
        rf"^{re.escape(base_topic)}/(?P<entity>.+?)(?:/(?P<endpoint>{endpoints}))?"
        rf"/(?P<action>get|set)(?:/(?P<attribute>[^/]+))?$",
    )


def parse_topic(topic: str, base_topic: str) -> CommandDescriptor | None:
    """Decode a command topic, or return None when the topic is not a command for an entity.

    None covers topics outside ``base_topic``, the reserved ``bridge`` namespace and anything
    not matching the grammar. None is never an error; the message is simply not ours.
    """
    if not topic.startswith(f"{base_topic}/"):
        return None

    match = command_topic_pattern(base_topic).match(topic)
    if match is None:
        return None

    entity_id = match.group("entity")
    if entity_id.split("/", 1)[0] == BRIDGE_NAMESPACE:
        return None

    return CommandDescriptor(
        entity_id=entity_id,
        action=Action(match.group("action")),
        endpoint_name=match.group("endpoint"),
        attribute=match.group("attribute"),
    )
