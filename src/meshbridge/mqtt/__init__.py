"""MQTT side of the bridge: topic grammar, dispatch pipeline, publishing and the client."""

from .client import MQTTClient
from .command_routing import CommandRouter
from .reporting import AttributeOutcome, DispatchReport, ErrorReporter, OutcomeKind
from .state_updates import PublishBuffer, StateUpdateHelper
from .topics import parse_topic

__all__ = [
    "AttributeOutcome",
    "CommandRouter",
    "DispatchReport",
    "ErrorReporter",
    "MQTTClient",
    "OutcomeKind",
    "PublishBuffer",
    "StateUpdateHelper",
    "parse_topic",
]
