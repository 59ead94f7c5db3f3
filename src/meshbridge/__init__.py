"""MQTT command dispatch bridge for low-power mesh device networks."""

__version__ = "0.4.0"
