import logging
import os

from meshbridge import __version__

__all__ = [
    "BRIDGE_LOG_SUFFIX",
    "BRIDGE_NAMESPACE",
    "DEFAULT_BASE_TOPIC",
    "ENDPOINT_NAMES",
    "LOG_FORMATTER",
    "MESHBRIDGE_CONFIG_FILE_PATH",
    "MESHBRIDGE_DEBUG",
    "MESHBRIDGE_LOG_FORMAT",
    "MESHBRIDGE_LOG_HUMAN_OUTPUT",
    "MESHBRIDGE_LOG_JSON_FILE",
    "MESHBRIDGE_LOG_NAME",
    "MESHBRIDGE_MQTT_CONN_DELAY",
    "MESHBRIDGE_MQTT_HOST",
    "MESHBRIDGE_MQTT_PASS",
    "MESHBRIDGE_MQTT_PORT",
    "MESHBRIDGE_MQTT_USER",
    "MESHBRIDGE_PERF_THRESHOLD_MS",
    "MESHBRIDGE_PERF_TRACKING",
    "MESHBRIDGE_VERSION",
    "POWER_ATTRIBUTES",
    "STATE_WORDS",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
MESHBRIDGE_LOG_NAME: str = "meshbridge"
MESHBRIDGE_VERSION: str = __version__

LOG_FORMATTER = logging.Formatter(
    "%(asctime)s.%(msecs)d %(levelname)s [%(module)s:%(lineno)d] > %(message)s",
    "%m/%d/%y %H:%M:%S",
)

DEFAULT_BASE_TOPIC: str = "meshbridge"
# Topic segment reserved for bridge administration, never an entity id
BRIDGE_NAMESPACE: str = "bridge"
BRIDGE_LOG_SUFFIX: str = "bridge/log"

# Bare payload words accepted in place of a JSON object, mapped to {"state": <word>}
STATE_WORDS: tuple[str, ...] = ("on", "off", "toggle", "open", "close", "stop", "lock", "unlock")

# Attributes that must be written before colour when turning on, and after it when turning off
POWER_ATTRIBUTES: frozenset[str] = frozenset({"state", "brightness", "brightness_percent"})

# Endpoint names usable as topic segments (lamp/left/set) or key suffixes (state_left).
# Longer names sharing a prefix come first so regex alternation prefers them.
ENDPOINT_NAMES: tuple[str, ...] = (
    "bottom_left",
    "bottom_right",
    "top_left",
    "top_right",
    "center_left",
    "center_right",
    "left",
    "right",
    "center",
    "top",
    "bottom",
    "default",
    "white",
    "rgb",
    "cct",
    "system",
    "relay",
    "usb",
    *(f"l{i}" for i in range(1, 9)),
    *(f"ep{i}" for i in range(1, 9)),
    *(f"row_{i}" for i in range(1, 5)),
    *(f"button_{i}" for i in range(1, 9)),
)

MESHBRIDGE_CONFIG_FILE_PATH: str = os.environ.get("MESHBRIDGE_CONFIG_FILE", "/config/meshbridge.yaml")

MESHBRIDGE_MQTT_HOST: str | None = os.environ.get("MESHBRIDGE_MQTT_HOST") or None
_mqtt_port = os.environ.get("MESHBRIDGE_MQTT_PORT")
try:
    _mqtt_port_value: int | None = int(_mqtt_port) if _mqtt_port else None
except ValueError:
    _mqtt_port_value = None
MESHBRIDGE_MQTT_PORT: int | None = _mqtt_port_value
MESHBRIDGE_MQTT_USER: str | None = os.environ.get("MESHBRIDGE_MQTT_USER") or None
MESHBRIDGE_MQTT_PASS: str | None = os.environ.get("MESHBRIDGE_MQTT_PASS") or None
_conn_delay = os.environ.get("MESHBRIDGE_MQTT_CONN_DELAY", "10")
MESHBRIDGE_MQTT_CONN_DELAY: int = int(_conn_delay) if _conn_delay and _conn_delay.isdigit() else 10

MESHBRIDGE_DEBUG: bool = os.environ.get("MESHBRIDGE_DEBUG", "0").casefold() in YES_ANSWER

# Logging Configuration
MESHBRIDGE_LOG_FORMAT: str = os.environ.get("MESHBRIDGE_LOG_FORMAT", "human")  # "json", "human", or "both"
MESHBRIDGE_LOG_JSON_FILE: str | None = os.environ.get("MESHBRIDGE_LOG_JSON_FILE") or None
MESHBRIDGE_LOG_HUMAN_OUTPUT: str = os.environ.get("MESHBRIDGE_LOG_HUMAN_OUTPUT", "stdout")

# Performance Instrumentation
MESHBRIDGE_PERF_TRACKING: bool = os.environ.get("MESHBRIDGE_PERF_TRACKING", "true").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("MESHBRIDGE_PERF_THRESHOLD_MS", "250")
MESHBRIDGE_PERF_THRESHOLD_MS: int = int(_perf_threshold) if _perf_threshold and _perf_threshold.isdigit() else 250
