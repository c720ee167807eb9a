import os

from hkz2m import __version__

__all__ = [
    "BRIDGE_DEVICES_TOPIC",
    "BRIDGE_INFO_TOPIC",
    "BRIDGE_STATE_TOPIC",
    "DEVICE_TYPE_COORDINATOR",
    "HKZ2M_BASE_TOPIC",
    "HKZ2M_BRIDGE_MANUFACTURER",
    "HKZ2M_BRIDGE_MODEL",
    "HKZ2M_BRIDGE_NAME",
    "HKZ2M_DEBUG",
    "HKZ2M_HAP_PIN",
    "HKZ2M_HAP_PORT",
    "HKZ2M_METRICS_PORT",
    "HKZ2M_MQTT_CLIENT_ID",
    "HKZ2M_MQTT_HOST",
    "HKZ2M_MQTT_PASS",
    "HKZ2M_MQTT_PORT",
    "HKZ2M_MQTT_USER",
    "HKZ2M_PERSIST_DIR",
    "HKZ2M_PUBLISH_QUEUE_SIZE",
    "HKZ2M_RECONNECT_INITIAL_DELAY",
    "HKZ2M_RECONNECT_MAX_DELAY",
    "HKZ2M_VERSION",
    "HAP_STATE_FILE_NAME",
    "LIGHT_FEATURE_TYPE",
    "PAYLOAD_OFF",
    "PAYLOAD_ON",
    "SUPERVISOR_TASK_NAME",
    "PUBLISHER_TASK_NAME",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", "on")
HKZ2M_VERSION: str = __version__


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# MQTT broker
HKZ2M_MQTT_HOST: str = os.environ.get("HKZ2M_MQTT_HOST", "127.0.0.1")
HKZ2M_MQTT_PORT: int = _env_int("HKZ2M_MQTT_PORT", 1883)
HKZ2M_MQTT_USER: str | None = os.environ.get("HKZ2M_MQTT_USER") or None
HKZ2M_MQTT_PASS: str | None = os.environ.get("HKZ2M_MQTT_PASS") or None
HKZ2M_MQTT_CLIENT_ID: str = os.environ.get("HKZ2M_MQTT_CLIENT_ID", "hkz2m")
HKZ2M_BASE_TOPIC: str = os.environ.get("HKZ2M_BASE_TOPIC", "zigbee2mqtt")
HKZ2M_RECONNECT_INITIAL_DELAY: float = _env_float("HKZ2M_RECONNECT_INITIAL_DELAY", 1.0)
HKZ2M_RECONNECT_MAX_DELAY: float = _env_float("HKZ2M_RECONNECT_MAX_DELAY", 5.0)
HKZ2M_PUBLISH_QUEUE_SIZE: int = _env_int("HKZ2M_PUBLISH_QUEUE_SIZE", 256)

# HomeKit accessory server
HKZ2M_HAP_PIN: str = os.environ.get("HKZ2M_HAP_PIN", "11223399")
HKZ2M_HAP_PORT: int = _env_int("HKZ2M_HAP_PORT", 51826)
HKZ2M_PERSIST_DIR: str = os.environ.get("HKZ2M_PERSIST_DIR", "./.db")
HKZ2M_BRIDGE_NAME: str = os.environ.get("HKZ2M_BRIDGE_NAME", "Zigbee Bridge")
HKZ2M_BRIDGE_MODEL: str = os.environ.get("HKZ2M_BRIDGE_MODEL", "hkz2m")
HKZ2M_BRIDGE_MANUFACTURER: str = os.environ.get("HKZ2M_BRIDGE_MANUFACTURER", "hkz2m")
HAP_STATE_FILE_NAME: str = "accessory.state"

HKZ2M_METRICS_PORT: int = _env_int("HKZ2M_METRICS_PORT", 0)
HKZ2M_DEBUG: bool = os.environ.get("HKZ2M_DEBUG", "0").casefold() in YES_ANSWER

# Zigbee2MQTT bridge topics, relative to the base topic
BRIDGE_STATE_TOPIC: str = "bridge/state"
BRIDGE_INFO_TOPIC: str = "bridge/info"
BRIDGE_DEVICES_TOPIC: str = "bridge/devices"

DEVICE_TYPE_COORDINATOR: str = "Coordinator"

LIGHT_FEATURE_TYPE: str = "light"
PAYLOAD_ON: str = "ON"
PAYLOAD_OFF: str = "OFF"

SUPERVISOR_TASK_NAME = "ConnectionSupervisor_LOOP"
PUBLISHER_TASK_NAME = "CommandPublisher_WORKER"
