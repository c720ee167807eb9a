"""Accessory adapters for Zigbee2MQTT devices."""

from hkz2m.devices.adapter import build_active_device, find_specific_feature
from hkz2m.devices.base_device import ActiveDevice
from hkz2m.devices.light import BrightnessScale, ColoredLightbulb, LightDevice

__all__ = [
    "ActiveDevice",
    "BrightnessScale",
    "ColoredLightbulb",
    "LightDevice",
    "build_active_device",
    "find_specific_feature",
]
