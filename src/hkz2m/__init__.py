"""Zigbee2MQTT to HomeKit bridge."""

__version__ = "0.3.0"
