"""
Shared fixtures for unit tests.

Bus operations go through a real BusClient attached to an AsyncMock aiomqtt
client; HAP-python drivers are MagicMocks carrying the real service loader.
"""

import asyncio
import copy
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pyhap.loader import get_loader

from hkz2m.config import BridgeSettings
from hkz2m.context import BridgeContext, build_context

LIGHT_EXPOSE: dict[str, Any] = {
    "type": "light",
    "features": [
        {"type": "binary", "name": "state", "property": "state", "access": 7, "value_on": "ON", "value_off": "OFF"},
        {
            "type": "numeric",
            "name": "brightness",
            "property": "brightness",
            "access": 7,
            "value_min": 0,
            "value_max": 254,
        },
        {"type": "composite", "name": "color_xy", "property": "color", "access": 7},
    ],
}

SWITCH_EXPOSE: dict[str, Any] = {
    "type": "switch",
    "features": [{"type": "binary", "name": "state", "property": "state", "access": 7}],
}

LINKQUALITY_EXPOSE: dict[str, Any] = {"type": "numeric", "name": "linkquality", "property": "linkquality", "access": 1}


@pytest.fixture
def light_expose() -> dict[str, Any]:
    return copy.deepcopy(LIGHT_EXPOSE)


@pytest.fixture
def switch_expose() -> dict[str, Any]:
    return copy.deepcopy(SWITCH_EXPOSE)


@pytest.fixture
def linkquality_expose() -> dict[str, Any]:
    return copy.deepcopy(LINKQUALITY_EXPOSE)


def make_hap_driver() -> MagicMock:
    driver = MagicMock()
    driver.loader = get_loader()
    driver.async_start = AsyncMock()
    driver.async_stop = AsyncMock()
    return driver


@pytest.fixture
def settings(tmp_path: Path) -> BridgeSettings:
    return BridgeSettings(persist_dir=tmp_path, base_topic="zigbee2mqtt", hap_port=51826)


@pytest.fixture
def mqtt_client() -> AsyncMock:
    """Stand-in for a connected aiomqtt.Client."""
    client = AsyncMock()
    client.publish = AsyncMock()
    client.subscribe = AsyncMock()
    client.unsubscribe = AsyncMock()
    return client


@pytest.fixture
def ctx(settings: BridgeSettings, mqtt_client: AsyncMock) -> BridgeContext:
    context = build_context(settings)
    context.bus.attach(mqtt_client)
    return context


@pytest.fixture
def hap_driver() -> MagicMock:
    return make_hap_driver()


@pytest.fixture
def driver_factory() -> Callable[[], MagicMock]:
    return make_hap_driver


@pytest.fixture
def mock_driver_cls():
    """Patch AccessoryDriver so every AccessoryServer gets a fresh mock driver."""
    with patch("hkz2m.accessory_server.AccessoryDriver") as driver_cls:
        driver_cls.side_effect = lambda **_kwargs: make_hap_driver()
        yield driver_cls


@pytest.fixture
def make_device() -> Callable[..., dict[str, Any]]:
    """Build one `bridge/devices` entry; keyword arguments override the defaults."""

    def _make(
        friendly_name: str = "kitchen",
        ieee_address: str = "0x00124b0012345678",
        exposes: list[dict[str, Any]] | None = None,
        **overrides: Any,
    ) -> dict[str, Any]:
        device: dict[str, Any] = {
            "type": "Router",
            "friendly_name": friendly_name,
            "ieee_address": ieee_address,
            "interview_completed": True,
            "interviewing": False,
            "supported": True,
            "network_address": 4660,
            "power_source": "Mains (single phase)",
            "software_build_id": "2.1.3",
            "definition": {
                "description": "Color bulb",
                "model": "LED1624G9",
                "vendor": "IKEA",
                "exposes": copy.deepcopy([LIGHT_EXPOSE, LINKQUALITY_EXPOSE]) if exposes is None else exposes,
            },
            "endpoints": {
                "1": {
                    "bindings": [
                        {"cluster": "genOnOff", "target": {"type": "endpoint", "endpoint": 1, "ieee_address": "0x00"}},
                    ],
                    "clusters": {"input": ["genBasic", "genOnOff"], "output": ["genOta"]},
                },
            },
        }
        device.update(overrides)
        return device

    return _make


@pytest.fixture
def coordinator() -> dict[str, Any]:
    return {
        "type": "Coordinator",
        "friendly_name": "Coordinator",
        "ieee_address": "0x00124b00aabbccdd",
        "interview_completed": True,
        "interviewing": False,
        "supported": True,
        "definition": None,
        "endpoints": {},
    }


def inventory_payload(*devices: dict[str, Any]) -> bytes:
    return json.dumps(list(devices)).encode()


@pytest.fixture
def inventory() -> Callable[..., bytes]:
    return inventory_payload


async def drain(rounds: int = 5) -> None:
    """Let background tasks (subscriptions, publisher worker) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle() -> Callable[..., Any]:
    return drain
