"""The single context object shared by every component."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hkz2m.mqtt.client import BusClient
from hkz2m.mqtt.publisher import CommandPublisher
from hkz2m.mqtt.routing import TopicRouter
from hkz2m.structs import BridgeInfo, BridgeStatus

if TYPE_CHECKING:
    from hkz2m.accessory_server import AccessoryServer
    from hkz2m.config import BridgeSettings
    from hkz2m.devices.base_device import ActiveDevice


@dataclass
class BridgeContext:
    """Runtime state of one bridge process.

    `devices` and `server` are written only by the reconciler and by
    shutdown, both under `lock`.
    """

    settings: BridgeSettings
    bus: BusClient
    router: TopicRouter
    publisher: CommandPublisher
    devices: list[ActiveDevice] = field(default_factory=list)
    server: AccessoryServer | None = None
    bridge_status: BridgeStatus = BridgeStatus.OFFLINE
    bridge_info: BridgeInfo | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def topic(self, suffix: str) -> str:
        return self.settings.topic(suffix)


def build_context(settings: BridgeSettings) -> BridgeContext:
    bus = BusClient()
    return BridgeContext(
        settings=settings,
        bus=bus,
        router=TopicRouter(),
        publisher=CommandPublisher(bus, maxsize=settings.publish_queue_size),
    )
