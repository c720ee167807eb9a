"""HomeKit accessory server: one HAP-python driver serving one bridge accessory."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING

from pyhap.accessory import Bridge
from pyhap.accessory_driver import AccessoryDriver

from hkz2m.const import HKZ2M_VERSION
from hkz2m.logging_abstraction import get_logger
from hkz2m.utils import format_pincode

if TYPE_CHECKING:
    from pyhap.accessory import Accessory

    from hkz2m.config import BridgeSettings

logger = get_logger(__name__)


class AccessoryServer:
    """Driver + bridge for one accessory set.

    A server is single use: it is built, started once with its accessories and
    stopped once. The reconciler builds a new one for every inventory.
    """

    lp: str = "AccessoryServer:"

    def __init__(self, settings: BridgeSettings, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.settings: BridgeSettings = settings
        self.driver: AccessoryDriver = AccessoryDriver(
            loop=loop or asyncio.get_running_loop(),
            port=settings.hap_port,
            persist_file=str(settings.persist_file),
            pincode=format_pincode(settings.hap_pin),
        )
        self.bridge: Bridge = Bridge(self.driver, settings.bridge_name)
        self.bridge.set_info_service(
            firmware_revision=HKZ2M_VERSION,
            manufacturer=settings.bridge_manufacturer,
            model=settings.bridge_model,
            serial_number=settings.mqtt_client_id,
        )
        self.running: bool = False
        self._started: bool = False

    @property
    def accessory_count(self) -> int:
        return len(self.bridge.accessories)

    def add_accessory(self, accessory: Accessory) -> None:
        """Attach an accessory to the bridge; must happen before `start`.

        Raises:
            ValueError: duplicate accessory id

        """
        self.bridge.add_accessory(accessory)

    async def start(self, accessories: Iterable[Accessory] = ()) -> None:
        """Publish the bridge with `accessories` and start serving."""
        lp = f"{self.lp}start:"
        if self._started:
            msg = "AccessoryServer instances cannot be restarted"
            raise RuntimeError(msg)
        self._started = True
        for accessory in accessories:
            self.add_accessory(accessory)
        self.driver.add_accessory(self.bridge)
        try:
            await self.driver.async_start()
        except Exception:
            # The HAP listener may already be bound
            await self._abort_start()
            raise
        self.running = True
        logger.info(
            "%s Accessory server started",
            lp,
            extra={"port": self.settings.hap_port, "accessories": self.accessory_count},
        )

    async def _abort_start(self) -> None:
        lp = f"{self.lp}abort_start:"
        try:
            await self.driver.async_stop()
        except Exception:
            logger.exception("%s Failed to stop partially started driver", lp)
        else:
            logger.warning("%s Partially started driver stopped", lp, extra={"port": self.settings.hap_port})

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        if not self.running:
            return
        self.running = False
        await self.driver.async_stop()
        logger.info("%s Accessory server stopped", lp)
