"""Inventory reconciliation.

Every `bridge/devices` message rebuilds the accessory set from scratch:

1. decode and keep the eligible devices, in order
2. build a new, unstarted accessory server and the devices bound to it
3. stop the running server
4. tear down every previous device (binding and live subscription)
5. install the new set and subscribe each device's state topic
6. start the new server

A decode failure leaves everything as it was. Passes and shutdown are
serialized by the context lock.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, TypeAlias

from pydantic import ValidationError

from hkz2m import metrics
from hkz2m.accessory_server import AccessoryServer
from hkz2m.devices.adapter import build_active_device
from hkz2m.logging_abstraction import get_logger
from hkz2m.structs import decode_inventory

if TYPE_CHECKING:
    from hkz2m.config import BridgeSettings
    from hkz2m.context import BridgeContext
    from hkz2m.devices.base_device import ActiveDevice
    from hkz2m.structs import DeviceDescriptor

logger = get_logger(__name__)

ServerFactory: TypeAlias = "Callable[[BridgeSettings], AccessoryServer]"


class InventoryReconciler:
    """Sole writer of `ctx.devices` and `ctx.server` while the bridge runs."""

    lp: str = "Reconciler:"

    def __init__(self, ctx: BridgeContext, server_factory: ServerFactory = AccessoryServer) -> None:
        self.ctx: BridgeContext = ctx
        self.server_factory: ServerFactory = server_factory
        self.passes: int = 0
        self._closed: bool = False

    async def handle_inventory(self, payload: bytes) -> None:
        """Handler for `bridge/devices`."""
        lp = f"{self.lp}handle_inventory:"
        try:
            descriptors = decode_inventory(payload)
        except ValidationError as e:
            metrics.record_decode_error("inventory")
            metrics.record_reconcile("decode_error")
            logger.error(
                "%s Invalid device inventory, keeping current accessories",
                lp,
                extra={"error_count": e.error_count(), "errors": e.errors(include_url=False)[:3]},
            )
            return

        async with self.ctx.lock:
            if self._closed:
                logger.info("%s Shutting down, ignoring inventory", lp)
                return
            await self.reconcile(descriptors)

    async def reconcile(self, descriptors: list[DeviceDescriptor]) -> None:
        """Rebuild the accessory set for `descriptors`. Caller holds the context lock."""
        lp = f"{self.lp}reconcile:"
        self.passes += 1
        eligible = [d for d in descriptors if d.is_eligible]
        logger.info(
            "%s Inventory received",
            lp,
            extra={"pass": self.passes, "devices": len(descriptors), "eligible": len(eligible)},
        )

        server = self.server_factory(self.ctx.settings)
        devices = self._build_devices(server, eligible)

        await self._stop_server()
        await self._teardown(self.ctx.devices)

        self.ctx.devices = devices
        metrics.record_active_devices(len(devices))
        for device in devices:
            device.subscribe()

        started = await self._start_server(server)
        metrics.record_reconcile("success" if started else "start_failed")
        logger.info(
            "%s Reconciliation complete",
            lp,
            extra={"pass": self.passes, "active": [d.name for d in devices], "server_running": started},
        )

    def _build_devices(self, server: AccessoryServer, eligible: list[DeviceDescriptor]) -> list[ActiveDevice]:
        lp = f"{self.lp}build:"
        devices: list[ActiveDevice] = []
        for descriptor in eligible:
            try:
                device = build_active_device(self.ctx, server.driver, descriptor)
            except Exception:
                logger.exception("%s Failed to build accessory", lp, extra={"device": descriptor.friendly_name})
                continue
            if device is None:
                continue
            try:
                server.add_accessory(device.accessory)
            except ValueError as e:
                logger.error(
                    "%s Accessory rejected by bridge",
                    lp,
                    extra={"device": device.name, "aid": device.accessory.aid, "error": str(e)},
                )
                continue
            devices.append(device)
        return devices

    async def _stop_server(self) -> None:
        lp = f"{self.lp}stop_server:"
        server = self.ctx.server
        if server is None:
            return
        self.ctx.server = None
        try:
            await server.stop()
        except Exception:
            logger.exception("%s Failed to stop accessory server", lp)

    async def _start_server(self, server: AccessoryServer) -> bool:
        lp = f"{self.lp}start_server:"
        try:
            await server.start()
        except Exception:
            logger.exception("%s Failed to start accessory server, none running until next inventory", lp)
            self.ctx.server = None
            return False
        self.ctx.server = server
        return True

    async def _teardown(self, devices: list[ActiveDevice]) -> None:
        lp = f"{self.lp}teardown:"
        for device in devices:
            try:
                await device.unsubscribe()
            except Exception:
                logger.exception("%s Failed to tear down device", lp, extra={"device": device.name})
        if devices:
            logger.debug("%s Tore down %d devices", lp, len(devices))

    async def shutdown(self) -> None:
        """Stop the server and tear down all devices; later inventories are ignored."""
        lp = f"{self.lp}shutdown:"
        async with self.ctx.lock:
            self._closed = True
            await self._stop_server()
            await self._teardown(self.ctx.devices)
            self.ctx.devices = []
            metrics.record_active_devices(0)
        logger.info("%s Accessories torn down", lp)
