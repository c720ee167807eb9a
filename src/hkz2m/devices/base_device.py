"""Common lifecycle of a live accessory bound to one Zigbee device."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from hkz2m import metrics
from hkz2m.exceptions import BusError
from hkz2m.logging_abstraction import get_logger

if TYPE_CHECKING:
    from pyhap.accessory import Accessory

    from hkz2m.context import BridgeContext
    from hkz2m.structs import DeviceDescriptor

logger = get_logger(__name__)


class ActiveDevice:
    """One accessory plus the subscription on its device's state topic.

    Subclasses provide the accessory and `handle_state`.
    """

    lp: str = "ActiveDevice:"

    def __init__(self, ctx: BridgeContext, descriptor: DeviceDescriptor, accessory: Accessory) -> None:
        self.ctx: BridgeContext = ctx
        self.descriptor: DeviceDescriptor = descriptor
        self.accessory: Accessory = accessory
        self.subscribed: bool = False
        self.state_topic: str = ctx.topic(descriptor.friendly_name)
        self._subscribe_task: asyncio.Task[bool] | None = None

    @property
    def name(self) -> str:
        return self.descriptor.friendly_name

    @property
    def ieee_address(self) -> str:
        return self.descriptor.ieee_address

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} ({self.ieee_address}) subscribed={self.subscribed}>"

    def command_topic(self, attribute: str) -> str:
        return f"{self.state_topic}/set/{attribute}"

    def publish_command(self, attribute: str, value: str) -> asyncio.Future[bool]:
        """Queue a command publish; never blocks and never raises."""
        return self.ctx.publisher.enqueue(self.command_topic(attribute), value)

    def subscribe(self) -> asyncio.Task[bool]:
        """Bind the state topic and subscribe it in the background.

        The returned task resolves to True once the broker acknowledged the
        subscription, which is also when `subscribed` becomes True.
        """
        self.ctx.router.bind(self.state_topic, self.handle_state)
        self._subscribe_task = asyncio.create_task(
            self._await_subscription(),
            name=f"subscribe:{self.state_topic}",
        )
        return self._subscribe_task

    async def _await_subscription(self) -> bool:
        lp = f"{self.lp}subscribe:"
        try:
            await self.ctx.bus.subscribe(self.state_topic)
        except BusError as e:
            metrics.record_subscribe("failure")
            logger.warning("%s Subscription failed", lp, extra={"device": self.name, "error": str(e)})
            return False
        metrics.record_subscribe("success")
        self.subscribed = True
        logger.debug("%s Subscribed to %s", lp, self.state_topic)
        return True

    async def unsubscribe(self) -> None:
        """Remove the binding and, if the subscription was live, unsubscribe it.

        Unsubscribe failures are logged; the device is considered torn down either way.
        """
        lp = f"{self.lp}unsubscribe:"
        self.ctx.router.unbind(self.state_topic)
        task = self._subscribe_task
        self._subscribe_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if not self.subscribed:
            return
        self.subscribed = False
        try:
            await self.ctx.bus.unsubscribe(self.state_topic)
        except BusError as e:
            logger.warning("%s Unsubscribe failed", lp, extra={"device": self.name, "error": str(e)})
        else:
            logger.debug("%s Unsubscribed from %s", lp, self.state_topic)

    async def handle_state(self, payload: bytes) -> None:
        raise NotImplementedError
