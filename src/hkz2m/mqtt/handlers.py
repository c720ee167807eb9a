"""Handlers for the Zigbee2MQTT bridge topics."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationError

from hkz2m import metrics
from hkz2m.const import BRIDGE_DEVICES_TOPIC, BRIDGE_INFO_TOPIC, BRIDGE_STATE_TOPIC
from hkz2m.logging_abstraction import get_logger
from hkz2m.structs import BridgeInfo, BridgeStatus

if TYPE_CHECKING:
    from hkz2m.context import BridgeContext
    from hkz2m.reconciler import InventoryReconciler

logger = get_logger(__name__)


class BridgeTopicHandlers:
    lp: str = "bridge:"

    def __init__(self, ctx: BridgeContext, reconciler: InventoryReconciler) -> None:
        self.ctx = ctx
        self.reconciler = reconciler

    async def on_state(self, payload: bytes) -> None:
        status = BridgeStatus.from_payload(payload)
        previous = self.ctx.bridge_status
        self.ctx.bridge_status = status
        if status != previous:
            logger.info("%s Zigbee2MQTT bridge is %s", self.lp, status.value)

    async def on_info(self, payload: bytes) -> None:
        try:
            info = BridgeInfo.model_validate_json(payload)
        except ValidationError as e:
            metrics.record_decode_error("bridge_info")
            logger.warning("%s Invalid bridge info payload", self.lp, extra={"error_count": e.error_count()})
            return
        self.ctx.bridge_info = info
        logger.info(
            "%s Bridge info",
            self.lp,
            extra={
                "version": info.version,
                "coordinator": info.coordinator.type if info.coordinator else None,
                "channel": info.network.channel if info.network else None,
                "permit_join": info.permit_join,
            },
        )

    async def on_devices(self, payload: bytes) -> None:
        await self.reconciler.handle_inventory(payload)


def register_bridge_topics(ctx: BridgeContext, reconciler: InventoryReconciler) -> BridgeTopicHandlers:
    """Bind the three bridge topics; call once at startup.

    Raises:
        ValueError: a bridge topic is already bound

    """
    handlers = BridgeTopicHandlers(ctx, reconciler)
    ctx.router.bind_static(ctx.topic(BRIDGE_STATE_TOPIC), handlers.on_state, "bridge_state")
    ctx.router.bind_static(ctx.topic(BRIDGE_INFO_TOPIC), handlers.on_info, "bridge_info")
    ctx.router.bind_static(ctx.topic(BRIDGE_DEVICES_TOPIC), handlers.on_devices, "bridge_devices")
    return handlers
