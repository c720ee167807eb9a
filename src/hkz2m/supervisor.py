"""Bus connection lifecycle and orderly shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Callable
from enum import StrEnum
from functools import partial
from typing import TYPE_CHECKING, TypeAlias

import aiomqtt

from hkz2m import metrics
from hkz2m.const import SUPERVISOR_TASK_NAME
from hkz2m.exceptions import SubscriptionError
from hkz2m.logging_abstraction import get_logger
from hkz2m.mqtt.client import create_client
from hkz2m.retry_policy import RetryPolicy

if TYPE_CHECKING:
    from hkz2m.config import BridgeSettings
    from hkz2m.context import BridgeContext
    from hkz2m.reconciler import InventoryReconciler

logger = get_logger(__name__)

ClientFactory: TypeAlias = "Callable[[BridgeSettings], aiomqtt.Client]"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STOPPING = "stopping"
    TERMINATED = "terminated"


class ConnectionSupervisor:
    """Keeps the bus connected until asked to stop.

    Each successful connect re-subscribes every router binding once, then
    runs the dispatch loop until the connection drops. Failed or lost
    connections are retried forever on the retry policy's schedule.
    """

    lp: str = "Supervisor:"

    def __init__(
        self,
        ctx: BridgeContext,
        reconciler: InventoryReconciler,
        client_factory: ClientFactory = create_client,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.ctx: BridgeContext = ctx
        self.reconciler: InventoryReconciler = reconciler
        self.client_factory: ClientFactory = client_factory
        self.retry_policy: RetryPolicy = retry_policy or RetryPolicy(
            base_delay_seconds=ctx.settings.reconnect_initial_delay,
            max_delay_seconds=ctx.settings.reconnect_max_delay,
        )
        self.state: ConnectionState = ConnectionState.DISCONNECTED
        self.connect_count: int = 0
        self._stop_event: asyncio.Event = asyncio.Event()
        self._conn_task: asyncio.Task[None] | None = None
        metrics.record_connection_state(self.state.value)

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        logger.info("%s %s -> %s", self.lp, self.state.value, state.value)
        self.state = state
        metrics.record_connection_state(state.value)

    def request_stop(self, signum: int | None = None) -> None:
        """Ask the supervisor to shut down; safe to call from a signal handler."""
        if signum is not None:
            logger.info("%s Intercepted signal: %s (%s)", self.lp, signal.Signals(signum).name, signum)
        self._stop_event.set()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, partial(self.request_stop, signum))
        logger.debug("%s Signal handlers configured for SIGINT & SIGTERM", self.lp)

    def _mark_devices_subscribed(self, subscribed: bool) -> None:
        for device in self.ctx.devices:
            device.subscribed = subscribed and device.state_topic in self.ctx.router

    async def _connection_loop(self) -> None:
        lp = f"{self.lp}connection_loop:"
        settings = self.ctx.settings
        attempt = 0
        while not self.stop_requested:
            self._set_state(ConnectionState.CONNECTING)
            client = self.client_factory(settings)
            try:
                async with client:
                    self.ctx.bus.attach(client)
                    self.connect_count += 1
                    attempt = 0
                    self._set_state(ConnectionState.CONNECTED)
                    logger.info(
                        "%s Connected to MQTT broker",
                        lp,
                        extra={"host": settings.mqtt_host, "port": settings.mqtt_port, "connects": self.connect_count},
                    )
                    await self.ctx.router.subscribe_all(self.ctx.bus)
                    self._mark_devices_subscribed(True)
                    await self.ctx.router.run(client.messages)
                    logger.warning("%s Message stream ended", lp)
            except aiomqtt.MqttError as e:
                logger.warning("%s Connection failed or lost: %s", lp, e)
            finally:
                self.ctx.bus.detach()
                self._mark_devices_subscribed(False)

            if self.stop_requested:
                break
            self._set_state(ConnectionState.DISCONNECTED)
            delay = self.retry_policy.get_delay(attempt)
            attempt += 1
            logger.info("%s Reconnecting in %.1f seconds (attempt %d)", lp, delay, attempt)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)

    async def run(self) -> int:
        """Run until a stop is requested or the connection loop fails fatally.

        Returns:
            Process exit status: 0 after a requested stop, 1 after a fatal error

        """
        lp = f"{self.lp}run:"
        self.ctx.publisher.start()
        self._conn_task = conn_task = asyncio.create_task(self._connection_loop(), name=SUPERVISOR_TASK_NAME)
        stop_wait = asyncio.create_task(self._stop_event.wait())
        exit_code = 0
        try:
            done, _ = await asyncio.wait({conn_task, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
            if conn_task in done and not conn_task.cancelled():
                exc = conn_task.exception()
                if isinstance(exc, SubscriptionError):
                    logger.critical("%s Subscription failed, cannot continue: %s", lp, exc)
                    exit_code = 1
                elif exc is not None:
                    logger.critical("%s Connection loop crashed: %r", lp, exc)
                    exit_code = 1
        finally:
            stop_wait.cancel()
            await self.shutdown()
        return exit_code

    async def shutdown(self) -> None:
        """Stop the accessory server, unsubscribe devices, stop publishing, then disconnect."""
        lp = f"{self.lp}shutdown:"
        self._stop_event.set()
        self._set_state(ConnectionState.STOPPING)
        try:
            await self.reconciler.shutdown()
        except Exception:
            logger.exception("%s Accessory teardown failed", lp)
        await self.ctx.publisher.stop()
        conn_task = self._conn_task
        if conn_task is not None and not conn_task.done():
            conn_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await conn_task
        self._set_state(ConnectionState.TERMINATED)
        logger.info("%s Bridge stopped", lp)
