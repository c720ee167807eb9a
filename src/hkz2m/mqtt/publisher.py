"""Outbound command publisher.

Accessory callbacks are synchronous and must not block, so they hand publish
requests to this bounded queue. A single worker drains it, which keeps
publishes in enqueue order.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hkz2m import metrics
from hkz2m.const import PUBLISHER_TASK_NAME
from hkz2m.exceptions import BusError
from hkz2m.logging_abstraction import get_logger

if TYPE_CHECKING:
    from hkz2m.mqtt.client import BusClient

logger = get_logger(__name__)


@dataclass(slots=True)
class PublishRequest:
    topic: str
    payload: bytes
    future: asyncio.Future[bool] = field(repr=False)


class CommandPublisher:
    """Bounded publish queue with one worker; every request gets a Future[bool]."""

    lp: str = "CommandPublisher:"

    def __init__(self, bus: BusClient, maxsize: int = 256) -> None:
        self.bus: BusClient = bus
        self._queue: asyncio.Queue[PublishRequest] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name=PUBLISHER_TASK_NAME)
        logger.debug("%s worker started", self.lp)

    def enqueue(self, topic: str, payload: str | bytes) -> asyncio.Future[bool]:
        """Queue a publish and return immediately.

        The returned future resolves to True once the broker accepted the
        message and to False on any failure (including a full queue); it
        never raises.
        """
        lp = f"{self.lp}enqueue:"
        data = payload.encode() if isinstance(payload, str) else payload
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        try:
            self._queue.put_nowait(PublishRequest(topic, data, future))
        except asyncio.QueueFull:
            metrics.record_publish("dropped")
            logger.warning(
                "%s Publish queue full, request dropped",
                lp,
                extra={"topic": topic, "queue_size": self._queue.qsize()},
            )
            future.set_result(False)
        else:
            logger.debug("%s Queued publish to %s (queue size: %d)", lp, topic, self._queue.qsize())
        return future

    async def _run(self) -> None:
        lp = f"{self.lp}worker:"
        while True:
            request = await self._queue.get()
            try:
                await self._publish(lp, request)
            finally:
                # Cancelled mid-publish
                if not request.future.done():
                    request.future.set_result(False)
                self._queue.task_done()

    async def _publish(self, lp: str, request: PublishRequest) -> None:
        ok = False
        try:
            await self.bus.publish(request.topic, request.payload)
        except BusError as e:
            logger.warning("%s Publish failed", lp, extra={"topic": request.topic, "error": str(e)})
        except Exception:
            logger.exception("%s Unexpected publish failure", lp, extra={"topic": request.topic})
        else:
            ok = True
            logger.debug("%s Published %r to %s", lp, request.payload, request.topic)
        metrics.record_publish("success" if ok else "failure")
        if not request.future.done():
            request.future.set_result(ok)

    async def stop(self) -> None:
        """Stop the worker and resolve every still-queued request as failed."""
        lp = f"{self.lp}stop:"
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                logger.debug("%s worker cancelled", lp)
        self._worker = None

        dropped = 0
        while not self._queue.empty():
            request = self._queue.get_nowait()
            self._queue.task_done()
            if not request.future.done():
                request.future.set_result(False)
            dropped += 1
        if dropped:
            logger.info("%s Discarded %d queued publishes", lp, dropped)
