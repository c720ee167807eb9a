"""Topic router: exact-topic bindings and the single dispatch loop.

Bridge topics are bound once at startup; device state topics come and go with
each reconciliation pass. Every binding is subscribed after each connect.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

from hkz2m import metrics
from hkz2m.correlation import correlation_context
from hkz2m.exceptions import BusError, SubscriptionError
from hkz2m.logging_abstraction import get_logger

if TYPE_CHECKING:
    import aiomqtt

    from hkz2m.mqtt.client import BusClient

logger = get_logger(__name__)

MessageHandler: TypeAlias = "Callable[[bytes], Awaitable[None]]"


def payload_bytes(payload: object) -> bytes:
    """Normalize an aiomqtt payload (bytes, str, number or None) to bytes."""
    if payload is None:
        return b""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, bytearray):
        return bytes(payload)
    return str(payload).encode()


@dataclass(slots=True)
class TopicBinding:
    topic: str
    handler: MessageHandler
    kind: str
    static: bool = False


class TopicRouter:
    """Maps absolute topics to handlers."""

    lp: str = "router:"

    def __init__(self) -> None:
        self._bindings: dict[str, TopicBinding] = {}

    def __contains__(self, topic: object) -> bool:
        return topic in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)

    @property
    def topics(self) -> list[str]:
        """Bound topics in registration order."""
        return list(self._bindings)

    def get(self, topic: str) -> TopicBinding | None:
        return self._bindings.get(topic)

    def bind_static(self, topic: str, handler: MessageHandler, kind: str) -> None:
        """Bind a bridge topic for the lifetime of the process.

        Raises:
            ValueError: the topic is already bound

        """
        if topic in self._bindings:
            msg = f"Topic {topic!r} is already bound"
            raise ValueError(msg)
        self._bindings[topic] = TopicBinding(topic, handler, kind, static=True)
        logger.debug("%s bound static topic: %s", self.lp, topic)

    def bind(self, topic: str, handler: MessageHandler, kind: str = "device") -> None:
        """Bind (or re-bind, replacing the handler) a device topic.

        Raises:
            ValueError: the topic is a static bridge topic

        """
        existing = self._bindings.get(topic)
        if existing is not None and existing.static:
            msg = f"Topic {topic!r} is a bridge topic and cannot be re-bound"
            raise ValueError(msg)
        self._bindings[topic] = TopicBinding(topic, handler, kind)
        logger.debug("%s bound topic: %s", self.lp, topic)

    def unbind(self, topic: str) -> bool:
        """Remove a device binding. Returns False if nothing was bound."""
        existing = self._bindings.get(topic)
        if existing is None:
            return False
        if existing.static:
            msg = f"Topic {topic!r} is a bridge topic and cannot be unbound"
            raise ValueError(msg)
        del self._bindings[topic]
        logger.debug("%s unbound topic: %s", self.lp, topic)
        return True

    async def subscribe_all(self, bus: BusClient) -> None:
        """Subscribe every bound topic once, in registration order.

        Raises:
            SubscriptionError: any subscription fails

        """
        lp = f"{self.lp}subscribe_all:"
        topics = self.topics
        for topic in topics:
            try:
                await bus.subscribe(topic)
            except BusError as e:
                metrics.record_subscribe("failure")
                logger.error("%s Subscription failed", lp, extra={"topic": topic, "error": str(e)})
                raise SubscriptionError(topic, str(e)) from e
            metrics.record_subscribe("success")
        logger.info("%s Subscribed to %d topics", lp, len(topics))

    async def dispatch(self, topic: str, payload: bytes) -> bool:
        """Await the handler bound to `topic`. Returns False for unknown topics.

        Handler exceptions are logged and never propagate.
        """
        lp = f"{self.lp}dispatch:"
        binding = self._bindings.get(topic)
        if binding is None:
            metrics.record_unrouted()
            logger.debug("%s No binding for topic, dropping message", lp, extra={"topic": topic})
            return False
        metrics.record_dispatch(binding.kind)
        try:
            await binding.handler(payload)
        except Exception as e:
            metrics.record_handler_error(binding.kind)
            logger.exception("%s Handler failed", lp, extra={"topic": topic, "error": str(e)})
        return True

    async def run(self, messages: AsyncIterator[aiomqtt.Message]) -> None:
        """Consume inbound messages one at a time until the iterator ends or raises."""
        async for message in messages:
            with correlation_context():
                await self.dispatch(message.topic.value, payload_bytes(message.payload))
