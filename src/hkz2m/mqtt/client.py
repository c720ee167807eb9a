"""Thin wrapper over the aiomqtt client.

The supervisor owns connecting; this class only forwards bus operations to
whichever client is currently attached and maps aiomqtt failures onto the
bridge's error taxonomy.
"""

from __future__ import annotations

import aiomqtt

from hkz2m.config import BridgeSettings
from hkz2m.exceptions import BusError, BusNotConnectedError
from hkz2m.logging_abstraction import get_logger

logger = get_logger(__name__)


def create_client(settings: BridgeSettings) -> aiomqtt.Client:
    """Fresh aiomqtt client for one connection attempt."""
    return aiomqtt.Client(
        hostname=settings.mqtt_host,
        port=settings.mqtt_port,
        username=settings.mqtt_user,
        password=settings.mqtt_pass,
        identifier=settings.mqtt_client_id,
    )


class BusClient:
    """Bus operations against the live connection, if any."""

    lp: str = "bus:"

    def __init__(self) -> None:
        self._client: aiomqtt.Client | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def attach(self, client: aiomqtt.Client) -> None:
        """Route bus operations to `client` (called once it has connected)."""
        self._client = client

    def detach(self) -> None:
        self._client = None

    def _require_client(self, operation: str, topic: str) -> aiomqtt.Client:
        if self._client is None:
            raise BusNotConnectedError(operation, topic)
        return self._client

    async def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> None:
        """Publish and wait for the client to accept the message.

        Raises:
            BusNotConnectedError: no live connection
            BusError: the broker or client rejected the publish

        """
        client = self._require_client("publish", topic)
        try:
            await client.publish(topic, payload, qos=qos, retain=retain)
        except aiomqtt.MqttCodeError as mqtt_code_exc:
            raise BusError("publish", topic, f"[MqttCodeError] {mqtt_code_exc}") from mqtt_code_exc
        except aiomqtt.MqttError as mqtt_err:
            raise BusError("publish", topic, f"[MqttError] {mqtt_err}") from mqtt_err

    async def subscribe(self, topic: str, qos: int = 0) -> None:
        """Subscribe and wait for the broker's SUBACK.

        Raises:
            BusNotConnectedError: no live connection
            BusError: the subscription was refused or the connection dropped

        """
        client = self._require_client("subscribe", topic)
        logger.debug("%s subscribe: %s", self.lp, topic)
        try:
            await client.subscribe(topic, qos=qos)
        except aiomqtt.MqttError as mqtt_err:
            raise BusError("subscribe", topic, str(mqtt_err)) from mqtt_err

    async def unsubscribe(self, topic: str) -> None:
        """Unsubscribe and wait for the broker's UNSUBACK.

        Raises:
            BusNotConnectedError: no live connection
            BusError: the request failed

        """
        client = self._require_client("unsubscribe", topic)
        logger.debug("%s unsubscribe: %s", self.lp, topic)
        try:
            await client.unsubscribe(topic)
        except aiomqtt.MqttError as mqtt_err:
            raise BusError("unsubscribe", topic, str(mqtt_err)) from mqtt_err
