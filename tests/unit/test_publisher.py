"""
Unit tests for CommandPublisher.

Tests ordering, per-request futures, queue overflow and shutdown.
"""

import asyncio

import aiomqtt
import pytest

from hkz2m.mqtt.client import BusClient
from hkz2m.mqtt.publisher import CommandPublisher


@pytest.fixture
def bus(mqtt_client) -> BusClient:
    bus = BusClient()
    bus.attach(mqtt_client)
    return bus


class TestCommandPublisher:
    """Tests for enqueue and the worker"""

    @pytest.mark.asyncio
    async def test_publishes_in_enqueue_order(self, bus, mqtt_client):
        publisher = CommandPublisher(bus)
        publisher.start()

        futures = [publisher.enqueue("z2m/lamp/set/state", "ON"), publisher.enqueue("z2m/lamp/set/brightness", "127")]
        results = await asyncio.gather(*futures)

        assert results == [True, True]
        assert [c.args for c in mqtt_client.publish.await_args_list] == [
            ("z2m/lamp/set/state", b"ON"),
            ("z2m/lamp/set/brightness", b"127"),
        ]
        await publisher.stop()

    @pytest.mark.asyncio
    async def test_enqueue_does_not_publish_synchronously(self, bus, mqtt_client):
        publisher = CommandPublisher(bus)
        publisher.start()

        future = publisher.enqueue("z2m/lamp/set/state", "OFF")

        assert not future.done()
        mqtt_client.publish.assert_not_called()
        assert await future is True
        await publisher.stop()

    @pytest.mark.asyncio
    async def test_failed_publish_resolves_false(self, bus, mqtt_client):
        mqtt_client.publish.side_effect = aiomqtt.MqttError("gone")
        publisher = CommandPublisher(bus)
        publisher.start()

        assert await publisher.enqueue("z2m/lamp/set/state", "ON") is False
        await publisher.stop()

    @pytest.mark.asyncio
    async def test_not_connected_resolves_false(self):
        publisher = CommandPublisher(BusClient())
        publisher.start()

        assert await publisher.enqueue("z2m/lamp/set/state", "ON") is False
        await publisher.stop()

    @pytest.mark.asyncio
    async def test_worker_survives_failures(self, bus, mqtt_client):
        mqtt_client.publish.side_effect = [aiomqtt.MqttError("gone"), None]
        publisher = CommandPublisher(bus)
        publisher.start()

        first = publisher.enqueue("z2m/a/set/state", "ON")
        second = publisher.enqueue("z2m/b/set/state", "ON")

        assert await asyncio.gather(first, second) == [False, True]
        await publisher.stop()

    @pytest.mark.asyncio
    async def test_overflow_resolves_false_immediately(self, bus):
        publisher = CommandPublisher(bus, maxsize=1)

        first = publisher.enqueue("z2m/a/set/state", "ON")
        overflow = publisher.enqueue("z2m/b/set/state", "ON")

        assert overflow.done()
        assert overflow.result() is False
        assert not first.done()
        await publisher.stop()
        assert first.result() is False

    @pytest.mark.asyncio
    async def test_stop_fails_queued_requests(self, bus):
        publisher = CommandPublisher(bus)
        futures = [publisher.enqueue(f"z2m/{i}/set/state", "ON") for i in range(3)]

        await publisher.stop()

        assert [f.result() for f in futures] == [False, False, False]
        assert publisher.pending == 0

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, bus):
        publisher = CommandPublisher(bus)
        publisher.start()
        worker = publisher._worker

        publisher.start()

        assert publisher._worker is worker
        await publisher.stop()
        assert not publisher.running
