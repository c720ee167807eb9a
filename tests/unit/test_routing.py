"""
Unit tests for TopicRouter.

Tests binding rules, the post-connect subscription batch and dispatch.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import aiomqtt
import pytest

from hkz2m.correlation import get_correlation_id
from hkz2m.exceptions import SubscriptionError
from hkz2m.mqtt.client import BusClient
from hkz2m.mqtt.routing import TopicRouter, payload_bytes


def _message(topic: str, payload: bytes) -> SimpleNamespace:
    return SimpleNamespace(topic=SimpleNamespace(value=topic), payload=payload)


async def _aiter(items):
    for item in items:
        yield item


class TestBinding:
    """Tests for bind_static / bind / unbind"""

    def test_duplicate_static_binding_raises(self):
        router = TopicRouter()
        router.bind_static("z2m/bridge/state", AsyncMock(), "bridge_state")

        with pytest.raises(ValueError, match="already bound"):
            router.bind_static("z2m/bridge/state", AsyncMock(), "bridge_state")

    def test_rebinding_device_topic_replaces_handler(self):
        router = TopicRouter()
        first, second = AsyncMock(), AsyncMock()

        router.bind("z2m/lamp", first)
        router.bind("z2m/lamp", second)

        assert len(router) == 1
        binding = router.get("z2m/lamp")
        assert binding is not None
        assert binding.handler is second

    def test_device_binding_cannot_shadow_bridge_topic(self):
        router = TopicRouter()
        router.bind_static("z2m/bridge/devices", AsyncMock(), "bridge_devices")

        with pytest.raises(ValueError, match="bridge topic"):
            router.bind("z2m/bridge/devices", AsyncMock())

    def test_unbind(self):
        router = TopicRouter()
        router.bind("z2m/lamp", AsyncMock())

        assert router.unbind("z2m/lamp") is True
        assert router.unbind("z2m/lamp") is False
        assert "z2m/lamp" not in router

    def test_topics_in_registration_order(self):
        router = TopicRouter()
        router.bind_static("z2m/bridge/state", AsyncMock(), "bridge_state")
        router.bind("z2m/b", AsyncMock())
        router.bind("z2m/a", AsyncMock())

        assert router.topics == ["z2m/bridge/state", "z2m/b", "z2m/a"]


class TestSubscribeAll:
    """Tests for the post-connect subscription batch"""

    @pytest.mark.asyncio
    async def test_subscribes_every_binding_once(self, mqtt_client):
        router = TopicRouter()
        router.bind_static("z2m/bridge/state", AsyncMock(), "bridge_state")
        router.bind("z2m/lamp", AsyncMock())
        bus = BusClient()
        bus.attach(mqtt_client)

        await router.subscribe_all(bus)

        assert [c.args[0] for c in mqtt_client.subscribe.await_args_list] == ["z2m/bridge/state", "z2m/lamp"]

    @pytest.mark.asyncio
    async def test_failure_raises_subscription_error(self, mqtt_client):
        router = TopicRouter()
        router.bind_static("z2m/bridge/state", AsyncMock(), "bridge_state")
        mqtt_client.subscribe.side_effect = aiomqtt.MqttError("refused")
        bus = BusClient()
        bus.attach(mqtt_client)

        with pytest.raises(SubscriptionError) as exc_info:
            await router.subscribe_all(bus)

        assert exc_info.value.topic == "z2m/bridge/state"

    @pytest.mark.asyncio
    async def test_not_connected_raises_subscription_error(self):
        router = TopicRouter()
        router.bind("z2m/lamp", AsyncMock())

        with pytest.raises(SubscriptionError):
            await router.subscribe_all(BusClient())


class TestDispatch:
    """Tests for dispatch and the message loop"""

    @pytest.mark.asyncio
    async def test_dispatch_awaits_handler(self):
        router = TopicRouter()
        handler = AsyncMock()
        router.bind("z2m/lamp", handler)

        assert await router.dispatch("z2m/lamp", b'{"state": "ON"}') is True
        handler.assert_awaited_once_with(b'{"state": "ON"}')

    @pytest.mark.asyncio
    async def test_unknown_topic_is_dropped(self):
        router = TopicRouter()

        assert await router.dispatch("z2m/unknown", b"x") is False

    @pytest.mark.asyncio
    async def test_handler_exception_does_not_escape(self, caplog):
        router = TopicRouter()
        router.bind("z2m/lamp", AsyncMock(side_effect=RuntimeError("boom")))

        assert await router.dispatch("z2m/lamp", b"{}") is True
        assert "Handler failed" in caplog.text

    @pytest.mark.asyncio
    async def test_run_dispatches_in_order_with_fresh_correlation_ids(self):
        router = TopicRouter()
        seen: list[tuple[bytes, str | None]] = []

        async def handler(payload: bytes) -> None:
            seen.append((payload, get_correlation_id()))

        router.bind("z2m/lamp", handler)
        messages = [_message("z2m/lamp", b"1"), _message("z2m/other", b"x"), _message("z2m/lamp", b"2")]

        await router.run(_aiter(messages))

        assert [p for p, _ in seen] == [b"1", b"2"]
        assert seen[0][1] is not None
        assert seen[0][1] != seen[1][1]


class TestPayloadBytes:
    """Tests for payload normalization"""

    @pytest.mark.parametrize(
        ("payload", "expected"),
        [(b"abc", b"abc"), (bytearray(b"ab"), b"ab"), ("online", b"online"), (42, b"42"), (None, b"")],
    )
    def test_normalizes(self, payload, expected):
        assert payload_bytes(payload) == expected
