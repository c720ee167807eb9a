"""MQTT bus layer: client wrapper, topic router, command publisher and bridge topic handlers."""

from hkz2m.mqtt.client import BusClient, create_client
from hkz2m.mqtt.publisher import CommandPublisher, PublishRequest
from hkz2m.mqtt.routing import TopicBinding, TopicRouter

__all__ = [
    "BusClient",
    "CommandPublisher",
    "PublishRequest",
    "TopicBinding",
    "TopicRouter",
    "create_client",
]
