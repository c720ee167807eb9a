"""Exception hierarchy for the bridge.

Only `SubscriptionError` and `ConfigError` are allowed to end the process;
every other error is logged and handled by the component that raised it.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class BusError(BridgeError):
    """A bus operation (publish, subscribe, unsubscribe) failed.

    Attributes:
        operation: The bus operation that failed
        topic: Topic involved, if any

    """

    def __init__(self, operation: str, topic: str | None = None, reason: str = "") -> None:
        self.operation: str = operation
        self.topic: str | None = topic
        self.reason: str = reason
        detail = f" on {topic}" if topic else ""
        suffix = f": {reason}" if reason else ""
        super().__init__(f"{operation} failed{detail}{suffix}")


class BusNotConnectedError(BusError):
    """Raised when a bus operation is attempted without a live connection."""

    def __init__(self, operation: str, topic: str | None = None) -> None:
        super().__init__(operation, topic, "not connected")


class SubscriptionError(BridgeError):
    """The post-connect subscription batch failed; the bridge cannot work without it.

    Attributes:
        topic: First topic that could not be subscribed

    """

    def __init__(self, topic: str, reason: str = "") -> None:
        self.topic: str = topic
        self.reason: str = reason
        super().__init__(f"Subscription to {topic} failed: {reason}" if reason else f"Subscription to {topic} failed")


class ConfigError(BridgeError):
    """Settings file missing, unreadable or invalid."""
