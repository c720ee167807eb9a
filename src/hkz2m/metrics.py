"""Prometheus metrics for the bridge."""

import threading
from typing import Final

from prometheus_client import Counter, Gauge, start_http_server

hkz2m_messages_dispatched_total: Final = Counter(
    "hkz2m_messages_dispatched_total",
    "Inbound bus messages dispatched to a handler",
    ["kind"],
)

hkz2m_messages_unrouted_total: Final = Counter(
    "hkz2m_messages_unrouted_total",
    "Inbound bus messages with no matching binding",
)

hkz2m_handler_errors_total: Final = Counter(
    "hkz2m_handler_errors_total",
    "Handler exceptions caught by the dispatch loop",
    ["kind"],
)

hkz2m_decode_errors_total: Final = Counter(
    "hkz2m_decode_errors_total",
    "Inbound payloads that failed to decode",
    ["kind"],
)

hkz2m_reconcile_total: Final = Counter(
    "hkz2m_reconcile_total",
    "Inventory reconciliation passes",
    ["outcome"],
)

hkz2m_publish_total: Final = Counter(
    "hkz2m_publish_total",
    "Outbound command publishes",
    ["outcome"],
)

hkz2m_subscribe_total: Final = Counter(
    "hkz2m_subscribe_total",
    "Topic subscription attempts",
    ["outcome"],
)

hkz2m_active_devices: Final = Gauge(
    "hkz2m_active_devices",
    "Accessories currently served",
)

hkz2m_connection_state: Final = Gauge(
    "hkz2m_connection_state",
    "Current bus connection state",
    ["state"],
)

_CONNECTION_STATES = ("disconnected", "connecting", "connected", "stopping", "terminated")

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int) -> bool:
    """Start the Prometheus HTTP exporter once. Returns True if this call started it."""
    with _server_lock:
        if _server_state["started"]:
            return False
        start_http_server(port)
        _server_state["started"] = True
        return True


def record_dispatch(kind: str) -> None:
    hkz2m_messages_dispatched_total.labels(kind=kind).inc()


def record_unrouted() -> None:
    hkz2m_messages_unrouted_total.inc()


def record_handler_error(kind: str) -> None:
    hkz2m_handler_errors_total.labels(kind=kind).inc()


def record_decode_error(kind: str) -> None:
    hkz2m_decode_errors_total.labels(kind=kind).inc()


def record_reconcile(outcome: str) -> None:
    hkz2m_reconcile_total.labels(outcome=outcome).inc()


def record_publish(outcome: str) -> None:
    hkz2m_publish_total.labels(outcome=outcome).inc()


def record_subscribe(outcome: str) -> None:
    hkz2m_subscribe_total.labels(outcome=outcome).inc()


def record_active_devices(count: int) -> None:
    hkz2m_active_devices.set(count)


def record_connection_state(state: str) -> None:
    """Set the gauge to 1 for `state` and 0 for every other state."""
    for s in _CONNECTION_STATES:
        hkz2m_connection_state.labels(state=s).set(1 if s == state else 0)
