"""
Unit tests for the Prometheus metrics helpers.
"""

from unittest.mock import patch

from prometheus_client import REGISTRY

from hkz2m import metrics


def _sample(name: str, **labels: str) -> float | None:
    return REGISTRY.get_sample_value(name, labels)


class TestRecorders:
    """Tests for the record_* helpers"""

    def test_connection_state_is_one_hot(self):
        metrics.record_connection_state("connected")

        assert _sample("hkz2m_connection_state", state="connected") == 1
        assert _sample("hkz2m_connection_state", state="disconnected") == 0
        assert _sample("hkz2m_connection_state", state="terminated") == 0

    def test_counters_increment(self):
        before = _sample("hkz2m_publish_total", outcome="success") or 0.0

        metrics.record_publish("success")

        assert _sample("hkz2m_publish_total", outcome="success") == before + 1

    def test_active_devices_gauge(self):
        metrics.record_active_devices(3)

        assert _sample("hkz2m_active_devices") == 3


class TestMetricsServer:
    """Tests for start_metrics_server"""

    def test_started_once(self, monkeypatch):
        monkeypatch.setitem(metrics._server_state, "started", False)
        with patch("hkz2m.metrics.start_http_server") as start_http_server:
            assert metrics.start_metrics_server(9464) is True
            assert metrics.start_metrics_server(9464) is False

        start_http_server.assert_called_once_with(9464)
