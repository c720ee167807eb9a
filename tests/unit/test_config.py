"""
Unit tests for BridgeSettings.

Tests environment loading, YAML overlay and validation errors.
"""

from pathlib import Path

import pytest

from hkz2m.config import BridgeSettings, load_settings
from hkz2m.exceptions import ConfigError


class TestBridgeSettingsDefaults:
    """Tests for default values and helpers"""

    def test_defaults(self, monkeypatch):
        for name in ("HKZ2M_BASE_TOPIC", "HKZ2M_HAP_PIN", "HKZ2M_MQTT_CLIENT_ID"):
            monkeypatch.delenv(name, raising=False)

        settings = BridgeSettings.from_env()

        assert settings.base_topic == "zigbee2mqtt"
        assert settings.hap_pin == "11223399"
        assert settings.mqtt_client_id == "hkz2m"

    def test_persist_file_and_topic(self, tmp_path):
        settings = BridgeSettings(persist_dir=tmp_path, base_topic="z2m/")

        assert settings.persist_file == tmp_path / "accessory.state"
        assert settings.topic("bridge/devices") == "z2m/bridge/devices"

    def test_pin_accepts_dashed_form(self):
        assert BridgeSettings(hap_pin="112-23-399").hap_pin == "11223399"

    @pytest.mark.parametrize("pin", ["1234", "abcdefgh", "123456789"])
    def test_invalid_pin(self, pin):
        with pytest.raises(ValueError, match="8 digits"):
            BridgeSettings(hap_pin=pin)


class TestFromEnv:
    """Tests for BridgeSettings.from_env"""

    def test_reads_environment_at_call_time(self, monkeypatch):
        monkeypatch.setenv("HKZ2M_MQTT_HOST", "broker.lan")
        monkeypatch.setenv("HKZ2M_MQTT_PORT", "8883")
        monkeypatch.setenv("HKZ2M_DEBUG", "yes")

        settings = BridgeSettings.from_env()

        assert settings.mqtt_host == "broker.lan"
        assert settings.mqtt_port == 8883
        assert settings.debug is True

    def test_empty_values_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("HKZ2M_MQTT_USER", "")

        assert BridgeSettings.from_env().mqtt_user == BridgeSettings().mqtt_user

    def test_invalid_value_raises_config_error(self, monkeypatch):
        monkeypatch.setenv("HKZ2M_MQTT_PORT", "not-a-port")

        with pytest.raises(ConfigError, match="Invalid environment settings"):
            BridgeSettings.from_env()


class TestSettingsFile:
    """Tests for the YAML settings overlay"""

    def test_file_overrides_environment(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("HKZ2M_MQTT_HOST", "from-env")
        monkeypatch.setenv("HKZ2M_BRIDGE_NAME", "Env Bridge")
        config_file = tmp_path / "hkz2m.yaml"
        config_file.write_text("mqtt_host: from-file\nhap_port: 51900\n")

        settings = load_settings(config_file)

        assert settings.mqtt_host == "from-file"
        assert settings.hap_port == 51900
        assert settings.bridge_name == "Env Bridge"

    def test_empty_file_keeps_environment(self, tmp_path: Path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        assert load_settings(config_file) == BridgeSettings.from_env()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Cannot read"):
            load_settings(tmp_path / "missing.yaml")

    def test_unparsable_file(self, tmp_path: Path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("mqtt_host: [unclosed\n")

        with pytest.raises(ConfigError, match="Cannot parse"):
            load_settings(config_file)

    def test_non_mapping_file(self, tmp_path: Path):
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_settings(config_file)

    def test_unknown_key(self, tmp_path: Path):
        config_file = tmp_path / "typo.yaml"
        config_file.write_text("mqtt_hots: broker\n")

        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings(config_file)
