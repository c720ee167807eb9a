"""Runtime settings.

Environment variables (optionally loaded from a dotenv file first) provide the
base values; a YAML settings file, when given, overlays them.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hkz2m import const
from hkz2m.const import HAP_STATE_FILE_NAME, YES_ANSWER
from hkz2m.exceptions import ConfigError
from hkz2m.logging_abstraction import get_logger

__all__ = ["BridgeSettings", "load_settings"]

logger = get_logger(__name__)

# field name -> environment variable
_ENV_FIELDS: dict[str, str] = {
    "mqtt_host": "HKZ2M_MQTT_HOST",
    "mqtt_port": "HKZ2M_MQTT_PORT",
    "mqtt_user": "HKZ2M_MQTT_USER",
    "mqtt_pass": "HKZ2M_MQTT_PASS",
    "mqtt_client_id": "HKZ2M_MQTT_CLIENT_ID",
    "base_topic": "HKZ2M_BASE_TOPIC",
    "hap_pin": "HKZ2M_HAP_PIN",
    "hap_port": "HKZ2M_HAP_PORT",
    "persist_dir": "HKZ2M_PERSIST_DIR",
    "bridge_name": "HKZ2M_BRIDGE_NAME",
    "bridge_model": "HKZ2M_BRIDGE_MODEL",
    "bridge_manufacturer": "HKZ2M_BRIDGE_MANUFACTURER",
    "reconnect_initial_delay": "HKZ2M_RECONNECT_INITIAL_DELAY",
    "reconnect_max_delay": "HKZ2M_RECONNECT_MAX_DELAY",
    "publish_queue_size": "HKZ2M_PUBLISH_QUEUE_SIZE",
    "metrics_port": "HKZ2M_METRICS_PORT",
    "debug": "HKZ2M_DEBUG",
}


class BridgeSettings(BaseModel):
    """Everything the bridge needs to know at startup."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    mqtt_host: str = const.HKZ2M_MQTT_HOST
    mqtt_port: int = Field(default=const.HKZ2M_MQTT_PORT, gt=0, lt=65536)
    mqtt_user: str | None = const.HKZ2M_MQTT_USER
    mqtt_pass: str | None = const.HKZ2M_MQTT_PASS
    mqtt_client_id: str = const.HKZ2M_MQTT_CLIENT_ID
    base_topic: str = const.HKZ2M_BASE_TOPIC

    hap_pin: str = const.HKZ2M_HAP_PIN
    hap_port: int = Field(default=const.HKZ2M_HAP_PORT, ge=0, lt=65536)
    persist_dir: Path = Path(const.HKZ2M_PERSIST_DIR)
    bridge_name: str = const.HKZ2M_BRIDGE_NAME
    bridge_model: str = const.HKZ2M_BRIDGE_MODEL
    bridge_manufacturer: str = const.HKZ2M_BRIDGE_MANUFACTURER

    reconnect_initial_delay: float = Field(default=const.HKZ2M_RECONNECT_INITIAL_DELAY, gt=0)
    reconnect_max_delay: float = Field(default=const.HKZ2M_RECONNECT_MAX_DELAY, gt=0)
    publish_queue_size: int = Field(default=const.HKZ2M_PUBLISH_QUEUE_SIZE, gt=0)
    metrics_port: int = Field(default=const.HKZ2M_METRICS_PORT, ge=0, lt=65536)
    debug: bool = const.HKZ2M_DEBUG

    @field_validator("hap_pin", mode="before")
    @classmethod
    def _validate_pin(cls, value: Any) -> str:
        pin = str(value).replace("-", "").strip()
        if len(pin) != 8 or not pin.isdigit():
            msg = "hap_pin must be 8 digits"
            raise ValueError(msg)
        return pin

    @field_validator("base_topic")
    @classmethod
    def _strip_base_topic(cls, value: str) -> str:
        topic = value.strip("/")
        if not topic:
            msg = "base_topic must not be empty"
            raise ValueError(msg)
        return topic

    @field_validator("debug", mode="before")
    @classmethod
    def _parse_debug(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.casefold() in YES_ANSWER
        return bool(value)

    @property
    def persist_file(self) -> Path:
        """HAP pairing/state file inside the persistence directory."""
        return self.persist_dir / HAP_STATE_FILE_NAME

    def topic(self, suffix: str) -> str:
        """Absolute topic for `suffix` under the base topic."""
        return f"{self.base_topic}/{suffix}"

    @classmethod
    def from_env(cls) -> BridgeSettings:
        """Build settings from the current environment.

        Re-reads `os.environ` at call time, so variables loaded from a dotenv
        file after import are honoured.

        Raises:
            ConfigError: an environment value fails validation

        """
        values: dict[str, Any] = {}
        for field, env_name in _ENV_FIELDS.items():
            raw = os.environ.get(env_name)
            if raw is None or raw == "":
                continue
            values[field] = raw
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            msg = f"Invalid environment settings: {e}"
            raise ConfigError(msg) from e

    def merged_with_file(self, config_file: Path) -> BridgeSettings:
        """Return a copy with the YAML file's values laid over this one.

        Raises:
            ConfigError: file missing, unparsable, not a mapping, or invalid

        """
        lp = "BridgeSettings:merged_with_file:"
        logger.debug("%s Parsing settings file: %s", lp, config_file)
        try:
            with config_file.open() as f:
                data = yaml.safe_load(f)
        except OSError as e:
            msg = f"Cannot read settings file {config_file}: {e}"
            raise ConfigError(msg) from e
        except yaml.YAMLError as e:
            msg = f"Cannot parse settings file {config_file}: {e}"
            raise ConfigError(msg) from e

        if data is None:
            logger.warning("%s Settings file is empty", lp, extra={"config_path": str(config_file)})
            return self
        if not isinstance(data, dict):
            msg = f"Settings file {config_file} must contain a mapping"
            raise ConfigError(msg)

        merged = self.model_dump()
        merged.update(data)
        try:
            settings = type(self).model_validate(merged)
        except ValidationError as e:
            msg = f"Invalid settings in {config_file}: {e}"
            raise ConfigError(msg) from e
        logger.info("%s Settings file applied", lp, extra={"config_path": str(config_file), "keys": sorted(data)})
        return settings


def load_settings(config_file: Path | None = None) -> BridgeSettings:
    """Environment settings, overlaid by `config_file` when one is given."""
    settings = BridgeSettings.from_env()
    if config_file is not None:
        settings = settings.merged_with_file(config_file.expanduser().resolve())
    return settings
