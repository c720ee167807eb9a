"""Payload models for the Zigbee2MQTT bridge topics.

All inbound payloads are decoded with pydantic; a `ValidationError` (which
also covers malformed JSON) is the single decode failure the handlers catch.
Unknown fields are ignored so newer Zigbee2MQTT releases keep decoding.
"""

from __future__ import annotations

import json
from enum import IntFlag, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from typing_extensions import override

from hkz2m.const import DEVICE_TYPE_COORDINATOR, LIGHT_FEATURE_TYPE

__all__ = [
    "BindingTarget",
    "BridgeInfo",
    "BridgeStatus",
    "ColorXY",
    "CoordinatorInfo",
    "DeviceBinding",
    "DeviceClusters",
    "DeviceDefinition",
    "DeviceDescriptor",
    "DeviceEndpoint",
    "Feature",
    "FeatureAccess",
    "LightState",
    "NetworkInfo",
    "decode_inventory",
]


class BridgeStatus(StrEnum):
    """Availability of the Zigbee2MQTT bridge as reported on `bridge/state`."""

    ONLINE = "online"
    OFFLINE = "offline"

    @classmethod
    def from_payload(cls, payload: bytes) -> BridgeStatus:
        """Anything other than "online" counts as offline.

        Zigbee2MQTT 1.x publishes the bare word, newer releases publish
        `{"state": "online"}`; both are accepted.
        """
        text = payload.decode("utf-8", errors="replace").strip()
        if text.startswith("{"):
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                return cls.OFFLINE
            text = str(data.get("state", "")) if isinstance(data, dict) else ""
        return cls.ONLINE if text == cls.ONLINE.value else cls.OFFLINE


class FeatureAccess(IntFlag):
    """Access bits of an exposed feature."""

    PUBLISHED = 1
    SET = 2
    GET = 4

    def describe(self) -> str:
        """Render as e.g. `0b011 [Published|Set]`."""
        names = [flag.name.capitalize() for flag in FeatureAccess if flag in self and flag.name]
        return f"0b{int(self):03b} [{'|'.join(names)}]"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class Feature(_Frozen):
    """One node of a device's capability tree; composite nodes nest `features`.

    The payload key `property` is exposed as `property_`.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    type: str = ""
    name: str = ""
    access: int = 0
    description: str = ""
    property_: str = Field(default="", alias="property")
    unit: str | None = None
    value_max: float | None = None
    value_min: float | None = None
    endpoint: str | int | None = None
    values: list[Any] = Field(default_factory=list)
    features: list[Feature] = Field(default_factory=list)

    @property
    def access_mask(self) -> FeatureAccess:
        return FeatureAccess(self.access & 0b111)

    @property
    def is_composite(self) -> bool:
        return len(self.features) > 0


class DeviceDefinition(_Frozen):
    description: str = ""
    model: str = ""
    vendor: str = ""
    exposes: list[Feature] = Field(default_factory=list)


class BindingTarget(_Frozen):
    id: int | None = None
    endpoint: int | None = None
    ieee_address: str | None = None
    type: str = ""


class DeviceBinding(_Frozen):
    cluster: str = ""
    target: BindingTarget | None = None


class DeviceClusters(_Frozen):
    input: list[str] = Field(default_factory=list)
    output: list[str] = Field(default_factory=list)


class DeviceEndpoint(_Frozen):
    bindings: list[DeviceBinding] = Field(default_factory=list)
    clusters: DeviceClusters = Field(default_factory=DeviceClusters)


class DeviceDescriptor(_Frozen):
    """Snapshot of one device from a `bridge/devices` message."""

    type: str = ""
    friendly_name: str
    ieee_address: str
    interview_completed: bool = False
    interviewing: bool = False
    supported: bool = False
    network_address: int | None = None
    power_source: str | None = None
    date_code: str | None = None
    software_build_id: str | None = None
    definition: DeviceDefinition | None = None
    endpoints: dict[int, DeviceEndpoint] = Field(default_factory=dict)

    @property
    def is_coordinator(self) -> bool:
        return self.type == DEVICE_TYPE_COORDINATOR

    @property
    def is_eligible(self) -> bool:
        """Not the coordinator, and fully interviewed and supported."""
        if self.is_coordinator:
            return False
        return not self.interviewing and self.interview_completed and self.supported

    @property
    def exposes(self) -> list[Feature]:
        return self.definition.exposes if self.definition else []

    @property
    def model(self) -> str:
        return self.definition.model if self.definition else ""

    @property
    def vendor(self) -> str:
        return self.definition.vendor if self.definition else ""

    @property
    def description(self) -> str:
        return self.definition.description if self.definition else ""

    def find_specific_feature(self) -> Feature | None:
        """First exposed feature that itself has nested features, if any."""
        for feature in self.exposes:
            if feature.is_composite:
                return feature
        return None

    @property
    def is_light(self) -> bool:
        feature = self.find_specific_feature()
        return feature is not None and feature.type == LIGHT_FEATURE_TYPE

    @override
    def __str__(self) -> str:
        return f"{self.friendly_name} ({self.model}, {self.description}, {self.ieee_address})"


_inventory_adapter: TypeAdapter[list[DeviceDescriptor]] = TypeAdapter(list[DeviceDescriptor])


def decode_inventory(payload: bytes | str) -> list[DeviceDescriptor]:
    """Decode a `bridge/devices` payload, preserving device order.

    Raises:
        ValidationError: payload is not JSON or not a list of devices

    """
    return _inventory_adapter.validate_json(payload)


class ColorXY(BaseModel):
    model_config = ConfigDict(extra="ignore")

    x: float | None = None
    y: float | None = None


class LightState(BaseModel):
    """State published by Zigbee2MQTT on a light's own topic."""

    model_config = ConfigDict(extra="ignore")

    state: str | None = None
    brightness: int | None = None
    color_temp: int | None = None
    color: ColorXY | None = None
    linkquality: int | None = None

    @property
    def is_on(self) -> bool | None:
        if self.state is None:
            return None
        return self.state.upper() == "ON"


class CoordinatorInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class NetworkInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    channel: int | None = None
    pan_id: int | None = None
    extended_pan_id: str | int | list[int] | None = None


class BridgeInfo(BaseModel):
    """Validated `bridge/info` payload. Kept for diagnostics only."""

    model_config = ConfigDict(extra="ignore")

    version: str | None = None
    commit: str | None = None
    coordinator: CoordinatorInfo | None = None
    network: NetworkInfo | None = None
    log_level: str | None = None
    permit_join: bool = False
    config: dict[str, Any] = Field(default_factory=dict)
