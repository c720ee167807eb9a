"""Colored light: HomeKit lightbulb mirrored onto a Zigbee2MQTT light."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from pydantic import ValidationError
from typing_extensions import override
from pyhap.accessory import Accessory
from pyhap.const import CATEGORY_LIGHTBULB

from hkz2m import metrics
from hkz2m.const import PAYLOAD_OFF, PAYLOAD_ON
from hkz2m.devices.base_device import ActiveDevice
from hkz2m.logging_abstraction import get_logger
from hkz2m.structs import LightState

if TYPE_CHECKING:
    from pyhap.accessory_driver import AccessoryDriver

    from hkz2m.context import BridgeContext
    from hkz2m.structs import DeviceDescriptor, Feature

logger = get_logger(__name__)

HAP_BRIGHTNESS_MAX = 100
DEFAULT_DEVICE_BRIGHTNESS_MIN = 0
DEFAULT_DEVICE_BRIGHTNESS_MAX = 254


class ColoredLightbulb(Accessory):
    """Lightbulb with On, Brightness, Hue and Saturation."""

    category = CATEGORY_LIGHTBULB

    def __init__(self, driver: AccessoryDriver, display_name: str, *, aid: int | None = None) -> None:
        super().__init__(driver, display_name, aid=aid)
        serv_light = self.add_preload_service("Lightbulb", chars=["On", "Brightness", "Hue", "Saturation"])
        self.char_on = serv_light.configure_char("On")
        self.char_brightness = serv_light.configure_char("Brightness")
        self.char_hue = serv_light.configure_char("Hue")
        self.char_saturation = serv_light.configure_char("Saturation")


class BrightnessScale:
    """Maps between the HAP 0..100 brightness range and the device's own range."""

    def __init__(
        self,
        device_min: float = DEFAULT_DEVICE_BRIGHTNESS_MIN,
        device_max: float = DEFAULT_DEVICE_BRIGHTNESS_MAX,
    ) -> None:
        if device_max <= device_min:
            device_min, device_max = DEFAULT_DEVICE_BRIGHTNESS_MIN, DEFAULT_DEVICE_BRIGHTNESS_MAX
        self.device_min = device_min
        self.device_max = device_max

    @classmethod
    def from_feature(cls, light_feature: Feature) -> BrightnessScale:
        for feature in light_feature.features:
            if feature.name == "brightness" and feature.value_max is not None:
                return cls(feature.value_min or DEFAULT_DEVICE_BRIGHTNESS_MIN, feature.value_max)
        return cls()

    def to_hap(self, value: int) -> int:
        span = self.device_max - self.device_min
        percent = round((value - self.device_min) * HAP_BRIGHTNESS_MAX / span)
        return max(0, min(HAP_BRIGHTNESS_MAX, percent))

    def to_device(self, percent: int) -> int:
        span = self.device_max - self.device_min
        value = round(self.device_min + percent * span / HAP_BRIGHTNESS_MAX)
        return int(max(self.device_min, min(self.device_max, value)))

    def __repr__(self) -> str:
        return f"BrightnessScale({self.device_min}..{self.device_max})"


class LightDevice(ActiveDevice):
    """Two-way sync between a ColoredLightbulb and a Zigbee2MQTT light.

    HomeKit writes are published as commands and never change the accessory
    values; the accessory only follows state reported by the device.
    """

    lp: str = "LightDevice:"
    accessory: ColoredLightbulb

    def __init__(
        self,
        ctx: BridgeContext,
        descriptor: DeviceDescriptor,
        accessory: ColoredLightbulb,
        brightness_scale: BrightnessScale | None = None,
    ) -> None:
        super().__init__(ctx, descriptor, accessory)
        self.brightness_scale: BrightnessScale = brightness_scale or BrightnessScale()
        accessory.char_on.setter_callback = self._on_set_on
        accessory.char_brightness.setter_callback = self._on_set_brightness
        accessory.char_hue.setter_callback = self._on_set_hue
        accessory.char_saturation.setter_callback = self._on_set_saturation

    def _on_set_on(self, value: bool) -> None:
        payload = PAYLOAD_ON if value else PAYLOAD_OFF
        logger.info("%s %s: set state -> %s", self.lp, self.name, payload)
        future = self.publish_command("state", payload)
        future.add_done_callback(lambda f: self._log_failed_publish(f, "state"))

    def _on_set_brightness(self, value: int) -> None:
        device_value = self.brightness_scale.to_device(int(value))
        logger.info("%s %s: set brightness -> %s (%s%%)", self.lp, self.name, device_value, value)
        future = self.publish_command("brightness", str(device_value))
        future.add_done_callback(lambda f: self._log_failed_publish(f, "brightness"))

    def _on_set_hue(self, value: float) -> None:
        logger.info("%s %s: hue -> %s (not forwarded)", self.lp, self.name, value)

    def _on_set_saturation(self, value: float) -> None:
        logger.info("%s %s: saturation -> %s (not forwarded)", self.lp, self.name, value)

    def _log_failed_publish(self, future: asyncio.Future[bool], attribute: str) -> None:
        if future.cancelled() or not future.result():
            logger.warning("%s %s: command not delivered", self.lp, self.name, extra={"attribute": attribute})

    @override
    async def handle_state(self, payload: bytes) -> None:
        """Apply a state message from the device to the accessory."""
        lp = f"{self.lp}handle_state:"
        try:
            state = LightState.model_validate_json(payload)
        except ValidationError as e:
            metrics.record_decode_error("device_state")
            logger.warning(
                "%s Invalid state payload, dropping",
                lp,
                extra={"device": self.name, "error": e.errors(include_url=False)[:3]},
            )
            return

        on = state.is_on
        if on is not None:
            self.accessory.char_on.set_value(on)
        if state.brightness is not None:
            self.accessory.char_brightness.set_value(self.brightness_scale.to_hap(state.brightness))
        logger.debug(
            "%s %s: state=%s brightness=%s linkquality=%s",
            lp,
            self.name,
            state.state,
            state.brightness,
            state.linkquality,
        )
