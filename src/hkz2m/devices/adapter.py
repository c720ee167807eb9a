"""Turn a device descriptor into an ActiveDevice, or skip it."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hkz2m.devices.light import BrightnessScale, ColoredLightbulb, LightDevice
from hkz2m.logging_abstraction import get_logger
from hkz2m.utils import parse_ieee_address

if TYPE_CHECKING:
    from pyhap.accessory_driver import AccessoryDriver

    from hkz2m.context import BridgeContext
    from hkz2m.devices.base_device import ActiveDevice
    from hkz2m.structs import DeviceDescriptor, Feature

logger = get_logger(__name__)

# The bridge accessory always owns aid 1
BRIDGE_AID = 1


def find_specific_feature(descriptor: DeviceDescriptor) -> Feature | None:
    """First exposed feature that has nested features of its own."""
    return descriptor.find_specific_feature()


def accessory_id_for(descriptor: DeviceDescriptor) -> int | None:
    """Accessory id derived from the IEEE address; None lets the bridge pick one."""
    lp = "adapter:accessory_id:"
    try:
        aid = parse_ieee_address(descriptor.ieee_address)
    except ValueError as e:
        logger.warning(
            "%s Unparsable IEEE address, using a bridge-assigned id",
            lp,
            extra={"device": descriptor.friendly_name, "ieee_address": descriptor.ieee_address, "error": str(e)},
        )
        return None
    if aid == BRIDGE_AID:
        logger.warning(
            "%s IEEE address collides with the bridge id, using a bridge-assigned id",
            lp,
            extra={"device": descriptor.friendly_name, "ieee_address": descriptor.ieee_address},
        )
        return None
    return aid


def build_light(
    ctx: BridgeContext,
    driver: AccessoryDriver,
    descriptor: DeviceDescriptor,
    feature: Feature,
) -> LightDevice:
    accessory = ColoredLightbulb(driver, descriptor.friendly_name, aid=accessory_id_for(descriptor))
    info: dict[str, str] = {
        "manufacturer": descriptor.vendor,
        "model": descriptor.model,
        "serial_number": descriptor.ieee_address,
    }
    if descriptor.software_build_id:
        info["firmware_revision"] = descriptor.software_build_id
    accessory.set_info_service(**info)
    return LightDevice(ctx, descriptor, accessory, BrightnessScale.from_feature(feature))


def build_active_device(
    ctx: BridgeContext,
    driver: AccessoryDriver,
    descriptor: DeviceDescriptor,
) -> ActiveDevice | None:
    """Build the accessory for `descriptor` against `driver`.

    Returns None when the device exposes no capability that maps to an
    accessory. Does not bind or subscribe anything.
    """
    lp = "adapter:build:"
    feature = find_specific_feature(descriptor)
    if feature is None or not descriptor.is_light:
        logger.info(
            "%s Skipping device without a supported capability",
            lp,
            extra={
                "device": descriptor.friendly_name,
                "model": descriptor.model,
                "description": descriptor.description,
                "ieee_address": descriptor.ieee_address,
                "capability": feature.type if feature is not None else None,
            },
        )
        return None

    device = build_light(ctx, driver, descriptor, feature)
    logger.info(
        "%s Built light accessory",
        lp,
        extra={
            "device": descriptor.friendly_name,
            "model": descriptor.model,
            "ieee_address": descriptor.ieee_address,
            "aid": device.accessory.aid,
            "brightness_scale": repr(device.brightness_scale),
        },
    )
    for sub in feature.features:
        logger.debug("%s   %s (%s) access=%s", lp, sub.name, sub.type, sub.access_mask.describe())
    return device
