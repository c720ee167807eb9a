from __future__ import annotations

import sys
from pathlib import Path

from hkz2m.logging_abstraction import get_logger

logger = get_logger(__name__)

IEEE_PREFIX = "0x"


def parse_ieee_address(ieee_address: str) -> int:
    """Convert a Zigbee IEEE address (`0x` + hex) to an integer.

    Raises:
        ValueError: missing `0x` prefix, no digits, or non-hex characters

    """
    if not ieee_address.lower().startswith(IEEE_PREFIX):
        msg = f"IEEE address {ieee_address!r} lacks the {IEEE_PREFIX} prefix"
        raise ValueError(msg)
    digits = ieee_address[len(IEEE_PREFIX) :]
    if not digits:
        msg = f"IEEE address {ieee_address!r} has no digits"
        raise ValueError(msg)
    return int(digits, 16)


def format_pincode(pin: str) -> bytes:
    """`11223399` -> `b"112-23-399"`, the form HAP-python expects."""
    digits = pin.replace("-", "")
    if len(digits) != 8 or not digits.isdigit():
        msg = f"HomeKit PIN must be 8 digits, got {pin!r}"
        raise ValueError(msg)
    return f"{digits[:3]}-{digits[3:5]}-{digits[5:]}".encode()


def ensure_persist_dir(persist_dir: Path) -> Path:
    """Create the HAP persistence directory if needed; exits the process when that fails."""
    lp = "ensure_persist_dir:"
    path = persist_dir.expanduser().resolve()
    if not path.exists():
        try:
            path.mkdir(parents=True, exist_ok=True)
            logger.info("%s Created persistent directory: %s", lp, path.as_posix())
        except OSError:
            logger.exception("%s Failed to create persistent directory: %s - Exiting...", lp, path.as_posix())
            sys.exit(1)
    return path
