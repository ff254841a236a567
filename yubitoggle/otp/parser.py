"""
ykman Output Parsing

Pure functions that turn ykman text output into structured values.
No I/O and no exceptions for malformed input: missing fields fall
back to defaults.

Example:
    serials = parse_serials("12345678\\n87654321\\n")
    info = parse_device_info(info_text)
"""

from typing import List
import re

from .types import DeviceInfo, DEFAULT_DEVICE_NAME

DEVICE_TYPE_MARKER = "Device type:"
OTP_ENABLED_PATTERN = re.compile(r"OTP\s+Enabled")


def parse_serials(text: str) -> List[str]:
    """
    Parse ``ykman list --serials`` output.

    Lines are stripped and blank lines dropped. Order and duplicates
    are kept as ykman printed them.
    """
    return [line.strip() for line in text.splitlines() if line.strip()]


def parse_device_info(text: str) -> DeviceInfo:
    """
    Parse ``ykman --device <serial> info`` output.

    Expected shape:
        Device type: YubiKey 5C Nano
        ...
        Yubico OTP          Enabled

    Args:
        text: Raw info output

    Returns:
        DeviceInfo with the device name and OTP interface state
    """
    name = DEFAULT_DEVICE_NAME
    for line in text.splitlines():
        if DEVICE_TYPE_MARKER in line:
            parts = line.split(":")
            if len(parts) >= 2 and parts[1].strip():
                name = parts[1].strip()
            break

    otp_enabled = "OTP" in text and OTP_ENABLED_PATTERN.search(text) is not None

    return DeviceInfo(name=name, otp_enabled=otp_enabled)
