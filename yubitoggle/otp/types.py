"""
OTP Type Definitions - Dataclasses for YubiKey State

This module contains the dataclasses and enums shared by the OTP
subsystem. These are plain data containers with no I/O.

Classes:
    DeviceRecord: One connected YubiKey and its OTP interface state
    DeviceInfo: Parsed result of a per-device info lookup
    AppState: Application state (loading, ready, no device, ...)
    YkmanCommand: ykman invocation wrapper
    ToggleOutcome: Result of a single toggle request

Constants:
    AppStateKind: Application state enum
    YkmanAction: ykman command enum
    ToggleStatus: Toggle result enum
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, NamedTuple
from enum import Enum
from datetime import datetime


DEFAULT_DEVICE_NAME = "YubiKey"


# ============================================================
# Application State
# ============================================================

class AppStateKind(Enum):
    """Mutually exclusive application states."""
    LOADING = "loading"
    READY = "ready"
    NO_DEVICE = "no_device"
    TOOL_MISSING = "tool_missing"
    ERROR = "error"


@dataclass(frozen=True)
class AppState:
    """
    Current application state.

    Only ERROR carries a message. Use the classmethod constructors
    rather than building instances by hand.

    Attributes:
        kind: State discriminator
        message: Error message (ERROR only)
    """
    kind: AppStateKind
    message: Optional[str] = None

    @classmethod
    def loading(cls) -> "AppState":
        return cls(AppStateKind.LOADING)

    @classmethod
    def ready(cls) -> "AppState":
        return cls(AppStateKind.READY)

    @classmethod
    def no_device(cls) -> "AppState":
        return cls(AppStateKind.NO_DEVICE)

    @classmethod
    def tool_missing(cls) -> "AppState":
        return cls(AppStateKind.TOOL_MISSING)

    @classmethod
    def error(cls, message: str) -> "AppState":
        return cls(AppStateKind.ERROR, message)

    @property
    def is_ready(self) -> bool:
        return self.kind == AppStateKind.READY

    @property
    def is_error(self) -> bool:
        return self.kind == AppStateKind.ERROR

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "state": self.kind.value,
            "message": self.message,
        }


# ============================================================
# Devices
# ============================================================

@dataclass
class DeviceRecord:
    """
    A connected YubiKey.

    Attributes:
        serial: Device serial number (primary key)
        name: Human-readable device type, e.g. "YubiKey 5C Nano"
        otp_enabled: Whether the OTP USB interface is enabled
    """
    serial: str
    name: str = DEFAULT_DEVICE_NAME
    otp_enabled: bool = False

    @classmethod
    def default(cls, serial: str) -> "DeviceRecord":
        """Degraded record used when the info lookup for a serial fails."""
        return cls(serial=serial)

    @classmethod
    def from_device_info(cls, serial: str, info: "DeviceInfo") -> "DeviceRecord":
        """Create record from a parsed info lookup."""
        return cls(serial=serial, name=info.name, otp_enabled=info.otp_enabled)

    def copy(self) -> "DeviceRecord":
        return DeviceRecord(self.serial, self.name, self.otp_enabled)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "serial": self.serial,
            "name": self.name,
            "otp_enabled": self.otp_enabled,
        }


class DeviceInfo(NamedTuple):
    """Parsed output of ``ykman --device <serial> info``."""
    name: str
    otp_enabled: bool


# ============================================================
# ykman Commands
# ============================================================

class YkmanAction(Enum):
    """ykman operations used by the engine."""
    LIST_SERIALS = "list_serials"
    INFO = "info"
    ENABLE_OTP = "enable_otp"
    DISABLE_OTP = "disable_otp"


@dataclass
class YkmanCommand:
    """
    ykman invocation.

    Wraps one of the supported operations and renders it as an
    argument vector for the executor.

    Attributes:
        action: Operation to perform
        serial: Target device serial (None for listing)
    """
    action: YkmanAction
    serial: Optional[str] = None

    @classmethod
    def list_serials(cls) -> "YkmanCommand":
        return cls(YkmanAction.LIST_SERIALS)

    @classmethod
    def info(cls, serial: str) -> "YkmanCommand":
        return cls(YkmanAction.INFO, serial)

    @classmethod
    def set_otp(cls, serial: str, enable: bool) -> "YkmanCommand":
        action = YkmanAction.ENABLE_OTP if enable else YkmanAction.DISABLE_OTP
        return cls(action, serial)

    def to_args(self) -> List[str]:
        """Convert to ykman argument list."""
        if self.action == YkmanAction.LIST_SERIALS:
            return ["list", "--serials"]

        if not self.serial:
            raise ValueError(f"{self.action.value} requires a device serial")

        args = ["--device", self.serial]
        if self.action == YkmanAction.INFO:
            args.append("info")
        elif self.action == YkmanAction.ENABLE_OTP:
            args.extend(["config", "usb", "--enable", "OTP", "--force"])
        else:
            args.extend(["config", "usb", "--disable", "OTP", "--force"])
        return args


# ============================================================
# Toggle Results
# ============================================================

class ToggleStatus(Enum):
    """Result of a toggle request."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass
class ToggleOutcome:
    """
    Result of a single toggle request.

    Attributes:
        status: Succeeded, failed or rejected
        serial: Target device serial (None if no device was available)
        otp_enabled: Requested OTP state
        error: Error or rejection reason
        finished_at: When the toggle finished
    """
    status: ToggleStatus
    serial: Optional[str] = None
    otp_enabled: Optional[bool] = None
    error: Optional[str] = None
    finished_at: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.status == ToggleStatus.SUCCEEDED

    @property
    def message(self) -> str:
        """Notification text for a successful toggle."""
        if self.otp_enabled:
            return "OTP interface enabled"
        return "OTP interface disabled"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result: Dict[str, Any] = {
            "status": self.status.value,
            "success": self.success,
            "serial": self.serial,
            "otp_enabled": self.otp_enabled,
            "finished_at": self.finished_at.isoformat(),
        }
        if self.error:
            result["error"] = self.error
        return result
