"""
yubitoggle OTP Module - YubiKey OTP Interface State and Toggling

This module tracks whether the OTP USB interface of a connected
YubiKey is enabled, by running the ykman command-line tool, and
toggles it on request.

Key Components:
- OtpManager: High-level facade for all OTP operations
- YkmanExecutor: Serialized ykman subprocess access
- ReconciliationEngine: Rebuilds state from ykman output
- PollingScheduler: Fixed-delay refresh loop
- ToggleCoordinator: Optimistic toggle with rollback

Usage:
    from yubitoggle.otp import OtpManager

    manager = OtpManager()
    await manager.start()
    outcome = await manager.toggle_otp()
    status = manager.get_status()

Transport:
    All device access goes through ykman, one process at a time.
"""

from .types import (
    AppState,
    AppStateKind,
    DeviceRecord,
    DeviceInfo,
    YkmanAction,
    YkmanCommand,
    ToggleStatus,
    ToggleOutcome,
)

from .executor import (
    CommandExecutor,
    YkmanExecutor,
    YkmanError,
    ToolNotFoundError,
    CommandFailedError,
    ParseError,
    NoDeviceConnectedError,
    create_executor,
)
from .parser import parse_serials, parse_device_info
from .registry import DeviceRegistry, StateStore, StateSnapshot
from .reconciliation import ReconciliationEngine, ReconciliationResult, DeviceLookup
from .scheduler import PollingScheduler
from .toggle import ToggleCoordinator
from .manager import OtpManager

__all__ = [
    # Types
    "AppState",
    "AppStateKind",
    "DeviceRecord",
    "DeviceInfo",
    "YkmanAction",
    "YkmanCommand",
    "ToggleStatus",
    "ToggleOutcome",
    # Executor
    "CommandExecutor",
    "YkmanExecutor",
    "YkmanError",
    "ToolNotFoundError",
    "CommandFailedError",
    "ParseError",
    "NoDeviceConnectedError",
    "create_executor",
    # Parser
    "parse_serials",
    "parse_device_info",
    # State
    "DeviceRegistry",
    "StateStore",
    "StateSnapshot",
    # Reconciliation
    "ReconciliationEngine",
    "ReconciliationResult",
    "DeviceLookup",
    # Scheduling
    "PollingScheduler",
    "ToggleCoordinator",
    # Manager
    "OtpManager",
]
