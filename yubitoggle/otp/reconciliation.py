"""
Reconciliation Engine - Rebuild YubiKey State from ykman

One reconciliation pass asks ykman for the connected serials, looks
up each device's info, and produces a fresh AppState and
DeviceRegistry. Nothing is published until the pass is complete.

Classes:
    DeviceLookup: Result of one per-device info lookup
    ReconciliationResult: State and registry produced by a pass
    ReconciliationEngine: Runs reconciliation passes

Failure policy:
    - ykman missing            -> TOOL_MISSING (checked first)
    - listing command fails    -> ERROR(message)
    - no serials listed        -> NO_DEVICE
    - one device's info fails  -> default record for that serial only

Usage:
    engine = ReconciliationEngine(executor)
    result = await engine.refresh()
    store.commit(result.state, result.registry)
"""

from dataclasses import dataclass, field
from typing import List, Optional
from datetime import datetime
import logging

from .types import AppState, DeviceRecord, DeviceInfo, YkmanCommand
from .registry import DeviceRegistry
from .parser import parse_serials, parse_device_info
from .executor import (
    CommandExecutor,
    YkmanError,
    ToolNotFoundError,
    CommandFailedError,
    ParseError,
    NoDeviceConnectedError,
)

logger = logging.getLogger(__name__)


@dataclass
class DeviceLookup:
    """
    Outcome of ``ykman --device <serial> info``.

    Exactly one of info or error is set. A failed lookup still maps
    to a record, with the default name and OTP disabled.
    """
    serial: str
    info: Optional[DeviceInfo] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.info is not None

    def to_record(self) -> DeviceRecord:
        if self.info is None:
            return DeviceRecord.default(self.serial)
        return DeviceRecord.from_device_info(self.serial, self.info)


@dataclass
class ReconciliationResult:
    """AppState and registry produced by one reconciliation pass."""
    state: AppState
    registry: DeviceRegistry
    completed_at: datetime = field(default_factory=datetime.now, compare=False)

    @classmethod
    def without_devices(cls, state: AppState) -> "ReconciliationResult":
        return cls(state=state, registry=DeviceRegistry.empty())


class ReconciliationEngine:
    """
    Produces AppState and DeviceRegistry snapshots from ykman.

    Attributes:
        executor: Serialized ykman executor
        passes: Number of completed refresh() calls
    """

    def __init__(self, executor: CommandExecutor):
        """
        Initialize reconciliation engine.

        Args:
            executor: Executor used for every ykman call
        """
        self.executor = executor
        self.passes = 0

    async def refresh(self) -> ReconciliationResult:
        """
        Run one reconciliation pass.

        Never raises for ykman failures; every outcome maps to an
        AppState.

        Returns:
            ReconciliationResult with the new state and registry
        """
        result = await self._reconcile()
        self.passes += 1
        logger.debug(
            f"Reconciliation pass {self.passes}: {result.state.kind.value}, "
            f"{len(result.registry)} device(s)"
        )
        return result

    async def _reconcile(self) -> ReconciliationResult:
        if self.executor.find_binary() is None:
            return ReconciliationResult.without_devices(AppState.tool_missing())

        try:
            serials = await self.list_serials()
        except ToolNotFoundError:
            return ReconciliationResult.without_devices(AppState.tool_missing())
        except NoDeviceConnectedError:
            return ReconciliationResult.without_devices(AppState.no_device())
        except CommandFailedError as e:
            logger.warning(f"Device listing failed: {e}")
            return ReconciliationResult.without_devices(AppState.error(str(e)))

        records: List[DeviceRecord] = []
        for serial in serials:
            lookup = await self.lookup_device(serial)
            if not lookup.ok:
                logger.warning(f"Using defaults for {serial}: {lookup.error}")
            records.append(lookup.to_record())

        return ReconciliationResult(state=AppState.ready(), registry=DeviceRegistry(records))

    async def list_serials(self) -> List[str]:
        """
        List connected serials in ykman order.

        Undecodable listing output counts as no devices.

        Raises:
            NoDeviceConnectedError: If no serials are listed
            CommandFailedError: If the listing command fails
            ToolNotFoundError: If ykman cannot be resolved
        """
        try:
            output = await self.executor.execute(YkmanCommand.list_serials())
        except ParseError as e:
            logger.warning(f"Unreadable device listing: {e}")
            output = ""

        serials = parse_serials(output)
        if not serials:
            raise NoDeviceConnectedError()
        return serials

    async def lookup_device(self, serial: str) -> DeviceLookup:
        """Look up one device. Errors are captured, not raised."""
        try:
            output = await self.executor.execute(YkmanCommand.info(serial))
            return DeviceLookup(serial=serial, info=parse_device_info(output))
        except YkmanError as e:
            return DeviceLookup(serial=serial, error=str(e))
