"""
Device Registry and State Store

DeviceRegistry is the ordered set of YubiKeys found by one
reconciliation pass. StateStore owns the current registry together
with the AppState and the toggle-in-progress flag, and is the only
place either is read or written.

Classes:
    DeviceRegistry: Ordered collection of DeviceRecords
    StateSnapshot: Consistent copy of the store contents
    StateStore: Lock-protected owner of state, registry and flags
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Any
from datetime import datetime
import threading

from .types import AppState, DeviceRecord


class DeviceRegistry:
    """
    Ordered collection of devices, keyed by serial.

    Order is the order ykman listed the devices in. The first device
    is the primary device, the only one the toggle acts on.
    """

    def __init__(self, records: Optional[Iterable[DeviceRecord]] = None):
        self._records: List[DeviceRecord] = list(records or [])

    @classmethod
    def empty(cls) -> "DeviceRegistry":
        return cls()

    @property
    def primary(self) -> Optional[DeviceRecord]:
        """The first listed device, or None."""
        return self._records[0] if self._records else None

    def get(self, serial: str) -> Optional[DeviceRecord]:
        """Find the first record with this serial."""
        for record in self._records:
            if record.serial == serial:
                return record
        return None

    @property
    def serials(self) -> List[str]:
        return [r.serial for r in self._records]

    def copy(self) -> "DeviceRegistry":
        """Deep copy; records in the copy can be mutated independently."""
        return DeviceRegistry(r.copy() for r in self._records)

    def to_list(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self._records]

    def __iter__(self) -> Iterator[DeviceRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DeviceRegistry):
            return NotImplemented
        return self._records == other._records

    def __repr__(self) -> str:
        return f"DeviceRegistry({self._records!r})"


@dataclass
class StateSnapshot:
    """Consistent copy of StateStore contents."""
    state: AppState
    registry: DeviceRegistry
    toggling: bool = False
    last_refreshed_at: Optional[datetime] = field(default=None, compare=False)


class StateStore:
    """
    Single owner of AppState, DeviceRegistry and the toggling flag.

    Reconciliation replaces state and registry together in one step;
    the toggle flips and restores a single record. Both happen under
    the same lock so readers never see a half-applied update. The
    lock is never held across an await.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = AppState.loading()
        self._registry = DeviceRegistry.empty()
        self._toggling = False
        self._last_refreshed_at: Optional[datetime] = None

    @property
    def state(self) -> AppState:
        with self._lock:
            return self._state

    @property
    def toggling(self) -> bool:
        with self._lock:
            return self._toggling

    @property
    def primary(self) -> Optional[DeviceRecord]:
        """Copy of the primary device record."""
        with self._lock:
            record = self._registry.primary
            return record.copy() if record else None

    def snapshot(self) -> StateSnapshot:
        with self._lock:
            return StateSnapshot(
                state=self._state,
                registry=self._registry.copy(),
                toggling=self._toggling,
                last_refreshed_at=self._last_refreshed_at,
            )

    def commit(self, state: AppState, registry: DeviceRegistry) -> AppState:
        """
        Replace state and registry wholesale.

        Returns:
            The previous AppState
        """
        with self._lock:
            previous = self._state
            self._state = state
            self._registry = registry
            self._last_refreshed_at = datetime.now()
            return previous

    def set_state(self, state: AppState) -> AppState:
        """Replace only the AppState. Returns the previous one."""
        with self._lock:
            previous = self._state
            self._state = state
            return previous

    def set_toggling(self, toggling: bool) -> None:
        with self._lock:
            self._toggling = toggling

    def set_otp_enabled(self, serial: str, enabled: bool) -> Optional[bool]:
        """
        Set otp_enabled on the record with this serial.

        Returns:
            The previous value, or None if no such device is present
        """
        with self._lock:
            record = self._registry.get(serial)
            if record is None:
                return None
            previous = record.otp_enabled
            record.otp_enabled = enabled
            return previous

    def rollback(self, serial: str, enabled: bool, state: Optional[AppState] = None) -> Optional[bool]:
        """
        Restore otp_enabled on one record and optionally replace the
        AppState, as a single update.

        Returns:
            The value being replaced, or None if no such device is present
        """
        with self._lock:
            if state is not None:
                self._state = state
            record = self._registry.get(serial)
            if record is None:
                return None
            previous = record.otp_enabled
            record.otp_enabled = enabled
            return previous
