"""
OTP Manager - High-Level Facade for YubiKey OTP State

This module provides the main entry point for the OTP subsystem.
It owns the executor, reconciliation engine, state store, polling
scheduler and toggle coordinator, and emits events for the UI.

Classes:
    OtpManager: Main facade

Usage:
    manager = OtpManager()
    await manager.start()

    status = manager.get_status()
    outcome = await manager.toggle_otp()

    manager.on('state_changed', handler)
    await manager.stop()
"""

from typing import Any, Callable, Dict, List, Optional
import logging

from .types import AppState, AppStateKind, DeviceRecord, ToggleOutcome
from .registry import StateStore, StateSnapshot
from .executor import CommandExecutor, YkmanExecutor
from .reconciliation import ReconciliationEngine
from .scheduler import PollingScheduler, DEFAULT_POLL_INTERVAL
from .toggle import ToggleCoordinator, DEFAULT_CONFIRMATION_DELAY

logger = logging.getLogger(__name__)


class OtpManager:
    """
    High-level facade for YubiKey OTP state.

    Every refresh, whether from polling, a manual request or a
    toggle confirmation, goes through refresh(), which commits the
    engine result to the store in one step.

    Attributes:
        executor: Serialized ykman executor
        engine: Reconciliation engine
        store: Owner of AppState, registry and toggling flag
        scheduler: Polling loop
        toggler: Toggle coordinator
        notifications_enabled: Whether toggle notifications fire
    """

    def __init__(
        self,
        executor: Optional[CommandExecutor] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        confirmation_delay: float = DEFAULT_CONFIRMATION_DELAY,
        notifications_enabled: bool = True
    ):
        """
        Initialize OTP manager.

        Args:
            executor: ykman executor (defaults to YkmanExecutor)
            poll_interval: Seconds between polls
            confirmation_delay: Seconds before the post-toggle refresh
            notifications_enabled: Initial notification preference
        """
        self.executor = executor or YkmanExecutor()
        self.engine = ReconciliationEngine(self.executor)
        self.store = StateStore()
        self.scheduler = PollingScheduler(self.refresh, poll_interval)
        self.toggler = ToggleCoordinator(
            self.executor, self.store, self.refresh, confirmation_delay
        )
        self.notifications_enabled = notifications_enabled

        # Event callbacks
        self._callbacks: Dict[str, List[Callable]] = {}

        self._setup_toggle_events()

    def _setup_toggle_events(self) -> None:
        """Wire up toggle events to manager events."""
        self.toggler.on("toggle_started", self._on_toggle_started)
        self.toggler.on("toggle_succeeded", self._on_toggle_succeeded)
        self.toggler.on("toggle_failed", self._on_toggle_failed)

    # ─────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start polling. The first refresh runs immediately."""
        self.scheduler.start()

    async def stop(self) -> None:
        """Stop polling and cancel pending confirmation refreshes."""
        await self.scheduler.stop()
        await self.toggler.cancel_pending()

    # ─────────────────────────────────────────────────────────
    # Triggers
    # ─────────────────────────────────────────────────────────

    async def refresh(self) -> AppState:
        """
        Run a reconciliation pass and commit the result.

        Returns:
            The new AppState
        """
        result = await self.engine.refresh()
        previous = self.store.commit(result.state, result.registry)

        if previous != result.state:
            logger.info(f"State changed: {previous.kind.value} -> {result.state.kind.value}")
            self._emit("state_changed", result.state)
        self._emit("devices_updated", result.registry.to_list())

        return result.state

    async def toggle_otp(self) -> ToggleOutcome:
        """Toggle the OTP interface of the primary device."""
        return await self.toggler.toggle()

    # ─────────────────────────────────────────────────────────
    # State Accessors
    # ─────────────────────────────────────────────────────────

    @property
    def state(self) -> AppState:
        return self.store.state

    @property
    def toggling(self) -> bool:
        return self.store.toggling

    @property
    def current_device(self) -> Optional[DeviceRecord]:
        """The primary (first listed) device."""
        return self.store.primary

    def snapshot(self) -> StateSnapshot:
        return self.store.snapshot()

    @staticmethod
    def _can_toggle(snap: StateSnapshot) -> bool:
        return snap.state.is_ready and snap.registry.primary is not None and not snap.toggling

    @staticmethod
    def _status_text(snap: StateSnapshot) -> str:
        kind = snap.state.kind
        if kind == AppStateKind.LOADING:
            return "Loading..."
        if kind == AppStateKind.READY:
            device = snap.registry.primary
            return device.name if device else "Ready"
        if kind == AppStateKind.NO_DEVICE:
            return "No YubiKey detected"
        if kind == AppStateKind.TOOL_MISSING:
            return "ykman not found"
        return f"Error: {snap.state.message}"

    @staticmethod
    def _toggle_label(snap: StateSnapshot) -> str:
        device = snap.registry.primary
        if device is None:
            return "Toggle OTP"
        return "Disable OTP" if device.otp_enabled else "Enable OTP"

    @property
    def can_toggle(self) -> bool:
        return self._can_toggle(self.snapshot())

    @property
    def status_text(self) -> str:
        return self._status_text(self.snapshot())

    @property
    def toggle_label(self) -> str:
        return self._toggle_label(self.snapshot())

    def get_status(self) -> Dict[str, Any]:
        """
        Get consolidated status for the UI.

        Returns:
            Status dict built from a single consistent snapshot
        """
        snap = self.snapshot()
        device = snap.registry.primary

        return {
            **snap.state.to_dict(),
            "toggling": snap.toggling,
            "can_toggle": self._can_toggle(snap),
            "status_text": self._status_text(snap),
            "toggle_label": self._toggle_label(snap),
            "current_device": device.to_dict() if device else None,
            "device_count": len(snap.registry),
            "notifications_enabled": self.notifications_enabled,
            "last_refreshed_at": (
                snap.last_refreshed_at.isoformat() if snap.last_refreshed_at else None
            ),
        }

    def get_devices(self) -> List[Dict[str, Any]]:
        """Get all devices in listing order."""
        return self.snapshot().registry.to_list()

    # ─────────────────────────────────────────────────────────
    # Toggle Events
    # ─────────────────────────────────────────────────────────

    def _on_toggle_started(self, data: Dict[str, Any]) -> None:
        self._emit("toggle_started", data)
        self._emit("devices_updated", self.get_devices())

    def _on_toggle_succeeded(self, outcome: ToggleOutcome) -> None:
        self._emit("toggle_succeeded", outcome.to_dict())
        if self.notifications_enabled:
            logger.info(f"Notification: {outcome.message}")
            self._emit("notification", outcome.message)

    def _on_toggle_failed(self, outcome: ToggleOutcome) -> None:
        self._emit("toggle_failed", outcome.to_dict())
        self._emit("state_changed", self.store.state)
        self._emit("devices_updated", self.get_devices())

    # ─────────────────────────────────────────────────────────
    # Event System
    # ─────────────────────────────────────────────────────────

    def on(self, event: str, callback: Callable) -> None:
        """
        Register event callback.

        Events:
            - state_changed: AppState transition (AppState)
            - devices_updated: Registry replaced or flipped (list of dicts)
            - toggle_started: Optimistic flip applied (dict)
            - toggle_succeeded: Toggle accepted by ykman (dict)
            - toggle_failed: Toggle failed and was reverted (dict)
            - notification: User-facing message, only while
              notifications are enabled (str)

        Args:
            event: Event name
            callback: Callback function
        """
        if event not in self._callbacks:
            self._callbacks[event] = []
        self._callbacks[event].append(callback)

    def off(self, event: str, callback: Callable) -> None:
        """
        Unregister event callback.

        Args:
            event: Event name
            callback: Callback function
        """
        if event in self._callbacks:
            self._callbacks[event] = [
                cb for cb in self._callbacks[event] if cb != callback
            ]

    def _emit(self, event: str, data: Any) -> None:
        """Emit event to registered callbacks."""
        for callback in self._callbacks.get(event, []):
            try:
                callback(data)
            except Exception as e:
                logger.error(f"Error in {event} callback: {e}")
