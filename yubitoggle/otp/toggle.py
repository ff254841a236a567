"""
Toggle Coordinator - Optimistic OTP Toggle with Rollback

Flips the OTP interface of the primary YubiKey. The new value is
written to the StateStore before ykman runs, so observers see it
immediately; if ykman fails the old value is restored and the
AppState becomes ERROR. After a success, one confirmation refresh
runs in the background after a short delay.

Classes:
    ToggleCoordinator: Single-flight toggle with rollback

Usage:
    coordinator = ToggleCoordinator(executor, store, manager.refresh)
    coordinator.on("toggle_succeeded", handler)
    outcome = await coordinator.toggle()
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
import asyncio
import logging

from .types import AppState, YkmanCommand, ToggleOutcome, ToggleStatus
from .registry import StateStore
from .executor import CommandExecutor

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_DELAY = 1.0


class ToggleCoordinator:
    """
    Executes one optimistic toggle at a time.

    A toggle requested while another is in flight is rejected, not
    queued. The confirmation refresh has no error channel back to
    the caller; its failures are only logged.

    Attributes:
        executor: Serialized ykman executor
        store: State owner mutated by the optimistic flip
        confirmation_delay: Seconds before the confirmation refresh
    """

    def __init__(
        self,
        executor: CommandExecutor,
        store: StateStore,
        refresh: Callable[[], Awaitable[Any]],
        confirmation_delay: float = DEFAULT_CONFIRMATION_DELAY
    ):
        """
        Initialize toggle coordinator.

        Args:
            executor: Executor used for the enable/disable command
            store: StateStore holding the registry
            refresh: Coroutine function run as the confirmation pass
            confirmation_delay: Seconds to wait before confirming
        """
        self.executor = executor
        self.store = store
        self.refresh = refresh
        self.confirmation_delay = confirmation_delay
        self._in_flight = False
        self._pending: Set[asyncio.Task[None]] = set()
        self._callbacks: Dict[str, List[Callable[..., Any]]] = {}

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def pending_confirmations(self) -> int:
        return len(self._pending)

    async def toggle(self, serial: Optional[str] = None) -> ToggleOutcome:
        """
        Toggle the OTP interface of a device.

        Args:
            serial: Target serial (defaults to the primary device)

        Returns:
            ToggleOutcome; REJECTED if no device is present, if serial
            is not the primary device, or if a toggle is already in flight
        """
        if self._in_flight:
            logger.info("Toggle ignored: another toggle is in progress")
            return ToggleOutcome(
                status=ToggleStatus.REJECTED,
                serial=serial,
                error="Toggle already in progress"
            )

        device = self.store.primary
        if device is None:
            logger.info("Toggle ignored: no device to toggle")
            return ToggleOutcome(
                status=ToggleStatus.REJECTED,
                serial=serial,
                error="No YubiKey detected."
            )

        if serial is not None and device.serial != serial:
            logger.info(f"Toggle ignored: {serial} is not the primary device")
            return ToggleOutcome(
                status=ToggleStatus.REJECTED,
                serial=serial,
                error="Only the primary YubiKey can be toggled"
            )

        self._in_flight = True
        try:
            return await self._toggle(device.serial, not device.otp_enabled)
        finally:
            self._in_flight = False
            self.store.set_toggling(False)

    async def _toggle(self, serial: str, new_state: bool) -> ToggleOutcome:
        # Optimistic update, visible before ykman is invoked
        self.store.set_toggling(True)
        self.store.set_otp_enabled(serial, new_state)
        self._emit("toggle_started", {"serial": serial, "otp_enabled": new_state})
        logger.info(f"{'Enabling' if new_state else 'Disabling'} OTP on {serial}")

        try:
            await self.executor.execute(YkmanCommand.set_otp(serial, new_state))
        except asyncio.CancelledError:
            self.store.rollback(serial, not new_state)
            logger.warning(f"OTP toggle on {serial} cancelled, reverted")
            raise
        except Exception as e:
            self.store.rollback(serial, not new_state, AppState.error(str(e)))
            logger.error(f"OTP toggle failed on {serial}, reverted: {e}")
            outcome = ToggleOutcome(
                status=ToggleStatus.FAILED,
                serial=serial,
                otp_enabled=new_state,
                error=str(e)
            )
            self._emit("toggle_failed", outcome)
            return outcome

        outcome = ToggleOutcome(
            status=ToggleStatus.SUCCEEDED,
            serial=serial,
            otp_enabled=new_state
        )
        logger.info(outcome.message)
        self._emit("toggle_succeeded", outcome)
        self._schedule_confirmation()
        return outcome

    # ─────────────────────────────────────────────────────────
    # Confirmation Refresh
    # ─────────────────────────────────────────────────────────

    def _schedule_confirmation(self) -> None:
        task = asyncio.get_running_loop().create_task(self._confirm())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _confirm(self) -> None:
        await asyncio.sleep(self.confirmation_delay)
        try:
            await self.refresh()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Confirmation refresh failed: {e}")

    async def cancel_pending(self) -> None:
        """Cancel confirmation refreshes that have not finished yet."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()

    # ─────────────────────────────────────────────────────────
    # Event System
    # ─────────────────────────────────────────────────────────

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """
        Register event callback.

        Events:
            - toggle_started: Optimistic flip applied (dict)
            - toggle_succeeded: ykman accepted the change (ToggleOutcome)
            - toggle_failed: ykman failed, flip reverted (ToggleOutcome)

        Args:
            event: Event name
            callback: Callback function
        """
        if event not in self._callbacks:
            self._callbacks[event] = []
        self._callbacks[event].append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
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
