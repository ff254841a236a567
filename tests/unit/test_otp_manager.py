"""
Unit Tests for OTP Manager

Tests for:
- Refresh commits and events
- Derived UI values (status text, toggle label, can_toggle)
- Toggle event forwarding and notifications
- Lifecycle (start polling, stop cancels pending work)
"""

import pytest
import asyncio
from unittest.mock import Mock, AsyncMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from yubitoggle.otp.manager import OtpManager
from yubitoggle.otp.types import AppState, AppStateKind, YkmanAction
from yubitoggle.otp.executor import CommandFailedError, YkmanExecutor
from yubitoggle.app import BackgroundLoop


INFO_ENABLED = "Device type: YubiKey 5C Nano\nApplications\nYubico OTP    Enabled\n"
INFO_DISABLED = "Device type: YubiKey 5C Nano\nApplications\nYubico OTP    Disabled\n"


class FakeYkman:
    """
    In-memory ykman for manager tests.

    Tracks OTP state per serial so toggles are reflected by later
    info lookups.
    """

    def __init__(self, serials=("12345678",), otp_enabled=True, binary="/usr/bin/ykman"):
        self.serials = list(serials)
        self.otp = {s: otp_enabled for s in self.serials}
        self.binary = binary
        self.fail_config = None
        self.find_binary = Mock(side_effect=lambda: self.binary)
        self.execute = AsyncMock(side_effect=self._execute)

    async def _execute(self, command):
        if command.action == YkmanAction.LIST_SERIALS:
            return "".join(f"{s}\n" for s in self.serials)
        if command.action == YkmanAction.INFO:
            return INFO_ENABLED if self.otp[command.serial] else INFO_DISABLED
        if self.fail_config:
            raise CommandFailedError(self.fail_config)
        self.otp[command.serial] = command.action == YkmanAction.ENABLE_OTP
        return ""


def make_manager(ykman=None, **kwargs):
    kwargs.setdefault("poll_interval", 60)
    kwargs.setdefault("confirmation_delay", 0.01)
    return OtpManager(executor=ykman or FakeYkman(), **kwargs)


class TestManagerRefresh:
    """Tests for refresh()."""

    @pytest.mark.asyncio
    async def test_refresh_ready(self):
        """Test refresh commits READY and the devices."""
        manager = make_manager()

        state = await manager.refresh()

        assert state == AppState.ready()
        assert manager.state == AppState.ready()
        assert manager.current_device.serial == "12345678"
        assert manager.current_device.otp_enabled is True

    @pytest.mark.asyncio
    async def test_refresh_no_device(self):
        """Test refresh with nothing plugged in."""
        manager = make_manager(FakeYkman(serials=()))
        assert await manager.refresh() == AppState.no_device()
        assert manager.current_device is None

    @pytest.mark.asyncio
    async def test_refresh_tool_missing(self):
        """Test refresh without ykman."""
        manager = make_manager(FakeYkman(binary=None))
        assert await manager.refresh() == AppState.tool_missing()

    @pytest.mark.asyncio
    async def test_state_changed_only_on_change(self):
        """Test state_changed fires on transitions only."""
        manager = make_manager()
        states = []
        manager.on("state_changed", states.append)

        await manager.refresh()
        await manager.refresh()

        assert states == [AppState.ready()]

    @pytest.mark.asyncio
    async def test_devices_updated_every_refresh(self):
        """Test devices_updated fires on every pass."""
        manager = make_manager()
        updates = []
        manager.on("devices_updated", updates.append)

        await manager.refresh()
        await manager.refresh()

        assert len(updates) == 2
        assert updates[0] == [{"serial": "12345678", "name": "YubiKey 5C Nano", "otp_enabled": True}]

    @pytest.mark.asyncio
    async def test_recovers_from_error(self):
        """Test a later successful pass clears ERROR."""
        ykman = FakeYkman()
        ykman.fail_config = "Failed to configure"
        manager = make_manager(ykman)
        await manager.refresh()
        await manager.toggle_otp()
        assert manager.state.is_error

        await manager.refresh()
        assert manager.state.is_ready


class TestManagerDerivedValues:
    """Tests for status text, labels and toggle availability."""

    def test_loading(self):
        """Test initial values before the first refresh."""
        manager = make_manager()
        assert manager.state.kind == AppStateKind.LOADING
        assert manager.status_text == "Loading..."
        assert manager.toggle_label == "Toggle OTP"
        assert manager.can_toggle is False

    @pytest.mark.asyncio
    async def test_ready_enabled(self):
        """Test READY with OTP enabled."""
        manager = make_manager(FakeYkman(otp_enabled=True))
        await manager.refresh()
        assert manager.status_text == "YubiKey 5C Nano"
        assert manager.toggle_label == "Disable OTP"
        assert manager.can_toggle is True

    @pytest.mark.asyncio
    async def test_ready_disabled(self):
        """Test READY with OTP disabled."""
        manager = make_manager(FakeYkman(otp_enabled=False))
        await manager.refresh()
        assert manager.toggle_label == "Enable OTP"

    @pytest.mark.asyncio
    async def test_no_device(self):
        """Test NO_DEVICE text."""
        manager = make_manager(FakeYkman(serials=()))
        await manager.refresh()
        assert manager.status_text == "No YubiKey detected"
        assert manager.can_toggle is False

    @pytest.mark.asyncio
    async def test_tool_missing(self):
        """Test TOOL_MISSING text."""
        manager = make_manager(FakeYkman(binary=None))
        await manager.refresh()
        assert manager.status_text == "ykman not found"

    def test_error(self):
        """Test ERROR text carries the message."""
        manager = make_manager()
        manager.store.set_state(AppState.error("Command failed: boom"))
        assert manager.status_text == "Error: Command failed: boom"
        assert manager.can_toggle is False

    @pytest.mark.asyncio
    async def test_cannot_toggle_while_toggling(self):
        """Test can_toggle is False during a toggle."""
        manager = make_manager()
        await manager.refresh()
        manager.store.set_toggling(True)
        assert manager.can_toggle is False

    @pytest.mark.asyncio
    async def test_get_status(self):
        """Test consolidated status dict."""
        manager = make_manager()
        await manager.refresh()

        status = manager.get_status()

        assert status["state"] == "ready"
        assert status["message"] is None
        assert status["toggling"] is False
        assert status["can_toggle"] is True
        assert status["status_text"] == "YubiKey 5C Nano"
        assert status["toggle_label"] == "Disable OTP"
        assert status["current_device"]["serial"] == "12345678"
        assert status["device_count"] == 1
        assert status["notifications_enabled"] is True
        assert status["last_refreshed_at"] is not None


class TestManagerToggle:
    """Tests for toggle_otp() and its events."""

    @pytest.mark.asyncio
    async def test_toggle_round_trip(self):
        """Test toggle flips the device and confirmation agrees."""
        ykman = FakeYkman(otp_enabled=True)
        manager = make_manager(ykman)
        await manager.refresh()

        outcome = await manager.toggle_otp()
        assert outcome.success
        assert manager.current_device.otp_enabled is False

        await asyncio.sleep(0.1)
        assert ykman.otp["12345678"] is False
        assert manager.current_device.otp_enabled is False
        await manager.stop()

    @pytest.mark.asyncio
    async def test_toggle_events_and_notification(self):
        """Test success forwards events and a notification."""
        manager = make_manager()
        await manager.refresh()
        events = []
        for name in ("toggle_started", "toggle_succeeded", "toggle_failed", "notification"):
            manager.on(name, lambda data, name=name: events.append((name, data)))

        await manager.toggle_otp()

        names = [name for name, _ in events]
        assert names == ["toggle_started", "toggle_succeeded", "notification"]
        assert events[1][1]["status"] == "succeeded"
        assert events[2][1] == "OTP interface disabled"
        await manager.stop()

    @pytest.mark.asyncio
    async def test_notifications_disabled(self):
        """Test no notification when the preference is off."""
        manager = make_manager(notifications_enabled=False)
        await manager.refresh()
        notify = Mock()
        manager.on("notification", notify)

        outcome = await manager.toggle_otp()

        assert outcome.success
        notify.assert_not_called()
        await manager.stop()

    @pytest.mark.asyncio
    async def test_toggle_failure_events(self):
        """Test failure forwards toggle_failed and state_changed."""
        ykman = FakeYkman(otp_enabled=True)
        ykman.fail_config = "Failed to configure"
        manager = make_manager(ykman)
        await manager.refresh()
        failed = []
        states = []
        notify = Mock()
        manager.on("toggle_failed", failed.append)
        manager.on("state_changed", states.append)
        manager.on("notification", notify)

        outcome = await manager.toggle_otp()

        assert outcome.success is False
        assert failed[0]["error"] == "Command failed: Failed to configure"
        assert states == [AppState.error("Command failed: Failed to configure")]
        assert manager.current_device.otp_enabled is True
        assert manager.status_text == "Error: Command failed: Failed to configure"
        notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_toggle_without_device(self):
        """Test toggle is rejected before the first refresh."""
        ykman = FakeYkman()
        manager = make_manager(ykman)

        outcome = await manager.toggle_otp()

        assert outcome.status.value == "rejected"
        ykman.execute.assert_not_called()


class TestManagerLifecycle:
    """Tests for start() and stop()."""

    @pytest.mark.asyncio
    async def test_start_polls_immediately(self):
        """Test start runs the first refresh right away."""
        manager = make_manager()

        await manager.start()
        await asyncio.sleep(0.02)

        assert manager.state.is_ready
        assert manager.scheduler.is_running
        await manager.stop()
        assert manager.scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_stop_cancels_confirmation(self):
        """Test stop cancels a pending confirmation refresh."""
        manager = make_manager(confirmation_delay=10)
        await manager.refresh()
        await manager.toggle_otp()
        assert manager.toggler.pending_confirmations == 1

        await manager.stop()

        assert manager.toggler.pending_confirmations == 0

    @pytest.mark.asyncio
    async def test_callback_error_is_isolated(self):
        """Test a raising listener does not break refresh."""
        manager = make_manager()
        manager.on("devices_updated", Mock(side_effect=RuntimeError("socket closed")))

        assert await manager.refresh() == AppState.ready()


SLOW_YKMAN = """#!/bin/sh
if [ "$1" = "list" ]; then
    echo "12345678"
    exit 0
fi
sleep 0.1
if [ "$3" = "info" ]; then
    echo "Device type: YubiKey 5C Nano"
    echo "Yubico OTP    Enabled"
fi
exit 0
"""


class TestManagerOnBackgroundLoop:
    """Tests for a manager built on the main thread and run on the service loop."""

    def test_overlapping_refresh_and_toggle(self, tmp_path):
        """Test a poll and a toggle overlapping on the service loop both complete."""
        script = tmp_path / "ykman"
        script.write_text(SLOW_YKMAN)
        script.chmod(0o755)

        manager = OtpManager(executor=YkmanExecutor([str(script)]),
                             poll_interval=60, confirmation_delay=10)
        runner = BackgroundLoop()
        runner.start()
        try:
            runner.submit(manager.refresh(), timeout=10)

            refresh = asyncio.run_coroutine_threadsafe(manager.refresh(), runner.loop)
            toggle = asyncio.run_coroutine_threadsafe(manager.toggle_otp(), runner.loop)

            assert refresh.result(timeout=10) == AppState.ready()
            outcome = toggle.result(timeout=10)
            assert outcome.success
            assert manager.state.is_ready
            runner.submit(manager.stop(), timeout=10)
        finally:
            runner.stop()
