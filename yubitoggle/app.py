"""
yubitoggle service - YubiKey OTP toggle with a local HTTP API

Runs the OTP engine on an asyncio loop in a background thread and
serves its state over Flask, with live updates pushed to Socket.IO
clients. The menu bar / settings UI is a client of this API.
"""

from typing import Any, Awaitable, Optional
import asyncio
import logging
import threading

from flask import Flask, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO, emit

from . import __version__
from . import config
from .blueprints import otp_bp
from .otp import OtpManager, AppState, create_executor

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> logging.Logger:
    """Attach a console handler to the yubitoggle logger (once)."""
    app_logger = logging.getLogger('yubitoggle')
    app_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if not app_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [YUBI] %(levelname)s: %(message)s'
        ))
        app_logger.addHandler(handler)
    return app_logger


class BackgroundLoop:
    """
    asyncio event loop running in a daemon thread.

    Flask handlers run on their own threads; they hand coroutines to
    this loop with submit() and block for the result.
    """

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name='yubitoggle-loop', daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def submit(self, coro: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """Run a coroutine on the loop and wait for its result."""
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        if self._thread:
            self._thread.join(timeout=5)
        self._thread = None


def _forward_events(manager: OtpManager, socketio: SocketIO) -> None:
    """Push manager events to Socket.IO clients."""
    def on_state(state: AppState) -> None:
        socketio.emit('otp_state', manager.get_status())

    def on_devices(devices: Any) -> None:
        socketio.emit('otp_devices', {'devices': devices})

    def on_toggle(outcome: Any) -> None:
        socketio.emit('otp_toggle', outcome)

    def on_notification(message: str) -> None:
        socketio.emit('otp_notification', {'message': message})

    manager.on('state_changed', on_state)
    manager.on('devices_updated', on_devices)
    manager.on('toggle_started', on_toggle)
    manager.on('toggle_succeeded', on_toggle)
    manager.on('toggle_failed', on_toggle)
    manager.on('notification', on_notification)


def create_app(manager: OtpManager, runner: Any):
    """
    Build the Flask app and Socket.IO server.

    Args:
        manager: OTP manager the API reads from and triggers
        runner: Object with submit(coro, timeout) for the engine loop

    Returns:
        (app, socketio)
    """
    app = Flask(__name__)
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

    otp_bp.init_app(manager, runner)
    app.register_blueprint(otp_bp.otp_bp)

    @app.route('/api/version', methods=['GET'])
    def version():
        return jsonify({'version': __version__})

    @socketio.on('connect')
    def handle_connect():
        emit('otp_state', manager.get_status())

    _forward_events(manager, socketio)
    return app, socketio


def build_manager() -> OtpManager:
    """OtpManager configured from the environment."""
    executor = create_executor('ykman', candidate_paths=config.YKMAN_PATHS)
    return OtpManager(
        executor=executor,
        poll_interval=config.POLL_INTERVAL,
        confirmation_delay=config.CONFIRMATION_DELAY,
        notifications_enabled=config.NOTIFICATIONS_ENABLED,
    )


def main() -> int:
    configure_logging(config.DEBUG)

    print("\n" + "=" * 60)
    print(f"  yubitoggle v{__version__} - YubiKey OTP toggle")
    print("=" * 60)

    runner = BackgroundLoop()
    runner.start()

    manager = build_manager()
    app, socketio = create_app(manager, runner)

    ykman_path = manager.executor.find_binary()
    print(f"  ykman:  {ykman_path or 'not found'}")
    print(f"  Poll:   every {config.POLL_INTERVAL:g}s")
    print(f"  API:    http://{config.API_HOST}:{config.API_PORT}/api/otp/status")
    print("=" * 60 + "\n")

    runner.submit(manager.start())
    try:
        socketio.run(app, host=config.API_HOST, port=config.API_PORT, debug=False,
                     allow_unsafe_werkzeug=True)
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down")
        runner.submit(manager.stop(), timeout=10)
        runner.stop()
    return 0
