"""
yubitoggle - OTP Blueprint
Routes: /api/otp/*
Dependencies: otp_manager, loop runner (runs coroutines on the engine loop)
"""

from flask import Blueprint, jsonify, request

from ..otp.types import ToggleStatus

otp_bp = Blueprint('otp', __name__)

_otp_manager = None
_runner = None

# Toggles wait for ykman, which has no timeout of its own
TOGGLE_TIMEOUT = 60
REFRESH_TIMEOUT = 60


def init_app(otp_manager, runner):
    """Initialize blueprint with required dependencies."""
    global _otp_manager, _runner
    _otp_manager = otp_manager
    _runner = runner


@otp_bp.route('/api/otp/status', methods=['GET'])
def otp_status():
    """Current state, primary device and toggle availability"""
    return jsonify(_otp_manager.get_status())


@otp_bp.route('/api/otp/devices', methods=['GET'])
def otp_devices():
    """All connected YubiKeys in ykman listing order"""
    return jsonify({'devices': _otp_manager.get_devices()})


@otp_bp.route('/api/otp/refresh', methods=['POST'])
def otp_refresh():
    """Run a reconciliation pass now"""
    try:
        _runner.submit(_otp_manager.refresh(), timeout=REFRESH_TIMEOUT)
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500
    return jsonify(_otp_manager.get_status())


@otp_bp.route('/api/otp/toggle', methods=['POST'])
def otp_toggle():
    """Toggle the OTP interface of the primary YubiKey"""
    try:
        outcome = _runner.submit(_otp_manager.toggle_otp(), timeout=TOGGLE_TIMEOUT)
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500

    result = outcome.to_dict()
    result['status_text'] = _otp_manager.status_text

    if outcome.status == ToggleStatus.REJECTED:
        return jsonify(result), 409
    if not outcome.success:
        return jsonify(result), 500
    return jsonify(result)


@otp_bp.route('/api/otp/settings', methods=['GET'])
def otp_get_settings():
    """Get notification preference"""
    return jsonify({'notifications_enabled': _otp_manager.notifications_enabled})


@otp_bp.route('/api/otp/settings', methods=['POST'])
def otp_update_settings():
    """Update notification preference"""
    data = request.get_json(silent=True) or {}
    enabled = data.get('notifications_enabled')

    if not isinstance(enabled, bool):
        return jsonify({'success': False, 'error': 'notifications_enabled must be true or false'}), 400

    _otp_manager.notifications_enabled = enabled
    return jsonify({'success': True, 'notifications_enabled': enabled})
