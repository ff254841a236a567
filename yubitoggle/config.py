"""
yubitoggle configuration.

Settings are read once from the environment at import time. Every
value has a default, so the service runs with no configuration.
"""

import os
from typing import List, Optional


class ConfigurationError(Exception):
    """An environment variable holds an invalid value."""
    pass


def get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def get_paths(name: str) -> Optional[List[str]]:
    """Split an os.pathsep-separated list; None when unset."""
    raw = os.getenv(name, "")
    paths = [p for p in raw.split(os.pathsep) if p.strip()]
    return paths or None


# ============================================================
# Configuration
# ============================================================

API_HOST = os.getenv("YUBITOGGLE_HOST", "127.0.0.1")
API_PORT = get_int("YUBITOGGLE_API_PORT", 8892)

# Seconds between polls, and before the post-toggle confirmation refresh
POLL_INTERVAL = get_float("YUBITOGGLE_POLL_INTERVAL", 10.0)
CONFIRMATION_DELAY = get_float("YUBITOGGLE_CONFIRM_DELAY", 1.0)

# Initial notification preference; the UI may change it at runtime
NOTIFICATIONS_ENABLED = get_bool("YUBITOGGLE_NOTIFICATIONS", True)

# Overrides the built-in ykman search paths when set
YKMAN_PATHS = get_paths("YUBITOGGLE_YKMAN_PATHS")

DEBUG = get_bool("YUBITOGGLE_DEBUG", False)
