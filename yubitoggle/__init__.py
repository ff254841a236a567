"""yubitoggle - YubiKey OTP interface toggle service."""

__version__ = "1.0.0"
