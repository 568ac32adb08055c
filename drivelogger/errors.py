"""
Error types for Drive Logger.

ConfigError is fatal until the user registers a client. AuthError and
RemoteError are caught by the host and reported back over the channel.
ChannelError codes are never raised to callers of PortClient.call(); they
only name the soft failures a call resolves with.
"""

from typing import Any, Optional


class DriveLoggerError(Exception):
    """Base class for all Drive Logger errors."""


class ConfigError(DriveLoggerError):
    """Client registration is missing or invalid."""


class AuthError(DriveLoggerError):
    """Interactive authorization failed (canceled, state_mismatch, no_code)."""

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.code = code


class RemoteError(DriveLoggerError):
    """Non-success HTTP response from Google."""

    def __init__(self, status: int, message: str, details: Any = None):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message
        self.details = details


class ChannelError(DriveLoggerError):
    """Channel-level failure codes."""

    PORT_UNAVAILABLE = "port_unavailable"
    PORT_DISCONNECTED = "port_disconnected"
    SW_UNAVAILABLE = "sw_unavailable"

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code
