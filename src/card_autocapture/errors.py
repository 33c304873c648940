"""Error taxonomy for the auto-capture core.

Only configuration errors are meant to reach callers. Per-frame errors are
absorbed by the session driver and degrade to "no detection this tick".
"""


class AutoCaptureError(Exception):
    """Base class for all auto-capture errors."""


class ConfigError(AutoCaptureError, ValueError):
    """Invalid configuration detected at setup time."""


class InvalidDimensions(AutoCaptureError, ValueError):
    """Zero or negative frame dimensions passed to geometry computation."""


class DecodeError(AutoCaptureError):
    """Raw detector output does not match any known tensor layout."""
