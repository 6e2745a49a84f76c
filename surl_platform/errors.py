"""
Error taxonomy for SURL Platform.

Responsibilities:
    - Give every failure class of the core a distinct, catchable type
    - Keep HTTP / exit-code translation out of the core (done in main.py and surl_mgr.py)

Notes:
    - "Not found" is deliberately absent: on the read path it is an outcome
      (see `surl_platform.router.resolver.NOT_FOUND`), never an exception.
    - ValidationError also derives from ValueError so callers that already
      catch ValueError for bad input keep working.
"""

__all__ = [
    "SurlError",
    "ValidationError",
    "AlreadyExpired",
    "ConfigurationError",
    "StorageError",
    "ClockRegression",
]


class SurlError(Exception):
    """Base class for all SURL Platform errors."""


class ValidationError(SurlError, ValueError):
    """Write-path input was rejected; nothing was stored."""


class AlreadyExpired(ValidationError):
    """The requested expiration is not in the future."""


class ConfigurationError(SurlError):
    """Startup configuration is inconsistent (duplicate shards, bad base URL, ...)."""


class StorageError(SurlError):
    """A backend operation failed. Transient from the caller's point of view."""


class ClockRegression(SurlError):
    """The wall clock moved backwards; refusing to emit a possibly duplicate id."""
