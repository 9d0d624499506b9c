"""
Open Source Cloud platform — error types.

These are plain exceptions, not HTTP ones: the job engine also runs inside
the background worker. Controllers translate them to HTTP responses.
"""
from __future__ import annotations


class PlatformError(Exception):
    """A platform call failed (network error or non-2xx response)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InstanceAlreadyExists(PlatformError):
    """Create lost a race with another creator of the same instance name."""


class InstanceNotReady(PlatformError):
    """The instance did not report ready before the deadline, or failed."""


class InvalidJobName(ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(
            f"Job name must be lowercase alphanumeric only (got {name!r}). "
            "No hyphens, underscores or uppercase characters allowed."
        )
        self.name = name
