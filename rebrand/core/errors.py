"""Error taxonomy for rebrand operations. Every failure surfaces as a RebrandError subclass."""

from __future__ import annotations


class RebrandError(Exception):
    """Base class. The message is shown to the admin as-is."""


class InvalidArgument(RebrandError, ValueError):
    """Malformed input: bad size, bad JSON, marker collision, rejected upload."""


class NotFound(RebrandError, LookupError):
    """Target row, site or backup does not exist."""


class PermissionDenied(RebrandError, PermissionError):
    """Actor is not the configured admin."""


class BackupFailed(RebrandError):
    """Backup could not be recorded; the target was not touched."""


class WriteFailed(RebrandError):
    """Backup succeeded but the write did not; the target still holds its previous value."""


class UpstreamUnavailable(RebrandError):
    """Underlying store (Redis) is unreachable."""
