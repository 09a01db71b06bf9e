"""Exceptions for drive app.

Every domain error carries an ``error_kind`` so callers can branch on it
(prompt an upgrade on ``quota_exceeded``, re-authenticate on
``forbidden``) while ``str(error)`` gives the user-facing message.
"""

from typing import ClassVar


class DriveError(Exception):
    """Base class for errors raised by drive operations."""

    error_kind: ClassVar[str] = 'drive_error'


class EntryNotFoundError(DriveError):
    """Raised when an entry or parent is absent or already deleted."""

    error_kind: ClassVar[str] = 'not_found'


class EntryAccessDeniedError(DriveError):
    """Raised when an entry belongs to a different owner."""

    error_kind: ClassVar[str] = 'forbidden'


class NameConflictError(DriveError):
    """Raised when a sibling of the same kind already uses the name."""

    error_kind: ClassVar[str] = 'conflict'


class InvalidEntryKindError(DriveError):
    """Raised when an operation targets the wrong kind of entry.

    Examples: downloading a folder, using a file as a parent.
    """

    error_kind: ClassVar[str] = 'invalid_kind'


class UpstreamError(DriveError):
    """Raised when the blob store or the database fails mid-operation."""

    error_kind: ClassVar[str] = 'upstream_failure'


class QuotaExceededError(DriveError):
    """Raised when upload would exceed user's storage quota."""

    error_kind: ClassVar[str] = 'quota_exceeded'

    def __init__(
        self,
        quota_bytes: int,
        used_bytes: int,
        required_bytes: int,
    ) -> None:
        """Initialize QuotaExceededError.

        Args:
            quota_bytes: Total quota limit in bytes.
            used_bytes: Currently used bytes.
            required_bytes: Bytes needed for the operation.
        """
        self.quota_bytes = quota_bytes
        self.used_bytes = used_bytes
        self.required_bytes = required_bytes

        available = max(0, quota_bytes - used_bytes)
        super().__init__(
            f'Quota exceeded: need {required_bytes} bytes, '
            f'only {available} bytes available '
            f'(quota: {quota_bytes}, used: {used_bytes})',
        )
