"""
Exceptions raised by the backup and restore pipeline.

Configuration errors abort a run before any network call is made. Remote
errors abort the phase that hit them. Per-batch and per-file problems never
surface as exceptions; they are reported through result objects instead.
"""

from typing import Optional


class BackupRestoreError(Exception):
    """Base exception for backup and restore operations."""

    pass


class ConfigurationError(BackupRestoreError):
    """Raised when the run configuration or backup directory is unusable."""

    pass


class SchemaFileError(ConfigurationError):
    """Raised when a backup directory does not hold exactly one valid schema file."""

    pass


class NothingToRestoreError(ConfigurationError):
    """Raised when a restore is requested but the backup directory is empty."""

    pass


class RemoteOperationError(BackupRestoreError):
    """Raised when the search service rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is not None:
            message = f"{message} (status {self.status_code})"
        if self.details:
            message = f"{message}: {self.details}"
        return message


class SchemaTransferError(RemoteOperationError):
    """Raised when an index definition cannot be read or created."""

    pass


class BulkIndexError(RemoteOperationError):
    """Raised when the target rejects a bulk document upload."""

    pass


class EnvelopeError(ValueError):
    """Raised when a document envelope is not valid JSON of the expected shape."""

    pass
