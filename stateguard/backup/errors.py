"""
Exception hierarchy for the backup engine.

Every error raised by the engine derives from BackupError so callers (CLI, API)
can report a failure without knowing which stage produced it.
"""


class BackupError(Exception):
    """Base class for all backup engine failures."""
    pass


class ArchiveError(BackupError):
    """Raised when an archive stream cannot be written or read."""
    pass


class StorageError(BackupError):
    """Raised when a storage backend operation fails."""
    pass


class BackendUnavailableError(StorageError):
    """Raised when a backend's mount point or endpoint is not present."""
    pass


class BackendNotImplementedError(StorageError, NotImplementedError):
    """Raised for backend identifiers with no registered implementation."""
    pass


class NotFoundError(BackupError):
    """Raised when no archive or policy matches a lookup."""
    pass


class PolicyError(BackupError):
    """Raised when the backup policy document is malformed or invalid."""
    pass
