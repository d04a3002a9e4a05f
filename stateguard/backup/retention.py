"""
Retention policy enforcement for backups.

Keeps at most N archives per backend, deleting the oldest first. Archive
names embed a sortable timestamp, so ascending name order is creation order.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .errors import BackupError
from .storage import Backend


logger = logging.getLogger(__name__)


@dataclass
class RetentionResult:
    """Outcome of a retention pass on one backend."""
    deleted: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class RetentionManager:
    """
    Enforces a maximum archive count on a backend.

    A limit of None or <= 0 disables pruning. Deletion failures are recorded
    and the pass continues with the next archive.
    """

    def __init__(self, limit: Optional[int]):
        """
        Initialize retention manager.

        Args:
            limit: Maximum number of archives to keep
        """
        self.limit = limit
        self.logs = []

    @property
    def enabled(self) -> bool:
        return self.limit is not None and self.limit > 0

    def plan(self, backend: Backend, pending: int = 0) -> List[str]:
        """
        List the archives a retention pass would delete, oldest first.

        Args:
            backend: Backend to inspect
            pending: Archives about to be added that count against the limit

        Returns:
            Archive names to delete
        """
        if not self.enabled:
            return []

        names = backend.list()
        excess = len(names) + pending - self.limit
        return names[:excess] if excess > 0 else []

    def apply(self, backend: Backend) -> RetentionResult:
        """
        Delete the oldest archives until at most ``limit`` remain.

        Args:
            backend: Backend to prune

        Returns:
            RetentionResult listing deleted, kept and failed archives

        Raises:
            StorageError: If the backend cannot be listed
        """
        result = RetentionResult()

        if not self.enabled:
            self._log(f"Retention not configured for {backend.describe()}, skipping")
            result.kept = backend.list()
            return result

        names = backend.list()
        self._log(f"Retention on {backend.describe()}: {len(names)} archives, keeping {self.limit}")

        while len(names) > self.limit:
            oldest = names.pop(0)
            try:
                backend.delete(oldest)
                result.deleted.append(oldest)
                self._log(f"Deleted old backup: {oldest}")
            except BackupError as e:
                error_msg = f"Failed to delete old backup {oldest}: {e}"
                self._log(error_msg, level=logging.WARNING)
                result.errors.append(error_msg)

        result.kept = names
        return result

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def apply_retention(backend: Backend, limit: Optional[int]) -> RetentionResult:
    """
    Enforce a retention limit on a backend.

    Args:
        backend: Backend to prune
        limit: Maximum number of archives to keep

    Returns:
        RetentionResult from RetentionManager.apply()
    """
    manager = RetentionManager(limit)
    return manager.apply(backend)
