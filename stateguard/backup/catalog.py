"""
Read-side archive lookup: listing, resolving by name, date or recency, and
single-archive deletion on a backend.
"""

import logging
from dataclasses import dataclass
from typing import List

from stateguard.models import ArchiveInfo
from .errors import NotFoundError
from .storage import Backend


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveSelector:
    """Which archive to pick from a backend."""
    kind: str
    value: str = ''

    LATEST = 'latest'
    DATE = 'date'
    NAME = 'name'

    @classmethod
    def latest(cls) -> 'ArchiveSelector':
        return cls(cls.LATEST)

    @classmethod
    def by_date(cls, token: str) -> 'ArchiveSelector':
        return cls(cls.DATE, token)

    @classmethod
    def by_name(cls, name: str) -> 'ArchiveSelector':
        return cls(cls.NAME, name)

    def __str__(self):
        if self.kind == self.LATEST:
            return 'latest'
        return f"{self.kind}={self.value}"


class Catalog:
    """Enumerates and resolves archives on a single backend."""

    def __init__(self, backend: Backend):
        self.backend = backend

    def list(self) -> List[str]:
        """Archive names, ascending (oldest first)."""
        return self.backend.list()

    def entries(self) -> List[ArchiveInfo]:
        """Archive details, ascending (oldest first)."""
        return [self.backend.info(name) for name in self.list()]

    def resolve(self, selector: ArchiveSelector) -> str:
        """
        Pick one archive name.

        Args:
            selector: latest, date substring or explicit name

        Returns:
            Name of the selected archive

        Raises:
            NotFoundError: If the backend is empty or nothing matches
            ValueError: If the selector kind is unknown
        """
        names = self.list()
        if not names:
            raise NotFoundError(f"No backups found on {self.backend.describe()}")

        if selector.kind == ArchiveSelector.LATEST:
            return names[-1]

        if selector.kind == ArchiveSelector.DATE:
            for name in names:
                if selector.value in name:
                    return name
            raise NotFoundError(f"No backup found for date: {selector.value}")

        if selector.kind == ArchiveSelector.NAME:
            if selector.value in names:
                return selector.value
            raise NotFoundError(f"Backup not found: {selector.value}")

        raise ValueError(f"Unknown archive selector: {selector.kind}")

    def delete(self, name: str):
        """
        Delete one archive by name.

        Raises:
            NotFoundError: If the archive does not exist
        """
        self.backend.delete(name)
        logger.info(f"Deleted backup {name} from {self.backend.describe()}")
