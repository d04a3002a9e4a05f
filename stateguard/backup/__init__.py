"""
Backup module for stateguard.

This module handles the archive lifecycle including:
- Path selection and exclusion filtering
- Archive construction and extraction
- Storage backends (local, removable media, S3)
- Retention policy enforcement
- Archive catalog lookups
- Backup policy persistence
"""

from .catalog import ArchiveSelector, Catalog
from .compression import create_archive, generate_archive_filename
from .errors import (
    ArchiveError,
    BackendNotImplementedError,
    BackendUnavailableError,
    BackupError,
    NotFoundError,
    PolicyError,
    StorageError,
)
from .exclusion import ExclusionMatcher
from .executor import BackupExecutor, RestoreExecutor
from .extraction import extract_archive, extract_stream
from .policy import PolicyStore
from .retention import RetentionManager
from .storage import LocalStorage, RemovableMediaStorage, S3Storage, dispatch, get_backend, register_backend

__all__ = [
    'ArchiveSelector',
    'Catalog',
    'create_archive',
    'generate_archive_filename',
    'ArchiveError',
    'BackendNotImplementedError',
    'BackendUnavailableError',
    'BackupError',
    'NotFoundError',
    'PolicyError',
    'StorageError',
    'ExclusionMatcher',
    'BackupExecutor',
    'RestoreExecutor',
    'extract_archive',
    'extract_stream',
    'PolicyStore',
    'RetentionManager',
    'LocalStorage',
    'RemovableMediaStorage',
    'S3Storage',
    'dispatch',
    'get_backend',
    'register_backend',
]
