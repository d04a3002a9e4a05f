"""
Backup and restore executors - orchestrate the complete workflows.

Create workflow:
1. Select roots and exclusion patterns
2. Build the archive in the local backup directory
3. Mirror it to the requested backend (failure is a warning)
4. Enforce retention (failure is a warning)

Restore workflow:
1. Resolve an archive on the source backend
2. Ask for confirmation
3. Stream it through the extractor into the restore root
"""

import os
import logging
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional

from stateguard.models import BackupPolicy
from .catalog import ArchiveSelector, Catalog
from .compression import create_archive, generate_archive_filename
from .errors import BackupError, BackendNotImplementedError, NotFoundError, PolicyError
from .extraction import extract_stream
from .paths import select_exclusions, select_roots
from .policy import PolicyStore
from .retention import RetentionManager
from .storage import BACKENDS, LocalStorage, dispatch, get_backend


logger = logging.getLogger(__name__)


@dataclass
class BackupReport:
    """Outcome of a create run (planned outcome for dry runs)."""
    target: str
    archive_name: str
    roots: List[str]
    exclusions: List[str]
    dry_run: bool = False
    archive_path: Optional[str] = None
    size_bytes: Optional[int] = None
    entry_count: int = 0
    skipped: int = 0
    mirror_location: Optional[str] = None
    pruned: Dict[str, List[str]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'target': self.target,
            'archive_name': self.archive_name,
            'archive_path': self.archive_path,
            'size_bytes': self.size_bytes,
            'entry_count': self.entry_count,
            'skipped': self.skipped,
            'roots': self.roots,
            'exclusions': self.exclusions,
            'dry_run': self.dry_run,
            'mirror_location': self.mirror_location,
            'pruned': self.pruned,
            'warnings': self.warnings,
        }


@dataclass
class RestoreReport:
    """Outcome of a restore run."""
    source: str
    archive_name: str
    destination: str
    dry_run: bool = False
    cancelled: bool = False
    files: int = 0
    directories: int = 0
    logs: List[str] = field(default_factory=list)


def load_policy(config: Mapping, fallback: bool = True) -> BackupPolicy:
    """
    Load the saved policy.

    Args:
        config: Configuration mapping (POLICY_PATH)
        fallback: Return an empty policy instead of raising when the document
            is missing or malformed

    Returns:
        BackupPolicy
    """
    store = PolicyStore(config['POLICY_PATH'])
    try:
        return store.load()
    except NotFoundError:
        if not fallback:
            raise
        return BackupPolicy(retention=0)
    except PolicyError as e:
        if not fallback:
            raise
        logger.warning(f"{e} - using defaults")
        return BackupPolicy(retention=0)


class _Executor:

    def __init__(self, config: Mapping, policy: Optional[BackupPolicy] = None):
        """
        Args:
            config: Configuration mapping (Flask app.config or a dict)
            policy: Backup policy; loaded from POLICY_PATH when omitted
        """
        self.config = config
        self.policy = policy if policy is not None else load_policy(config)
        self.logs = []

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


class BackupExecutor(_Executor):
    """
    Orchestrates the create workflow.
    """

    def create(self, target: str = 'local', include_data: bool = False, dry_run: bool = False) -> BackupReport:
        """
        Create a backup archive.

        Args:
            target: Backend to mirror the archive to ('local' keeps it local only)
            include_data: Include the user data directory
            dry_run: Only report what would be archived

        Returns:
            BackupReport

        Raises:
            BackendNotImplementedError: If target is not a registered backend
            ArchiveError: If the archive cannot be written
        """
        if target not in BACKENDS:
            raise BackendNotImplementedError(
                f"Unsupported backend: {target}. Valid options: {sorted(BACKENDS)}"
            )

        roots = select_roots(
            self.config['STATE_DIR'],
            self.policy.include,
            self.config.get('USER_DATA_DIR'),
            include_data
        )
        exclusions = select_exclusions(
            self.config.get('DEFAULT_EXCLUDES'),
            self.policy.exclude,
            backup_dir=self.config['BACKUP_DIR']
        )
        archive_name = generate_archive_filename(self.config['PRODUCT_NAME'])

        report = BackupReport(
            target=target,
            archive_name=archive_name,
            roots=roots,
            exclusions=exclusions,
            dry_run=dry_run,
            logs=self.logs
        )

        local = LocalStorage(self.config['BACKUP_DIR'])

        if dry_run:
            self._log(f"Dry run: would back up {', '.join(roots)}")
            try:
                report.pruned['local'] = RetentionManager(self.policy.retention).plan(local, pending=1)
            except BackupError as e:
                self._warn(report, f"Cannot plan retention on {local.describe()}: {e}")
            return report

        self._log(f"Starting backup: {archive_name}")

        try:
            os.makedirs(local.base_path, mode=0o700, exist_ok=True)
        except OSError as e:
            raise BackupError(f"Failed to create backup directory: {e}") from e

        stats = create_archive(
            os.path.join(local.base_path, archive_name),
            roots,
            exclusions,
            sort_entries=self.config.get('SORTED_WALK', True)
        )
        report.archive_path = stats.path
        report.size_bytes = stats.size_bytes
        report.entry_count = stats.entry_count
        report.skipped = stats.skipped
        self._log(f"Archive created: {stats.path} ({stats.size_bytes} bytes, {stats.entry_count} entries)")

        mirror = None
        if target != 'local':
            try:
                report.mirror_location = dispatch(target, stats.path, self.config, self.policy)
                mirror = get_backend(target, self.config, self.policy)
                self._log(f"Copied to {target}: {report.mirror_location}")
            except BackupError as e:
                self._warn(report, f"Failed to copy backup to {target}: {e}")

        self._enforce_retention(report, local)
        if mirror is not None:
            self._enforce_retention(report, mirror)

        self._log("Backup completed successfully")
        return report

    def _enforce_retention(self, report: BackupReport, backend):
        manager = RetentionManager(self.policy.retention)
        if not manager.enabled:
            return

        try:
            result = manager.apply(backend)
        except BackupError as e:
            self._warn(report, f"Retention cleanup failed on {backend.backend_id}: {e}")
            return

        self.logs.extend(manager.logs)
        report.pruned[backend.backend_id] = result.deleted
        for error in result.errors:
            report.warnings.append(error)

    def _warn(self, report: BackupReport, message: str):
        report.warnings.append(message)
        self._log(message, level=logging.WARNING)


class RestoreExecutor(_Executor):
    """
    Orchestrates the restore workflow.
    """

    def restore(
        self,
        source: str,
        selector: ArchiveSelector,
        confirm: Callable[[str], bool],
        dry_run: bool = False,
        destination: Optional[str] = None
    ) -> RestoreReport:
        """
        Restore an archive from a backend.

        Args:
            source: Backend identifier to restore from
            selector: Which archive to restore
            confirm: Called with the archive name; restore proceeds only if it returns True
            dry_run: Resolve the archive without restoring anything
            destination: Restore root (defaults to RESTORE_ROOT)

        Returns:
            RestoreReport

        Raises:
            BackendUnavailableError: If the source backend is not present
            NotFoundError: If no archive matches the selector
            ArchiveError: If extraction fails (already restored files remain)
        """
        destination = destination or self.config['RESTORE_ROOT']
        backend = get_backend(source, self.config, self.policy)
        archive_name = Catalog(backend).resolve(selector)

        report = RestoreReport(
            source=source,
            archive_name=archive_name,
            destination=destination,
            dry_run=dry_run,
            logs=self.logs
        )
        self._log(f"Selected backup {archive_name} from {backend.describe()} ({selector})")

        if dry_run:
            self._log("Dry run: no files restored")
            return report

        if not confirm(archive_name):
            report.cancelled = True
            self._log("Restore cancelled")
            return report

        with closing(backend.fetch(archive_name)) as stream:
            stats = extract_stream(stream, destination)

        report.files = stats.files
        report.directories = stats.directories
        self._log(f"Restored {stats.files} files and {stats.directories} directories into {destination}")
        return report
