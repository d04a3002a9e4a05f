"""
Unit tests for retention enforcement (stateguard/backup/retention.py).
"""

from unittest.mock import MagicMock, patch

import pytest
from freezegun import freeze_time

from stateguard.backup.errors import StorageError
from stateguard.backup.retention import RetentionManager, apply_retention
from stateguard.backup.storage import LocalStorage


NAMES = [
    'stateguard-node-1-2024-01-01_02-00-00.tar.gz',
    'stateguard-node-1-2024-01-02_02-00-00.tar.gz',
    'stateguard-node-1-2024-01-03_02-00-00.tar.gz',
    'stateguard-node-1-2024-01-04_02-00-00.tar.gz',
]


@pytest.fixture
def local_backend(node_dirs, make_archives):
    """Local backend holding four archives, oldest first in NAMES."""
    make_archives(node_dirs['backups'], NAMES)
    return LocalStorage(str(node_dirs['backups']))


class TestRetentionManager:
    """Test RetentionManager class."""

    def test_retention_manager_initialization(self):
        manager = RetentionManager(3)

        assert manager.limit == 3
        assert manager.enabled
        assert manager.logs == []

    @pytest.mark.parametrize("limit", [None, 0, -1])
    def test_disabled_limits(self, limit, local_backend):
        """A limit of None or <= 0 deletes nothing."""
        manager = RetentionManager(limit)

        result = manager.apply(local_backend)

        assert not manager.enabled
        assert result.deleted == []
        assert local_backend.list() == NAMES

    def test_keeps_newest(self, local_backend):
        """Four archives with retention 2 keep the two newest."""
        result = apply_retention(local_backend, 2)

        assert result.deleted == NAMES[:2]
        assert result.kept == NAMES[2:]
        assert local_backend.list() == NAMES[2:]

    def test_under_limit_deletes_nothing(self, local_backend):
        result = apply_retention(local_backend, 10)

        assert result.deleted == []
        assert local_backend.list() == NAMES

    def test_exact_limit_deletes_nothing(self, local_backend):
        result = apply_retention(local_backend, 4)

        assert result.deleted == []

    def test_empty_backend(self, node_dirs):
        result = apply_retention(LocalStorage(str(node_dirs['backups'])), 3)

        assert result.deleted == []
        assert result.kept == []

    def test_plan_does_not_delete(self, local_backend):
        manager = RetentionManager(1)

        planned = manager.plan(local_backend)

        assert planned == NAMES[:3]
        assert local_backend.list() == NAMES

    def test_plan_counts_pending_archives(self, local_backend):
        """An archive about to be written counts against the limit."""
        planned = RetentionManager(2).plan(local_backend, pending=1)

        assert planned == NAMES[:3]
        assert local_backend.list() == NAMES

    def test_delete_failure_is_recorded_and_pass_continues(self, local_backend):
        """A failed deletion does not stop the remaining deletions."""
        real_delete = local_backend.delete

        def flaky_delete(name):
            if name == NAMES[0]:
                raise StorageError('Permission denied')
            real_delete(name)

        with patch.object(local_backend, 'delete', side_effect=flaky_delete):
            result = apply_retention(local_backend, 1)

        assert result.deleted == NAMES[1:3]
        assert len(result.errors) == 1
        assert NAMES[0] in result.errors[0]
        assert local_backend.list() == [NAMES[0], NAMES[3]]

    def test_works_with_any_backend(self):
        backend = MagicMock()
        backend.list.return_value = ['a.tar.gz', 'b.tar.gz', 'c.tar.gz']
        backend.describe.return_value = 'memory'

        result = apply_retention(backend, 1)

        assert result.deleted == ['a.tar.gz', 'b.tar.gz']
        assert [c.args[0] for c in backend.delete.call_args_list] == ['a.tar.gz', 'b.tar.gz']

    @freeze_time("2024-01-15 10:00:00")
    def test_retention_manager_logging(self, local_backend):
        manager = RetentionManager(3)

        manager.apply(local_backend)

        assert manager.logs[0].startswith('[2024-01-15 10:00:00 UTC]')
        assert any(f'Deleted old backup: {NAMES[0]}' in line for line in manager.logs)
