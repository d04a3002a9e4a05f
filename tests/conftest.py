"""
Shared pytest fixtures for stateguard tests.

This module provides fixtures for:
- Node directory layout under a temporary root
- Flask app, test client and CLI runner
- Sample state trees and archives
- Mock S3 service
"""

import os
import tarfile

import pytest
import boto3
from moto import mock_aws

from stateguard import create_app
from stateguard.models import BackupPolicy, S3Settings


@pytest.fixture
def node_dirs(tmp_path):
    """
    Create a node filesystem layout.

    Creates:
    - state/ with config.yaml, credentials/token, agent.log, cache.tmp
    - state/backups/ (local backup directory)
    - data/ with user data
    - restore/ (empty restore root)

    The removable media mount (usb/) is NOT created.
    """
    state_dir = tmp_path / 'state'
    (state_dir / 'credentials').mkdir(parents=True)
    (state_dir / 'config.yaml').write_text('hostname: node-1\n')
    (state_dir / 'credentials' / 'token').write_text('secret-token')
    (state_dir / 'agent.log').write_text('log line\n')
    (state_dir / 'cache.tmp').write_text('scratch')

    backup_dir = state_dir / 'backups'
    backup_dir.mkdir()

    data_dir = tmp_path / 'data'
    data_dir.mkdir()
    (data_dir / 'notes.txt').write_text('user notes')

    restore_dir = tmp_path / 'restore'
    restore_dir.mkdir()

    return {
        'root': tmp_path,
        'state': state_dir,
        'backups': backup_dir,
        'data': data_dir,
        'restore': restore_dir,
        'usb': tmp_path / 'usb',
        'policy': state_dir / 'backup.yaml',
        'cron': tmp_path / 'cron.d' / 'stateguard-backup',
    }


@pytest.fixture
def node_config(node_dirs):
    """Configuration mapping pointing at the temporary node layout."""
    return {
        'PRODUCT_NAME': 'stateguard',
        'STATE_DIR': str(node_dirs['state']),
        'USER_DATA_DIR': str(node_dirs['data']),
        'BACKUP_DIR': str(node_dirs['backups']),
        'POLICY_PATH': str(node_dirs['policy']),
        'DEFAULT_EXCLUDES': ['*.log', '*.tmp'],
        'SORTED_WALK': True,
        'RESTORE_ROOT': str(node_dirs['restore']),
        'USB_MOUNT_CANDIDATES': [str(node_dirs['usb'])],
        'CRON_FILE': str(node_dirs['cron']),
        'CRON_COMMAND': '/usr/bin/stateguard',
        'SCHEDULER_TIMEZONE': 'UTC',
        'LOG_DIR': None,
        'API_TOKEN': 'test-token',
    }


@pytest.fixture
def app(node_config):
    """
    Create Flask app with test configuration.
    """
    app = create_app('testing', node_config)
    yield app


@pytest.fixture
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture
def auth_headers(node_config):
    """Authorization header carrying the configured API token."""
    return {'Authorization': f"Bearer {node_config['API_TOKEN']}"}


@pytest.fixture
def runner(app):
    """Flask CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture
def temp_files(tmp_path):
    """
    Create temporary test files and directories.

    Creates:
    - tree/test_file1.txt
    - tree/test_file2.log
    - tree/nested/test_file3.txt
    - tree/nested/deeper/test_file4.bin
    - tree/test_file.pyc
    """
    tree = tmp_path / 'tree'
    (tree / 'nested' / 'deeper').mkdir(parents=True)
    (tree / 'test_file1.txt').write_text('Test content 1')
    (tree / 'test_file2.log').write_text('Test log content')
    (tree / 'nested' / 'test_file3.txt').write_text('Nested test content')
    (tree / 'nested' / 'deeper' / 'test_file4.bin').write_bytes(bytes(range(256)) * 8)
    (tree / 'test_file.pyc').write_bytes(b'compiled python')
    return tree


@pytest.fixture
def make_archives():
    """
    Factory creating placeholder archive files in a directory.

    Usage: make_archives(directory, ['a.tar.gz', 'b.tar.gz'])
    """
    def _make(directory, names):
        os.makedirs(directory, exist_ok=True)
        paths = []
        for name in names:
            path = os.path.join(str(directory), name)
            with open(path, 'wb') as f:
                f.write(name.encode())
            paths.append(path)
        return paths

    return _make


@pytest.fixture
def sample_archive(tmp_path):
    """
    Create a sample .tar.gz archive with absolute member names.
    """
    source = tmp_path / 'sample_src'
    source.mkdir()
    (source / 'file1.txt').write_text('Content 1')
    (source / 'file2.txt').write_text('Content 2')

    archive_path = tmp_path / 'sample.tar.gz'
    with tarfile.open(archive_path, 'w:gz') as tar:
        for path in [source, source / 'file1.txt', source / 'file2.txt']:
            info = tar.gettarinfo(str(path), arcname=str(path))
            info.name = str(path)
            if info.isreg():
                with open(path, 'rb') as f:
                    tar.addfile(info, f)
            else:
                tar.addfile(info)

    return archive_path


@pytest.fixture
def mock_s3(monkeypatch):
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')

    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture
def s3_policy():
    """Policy with object storage configured for the mock bucket."""
    return BackupPolicy(
        enabled=True,
        retention=2,
        target='s3',
        s3=S3Settings(bucket='test-bucket', prefix='nodes/node-1', region='us-east-1')
    )
