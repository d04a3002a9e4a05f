"""
Unit tests for the backup HTTP API (stateguard/routes/backup_routes.py).
"""

import os

import pytest

from stateguard import create_app
from stateguard.backup.policy import PolicyStore
from stateguard.models import BackupPolicy


ARCHIVE = 'stateguard-node-1-2024-01-15_14-30-45.tar.gz'


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy'}


class TestAuthentication:
    """Test bearer token checks on /api/backups."""

    @pytest.mark.parametrize("headers", [
        {},
        {'Authorization': 'Bearer wrong-token'},
        {'Authorization': 'test-token'},
        {'Authorization': 'Basic test-token'},
    ])
    def test_list_rejected_without_valid_token(self, client, headers):
        response = client.get('/api/backups/', headers=headers)

        assert response.status_code == 401
        assert response.get_json() == {'error': 'Authentication required'}

    def test_create_rejected_without_token(self, client, node_dirs):
        response = client.post('/api/backups/', json={})

        assert response.status_code == 401
        assert os.listdir(node_dirs['backups']) == []

    def test_delete_rejected_without_token(self, client, node_dirs, make_archives):
        make_archives(node_dirs['backups'], [ARCHIVE])

        response = client.delete(f'/api/backups/{ARCHIVE}')

        assert response.status_code == 401
        assert os.listdir(node_dirs['backups']) == [ARCHIVE]

    def test_unconfigured_token_rejects_everything(self, node_config, auth_headers):
        """With no API_TOKEN set the API is closed."""
        node_config['API_TOKEN'] = None
        client = create_app('testing', node_config).test_client()

        response = client.get('/api/backups/status', headers=auth_headers)

        assert response.status_code == 401

    def test_health_needs_no_token(self, client):
        assert client.get('/health').status_code == 200


class TestListBackups:

    def test_list_backups(self, client, auth_headers, node_dirs, make_archives):
        make_archives(node_dirs['backups'], [ARCHIVE])

        response = client.get('/api/backups/', headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['local']['available'] is True
        assert data['local']['backups'][0]['name'] == ARCHIVE
        assert data['local']['backups'][0]['size'] == f'{len(ARCHIVE)} B'
        assert data['local']['backups'][0]['created_at'] == '2024-01-15T14:30:45'
        assert data['usb']['available'] is False
        assert 'No removable drive mounted' in data['usb']['error']
        assert data['s3']['available'] is False


class TestBackupStatus:

    def test_status_unconfigured(self, client, auth_headers):
        response = client.get('/api/backups/status', headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['configured'] is False
        assert data['policy'] is None
        assert data['next_run'] is None
        assert data['local_backups'] == []
        assert data['latest'] is None

    def test_status_configured(self, client, auth_headers, node_dirs, make_archives):
        PolicyStore(str(node_dirs['policy'])).save(BackupPolicy(enabled=True, schedule='0 2 * * *', retention=4))
        make_archives(node_dirs['backups'], ['stateguard-node-1-2024-01-14_02-00-00.tar.gz', ARCHIVE])

        data = client.get('/api/backups/status', headers=auth_headers).get_json()

        assert data['configured'] is True
        assert data['policy']['retention'] == 4
        assert data['next_run'] is not None
        assert data['latest'] == ARCHIVE

    def test_status_malformed_policy(self, client, auth_headers, node_dirs):
        node_dirs['policy'].write_text('retention: lots\n')

        response = client.get('/api/backups/status', headers=auth_headers)

        assert response.status_code == 400
        assert 'retention' in response.get_json()['error']


class TestCreateBackup:
    """Test POST /api/backups/."""

    def test_create_backup(self, client, auth_headers, node_dirs):
        response = client.post('/api/backups/', json={}, headers=auth_headers)

        assert response.status_code == 201
        data = response.get_json()
        assert data['target'] == 'local'
        assert os.path.exists(data['archive_path'])
        assert data['entry_count'] == 4

    def test_create_backup_dry_run(self, client, auth_headers, node_dirs):
        response = client.post('/api/backups/', json={'dry_run': True, 'include_data': True}, headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['dry_run'] is True
        assert str(node_dirs['data']) in data['roots']
        assert os.listdir(node_dirs['backups']) == []

    def test_create_backup_invalid_target(self, client, auth_headers):
        response = client.post('/api/backups/', json={'target': 'ftp'}, headers=auth_headers)

        assert response.status_code == 400
        assert 'Invalid target' in response.get_json()['error']

    def test_create_backup_usb_warning(self, client, auth_headers):
        response = client.post('/api/backups/', json={'target': 'usb'}, headers=auth_headers)

        assert response.status_code == 201
        assert response.get_json()['warnings']


class TestDeleteBackup:
    """Test DELETE /api/backups/<name>."""

    def test_delete_backup(self, client, auth_headers, node_dirs, make_archives):
        make_archives(node_dirs['backups'], [ARCHIVE])

        response = client.delete(f'/api/backups/{ARCHIVE}', headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json() == {'deleted': ARCHIVE, 'backend': 'local'}
        assert os.listdir(node_dirs['backups']) == []

    def test_delete_missing_backup(self, client, auth_headers):
        response = client.delete(f'/api/backups/{ARCHIVE}', headers=auth_headers)

        assert response.status_code == 404

    def test_delete_from_unmounted_drive(self, client, auth_headers):
        response = client.delete(f'/api/backups/{ARCHIVE}?backend=usb', headers=auth_headers)

        assert response.status_code == 503

    def test_delete_from_unknown_backend(self, client, auth_headers):
        response = client.delete(f'/api/backups/{ARCHIVE}?backend=ftp', headers=auth_headers)

        assert response.status_code == 501
