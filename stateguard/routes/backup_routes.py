"""
Backup routes - list, create and delete backups over HTTP.

Every route requires the API_TOKEN bearer token. Restore is not exposed
here; it needs an operator at the console.
"""

import hmac
import logging
from flask import Blueprint, current_app, jsonify, request

from stateguard.backup.catalog import Catalog
from stateguard.backup.errors import (
    BackendNotImplementedError,
    BackendUnavailableError,
    BackupError,
    NotFoundError,
    PolicyError,
)
from stateguard.backup.executor import BackupExecutor, load_policy
from stateguard.backup.policy import PolicyStore, policy_to_dict
from stateguard.backup.storage import get_backend
from stateguard.models import TARGETS
from stateguard.scheduler import next_run_time
from stateguard.utils.formatting import format_size


bp = Blueprint('backups', __name__, url_prefix='/api/backups')
logger = logging.getLogger(__name__)


@bp.before_request
def require_token():
    """Reject requests without the configured bearer token."""
    token = current_app.config.get('API_TOKEN')
    header = request.headers.get('Authorization', '')
    scheme, _, provided = header.partition(' ')

    if not token or scheme.lower() != 'bearer' or not hmac.compare_digest(provided.strip().encode(), token.encode()):
        logger.warning(f"Rejected unauthenticated {request.method} {request.path}")
        return jsonify({'error': 'Authentication required'}), 401


def _error_response(e: BackupError):
    """Map an engine error to a JSON error response."""
    if isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, BackendNotImplementedError):
        status = 501
    elif isinstance(e, BackendUnavailableError):
        status = 503
    elif isinstance(e, PolicyError):
        status = 400
    else:
        status = 500
    return jsonify({'error': str(e)}), status


@bp.route('/', methods=['GET'])
def list_backups():
    """
    List backups on every backend.

    Returns:
        JSON mapping backend id to its archives, or to an error message when
        the backend is unavailable
    """
    policy = load_policy(current_app.config)
    result = {}

    for backend_id in TARGETS:
        try:
            entries = Catalog(get_backend(backend_id, current_app.config, policy)).entries()
        except BackupError as e:
            result[backend_id] = {'available': False, 'error': str(e), 'backups': []}
            continue

        backups = []
        for entry in entries:
            data = entry.to_dict()
            data['size'] = format_size(entry.size_bytes) if entry.size_bytes is not None else None
            backups.append(data)

        result[backend_id] = {'available': True, 'backups': backups}

    return jsonify(result)


@bp.route('/status', methods=['GET'])
def backup_status():
    """
    Get the backup policy, next scheduled run and local backup count.
    """
    config = current_app.config

    try:
        policy = PolicyStore(config['POLICY_PATH']).load()
    except NotFoundError:
        policy = None
    except PolicyError as e:
        return _error_response(e)

    try:
        local_backups = get_backend('local', config).list()
    except BackupError as e:
        logger.warning(f"Failed to list local backups: {e}")
        local_backups = []

    next_run = None
    if policy is not None:
        next_run = next_run_time(policy, timezone=config.get('SCHEDULER_TIMEZONE', 'UTC'))

    return jsonify({
        'configured': policy is not None,
        'policy': policy_to_dict(policy) if policy is not None else None,
        'next_run': next_run.isoformat() if next_run else None,
        'local_backups': local_backups,
        'latest': local_backups[-1] if local_backups else None,
    })


@bp.route('/', methods=['POST'])
def create_backup():
    """
    Create a backup.

    JSON body:
        - target: local, usb or s3 (default: local)
        - include_data: include the user data directory (default: false)
        - dry_run: only report what would be archived (default: false)

    Returns:
        JSON backup report
    """
    data = request.get_json(silent=True) or {}

    target = data.get('target', 'local')
    if target not in TARGETS:
        return jsonify({'error': f'Invalid target: {target}'}), 400

    try:
        report = BackupExecutor(current_app.config).create(
            target=target,
            include_data=bool(data.get('include_data', False)),
            dry_run=bool(data.get('dry_run', False))
        )
    except BackupError as e:
        logger.error(f"Backup failed: {e}")
        return _error_response(e)

    return jsonify(report.to_dict()), 200 if report.dry_run else 201


@bp.route('/<name>', methods=['DELETE'])
def delete_backup(name):
    """
    Delete a backup.

    Query params:
        - backend: local, usb or s3 (default: local)
    """
    backend_id = request.args.get('backend', 'local')

    try:
        backend = get_backend(backend_id, current_app.config, load_policy(current_app.config))
        Catalog(backend).delete(name)
    except BackupError as e:
        return _error_response(e)

    return jsonify({'deleted': name, 'backend': backend_id})
