"""
Persistent backup policy.

The policy is a YAML document under the node's state directory. It is read by
the create workflow (include/exclude, retention, object storage settings) and
written by the schedule command. There is no versioning or migration: a
document that does not validate fails the load.
"""

import os
import logging
from typing import Any, Dict, Mapping

import yaml
from apscheduler.triggers.cron import CronTrigger

from stateguard.models import BackupPolicy, S3Settings, TARGETS
from .errors import NotFoundError, PolicyError


logger = logging.getLogger(__name__)

POLICY_FIELDS = ('enabled', 'schedule', 'retention', 'target', 'include', 'exclude', 's3')
S3_FIELDS = ('bucket', 'endpoint', 'prefix', 'region')


def validate_schedule(expression: str, timezone: str = 'UTC') -> CronTrigger:
    """
    Parse a five-field cron expression.

    Args:
        expression: Cron expression (minute hour day month day_of_week)
        timezone: Timezone the expression is evaluated in

    Returns:
        CronTrigger for the expression

    Raises:
        ValueError: If the expression is not valid cron syntax
    """
    if not expression or not expression.strip():
        raise ValueError("Empty cron expression")
    return CronTrigger.from_crontab(expression.strip(), timezone=timezone)


def default_policy(config: Mapping) -> BackupPolicy:
    """
    Policy used when automatic backups are configured without an existing
    document.
    """
    return BackupPolicy(
        enabled=True,
        schedule='0 2 * * *',
        retention=7,
        target='local',
        include=[config['STATE_DIR']],
        exclude=[config['BACKUP_DIR']]
    )


def _string_list(data: Dict[str, Any], key: str):
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise PolicyError(f"Policy field '{key}' must be a list of strings")
    return list(value)


def policy_from_dict(data: Any) -> BackupPolicy:
    """
    Build and validate a policy from a parsed document.

    Raises:
        PolicyError: If any field has the wrong type or value
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PolicyError("Policy document must be a mapping")

    unknown = sorted(set(data) - set(POLICY_FIELDS))
    if unknown:
        logger.warning(f"Ignoring unknown policy fields: {', '.join(unknown)}")

    enabled = data.get('enabled', False)
    if not isinstance(enabled, bool):
        raise PolicyError("Policy field 'enabled' must be true or false")

    schedule = data.get('schedule') or ''
    if not isinstance(schedule, str):
        raise PolicyError("Policy field 'schedule' must be a cron expression string")
    if schedule:
        try:
            validate_schedule(schedule)
        except ValueError as e:
            raise PolicyError(f"Invalid cron expression {schedule!r}: {e}") from e

    retention = data.get('retention', 0)
    if retention is None:
        retention = 0
    if isinstance(retention, bool) or not isinstance(retention, int):
        raise PolicyError("Policy field 'retention' must be an integer")

    target = data.get('target') or 'local'
    if target not in TARGETS:
        raise PolicyError(f"Invalid policy target: {target}. Valid options: {list(TARGETS)}")

    s3_data = data.get('s3') or {}
    if not isinstance(s3_data, dict):
        raise PolicyError("Policy field 's3' must be a mapping")
    for key in S3_FIELDS:
        if s3_data.get(key) is not None and not isinstance(s3_data[key], str):
            raise PolicyError(f"Policy field 's3.{key}' must be a string")

    return BackupPolicy(
        enabled=enabled,
        schedule=schedule,
        retention=retention,
        target=target,
        include=_string_list(data, 'include'),
        exclude=_string_list(data, 'exclude'),
        s3=S3Settings(
            bucket=s3_data.get('bucket'),
            endpoint=s3_data.get('endpoint'),
            prefix=s3_data.get('prefix') or '',
            region=s3_data.get('region')
        )
    )


def policy_to_dict(policy: BackupPolicy) -> Dict[str, Any]:
    data = {
        'enabled': policy.enabled,
        'schedule': policy.schedule,
        'retention': policy.retention,
        'target': policy.target,
        'include': list(policy.include),
        'exclude': list(policy.exclude),
    }
    if policy.s3.configured:
        data['s3'] = {
            key: getattr(policy.s3, key)
            for key in S3_FIELDS
            if getattr(policy.s3, key)
        }
    return data


class PolicyStore:
    """Loads and saves the backup policy document."""

    def __init__(self, path: str):
        self.path = path

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def load(self) -> BackupPolicy:
        """
        Read the policy document.

        Returns:
            BackupPolicy

        Raises:
            NotFoundError: If the document does not exist
            PolicyError: If the document cannot be parsed or validated
        """
        try:
            with open(self.path, 'r') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise NotFoundError(f"Backup policy not configured: {self.path}") from e
        except yaml.YAMLError as e:
            raise PolicyError(f"Malformed backup policy {self.path}: {e}") from e
        except OSError as e:
            raise PolicyError(f"Cannot read backup policy {self.path}: {e}") from e

        return policy_from_dict(data)

    def save(self, policy: BackupPolicy):
        """
        Validate and write the policy document.

        Raises:
            PolicyError: If the policy is invalid or cannot be written
        """
        data = policy_to_dict(policy)
        policy_from_dict(data)

        directory = os.path.dirname(self.path) or '.'
        temp_path = f"{self.path}.tmp"

        try:
            os.makedirs(directory, exist_ok=True)
            with open(temp_path, 'w') as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.chmod(temp_path, 0o644)
            os.replace(temp_path, self.path)
        except OSError as e:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise PolicyError(f"Failed to save backup policy {self.path}: {e}") from e

        logger.info(f"Saved backup policy to {self.path}")
