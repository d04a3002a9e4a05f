"""
Projection of the backup policy onto the host's job scheduler.

Automatic backups are run by the host's cron daemon, not by this process.
Saving a policy writes a single cron.d entry; APScheduler's cron trigger is
used to validate schedule expressions and to report the next run.
"""

import os
import logging
from datetime import datetime
from typing import Mapping, Optional

from stateguard.backup.errors import BackupError
from stateguard.backup.policy import validate_schedule
from stateguard.models import BackupPolicy


logger = logging.getLogger(__name__)


class ScheduleError(BackupError):
    """Raised when the cron entry cannot be installed or removed."""
    pass


def next_run_time(policy: BackupPolicy, now: Optional[datetime] = None, timezone: str = 'UTC') -> Optional[datetime]:
    """
    Compute when the scheduled backup fires next.

    Args:
        policy: Backup policy
        now: Reference time (timezone aware; defaults to the current time)
        timezone: Timezone the schedule is evaluated in

    Returns:
        Next fire time, or None if automatic backups are disabled or invalid
    """
    if not policy.enabled or not policy.schedule:
        return None

    try:
        trigger = validate_schedule(policy.schedule, timezone)
    except ValueError as e:
        logger.warning(f"Invalid backup schedule {policy.schedule!r}: {e}")
        return None

    if now is None:
        now = datetime.now(trigger.timezone)
    return trigger.get_next_fire_time(None, now)


def build_cron_entry(policy: BackupPolicy, command: str) -> str:
    """
    Render the cron.d line for a policy.

    Format: {schedule} root {command} backup create --target={target}
    """
    return f"{policy.schedule.strip()} root {command} backup create --target={policy.target}\n"


def install_cron_entry(policy: BackupPolicy, config: Mapping) -> str:
    """
    Write the policy's cron entry to the host scheduler directory.

    Args:
        policy: Saved backup policy
        config: Configuration mapping (CRON_FILE, CRON_COMMAND)

    Returns:
        Path of the cron file

    Raises:
        ScheduleError: If the file cannot be written
    """
    cron_file = config['CRON_FILE']
    entry = build_cron_entry(policy, config['CRON_COMMAND'])
    temp_path = f"{cron_file}.tmp"

    try:
        os.makedirs(os.path.dirname(cron_file), exist_ok=True)
        with open(temp_path, 'w') as f:
            f.write(entry)
        os.chmod(temp_path, 0o644)
        os.replace(temp_path, cron_file)
    except OSError as e:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise ScheduleError(f"Failed to install cron job {cron_file}: {e}") from e

    logger.info(f"Installed cron job {cron_file}: {entry.strip()}")
    return cron_file


def remove_cron_entry(config: Mapping) -> bool:
    """
    Remove the cron entry, if present.

    Returns:
        True if a file was removed

    Raises:
        ScheduleError: If the file exists but cannot be removed
    """
    cron_file = config['CRON_FILE']
    try:
        os.remove(cron_file)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise ScheduleError(f"Failed to remove cron job {cron_file}: {e}") from e

    logger.info(f"Removed cron job {cron_file}")
    return True
