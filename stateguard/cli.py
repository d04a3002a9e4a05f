"""
Command-line front-end for backup and restore.

Available as ``stateguard backup ...`` (console script) and as
``flask --app stateguard backup ...``.
"""

import click
from flask import current_app
from flask.cli import AppGroup, FlaskGroup

from stateguard.backup.catalog import ArchiveSelector, Catalog
from stateguard.backup.errors import BackupError, NotFoundError
from stateguard.backup.executor import BackupExecutor, RestoreExecutor, load_policy
from stateguard.backup.paths import select_exclusions
from stateguard.backup.policy import PolicyStore, default_policy
from stateguard.backup.storage import get_backend
from stateguard.models import TARGETS
from stateguard.scheduler import (
    ScheduleError,
    install_cron_entry,
    next_run_time,
    remove_cron_entry,
)
from stateguard.utils.formatting import format_size


backup_cli = AppGroup('backup', help='Backup and restore node state.')


def _heading(text):
    click.secho(f"=== {text} ===\n", fg='cyan', bold=True)


def _ok(text):
    click.echo(click.style('✓ ', fg='green', bold=True) + text)


def _fail(e):
    raise click.ClickException(str(e))


@backup_cli.command('create')
@click.option('--target', '-t', type=click.Choice(TARGETS), default='local', show_default=True,
              help='Backend to store the backup on.')
@click.option('--include-data', is_flag=True, help='Include the user data directory.')
@click.option('--dry-run', is_flag=True, help='Show what would be backed up without creating a backup.')
def create_command(target, include_data, dry_run):
    """Create a new backup."""
    _heading('Creating Backup')

    try:
        report = BackupExecutor(current_app.config).create(
            target=target,
            include_data=include_data,
            dry_run=dry_run
        )
    except BackupError as e:
        _fail(f"Backup failed: {e}")

    if report.dry_run:
        click.echo("  Dry run - would back up:")
        for root in report.roots:
            click.echo(f"    • {root}")
        click.echo("\n  Excluded patterns:")
        for pattern in report.exclusions:
            click.echo(f"    • {pattern}")
        click.echo(f"\n  Archive name: {report.archive_name}")
        for name in report.pruned.get('local', []):
            click.echo(f"  Retention would delete: {name}")
        return

    click.echo(f"  → Backed up to: {report.archive_path}")
    click.echo(f"  → Backup size: {format_size(report.size_bytes)}")
    if report.mirror_location:
        click.echo(f"  → Copied to {report.target}: {report.mirror_location}")
    for backend_id, names in report.pruned.items():
        for name in names:
            click.echo(f"  → Retention removed from {backend_id}: {name}")
    for warning in report.warnings:
        click.secho(f"  ! {warning}", fg='yellow', err=True)

    click.echo()
    _ok("Backup created successfully!")


@backup_cli.command('restore')
@click.option('--from', '-f', 'source', type=click.Choice(TARGETS), default='local', show_default=True,
              help='Backend to restore from.')
@click.option('--date', '-d', 'date', metavar='YYYY-MM-DD', help='Restore the first backup from this date.')
@click.option('--latest', is_flag=True, help='Restore the most recent backup.')
@click.option('--name', 'name', help='Restore a backup by exact name.')
@click.option('--dry-run', is_flag=True, help='Show what would be restored without restoring.')
@click.option('--yes', '-y', 'assume_yes', is_flag=True, help='Do not ask for confirmation.')
def restore_command(source, date, latest, name, dry_run, assume_yes):
    """Restore from a backup."""
    _heading('Restoring Backup')

    if name:
        selector = ArchiveSelector.by_name(name)
    elif latest:
        selector = ArchiveSelector.latest()
    elif date:
        selector = ArchiveSelector.by_date(date)
    else:
        try:
            names = Catalog(get_backend(source, current_app.config, load_policy(current_app.config))).list()
        except BackupError as e:
            _fail(e)
        if names:
            click.echo("  Available backups:")
            for i, archive in enumerate(names, start=1):
                click.echo(f"    {i}. {archive}")
        _fail("Specify --latest, --date or --name to select a backup")

    def confirm(archive_name):
        if assume_yes:
            return True
        click.secho("\n  Warning: This will overwrite existing configuration!", fg='yellow')
        return click.confirm("  Continue?", default=False)

    try:
        report = RestoreExecutor(current_app.config).restore(
            source=source,
            selector=selector,
            confirm=confirm,
            dry_run=dry_run
        )
    except BackupError as e:
        _fail(f"Restore failed: {e}")

    click.echo(f"  → Restoring from: {report.archive_name}")

    if report.dry_run:
        click.echo("\n  Dry run - would restore files from backup")
        return
    if report.cancelled:
        click.echo("  Restore cancelled")
        return

    click.echo()
    _ok("Restore completed!")
    click.echo(f"  {report.files} files, {report.directories} directories restored into {report.destination}")
    click.secho("  Note: You may need to reboot for all changes to take effect", fg='yellow')


@backup_cli.command('list')
def list_command():
    """List available backups."""
    _heading('Available Backups')

    policy = load_policy(current_app.config)

    for backend_id in TARGETS:
        click.secho(f"  {backend_id}:", fg='cyan', bold=True)
        try:
            entries = Catalog(get_backend(backend_id, current_app.config, policy)).entries()
        except BackupError as e:
            click.echo(f"    Unavailable: {e}\n")
            continue

        if not entries:
            click.echo("    No backups\n")
            continue

        for entry in entries:
            size = format_size(entry.size_bytes) if entry.size_bytes is not None else '?'
            click.echo(f"    • {entry.name} ({size})")
        click.echo()


@backup_cli.command('delete')
@click.argument('name')
@click.option('--from', '-f', 'source', type=click.Choice(TARGETS), default='local', show_default=True,
              help='Backend to delete from.')
def delete_command(name, source):
    """Delete a backup."""
    try:
        backend = get_backend(source, current_app.config, load_policy(current_app.config))
        Catalog(backend).delete(name)
    except BackupError as e:
        _fail(e)

    _ok(f"Deleted backup: {name}")


@backup_cli.command('status')
def status_command():
    """Show backup configuration and schedule."""
    config = current_app.config
    _heading('Backup Status')

    policy = None
    try:
        policy = PolicyStore(config['POLICY_PATH']).load()
    except NotFoundError:
        click.secho("  ! Automatic backups not configured", fg='yellow')
        click.echo("    Configure with: stateguard backup schedule")
    except BackupError as e:
        click.secho(f"  ! Backup policy unreadable: {e}", fg='yellow')

    if policy is not None:
        if policy.enabled:
            _ok("Automatic backups: enabled")
            click.echo(f"    Schedule: {policy.schedule}")
            next_run = next_run_time(policy, timezone=config.get('SCHEDULER_TIMEZONE', 'UTC'))
            if next_run:
                click.echo(f"    Next run: {next_run.isoformat()}")
            click.echo(f"    Retention: {policy.retention} backups")
            click.echo(f"    Target: {policy.target}")
        else:
            click.echo("  ○ Automatic backups: disabled")

    click.echo()
    _heading('Local Backups')
    try:
        names = get_backend('local', config).list()
    except BackupError:
        names = []
    if not names:
        click.echo("  No local backups found")
    for name in names:
        click.echo(f"  • {name}")

    click.echo()
    _heading('Backup Paths')
    click.echo("  Default paths included:")
    click.echo(f"    • {config['STATE_DIR']} (config, credentials)")
    click.echo("  Optional paths:")
    click.echo(f"    • {config['USER_DATA_DIR']} (user data, use --include-data)")
    click.echo("  Excluded patterns:")
    for pattern in select_exclusions(config.get('DEFAULT_EXCLUDES'), backup_dir=config['BACKUP_DIR']):
        click.echo(f"    • {pattern}")


@backup_cli.command('schedule')
@click.option('--cron', default='0 2 * * *', show_default=True, help='Cron expression for the backup schedule.')
@click.option('--retention', default=7, show_default=True, type=int, help='Number of backups to keep.')
@click.option('--target', '-t', type=click.Choice(TARGETS), default=None,
              help='Backend for scheduled backups (default: keep current).')
@click.option('--disable', is_flag=True, help='Disable automatic backups.')
def schedule_command(cron, retention, target, disable):
    """Configure automatic backups."""
    config = current_app.config
    store = PolicyStore(config['POLICY_PATH'])

    try:
        policy = store.load()
    except NotFoundError:
        policy = default_policy(config)
    except BackupError as e:
        click.secho(f"  ! Replacing unreadable policy: {e}", fg='yellow', err=True)
        policy = default_policy(config)

    policy.enabled = not disable
    policy.schedule = cron
    policy.retention = retention
    if target:
        policy.target = target

    try:
        store.save(policy)
    except BackupError as e:
        _fail(f"Failed to save config: {e}")

    try:
        if policy.enabled:
            cron_file = install_cron_entry(policy, config)
        else:
            remove_cron_entry(config)
            cron_file = None
    except ScheduleError as e:
        click.secho(f"  ! {e}", fg='yellow', err=True)
        cron_file = None

    if not policy.enabled:
        _ok("Automatic backups disabled")
        return

    _ok("Backup schedule configured!")
    click.echo(f"  Schedule: {policy.schedule}")
    click.echo(f"  Retention: {policy.retention} backups")
    click.echo(f"  Target: {policy.target}")
    if cron_file:
        click.echo(f"  Cron job installed to {cron_file}")


def _create_cli_app():
    from stateguard import create_app
    return create_app()


cli = FlaskGroup(create_app=_create_cli_app, add_default_commands=False, add_version_option=False,
                 help='stateguard node state backup tool.')
cli.add_command(backup_cli)


def main():
    cli(prog_name='stateguard')
