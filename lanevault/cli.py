"""
Flask CLI commands.

    flask --app lanevault run-once
    flask --app lanevault rotate --days 14
    flask --app lanevault list-servers

run-once always exits with status 0: failures are reported through logs and
notifications rather than the exit code, so a scheduled batch always finishes.
"""

import click
from flask import current_app

from lanevault.backup.api_client import APIClient, APIError
from lanevault.backup.executor import execute_backup_run
from lanevault.backup.notifier import Notifier
from lanevault.backup.retention import RetentionManager
from lanevault.backup.storage import ArtifactStore


def register_commands(app):
    """Attach lanevault commands to the app's CLI."""

    @app.cli.command('run-once')
    def run_once_command():
        """Back up every server once."""
        run = execute_backup_run()
        click.echo(
            f"Run {run.id}: {run.status} "
            f"({run.servers_succeeded} succeeded, {run.servers_failed} failed)"
        )

    @app.cli.command('rotate')
    @click.option('--days', type=int, default=None, help='Retention period in days (default: RETENTION_DAYS)')
    def rotate_command(days):
        """Delete local backups older than the retention period."""
        config = current_app.config
        if days is None:
            days = config['RETENTION_DAYS']
        store = ArtifactStore(config['BACKUP_DIR'], config['ARTIFACT_EXTENSION'])
        summary = RetentionManager(store).enforce_all(days)
        click.echo(
            f"Processed {summary['servers_processed']} server(s), "
            f"deleted {summary['deleted']} backup(s)"
        )
        for error in summary['errors']:
            click.echo(f"Error: {error}", err=True)

    @app.cli.command('list-servers')
    def list_servers_command():
        """List servers visible to the API token."""
        config = current_app.config
        client = APIClient(
            api_token=config['API_TOKEN'],
            base_url=config['API_BASE_URL'],
            notifier=Notifier(),
            timeout=config['API_TIMEOUT']
        )
        try:
            servers = client.list_servers()
        except APIError as e:
            raise click.ClickException(str(e))

        if not servers:
            click.echo("No servers found")
        for server in servers:
            click.echo(f"{server.id}\t{server.name}")
