"""
Unit tests for the backup orchestrator (lanevault/backup/executor.py).

Tests the per-server workflow, fault isolation between servers, and the
run-level outcomes recorded in BackupRun / ServerBackup.
"""

from datetime import datetime
from unittest.mock import MagicMock, call

import pytest

from lanevault.backup.actions import ActionFailed, ActionWaiter
from lanevault.backup.api_client import APIError
from lanevault.backup.downloader import Downloader, DownloadError
from lanevault.backup.executor import (
    BackupOrchestrator,
    build_orchestrator,
    execute_backup_run
)
from lanevault.backup.integrity import IntegrityChecker, IntegrityResult
from lanevault.backup.resources import LocalArtifact
from lanevault.backup.retention import RetentionManager
from lanevault.models import BackupRun, ServerBackup


@pytest.fixture
def collaborators(mock_api_client, mock_notifier, backup_dir):
    waiter = MagicMock(spec=ActionWaiter)

    downloader = MagicMock(spec=Downloader)
    downloader.download.side_effect = lambda url, server_name, target_dir: LocalArtifact(
        path=f'{target_dir}/{server_name}/backup-2024-01-15-020000.tar.gz',
        server_name=server_name,
        created_at=datetime(2024, 1, 15, 2, 0, 0),
        size_bytes=10 * 2 ** 30
    )

    checker = MagicMock(spec=IntegrityChecker)
    checker.verify.return_value = IntegrityResult(ok=True, detail='difference: 0.00%', actual_bytes=10 * 2 ** 30)

    retention = MagicMock(spec=RetentionManager)
    retention.rotate.return_value = []

    return {
        'api_client': mock_api_client,
        'notifier': mock_notifier,
        'waiter': waiter,
        'downloader': downloader,
        'checker': checker,
        'retention': retention,
        'backup_dir': str(backup_dir),
        'retention_days': 14,
        'action_timeout': 3600,
    }


@pytest.fixture
def orchestrator(collaborators):
    return BackupOrchestrator(**collaborators)


class TestBackupOrchestrator:
    """Test BackupOrchestrator.run_once."""

    def test_successful_run(self, db, orchestrator, collaborators):
        """Test every step runs for every server in order."""
        run = orchestrator.run_once()

        assert run.status == 'success'
        assert run.servers_total == 2
        assert run.servers_succeeded == 2
        assert run.servers_failed == 0
        assert run.completed_at is not None

        api = collaborators['api_client']
        api.take_backup.assert_has_calls([call('101'), call('102')])
        collaborators['waiter'].wait_for_completion.assert_has_calls([
            call('action-101', 3600),
            call('action-102', 3600),
        ])

    def test_most_recent_backup_is_downloaded(self, db, orchestrator, collaborators, backup_dir):
        """Test the last listed backup is selected."""
        orchestrator.run_once()

        api = collaborators['api_client']
        api.get_download_url.assert_has_calls([call('101-new'), call('102-new')])
        collaborators['downloader'].download.assert_any_call(
            'https://download.example.test/101-new.tar.gz', 'web-01', str(backup_dir)
        )
        collaborators['checker'].verify.assert_any_call(
            f'{backup_dir}/web-01/backup-2024-01-15-020000.tar.gz', 'web-01', '101-new'
        )
        collaborators['retention'].rotate.assert_any_call('web-01', str(backup_dir), 14)

    def test_server_records_are_persisted(self, db, orchestrator):
        """Test ServerBackup rows capture the workflow."""
        run = orchestrator.run_once()

        records = ServerBackup.query.filter_by(run_id=run.id).order_by(ServerBackup.id).all()
        assert [r.server_name for r in records] == ['web-01', 'db-01']

        record = records[0]
        assert record.status == 'success'
        assert record.action_id == 'action-101'
        assert record.image_id == '101-new'
        assert record.file_size_bytes == 10 * 2 ** 30
        assert record.integrity_ok is True
        assert 'Starting backup for web-01 (ID: 101)' in record.logs
        assert 'Successfully processed backup for web-01' in record.logs

    def test_first_server_failure_does_not_block_second(self, db, orchestrator, collaborators):
        """Test fault isolation when the first trigger call fails."""
        api = collaborators['api_client']
        api.take_backup.side_effect = [APIError(500, 'internal error'), 'action-102']

        run = orchestrator.run_once()

        assert run.status == 'partial'
        assert run.servers_succeeded == 1
        assert run.servers_failed == 1

        collaborators['downloader'].download.assert_called_once_with(
            'https://download.example.test/102-new.tar.gz', 'db-01', collaborators['backup_dir']
        )
        collaborators['retention'].rotate.assert_called_once()

        collaborators['notifier'].send.assert_any_call(
            'Error processing backup for web-01: API request failed with code 500: internal error'
        )

        failed = ServerBackup.query.filter_by(server_name='web-01').one()
        assert failed.status == 'failed'
        assert 'internal error' in failed.error_message

    @pytest.mark.parametrize('step, error', [
        ('waiter', ActionFailed('snapshot failed')),
        ('downloader', DownloadError(503)),
    ])
    def test_any_step_failure_is_isolated(self, db, orchestrator, collaborators, step, error):
        """Test failures at later steps are caught per server."""
        target = collaborators[step]
        method = target.wait_for_completion if step == 'waiter' else target.download
        original = method.side_effect

        def fail_for_first(*args):
            if 'web-01' in args or 'action-101' in args:
                raise error
            return original(*args) if original else None

        method.side_effect = fail_for_first

        run = orchestrator.run_once()

        assert run.status == 'partial'
        assert ServerBackup.query.filter_by(server_name='db-01').one().status == 'success'

    def test_no_backups_found(self, db, orchestrator, collaborators):
        """Test an empty backup list fails only that server."""
        collaborators['api_client'].list_backups.side_effect = lambda server_id: []

        run = orchestrator.run_once()

        assert run.status == 'failed'
        collaborators['notifier'].send.assert_any_call(
            'Error processing backup for web-01: No backups found for server web-01'
        )
        collaborators['downloader'].download.assert_not_called()

    def test_integrity_anomaly_does_not_fail_server(self, db, orchestrator, collaborators):
        """Test a failed size check is recorded but the pipeline continues."""
        collaborators['checker'].verify.return_value = IntegrityResult(
            ok=False, detail='Backup for web-01 is corrupted', actual_bytes=10
        )

        run = orchestrator.run_once()

        assert run.status == 'success'
        collaborators['retention'].rotate.assert_called()
        record = ServerBackup.query.filter_by(server_name='web-01').one()
        assert record.integrity_ok is False
        assert record.integrity_detail == 'Backup for web-01 is corrupted'

    def test_no_servers_found(self, db, orchestrator, collaborators):
        """Test an empty fleet is reported and is not an error."""
        collaborators['api_client'].list_servers.return_value = []

        run = orchestrator.run_once()

        assert run.status == 'no_servers'
        assert run.error_message is None
        collaborators['notifier'].send.assert_called_once_with('No servers found to process backups.')
        collaborators['api_client'].take_backup.assert_not_called()

    def test_server_listing_failure_ends_run(self, db, orchestrator, collaborators):
        """Test a fleet listing failure is reported once and nothing escapes."""
        collaborators['api_client'].list_servers.side_effect = APIError(503, 'maintenance')

        run = orchestrator.run_once()

        assert run.status == 'failed'
        assert 'maintenance' in run.error_message
        collaborators['notifier'].send.assert_called_once_with(
            'Error: API request failed with code 503: maintenance'
        )
        assert ServerBackup.query.count() == 0

    def test_run_is_recorded(self, db, orchestrator):
        run = orchestrator.run_once()

        assert BackupRun.query.get(run.id).status == 'success'


class TestOrchestratorFactory:
    """Test wiring from configuration."""

    def test_build_orchestrator(self, app, backup_dir):
        orchestrator = build_orchestrator(app.config)

        assert orchestrator.backup_dir == str(backup_dir)
        assert orchestrator.retention_days == 14
        assert orchestrator.waiter.poll_interval == 0
        assert orchestrator.waiter.timeout == 3600
        assert orchestrator.api_client.base_url == 'https://api.example.test/v2'
        assert orchestrator.downloader.store.extension == 'tar.gz'
        assert orchestrator.notifier.enabled is False

    def test_execute_backup_run_uses_app_config(self, db, app, monkeypatch):
        fake = MagicMock()
        fake.run_once.return_value = 'run'
        monkeypatch.setattr('lanevault.backup.executor.build_orchestrator', lambda config: fake)

        assert execute_backup_run() == 'run'
