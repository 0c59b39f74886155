"""
Unit tests for retention policy management (lanevault/backup/retention.py).

Tests RetentionManager for cleaning up old local backups.
"""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
from freezegun import freeze_time

from lanevault.backup.retention import RetentionManager
from lanevault.backup.storage import StorageError


class TestRetentionManager:
    """Test RetentionManager.rotate for a single server."""

    @freeze_time("2024-01-15 12:00:00")
    def test_deletes_artifact_older_than_retention(self, store, make_artifact, mock_notifier):
        """Test a 15 day old artifact is deleted with 14 day retention."""
        old = make_artifact('web-01', 'backup-2023-12-31-030000.tar.gz')

        manager = RetentionManager(store, mock_notifier)
        deleted = manager.rotate('web-01', retention_days=14)

        assert deleted == [str(old)]
        assert not old.exists()

    @freeze_time("2024-01-15 12:00:00")
    def test_keeps_artifact_within_retention(self, store, make_artifact, mock_notifier):
        """Test a 13 day old artifact is retained with 14 day retention."""
        recent = make_artifact('web-01', 'backup-2024-01-02-230000.tar.gz')

        manager = RetentionManager(store, mock_notifier)
        deleted = manager.rotate('web-01', retention_days=14)

        assert deleted == []
        assert recent.exists()

    @freeze_time("2024-01-15 12:00:00")
    def test_time_of_day_does_not_affect_threshold(self, store, make_artifact, mock_notifier):
        """Test artifacts from the same day age identically."""
        early = make_artifact('web-01', 'backup-2024-01-01-000001.tar.gz')
        late = make_artifact('web-01', 'backup-2024-01-01-235959.tar.gz')

        manager = RetentionManager(store, mock_notifier)
        deleted = manager.rotate('web-01', retention_days=14)

        assert sorted(deleted) == sorted([str(early), str(late)])

    @freeze_time("2024-01-15 12:00:00")
    def test_ignores_non_conforming_files(self, store, make_artifact, mock_notifier):
        """Test files outside the naming convention are never deleted."""
        foreign = make_artifact('web-01', 'manual-copy-2020-01-01.tar.gz')
        other_ext = make_artifact('web-01', 'backup-2020-01-01.zip')

        manager = RetentionManager(store, mock_notifier)
        deleted = manager.rotate('web-01', retention_days=14)

        assert deleted == []
        assert foreign.exists()
        assert other_ext.exists()

    @freeze_time("2024-01-15 12:00:00")
    def test_rotate_is_idempotent(self, store, make_artifact, mock_notifier):
        """Test a second rotation with no new artifacts is a no-op."""
        make_artifact('web-01', 'backup-2023-12-01.tar.gz')
        make_artifact('web-01', 'backup-2024-01-14-020000.tar.gz')

        manager = RetentionManager(store, mock_notifier)
        first = manager.rotate('web-01', retention_days=14)
        second = manager.rotate('web-01', retention_days=14)

        assert len(first) == 1
        assert second == []
        assert len(store.list_artifacts('web-01')) == 1

    def test_rotate_missing_server_directory(self, store, mock_notifier):
        """Test rotating a server without local backups does nothing."""
        manager = RetentionManager(store, mock_notifier)

        assert manager.rotate('never-backed-up', retention_days=14) == []

    @freeze_time("2024-01-15 12:00:00")
    def test_rotate_with_explicit_target_dir(self, tmp_path, store, mock_notifier):
        """Test target_dir overrides the store's base path."""
        other_root = tmp_path / 'elsewhere'
        (other_root / 'web-01').mkdir(parents=True)
        old = other_root / 'web-01' / 'backup-2023-11-01.tar.gz'
        old.write_bytes(b'data')

        manager = RetentionManager(store, mock_notifier)
        deleted = manager.rotate('web-01', target_dir=str(other_root), retention_days=14)

        assert deleted == [str(old)]

    @freeze_time("2024-01-15 12:00:00")
    def test_delete_failure_is_reported_and_skipped(self, store, make_artifact, mock_notifier):
        """Test a failed deletion does not stop the rotation."""
        make_artifact('web-01', 'backup-2023-11-01.tar.gz')
        second = make_artifact('web-01', 'backup-2023-11-02.tar.gz')

        manager = RetentionManager(store, mock_notifier)
        with patch.object(store, 'delete', side_effect=[StorageError('read-only'), None]):
            deleted = manager.rotate('web-01', retention_days=14)

        assert deleted == [str(second)]
        mock_notifier.send.assert_called_once()
        assert 'read-only' in mock_notifier.send.call_args[0][0]


class TestRetentionPolicyEnforcement:
    """Test the expiry rule and the all-servers sweep."""

    @pytest.mark.parametrize('created_at, expected', [
        (datetime(2024, 1, 1), False),   # exactly 14 days at midnight
        (datetime(2023, 12, 31), True),  # 15 days
        (datetime(2024, 1, 2), False),   # 13 days
    ])
    def test_is_expired_boundaries(self, store, created_at, expected):
        """Test expiry uses strictly greater-than on whole seconds."""
        manager = RetentionManager(store)
        now = datetime(2024, 1, 15)

        assert manager.is_expired(created_at, 14, now) is expected

    @freeze_time("2024-01-15 12:00:00")
    def test_enforce_all_sweeps_every_server(self, store, make_artifact, mock_notifier):
        """Test enforce_all rotates each server directory."""
        make_artifact('web-01', 'backup-2023-12-01.tar.gz')
        make_artifact('db-01', 'backup-2023-12-02-010000.tar.gz')
        make_artifact('db-01', 'backup-2024-01-14-010000.tar.gz')

        manager = RetentionManager(store, mock_notifier)
        summary = manager.enforce_all(14)

        assert summary['servers_processed'] == 2
        assert summary['deleted'] == 2
        assert summary['errors'] == []

    @freeze_time("2024-01-15 12:00:00")
    def test_enforce_all_isolates_failures(self, store, make_artifact, mock_notifier):
        """Test one unreadable server directory does not stop the sweep."""
        make_artifact('db-01', 'backup-2023-12-01.tar.gz')
        make_artifact('web-01', 'backup-2023-12-01.tar.gz')

        original = store.list_artifacts

        def flaky(server_name):
            if server_name == 'db-01':
                raise StorageError('permission denied')
            return original(server_name)

        manager = RetentionManager(store, mock_notifier)
        with patch.object(store, 'list_artifacts', side_effect=flaky):
            summary = manager.enforce_all(14)

        assert summary['servers_processed'] == 1
        assert summary['deleted'] == 1
        assert len(summary['errors']) == 1
        assert 'db-01' in summary['errors'][0]

    def test_enforce_all_empty_root(self, store):
        """Test sweep on an empty backup root."""
        manager = RetentionManager(store, MagicMock())

        assert manager.enforce_all(14) == {'servers_processed': 0, 'deleted': 0, 'errors': []}
