"""
Retention policy enforcement for local backups.

Artifacts are rediscovered from the backup directory on every call and aged
by the date encoded in their filenames. Only the date matters: the
time-of-day suffix never moves an artifact across the retention threshold.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .notifier import Notifier
from .storage import ArtifactStore, StorageError


logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
DEFAULT_RETENTION_DAYS = 14


class RetentionManager:
    """
    Deletes local artifacts older than the retention period.
    """

    def __init__(self, store: ArtifactStore, notifier: Optional[Notifier] = None):
        """
        Initialize retention manager.

        Args:
            store: Artifact store for the default backup directory
            notifier: Optional notifier for deletion failures
        """
        self.store = store
        self.notifier = notifier or Notifier()

    def is_expired(self, created_at: datetime, retention_days: int, now: Optional[datetime] = None) -> bool:
        """
        True when the artifact's date is more than retention_days in the past.
        """
        if now is None:
            now = datetime.now()
        day = datetime(created_at.year, created_at.month, created_at.day)
        return (now - day).total_seconds() > retention_days * SECONDS_PER_DAY

    def rotate(self, server_name: str, target_dir: Optional[str] = None, retention_days: int = DEFAULT_RETENTION_DAYS) -> List[str]:
        """
        Delete expired artifacts of one server.

        Args:
            server_name: Server whose artifacts are rotated
            target_dir: Backup root (default: the store's base path)
            retention_days: Days to keep artifacts

        Returns:
            Paths of deleted artifacts

        Raises:
            StorageError: If the server directory cannot be listed
        """
        store = self.store
        if target_dir is not None:
            store = ArtifactStore(target_dir, self.store.extension)

        now = datetime.now()
        deleted = []

        for artifact in store.list_artifacts(server_name):
            if not self.is_expired(artifact.created_at, retention_days, now):
                continue
            try:
                store.delete(artifact.path)
            except StorageError as e:
                message = f"Failed to delete expired backup {artifact.path}: {e}"
                logger.error(message)
                self.notifier.send(message)
                continue
            deleted.append(artifact.path)
            logger.info(f"Deleted expired backup: {artifact.path}")

        if deleted:
            logger.info(f"Retention for {server_name}: deleted {len(deleted)} backup(s) older than {retention_days} days")
        else:
            logger.debug(f"Retention for {server_name}: nothing to delete")

        return deleted

    def enforce_all(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> Dict[str, Any]:
        """
        Rotate every server directory found under the backup root.

        Servers removed from the fleet keep their directory, so this sweep
        is the only thing that ages out their old artifacts.

        Returns:
            Dict with summary of cleanup operations:
            {
                'servers_processed': int,
                'deleted': int,
                'errors': List[str]
            }
        """
        summary = {
            'servers_processed': 0,
            'deleted': 0,
            'errors': []
        }

        try:
            server_names = self.store.list_server_names()
        except StorageError as e:
            logger.error(str(e))
            summary['errors'].append(str(e))
            return summary

        for server_name in server_names:
            try:
                summary['deleted'] += len(self.rotate(server_name, retention_days=retention_days))
                summary['servers_processed'] += 1
            except StorageError as e:
                error_msg = f"Failed to enforce retention for {server_name}: {e}"
                logger.error(error_msg)
                summary['errors'].append(error_msg)

        logger.info(
            f"Retention enforcement complete. "
            f"Servers: {summary['servers_processed']}, "
            f"Deleted: {summary['deleted']}, "
            f"Errors: {len(summary['errors'])}"
        )

        return summary
