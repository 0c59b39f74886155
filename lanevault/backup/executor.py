"""
Backup orchestrator - runs the backup lifecycle for every server.

Per-server workflow:
1. Trigger a temporary backup (oldest slot is replaced remotely)
2. Wait for the remote action to complete
3. Select the most recent backup image
4. Resolve its download link and stream it to local storage
5. Verify the artifact size against the image metadata
6. Rotate expired local backups

Each server runs inside its own failure boundary: an error is logged,
recorded in ServerBackup, reported through the notifier, and the run moves
on to the next server. Only a failure to list the fleet ends a run early.
Nothing is raised out of run_once().
"""

import logging
from datetime import datetime
from typing import Optional

from flask import current_app

from lanevault import db
from lanevault.models import BackupRun, ServerBackup
from .api_client import APIClient
from .actions import ActionWaiter
from .downloader import Downloader
from .integrity import IntegrityChecker
from .notifier import Notifier
from .resources import Server
from .retention import RetentionManager
from .storage import ArtifactStore


logger = logging.getLogger(__name__)


class NoBackupsFound(Exception):
    """Raised when the API lists no backups after a completed backup action."""
    pass


class ServerBackupExecutor:
    """
    Runs the backup workflow for a single server and records it.
    """

    def __init__(self, orchestrator: 'BackupOrchestrator', server: Server, run: BackupRun):
        """
        Initialize server backup executor.

        Args:
            orchestrator: Orchestrator providing the collaborators
            server: Server to back up
            run: BackupRun this backup belongs to
        """
        self.orchestrator = orchestrator
        self.server = server
        self.run = run
        self.record = None
        self.logs = []
        self._log_flush_counter = 0

    def execute(self) -> ServerBackup:
        """
        Execute the backup workflow for the server.

        Returns:
            ServerBackup record with execution results (never raises for
            workflow failures)
        """
        self.record = ServerBackup(
            run_id=self.run.id,
            server_id=self.server.id,
            server_name=self.server.name,
            status='running',
            started_at=datetime.utcnow()
        )
        db.session.add(self.record)
        db.session.commit()

        self._log(f"Starting backup for {self.server.name} (ID: {self.server.id})")

        try:
            self._execute_workflow()

            self.record.status = 'success'
            self.record.completed_at = datetime.utcnow()
            self._log(f"Successfully processed backup for {self.server.name}")

        except Exception as e:
            self.record.status = 'failed'
            self.record.completed_at = datetime.utcnow()
            self.record.error_message = str(e)
            message = f"Error processing backup for {self.server.name}: {e}"
            self._log(message, level=logging.ERROR)
            self.orchestrator.notifier.send(message)

        finally:
            self.record.logs = '\n'.join(self.logs)
            db.session.commit()

        return self.record

    def _execute_workflow(self):
        """Execute the backup workflow steps."""
        orchestrator = self.orchestrator
        api = orchestrator.api_client

        # Step 1: Trigger backup
        action_id = api.take_backup(self.server.id)
        self.record.action_id = action_id
        self._log(f"Backup action started: {action_id}")
        self._flush_logs_to_db()

        # Step 2: Wait for the remote action
        orchestrator.waiter.wait_for_completion(action_id, orchestrator.action_timeout)
        self._log("Backup action completed")

        # Step 3: Select the most recent backup
        backups = api.list_backups(self.server.id)
        if not backups:
            raise NoBackupsFound(f"No backups found for server {self.server.name}")
        latest = backups[-1]
        self.record.image_id = latest.id
        self._log(f"Selected backup image {latest.id} ({len(backups)} available)")
        self._flush_logs_to_db()

        # Step 4: Download
        url = api.get_download_url(latest.id)
        artifact = orchestrator.downloader.download(url, self.server.name, orchestrator.backup_dir)
        self.record.local_path = artifact.path
        self.record.file_size_bytes = artifact.size_bytes
        self._log(f"Downloaded {artifact.path} ({artifact.size_bytes / 1024 / 1024:.2f} MB)")
        self._flush_logs_to_db()

        # Step 5: Integrity check (anomalies are reported, not raised)
        result = orchestrator.checker.verify(artifact.path, self.server.name, latest.id)
        self.record.integrity_ok = result.ok
        self.record.integrity_detail = result.detail
        if result.ok:
            self._log(f"Integrity check passed ({result.detail})")
        else:
            self._log(f"Integrity check failed: {result.detail}", level=logging.WARNING)

        # Step 6: Rotate local backups
        deleted = orchestrator.retention.rotate(
            self.server.name,
            orchestrator.backup_dir,
            orchestrator.retention_days
        )
        self.record.deleted_count = len(deleted)
        self._log(f"Rotated local backups: {len(deleted)} deleted")

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the console/file log
        """
        timestamp = datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)

        # Flush logs every 5 entries
        self._log_flush_counter += 1
        if self._log_flush_counter >= 5:
            self._flush_logs_to_db()

    def _flush_logs_to_db(self):
        """Flush accumulated logs to database for real-time visibility."""
        if self.record:
            self.record.logs = '\n'.join(self.logs)
            db.session.commit()
            self._log_flush_counter = 0


class BackupOrchestrator:
    """
    Backs up the whole fleet, one server at a time.
    """

    def __init__(
        self,
        api_client: APIClient,
        notifier: Notifier,
        waiter: ActionWaiter,
        downloader: Downloader,
        checker: IntegrityChecker,
        retention: RetentionManager,
        backup_dir: str,
        retention_days: int = 14,
        action_timeout: Optional[int] = None
    ):
        self.api_client = api_client
        self.notifier = notifier
        self.waiter = waiter
        self.downloader = downloader
        self.checker = checker
        self.retention = retention
        self.backup_dir = backup_dir
        self.retention_days = retention_days
        self.action_timeout = action_timeout

    def run_once(self) -> BackupRun:
        """
        Back up every server returned by the API.

        Returns:
            BackupRun record summarizing the run
        """
        run = BackupRun(status='running', started_at=datetime.utcnow())
        db.session.add(run)
        db.session.commit()

        try:
            servers = self.api_client.list_servers()
        except Exception as e:
            logger.error(f"Error: {e}")
            self.notifier.send(f"Error: {e}")
            return self._finish(run, 'failed', error_message=str(e))

        if not servers:
            logger.info("No servers found")
            self.notifier.send("No servers found to process backups.")
            return self._finish(run, 'no_servers')

        run.servers_total = len(servers)
        db.session.commit()
        logger.info(f"Backing up {len(servers)} server(s)")

        for server in servers:
            record = ServerBackupExecutor(self, server, run).execute()
            if record.status == 'success':
                run.servers_succeeded += 1
            else:
                run.servers_failed += 1
            db.session.commit()

        if run.servers_failed == 0:
            status = 'success'
        elif run.servers_succeeded == 0:
            status = 'failed'
        else:
            status = 'partial'

        logger.info(
            f"Backup run complete. "
            f"Servers: {run.servers_total}, "
            f"Succeeded: {run.servers_succeeded}, "
            f"Failed: {run.servers_failed}"
        )

        return self._finish(run, status)

    def _finish(self, run: BackupRun, status: str, error_message: Optional[str] = None) -> BackupRun:
        run.status = status
        run.error_message = error_message
        run.completed_at = datetime.utcnow()
        db.session.commit()
        return run


def build_orchestrator(config) -> BackupOrchestrator:
    """
    Wire a BackupOrchestrator from application configuration.

    Args:
        config: Mapping with the keys defined in lanevault.config.Config

    Returns:
        Configured BackupOrchestrator
    """
    notifier = Notifier(config.get('DISCORD_WEBHOOK_URL'))
    api_client = APIClient(
        api_token=config['API_TOKEN'],
        base_url=config['API_BASE_URL'],
        notifier=notifier,
        timeout=config['API_TIMEOUT']
    )
    store = ArtifactStore(config['BACKUP_DIR'], config['ARTIFACT_EXTENSION'])

    return BackupOrchestrator(
        api_client=api_client,
        notifier=notifier,
        waiter=ActionWaiter(
            api_client,
            poll_interval=config['ACTION_POLL_INTERVAL'],
            timeout=config['ACTION_TIMEOUT']
        ),
        downloader=Downloader(store, timeout=config['DOWNLOAD_TIMEOUT']),
        checker=IntegrityChecker(api_client, notifier),
        retention=RetentionManager(store, notifier),
        backup_dir=config['BACKUP_DIR'],
        retention_days=config['RETENTION_DAYS'],
        action_timeout=config['ACTION_TIMEOUT']
    )


def execute_backup_run() -> BackupRun:
    """
    Run one backup pass using the current app's configuration.

    Must be called inside an application context.
    """
    orchestrator = build_orchestrator(current_app.config)
    return orchestrator.run_once()


def enforce_retention() -> dict:
    """
    Apply the retention policy to every server directory.

    This function is called by the scheduler on a daily basis.
    """
    config = current_app.config
    store = ArtifactStore(config['BACKUP_DIR'], config['ARTIFACT_EXTENSION'])
    manager = RetentionManager(store, Notifier(config.get('DISCORD_WEBHOOK_URL')))
    return manager.enforce_all(config['RETENTION_DAYS'])
