"""
Dashboard routes - Overview and scheduler endpoints.
"""

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func

from lanevault import db
from lanevault.models import BackupRun, ServerBackup
from lanevault.backup.storage import ArtifactStore, StorageError
from lanevault.scheduler import get_scheduled_jobs, is_scheduler_running, trigger_backup_now


bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')


@bp.route('/overview', methods=['GET'])
def get_overview():
    """
    Get dashboard overview statistics.

    Returns:
        JSON with overview stats:
        - last_run: Most recent run summary
        - total_runs: Number of recorded runs
        - failed_server_backups: Number of failed per-server backups
        - integrity_anomalies: Number of backups that failed the size check
        - local_backups: Artifact count and size per server directory
        - scheduler_status: Scheduler running status
    """
    last_run = BackupRun.query.order_by(BackupRun.started_at.desc()).first()

    last_run_info = None
    if last_run:
        last_run_info = {
            'id': last_run.id,
            'status': last_run.status,
            'started_at': last_run.started_at.isoformat(),
            'completed_at': last_run.completed_at.isoformat() if last_run.completed_at else None,
            'servers_total': last_run.servers_total,
            'servers_succeeded': last_run.servers_succeeded,
            'servers_failed': last_run.servers_failed
        }

    failed_count = ServerBackup.query.filter_by(status='failed').count()
    anomaly_count = db.session.query(func.count(ServerBackup.id)).filter(
        ServerBackup.integrity_ok.is_(False)
    ).scalar() or 0

    return jsonify({
        'last_run': last_run_info,
        'total_runs': BackupRun.query.count(),
        'failed_server_backups': failed_count,
        'integrity_anomalies': anomaly_count,
        'local_backups': _local_backup_summary(),
        'scheduler_status': 'running' if is_scheduler_running() else 'stopped'
    })


def _local_backup_summary():
    config = current_app.config
    store = ArtifactStore(config['BACKUP_DIR'], config['ARTIFACT_EXTENSION'])

    summary = []
    try:
        for server_name in store.list_server_names():
            artifacts = store.list_artifacts(server_name)
            summary.append({
                'server_name': server_name,
                'count': len(artifacts),
                'total_size_gb': round(sum(a.size_bytes for a in artifacts) / 1024 / 1024 / 1024, 2),
                'newest': artifacts[-1].created_at.isoformat() if artifacts else None
            })
    except StorageError as e:
        current_app.logger.error(f"Failed to summarize local backups: {e}")

    return summary


@bp.route('/scheduled-jobs', methods=['GET'])
def get_scheduled_jobs_info():
    """
    Get information about currently scheduled jobs.

    Returns:
        JSON array of scheduled jobs with next run times
    """
    return jsonify(get_scheduled_jobs())


@bp.route('/run-now', methods=['POST'])
def run_now():
    """
    Queue an immediate fleet backup on the scheduler.

    Returns:
        202 when queued, 503 when no scheduler is running in this process
    """
    if not is_scheduler_running():
        return jsonify({'error': 'Scheduler is not running'}), 503

    trigger_backup_now()
    return jsonify({'message': 'Fleet backup queued'}), 202
