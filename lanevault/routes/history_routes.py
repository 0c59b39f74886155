"""
Backup history routes - Read-only access to run and per-server records.
"""

from flask import Blueprint, jsonify, request

from lanevault.models import BackupRun, ServerBackup


bp = Blueprint('history', __name__, url_prefix='/api/history')

RUN_STATUSES = ['running', 'success', 'partial', 'failed', 'no_servers']
SERVER_STATUSES = ['running', 'success', 'failed']


def _pagination():
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)

    # Enforce limits
    if limit > 200:
        limit = 200
    if limit < 1:
        limit = 50
    if offset < 0:
        offset = 0
    return limit, offset


def _serialize_run(run):
    return {
        'id': run.id,
        'status': run.status,
        'started_at': run.started_at.isoformat(),
        'completed_at': run.completed_at.isoformat() if run.completed_at else None,
        'servers_total': run.servers_total,
        'servers_succeeded': run.servers_succeeded,
        'servers_failed': run.servers_failed,
        'error_message': run.error_message
    }


def _serialize_server_backup(record):
    return {
        'id': record.id,
        'run_id': record.run_id,
        'server_id': record.server_id,
        'server_name': record.server_name,
        'status': record.status,
        'started_at': record.started_at.isoformat(),
        'completed_at': record.completed_at.isoformat() if record.completed_at else None,
        'action_id': record.action_id,
        'image_id': record.image_id,
        'local_path': record.local_path,
        'file_size_bytes': record.file_size_bytes,
        'file_size_mb': round(record.file_size_bytes / 1024 / 1024, 2) if record.file_size_bytes else None,
        'integrity_ok': record.integrity_ok,
        'integrity_detail': record.integrity_detail,
        'deleted_count': record.deleted_count,
        'error_message': record.error_message,
        'has_logs': bool(record.logs)
    }


@bp.route('/runs', methods=['GET'])
def list_runs():
    """
    Get backup runs, newest first.

    Query params:
        - status: Filter by run status
        - limit: Max number of records (default: 50, max: 200)
        - offset: Number of records to skip (default: 0)
    """
    status_filter = request.args.get('status')
    limit, offset = _pagination()

    query = BackupRun.query
    if status_filter:
        if status_filter not in RUN_STATUSES:
            return jsonify({'error': 'Invalid status filter'}), 400
        query = query.filter(BackupRun.status == status_filter)

    total_count = query.count()
    runs = query.order_by(BackupRun.started_at.desc(), BackupRun.id.desc()).limit(limit).offset(offset).all()

    return jsonify({
        'records': [_serialize_run(run) for run in runs],
        'total': total_count,
        'limit': limit,
        'offset': offset
    })


@bp.route('/runs/<int:run_id>', methods=['GET'])
def get_run_detail(run_id):
    """Get a run with its per-server backups."""
    run = BackupRun.query.get_or_404(run_id)

    data = _serialize_run(run)
    data['servers'] = [
        _serialize_server_backup(record)
        for record in run.server_backups.order_by(ServerBackup.id).all()
    ]
    return jsonify(data)


@bp.route('/servers', methods=['GET'])
def list_server_backups():
    """
    Get per-server backup records, newest first.

    Query params:
        - server_name: Filter by server name
        - status: Filter by status (running/success/failed)
        - limit / offset: Pagination
    """
    server_filter = request.args.get('server_name')
    status_filter = request.args.get('status')
    limit, offset = _pagination()

    query = ServerBackup.query
    if server_filter:
        query = query.filter(ServerBackup.server_name == server_filter)
    if status_filter:
        if status_filter not in SERVER_STATUSES:
            return jsonify({'error': 'Invalid status filter'}), 400
        query = query.filter(ServerBackup.status == status_filter)

    total_count = query.count()
    records = query.order_by(ServerBackup.started_at.desc(), ServerBackup.id.desc()).limit(limit).offset(offset).all()

    return jsonify({
        'records': [_serialize_server_backup(record) for record in records],
        'total': total_count,
        'limit': limit,
        'offset': offset
    })


@bp.route('/servers/<int:record_id>/logs', methods=['GET'])
def get_server_backup_logs(record_id):
    """Get the execution log of a per-server backup."""
    record = ServerBackup.query.get_or_404(record_id)

    return jsonify({
        'id': record.id,
        'server_name': record.server_name,
        'status': record.status,
        'logs': record.logs or 'No logs available'
    })
