from datetime import datetime
from lanevault import db


class BackupRun(db.Model):
    """One pass of the orchestrator over the whole fleet"""
    __tablename__ = 'backup_runs'

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(20), nullable=False)  # running, success, partial, failed, no_servers
    started_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)
    servers_total = db.Column(db.Integer, default=0, nullable=False)
    servers_succeeded = db.Column(db.Integer, default=0, nullable=False)
    servers_failed = db.Column(db.Integer, default=0, nullable=False)
    error_message = db.Column(db.Text)

    # Relationship
    server_backups = db.relationship('ServerBackup', back_populates='run', cascade='all, delete-orphan', lazy='dynamic')

    def __repr__(self):
        return f'<BackupRun id={self.id} status={self.status}>'


class ServerBackup(db.Model):
    """Backup of a single server within a run, with its execution log"""
    __tablename__ = 'server_backups'

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.Integer, db.ForeignKey('backup_runs.id'), nullable=False)
    server_id = db.Column(db.String(64), nullable=False)
    server_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False)  # running, success, failed
    started_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)
    action_id = db.Column(db.String(64))
    image_id = db.Column(db.String(64))
    local_path = db.Column(db.String(500))
    file_size_bytes = db.Column(db.BigInteger)
    integrity_ok = db.Column(db.Boolean)
    integrity_detail = db.Column(db.Text)
    deleted_count = db.Column(db.Integer, default=0, nullable=False)
    error_message = db.Column(db.Text)
    logs = db.Column(db.Text)

    # Relationship
    run = db.relationship('BackupRun', back_populates='server_backups')

    def __repr__(self):
        return f'<ServerBackup server={self.server_name} status={self.status}>'
