"""
Shared pytest fixtures for lanevault tests.

This module provides fixtures for:
- Flask app and test client
- Database setup with in-memory SQLite
- Mock collaborators for the orchestrator (API client, notifier, ...)
- Temporary backup directory and artifact helpers
"""

from unittest.mock import MagicMock

import pytest

from lanevault import create_app, db as _db
from lanevault.backup.api_client import APIClient
from lanevault.backup.notifier import Notifier
from lanevault.backup.resources import Server, BackupImage
from lanevault.backup.storage import ArtifactStore


@pytest.fixture(scope='function')
def backup_dir(tmp_path):
    """Empty backup root directory."""
    path = tmp_path / 'backups'
    path.mkdir()
    return path


@pytest.fixture(scope='function')
def app(backup_dir):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database for fast, isolated tests.
    """
    app = create_app('testing', {
        'BACKUP_DIR': str(backup_dir),
        'ACTION_POLL_INTERVAL': 0,
    })

    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Create database with all tables.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Flask CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture
def store(backup_dir):
    """ArtifactStore rooted at the temporary backup directory."""
    return ArtifactStore(str(backup_dir), 'tar.gz')


@pytest.fixture
def mock_notifier():
    """Notifier double recording sent messages."""
    return MagicMock(spec=Notifier)


@pytest.fixture
def mock_api_client():
    """
    APIClient double with a two-server fleet.

    Servers: 101 'web-01', 102 'db-01'. Each has two backups; the second
    (most recent) is a 10 GB image.
    """
    client = MagicMock(spec=APIClient)
    client.list_servers.return_value = [
        Server(id='101', name='web-01'),
        Server(id='102', name='db-01'),
    ]
    client.take_backup.side_effect = lambda server_id: f'action-{server_id}'
    client.list_backups.side_effect = lambda server_id: [
        BackupImage(id=f'{server_id}-old', size_gigabytes=9.5),
        BackupImage(id=f'{server_id}-new', size_gigabytes=10),
    ]
    client.get_download_url.side_effect = lambda image_id: f'https://download.example.test/{image_id}.tar.gz'
    client.get_image.return_value = BackupImage(id='img', size_gigabytes=10)
    return client


@pytest.fixture
def make_artifact(store):
    """
    Factory creating artifact files for a server.

    Usage: make_artifact('web-01', 'backup-2024-01-01-020000.tar.gz', size=1024)
    """
    def _make(server_name, filename, size=16):
        server_dir = store.ensure_server_dir(server_name)
        path = server_dir / filename
        path.write_bytes(b'\0' * size)
        return path

    return _make
