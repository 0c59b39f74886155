"""
Backup module for lanevault.

This module handles the backup lifecycle for remote servers:
- API access and notifications
- Remote action polling
- Streaming download to local storage
- Integrity checking
- Retention policy enforcement
- Orchestration across the fleet
"""

from .api_client import APIClient, APIError
from .notifier import Notifier
from .actions import ActionWaiter, ActionFailed, ActionTimeout
from .downloader import Downloader, DownloadError
from .integrity import IntegrityChecker, IntegrityResult
from .retention import RetentionManager
from .storage import ArtifactStore, StorageError
from .executor import BackupOrchestrator

__all__ = [
    'APIClient',
    'APIError',
    'Notifier',
    'ActionWaiter',
    'ActionFailed',
    'ActionTimeout',
    'Downloader',
    'DownloadError',
    'IntegrityChecker',
    'IntegrityResult',
    'RetentionManager',
    'ArtifactStore',
    'StorageError',
    'BackupOrchestrator'
]
