"""
Value types for remote resources and local artifacts.

Remote objects (servers, actions, backup images) are parsed from API
responses and live only for the duration of a run. Local artifacts are
rediscovered from the backup directory on every run.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


ACTION_COMPLETED = 'completed'
ACTION_ERRORED = 'errored'


@dataclass(frozen=True)
class Server:
    """A remote virtual server to back up."""
    id: str
    name: str

    @classmethod
    def from_api(cls, data: dict) -> 'Server':
        return cls(id=str(data['id']), name=str(data['name']))


@dataclass(frozen=True)
class Action:
    """Handle on a long-running remote operation."""
    id: str
    status: str
    error_message: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> 'Action':
        # Older API revisions report failures in result_data
        message = data.get('error_message') or data.get('result_data')
        return cls(
            id=str(data.get('id', '')),
            status=data.get('status') or 'pending',
            error_message=str(message) if message else None
        )

    @property
    def is_completed(self) -> bool:
        return self.status == ACTION_COMPLETED

    @property
    def is_errored(self) -> bool:
        return self.status == ACTION_ERRORED


def _parse_size(value) -> Optional[float]:
    """Numeric size, or None when the API reports none or garbage."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class BackupImage:
    """Metadata of a completed snapshot."""
    id: str
    size_gigabytes: Optional[float] = None

    @classmethod
    def from_api(cls, data: dict) -> 'BackupImage':
        return cls(
            id=str(data['id']),
            size_gigabytes=_parse_size(data.get('size_gigabytes'))
        )

    @property
    def size_bytes(self) -> Optional[int]:
        if self.size_gigabytes is None:
            return None
        return int(self.size_gigabytes * 2 ** 30)


@dataclass(frozen=True)
class LocalArtifact:
    """A downloaded backup file on local storage."""
    path: str
    server_name: str
    created_at: datetime
    size_bytes: int = 0
