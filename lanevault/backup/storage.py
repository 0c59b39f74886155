"""
Local artifact storage.

Artifacts live under ``{base_dir}/{server_name}/`` and are named
``backup-{YYYY-MM-DD}-{HHMMSS}.{ext}``. The timestamp in the name is the only
record of when an artifact was taken; there is no manifest, and listings
always come from the directory itself.
"""

import os
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .resources import LocalArtifact


ARTIFACT_PREFIX = 'backup-'
DATE_FORMAT = '%Y-%m-%d'
TIME_FORMAT = '%H%M%S'
DIR_MODE = 0o755

_ARTIFACT_RE = re.compile(r'^backup-(\d{4}-\d{2}-\d{2})(?:-(\d{6}))?\.(.+)$')


class StorageError(Exception):
    """Raised when a local storage operation fails."""
    pass


def format_artifact_filename(created_at: datetime, extension: str = 'tar.gz', include_time: bool = True) -> str:
    """
    Build an artifact filename for the given timestamp.

    Args:
        created_at: Timestamp to encode
        extension: File extension without the leading dot
        include_time: Append -HHMMSS after the date

    Returns:
        Filename such as 'backup-2024-01-15-023000.tar.gz'
    """
    stamp = created_at.strftime(DATE_FORMAT)
    if include_time:
        stamp = f"{stamp}-{created_at.strftime(TIME_FORMAT)}"
    return f"{ARTIFACT_PREFIX}{stamp}.{extension}"


def parse_artifact_filename(filename: str, extension: Optional[str] = None) -> Optional[datetime]:
    """
    Extract the timestamp encoded in an artifact filename.

    Names carrying only a date (older layout) parse to midnight of that day.

    Args:
        filename: Base name of the file
        extension: If given, only names with this extension match

    Returns:
        Parsed datetime, or None if the name does not follow the convention
    """
    match = _ARTIFACT_RE.match(filename)
    if not match:
        return None

    date_part, time_part, ext = match.groups()
    if extension is not None and ext != extension:
        return None

    try:
        if time_part:
            return datetime.strptime(f"{date_part}-{time_part}", f"{DATE_FORMAT}-{TIME_FORMAT}")
        return datetime.strptime(date_part, DATE_FORMAT)
    except ValueError:
        return None


def safe_server_dirname(server_name: str) -> str:
    """Map a server name to a single path component."""
    name = server_name.replace('/', '_').replace('\\', '_').strip()
    if name in ('', '.', '..'):
        raise StorageError(f"Invalid server name for local storage: {server_name!r}")
    return name


class ArtifactStore:
    """
    Filesystem layout of downloaded backups.
    """

    def __init__(self, base_path: str, extension: str = 'tar.gz'):
        """
        Initialize artifact store.

        Args:
            base_path: Root backup directory
            extension: Artifact file extension without the leading dot
        """
        self.base_path = Path(base_path)
        self.extension = extension.lstrip('.')

    def server_dir(self, server_name: str) -> Path:
        return self.base_path / safe_server_dirname(server_name)

    def ensure_server_dir(self, server_name: str) -> Path:
        """
        Create the per-server directory if it does not exist.

        Raises:
            StorageError: If the directory cannot be created
        """
        path = self.server_dir(server_name)
        try:
            path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        except PermissionError as e:
            raise StorageError(f"Permission denied creating {path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to create backup directory {path}: {e}")
        return path

    def artifact_path(self, server_name: str, created_at: datetime) -> Path:
        return self.server_dir(server_name) / format_artifact_filename(created_at, self.extension)

    def list_artifacts(self, server_name: str) -> List[LocalArtifact]:
        """
        List artifacts of a server, oldest first.

        Files whose names do not follow the naming convention are skipped.

        Raises:
            StorageError: If the directory cannot be read
        """
        server_path = self.server_dir(server_name)

        if not server_path.exists():
            return []

        artifacts = []
        try:
            for file_path in server_path.iterdir():
                if not file_path.is_file():
                    continue
                created_at = parse_artifact_filename(file_path.name, self.extension)
                if created_at is None:
                    continue
                artifacts.append(LocalArtifact(
                    path=str(file_path),
                    server_name=server_name,
                    created_at=created_at,
                    size_bytes=file_path.stat().st_size
                ))
        except OSError as e:
            raise StorageError(f"Failed to list artifacts in {server_path}: {e}")

        artifacts.sort(key=lambda artifact: artifact.created_at)
        return artifacts

    def list_server_names(self) -> List[str]:
        """Names of all per-server directories under the backup root."""
        if not self.base_path.exists():
            return []
        try:
            return sorted(entry.name for entry in self.base_path.iterdir() if entry.is_dir())
        except OSError as e:
            raise StorageError(f"Failed to list {self.base_path}: {e}")

    def delete(self, path: str):
        """
        Delete an artifact file. Missing files are ignored.

        Raises:
            StorageError: If deletion fails
        """
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}")
