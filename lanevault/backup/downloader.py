"""
Streaming download of backup images to local storage.

The body is written chunk by chunk to a ``.part`` file next to the target and
renamed into place only once the transfer is complete, so a failed or
interrupted download never leaves an artifact behind.
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Callable, Optional

import requests

from .resources import LocalArtifact
from .storage import ArtifactStore


logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = '.part'
DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1MB

# observer(downloaded_bytes, total_bytes)
ProgressObserver = Callable[[int, int], None]


class DownloadError(Exception):
    """Raised when a transfer fails or is truncated."""

    def __init__(self, http_code: int, message: str = ''):
        self.http_code = http_code
        detail = f"Failed to download backup: HTTP {http_code}"
        if message:
            detail = f"{detail} ({message})"
        super().__init__(detail)


class LoggingProgress:
    """
    Progress observer that logs every ``step`` percent.
    """

    def __init__(self, label: str, step: int = 10):
        self.label = label
        self.step = step
        self._next = step

    def __call__(self, downloaded: int, total: int):
        percent = downloaded / total * 100
        if percent >= self._next or downloaded >= total:
            logger.info(f"Downloading {self.label}: {percent:.2f}%")
            while self._next <= percent:
                self._next += self.step


class Downloader:
    """
    Downloads backup images into the artifact store.
    """

    def __init__(
        self,
        store: ArtifactStore,
        timeout: int = 3600,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize downloader.

        Args:
            store: Artifact store for the default backup directory
            timeout: Read timeout in seconds
            chunk_size: Bytes per streamed chunk
            session: Optional requests session (download URLs are pre-signed,
                so no API credentials are attached)
        """
        self.store = store
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.session = session or requests.Session()

    def download(
        self,
        url: str,
        server_name: str,
        target_dir: Optional[str] = None,
        observer: Optional[ProgressObserver] = None
    ) -> LocalArtifact:
        """
        Stream a remote artifact to ``{target_dir}/{server_name}/backup-...``.

        Args:
            url: Download URL
            server_name: Server the artifact belongs to
            target_dir: Backup root (default: the store's base path)
            observer: Called with (downloaded, total) per chunk when the
                total size is known; defaults to logging progress

        Returns:
            LocalArtifact describing the completed file

        Raises:
            DownloadError: On transport failure, non-2xx status or truncation
            StorageError: If the server directory cannot be created
        """
        store = self.store
        if target_dir is not None and os.path.abspath(target_dir) != os.path.abspath(str(store.base_path)):
            store = ArtifactStore(target_dir, store.extension)

        if observer is None:
            observer = LoggingProgress(server_name)

        store.ensure_server_dir(server_name)
        created_at = datetime.now().replace(microsecond=0)
        # Names only resolve to the second; never overwrite an existing artifact
        while os.path.exists(store.artifact_path(server_name, created_at)):
            logger.warning(
                f"Backup {store.artifact_path(server_name, created_at)} already exists, "
                f"using the next second"
            )
            created_at += timedelta(seconds=1)
        target_path = str(store.artifact_path(server_name, created_at))
        partial_path = target_path + PARTIAL_SUFFIX

        logger.info(f"Downloading backup for {server_name} to {target_path}")

        try:
            size = self._stream_to_file(url, partial_path, observer)
            os.replace(partial_path, target_path)
        except DownloadError:
            self._remove_partial(partial_path)
            raise
        except requests.RequestException as e:
            self._remove_partial(partial_path)
            raise DownloadError(0, str(e))
        except Exception:
            self._remove_partial(partial_path)
            raise

        logger.info(f"Downloaded {size / 1024 / 1024:.2f} MB for {server_name}")

        return LocalArtifact(
            path=target_path,
            server_name=server_name,
            created_at=created_at,
            size_bytes=size
        )

    def _stream_to_file(self, url: str, partial_path: str, observer: ProgressObserver) -> int:
        """Write the response body to partial_path and return the byte count."""
        with self.session.get(url, stream=True, allow_redirects=True, timeout=(30, self.timeout)) as response:
            if not 200 <= response.status_code < 300:
                raise DownloadError(response.status_code)

            total = int(response.headers.get('Content-Length') or 0)
            downloaded = 0

            with open(partial_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded += len(chunk)
                    if total > 0:
                        observer(downloaded, total)

            if total > 0 and downloaded < total:
                raise DownloadError(
                    response.status_code,
                    f"transfer truncated at {downloaded} of {total} bytes"
                )

        return downloaded

    @staticmethod
    def _remove_partial(partial_path: str):
        try:
            os.remove(partial_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove partial download {partial_path}: {e}")
