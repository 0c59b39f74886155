"""
Size-based integrity check of downloaded backups.

Two tiers:

1. Metadata check: the artifact size must be within ``max_deviation`` of the
   image size reported by the API, and above the absolute floor.
2. Floor-only check: used when the image metadata cannot be fetched or
   reports no size. A failed metadata call must not hide a truncated file,
   so the floor is always enforced.

A failed check is reported and logged but never raised: a suspicious backup
is still kept on disk.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .api_client import APIClient, APIError
from .notifier import Notifier


logger = logging.getLogger(__name__)

GIB = 2 ** 30
MIB = 2 ** 20
DEFAULT_MAX_DEVIATION = 0.05
DEFAULT_MIN_SIZE_BYTES = 100 * MIB


@dataclass
class IntegrityResult:
    """Outcome of an integrity check."""
    ok: bool
    detail: str
    actual_bytes: int
    expected_bytes: Optional[int] = None
    deviation: Optional[float] = None


def _mb(size_bytes: float) -> str:
    return f"{size_bytes / MIB:,.2f} MB"


class IntegrityChecker:
    """
    Compares a downloaded artifact against the expected image size.
    """

    def __init__(
        self,
        api_client: APIClient,
        notifier: Notifier,
        max_deviation: float = DEFAULT_MAX_DEVIATION,
        min_size_bytes: int = DEFAULT_MIN_SIZE_BYTES
    ):
        self.api_client = api_client
        self.notifier = notifier
        self.max_deviation = max_deviation
        self.min_size_bytes = min_size_bytes

    def verify(self, artifact_path: str, server_name: str, image_id: str) -> IntegrityResult:
        """
        Check an artifact and report an anomaly if it looks corrupt.

        Args:
            artifact_path: Path of the downloaded file
            server_name: Server name used in messages
            image_id: Backup image the artifact was downloaded from

        Returns:
            IntegrityResult (ok=False on anomaly)
        """
        try:
            actual_bytes = os.path.getsize(artifact_path)
        except OSError:
            actual_bytes = 0

        expected_bytes = self._expected_size(image_id)

        if expected_bytes:
            result = self.check_sizes(actual_bytes, expected_bytes, server_name)
        else:
            result = self.check_floor(actual_bytes, server_name)

        if result.ok:
            logger.info(f"Integrity check passed for {server_name}: {result.detail}")
        else:
            logger.warning(result.detail)
            self.notifier.send(result.detail)

        return result

    def _expected_size(self, image_id: str) -> Optional[int]:
        try:
            image = self.api_client.get_image(image_id)
        except APIError as e:
            logger.warning(f"Image metadata unavailable for {image_id}, using size floor only: {e}")
            return None

        if not image.size_bytes or image.size_bytes <= 0:
            logger.warning(f"Image {image_id} reports no size, using size floor only")
            return None

        return image.size_bytes

    def check_sizes(self, actual_bytes: int, expected_bytes: int, server_name: str) -> IntegrityResult:
        """Metadata tier: relative deviation plus the absolute floor."""
        deviation = abs(actual_bytes - expected_bytes) / expected_bytes
        sizes = (
            f"size: {_mb(actual_bytes)}, expected: {expected_bytes / GIB:,.2f} GB, "
            f"difference: {deviation * 100:.2f}%"
        )

        if actual_bytes < self.min_size_bytes:
            detail = f"Backup for {server_name} is corrupted ({sizes}, below {_mb(self.min_size_bytes)} minimum)"
            ok = False
        elif deviation > self.max_deviation:
            detail = f"Backup for {server_name} may be corrupted ({sizes})"
            ok = False
        else:
            detail = sizes
            ok = True

        return IntegrityResult(
            ok=ok,
            detail=detail,
            actual_bytes=actual_bytes,
            expected_bytes=expected_bytes,
            deviation=deviation
        )

    def check_floor(self, actual_bytes: int, server_name: str) -> IntegrityResult:
        """Fallback tier: absolute minimum size only."""
        if actual_bytes < self.min_size_bytes:
            return IntegrityResult(
                ok=False,
                detail=f"Backup for {server_name} is corrupted (size: {_mb(actual_bytes)})",
                actual_bytes=actual_bytes
            )

        return IntegrityResult(
            ok=True,
            detail=f"size: {_mb(actual_bytes)} (expected size unknown)",
            actual_bytes=actual_bytes
        )
