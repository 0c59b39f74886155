"""
Best-effort operator alerts.

Alerts are posted as ``{"content": text}`` to a Discord-style webhook.
Without a configured webhook URL notifications are silently disabled.
Delivery failures are logged locally and never raised, since reporting
them through the same channel would recurse.
"""

import logging
from typing import Optional

import requests


logger = logging.getLogger(__name__)

# Discord rejects message content longer than this
MAX_CONTENT_LENGTH = 2000


class Notifier:
    """
    Sends human-readable alerts to a webhook endpoint.
    """

    def __init__(self, webhook_url: Optional[str] = None, timeout: int = 10):
        """
        Initialize notifier.

        Args:
            webhook_url: Webhook endpoint; empty or None disables delivery
            timeout: Request timeout in seconds
        """
        self.webhook_url = webhook_url or None
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.webhook_url is not None

    def send(self, message: str) -> bool:
        """
        Deliver an alert.

        Args:
            message: Alert text

        Returns:
            True if the webhook accepted the message, False otherwise
        """
        if not self.enabled:
            return False

        content = message
        if len(content) > MAX_CONTENT_LENGTH:
            content = content[:MAX_CONTENT_LENGTH - 3] + '...'

        try:
            response = requests.post(
                self.webhook_url,
                json={'content': content},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"Failed to deliver notification: {e}")
            return False

        if response.status_code >= 400:
            logger.warning(f"Notification webhook returned HTTP {response.status_code}")
            return False

        return True
