"""
Polling of long-running remote actions.

Remote backups take minutes, so the waiter polls at a fixed interval with a
blocking sleep and gives up once the deadline has passed.
"""

import logging
import time
from typing import Optional

from .api_client import APIClient
from .resources import Action


logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30
DEFAULT_TIMEOUT = 3600


class ActionFailed(Exception):
    """Raised when the remote side reports the action as errored."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Action failed: {message}")


class ActionTimeout(Exception):
    """Raised when an action is still pending after the deadline."""

    def __init__(self, action_id: str, timeout: int):
        self.action_id = action_id
        self.timeout = timeout
        super().__init__(f"Action {action_id} timed out after {timeout} seconds")


class ActionWaiter:
    """
    Waits for a remote action to reach a terminal status.
    """

    def __init__(self, api_client: APIClient, poll_interval: int = DEFAULT_POLL_INTERVAL, timeout: int = DEFAULT_TIMEOUT):
        self.api_client = api_client
        self.poll_interval = poll_interval
        self.timeout = timeout

    def wait_for_completion(self, action_id: str, timeout: Optional[int] = None) -> Action:
        """
        Poll an action until it completes, errors, or times out.

        Args:
            action_id: Remote action ID
            timeout: Deadline in seconds (default: the waiter's timeout)

        Returns:
            The completed Action

        Raises:
            ActionFailed: If the action is observed as errored
            ActionTimeout: If the action is still pending past the deadline
            APIError: If polling itself fails
        """
        if timeout is None:
            timeout = self.timeout

        start = time.monotonic()
        polls = 0

        while True:
            action = self.api_client.get_action(action_id)
            polls += 1

            if action.is_completed:
                logger.info(f"Action {action_id} completed after {polls} poll(s)")
                return action

            if action.is_errored:
                raise ActionFailed(action.error_message or 'Unknown error')

            elapsed = time.monotonic() - start
            if elapsed > timeout:
                raise ActionTimeout(action_id, timeout)

            logger.debug(f"Action {action_id} is {action.status} ({int(elapsed)}s elapsed)")
            time.sleep(self.poll_interval)
