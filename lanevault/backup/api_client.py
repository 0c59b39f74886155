"""
Authenticated client for the cloud provider's management API.

Every failed call is reported through the notifier before an APIError is
raised. The client never retries; callers that need to wait on remote state
(ActionWaiter) poll explicitly.
"""

import logging
from typing import Any, List, Optional

import requests

from .notifier import Notifier
from .resources import Server, Action, BackupImage


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.binarylane.com.au/v2'


class APIError(Exception):
    """Raised when an API call fails or returns HTTP status >= 400."""

    def __init__(self, http_code: int, raw_body: str):
        self.http_code = http_code
        self.raw_body = raw_body
        super().__init__(f"API request failed with code {http_code}: {raw_body}")


class APIClient:
    """
    Thin REST/JSON client using bearer-token authentication.
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        notifier: Optional[Notifier] = None,
        timeout: int = 60,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize API client.

        Args:
            api_token: Bearer token for the management API
            base_url: API root URL (no trailing slash needed)
            notifier: Notifier used to report failed calls
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip('/')
        self.notifier = notifier or Notifier()
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {api_token}',
            'Content-Type': 'application/json'
        })

    def request(self, endpoint: str, method: str = 'GET', body: Optional[dict] = None) -> Any:
        """
        Issue an API call and decode its JSON response.

        Args:
            endpoint: Path relative to the base URL (e.g. 'servers')
            method: HTTP method
            body: JSON body, sent only for POST/PUT/PATCH

        Returns:
            Decoded JSON value

        Raises:
            APIError: On transport failure, HTTP status >= 400, or a non-JSON body
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        kwargs = {'timeout': self.timeout}
        if body is not None and method.upper() in ('POST', 'PUT', 'PATCH'):
            kwargs['json'] = body

        try:
            response = self.session.request(method.upper(), url, **kwargs)
        except requests.RequestException as e:
            raise self._reported_error(0, str(e))

        if response.status_code >= 400:
            raise self._reported_error(response.status_code, response.text)

        try:
            return response.json()
        except ValueError:
            raise self._reported_error(response.status_code, response.text)

    def _reported_error(self, http_code: int, raw_body: str) -> APIError:
        """Log and notify a failed call, returning the error to raise."""
        error = APIError(http_code, raw_body)
        logger.error(str(error))
        self.notifier.send(str(error))
        return error

    # Typed endpoint helpers

    def list_servers(self) -> List[Server]:
        data = self.request('servers')
        return [Server.from_api(item) for item in self._field(data, 'servers')]

    def take_backup(self, server_id: str) -> str:
        """
        Trigger a temporary backup that replaces the oldest backup slot.

        Returns:
            ID of the remote action tracking the backup
        """
        data = self.request(f'servers/{server_id}/actions', 'POST', {
            'type': 'take_backup',
            'backup_type': 'temporary',
            'replacement_strategy': 'oldest'
        })
        action = self._field(data, 'action')
        return str(self._field(action, 'id'))

    def get_action(self, action_id: str) -> Action:
        data = self.request(f'actions/{action_id}')
        action = Action.from_api(self._field(data, 'action'))
        if not action.id:
            action = Action(id=str(action_id), status=action.status, error_message=action.error_message)
        return action

    def list_backups(self, server_id: str) -> List[BackupImage]:
        """Backups of a server, oldest first (the last entry is the most recent)."""
        data = self.request(f'servers/{server_id}/backups')
        return [BackupImage.from_api(item) for item in self._field(data, 'backups')]

    def get_download_url(self, image_id: str) -> str:
        data = self.request(f'images/{image_id}/download')
        disks = self._field(self._field(data, 'link'), 'disks')
        if not disks:
            raise self._reported_error(200, f"No downloadable disks for image {image_id}")
        return self._field(disks[0], 'compressed_url')

    def get_image(self, image_id: str) -> BackupImage:
        data = self.request(f'images/{image_id}')
        image = dict(self._field(data, 'image'))
        image.setdefault('id', image_id)
        return BackupImage.from_api(image)

    def _field(self, data: Any, key: str) -> Any:
        if not isinstance(data, dict) or key not in data or data[key] is None:
            raise self._reported_error(200, f"Unexpected API response, missing '{key}': {data!r}")
        return data[key]
