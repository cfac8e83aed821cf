"""HTTP client for the spreadsheet-backed remote store.

The remote store is a single web-app endpoint. Every call selects its operation
with the ``action`` query parameter and exchanges JSON: successful calls answer
``{data: ...}`` or ``{success: true, ...}``, application errors answer
``{error: "<message>"}``.

Transport failures and non-2xx responses are retried with linearly increasing
delays; application errors are not.
"""
import json
import logging
import time
import urllib.parse
from typing import Any, Dict, List, Optional, Tuple

import httplib2
from googleapiclient.errors import HttpError

from ..status import status

MAX_ATTEMPTS: int = 3
RETRY_DELAY: float = 1.0
TIMEOUT: int = 30


class RemoteClient:
    """Client for the remote store endpoint.

    Args:
        base_url: The web-app URL. An empty URL leaves the client unconfigured.
        token: Optional access token, sent as the ``token`` query parameter.
        max_attempts: Number of attempts per call.
        retry_delay: Base delay in seconds. Attempt ``n`` waits ``retry_delay * n``.
        timeout: Socket timeout in seconds.
    """

    def __init__(self, base_url: str = '', token: str = '', max_attempts: int = MAX_ATTEMPTS,
                 retry_delay: float = RETRY_DELAY, timeout: int = TIMEOUT) -> None:
        self.base_url: str = base_url or ''
        self.token: str = token or ''
        self.max_attempts: int = max(1, max_attempts)
        self.retry_delay: float = retry_delay
        self.timeout: int = timeout

    @classmethod
    def from_settings(cls) -> 'RemoteClient':
        """Build a client from the ``remote`` settings section."""
        from ..settings import lib

        config = lib.settings.get_section('remote')
        return cls(
            base_url=config.get('url', ''),
            token=config.get('token', ''),
            max_attempts=config.get('max_retries', MAX_ATTEMPTS),
            retry_delay=config.get('retry_delay', RETRY_DELAY),
            timeout=config.get('timeout', TIMEOUT),
        )

    def configure(self, base_url: str, token: str = '') -> None:
        self.base_url = base_url or ''
        self.token = token or ''
        logging.debug(f'Remote client configured: url="{self.base_url}"')

    def is_configured(self) -> bool:
        return bool(self.base_url)

    def get_status(self) -> Dict[str, Any]:
        return {
            'configured': self.is_configured(),
            'baseURL': self.base_url,
            'hasToken': bool(self.token),
        }

    def _url(self, action: str) -> str:
        query = {'action': action}
        if self.token:
            query['token'] = self.token
        separator = '&' if '?' in self.base_url else '?'
        return f'{self.base_url}{separator}{urllib.parse.urlencode(query)}'

    def _send(self, url: str, method: str, data: Optional[Dict[str, Any]]) -> Any:
        """Perform one HTTP round trip and decode the JSON body.

        Raises:
            HttpError: On a non-2xx response.
            ValueError: If the body is not valid JSON.
        """
        body = None
        headers = {'Content-Type': 'application/json'}
        if method in ('POST', 'PUT'):
            body = json.dumps(data or {})

        http = httplib2.Http(timeout=self.timeout)
        resp, content = http.request(url, method=method, body=body, headers=headers)
        if not 200 <= resp.status < 300:
            raise HttpError(resp, content, uri=url)

        if isinstance(content, bytes):
            content = content.decode('utf-8')
        return json.loads(content)

    def _attempt(self, action: str, method: str, data: Optional[Dict[str, Any]]) -> Tuple[Any, Optional[Exception]]:
        """Try ``action`` up to ``max_attempts`` times.

        Returns:
            ``(payload, None)`` after the first successful round trip, or
            ``(None, last error)`` when every attempt failed.
        """
        url = self._url(action)
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                logging.debug(f'{method} "{action}" (attempt {attempt}/{self.max_attempts})')
                return self._send(url, method, data), None
            except (HttpError, httplib2.HttpLib2Error, OSError, ValueError) as ex:
                last_error = ex
                logging.warning(f'Request "{action}" attempt {attempt} failed: {ex}')
                if attempt < self.max_attempts:
                    time.sleep(self.retry_delay * attempt)
        return None, last_error

    def request(self, action: str, method: str = 'GET', data: Optional[Dict[str, Any]] = None) -> Any:
        """Call ``action`` on the remote store.

        Args:
            action: The remote operation name.
            method: ``GET`` or ``POST``.
            data: JSON body for ``POST`` requests.

        Returns:
            The decoded JSON payload.

        Raises:
            status.RemoteNotConfiguredException: If no URL is configured.
            status.RemoteErrorException: If the payload carries an ``error``.
            status.ServiceUnavailableException: If every attempt failed.
        """
        if not self.is_configured():
            raise status.RemoteNotConfiguredException

        result, error = self._attempt(action, method, data)
        if error is not None:
            raise status.ServiceUnavailableException(
                f'Request "{action}" failed after {self.max_attempts} attempts: {error}'
            ) from error

        if isinstance(result, dict) and result.get('error'):
            raise status.RemoteErrorException(str(result['error']))
        return result

    def health(self) -> Dict[str, Any]:
        """Check whether the remote store is reachable.

        Never raises. Failures are only reported in the returned mapping.
        """
        if not self.is_configured():
            return {'reachable': False, 'error': status.get_message(status.Status.RemoteNotConfigured)}

        result, error = self._attempt('health', 'GET', None)
        if error is not None:
            return {'reachable': False, 'error': str(error)}
        if isinstance(result, dict) and result.get('error'):
            return {'reachable': False, 'error': str(result['error'])}
        return {'reachable': True, 'data': result}

    def init(self) -> Any:
        """Ask the remote store to create its sheets."""
        return self.request('init', 'POST')

    def pull(self) -> Optional[Dict[str, Any]]:
        """Return the remote snapshot."""
        result = self.request('pull')
        if not isinstance(result, dict):
            return None
        return result.get('data')

    def push(self, snapshot: Dict[str, Any]) -> Any:
        """Replace the remote snapshot."""
        return self.request('push', 'POST', snapshot)

    def create(self, kind: str, record: Dict[str, Any]) -> Any:
        return self.request('create', 'POST', {'type': kind, 'item': record})

    def update(self, kind: str, record_id: Any, fields: Dict[str, Any]) -> Any:
        return self.request('update', 'POST', {'type': kind, 'id': record_id, 'updates': fields})

    def delete(self, kind: str, record_id: Any) -> Any:
        return self.request('delete', 'POST', {'type': kind, 'id': record_id})

    def batch_create(self, kind: str, records: List[Dict[str, Any]]) -> Any:
        return self.request('batch_create', 'POST', {'type': kind, 'items': records})

    def batch_update(self, kind: str, updates: List[Dict[str, Any]]) -> Any:
        return self.request('batch_update', 'POST', {'type': kind, 'updates': updates})

    def batch_delete(self, kind: str, record_ids: List[Any]) -> Any:
        return self.request('batch_delete', 'POST', {'type': kind, 'ids': record_ids})

    def get_daily(self, month: str) -> Any:
        return self.request('get_daily', 'POST', {'month': month})

    def get_weekly(self, month: str) -> Any:
        return self.request('get_weekly', 'POST', {'month': month})

    def get_monthly(self, year: str) -> Any:
        return self.request('get_monthly', 'POST', {'year': year})

    def get_finance(self, filters: Optional[Dict[str, Any]] = None) -> Any:
        return self.request('get_finance', 'POST', filters or {})

    def get_business(self, filters: Optional[Dict[str, Any]] = None) -> Any:
        return self.request('get_business', 'POST', filters or {})

    def sync_daily(self, items: List[Dict[str, Any]]) -> Any:
        return self.request('sync_daily', 'POST', {'items': items})

    def sync_weekly(self, items: List[Dict[str, Any]]) -> Any:
        return self.request('sync_weekly', 'POST', {'items': items})

    def sync_monthly(self, items: List[Dict[str, Any]]) -> Any:
        return self.request('sync_monthly', 'POST', {'items': items})

    def sync_finance(self, items: List[Dict[str, Any]]) -> Any:
        return self.request('sync_finance', 'POST', {'items': items})

    def sync_business(self, items: List[Dict[str, Any]]) -> Any:
        return self.request('sync_business', 'POST', {'items': items})

    def sync_settings(self, settings: Dict[str, Any]) -> Any:
        return self.request('sync_settings', 'POST', {'settings': settings})
