"""
HTTP client for the submission browser API.

Used by batch tooling to trigger syncs, poll their status and download
events through a running server:
- trigger_sync / get_sync_status / wait_for_sync
- get_events
- download_event
"""

import time
from typing import Dict, Any, List, Optional
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import logging


class BrowserAPIError(Exception):
    """Custom exception for browser API errors."""
    pass


class BrowserAPIClient:
    """
    HTTP client for the submission browser endpoints.

    Retries transient HTTP failures through the session adapter; sync status
    is observed by polling.
    """

    def __init__(self, base_url: str, timeout: int = 30, max_retries: int = 3):
        """
        Initialize the client with base URL and configuration.

        Args:
            base_url: Base URL of the submission browser server
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.logger = logging.getLogger(__name__)

        self.session = requests.Session()

        # POST is left out: a retried sync or download would run twice
        retry_strategy = Retry(
            total=max_retries,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
            backoff_factor=1
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _make_request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """
        Make HTTP request with error handling and logging.

        Raises:
            BrowserAPIError: If the request fails or returns an error status
        """
        url = f"{self.base_url}{endpoint}"

        try:
            self.logger.debug(f"Making {method} request to {url}")
            response = self.session.request(
                method=method,
                url=url,
                timeout=self.timeout,
                **kwargs
            )
            self.logger.debug(f"Response status: {response.status_code}")
            response.raise_for_status()
            return response

        except requests.exceptions.HTTPError as e:
            detail = self._error_detail(e.response)
            error_msg = f"Browser API request failed: {method} {url} - {detail}"
            self.logger.error(error_msg)
            raise BrowserAPIError(error_msg) from e
        except requests.exceptions.RequestException as e:
            error_msg = f"Browser API request failed: {method} {url} - {str(e)}"
            self.logger.error(error_msg)
            raise BrowserAPIError(error_msg) from e

    @staticmethod
    def _error_detail(response: Optional[requests.Response]) -> str:
        if response is None:
            return 'no response'
        try:
            return str(response.json().get('detail', response.status_code))
        except ValueError:
            return f"HTTP {response.status_code}"

    def health_check(self) -> bool:
        try:
            self._make_request("GET", "/")
            return True
        except BrowserAPIError:
            return False

    def trigger_sync(self, year: str, month: str, force: bool = False, wait: bool = True) -> Dict[str, Any]:
        """
        Ask the server to sync a partition.

        With wait=False the server returns immediately and the sync runs in
        the background; use wait_for_sync to observe its outcome.
        """
        self.logger.info(f"Triggering sync for {year}/{month} (force={force}, wait={wait})")
        response = self._make_request(
            "POST",
            "/api/sync",
            json={"year": year, "month": month, "force": force, "wait": wait}
        )
        return response.json()

    def get_sync_status(self, year: str, month: str) -> Dict[str, Any]:
        response = self._make_request(
            "GET", "/api/sync/status", params={"year": year, "month": month}
        )
        return response.json()

    def wait_for_sync(self, year: str, month: str, poll_interval: float = 2.0,
                      timeout: float = 600.0) -> Dict[str, Any]:
        """
        Poll the sync status until it leaves the syncing state.

        Returns:
            The final status payload

        Raises:
            BrowserAPIError: If the sync ends in error or the timeout elapses
        """
        deadline = time.monotonic() + timeout

        while True:
            status = self.get_sync_status(year, month)
            state = status.get('status')

            if state == 'error':
                raise BrowserAPIError(f"Sync of {year}/{month} failed")
            if state != 'syncing':
                self.logger.info(f"Sync of {year}/{month} finished: {status}")
                return status

            if time.monotonic() >= deadline:
                raise BrowserAPIError(f"Timed out waiting for sync of {year}/{month}")
            time.sleep(poll_interval)

    def get_events(self, year: str, month: str, sort: str = 'timestamp',
                   direction: str = 'desc') -> List[Dict[str, Any]]:
        response = self._make_request(
            "GET",
            "/api/events",
            params={"year": year, "month": month, "sort": sort, "direction": direction}
        )
        return response.json()

    def download_event(self, year: str, month: str, event_id: str) -> Dict[str, Any]:
        """Download an event on the server side and return its result."""
        response = self._make_request(
            "POST",
            "/api/download",
            json={"year": year, "month": month, "event_id": event_id}
        )
        return response.json()


def _is_downloaded(event: Dict[str, Any]) -> bool:
    files = event.get('files') or []
    return bool(files) and all(f.get('isDownloaded') for f in files)


def download_batch(client: BrowserAPIClient, year: str, month: str, limit: int = 100) -> Dict[str, Any]:
    """
    Download up to ``limit`` events of a partition that are not downloaded yet.

    A failed event is logged and counted; the batch continues.

    Returns:
        Dictionary with the downloaded and failed event ids
    """
    logger = logging.getLogger(__name__)
    events = client.get_events(year, month)
    # Event status resets on every resync; the per-file flags survive it
    pending = [e['eventId'] for e in events if not _is_downloaded(e)][:limit]
    logger.info(f"Downloading {len(pending)} of {len(events)} events for {year}/{month}")

    results = {'downloaded': [], 'failed': {}}
    for event_id in pending:
        try:
            result = client.download_event(year, month, event_id)
            results['downloaded'].append(event_id)
            logger.info(f"Downloaded event {event_id}: {len(result.get('downloadedFiles', []))} files")
        except BrowserAPIError as e:
            results['failed'][event_id] = str(e)
            logger.error(f"Failed event {event_id}: {e}")

    return results
