"""
RuneSync - HTTP Transport

Posts snapshots to the remote service. The request runs on a worker thread so
the host dispatch loop never blocks; callers get a
:class:`concurrent.futures.Future` that resolves to True when the service
accepted the snapshot and False on any network error or non-2xx response.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Protocol, runtime_checkable

import httpx

from runesync.config import Settings
from runesync.errors import TransportError
from runesync.models import Snapshot

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    def send(self, snapshot: Snapshot) -> "Future[bool]": ...


class HttpTransport:
    """httpx-backed transport with a single background worker."""

    def __init__(
        self,
        endpoint: str,
        user_agent: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
        max_workers: int = 1,
    ):
        self.endpoint = endpoint
        self.user_agent = user_agent
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._client_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="runesync-http")
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.Client] = None) -> "HttpTransport":
        return cls(
            endpoint=settings.api_endpoint,
            user_agent=settings.user_agent,
            timeout=settings.request_timeout_seconds,
            client=client,
        )

    def _get_http_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.Client(
                    timeout=httpx.Timeout(self.timeout),
                    limits=httpx.Limits(max_keepalive_connections=2, max_connections=4),
                )
                self._owns_client = True
            return self._client

    def send(self, snapshot: Snapshot) -> "Future[bool]":
        """Queue the snapshot for upload."""
        if self._closed:
            future: Future[bool] = Future()
            future.set_result(False)
            logger.warning("Transport closed, dropping snapshot for %s", snapshot.username)
            return future
        return self._executor.submit(self._post, snapshot)

    def _post(self, snapshot: Snapshot) -> bool:
        try:
            self.post_snapshot(snapshot)
        except TransportError as e:
            logger.warning(f"Sync upload for {snapshot.username} failed: {e}")
            return False
        logger.debug(f"Successfully synced player data for {snapshot.username}")
        return True

    def post_snapshot(self, snapshot: Snapshot) -> httpx.Response:
        """
        Post a snapshot synchronously.

        Raises:
            TransportError: On network failure or a non-2xx response.
        """
        logger.info(f"Syncing player data for user: {snapshot.username}")
        client = self._get_http_client()

        try:
            response = client.post(
                self.endpoint,
                content=snapshot.to_json().encode("utf-8"),
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": self.user_agent,
                },
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Network error: {e}")

        if not response.is_success:
            raise TransportError(
                f"API returned {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response

    def close(self) -> None:
        """Stop accepting work and release the HTTP client."""
        self._closed = True
        self._executor.shutdown(wait=False)
        with self._client_lock:
            if self._owns_client and self._client is not None and not self._client.is_closed:
                self._client.close()
        logger.debug("HTTP transport closed")
