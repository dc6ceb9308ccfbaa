"""Index fetchers for metadata sources.

``StorageIndexFetcher`` serves URLs under a storage's ``base_url`` straight
from that storage (the control bucket).  Everything else goes to
``HttpIndexFetcher``.  ``CompositeFetcher`` routes between the two.
"""

from __future__ import annotations

import logging

import httpx

from fleetcore.core.errors import AuthorizationFailed, BackendUnavailable
from fleetcore.core.storage import Storage

logger = logging.getLogger(__name__)


class HttpIndexFetcher:
    """Fetch indexes over HTTP(S) with ``httpx``.

    A 404 means "no index here"; 401/403 are authorization failures;
    other errors and 5xx responses are transport failures.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    client:
        Optional pre-configured ``httpx.Client`` (tests pass one with a
        mock transport).
    """

    def __init__(self, timeout: float = 10.0, client: httpx.Client | None = None) -> None:
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def fetch(self, url: str) -> bytes | None:
        try:
            response = self._client.get(url)
        except httpx.TransportError as exc:
            raise BackendUnavailable(f"fetching {url}: {exc}") from exc
        if response.status_code == 404:
            logger.debug("No index at %s", url)
            return None
        if response.status_code in (401, 403):
            raise AuthorizationFailed(f"fetching {url}: HTTP {response.status_code}")
        if response.status_code >= 500:
            raise BackendUnavailable(f"fetching {url}: HTTP {response.status_code}")
        response.raise_for_status()
        return response.content

    def close(self) -> None:
        self._client.close()


class StorageIndexFetcher:
    """Fetch indexes published in object storage."""

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def handles(self, url: str) -> bool:
        return url.startswith(self._storage.base_url)

    def fetch(self, url: str) -> bytes | None:
        key = url[len(self._storage.base_url):]
        try:
            return self._storage.get(key)
        except KeyError:
            logger.debug("No index at %s", url)
            return None


class CompositeFetcher:
    """Route storage URLs to storage and everything else over HTTP."""

    def __init__(self, storage: Storage, http: HttpIndexFetcher | None = None) -> None:
        self._storage_fetcher = StorageIndexFetcher(storage)
        self._http = http

    def fetch(self, url: str) -> bytes | None:
        if self._storage_fetcher.handles(url):
            return self._storage_fetcher.fetch(url)
        if self._http is None:
            self._http = HttpIndexFetcher()
        return self._http.fetch(url)

    def close(self) -> None:
        """Close the HTTP client, if one was opened.  Safe to call twice."""
        if self._http is not None:
            self._http.close()
            self._http = None
