"""
HTTP client for the remote document store.

Documents live under `users/{uid}/{collection}/{id}`; the store speaks
plain JSON over REST with bearer-token auth.
"""
from __future__ import annotations
from typing import Any, Optional
from urllib.parse import quote

import requests
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import VendorCalcConfig
from .errors import RemoteConnectionError, RemoteResponseError, RemoteUnavailableError

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "User-Agent": "vendorcalc/1.0",
}

# Statuses worth retrying; everything else >= 400 fails immediately
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class ReplicaClient:
    """
    HTTP client for the per-user document store with retry logic.

    Features:
    - Automatic retry with exponential backoff on transient failures
    - Connection pooling via requests.Session
    - Configurable timeouts and attempt counts
    """

    def __init__(self, config: Optional[VendorCalcConfig] = None):
        self.config = config or VendorCalcConfig.from_env()
        if not self.config.remote_configured:
            raise RemoteUnavailableError("VENDORCALC_REMOTE_URL is not configured")
        self.base_url = self.config.remote_url.rstrip("/")
        self.session = requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        self._token: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self._token)

    def set_token(self, token: str):
        self._token = token
        self.session.headers["Authorization"] = f"Bearer {token}"

    def clear_token(self):
        self._token = None
        self.session.headers.pop("Authorization", None)

    def document_url(self, uid: str, collection: str, doc_id: Any = None) -> str:
        url = f"{self.base_url}/users/{quote(str(uid), safe='')}/{quote(collection, safe='')}"
        if doc_id is not None:
            url += f"/{quote(str(doc_id), safe='')}"
        return url

    def _retrying(self) -> Retrying:
        return Retrying(
            wait=wait_exponential(multiplier=self.config.retry_delay, max=30),
            stop=stop_after_attempt(self.config.retry_attempts),
            retry=retry_if_exception_type(RemoteConnectionError),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying remote request (attempt {retry_state.attempt_number})..."
            ),
        )

    def _send(self, method: str, url: str, payload: Optional[dict] = None) -> requests.Response:
        timeout = self.config.request_timeout
        try:
            r = self.session.request(method, url, json=payload, timeout=timeout)
        except requests.Timeout as e:
            logger.error(f"Remote request timed out after {timeout}s: {method} {url}")
            raise RemoteConnectionError(f"Request timeout: {e}") from e
        except requests.ConnectionError as e:
            logger.error(f"Failed to connect to remote at {self.base_url}: {e}")
            raise RemoteConnectionError(f"Cannot connect to remote: {e}") from e
        except requests.RequestException as e:
            logger.error(f"Remote request failed: {e}")
            raise RemoteConnectionError(f"Request failed: {e}") from e

        if r.status_code in RETRYABLE_STATUS:
            raise RemoteConnectionError(f"Remote returned {r.status_code} for {method} {url}")
        if r.status_code >= 400:
            raise RemoteResponseError(
                f"Remote rejected {method} {url}: {r.status_code} {r.text[:200]}",
                status_code=r.status_code,
            )
        return r

    def request(self, method: str, url: str, payload: Optional[dict] = None) -> requests.Response:
        """
        Send a request, retrying transient failures.

        Raises:
            RemoteConnectionError: If the remote stays unreachable
            RemoteResponseError: If the remote rejects the request
        """
        return self._retrying()(self._send, method, url, payload)

    def put_document(self, uid: str, collection: str, doc_id: Any, data: dict):
        self.request("PUT", self.document_url(uid, collection, doc_id), data)

    def delete_document(self, uid: str, collection: str, doc_id: Any):
        try:
            self.request("DELETE", self.document_url(uid, collection, doc_id))
        except RemoteResponseError as e:
            if e.status_code != 404:
                raise
            logger.debug(f"Remote {collection}/{doc_id} already absent")

    def list_documents(self, uid: str, collection: str) -> list[dict]:
        """Return every document of a collection (list or {"documents": [...]})."""
        r = self.request("GET", self.document_url(uid, collection))
        try:
            data = r.json()
        except ValueError as e:
            raise RemoteResponseError(f"Remote returned invalid JSON for {collection}") from e
        if isinstance(data, dict):
            data = data.get("documents", [])
        if not isinstance(data, list):
            raise RemoteResponseError(f"Unexpected listing payload for {collection}")
        return data

    def test_connection(self, uid: str) -> dict:
        """
        Test connection to the remote store.

        Returns:
            Dict with connection status
        """
        try:
            docs = self.list_documents(uid, "products")
            return {
                "status": "connected",
                "url": self.base_url,
                "uid": uid,
                "products_found": len(docs),
            }
        except Exception as e:
            return {
                "status": "failed",
                "url": self.base_url,
                "error": str(e),
            }

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
