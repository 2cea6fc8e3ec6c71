"""HTTP client for the MTA Bus Time API."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import requests

from .config import MTA_BUS_API_KEY, MTA_BUS_API_URL, REQUEST_TIMEOUT
from .decoder import parse_json, parse_xml
from .errors import OperationCancelled, TransportError

logger = logging.getLogger(__name__)

# How often a waiting call re-checks its cancel token
CANCEL_POLL_INTERVAL = 0.05


class CancelToken:
    """Cancellation flag with an optional deadline, shared by one call.

    Callbacks registered with add_callback run once when cancel() is called,
    which lets requests in flight close their sessions.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    def cancel(self):
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.debug("Cancel callback %r failed", callback, exc_info=True)

    def add_callback(self, callback: Callable[[], None]):
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]):
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, what: str):
        if self.cancelled:
            raise OperationCancelled(f"{what} cancelled")


class BusTimeClient:
    """Thin wrapper around the Bus Time REST resources.

    Every request carries the API key and returns a decoded document.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = MTA_BUS_API_KEY if api_key is None else api_key
        self.base_url = (base_url or MTA_BUS_API_URL).rstrip("/")
        self.timeout = REQUEST_TIMEOUT if timeout is None else timeout

    def _cancellable_get(
        self,
        url: str,
        query: dict,
        timeout: float,
        token: CancelToken,
        what: str,
    ) -> requests.Response:
        """Run the GET on a private session that cancelling the token closes.

        The caller stops waiting as soon as the token is cancelled, even if
        the socket read has not returned yet.
        """
        session = requests.Session()
        done = threading.Event()
        outcome: dict = {}

        def run():
            try:
                outcome["response"] = session.get(url, params=query, timeout=timeout)
            except Exception as e:
                outcome["error"] = e
            finally:
                done.set()

        token.add_callback(session.close)
        try:
            threading.Thread(target=run, name=f"bus-time {what}", daemon=True).start()
            while not done.wait(CANCEL_POLL_INTERVAL):
                token.raise_if_cancelled(what)
        finally:
            token.remove_callback(session.close)
            session.close()

        token.raise_if_cancelled(what)
        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    def _request(
        self,
        path: str,
        params: Optional[dict],
        resource: str,
        ident: Optional[str],
        token: Optional[CancelToken],
    ) -> str:
        """Issue a GET and return the response body."""
        what = f"{resource} {ident}" if ident else resource
        timeout = self.timeout
        if token is not None:
            token.raise_if_cancelled(what)
            remaining = token.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)

        url = f"{self.base_url}/{path.lstrip('/')}"
        query = dict(params or {})
        query["key"] = self.api_key
        logger.debug("GET %s params=%s", url, {k: v for k, v in query.items() if k != "key"})

        try:
            if token is None:
                response = requests.get(url, params=query, timeout=timeout)
            else:
                response = self._cancellable_get(url, query, timeout, token, what)
        except requests.exceptions.Timeout as e:
            if token is not None and token.cancelled:
                raise OperationCancelled(f"{what} cancelled") from e
            raise TransportError(resource, ident, reason=f"timed out after {timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(resource, ident, reason=str(e)) from e

        if token is not None:
            token.raise_if_cancelled(what)

        if not response.ok:
            raise TransportError(resource, ident, status=response.status_code, reason=response.reason or "")

        return response.text

    def get_xml(
        self,
        path: str,
        params: Optional[dict] = None,
        *,
        resource: str,
        ident: Optional[str] = None,
        token: Optional[CancelToken] = None,
    ) -> dict:
        body = self._request(path, params, resource, ident, token)
        return parse_xml(body, resource, ident)

    def get_json(
        self,
        path: str,
        params: Optional[dict] = None,
        *,
        resource: str,
        ident: Optional[str] = None,
        token: Optional[CancelToken] = None,
    ) -> dict:
        body = self._request(path, params, resource, ident, token)
        return parse_json(body, resource, ident)


def get_client() -> BusTimeClient:
    """Build a client from the environment settings."""
    return BusTimeClient()
