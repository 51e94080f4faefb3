"""Shared HTTP helpers used by remote package sources and the package cache.

Encapsulates request/timeout error handling and authentication so callers
only see ``NetworkError``. Metadata requests use a short timeout; archive
downloads are streamed to disk without one.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Optional

import requests
from requests.auth import HTTPBasicAuth

from constants import Constants
from common.errors import NetworkError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

# Marks "use the client timeout"; an explicit None disables the timeout.
_DEFAULT_TIMEOUT = object()


class HttpClient:
    """Thin wrapper over a ``requests.Session`` with credential resolution.

    Args:
        credentials: Object exposing ``resolve(url, username, password)`` and
            ``invalidate(url)``; None disables provider lookups.
        session: Optional pre-built session (tests inject mocks here).
        timeout: Timeout in seconds for metadata requests.
    """

    def __init__(self, credentials: Any = None, session: Optional[requests.Session] = None,
                 timeout: float = Constants.REQUEST_TIMEOUT) -> None:
        self.credentials = credentials
        self.session = session or requests.Session()
        self.timeout = timeout

    def _auth(self, url: str, username: Optional[str], password: Optional[str]) -> Optional[HTTPBasicAuth]:
        if password:
            return HTTPBasicAuth(username or "", password)
        if self.credentials is None:
            return None
        creds = self.credentials.resolve(url, username, password)
        if creds is None:
            return None
        return HTTPBasicAuth(creds[0], creds[1])

    def _send(self, url: str, auth, timeout, stream: bool) -> requests.Response:
        safe_target = safe_url(url)
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_target,
                    ),
                )
            try:
                res = self.session.get(url, auth=auth, timeout=timeout, stream=stream)
            except requests.Timeout as exc:
                logger.error("Request to %s timed out after %s seconds", safe_target, timeout)
                raise NetworkError(f"Timed out: {safe_target}", url=url) from exc
            except requests.RequestException as exc:  # includes ConnectionError
                logger.error("Connection error for %s: %s", safe_target, exc)
                raise NetworkError(f"Connection error: {exc}", url=url) from exc
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action="GET",
                        outcome="success" if res.status_code < 400 else "error",
                        status_code=res.status_code,
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                    ),
                )
        return res

    def get(self, url: str, *, username: Optional[str] = None, password: Optional[str] = None,
            timeout: Any = _DEFAULT_TIMEOUT, stream: bool = False) -> requests.Response:
        """GET ``url`` and return the response whatever its status.

        A 401 answered with provider credentials drops the cached credentials
        and retries once with a fresh lookup.

        Raises:
            NetworkError: On timeout or connection failure.
        """
        effective_timeout = self.timeout if timeout is _DEFAULT_TIMEOUT else timeout
        auth = self._auth(url, username, password)
        res = self._send(url, auth, effective_timeout, stream)
        if res.status_code == 401 and not password and self.credentials is not None and auth is not None:
            self.credentials.invalidate(url)
            auth = self._auth(url, username, password)
            if auth is not None:
                res.close()
                res = self._send(url, auth, effective_timeout, stream)
        return res

    def get_text(self, url: str, *, username: Optional[str] = None, password: Optional[str] = None) -> str:
        """GET ``url`` and return the body, raising NetworkError on HTTP errors."""
        res = self.get(url, username=username, password=password)
        if res.status_code >= 400:
            raise NetworkError(
                f"HTTP {res.status_code} for {safe_url(url)}", url=url, status_code=res.status_code
            )
        return res.text

    def download(self, url: str, destination: str, *, username: Optional[str] = None,
                 password: Optional[str] = None) -> str:
        """Stream ``url`` into ``destination`` without buffering the whole body.

        The file is written next to the destination first and moved into place
        only once complete, so an interrupted download never leaves a partial
        archive behind.

        Returns:
            The destination path.
        """
        res = self.get(url, username=username, password=password,
                       timeout=Constants.DOWNLOAD_TIMEOUT, stream=True)
        try:
            if res.status_code >= 400:
                raise NetworkError(
                    f"HTTP {res.status_code} downloading {safe_url(url)}",
                    url=url,
                    status_code=res.status_code,
                )
            os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
            partial = destination + ".part"
            try:
                with open(partial, "wb") as fh:
                    for chunk in res.iter_content(chunk_size=Constants.DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            fh.write(chunk)
            except requests.RequestException as exc:
                os.remove(partial)
                raise NetworkError(f"Download interrupted: {exc}", url=url) from exc
            os.replace(partial, destination)
        finally:
            res.close()
        return destination

    def close(self) -> None:
        """Release pooled connections."""
        self.session.close()
