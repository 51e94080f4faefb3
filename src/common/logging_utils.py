"""Centralized logging configuration and structured debug helpers.

Modules log through ``logging.getLogger(__name__)``; this module only wires
the root handler and offers small helpers so debug traces stay uniform:

* ``extra_context`` builds the ``extra=`` payload for structured records.
* ``is_debug_enabled`` guards expensive debug formatting.
* ``safe_url`` removes credentials and query secrets before logging a URL.
* ``Timer`` measures a block for ``duration_ms`` fields.
"""
from __future__ import annotations

import logging
import os
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants

_SENSITIVE_QUERY_KEYS = {"password", "token", "apikey", "api_key", "key", "secret"}


def configure_logging(log_file: Optional[str] = None, quiet: bool = False) -> None:
    """Configure the root logger once per process.

    Level comes from the NUGETFU_LOG_LEVEL environment variable (default INFO).

    Args:
        log_file: Optional path; when set, records are also written there.
        quiet: Only errors reach the console.
    """
    level_name = os.environ.get(Constants.ENV_LOG_LEVEL, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
    if quiet:
        console.setLevel(logging.ERROR)
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s " + Constants.LOG_FORMAT))
        root.addHandler(file_handler)

    root.setLevel(level)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build a structured ``extra`` mapping, dropping empty fields."""
    return {key: value for key, value in fields.items() if value is not None}


def safe_url(url: Optional[str]) -> Optional[str]:
    """Strip userinfo and sensitive query values from a URL for logging.

    Args:
        url: URL or local path.

    Returns:
        The redacted URL; non-HTTP values are returned unchanged.
    """
    if not url or not url.lower().startswith("http"):
        return url
    parts = urllib.parse.urlsplit(url)
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    query = parts.query
    if query:
        pairs = urllib.parse.parse_qsl(query, keep_blank_values=True)
        redacted = [
            (k, "***" if k.lower() in _SENSITIVE_QUERY_KEYS else v)
            for k, v in pairs
        ]
        query = urllib.parse.urlencode(redacted, safe="'|$,() ")
    return urllib.parse.urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds so far, or for the completed block."""
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
