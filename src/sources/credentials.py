"""Feed credential lookup with a per-run cache.

Static credentials from configuration win. Otherwise external credential
provider executables are asked for the feed, following the NuGet
credential provider contract: ``credentialprovider*`` invoked with
``-uri <feed>``, exit code 0 with a JSON body on success, 1 when the
provider does not handle the feed, 2 on failure.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import urllib.parse
from typing import Callable, Dict, List, Optional, Tuple

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url

logger = logging.getLogger(__name__)

Credentials = Tuple[str, str]

PROVIDER_SUCCESS = 0
PROVIDER_NOT_APPLICABLE = 1
PROVIDER_FAILURE = 2


def truncated_feed_uri(method_url: str) -> str:
    """Reduce a feed method URL to the feed itself.

    Query strings are dropped and a trailing method segment such as
    ``Packages(Id='x',Version='1.0')`` is removed.
    """
    parts = urllib.parse.urlsplit(method_url)
    truncated = urllib.parse.urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    if truncated.endswith(")"):
        index = truncated.rfind("/")
        if index != -1:
            truncated = truncated[:index]
    return truncated


def _parse_provider_output(output: str) -> Optional[Credentials]:
    try:
        payload = json.loads(output)
    except ValueError:
        logger.warning("Credential provider returned non-JSON output")
        return None
    if not isinstance(payload, dict):
        return None
    username = payload.get("Username") or ""
    password = payload.get("Password")
    if password is None:
        return None
    return str(username), str(password)


class CredentialStore:
    """Resolve and cache feed credentials for the lifetime of one run."""

    def __init__(
        self,
        provider_dirs: Optional[List[str]] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self._provider_dirs = list(provider_dirs or [])
        self._runner = runner
        self._cache: Dict[str, Optional[Credentials]] = {}

    def resolve(self, url: str, username: Optional[str] = None, password: Optional[str] = None) -> Optional[Credentials]:
        """Return credentials for a request to ``url``.

        Args:
            url: Full request URL.
            username: Statically configured user name.
            password: Statically configured password; when set no provider runs.
        """
        if password:
            return username or "", password
        if not url.lower().startswith("http"):
            return None
        return self.get(url)

    def get(self, url: str) -> Optional[Credentials]:
        """Provider credentials for the feed behind ``url`` (cached)."""
        feed = truncated_feed_uri(url)
        if feed not in self._cache:
            self._cache[feed] = self._query_providers(feed)
        return self._cache[feed]

    def invalidate(self, url: str) -> None:
        """Forget cached credentials for the feed behind ``url``."""
        self._cache.pop(truncated_feed_uri(url), None)

    def clear_cached_credentials(self) -> None:
        """Forget every cached credential."""
        self._cache.clear()

    def provider_search_paths(self) -> List[str]:
        """Directories searched for provider executables, in priority order."""
        paths = [os.path.join(os.path.expanduser("~"), ".local", "share", "NuGet", "CredentialProviders")]
        env_paths = os.environ.get(Constants.ENV_CREDENTIAL_PROVIDERS, "")
        for chunk in env_paths.split(";"):
            paths.extend(p for p in chunk.split(os.pathsep) if p)
        paths.extend(self._provider_dirs)
        return paths

    def find_providers(self) -> List[str]:
        """Provider executables found under the search paths, deduplicated."""
        found: List[str] = []
        for base in self.provider_search_paths():
            if not os.path.isdir(base):
                continue
            for dirpath, _dirs, files in os.walk(base):
                for name in sorted(files):
                    if name.lower().startswith(Constants.CREDENTIAL_PROVIDER_PREFIX):
                        path = os.path.join(dirpath, name)
                        if path not in found:
                            found.append(path)
        return found

    def _query_providers(self, feed: str) -> Optional[Credentials]:
        if is_debug_enabled(logger):
            logger.debug(
                "Credential lookup",
                extra=extra_context(
                    event="credential_lookup",
                    component="credentials",
                    action="query",
                    target=safe_url(feed),
                ),
            )
        for provider in self.find_providers():
            try:
                result = self._runner(
                    [provider, "-uri", feed],
                    capture_output=True,
                    text=True,
                    timeout=Constants.CREDENTIAL_PROVIDER_TIMEOUT,
                    check=False,
                )
            except (OSError, subprocess.SubprocessError) as exc:
                logger.warning("Credential provider %s could not run: %s", provider, exc)
                continue

            if result.returncode == PROVIDER_NOT_APPLICABLE:
                continue
            if result.returncode == PROVIDER_FAILURE:
                logger.error(
                    "Failed to get credentials from %s: %s",
                    provider,
                    (result.stderr or "").strip(),
                )
                return None
            if result.returncode == PROVIDER_SUCCESS:
                return _parse_provider_output(result.stdout or "")
            logger.warning("Unrecognized exit code %s from %s", result.returncode, provider)
        return None
