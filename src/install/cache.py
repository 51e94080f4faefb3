"""Machine-wide cache of package archives, keyed by ``{Id}.{Version}.nupkg``."""

from __future__ import annotations

import logging
import os
import shutil
from typing import Optional

from constants import Constants
from common.errors import ArchiveCorruptError, NugetError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from sources.models import Package
from sources.nuspec import package_from_archive
from versioning.models import PackageIdentifier

logger = logging.getLogger(__name__)


class PackageCache:
    """Archive cache directory.

    Args:
        cache_dir: Directory holding cached archives; created on first write.
        http: HttpClient used for downloads.
    """

    def __init__(self, cache_dir: str, http=None) -> None:
        self.cache_dir = cache_dir
        self.http = http

    def archive_path(self, identifier: PackageIdentifier) -> str:
        return os.path.join(self.cache_dir, f"{identifier.id}.{identifier.version}{Constants.ARCHIVE_EXTENSION}")

    def get_cached_archive(self, identifier: PackageIdentifier) -> Optional[str]:
        """Path of the cached archive for an exact version, or None on a miss."""
        if identifier.has_version_range:
            return None
        path = self.archive_path(identifier)
        return path if os.path.isfile(path) else None

    def get_cached_package(self, identifier: PackageIdentifier) -> Optional[Package]:
        """Package metadata read from the cached archive, or None."""
        path = self.get_cached_archive(identifier)
        if path is None:
            return None
        try:
            package = package_from_archive(path)
        except ArchiveCorruptError as exc:
            logger.warning("Ignoring unreadable cached archive %s: %s", path, exc)
            return None
        logger.debug("Found exact package in the cache: %s", path)
        return package

    def store_from_local_source(self, identifier: PackageIdentifier, source_path: str) -> str:
        """Copy an archive from a local feed into the cache unmodified."""
        destination = self.archive_path(identifier)
        os.makedirs(self.cache_dir, exist_ok=True)
        if not os.path.isfile(source_path):
            raise ArchiveCorruptError(f"File not found: {source_path}")
        if os.path.abspath(source_path) != os.path.abspath(destination):
            shutil.copyfile(source_path, destination)
        return destination

    def store_from_download(self, identifier: PackageIdentifier, url: str,
                            username: Optional[str] = None, password: Optional[str] = None) -> str:
        """Stream ``url`` into the cache.

        Raises:
            NetworkError: If the download fails.
        """
        if self.http is None:
            raise NugetError("No HTTP client configured for downloads")
        destination = self.archive_path(identifier)
        with Timer() as t:
            self.http.download(url, destination, username=username, password=password)
        if is_debug_enabled(logger):
            logger.debug(
                "Package downloaded",
                extra=extra_context(
                    event="download",
                    component="cache",
                    action="GET",
                    target=safe_url(url),
                    duration_ms=t.duration_ms(),
                    package_id=identifier.id,
                    version=identifier.version,
                ),
            )
        return destination

    def fetch(self, package: Package, use_cached: bool = True) -> str:
        """Return a cached archive for ``package``, filling the cache on a miss.

        Args:
            package: Resolved package; its source decides between a local copy
                and a download.
            use_cached: Accept an archive already in the cache.

        Raises:
            ArchiveCorruptError: If nothing can provide the archive.
            NetworkError: If a download fails.
        """
        if use_cached:
            cached = self.get_cached_archive(package)
            if cached is not None:
                logger.debug("Cached package found for %s %s", package.id, package.version)
                return cached

        source = package.source
        if source is None:
            if package.download_url and os.path.isfile(package.download_url):
                return self.store_from_local_source(package, package.download_url)
            raise ArchiveCorruptError(f"No source known for {package.id} {package.version}")
        if source.is_local_path:
            logger.debug("Caching local package %s %s", package.id, package.version)
            local_path = package.download_url or source.archive_path(package.id, package.version)
            return self.store_from_local_source(package, local_path)
        logger.info("Downloading package %s %s", package.id, package.version)
        return self.store_from_download(package, package.download_url, source.username, source.password)
