"""Package source backed by a remote NuGet V2 feed."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from constants import Constants
from common.errors import NetworkError
from common.logging_utils import safe_url
from sources.base import PackageSource, sort_ascending, sort_updates
from sources.models import Package
from sources.odata import ODataFeed
from versioning.compare import compare_versions
from versioning.models import PackageIdentifier

logger = logging.getLogger(__name__)


class RemotePackageSource(PackageSource):
    """HTTP feed queried through :class:`ODataFeed`.

    Args:
        http: HttpClient shared by every source of a run.
        feed: Optional pre-built feed collaborator (tests inject fakes).
    """

    def __init__(self, name: str, path: str, username: Optional[str] = None,
                 password: Optional[str] = None, enabled: bool = True,
                 base_dir: Optional[str] = None, http=None, feed=None) -> None:
        super().__init__(name, path, username, password, enabled, base_dir)
        self.feed = feed or ODataFeed(self.expanded_path, http, username, password)

    def _claim(self, packages: List[Package]) -> List[Package]:
        for package in packages:
            package.source = self
        return packages

    def find_packages_by_id(self, identifier: PackageIdentifier) -> List[Package]:
        """In-range versions, oldest first.

        For an exact version the paging stops at the first page that holds it.
        """
        exact = None if identifier.has_version_range else identifier.version
        url = self.feed.find_by_id_url(identifier.id, exact)
        found: List[Package] = []
        try:
            for page in self.feed.iter_pages(url):
                matches = [p for p in page if identifier.in_range(p.version)]
                if exact is not None:
                    hit = next((p for p in matches if compare_versions(p.version, exact) == 0), None)
                    if hit is not None:
                        return self._claim([hit])
                found.extend(matches)
        except NetworkError as exc:
            logger.error("Unable to retrieve package list from %s: %s", safe_url(url), exc)
            return []
        return self._claim(sort_ascending(found))

    def get_specific_package(self, identifier: PackageIdentifier) -> Optional[Package]:
        if identifier.has_version_range:
            matches = self.find_packages_by_id(identifier)
            return matches[0] if matches else None
        try:
            package = self.feed.find_exact(identifier.id, identifier.version)
        except NetworkError as exc:
            logger.error("Unable to retrieve %s from %s: %s", identifier, self.name, exc)
            return None
        if package is None:
            return None
        package.source = self
        return package

    def search(self, term: str = "", include_all_versions: bool = False,
               include_prerelease: bool = False, count: int = 15, skip: int = 0) -> List[Package]:
        try:
            return self._claim(self.feed.search(term, include_all_versions, include_prerelease, count, skip))
        except NetworkError as exc:
            logger.error("Unable to search %s: %s", self.name, exc)
            return []

    def get_updates(self, installed: Iterable[Package], include_prerelease: bool = False,
                    include_all_versions: bool = False) -> List[Package]:
        """Query GetUpdates() in fixed-size batches.

        Feeds without GetUpdates() (HTTP 404) are answered from
        FindPackagesById() per installed package instead.
        """
        installed = list(installed)
        updates: List[Package] = []
        size = Constants.UPDATE_BATCH_SIZE
        for start in range(0, len(installed), size):
            batch = installed[start:start + size]
            try:
                found = self.feed.get_updates(batch, include_prerelease, include_all_versions)
            except NetworkError as exc:
                if exc.status_code == 404:
                    logger.info("GetUpdates not supported by %s, falling back to FindPackagesById", self.name)
                    return self._updates_fallback(installed, include_prerelease, include_all_versions)
                logger.error("Unable to retrieve updates from %s: %s", self.name, exc)
                continue
            if not include_all_versions:
                found = self._latest_per_id(found)
            updates.extend(found)
        return sort_updates(self._claim(updates))

    @staticmethod
    def _latest_per_id(packages: List[Package]) -> List[Package]:
        latest: Dict[str, Package] = {}
        for package in packages:
            current = latest.get(package.id)
            if current is None or compare_versions(current.version, package.version) < 0:
                latest[package.id] = package
        return list(latest.values())

    def _updates_fallback(self, installed: List[Package], include_prerelease: bool,
                          include_all_versions: bool) -> List[Package]:
        updates: List[Package] = []
        for package in installed:
            newer = self.find_packages_by_id(PackageIdentifier(package.id, f"({package.version},)"))
            if not include_prerelease:
                newer = [p for p in newer if not p.is_prerelease]
            if not newer:
                continue
            updates.extend(newer if include_all_versions else newer[-1:])
        return sort_updates(self._claim(updates))
