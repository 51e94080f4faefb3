"""Package source backed by a directory of .nupkg archives."""

from __future__ import annotations

import glob
import logging
import os
from typing import Iterable, List, Optional

from constants import Constants
from common.errors import ArchiveCorruptError
from sources.base import PackageSource, sort_ascending, sort_updates
from sources.models import Package
from sources.nuspec import package_from_archive
from versioning.compare import compare_versions
from versioning.models import PackageIdentifier

logger = logging.getLogger(__name__)


class LocalPackageSource(PackageSource):
    """Directory feed. Listing is not paged: ``skip`` other than 0 yields nothing."""

    def archive_path(self, package_id: str, version: str) -> str:
        """Expected location of ``{id}.{version}.nupkg`` in this directory."""
        return os.path.join(self.expanded_path, f"{package_id}.{version}{Constants.ARCHIVE_EXTENSION}")

    def _find_archive(self, package_id: str, version: str) -> Optional[str]:
        path = self.archive_path(package_id, version)
        if os.path.isfile(path):
            return path
        wanted = os.path.basename(path).lower()
        if os.path.isdir(self.expanded_path):
            for name in os.listdir(self.expanded_path):
                if name.lower() == wanted:
                    return os.path.join(self.expanded_path, name)
        return None

    def _load(self, archive_path: str) -> Optional[Package]:
        try:
            package = package_from_archive(archive_path)
        except ArchiveCorruptError as exc:
            logger.warning("Skipping unreadable package %s: %s", archive_path, exc)
            return None
        package.source = self
        return package

    def _local_packages(self, term: str = "", include_all_versions: bool = False,
                        include_prerelease: bool = False, skip: int = 0) -> List[Package]:
        if skip != 0:
            return []
        if not os.path.isdir(self.expanded_path):
            logger.error("Local folder not found: %s", self.expanded_path)
            return []

        pattern = os.path.join(glob.escape(self.expanded_path), f"*{glob.escape(term)}*{Constants.ARCHIVE_EXTENSION}")
        found: List[Package] = []
        for archive_path in sorted(glob.glob(pattern)):
            package = self._load(archive_path)
            if package is None:
                continue
            if package.is_prerelease and not include_prerelease:
                continue
            if include_all_versions:
                found.append(package)
                continue
            existing = next((p for p in found if p.id == package.id), None)
            if existing is None:
                found.append(package)
            elif compare_versions(existing.version, package.version) < 0:
                found[found.index(existing)] = package
        return found

    def find_packages_by_id(self, identifier: PackageIdentifier) -> List[Package]:
        if not identifier.has_version_range:
            package = self.get_specific_package(identifier)
            return [package] if package is not None else []
        candidates = self._local_packages(identifier.id, include_all_versions=True, include_prerelease=True)
        matches = [
            p for p in candidates
            if p.id.lower() == identifier.id.lower() and identifier.in_range(p.version)
        ]
        return sort_ascending(matches)

    def get_specific_package(self, identifier: PackageIdentifier) -> Optional[Package]:
        if identifier.has_version_range:
            matches = self.find_packages_by_id(identifier)
            return matches[0] if matches else None
        archive_path = self._find_archive(identifier.id, identifier.version)
        if archive_path is None:
            return None
        return self._load(archive_path)

    def search(self, term: str = "", include_all_versions: bool = False,
               include_prerelease: bool = False, count: int = 15, skip: int = 0) -> List[Package]:
        return self._local_packages(term, include_all_versions, include_prerelease, skip)

    def get_updates(self, installed: Iterable[Package], include_prerelease: bool = False,
                    include_all_versions: bool = False) -> List[Package]:
        available = self._local_packages("", include_all_versions, include_prerelease)
        updates: List[Package] = []
        for installed_package in installed:
            for candidate in available:
                if candidate.id.lower() != installed_package.id.lower():
                    continue
                if compare_versions(installed_package.version, candidate.version) < 0:
                    updates.append(candidate)
        return sort_updates(updates)
