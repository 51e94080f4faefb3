"""Discovery of packages actually present in the install directory.

A package installed from an archive keeps its ``.nupkg`` inside its folder.
Packages whose sources are pulled into the tree by other means carry a
standalone ``.nuspec`` instead.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import List

from constants import Constants
from common.errors import ArchiveCorruptError
from sources.models import Package
from sources.nuspec import package_from_archive, package_from_nuspec_file

logger = logging.getLogger(__name__)


class InstalledPackageScanner(ABC):
    """Lists the packages materialized under a repository directory."""

    @abstractmethod
    def scan(self, repository_path: str) -> List[Package]:
        """Packages found, archive-backed ones first."""


def _find_files(root: str, extension: str) -> List[str]:
    found = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            if name.lower().endswith(extension):
                found.append(os.path.join(dirpath, name))
    return sorted(found)


class DirectoryPackageScanner(InstalledPackageScanner):
    """Scan the filesystem for ``*.nupkg`` then ``*.nuspec`` files."""

    def scan(self, repository_path: str) -> List[Package]:
        if not os.path.isdir(repository_path):
            return []
        packages: List[Package] = []
        for archive_path in _find_files(repository_path, Constants.ARCHIVE_EXTENSION):
            try:
                packages.append(package_from_archive(archive_path))
            except ArchiveCorruptError as exc:
                logger.warning("Ignoring unreadable installed archive %s: %s", archive_path, exc)
        for nuspec_path in _find_files(repository_path, Constants.NUSPEC_EXTENSION):
            package = package_from_nuspec_file(nuspec_path)
            if package is not None:
                packages.append(package)
        return packages


class InMemoryPackageScanner(InstalledPackageScanner):
    """Scanner returning a fixed list; used where no filesystem is wanted."""

    def __init__(self, packages: List[Package]) -> None:
        self.packages = list(packages)

    def scan(self, repository_path: str) -> List[Package]:
        return list(self.packages)
