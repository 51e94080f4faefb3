"""Common interface for package sources.

A source is either a local directory of ``.nupkg`` files or a remote feed.
Which one is decided once, at construction, from the expanded path.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from functools import cmp_to_key
from typing import Iterable, List, Optional

from sources.models import Package
from versioning.compare import compare_versions
from versioning.models import PackageIdentifier


def expand_source_path(path: str, base_dir: Optional[str] = None) -> str:
    """Expand environment variables; anchor local paths at ``base_dir``."""
    expanded = os.path.expandvars(os.path.expanduser(path))
    if expanded.lower().startswith("http"):
        return expanded
    if base_dir and not os.path.isabs(expanded):
        expanded = os.path.join(base_dir, expanded)
    return os.path.normpath(expanded)


def sort_ascending(packages: List[Package]) -> List[Package]:
    """Sort packages of one id from oldest to newest version."""
    return sorted(packages, key=cmp_to_key(lambda a, b: compare_versions(a.version, b.version)))


def sort_updates(packages: List[Package]) -> List[Package]:
    """Sort by id ordinally, newest version first within an id."""
    def _cmp(a: Package, b: Package) -> int:
        if a.id != b.id:
            return -1 if a.id < b.id else 1
        return -compare_versions(a.version, b.version)
    return sorted(packages, key=cmp_to_key(_cmp))


class PackageSource(ABC):
    """A named, optionally authenticated, enable-able package feed.

    Args:
        name: Display name.
        path: URL or directory, may reference environment variables.
        username: Optional static user name.
        password: Optional static password; empty means "ask providers".
        enabled: Disabled sources are skipped by the engine.
        base_dir: Directory relative local paths are resolved against.
    """

    def __init__(self, name: str, path: str, username: Optional[str] = None,
                 password: Optional[str] = None, enabled: bool = True,
                 base_dir: Optional[str] = None) -> None:
        self.name = name
        self.path = path
        self.username = username
        self.password = password
        self.enabled = enabled
        self.expanded_path = expand_source_path(path, base_dir)
        self.is_local_path = not self.expanded_path.lower().startswith("http")

    @abstractmethod
    def find_packages_by_id(self, identifier: PackageIdentifier) -> List[Package]:
        """All packages with the identifier's id whose version is in range, oldest first."""

    @abstractmethod
    def get_specific_package(self, identifier: PackageIdentifier) -> Optional[Package]:
        """The exact package for a bare version, or the lowest in range for a range."""

    @abstractmethod
    def search(self, term: str = "", include_all_versions: bool = False,
               include_prerelease: bool = False, count: int = 15, skip: int = 0) -> List[Package]:
        """Packages whose id matches ``term``."""

    @abstractmethod
    def get_updates(self, installed: Iterable[Package], include_prerelease: bool = False,
                    include_all_versions: bool = False) -> List[Package]:
        """Newer versions of installed packages."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, path={self.expanded_path!r})"
