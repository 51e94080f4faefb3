"""Data models for packages and their framework-scoped dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, TYPE_CHECKING

from versioning.models import PackageIdentifier

if TYPE_CHECKING:  # pragma: no cover
    from sources.base import PackageSource


@dataclass
class FrameworkGroup:
    """Dependencies scoped to one target framework moniker ("" means any)."""
    target_framework: str = ""
    dependencies: List[PackageIdentifier] = field(default_factory=list)


@dataclass(eq=False)
class Package(PackageIdentifier):
    """Resolved package with descriptive metadata and dependency groups."""
    title: str = ""
    description: str = ""
    summary: str = ""
    release_notes: str = ""
    authors: str = ""
    owners: str = ""
    copyright: str = ""
    tags: str = ""
    license_url: str = ""
    project_url: str = ""
    icon_url: str = ""
    download_url: str = ""
    download_count: int = 0
    repository_type: str = ""
    repository_url: str = ""
    repository_branch: str = ""
    repository_commit: str = ""
    dependencies: List[FrameworkGroup] = field(default_factory=list)
    source: Optional["PackageSource"] = field(default=None, repr=False)

    def identifier(self) -> PackageIdentifier:
        """Plain identifier carrying this package's id, version and manual flag."""
        return PackageIdentifier(self.id, self.version, self.manual)


def merge_groups(groups: Iterable[FrameworkGroup]) -> List[FrameworkGroup]:
    """Collapse groups sharing a TFM so each TFM appears once, first seen order."""
    merged: List[FrameworkGroup] = []
    by_tfm = {}
    for group in groups:
        existing = by_tfm.get(group.target_framework)
        if existing is None:
            existing = FrameworkGroup(group.target_framework, [])
            by_tfm[group.target_framework] = existing
            merged.append(existing)
        for dependency in group.dependencies:
            if dependency not in existing.dependencies:
                existing.dependencies.append(dependency)
    return merged
