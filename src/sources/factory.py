"""Build package sources from configuration entries."""

from __future__ import annotations

from typing import Optional

from sources.base import PackageSource, expand_source_path
from sources.local import LocalPackageSource
from sources.remote import RemotePackageSource


def create_source(name: str, path: str, *, username: Optional[str] = None,
                  password: Optional[str] = None, enabled: bool = True,
                  base_dir: Optional[str] = None, http=None) -> PackageSource:
    """Return a local or remote source depending on the expanded path."""
    if expand_source_path(path, base_dir).lower().startswith("http"):
        return RemotePackageSource(name, path, username, password, enabled, base_dir, http=http)
    return LocalPackageSource(name, path, username, password, enabled, base_dir)
