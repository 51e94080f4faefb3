"""Libraries already provided by the host engine.

A package whose id matches the file stem of a ``.dll`` found under the
engine library paths is treated as installed and never downloaded.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, Optional, Set

logger = logging.getLogger(__name__)


class ImportedLibraryIndex:
    """Lazily built, case-insensitive set of engine library names.

    Args:
        library_paths: Directories searched recursively for ``*.dll``.
        names: Explicit names, used instead of scanning.
    """

    def __init__(self, library_paths: Iterable[str] = (), names: Optional[Iterable[str]] = None) -> None:
        self.library_paths = list(library_paths)
        self._names: Optional[Set[str]] = {n.lower() for n in names} if names is not None else None

    @property
    def names(self) -> Set[str]:
        if self._names is None:
            self._names = set()
            for path in self.library_paths:
                if not os.path.isdir(path):
                    continue
                for _dirpath, _dirnames, filenames in os.walk(path):
                    for name in filenames:
                        stem, ext = os.path.splitext(name)
                        if ext.lower() == ".dll":
                            self._names.add(stem.lower())
        return self._names

    def contains(self, package_id: str) -> bool:
        """True when the engine already ships ``package_id``."""
        imported = package_id.lower() in self.names
        if imported:
            logger.debug("Package %s is already imported in engine", package_id)
        return imported
