"""Package archive extraction.

Entries are written below ``{repository}/{Id}.{Version}/``. Entries that
would land outside that root are dropped, and packaging metadata plus
content the consumer never uses is not extracted at all.
"""

from __future__ import annotations

import logging
import os
import shutil
import zipfile
from typing import List

from constants import Constants
from common.errors import ArchiveCorruptError, PathTraversalAttempt
from common.fs_utils import make_read_only

logger = logging.getLogger(__name__)

EXCLUDED_FOLDERS = ("_rels", "package", "build", "src", "docs", "ref")
EXCLUDED_SUFFIXES = (".pdb", "/[content_types].xml")


def architectures_in(path: str) -> List[str]:
    """Known CPU architecture tokens appearing in a path's segments."""
    found = []
    for segment in path.replace("\\", "/").lower().split("/"):
        for token in segment.replace("-", ".").replace("_", ".").split("."):
            if token in Constants.KNOWN_ARCHITECTURES and token not in found:
                found.append(token)
    return found


def is_excluded_entry(entry_name: str, package_id: str,
                      primary_architecture: str = Constants.PRIMARY_ARCHITECTURE) -> bool:
    """True when an archive entry must not be extracted.

    Args:
        entry_name: Path inside the archive, either separator style.
        package_id: Owning package id; its own nuspec is skipped.
        primary_architecture: Runtime assets for other CPUs are skipped.
    """
    path = "/" + entry_name.replace("\\", "/").lstrip("/")
    lowered = path.lower()

    if "/runtimes/" in lowered:
        archs = architectures_in(lowered.split("/runtimes/", 1)[1])
        if archs and primary_architecture.lower() not in archs:
            return True

    nuspec_name = f"/{package_id.lower()}{Constants.NUSPEC_EXTENSION}"
    if lowered.endswith(nuspec_name) or lowered.endswith(nuspec_name + ".meta"):
        return True

    for folder in EXCLUDED_FOLDERS:
        if lowered.endswith(f"/{folder}") or f"/{folder}/" in lowered:
            return True

    return lowered.endswith(EXCLUDED_SUFFIXES)


def safe_destination(root: str, entry_name: str) -> str:
    """Absolute destination of ``entry_name`` under ``root``.

    Raises:
        PathTraversalAttempt: If the entry normalizes to a path outside root.
    """
    root = os.path.abspath(root)
    destination = os.path.normpath(os.path.join(root, entry_name.replace("\\", "/")))
    if destination != root and not destination.startswith(root + os.sep):
        raise PathTraversalAttempt(entry_name)
    return destination


def extract_package(archive_path: str, destination: str, package_id: str,
                    read_only: bool = False,
                    primary_architecture: str = Constants.PRIMARY_ARCHITECTURE) -> List[str]:
    """Extract ``archive_path`` into ``destination``.

    Returns:
        Paths of the files written.

    Raises:
        ArchiveCorruptError: If the archive is missing or unreadable.
    """
    if not os.path.isfile(archive_path):
        raise ArchiveCorruptError(f"File not found: {archive_path}")

    written: List[str] = []
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for info in archive.infolist():
                try:
                    target = safe_destination(destination, info.filename)
                except PathTraversalAttempt as exc:
                    logger.debug("Skipping entry: %s", exc)
                    continue
                if is_excluded_entry(info.filename, package_id, primary_architecture):
                    continue
                if info.is_dir():
                    os.makedirs(target, exist_ok=True)
                    continue
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with archive.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                if read_only:
                    make_read_only(target)
                written.append(target)
    except zipfile.BadZipFile as exc:
        raise ArchiveCorruptError(f"Cannot extract {archive_path}: {exc}") from exc
    return written
