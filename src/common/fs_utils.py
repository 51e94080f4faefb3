"""Filesystem helpers that tolerate read-only package files."""

from __future__ import annotations

import logging
import os
import shutil
import stat

logger = logging.getLogger(__name__)


def clear_read_only(path: str) -> None:
    """Make ``path`` writable by its owner."""
    mode = os.stat(path).st_mode
    if not mode & stat.S_IWUSR:
        os.chmod(path, mode | stat.S_IWUSR)


def make_read_only(path: str) -> None:
    """Remove every write bit from ``path``."""
    mode = os.stat(path).st_mode
    os.chmod(path, mode & ~(stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH))


def delete_directory(path: str) -> None:
    """Recursively delete ``path``, clearing read-only bits first; missing is fine."""
    if os.path.islink(path):
        os.remove(path)
        return
    if not os.path.isdir(path):
        return
    for dirpath, dirnames, filenames in os.walk(path):
        for name in dirnames + filenames:
            full = os.path.join(dirpath, name)
            if not os.path.islink(full):
                clear_read_only(full)
    clear_read_only(path)
    shutil.rmtree(path)


def delete_file(path: str) -> None:
    """Delete a file, clearing its read-only bit first; missing is fine."""
    if not os.path.lexists(path):
        return
    if not os.path.islink(path):
        clear_read_only(path)
    os.remove(path)


def copy_file_overwrite(source: str, destination: str) -> bool:
    """Copy ``source`` over ``destination``.

    Returns:
        False (after a warning) when the destination is locked and could not
        be replaced.
    """
    os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
    try:
        if os.path.exists(destination):
            clear_read_only(destination)
        shutil.copy2(source, destination)
    except PermissionError as exc:
        logger.warning("%s is locked and could not be overwritten: %s", destination, exc)
        return False
    return True


def copy_directory(source: str, destination: str) -> bool:
    """Copy a tree over ``destination`` file by file, overwriting prior copies.

    Returns:
        True when every file was copied.
    """
    ok = True
    for dirpath, _dirnames, filenames in os.walk(source):
        relative = os.path.relpath(dirpath, source)
        target_dir = os.path.normpath(os.path.join(destination, relative))
        os.makedirs(target_dir, exist_ok=True)
        for name in filenames:
            ok = copy_file_overwrite(os.path.join(dirpath, name), os.path.join(target_dir, name)) and ok
    return ok


def move_directory(source: str, destination: str) -> None:
    """Move ``source`` to ``destination``, replacing an existing destination."""
    if os.path.exists(destination):
        delete_directory(destination)
    os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
    shutil.move(source, destination)
