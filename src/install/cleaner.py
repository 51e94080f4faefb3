"""Post-extraction cleanup of an installed package directory.

Keeps a single target-framework folder under ``lib/`` (or the fixed
umbrella set), strips content the consumer never loads, keeps only the
primary CPU architecture under ``runtimes/`` and relocates tooling and
platform asset folders to their fixed destinations.
"""

from __future__ import annotations

import logging
import os
import shutil
from typing import List, Optional

from constants import Constants
from common.fs_utils import copy_directory, delete_directory, delete_file, move_directory
from install.extract import architectures_in, is_excluded_entry
from install.frameworks import UMBRELLA_FRAMEWORKS, FrameworkSelector, framework_names_equal
from versioning.models import PackageIdentifier

logger = logging.getLogger(__name__)


class ContentCleaner:
    """Clean extracted packages for one project.

    Args:
        selector: TFM priorities of the consumer.
        project_root: Directory receiving ``output/`` files.
        tools_root: Directory receiving ``{Id}.{Version}/tools``.
        plugins_dir: Destination of ``unityplugin/`` content.
        streaming_assets_dir: Destination of ``StreamingAssets/`` content.
        primary_architecture: CPU architecture whose runtime assets are kept.
        imported: Optional ImportedLibraryIndex; packages it already provides
            keep no lib folder when a choice would be needed.
    """

    def __init__(self, selector: FrameworkSelector, project_root: str, tools_root: str,
                 plugins_dir: str, streaming_assets_dir: str,
                 primary_architecture: str = Constants.PRIMARY_ARCHITECTURE,
                 imported=None) -> None:
        self.selector = selector
        self.project_root = project_root
        self.tools_root = tools_root
        self.plugins_dir = plugins_dir
        self.streaming_assets_dir = streaming_assets_dir
        self.primary_architecture = primary_architecture.lower()
        self.imported = imported

    def tools_directory(self, package: PackageIdentifier) -> str:
        """Where a package's ``tools`` folder is relocated to."""
        return os.path.join(self.tools_root, f"{package.id}.{package.version}", "tools")

    def clean(self, package: PackageIdentifier, install_dir: str) -> List[str]:
        """Clean ``install_dir`` in place.

        Returns:
            Names of the lib folders that were kept.
        """
        logger.debug("Cleaning %s", install_dir)
        self.fix_spaces(install_dir)
        self.strip_excluded(package, install_dir)
        self.clean_runtimes(install_dir)
        kept = self.select_lib_folders(package, install_dir)
        self.relocate_tools(package, install_dir)
        self.relocate_output(install_dir)
        self.relocate_plugins(install_dir)
        self.relocate_streaming_assets(install_dir)
        return kept

    @staticmethod
    def fix_spaces(install_dir: str) -> None:
        """Decode ``%20`` left in file and folder names by archive tools."""
        for dirpath, dirnames, filenames in os.walk(install_dir, topdown=False):
            for name in dirnames + filenames:
                if "%20" in name:
                    fixed = os.path.join(dirpath, name.replace("%20", " "))
                    if not os.path.exists(fixed):
                        os.rename(os.path.join(dirpath, name), fixed)

    def strip_excluded(self, package: PackageIdentifier, install_dir: str) -> None:
        """Delete anything the extraction rules would not have written."""
        for dirpath, dirnames, filenames in os.walk(install_dir):
            relative_dir = os.path.relpath(dirpath, install_dir)
            for name in list(dirnames):
                relative = os.path.normpath(os.path.join(relative_dir, name))
                if is_excluded_entry(relative, package.id, self.primary_architecture):
                    delete_directory(os.path.join(dirpath, name))
                    dirnames.remove(name)
            for name in filenames:
                relative = os.path.normpath(os.path.join(relative_dir, name))
                if is_excluded_entry(relative, package.id, self.primary_architecture):
                    delete_file(os.path.join(dirpath, name))

    def clean_runtimes(self, install_dir: str) -> None:
        """Keep only primary-architecture runtime assets and drop its file suffix."""
        runtimes_dir = os.path.join(install_dir, "runtimes")
        if not os.path.isdir(runtimes_dir):
            return
        for name in os.listdir(runtimes_dir):
            archs = architectures_in(name)
            path = os.path.join(runtimes_dir, name)
            if archs and self.primary_architecture not in archs and os.path.isdir(path):
                logger.debug("Deleting runtime folder %s", path)
                delete_directory(path)

        marker = f".{self.primary_architecture}."
        for dirpath, _dirnames, filenames in os.walk(runtimes_dir):
            for name in filenames:
                if marker in name.lower():
                    index = name.lower().index(marker)
                    renamed = os.path.join(dirpath, name[:index] + "." + name[index + len(marker):])
                    if not os.path.exists(renamed):
                        os.rename(os.path.join(dirpath, name), renamed)

    def select_lib_folders(self, package: PackageIdentifier, install_dir: str) -> List[str]:
        """Delete every lib folder except the best one for the consumer."""
        lib_dir = os.path.join(install_dir, "lib")
        if not os.path.isdir(lib_dir):
            return []
        folders = sorted(n for n in os.listdir(lib_dir) if os.path.isdir(os.path.join(lib_dir, n)))

        selected: List[str] = []
        if len(folders) == 1:
            selected = list(folders)
        else:
            # The engine skips imported packages; this covers direct clean() callers.
            already_imported = self.imported is not None and self.imported.contains(package.id)
            best: Optional[str] = None if already_imported else self.selector.best(folders)
            if best is not None:
                if best.lower() in UMBRELLA_FRAMEWORKS:
                    selected = [f for f in folders if f.lower() in UMBRELLA_FRAMEWORKS]
                else:
                    selected = [f for f in folders if framework_names_equal(f, best)]

        for folder in folders:
            if folder not in selected:
                logger.debug("Deleting lib dir %s", folder)
                delete_directory(os.path.join(lib_dir, folder))
        if selected:
            logger.debug("Using lib dirs %s", ", ".join(selected))
        return selected

    def relocate_tools(self, package: PackageIdentifier, install_dir: str) -> None:
        tools = os.path.join(install_dir, "tools")
        if os.path.isdir(tools):
            destination = self.tools_directory(package)
            logger.debug("Moving %s to %s", tools, destination)
            move_directory(tools, destination)

    def relocate_output(self, install_dir: str) -> None:
        output = os.path.join(install_dir, "output")
        if not os.path.isdir(output):
            return
        os.makedirs(self.project_root, exist_ok=True)
        for name in os.listdir(output):
            source = os.path.join(output, name)
            if os.path.isfile(source):
                target = os.path.join(self.project_root, name)
                delete_file(target)
                shutil.move(source, target)
        delete_directory(output)

    def relocate_plugins(self, install_dir: str) -> None:
        plugins = os.path.join(install_dir, "unityplugin")
        if not os.path.isdir(plugins):
            return
        copy_directory(plugins, self.plugins_dir)
        delete_directory(plugins)

    def relocate_streaming_assets(self, install_dir: str) -> None:
        """Move StreamingAssets content, warning when a target is locked."""
        assets = os.path.join(install_dir, "StreamingAssets")
        if not os.path.isdir(assets):
            return
        os.makedirs(self.streaming_assets_dir, exist_ok=True)
        for name in os.listdir(assets):
            source = os.path.join(assets, name)
            target = os.path.join(self.streaming_assets_dir, name)
            try:
                if os.path.isdir(source):
                    move_directory(source, target)
                else:
                    delete_file(target)
                    shutil.move(source, target)
            except OSError as exc:
                logger.warning("%s couldn't be moved: %s", target, exc)
        delete_directory(assets)
