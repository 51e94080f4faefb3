"""Package installation engine.

Resolves a requested identifier against the installed index, the archive
cache and the enabled sources (in that order), installs its dependencies
first, records it in the manifest, then extracts and cleans the archive.

Each package moves through ``InstallState`` values during ``install``:
NOT_INSTALLED, RESOLVING_DEPENDENCIES, DOWNLOADING, EXTRACTING, CLEANING,
then INSTALLED, or FAILED from any of them. Failures are reported as
``InstallResult`` values rather than raised so batch restores continue.

Dependency resolution is greedy and local to each edge: every declared
dependency range is resolved on its own, with no global unification pass.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from constants import Constants
from common.errors import InstallError, NugetError, PackageNotFoundError
from common.fs_utils import delete_directory, delete_file
from common.logging_utils import extra_context, is_debug_enabled, Timer
from install.cache import PackageCache
from install.cleaner import ContentCleaner
from install.extract import extract_package
from install.frameworks import FrameworkSelector
from install.imported import ImportedLibraryIndex
from install.manifest import PackagesConfig
from install.scanner import DirectoryPackageScanner, InstalledPackageScanner
from sources.base import PackageSource, sort_updates
from sources.models import Package
from versioning.compare import anchor_version, compare_versions, in_range
from versioning.models import PackageIdentifier

logger = logging.getLogger(__name__)


class InstallState(Enum):
    """Lifecycle of a single package install."""
    NOT_INSTALLED = "not_installed"
    RESOLVING_DEPENDENCIES = "resolving_dependencies"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    CLEANING = "cleaning"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass
class InstallResult:
    """Outcome of one install request."""
    identifier: PackageIdentifier
    state: InstallState
    package: Optional[Package] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is InstallState.INSTALLED


@dataclass
class RestoreReport:
    """Aggregate outcome of a restore."""
    results: List[InstallResult] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def failed(self) -> List[InstallResult]:
        return [r for r in self.results if not r.ok]

    @property
    def success(self) -> bool:
        return not self.failed and not self.errors


class InstallEngine:
    """Owns the installed-package index of one install directory.

    Not thread-safe: exactly one engine may operate on a repository path at
    a time.

    Args:
        manifest: Declared dependencies; saved after every mutation.
        sources: Package sources in priority order.
        cache: Archive cache.
        cleaner: Post-extraction cleaner.
        selector: TFM priorities for dependency group selection.
        repository_path: Directory holding ``{Id}.{Version}`` folders.
        scanner: Rebuilds the installed index from disk.
        imported: Libraries the host engine already provides.
        install_from_cache: Resolve and install from cached archives.
        read_only_package_files: Mark extracted files read-only.
        verbose: Log resolution details at INFO instead of DEBUG.
    """

    def __init__(self, manifest: PackagesConfig, sources: List[PackageSource], cache: PackageCache,
                 cleaner: ContentCleaner, selector: FrameworkSelector, repository_path: str,
                 scanner: Optional[InstalledPackageScanner] = None,
                 imported: Optional[ImportedLibraryIndex] = None,
                 install_from_cache: bool = True, read_only_package_files: bool = False,
                 primary_architecture: str = Constants.PRIMARY_ARCHITECTURE,
                 verbose: bool = False) -> None:
        self.manifest = manifest
        self.sources = list(sources)
        self.cache = cache
        self.cleaner = cleaner
        self.selector = selector
        self.repository_path = repository_path
        self.scanner = scanner or DirectoryPackageScanner()
        self.imported = imported or ImportedLibraryIndex()
        self.install_from_cache = install_from_cache
        self.read_only_package_files = read_only_package_files
        self.primary_architecture = primary_architecture
        self.verbose = verbose
        self.installed: Dict[str, Package] = {}
        self.states: Dict[str, InstallState] = {}
        self._in_progress: Set[str] = set()

    def _log(self, message: str, *args) -> None:
        logger.log(logging.INFO if self.verbose else logging.DEBUG, message, *args)

    def _set_state(self, package: PackageIdentifier, state: InstallState) -> None:
        self.states[str(package)] = state
        if is_debug_enabled(logger):
            logger.debug(
                "Install state",
                extra=extra_context(
                    event="install_state",
                    component="engine",
                    action=state.value,
                    package_id=package.id,
                    version=package.version,
                ),
            )

    def state_of(self, package: PackageIdentifier) -> InstallState:
        """Last known install state of an exact identifier."""
        return self.states.get(str(package), InstallState.NOT_INSTALLED)

    def install_directory(self, package: PackageIdentifier) -> str:
        return os.path.join(self.repository_path, f"{package.id}.{package.version}")

    def enabled_sources(self) -> List[PackageSource]:
        return [s for s in self.sources if s.enabled]

    def dependency_group(self, package: Package):
        """Dependency group of ``package`` for the consumer's frameworks."""
        return self.selector.best_dependency_group(package.dependencies)

    # Lookup

    def is_installed(self, identifier: PackageIdentifier) -> bool:
        """True when the engine provides the id, or an installed version matches.

        A bare version must match exactly; a range must contain the installed
        version.
        """
        if self.imported.contains(identifier.id):
            return True
        installed = self.installed.get(identifier.key)
        if installed is None:
            return False
        if identifier.has_version_range:
            return identifier.in_range(installed.version)
        return compare_versions(installed.version, identifier.version) == 0

    def get_installed_package(self, identifier: PackageIdentifier) -> Optional[Package]:
        """Installed package usable for ``identifier``, if any.

        An in-range installed version is not used when the manifest pins an
        older version than the one installed.
        """
        installed = self.installed.get(identifier.key)
        if installed is None:
            return None
        if installed.version == identifier.version:
            self._log("Found exact package already installed: %s %s", installed.id, installed.version)
            return installed
        if not identifier.in_range(installed.version):
            self._log("Requested %s %s. %s is already installed, but it is out of range.",
                      identifier.id, identifier.version, installed.version)
            return None
        pinned = self.manifest.find(identifier.id)
        if pinned is not None and compare_versions(anchor_version(pinned.version), installed.version) < 0:
            self._log("Requested %s %s. %s is already installed, but config demands lower version.",
                      identifier.id, identifier.version, installed.version)
            return None
        self._log("Requested %s %s, but %s is already installed, so using that.",
                  identifier.id, identifier.version, installed.version)
        return installed

    def get_cached_package(self, identifier: PackageIdentifier) -> Optional[Package]:
        if not self.install_from_cache:
            return None
        return self.cache.get_cached_package(identifier)

    def get_online_package(self, identifier: PackageIdentifier) -> Optional[Package]:
        """First in-range package over the enabled sources.

        When no source has one, the best out-of-range candidate is returned:
        the first found, replaced only by a strictly greater one.
        """
        best: Optional[Package] = None
        for source in self.enabled_sources():
            found = source.get_specific_package(identifier)
            if found is None:
                continue
            if identifier.in_range(found.version):
                self._log("%s %s was found in %s", found.id, found.version, source.name)
                return found
            self._log("%s %s was found in %s, but wanted %s", found.id, found.version, source.name, identifier.version)
            if best is None or compare_versions(found.version, best.version) > 0:
                best = found
        if best is not None:
            self._log("%s %s not found, using %s", identifier.id, identifier.version, best.version)
        return best

    def get_specific_package(self, identifier: PackageIdentifier) -> Optional[Package]:
        """Resolve ``identifier`` via installed index, cache, then sources.

        A bare version not available exactly falls back to the lowest
        available version above it, since a bare version is a floor.
        """
        package = (
            self.get_installed_package(identifier)
            or self.get_cached_package(identifier)
            or self.get_online_package(identifier)
        )
        if package is None and not identifier.has_version_range:
            floor = PackageIdentifier(identifier.id, f"[{identifier.version},)")
            package = self.get_online_package(floor)
        return package

    # Install

    def install_identifier(self, identifier: PackageIdentifier, manual: bool = False) -> InstallResult:
        """Resolve ``identifier`` and install it.

        Args:
            identifier: Id plus version or range.
            manual: Mark as user-requested.
        """
        if self.imported.contains(identifier.id):
            self._log("Package %s is already imported in engine, skipping install.", identifier)
            return InstallResult(identifier, InstallState.INSTALLED)

        try:
            package = self.get_specific_package(identifier)
        except (NugetError, OSError) as exc:
            logger.error("Unable to resolve %s %s: %s", identifier.id, identifier.version, exc)
            return InstallResult(identifier, InstallState.FAILED, error=str(exc))

        if package is None:
            error = PackageNotFoundError(identifier.id, identifier.version)
            logger.error("%s", error)
            return InstallResult(identifier, InstallState.FAILED, error=str(error))

        return self.install(package, manual=manual or identifier.manual)

    def install(self, package: Package, manual: bool = False) -> InstallResult:
        """Install a resolved package and, first, its dependencies.

        ``manual`` (or ``package.manual``) is recorded in the manifest, also
        when the package is already installed as a dependency.
        """
        manual = manual or package.manual
        if self.imported.contains(package.id):
            self._log("Package %s is already imported in engine, skipping install.", package)
            return InstallResult(package.identifier(), InstallState.INSTALLED, package)

        installed = self.installed.get(package.key)
        if installed is not None:
            return self._reconcile_installed(installed, package, manual)

        if package.key in self._in_progress:
            self._log("%s is already being installed, skipping cyclic dependency.", package)
            return InstallResult(package.identifier(), InstallState.INSTALLED, package)

        return self._install_new(package, manual)

    def _reconcile_installed(self, installed: Package, package: Package, manual: bool) -> InstallResult:
        comparison = compare_versions(installed.version, package.version)
        if comparison < 0:
            self._log("%s %s is installed, but need %s or greater. Updating to %s",
                      installed.id, installed.version, package.version, package.version)
            return self.update(installed, package, manual=manual)
        if comparison > 0:
            pinned = self.manifest.find(package.id)
            if pinned is not None and compare_versions(anchor_version(pinned.version), installed.version) < 0:
                self._log("%s %s is installed but config needs %s so downgrading.",
                          installed.id, installed.version, package.version)
                return self.update(installed, package, manual=manual)
            self._log("%s %s is installed. %s or greater is needed, so using installed version.",
                      installed.id, installed.version, package.version)
        else:
            self._log("Already installed: %s %s", package.id, package.version)

        if manual and not installed.manual:
            installed.manual = True
            self.manifest.set_manual(installed.id)
            self.manifest.save()
        return InstallResult(installed.identifier(), InstallState.INSTALLED, installed)

    def _install_new(self, package: Package, manual: bool) -> InstallResult:
        identifier = package.identifier()
        install_dir = self.install_directory(package)
        state = InstallState.RESOLVING_DEPENDENCIES
        self._in_progress.add(package.key)
        self._log("Installing: %s %s", package.id, package.version)
        try:
            with Timer() as t:
                self._set_state(package, state)
                group = self.dependency_group(package)
                self._log("Installing dependencies for TargetFramework: %s", group.target_framework)
                for dependency in group.dependencies:
                    self._log("Installing Dependency: %s %s", dependency.id, dependency.version)
                    result = self.install_identifier(PackageIdentifier(dependency.id, dependency.version))
                    if not result.ok:
                        raise InstallError(f"Failed to install dependency: {dependency.id} {dependency.version}.")

                self.manifest.add(identifier)
                if manual:
                    package.manual = True
                    self.manifest.set_manual(package.id)
                self.manifest.save()

                state = InstallState.DOWNLOADING
                self._set_state(package, state)
                archive = self.cache.fetch(package, use_cached=self.install_from_cache)

                state = InstallState.EXTRACTING
                self._set_state(package, state)
                delete_directory(install_dir)
                extract_package(archive, install_dir, package.id, self.read_only_package_files,
                                self.primary_architecture)
                shutil.copyfile(archive, os.path.join(install_dir, f"{package.id}.{package.version}{Constants.ARCHIVE_EXTENSION}"))

                state = InstallState.CLEANING
                self._set_state(package, state)
                self.cleaner.clean(package, install_dir)

            self.installed[package.key] = package
            self._set_state(package, InstallState.INSTALLED)
            logger.info("Installed %s %s", package.id, package.version)
            if is_debug_enabled(logger):
                logger.debug(
                    "Install complete",
                    extra=extra_context(
                        event="install",
                        component="engine",
                        action="install",
                        outcome="success",
                        duration_ms=t.duration_ms(),
                        package_id=package.id,
                        version=package.version,
                    ),
                )
            return InstallResult(identifier, InstallState.INSTALLED, package)
        except (NugetError, OSError) as exc:
            logger.error(
                "Unable to install package %s %s during %s: %s",
                package.id, package.version, state.value, exc,
                extra=extra_context(event="install", component="engine", action=state.value,
                                    outcome="failure", package_id=package.id, version=package.version),
            )
            if state in (InstallState.EXTRACTING, InstallState.CLEANING):
                self._discard_partial(install_dir)
            self._set_state(package, InstallState.FAILED)
            return InstallResult(identifier, InstallState.FAILED, package, str(exc))
        finally:
            self._in_progress.discard(package.key)

    @staticmethod
    def _discard_partial(install_dir: str) -> None:
        try:
            delete_directory(install_dir)
        except OSError as exc:
            logger.warning("Could not remove partial install %s: %s", install_dir, exc)

    # Update / uninstall

    def update(self, current: PackageIdentifier, new_version: Package, manual: bool = False) -> InstallResult:
        """Replace ``current`` with ``new_version``.

        The new version is manual when requested or when ``current`` was.
        """
        self._log("Updating %s %s to %s", current.id, current.version, new_version.version)
        self.uninstall(current, delete_dependencies=False)
        return self.install(new_version, manual=manual or new_version.manual or current.manual)

    def update_all(self, updates: Iterable[Package], installed: Iterable[PackageIdentifier]) -> List[InstallResult]:
        """Apply the first (newest) update listed for each installed id."""
        installed = list(installed)
        results: List[InstallResult] = []
        seen: Set[str] = set()
        for update in updates:
            if update.key in seen:
                continue
            seen.add(update.key)
            current = next((p for p in installed if p.key == update.key), None)
            if current is None:
                logger.error("Trying to update %s to %s, but no version is installed!", update.id, update.version)
                continue
            results.append(self.update(current, update))
        return results

    def uninstall(self, identifier: PackageIdentifier, delete_dependencies: bool = False) -> None:
        """Remove a package from manifest, disk and index.

        With ``delete_dependencies`` each dependency is removed too, unless it
        was installed manually, is not in the manifest, or another installed
        package still depends on it.
        """
        installed = self.installed.get(identifier.key)
        package: PackageIdentifier = installed if installed is not None else identifier
        self._log("Uninstalling: %s %s", package.id, package.version)

        self.manifest.remove(package)
        self.manifest.save()

        install_dir = self.install_directory(package)
        delete_directory(install_dir)
        delete_file(install_dir + ".meta")
        delete_directory(os.path.dirname(self.cleaner.tools_directory(package)))

        self.installed.pop(package.key, None)
        self.states[str(package)] = InstallState.NOT_INSTALLED

        if not delete_dependencies or installed is None:
            return

        for dependency in self.dependency_group(installed).dependencies:
            entry = self.manifest.find(dependency.id)
            if entry is None or entry.manual:
                continue
            if self._has_other_dependents(dependency.id):
                continue
            target = self.installed.get(dependency.key) or entry
            self.uninstall(target, delete_dependencies=True)

    def _has_other_dependents(self, package_id: str) -> bool:
        wanted = package_id.lower()
        for other in self.installed.values():
            for dep in self.dependency_group(other).dependencies:
                if dep.id.lower() == wanted:
                    return True
        return False

    def uninstall_all(self) -> None:
        """Uninstall every installed package."""
        for package in list(self.installed.values()):
            self.uninstall(package, delete_dependencies=False)

    # Restore

    def update_installed_packages(self) -> None:
        """Rebuild the installed index from what is on disk."""
        with Timer() as t:
            self.installed.clear()
            for package in self.scanner.scan(self.repository_path):
                if package.key in self.installed:
                    logger.warning("Package is already in installed list: %s", package.id)
                    continue
                entry = self.manifest.find(package.id)
                if entry is not None:
                    package.manual = entry.manual
                self.installed[package.key] = package
                self.states[str(package)] = InstallState.INSTALLED
        self._log("Getting installed packages took %s ms", t.duration_ms())

    def check_for_unnecessary_packages(self) -> List[str]:
        """Delete top-level install folders no manifest entry accounts for.

        A folder is kept when it is named ``{Id}.{Version}`` for a manifest
        entry, or holds an installed package satisfying an entry's range.
        Folders starting with "." are never touched.

        Returns:
            Names of the deleted folders.
        """
        if not os.path.isdir(self.repository_path):
            return []

        keep = {f"{p.id}.{p.version}".lower() for p in self.manifest.packages}
        for entry in self.manifest.packages:
            installed = self.installed.get(entry.key)
            if installed is not None and in_range(entry.version, installed.version):
                keep.add(f"{installed.id}.{installed.version}".lower())

        removed: List[str] = []
        for name in sorted(os.listdir(self.repository_path)):
            path = os.path.join(self.repository_path, name)
            if not os.path.isdir(path) or name.startswith(Constants.UNLINKED_PREFIX):
                continue
            if name.lower() in keep:
                continue
            self._log("---DELETE unnecessary package %s", name)
            delete_directory(path)
            delete_file(path + ".meta")
            removed.append(name)
            for key, package in list(self.installed.items()):
                if f"{package.id}.{package.version}".lower() == name.lower():
                    del self.installed[key]
        return removed

    def restore(self) -> RestoreReport:
        """Install every manifest entry not yet installed, then collect orphans.

        Never raises for a single package failure.
        """
        report = RestoreReport()
        with Timer() as t:
            self.update_installed_packages()
            pending = [
                PackageIdentifier(p.id, p.version, p.manual)
                for p in self.manifest.packages
                if not self.is_installed(p)
            ]
            if pending:
                self._log("Restoring %s packages.", len(pending))
            else:
                self._log("No packages need restoring")

            for identifier in pending:
                self._log("---Restoring %s %s", identifier.id, identifier.version)
                report.results.append(self.install_identifier(identifier))

            try:
                report.removed = self.check_for_unnecessary_packages()
            except OSError as exc:
                logger.error("Failed to remove unnecessary packages: %s", exc)
                report.errors.append(str(exc))

        for failure in report.failed:
            logger.error("Failed to restore %s %s: %s", failure.identifier.id, failure.identifier.version, failure.error)
        self._log("Restoring packages took %s ms", t.duration_ms())
        return report

    # Queries

    def search(self, term: str = "", include_all_versions: bool = False, include_prerelease: bool = False,
               count: int = 15, skip: int = 0) -> List[Package]:
        """Search every enabled source, concatenating results in source order."""
        results: List[Package] = []
        for source in self.enabled_sources():
            results.extend(source.search(term, include_all_versions, include_prerelease, count, skip))
        return results

    def get_updates(self, include_prerelease: bool = False, include_all_versions: bool = False) -> List[Package]:
        """Available updates of installed packages over every enabled source."""
        installed = list(self.installed.values())
        if not installed:
            return []
        updates: List[Package] = []
        for source in self.enabled_sources():
            updates.extend(source.get_updates(installed, include_prerelease, include_all_versions))
        return sort_updates(updates)

