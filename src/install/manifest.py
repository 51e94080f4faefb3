"""packages.config manifest: the declared dependencies of a project.

The file is rewritten after every mutation. Entries are sorted by id and
then version, both ordinally, and serialized with tab indentation and LF
line endings so that saving an unchanged manifest is byte-for-byte stable.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional
from xml.etree import ElementTree as ET

from common.errors import ConfigError
from common.fs_utils import clear_read_only
from versioning.compare import compare_identifiers
from versioning.models import PackageIdentifier

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'


class PackagesConfig:
    """In-memory manifest bound to a file path."""

    def __init__(self, path: str, packages: Optional[List[PackageIdentifier]] = None) -> None:
        self.path = path
        self.packages: List[PackageIdentifier] = list(packages or [])

    def find(self, package_id: str) -> Optional[PackageIdentifier]:
        """Entry for ``package_id`` (case-insensitive) or None."""
        wanted = package_id.lower()
        return next((p for p in self.packages if p.id.lower() == wanted), None)

    def add(self, package: PackageIdentifier) -> None:
        """Add or replace an entry; one version per id.

        A strictly newer version replaces the existing entry, an older one is
        ignored with a warning and an equal one changes nothing.
        """
        entry = PackageIdentifier(package.id, package.version, package.manual)
        existing = self.find(package.id)
        if existing is None:
            self.packages.append(entry)
            return
        comparison = compare_identifiers(
            PackageIdentifier(existing.id.lower(), existing.version),
            PackageIdentifier(entry.id.lower(), entry.version),
        )
        if comparison < 0:
            logger.warning(
                "%s %s is already listed in the packages.config file. Updating to %s",
                existing.id, existing.version, entry.version,
            )
            self.packages.remove(existing)
            self.packages.append(entry)
        elif comparison > 0:
            logger.warning(
                "Trying to add %s %s to the packages.config file. %s is already listed, so using that.",
                entry.id, entry.version, existing.version,
            )

    def remove(self, package: PackageIdentifier) -> None:
        """Drop the entry with the same id, whatever its version."""
        existing = self.find(package.id)
        if existing is not None:
            self.packages.remove(existing)

    def set_manual(self, package_id: str, manual: bool = True) -> None:
        """Flag an existing entry as manually installed."""
        existing = self.find(package_id)
        if existing is not None:
            existing.manual = manual

    def sorted_packages(self) -> List[PackageIdentifier]:
        return sorted(self.packages, key=lambda p: (p.id, p.version))

    def to_xml(self) -> str:
        """Serialize deterministically."""
        root = ET.Element("packages")
        for package in self.sorted_packages():
            elem = ET.SubElement(root, "package")
            elem.set("id", package.id)
            elem.set("version", package.version)
            if package.manual:
                elem.set("manual", "true")
        ET.indent(root, space="\t")
        return XML_DECLARATION + "\n" + ET.tostring(root, encoding="unicode") + "\n"

    def save(self, path: Optional[str] = None) -> None:
        """Write the manifest, clearing a read-only flag on the target first."""
        target = path or self.path
        self.packages = self.sorted_packages()
        directory = os.path.dirname(target)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if os.path.exists(target):
            clear_read_only(target)
        with open(target, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(self.to_xml())

    @classmethod
    def load(cls, path: str) -> "PackagesConfig":
        """Read ``path``; a missing file is created empty.

        Raises:
            ConfigError: If the file is not a valid manifest.
        """
        if not os.path.exists(path):
            logger.info("No packages.config file found. Creating default at %s", path)
            config = cls(path)
            config.save()
            return config

        try:
            tree = ET.parse(path)
        except ET.ParseError as exc:
            raise ConfigError(f"Invalid packages.config {path}: {exc}") from exc

        config = cls(path)
        for elem in tree.getroot():
            package_id = elem.get("id")
            version = elem.get("version")
            if not package_id or not version:
                logger.warning("Ignoring packages.config entry without id/version in %s", path)
                continue
            manual = elem.get("manual") is not None and elem.get("manual", "").lower() != "false"
            config.packages.append(PackageIdentifier(package_id, version, manual))
        return config
