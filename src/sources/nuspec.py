"""Archive metadata descriptor (.nuspec) parsing.

Namespaces differ between nuspec schema revisions, so every namespace is
stripped before lookups.
"""

from __future__ import annotations

import logging
import os
import zipfile
from typing import List, Optional
from xml.etree import ElementTree as ET

from common.errors import ArchiveCorruptError
from constants import Constants
from sources.models import FrameworkGroup, Package, merge_groups
from versioning.models import PackageIdentifier

logger = logging.getLogger(__name__)

ENVIRONMENT_DEPENDENCY = "NETStandard.Library"
ANY_VERSION = "0.0"


def normalize_target_framework(target_framework: str) -> str:
    """Convert a nuspec targetFramework attribute to a short folder-style TFM.

    ".NETFramework4.5" becomes "net45" and ".NETStandard2.0" becomes
    "netstandard2.0".
    """
    converted = target_framework.lower().replace(".netstandard", "netstandard").replace("native0.0", "native")
    if converted.startswith(".netframework"):
        converted = converted.replace(".netframework", "net").replace(".", "")
    return converted


def _strip_namespaces(root: ET.Element) -> None:
    for elem in root.iter():
        if isinstance(elem.tag, str) and "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]


def _text(metadata: ET.Element, name: str) -> str:
    elem = metadata.find(name)
    if elem is None or elem.text is None:
        return ""
    return elem.text.strip()


def _dependency(elem: ET.Element) -> PackageIdentifier:
    return PackageIdentifier(elem.get("id", ""), elem.get("version") or ANY_VERSION)


def _parse_dependencies(metadata: ET.Element) -> List[FrameworkGroup]:
    dependencies = metadata.find("dependencies")
    if dependencies is None:
        return []

    groups: List[FrameworkGroup] = []
    for group_elem in dependencies.findall("group"):
        group = FrameworkGroup(normalize_target_framework(group_elem.get("targetFramework", "")))
        for dep_elem in group_elem.findall("dependency"):
            dependency = _dependency(dep_elem)
            if dependency.id == ENVIRONMENT_DEPENDENCY:
                continue
            group.dependencies.append(dependency)
        groups.append(group)

    if not groups:
        flat = [_dependency(dep_elem) for dep_elem in dependencies.findall("dependency")]
        groups.append(FrameworkGroup("", flat))

    return merge_groups(groups)


def parse_nuspec(xml_text) -> Package:
    """Parse nuspec XML into a Package.

    Args:
        xml_text: XML as str or bytes.

    Returns:
        Package with metadata and dependency groups.

    Raises:
        ArchiveCorruptError: If the XML is malformed or has no metadata.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise ArchiveCorruptError(f"Malformed nuspec: {exc}") from exc
    _strip_namespaces(root)

    metadata = root.find("metadata")
    if metadata is None:
        raise ArchiveCorruptError("Nuspec has no metadata element")

    package = Package(
        id=_text(metadata, "id"),
        version=_text(metadata, "version"),
        title=_text(metadata, "title"),
        description=_text(metadata, "description"),
        summary=_text(metadata, "summary"),
        release_notes=_text(metadata, "releaseNotes"),
        authors=_text(metadata, "authors"),
        owners=_text(metadata, "owners"),
        copyright=_text(metadata, "copyright"),
        tags=_text(metadata, "tags"),
        license_url=_text(metadata, "licenseUrl"),
        project_url=_text(metadata, "projectUrl"),
        icon_url=_text(metadata, "iconUrl"),
        dependencies=_parse_dependencies(metadata),
    )
    repository = metadata.find("repository")
    if repository is not None:
        package.repository_type = repository.get("type", "")
        package.repository_url = repository.get("url", "")
        package.repository_branch = repository.get("branch", "")
        package.repository_commit = repository.get("commit", "")
    if not package.title:
        package.title = package.id
    return package


def read_nuspec_from_archive(archive_path: str) -> bytes:
    """Return the raw bytes of the first .nuspec entry in a package archive.

    Raises:
        ArchiveCorruptError: If the archive is unreadable or lacks a nuspec.
    """
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for name in archive.namelist():
                if name.lower().endswith(Constants.NUSPEC_EXTENSION) and "/" not in name.strip("/"):
                    return archive.read(name)
    except (zipfile.BadZipFile, OSError) as exc:
        raise ArchiveCorruptError(f"Cannot read archive {archive_path}: {exc}") from exc
    raise ArchiveCorruptError(f"No nuspec found in {archive_path}")


def package_from_archive(archive_path: str) -> Package:
    """Load a Package from a .nupkg file; its download URL is the file path."""
    package = parse_nuspec(read_nuspec_from_archive(archive_path))
    package.download_url = archive_path
    return package


def package_from_nuspec_file(nuspec_path: str) -> Optional[Package]:
    """Load a Package from a standalone .nuspec file, or None when unreadable."""
    try:
        with open(nuspec_path, "rb") as fh:
            return parse_nuspec(fh.read())
    except (OSError, ArchiveCorruptError) as exc:
        logger.warning("Unable to read %s: %s", os.path.basename(nuspec_path), exc)
        return None
