"""Shared fixtures: package archive builder and a wired install engine."""

import os
import zipfile

import pytest

from constants import CompatibilityLevel
from install.cache import PackageCache
from install.cleaner import ContentCleaner
from install.engine import InstallEngine
from install.frameworks import FrameworkSelector
from install.imported import ImportedLibraryIndex
from install.manifest import PackagesConfig
from sources.local import LocalPackageSource


def build_nuspec(package_id, version, dependencies=None, groups=None, title=None):
    """Render a minimal nuspec document.

    Args:
        dependencies: Flat list of (id, version) pairs.
        groups: Mapping of targetFramework -> list of (id, version) pairs.
    """
    lines = [
        '<?xml version="1.0" encoding="utf-8"?>',
        '<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">',
        "  <metadata>",
        f"    <id>{package_id}</id>",
        f"    <version>{version}</version>",
        "    <authors>tests</authors>",
        f"    <description>{package_id} test package</description>",
    ]
    if title:
        lines.append(f"    <title>{title}</title>")
    if dependencies or groups:
        lines.append("    <dependencies>")
        for dep_id, dep_version in dependencies or []:
            lines.append(f'      <dependency id="{dep_id}" version="{dep_version}" />')
        for tfm, deps in (groups or {}).items():
            lines.append(f'      <group targetFramework="{tfm}">')
            for dep_id, dep_version in deps:
                lines.append(f'        <dependency id="{dep_id}" version="{dep_version}" />')
            lines.append("      </group>")
        lines.append("    </dependencies>")
    lines.extend(["  </metadata>", "</package>"])
    return "\n".join(lines)


@pytest.fixture
def make_nupkg():
    """Write ``{Id}.{Version}.nupkg`` into a directory and return its path."""
    def _make(directory, package_id, version, dependencies=None, groups=None, files=None):
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(str(directory), f"{package_id}.{version}.nupkg")
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr(f"{package_id}.nuspec", build_nuspec(package_id, version, dependencies, groups))
            archive.writestr("[Content_Types].xml", "<Types />")
            archive.writestr("_rels/.rels", "<Relationships />")
            for name, content in (files or {"lib/net45/" + package_id + ".dll": "dll"}).items():
                archive.writestr(name, content)
        return path
    return _make


@pytest.fixture
def project(tmp_path):
    """Directory layout of a consumer project."""
    root = tmp_path / "project"
    paths = {
        "root": root,
        "feed": tmp_path / "feed",
        "cache": tmp_path / "cache",
        "repository": root / "Assets" / "Packages",
        "manifest": root / "Assets" / "packages.config",
        "tools": root / "Packages",
        "plugins": root / "Assets" / "Plugins",
        "streaming": root / "Assets" / "StreamingAssets",
    }
    os.makedirs(paths["feed"])
    os.makedirs(paths["repository"])
    return paths


@pytest.fixture
def make_engine(project):
    """Build an InstallEngine over a local feed directory."""
    def _make(compatibility=CompatibilityLevel.NET4X, imported_names=(), install_from_cache=True,
              sources=None):
        selector = FrameworkSelector(compatibility)
        imported = ImportedLibraryIndex(names=imported_names)
        cleaner = ContentCleaner(
            selector,
            project_root=str(project["root"]),
            tools_root=str(project["tools"]),
            plugins_dir=str(project["plugins"]),
            streaming_assets_dir=str(project["streaming"]),
            imported=imported,
        )
        return InstallEngine(
            manifest=PackagesConfig.load(str(project["manifest"])),
            sources=sources if sources is not None else [LocalPackageSource("local", str(project["feed"]))],
            cache=PackageCache(str(project["cache"])),
            cleaner=cleaner,
            selector=selector,
            repository_path=str(project["repository"]),
            imported=imported,
            install_from_cache=install_from_cache,
        )
    return _make
