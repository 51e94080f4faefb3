"""Tests for nuspec parsing."""

import zipfile

import pytest

from common.errors import ArchiveCorruptError
from sources.nuspec import (
    normalize_target_framework,
    package_from_archive,
    package_from_nuspec_file,
    parse_nuspec,
    read_nuspec_from_archive,
)
from conftest import build_nuspec


class TestNormalizeTargetFramework:
    """Test targetFramework attribute normalization."""

    @pytest.mark.parametrize("raw,expected", [
        (".NETFramework4.5", "net45"),
        (".NETStandard2.0", "netstandard2.0"),
        ("net46", "net46"),
        ("", ""),
    ])
    def test_normalizes(self, raw, expected):
        """Test long names become folder-style monikers."""
        assert normalize_target_framework(raw) == expected


class TestParseNuspec:
    """Test metadata and dependency parsing."""

    def test_metadata(self):
        """Test basic fields and title fallback."""
        package = parse_nuspec(build_nuspec("Foo", "1.2.3"))
        assert package.id == "Foo"
        assert package.version == "1.2.3"
        assert package.title == "Foo"
        assert package.authors == "tests"

    def test_ownership_and_tags(self):
        """Test owners, copyright and tags are read from metadata."""
        xml = (
            '<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd"><metadata>'
            "<id>Foo</id><version>1.0</version><authors>Jane</authors><owners>Acme</owners>"
            "<copyright>Copyright 2024 Acme</copyright><tags>json serializer</tags>"
            "</metadata></package>"
        )
        package = parse_nuspec(xml)
        assert package.owners == "Acme"
        assert package.copyright == "Copyright 2024 Acme"
        assert package.tags == "json serializer"

    def test_grouped_dependencies(self):
        """Test groups are normalized and NETStandard.Library is skipped."""
        xml = build_nuspec("Foo", "1.0", groups={
            ".NETFramework4.5": [("Bar", "[1.0,2.0)")],
            ".NETStandard2.0": [("NETStandard.Library", "2.0.0"), ("Baz", "1.0")],
        })
        package = parse_nuspec(xml)
        groups = {g.target_framework: [(d.id, d.version) for d in g.dependencies] for g in package.dependencies}
        assert groups == {"net45": [("Bar", "[1.0,2.0)")], "netstandard2.0": [("Baz", "1.0")]}

    def test_flat_dependencies_and_missing_version(self):
        """Test a flat list becomes the unscoped group; a missing version means any."""
        xml = build_nuspec("Foo", "1.0", dependencies=[("Bar", "")])
        package = parse_nuspec(xml)
        assert len(package.dependencies) == 1
        assert package.dependencies[0].target_framework == ""
        assert package.dependencies[0].dependencies[0].version == "0.0"

    def test_malformed(self):
        """Test bad XML raises ArchiveCorruptError."""
        with pytest.raises(ArchiveCorruptError):
            parse_nuspec("<package><metadata>")

    def test_missing_metadata(self):
        """Test a document without metadata raises."""
        with pytest.raises(ArchiveCorruptError):
            parse_nuspec("<package />")


class TestArchives:
    """Test reading descriptors from archives and files."""

    def test_package_from_archive(self, tmp_path, make_nupkg):
        """Test the download URL of an archive package is its path."""
        path = make_nupkg(tmp_path, "Foo", "2.0.0")
        package = package_from_archive(path)
        assert package.id == "Foo"
        assert package.download_url == path

    def test_nested_nuspec_ignored(self, tmp_path):
        """Test only a top-level nuspec counts."""
        path = tmp_path / "x.nupkg"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("content/Other.nuspec", build_nuspec("Other", "1.0"))
        with pytest.raises(ArchiveCorruptError):
            read_nuspec_from_archive(str(path))

    def test_unreadable_nuspec_file(self, tmp_path):
        """Test a broken standalone nuspec yields None."""
        path = tmp_path / "Foo.nuspec"
        path.write_text("garbage")
        assert package_from_nuspec_file(str(path)) is None
