"""Tests for the package archive cache."""

import os
from unittest.mock import MagicMock

import pytest

from common.errors import ArchiveCorruptError, NugetError
from install.cache import PackageCache
from sources.local import LocalPackageSource
from sources.models import Package
from sources.remote import RemotePackageSource
from versioning.models import PackageIdentifier


class TestLookup:
    """Test cache hits and misses."""

    def test_hit_and_miss(self, tmp_path, make_nupkg):
        """Test cached archives are found by exact id and version."""
        make_nupkg(tmp_path / "cache", "Foo", "1.0.0")
        cache = PackageCache(str(tmp_path / "cache"))
        assert cache.get_cached_archive(PackageIdentifier("Foo", "1.0.0")).endswith("Foo.1.0.0.nupkg")
        assert cache.get_cached_archive(PackageIdentifier("Foo", "2.0.0")) is None

    def test_ranges_never_hit(self, tmp_path, make_nupkg):
        """Test ranged identifiers do not match cache entries."""
        make_nupkg(tmp_path / "cache", "Foo", "1.0.0")
        cache = PackageCache(str(tmp_path / "cache"))
        assert cache.get_cached_archive(PackageIdentifier("Foo", "[1.0.0]")) is None

    def test_cached_package_metadata(self, tmp_path, make_nupkg):
        """Test package metadata is read from the cached archive."""
        make_nupkg(tmp_path / "cache", "Foo", "1.0.0", dependencies=[("Bar", "1.0")])
        package = PackageCache(str(tmp_path / "cache")).get_cached_package(PackageIdentifier("Foo", "1.0.0"))
        assert package.dependencies[0].dependencies[0].id == "Bar"

    def test_corrupt_cached_archive_ignored(self, tmp_path):
        """Test an unreadable cached archive counts as a miss."""
        os.makedirs(tmp_path / "cache")
        (tmp_path / "cache" / "Foo.1.0.0.nupkg").write_bytes(b"junk")
        cache = PackageCache(str(tmp_path / "cache"))
        assert cache.get_cached_package(PackageIdentifier("Foo", "1.0.0")) is None


class TestFetch:
    """Test filling the cache."""

    def test_local_source_copied_unmodified(self, tmp_path, make_nupkg):
        """Test archives from local feeds are copied byte for byte."""
        original = make_nupkg(tmp_path / "feed", "Foo", "1.0.0")
        source = LocalPackageSource("local", str(tmp_path / "feed"))
        package = source.get_specific_package(PackageIdentifier("Foo", "1.0.0"))
        path = PackageCache(str(tmp_path / "cache")).fetch(package)
        with open(original, "rb") as a, open(path, "rb") as b:
            assert a.read() == b.read()

    def test_remote_source_downloads_with_credentials(self, tmp_path):
        """Test remote packages stream through the HTTP client."""
        http = MagicMock()
        source = RemotePackageSource("remote", "https://feed.example/api/v2/", "me", "pw", feed=MagicMock())
        package = Package(id="Foo", version="1.0.0", download_url="https://feed.example/package/Foo/1.0.0",
                          source=source)
        cache = PackageCache(str(tmp_path / "cache"), http=http)
        path = cache.fetch(package)
        http.download.assert_called_once_with(
            "https://feed.example/package/Foo/1.0.0", path, username="me", password="pw"
        )
        assert path == cache.archive_path(package)

    def test_cache_hit_skips_source(self, tmp_path, make_nupkg):
        """Test a cached archive is used without touching the source."""
        make_nupkg(tmp_path / "cache", "Foo", "1.0.0")
        http = MagicMock()
        source = RemotePackageSource("remote", "https://feed.example/api/v2/", feed=MagicMock())
        package = Package(id="Foo", version="1.0.0", source=source)
        PackageCache(str(tmp_path / "cache"), http=http).fetch(package)
        http.download.assert_not_called()

    def test_cache_bypassed_when_disabled(self, tmp_path, make_nupkg):
        """Test use_cached=False refetches from the source."""
        make_nupkg(tmp_path / "cache", "Foo", "1.0.0")
        http = MagicMock()
        source = RemotePackageSource("remote", "https://feed.example/api/v2/", feed=MagicMock())
        package = Package(id="Foo", version="1.0.0", download_url="https://feed.example/p", source=source)
        PackageCache(str(tmp_path / "cache"), http=http).fetch(package, use_cached=False)
        http.download.assert_called_once()

    def test_no_source(self, tmp_path):
        """Test a package with no way to obtain its archive fails."""
        with pytest.raises(ArchiveCorruptError):
            PackageCache(str(tmp_path / "cache")).fetch(Package(id="Ghost", version="1.0.0"))

    def test_download_needs_client(self, tmp_path):
        """Test remote fetches without an HTTP client fail clearly."""
        source = RemotePackageSource("remote", "https://feed.example/api/v2/", feed=MagicMock())
        package = Package(id="Foo", version="1.0.0", download_url="https://feed.example/p", source=source)
        with pytest.raises(NugetError):
            PackageCache(str(tmp_path / "cache")).fetch(package)
