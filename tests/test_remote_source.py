"""Tests for remote OData package sources."""

from unittest.mock import MagicMock

from common.errors import NetworkError
from sources.models import Package
from sources.remote import RemotePackageSource
from versioning.models import PackageIdentifier

URL = "https://feed.example/api/v2/"


def _pkg(package_id, version):
    return Package(id=package_id, version=version, download_url=f"{URL}package/{package_id}/{version}")


def _source(feed):
    feed.find_by_id_url.return_value = f"{URL}FindPackagesById()?id='Foo'"
    return RemotePackageSource("remote", URL, feed=feed)


class TestFindPackagesById:
    """Test paged id lookups."""

    def test_range_collects_all_pages_ascending(self):
        """Test in-range results across pages come back oldest first."""
        feed = MagicMock()
        feed.iter_pages.return_value = iter([
            [_pkg("Foo", "2.1.0"), _pkg("Foo", "0.9.0")],
            [_pkg("Foo", "1.5.0")],
        ])
        packages = _source(feed).find_packages_by_id(PackageIdentifier("Foo", "[1.0,)"))
        assert [p.version for p in packages] == ["1.5.0", "2.1.0"]
        assert all(p.source is not None for p in packages)

    def test_exact_short_circuits(self):
        """Test paging stops once the exact version is seen."""
        feed = MagicMock()
        consumed = []

        def _pages(url):
            for page in ([_pkg("Foo", "1.0.0")], [_pkg("Foo", "2.0.0")]):
                consumed.append(page)
                yield page

        feed.iter_pages.side_effect = _pages
        packages = _source(feed).find_packages_by_id(PackageIdentifier("Foo", "1.0.0"))
        assert [p.version for p in packages] == ["1.0.0"]
        assert len(consumed) == 1

    def test_network_error_yields_empty(self):
        """Test transport failures are logged and produce no results."""
        feed = MagicMock()
        feed.iter_pages.side_effect = NetworkError("down")
        assert _source(feed).find_packages_by_id(PackageIdentifier("Foo", "[1.0,)")) == []


class TestGetSpecificPackage:
    """Test single package resolution."""

    def test_exact_uses_find_exact(self):
        """Test a bare version queries the exact entry."""
        feed = MagicMock()
        feed.find_exact.return_value = _pkg("Foo", "1.0.0")
        source = _source(feed)
        package = source.get_specific_package(PackageIdentifier("Foo", "1.0.0"))
        feed.find_exact.assert_called_once_with("Foo", "1.0.0")
        assert package.source is source

    def test_exact_failure_is_none(self):
        """Test errors during the exact lookup yield None."""
        feed = MagicMock()
        feed.find_exact.side_effect = NetworkError("boom", status_code=500)
        assert _source(feed).get_specific_package(PackageIdentifier("Foo", "1.0.0")) is None

    def test_range_takes_lowest(self):
        """Test a range picks the lowest in-range version."""
        feed = MagicMock()
        feed.iter_pages.return_value = iter([[_pkg("Foo", "2.1.0"), _pkg("Foo", "1.5.0")]])
        package = _source(feed).get_specific_package(PackageIdentifier("Foo", "[1.0,)"))
        assert package.version == "1.5.0"


class TestGetUpdates:
    """Test update discovery."""

    def test_batches_of_ten(self):
        """Test installed packages are queried in batches."""
        feed = MagicMock()
        feed.get_updates.return_value = []
        installed = [PackageIdentifier(f"P{i:02d}", "1.0") for i in range(23)]
        _source(feed).get_updates(installed)
        sizes = [len(call[0][0]) for call in feed.get_updates.call_args_list]
        assert sizes == [10, 10, 3]

    def test_latest_per_id_unless_all_versions(self):
        """Test only the newest update per id is kept by default."""
        feed = MagicMock()
        feed.get_updates.return_value = [_pkg("Foo", "1.1"), _pkg("Foo", "1.2")]
        updates = _source(feed).get_updates([PackageIdentifier("Foo", "1.0")])
        assert [p.version for p in updates] == ["1.2"]

    def test_not_found_falls_back_to_find_by_id(self):
        """Test a 404 from GetUpdates() uses FindPackagesById() per package."""
        feed = MagicMock()
        feed.get_updates.side_effect = NetworkError("missing", status_code=404)
        feed.iter_pages.side_effect = lambda url: iter([[
            _pkg("Foo", "1.0.0"), _pkg("Foo", "1.1.0"), _pkg("Foo", "2.0.0-rc1"), _pkg("Foo", "1.2.0"),
        ]])
        source = _source(feed)
        latest = source.get_updates([PackageIdentifier("Foo", "1.0.0")])
        assert [p.version for p in latest] == ["1.2.0"]
        everything = source.get_updates([PackageIdentifier("Foo", "1.0.0")], include_prerelease=True,
                                        include_all_versions=True)
        assert [p.version for p in everything] == ["2.0.0-rc1", "1.2.0", "1.1.0"]

    def test_other_errors_skip_batch(self):
        """Test non-404 failures skip just that batch."""
        feed = MagicMock()
        feed.get_updates.side_effect = [NetworkError("boom", status_code=500), [_pkg("P10", "2.0")]]
        installed = [PackageIdentifier(f"P{i:02d}", "1.0") for i in range(11)]
        updates = _source(feed).get_updates(installed)
        assert [(p.id, p.version) for p in updates] == [("P10", "2.0")]


class TestSearch:
    """Test search delegation."""

    def test_search_passes_arguments(self):
        """Test search forwards paging arguments to the feed."""
        feed = MagicMock()
        feed.search.return_value = [_pkg("Foo", "1.0")]
        results = _source(feed).search("foo", False, True, 5, 10)
        feed.search.assert_called_once_with("foo", False, True, 5, 10)
        assert results[0].id == "Foo"

    def test_search_failure(self):
        """Test search errors produce no results."""
        feed = MagicMock()
        feed.search.side_effect = NetworkError("down")
        assert _source(feed).search("foo") == []
