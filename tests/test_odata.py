"""Tests for the V2 OData feed client."""

from unittest.mock import MagicMock

import pytest

from common.errors import NetworkError
from sources.odata import ODataFeed, parse_dependency_string, parse_feed
from versioning.models import PackageIdentifier

BASE = "https://feed.example/api/v2/"


def entry(package_id, version, dependencies="", src=None):
    src = src or f"{BASE}package/{package_id}/{version}"
    return f"""
  <entry>
    <title type="text">{package_id}</title>
    <content type="application/zip" src="{src}" />
    <m:properties>
      <d:Id>{package_id}</d:Id>
      <d:Version>{version}</d:Version>
      <d:Description>About {package_id}</d:Description>
      <d:DownloadCount m:type="Edm.Int32">42</d:DownloadCount>
      <d:Dependencies>{dependencies}</d:Dependencies>
    </m:properties>
  </entry>"""


def feed(*entries, next_url=None):
    link = f'<link rel="next" href="{next_url}" />' if next_url else ""
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<feed xmlns="http://www.w3.org/2005/Atom" '
        'xmlns:d="http://schemas.microsoft.com/ado/2007/08/dataservices" '
        'xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata">'
        + "".join(entries) + link + "</feed>"
    )


class TestParseDependencyString:
    """Test the flattened V2 dependency property."""

    def test_groups_by_framework(self):
        """Test id:range:tfm items are grouped per TFM."""
        groups = parse_dependency_string("A:[1.0,2.0):net45|B::net45|C:1.0:.NETStandard2.0")
        result = {g.target_framework: [(d.id, d.version) for d in g.dependencies] for g in groups}
        assert result == {"net45": [("A", "[1.0,2.0)"), ("B", "0.0")], "netstandard2.0": [("C", "1.0")]}

    def test_empty_items_skipped(self):
        """Test items without an id are ignored."""
        groups = parse_dependency_string("::net40")
        assert groups == []


class TestParseFeed:
    """Test Atom page parsing."""

    def test_entries_and_next_link(self):
        """Test packages and the next page link are extracted."""
        packages, next_url = parse_feed(feed(entry("Foo", "1.0.0", "Bar:1.0:"), next_url=f"{BASE}next"))
        assert next_url == f"{BASE}next"
        assert packages[0].id == "Foo"
        assert packages[0].download_count == 42
        assert packages[0].download_url.endswith("/Foo/1.0.0")
        assert packages[0].dependencies[0].dependencies[0].id == "Bar"

    def test_copyright_and_tags(self):
        """Test the Copyright and Tags properties are mapped."""
        xml = feed(entry("Foo", "1.0.0").replace(
            "<d:Dependencies>",
            "<d:Copyright>(c) Acme</d:Copyright><d:Tags> json tools </d:Tags><d:Dependencies>",
        ))
        package = parse_feed(xml)[0][0]
        assert package.copyright == "(c) Acme"
        assert package.tags == " json tools "

    def test_single_entry_document(self):
        """Test a bare entry root is accepted."""
        xml = (
            '<entry xmlns="http://www.w3.org/2005/Atom" '
            'xmlns:d="http://schemas.microsoft.com/ado/2007/08/dataservices" '
            'xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata">'
            '<title>Foo</title><m:properties><d:Version>2.0</d:Version></m:properties></entry>'
        )
        packages, next_url = parse_feed(xml)
        assert next_url is None
        assert (packages[0].id, packages[0].version) == ("Foo", "2.0")


class TestODataFeed:
    """Test query construction and paging."""

    def test_pages_followed(self):
        """Test every page is fetched until no next link remains."""
        http = MagicMock()
        http.get_text.side_effect = [
            feed(entry("Foo", "1.0.0"), next_url=f"{BASE}page2"),
            feed(entry("Foo", "2.0.0")),
        ]
        packages = ODataFeed(BASE, http).find_by_id("Foo")
        assert [p.version for p in packages] == ["1.0.0", "2.0.0"]
        assert http.get_text.call_args_list[1][0][0] == f"{BASE}page2"

    def test_parse_failure_retried_once(self):
        """Test a malformed page is fetched again."""
        http = MagicMock()
        http.get_text.side_effect = ["<feed", feed(entry("Foo", "1.0.0"))]
        assert len(ODataFeed(BASE, http).find_by_id("Foo")) == 1
        assert http.get_text.call_count == 2

    def test_parse_failure_exhausted(self):
        """Test repeated parse failures surface as NetworkError."""
        http = MagicMock()
        http.get_text.return_value = "<feed"
        with pytest.raises(NetworkError):
            ODataFeed(BASE, http).find_by_id("Foo")

    def test_find_exact_not_found(self):
        """Test a 404 on the exact lookup yields None."""
        http = MagicMock()
        http.get_text.side_effect = NetworkError("missing", status_code=404)
        assert ODataFeed(BASE, http).find_exact("Foo", "1.0") is None

    def test_find_exact_other_errors_propagate(self):
        """Test non-404 failures are raised."""
        http = MagicMock()
        http.get_text.side_effect = NetworkError("boom", status_code=500)
        with pytest.raises(NetworkError):
            ODataFeed(BASE, http).find_exact("Foo", "1.0")

    def test_urls(self):
        """Test query URL shapes."""
        odata = ODataFeed(BASE.rstrip("/"), MagicMock())
        assert odata.find_by_id_url("Foo") == f"{BASE}FindPackagesById()?id='Foo'"
        assert "$filter=Version eq '1.0'" in odata.find_by_id_url("Foo", "1.0")
        search = odata.search_url("json", include_prerelease=True, count=5, skip=10)
        assert "$filter=IsAbsoluteLatestVersion" in search
        assert "$skip=10&$top=5" in search
        assert "searchTerm='json'" in search
        updates = odata.get_updates_url(
            [PackageIdentifier("A", "1.0"), PackageIdentifier("B", "2.0")], False, True
        )
        assert "packageIds='A|B'" in updates
        assert "versions='1.0|2.0'" in updates
        assert "includeAllVersions=true" in updates
