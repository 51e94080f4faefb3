"""NuGet V2 OData feed client.

Builds the V2 query URLs and parses Atom responses into ``Package``
records. Result sets may span several pages chained through
``<link rel="next">``.
"""
from __future__ import annotations

import logging
import urllib.parse
from typing import Iterable, Iterator, List, Optional, Tuple
from xml.etree import ElementTree as ET

from constants import Constants
from common.errors import NetworkError
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from sources.models import FrameworkGroup, Package, merge_groups
from sources.nuspec import normalize_target_framework
from versioning.models import PackageIdentifier

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"
DATA_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices"
META_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"


def _odata_literal(value: str) -> str:
    """Quote a value for use inside an OData string literal."""
    return urllib.parse.quote(value.replace("'", "''"), safe="|.-_+[](),")


def _bool(value: bool) -> str:
    return "true" if value else "false"


def parse_dependency_string(raw: str) -> List[FrameworkGroup]:
    """Parse the V2 ``Dependencies`` property: ``id:range:tfm|id:range:tfm``.

    Semi-empty items such as ``::net40`` are skipped.
    """
    groups: List[FrameworkGroup] = []
    if not raw:
        return groups
    for item in raw.split("|"):
        details = item.split(":")
        dep_id = details[0].strip()
        dep_version = details[1].strip() if len(details) > 1 else ""
        if not dep_id:
            continue
        framework = normalize_target_framework(details[2].strip()) if len(details) > 2 else ""
        groups.append(FrameworkGroup(framework, [PackageIdentifier(dep_id, dep_version or "0.0")]))
    return merge_groups(groups)


def _prop(props: Optional[ET.Element], name: str) -> str:
    if props is None:
        return ""
    elem = props.find(f"{{{DATA_NS}}}{name}")
    if elem is None or elem.text is None:
        return ""
    return elem.text


def parse_feed(xml_text) -> Tuple[List[Package], Optional[str]]:
    """Parse one Atom page.

    Args:
        xml_text: Feed or single-entry document.

    Returns:
        Tuple of (packages, next page URL or None).

    Raises:
        ET.ParseError: On malformed XML.
    """
    root = ET.fromstring(xml_text)
    if root.tag == f"{{{ATOM_NS}}}entry":
        entries = [root]
    else:
        entries = root.findall(f"{{{ATOM_NS}}}entry")

    packages: List[Package] = []
    for entry in entries:
        props = entry.find(f"{{{META_NS}}}properties")
        title_elem = entry.find(f"{{{ATOM_NS}}}title")
        content = entry.find(f"{{{ATOM_NS}}}content")
        package_id = _prop(props, "Id") or (title_elem.text if title_elem is not None and title_elem.text else "")
        count_text = _prop(props, "DownloadCount")
        package = Package(
            id=package_id,
            version=_prop(props, "Version"),
            title=_prop(props, "Title") or package_id,
            description=_prop(props, "Description"),
            summary=_prop(props, "Summary"),
            release_notes=_prop(props, "ReleaseNotes"),
            authors=_prop(props, "Authors"),
            copyright=_prop(props, "Copyright"),
            tags=_prop(props, "Tags"),
            license_url=_prop(props, "LicenseUrl"),
            project_url=_prop(props, "ProjectUrl"),
            icon_url=_prop(props, "IconUrl"),
            download_url=content.get("src", "") if content is not None else "",
            download_count=int(count_text) if count_text.isdigit() else 0,
            dependencies=parse_dependency_string(_prop(props, "Dependencies")),
        )
        packages.append(package)

    next_url = None
    for link in root.findall(f"{{{ATOM_NS}}}link"):
        if link.get("rel") == "next" and link.get("href"):
            next_url = link.get("href")
    return packages, next_url


class ODataFeed:
    """Query a V2 feed rooted at ``base_url`` (which ends with "/").

    Args:
        base_url: Feed root such as "https://www.nuget.org/api/v2/".
        http: HttpClient used for requests.
        username: Optional static user name.
        password: Optional static password.
    """

    def __init__(self, base_url: str, http, username: Optional[str] = None,
                 password: Optional[str] = None) -> None:
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.http = http
        self.username = username
        self.password = password

    def iter_pages(self, url: str) -> Iterator[List[Package]]:
        """Yield one list of packages per page until no next link remains.

        A response that fails to parse is fetched again; the parse error
        propagates once the attempts are used up.

        Raises:
            NetworkError: On transport failure, HTTP error status, or when
                parsing keeps failing.
        """
        next_url: Optional[str] = url
        attempts_left = Constants.FEED_PARSE_ATTEMPTS
        while next_url:
            if is_debug_enabled(logger):
                logger.debug(
                    "Fetching feed page",
                    extra=extra_context(event="feed_page", component="odata", action="GET", target=safe_url(next_url)),
                )
            body = self.http.get_text(next_url, username=self.username, password=self.password)
            try:
                packages, following = parse_feed(body)
            except ET.ParseError as exc:
                attempts_left -= 1
                if attempts_left <= 0:
                    raise NetworkError(f"Malformed feed response: {exc}", url=next_url) from exc
                logger.warning("Failed reading response from %s: %s", safe_url(next_url), exc)
                continue
            yield packages
            next_url = following

    def fetch_all(self, url: str) -> List[Package]:
        """Collect every page of ``url``."""
        packages: List[Package] = []
        for page in self.iter_pages(url):
            packages.extend(page)
        return packages

    def find_by_id_url(self, package_id: str, version: Optional[str] = None) -> str:
        url = f"{self.base_url}FindPackagesById()?id='{_odata_literal(package_id)}'"
        if version:
            url += f"&$filter=Version eq '{_odata_literal(version)}'"
        return url

    def find_by_id(self, package_id: str, version: Optional[str] = None) -> List[Package]:
        """Every version of ``package_id``; restricted to ``version`` when given."""
        return self.fetch_all(self.find_by_id_url(package_id, version))

    def find_exact(self, package_id: str, version: str) -> Optional[Package]:
        """Fetch one exact package; None when the feed answers 404."""
        url = f"{self.base_url}Packages(Id='{_odata_literal(package_id)}',Version='{_odata_literal(version)}')"
        try:
            packages = self.fetch_all(url)
        except NetworkError as exc:
            if exc.status_code == 404:
                logger.info("Unable to find package from %s", safe_url(url))
                return None
            raise
        return packages[0] if packages else None

    def search_url(self, term: str = "", include_all_versions: bool = False,
                   include_prerelease: bool = False, count: int = 15, skip: int = 0) -> str:
        url = f"{self.base_url}Search()?"
        if not include_all_versions:
            url += "$filter=IsAbsoluteLatestVersion&" if include_prerelease else "$filter=IsLatestVersion&"
        url += "$orderby=DownloadCount desc&"
        url += f"$skip={skip}&$top={count}&"
        url += f"searchTerm='{_odata_literal(term)}'&targetFramework=''&"
        url += f"includePrerelease={_bool(include_prerelease)}"
        return url

    def search(self, term: str = "", include_all_versions: bool = False,
               include_prerelease: bool = False, count: int = 15, skip: int = 0) -> List[Package]:
        """Run the feed's Search() method."""
        return self.fetch_all(self.search_url(term, include_all_versions, include_prerelease, count, skip))

    def get_updates_url(self, installed: Iterable[PackageIdentifier], include_prerelease: bool,
                        include_all_versions: bool) -> str:
        batch = list(installed)
        ids = "|".join(_odata_literal(p.id) for p in batch)
        versions = "|".join(_odata_literal(p.version) for p in batch)
        return (
            f"{self.base_url}GetUpdates()?packageIds='{ids}'&versions='{versions}'"
            f"&includePrerelease={_bool(include_prerelease)}"
            f"&includeAllVersions={_bool(include_all_versions)}"
            "&targetFrameworks=''&versionConstraints=''"
        )

    def get_updates(self, installed: Iterable[PackageIdentifier], include_prerelease: bool = False,
                    include_all_versions: bool = False) -> List[Package]:
        """Run GetUpdates() for one batch; a 404 surfaces as NetworkError."""
        return self.fetch_all(self.get_updates_url(installed, include_prerelease, include_all_versions))
