"""Error taxonomy for package resolution and installation.

Every error raised by the core derives from NugetError and carries a short
machine-readable ``code`` so the CLI and logs can classify failures.
"""

from __future__ import annotations

from typing import Optional


class NugetError(Exception):
    """Base error for nugetfu."""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class VersionParseError(NugetError):
    """A version string could not be parsed."""

    code = "VERSION_PARSE"

    def __init__(self, version: str) -> None:
        super().__init__(f"Invalid version string: {version!r}")
        self.version = version


class PackageNotFoundError(NugetError):
    """No enabled source yields a version satisfying the request."""

    code = "PACKAGE_NOT_FOUND"

    def __init__(self, package_id: str, version: str) -> None:
        super().__init__(f"Could not find {package_id} {version} or greater.")
        self.package_id = package_id
        self.version = version


class NetworkError(NugetError):
    """Transport failure or non-success HTTP status."""

    code = "NETWORK_ERROR"

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ArchiveCorruptError(NugetError):
    """Package archive is missing, unreadable, or has no descriptor."""

    code = "ARCHIVE_CORRUPT"


class PathTraversalAttempt(NugetError):
    """Archive entry would be written outside its destination root."""

    code = "PATH_TRAVERSAL"

    def __init__(self, entry: str) -> None:
        super().__init__(f"Archive entry escapes destination: {entry}")
        self.entry = entry


class InstallError(NugetError):
    """A package could not be installed, usually wrapping a dependency failure."""

    code = "INSTALL_ERROR"


class ConfigError(NugetError):
    """Configuration file missing required structure or holding bad values."""

    code = "CONFIG_ERROR"
