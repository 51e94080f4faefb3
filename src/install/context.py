"""Wiring of one restore run.

A ``RestoreContext`` owns the HTTP session and the credential cache for the
duration of a run; both are released on exit, success or failure.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypeVar

from common.config import NugetConfig, SourceConfig
from common.http_client import HttpClient
from install.cache import PackageCache
from install.cleaner import ContentCleaner
from install.engine import InstallEngine
from install.frameworks import FrameworkSelector
from install.imported import ImportedLibraryIndex
from install.manifest import PackagesConfig
from sources.base import PackageSource
from sources.credentials import CredentialStore
from sources.factory import create_source

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RestoreContext:
    """Build the engine and its collaborators from configuration.

    Usage::

        with RestoreContext(config) as ctx:
            report = ctx.engine.restore()

    Args:
        config: Effective project configuration.
        extra_sources: Additional source paths or URLs, tried after the
            configured ones.
        credentials: Credential store override.
        http: HttpClient override.
    """

    def __init__(self, config: NugetConfig, extra_sources: Optional[List[str]] = None,
                 credentials: Optional[CredentialStore] = None, http: Optional[HttpClient] = None) -> None:
        self.config = config
        self.extra_sources = list(extra_sources or [])
        self.credentials = credentials
        self.http = http
        self.engine: Optional[InstallEngine] = None

    def build_sources(self) -> List[PackageSource]:
        configured = list(self.config.sources)
        for index, path in enumerate(self.extra_sources):
            configured.append(SourceConfig(name=f"cli-{index}", url=path))
        return [
            create_source(
                s.name, s.url,
                username=s.username, password=s.password, enabled=s.enabled,
                base_dir=self.config.base_dir, http=self.http,
            )
            for s in configured
        ]

    def open(self) -> "RestoreContext":
        config = self.config
        if self.credentials is None:
            self.credentials = CredentialStore(provider_dirs=config.credential_provider_paths)
        if self.http is None:
            self.http = HttpClient(credentials=self.credentials, timeout=config.request_timeout)

        selector = FrameworkSelector(config.compatibility, config.platform_version)
        imported = ImportedLibraryIndex(config.engine_library_paths)
        cleaner = ContentCleaner(
            selector,
            project_root=config.base_dir,
            tools_root=config.tools_path,
            plugins_dir=config.plugins_path,
            streaming_assets_dir=config.streaming_assets_path,
            primary_architecture=config.primary_architecture,
            imported=imported,
        )
        self.engine = InstallEngine(
            manifest=PackagesConfig.load(config.packages_config_path),
            sources=self.build_sources(),
            cache=PackageCache(config.cache_dir, http=self.http),
            cleaner=cleaner,
            selector=selector,
            repository_path=config.repository_path,
            imported=imported,
            install_from_cache=config.install_from_cache,
            read_only_package_files=config.read_only_package_files,
            primary_architecture=config.primary_architecture,
            verbose=config.verbose,
        )
        logger.debug("Restore context opened for %s", config.base_dir)
        return self

    def close(self) -> None:
        """Release network resources and forget resolved credentials."""
        if self.http is not None:
            self.http.close()
        if self.credentials is not None:
            self.credentials.clear_cached_credentials()

    def use_during(self, operation: Callable[[InstallEngine], T]) -> T:
        """Run ``operation`` with the engine, closing the context afterwards."""
        with self as ctx:
            return operation(ctx.engine)

    def __enter__(self) -> "RestoreContext":
        try:
            return self.open()
        except Exception:
            self.close()
            raise

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
