"""YAML configuration for a restore run.

Looks for ``nugetfu.yml`` in the project directory unless an explicit path
is given. Relative paths inside the file are resolved against the file's
directory (or the project directory when no file exists).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from constants import CompatibilityLevel, Constants
from common.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class SourceConfig:
    """One configured package source."""
    name: str
    url: str
    enabled: bool = True
    username: Optional[str] = None
    password: Optional[str] = None


@dataclass
class NugetConfig:
    """Effective settings for one project."""
    base_dir: str
    sources: List[SourceConfig] = field(default_factory=list)
    repository_path: str = ""
    packages_config_path: str = ""
    cache_dir: str = ""
    install_from_cache: bool = True
    read_only_package_files: bool = False
    verbose: bool = False
    compatibility: CompatibilityLevel = CompatibilityLevel.NET4X
    platform_version: int = Constants.DEFAULT_PLATFORM_VERSION
    primary_architecture: str = Constants.PRIMARY_ARCHITECTURE
    engine_library_paths: List[str] = field(default_factory=list)
    tools_path: str = ""
    plugins_path: str = ""
    streaming_assets_path: str = ""
    credential_provider_paths: List[str] = field(default_factory=list)
    request_timeout: float = Constants.REQUEST_TIMEOUT

    def resolve(self, path: str) -> str:
        """Absolute form of ``path`` anchored at the configuration directory."""
        expanded = os.path.expandvars(os.path.expanduser(path))
        if not os.path.isabs(expanded):
            expanded = os.path.join(self.base_dir, expanded)
        return os.path.normpath(expanded)


def default_cache_dir() -> str:
    """Machine-wide archive cache shared across projects."""
    env = os.environ.get(Constants.ENV_CACHE_DIR)
    if env:
        return os.path.abspath(os.path.expanduser(env))
    return os.path.join(os.path.expanduser("~"), ".local", "share", "NuGet", "Cache")


def _as_bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false")
    return value


def _as_str(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string")
    return value


def _parse_sources(raw: Any) -> List[SourceConfig]:
    if raw is None:
        return [SourceConfig(Constants.DEFAULT_SOURCE_NAME, Constants.DEFAULT_SOURCE_URL)]
    if not isinstance(raw, list):
        raise ConfigError("'packageSources' must be a list")
    sources = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict) or not item.get("url"):
            raise ConfigError(f"packageSources[{index}] needs a 'url'")
        sources.append(
            SourceConfig(
                name=str(item.get("name") or item["url"]),
                url=str(item["url"]),
                enabled=_as_bool(item, "enabled", True),
                username=item.get("username"),
                password=item.get("password"),
            )
        )
    return sources


def _parse_compatibility(value: Any) -> CompatibilityLevel:
    try:
        return CompatibilityLevel(str(value).lower())
    except ValueError as exc:
        choices = ", ".join(level.value for level in CompatibilityLevel)
        raise ConfigError(f"'compatibility' must be one of: {choices}") from exc


def build_config(data: Dict[str, Any], base_dir: str) -> NugetConfig:
    """Turn a parsed YAML mapping into a NugetConfig.

    Raises:
        ConfigError: On unknown profile names or wrongly typed values.
    """
    config = NugetConfig(base_dir=os.path.abspath(base_dir))
    config.sources = _parse_sources(data.get("packageSources"))
    config.repository_path = config.resolve(_as_str(data, "repositoryPath", Constants.DEFAULT_REPOSITORY_PATH))
    config.packages_config_path = config.resolve(_as_str(data, "packagesConfig", Constants.DEFAULT_PACKAGES_CONFIG))
    cache = data.get("cacheDirectory")
    config.cache_dir = config.resolve(cache) if cache else default_cache_dir()
    config.install_from_cache = _as_bool(data, "installFromCache", True)
    config.read_only_package_files = _as_bool(data, "readOnlyPackageFiles", False)
    config.verbose = _as_bool(data, "verbose", False)
    config.compatibility = _parse_compatibility(data.get("compatibility", CompatibilityLevel.NET4X.value))
    try:
        config.platform_version = int(data.get("platformVersion", Constants.DEFAULT_PLATFORM_VERSION))
        config.request_timeout = float(data.get("requestTimeout", Constants.REQUEST_TIMEOUT))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc
    config.primary_architecture = _as_str(data, "primaryArchitecture", Constants.PRIMARY_ARCHITECTURE).lower()
    config.engine_library_paths = [config.resolve(p) for p in data.get("engineLibraryPaths") or []]
    config.credential_provider_paths = [config.resolve(p) for p in data.get("credentialProviderPaths") or []]
    config.tools_path = config.resolve(_as_str(data, "toolsPath", Constants.DEFAULT_TOOLS_PATH))
    config.plugins_path = config.resolve(_as_str(data, "pluginsPath", Constants.DEFAULT_PLUGINS_PATH))
    config.streaming_assets_path = config.resolve(
        _as_str(data, "streamingAssetsPath", Constants.DEFAULT_STREAMING_ASSETS_PATH)
    )
    return config


def load_config(context_dir: str, config_path: Optional[str] = None) -> NugetConfig:
    """Load configuration for the project at ``context_dir``.

    Args:
        context_dir: Project root.
        config_path: Explicit YAML file; must exist when given.

    Raises:
        ConfigError: If an explicit file is missing or any file is invalid.
    """
    path = config_path or os.path.join(context_dir, Constants.CONFIG_FILE)
    if not os.path.isfile(path):
        if config_path:
            raise ConfigError(f"Configuration file not found: {config_path}")
        logger.info("No %s found in %s, using defaults", Constants.CONFIG_FILE, context_dir)
        return build_config({}, context_dir)

    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return build_config(data, os.path.dirname(os.path.abspath(path)))
