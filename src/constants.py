"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    INSTALL_FAILURE = 1
    CONFIG_ERROR = 2
    USAGE_ERROR = 64


class CompatibilityLevel(Enum):
    """Runtime compatibility profiles a consumer project can target.

    Args:
        Enum (string): Profile names as written in configuration.
    """

    NET4X = "net4x"
    NETSTANDARD20 = "netstandard2.0"
    NET35 = "net35"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    DEFAULT_SOURCE_NAME = "nuget.org"
    DEFAULT_SOURCE_URL = "https://www.nuget.org/api/v2/"
    CONFIG_FILE = "nugetfu.yml"
    PACKAGES_CONFIG_FILE = "packages.config"
    DEFAULT_PACKAGES_CONFIG = "Assets/packages.config"
    DEFAULT_REPOSITORY_PATH = "Assets/Packages"
    DEFAULT_TOOLS_PATH = "Packages"
    DEFAULT_PLUGINS_PATH = "Assets/Plugins"
    DEFAULT_STREAMING_ASSETS_PATH = "Assets/StreamingAssets"
    ENV_CACHE_DIR = "NUGETFU_CACHE"
    ENV_LOG_LEVEL = "NUGETFU_LOG_LEVEL"
    ENV_CREDENTIAL_PROVIDERS = "NUGET_CREDENTIALPROVIDERS_PATH"
    CREDENTIAL_PROVIDER_PREFIX = "credentialprovider"
    ARCHIVE_EXTENSION = ".nupkg"
    NUSPEC_EXTENSION = ".nuspec"
    UNLINKED_PREFIX = "."
    LOG_FORMAT = "[%(levelname)s] %(message)s"

    REQUEST_TIMEOUT = 5  # Seconds for feed metadata queries
    DOWNLOAD_TIMEOUT = None  # Archive downloads are not time-bounded
    DOWNLOAD_CHUNK_SIZE = 64 * 1024
    FEED_PARSE_ATTEMPTS = 2
    UPDATE_BATCH_SIZE = 10
    CREDENTIAL_PROVIDER_TIMEOUT = 300

    DEFAULT_PLATFORM_VERSION = 2018
    PLATFORM_TIER_NET47 = 2018
    PLATFORM_TIER_NET46 = 2017
    PRIMARY_ARCHITECTURE = "x64"
    KNOWN_ARCHITECTURES = ["x86", "x64", "arm", "arm64"]
