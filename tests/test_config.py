"""Tests for YAML configuration loading."""

import os

import pytest

from common.config import default_cache_dir, load_config
from common.errors import ConfigError
from constants import CompatibilityLevel, Constants


class TestLoadConfig:
    """Test configuration discovery and validation."""

    def test_defaults_without_file(self, tmp_path):
        """Test a project without nugetfu.yml uses defaults."""
        config = load_config(str(tmp_path))
        assert [s.url for s in config.sources] == [Constants.DEFAULT_SOURCE_URL]
        assert config.repository_path == os.path.join(str(tmp_path), "Assets", "Packages")
        assert config.packages_config_path == os.path.join(str(tmp_path), "Assets", "packages.config")
        assert config.compatibility is CompatibilityLevel.NET4X
        assert config.install_from_cache

    def test_values_from_file(self, tmp_path):
        """Test settings are read and paths resolved against the file."""
        (tmp_path / "nugetfu.yml").write_text(
            "packageSources:\n"
            "  - name: local\n"
            "    url: ./feed\n"
            "  - name: private\n"
            "    url: https://private.example/api/v2/\n"
            "    enabled: false\n"
            "    username: me\n"
            "    password: pw\n"
            "repositoryPath: Plugins/Packages\n"
            "cacheDirectory: .cache\n"
            "compatibility: netstandard2.0\n"
            "platformVersion: 2017\n"
            "readOnlyPackageFiles: true\n"
            "installFromCache: false\n"
        )
        config = load_config(str(tmp_path))
        assert [(s.name, s.enabled) for s in config.sources] == [("local", True), ("private", False)]
        assert config.sources[1].password == "pw"
        assert config.repository_path == os.path.join(str(tmp_path), "Plugins", "Packages")
        assert config.cache_dir == os.path.join(str(tmp_path), ".cache")
        assert config.compatibility is CompatibilityLevel.NETSTANDARD20
        assert config.platform_version == 2017
        assert config.read_only_package_files
        assert not config.install_from_cache

    def test_explicit_missing_file(self, tmp_path):
        """Test an explicit path that does not exist is an error."""
        with pytest.raises(ConfigError):
            load_config(str(tmp_path), str(tmp_path / "missing.yml"))

    @pytest.mark.parametrize("body", [
        "compatibility: net99\n",
        "installFromCache: maybe\n",
        "packageSources: nope\n",
        "packageSources:\n  - name: x\n",
        "platformVersion: soon\n",
        "- just\n- a list\n",
        "key: [unclosed\n",
    ])
    def test_invalid_values(self, tmp_path, body):
        """Test malformed settings raise ConfigError."""
        (tmp_path / "nugetfu.yml").write_text(body)
        with pytest.raises(ConfigError):
            load_config(str(tmp_path))

    def test_cache_dir_from_environment(self, tmp_path, monkeypatch):
        """Test the cache directory honors the environment override."""
        monkeypatch.setenv(Constants.ENV_CACHE_DIR, str(tmp_path / "shared"))
        assert default_cache_dir() == str(tmp_path / "shared")
