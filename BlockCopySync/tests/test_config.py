"""
Configuration Tests

Run with: pytest tests/test_config.py -v
"""

import json

import pytest

from blockcopy_core.config import (
    SyncConfig,
    get_default_config,
    load_config,
    save_config,
)
from blockcopy_core.errors import ConfigError


class TestSyncConfig:
    """Tests for the configuration dataclasses."""

    def test_defaults(self):
        """Defaults match the documented values."""
        config = get_default_config()
        assert config.scanner.max_depth == 256
        assert config.fetch.timeout_seconds == 300
        assert config.fetch.max_workers == 4
        assert config.cache.ttl_seconds == 3600
        assert config.cache.backend == "memory"
        assert config.store.backend == "local"

    def test_dict_round_trip(self):
        """to_dict/from_dict preserve every section."""
        config = SyncConfig()
        config.fetch.max_workers = 8
        config.cache.ttl_seconds = 60
        config.log_level = "DEBUG"

        restored = SyncConfig.from_dict(config.to_dict())
        assert restored == config

    def test_partial_dict(self):
        """Missing sections keep their defaults."""
        config = SyncConfig.from_dict({"fetch": {"timeout_seconds": 10}})
        assert config.fetch.timeout_seconds == 10
        assert config.fetch.max_workers == 4
        assert config.scanner.max_depth == 256

    def test_unknown_key(self):
        """Unknown keys are rejected."""
        with pytest.raises(ConfigError):
            SyncConfig.from_dict({"fetch": {"retries": 3}})

    def test_from_env(self, monkeypatch):
        """BLOCKCOPY_* and shared MongoDB variables are read."""
        monkeypatch.setenv("BLOCKCOPY_MAX_WORKERS", "2")
        monkeypatch.setenv("BLOCKCOPY_CACHE_TTL", "30")
        monkeypatch.setenv("BLOCKCOPY_VERIFY_SSL", "false")
        monkeypatch.setenv("ASSET_STORE_BACKEND", "gridfs")
        monkeypatch.setenv("MONGODB_DATABASE", "sites")

        config = SyncConfig.from_env()
        assert config.fetch.max_workers == 2
        assert config.cache.ttl_seconds == 30
        assert config.fetch.verify_ssl is False
        assert config.store.backend == "gridfs"
        assert config.store.mongodb_database == "sites"
        assert config.cache.mongodb_database == "sites"

    def test_from_env_invalid_number(self, monkeypatch):
        """Non-numeric values are a configuration error."""
        monkeypatch.setenv("BLOCKCOPY_MAX_DEPTH", "deep")
        with pytest.raises(ConfigError):
            SyncConfig.from_env()


class TestConfigFiles:
    """Tests for loading and saving config files."""

    def test_yaml_round_trip(self, tmp_path):
        """YAML files save and load."""
        config = SyncConfig()
        config.store.local_path = str(tmp_path / "assets")
        path = tmp_path / "blockcopy.yaml"

        save_config(config, path)
        assert load_config(path) == config

    def test_json_load(self, tmp_path):
        """JSON files load."""
        path = tmp_path / "blockcopy.json"
        path.write_text(json.dumps({"scanner": {"max_depth": 16}}), encoding="utf-8")
        assert load_config(path).scanner.max_depth == 16

    def test_missing_file(self, tmp_path):
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_unsupported_format(self, tmp_path):
        """Unknown extensions are rejected."""
        path = tmp_path / "blockcopy.toml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)
