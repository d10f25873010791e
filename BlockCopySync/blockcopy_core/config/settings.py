"""
Configuration Settings
======================

Configuration dataclasses for the block copy scanner, fetcher, cache and
asset store.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict
import json
import logging
import os

import yaml

from blockcopy_core.constants import (
    DEFAULT_CACHE_TTL,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_WORKERS,
)
from blockcopy_core.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class ScannerConfig:
    """Reference scanner configuration."""

    max_depth: int = DEFAULT_MAX_DEPTH


@dataclass
class FetchConfig:
    """Asset download configuration."""

    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS
    user_agent: str = "BlockCopySync/1.0"
    verify_ssl: bool = True


@dataclass
class CacheConfig:
    """Resolution cache configuration."""

    backend: str = "memory"  # "memory" or "mongodb"
    ttl_seconds: int = DEFAULT_CACHE_TTL
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "blockcopy"
    mongodb_collection: str = "resolution_cache"


@dataclass
class StoreConfig:
    """Destination asset store configuration."""

    backend: str = "local"  # "local" or "gridfs"
    local_path: str = "./storage/assets"
    public_base_url: str = "http://localhost:8000/api/v1/assets"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "blockcopy"


@dataclass
class SyncConfig:
    """
    Complete block copy configuration.

    Example:
        config = SyncConfig()
        config.fetch.max_workers = 8
        config.cache.ttl_seconds = 600
        save_config(config, Path("blockcopy.yaml"))
    """

    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    log_level: str = "INFO"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'scanner': asdict(self.scanner),
            'fetch': asdict(self.fetch),
            'cache': asdict(self.cache),
            'store': asdict(self.store),
            'log_level': self.log_level,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SyncConfig':
        """Create from dictionary."""
        config = cls()

        try:
            if 'scanner' in data:
                config.scanner = ScannerConfig(**data['scanner'])
            if 'fetch' in data:
                config.fetch = FetchConfig(**data['fetch'])
            if 'cache' in data:
                config.cache = CacheConfig(**data['cache'])
            if 'store' in data:
                config.store = StoreConfig(**data['store'])
        except TypeError as e:
            raise ConfigError(f"Unknown configuration key: {e}") from e

        if 'log_level' in data:
            config.log_level = data['log_level']

        return config

    @classmethod
    def from_env(cls) -> 'SyncConfig':
        """Load configuration from BLOCKCOPY_* environment variables."""
        env = os.environ
        config = cls()

        try:
            config.scanner.max_depth = int(env.get("BLOCKCOPY_MAX_DEPTH", config.scanner.max_depth))
            config.fetch.timeout_seconds = float(env.get("BLOCKCOPY_FETCH_TIMEOUT", config.fetch.timeout_seconds))
            config.fetch.max_workers = int(env.get("BLOCKCOPY_MAX_WORKERS", config.fetch.max_workers))
            config.cache.ttl_seconds = int(env.get("BLOCKCOPY_CACHE_TTL", config.cache.ttl_seconds))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric environment setting: {e}") from e

        config.fetch.verify_ssl = env.get("BLOCKCOPY_VERIFY_SSL", "true").lower() == "true"
        config.cache.backend = env.get("BLOCKCOPY_CACHE_BACKEND", config.cache.backend)
        config.store.backend = env.get("ASSET_STORE_BACKEND", config.store.backend)
        config.store.local_path = env.get("ASSET_STORE_LOCAL_PATH", config.store.local_path)
        config.store.public_base_url = env.get("ASSET_STORE_BASE_URL", config.store.public_base_url)

        mongodb_uri = env.get("MONGODB_URI")
        if mongodb_uri:
            config.cache.mongodb_uri = mongodb_uri
            config.store.mongodb_uri = mongodb_uri
        mongodb_database = env.get("MONGODB_DATABASE")
        if mongodb_database:
            config.cache.mongodb_database = mongodb_database
            config.store.mongodb_database = mongodb_database

        config.log_level = env.get("BLOCKCOPY_LOG_LEVEL", config.log_level)
        return config


def load_config(config_path: Path) -> SyncConfig:
    """
    Load configuration from file.

    Supports JSON and YAML formats based on file extension.

    Args:
        config_path: Path to config file

    Returns:
        SyncConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigError: If file format is not supported
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    with open(config_path, 'r', encoding='utf-8') as f:
        if suffix in ['.yaml', '.yml']:
            data = yaml.safe_load(f) or {}
        elif suffix == '.json':
            data = json.load(f)
        else:
            raise ConfigError(f"Unsupported config format: {suffix}")

    logger.info(f"Loaded configuration from {config_path}")
    return SyncConfig.from_dict(data)


def save_config(config: SyncConfig, config_path: Path) -> None:
    """
    Save configuration to file.

    Supports JSON and YAML formats based on file extension.
    """
    suffix = config_path.suffix.lower()
    data: Dict[str, Any] = config.to_dict()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w', encoding='utf-8') as f:
        if suffix in ['.yaml', '.yml']:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        elif suffix == '.json':
            json.dump(data, f, indent=2)
        else:
            raise ConfigError(f"Unsupported config format: {suffix}")

    logger.info(f"Saved configuration to {config_path}")


def get_default_config() -> SyncConfig:
    """Get default configuration."""
    return SyncConfig()


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging for CLI and server entry points."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
