"""
Configuration Management
========================

Configuration utilities for block copy pipelines.
"""

from blockcopy_core.config.settings import (
    CacheConfig,
    FetchConfig,
    ScannerConfig,
    StoreConfig,
    SyncConfig,
    configure_logging,
    get_default_config,
    load_config,
    save_config,
)

__all__ = [
    "CacheConfig",
    "FetchConfig",
    "ScannerConfig",
    "StoreConfig",
    "SyncConfig",
    "configure_logging",
    "get_default_config",
    "load_config",
    "save_config",
]
