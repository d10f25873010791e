"""
Sync Module
===========

Import side of a block copy: resolution cache, asset fetcher, the sync
pipeline state machine and the content-save hook that drives it.
"""

from blockcopy_core.sync.base import (
    SyncResult,
    SyncState,
    TERMINAL_STATES,
)

from blockcopy_core.sync.cache import (
    MemoryResolutionCache,
    MongoResolutionCache,
    ResolutionCache,
    cache_key,
    create_cache,
)

from blockcopy_core.sync.fetcher import (
    AssetFetcher,
    FetchedAsset,
    suggested_filename,
)

from blockcopy_core.sync.guard import ReentrancyGuard

from blockcopy_core.sync.pipeline import AssetSyncPipeline

from blockcopy_core.sync.hooks import ContentSaveHook

__all__ = [
    "SyncResult",
    "SyncState",
    "TERMINAL_STATES",
    "MemoryResolutionCache",
    "MongoResolutionCache",
    "ResolutionCache",
    "cache_key",
    "create_cache",
    "AssetFetcher",
    "FetchedAsset",
    "suggested_filename",
    "ReentrancyGuard",
    "AssetSyncPipeline",
    "ContentSaveHook",
]
