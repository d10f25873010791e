"""
BlockCopy Core Library
======================

A library for copying structured content blocks between sites whose media
libraries do not share identifiers. It provides:

- Discovery of numeric asset references inside serialized block data
- Resolution of local asset IDs to portable locators (URLs)
- Position-aware rewriting of references in both directions
- An import pipeline that fetches, uploads and re-links remote images
- Configuration management

Architecture
------------

    blockcopy_core/
    ├── scanning/      - Reference and locator discovery
    ├── mapping/       - ID -> locator resolution, export action
    ├── rewriting/     - Token substitution in block text
    ├── sync/          - Import pipeline, cache, fetcher, save hook
    ├── config/        - Configuration management
    ├── constants.py   - Sentinel markers and wire patterns
    └── errors.py      - Exception hierarchy

Usage
-----

Export (source site, "copy block"):

    from blockcopy_core import BlockExporter

    exporter = BlockExporter(get_asset_store())
    result = exporter.export(block_markup)
    clipboard = result.content

Import (destination site, on content save):

    from blockcopy_core import AssetSyncPipeline, AssetFetcher, ContentSaveHook
    from blockcopy_core import MemoryResolutionCache

    pipeline = AssetSyncPipeline(
        fetcher=AssetFetcher(),
        asset_store=get_asset_store(),
        cache=MemoryResolutionCache(),
        content_store=store,
    )
    store.add_save_listener(ContentSaveHook(pipeline))

Known limitation
----------------

Any positive integer inside a block's data is treated as a possible asset
reference. An unrelated number that happens to equal an existing asset ID
is rewritten too.

"""

__version__ = "1.0.0"
__author__ = "BlockCopySync Team"

# Import key classes for convenience
from blockcopy_core.constants import (
    SENTINEL_START,
    SENTINEL_END,
    wrap_locator,
)

from blockcopy_core.errors import (
    BlockCopyError,
    ConfigError,
    ContentStoreError,
    ResolutionError,
    FetchError,
    AssetStoreError,
    CacheError,
)

from blockcopy_core.scanning import (
    ReferenceScanner,
    ScanReport,
    scan_references,
    scan_locators,
)

from blockcopy_core.mapping import (
    BlockExporter,
    ExportResult,
    LocatorResolver,
    ResolutionReport,
    ControlEndpointLookup,
)

from blockcopy_core.rewriting import (
    TokenRewriter,
    RewriteResult,
    rewrite_ids_to_urls,
    rewrite_urls_to_ids,
)

from blockcopy_core.sync import (
    AssetFetcher,
    AssetSyncPipeline,
    ContentSaveHook,
    MemoryResolutionCache,
    MongoResolutionCache,
    ReentrancyGuard,
    SyncResult,
    SyncState,
    create_cache,
)

from blockcopy_core.config import (
    SyncConfig,
    load_config,
    save_config,
)

__all__ = [
    # Version
    "__version__",
    # Wire format
    "SENTINEL_START",
    "SENTINEL_END",
    "wrap_locator",
    # Errors
    "BlockCopyError",
    "ConfigError",
    "ContentStoreError",
    "ResolutionError",
    "FetchError",
    "AssetStoreError",
    "CacheError",
    # Scanning
    "ReferenceScanner",
    "ScanReport",
    "scan_references",
    "scan_locators",
    # Mapping
    "BlockExporter",
    "ExportResult",
    "LocatorResolver",
    "ResolutionReport",
    "ControlEndpointLookup",
    # Rewriting
    "TokenRewriter",
    "RewriteResult",
    "rewrite_ids_to_urls",
    "rewrite_urls_to_ids",
    # Sync
    "AssetFetcher",
    "AssetSyncPipeline",
    "ContentSaveHook",
    "MemoryResolutionCache",
    "MongoResolutionCache",
    "ReentrancyGuard",
    "SyncResult",
    "SyncState",
    "create_cache",
    # Config
    "SyncConfig",
    "load_config",
    "save_config",
]
