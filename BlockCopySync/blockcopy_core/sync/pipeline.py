"""
Asset Sync Pipeline
===================

Import side of a block copy. For one content-save event:

    SCANNING   -> find sentinel-wrapped image locators
    FETCHING   -> cache lookup, else download + upload (bounded thread pool)
    REWRITING  -> replace resolved sentinels with local asset IDs
    PERSISTING -> write the content back with the save hook suppressed

and ends in IDLE, SKIPPED (no locators) or FAILED_PARTIAL (some locators
did not resolve; their sentinels stay in the content for a later pass).
Per-locator failures are reported on the result, never raised.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, List, Optional, Protocol
import logging

from blockcopy_core.config.settings import SyncConfig
from blockcopy_core.errors import AssetStoreError, CacheError, FetchError
from blockcopy_core.rewriting.token_rewriter import TokenRewriter
from blockcopy_core.scanning.locator_scanner import scan_locators
from blockcopy_core.sync.base import SyncResult, SyncState
from blockcopy_core.sync.cache import ResolutionCache
from blockcopy_core.sync.fetcher import AssetFetcher, FetchedAsset
from blockcopy_core.sync.guard import ReentrancyGuard

logger = logging.getLogger(__name__)


class AssetUploader(Protocol):
    def upload(self, data: bytes, suggested_name: str, content_type: Optional[str] = None) -> int:
        ...


class ContentWriter(Protocol):
    def update_content(self, content_id: Any, content: str) -> None:
        ...


class AssetSyncPipeline:
    """
    Drives the import cycle for a piece of content.

    The cache is the only state that outlives a run and is passed in
    explicitly. Without a content writer the pipeline only returns the
    rewritten content.

    Example:
        pipeline = AssetSyncPipeline(
            fetcher=AssetFetcher(),
            asset_store=get_asset_store(),
            cache=MemoryResolutionCache(),
            content_store=store,
        )
        result = pipeline.run(post_id, post_content)
    """

    def __init__(self,
                 fetcher: AssetFetcher,
                 asset_store: AssetUploader,
                 cache: ResolutionCache,
                 content_store: Optional[ContentWriter] = None,
                 guard: Optional[ReentrancyGuard] = None,
                 config: Optional[SyncConfig] = None):
        self.fetcher = fetcher
        self.asset_store = asset_store
        self.cache = cache
        self.content_store = content_store
        self.guard = guard or ReentrancyGuard()
        self.config = config or SyncConfig()
        self.rewriter = TokenRewriter()

    def run(self, content_id: Any, content: str) -> SyncResult:
        """Process one content item and return the outcome."""
        result = SyncResult(content_id=content_id, original=content, content=content)

        result.enter(SyncState.SCANNING)
        result.locators = scan_locators(content)
        if not result.locators:
            result.enter(SyncState.SKIPPED)
            logger.debug(f"No image locators in content {content_id}")
            return result

        result.enter(SyncState.FETCHING)
        self._resolve_locators(result.locators, result)

        if result.resolved:
            result.enter(SyncState.REWRITING)
            rewritten = self.rewriter.urls_to_ids(content, result.resolved)
            result.content = rewritten.text
            result.substitutions = rewritten.total

            if result.changed and self.content_store is not None:
                result.enter(SyncState.PERSISTING)
                self._persist(content_id, result)

        if result.failures:
            result.enter(SyncState.FAILED_PARTIAL)
            logger.warning(
                f"[Block Copy] {len(result.failures)} of {len(result.locators)} image(s) "
                f"could not be imported for content {content_id}"
            )
        else:
            result.enter(SyncState.IDLE)

        return result

    # ========================================================================
    # STAGES
    # ========================================================================

    def _resolve_locators(self, locators: List[str], result: SyncResult) -> None:
        pending = []
        for url in locators:
            try:
                cached_id = self.cache.get(url)
            except CacheError as e:
                logger.warning(f"[Block Copy] Cache lookup failed, fetching instead: {e}")
                cached_id = None
            if cached_id is not None:
                result.record_success(url, cached_id, from_cache=True)
            else:
                pending.append(url)

        if not pending:
            return

        workers = max(1, min(self.config.fetch.max_workers, len(pending)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self._materialize, url): url for url in pending}

            for future in as_completed(futures):
                url = futures[future]
                try:
                    asset_id = future.result()
                except (FetchError, AssetStoreError) as e:
                    logger.error(f"[Block Copy] {e}")
                    result.record_failure(url, str(e))
                    continue

                # The upload already happened; a cache write failure must not lose its ID
                try:
                    self.cache.set(url, asset_id)
                except CacheError as e:
                    logger.warning(f"[Block Copy] {e}")
                result.record_success(url, asset_id)
                logger.info(f"[Block Copy] Uploaded image from {url} as asset ID {asset_id}")

    def _materialize(self, url: str) -> int:
        asset: FetchedAsset = self.fetcher.fetch(url)
        try:
            asset_id = self.asset_store.upload(asset.data, asset.filename, asset.content_type)
        except AssetStoreError as e:
            raise AssetStoreError(f"Failed to upload image from {url}: {e}") from e
        return int(asset_id)

    def _persist(self, content_id: Any, result: SyncResult) -> None:
        with self.guard.suppressed(content_id):
            self.content_store.update_content(content_id, result.content)
        result.persisted = True
        logger.info(f"[Block Copy] Updated content {content_id} with {len(result.resolved)} new assets")
