"""
Content-Save Hook
=================

Adapter between a content store's save notifications and the pipeline.
"""

from typing import Any, Optional
import logging

from blockcopy_core.errors import BlockCopyError
from blockcopy_core.sync.base import SyncResult
from blockcopy_core.sync.guard import ReentrancyGuard
from blockcopy_core.sync.pipeline import AssetSyncPipeline

logger = logging.getLogger(__name__)


class ContentSaveHook:
    """
    Runs the import pipeline after content is saved.

    Autosaves and revisions are ignored, as is any save performed by the
    pipeline's own write-back.
    """

    def __init__(self, pipeline: AssetSyncPipeline, guard: Optional[ReentrancyGuard] = None):
        self.pipeline = pipeline
        self.guard = guard or pipeline.guard

    def on_save(self, content_id: Any, content: Optional[str], *,
                is_autosave: bool = False, is_revision: bool = False) -> Optional[SyncResult]:
        if is_autosave or is_revision:
            return None
        if content is None:
            return None
        if self.guard.is_suppressed(content_id):
            logger.debug(f"Save of content {content_id} triggered by block copy write-back; skipping")
            return None

        try:
            return self.pipeline.run(content_id, content)
        except BlockCopyError as e:
            # The save itself already succeeded; report and let the next save retry
            logger.error(f"[Block Copy] Sync failed for content {content_id}: {e}")
            return None

    __call__ = on_save
