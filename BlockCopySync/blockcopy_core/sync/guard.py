"""
Re-entrancy Guard
=================

Suppresses the save-triggered pipeline for a content item while the
pipeline itself writes that item back. Scoped to the calling thread, so a
concurrent save of the same content from another request still runs.
"""

from contextlib import contextmanager
from typing import Any, Iterator, Set
import threading


class ReentrancyGuard:
    """
    Per-thread set of content IDs whose save hook is currently suppressed.

    IDs are compared as strings, so 42 and "42" name the same content.
    """

    def __init__(self):
        self._local = threading.local()

    def _active(self) -> Set[str]:
        active = getattr(self._local, 'content_ids', None)
        if active is None:
            active = set()
            self._local.content_ids = active
        return active

    def is_suppressed(self, content_id: Any) -> bool:
        return str(content_id) in self._active()

    @contextmanager
    def suppressed(self, content_id: Any) -> Iterator[None]:
        """Suppress self-triggering for ``content_id`` for the duration of the block."""
        active = self._active()
        key = str(content_id)
        already = key in active
        active.add(key)
        try:
            yield
        finally:
            if not already:
                active.discard(key)
