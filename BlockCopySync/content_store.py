#!/usr/bin/env python3
"""
Content Store for Block Copy Sync

This module persists block content (the serialized markup of a page or
post) and notifies save listeners after every write. The import pipeline
hooks in as such a listener; its own write-back goes through
``update_content`` and therefore notifies the listeners again, which is
why the save hook carries a re-entrancy guard.

Backends:
- In-memory (default, development and tests)
- MongoDB collection

Configuration:
    CONTENT_STORE_BACKEND: "memory" | "mongodb" (default: "memory")
    MONGODB_URI: MongoDB connection string (default: mongodb://localhost:27017)
    MONGODB_DATABASE: Database name (default: blockcopy)
    MONGODB_CONTENT_COLLECTION: Collection name (default: content)

Usage:
    from content_store import get_content_store

    store = get_content_store()
    store.add_save_listener(ContentSaveHook(pipeline))

    outcome = store.save_content("42", block_markup)
"""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from blockcopy_core.errors import ContentStoreError

logger = logging.getLogger(__name__)

SaveListener = Callable[..., Any]


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class MongoDBConfig:
    """MongoDB connection configuration for content documents."""
    uri: str = "mongodb://localhost:27017"
    database: str = "blockcopy"
    collection: str = "content"
    timeout_ms: int = 5000
    retry_writes: bool = True

    @classmethod
    def from_env(cls) -> "MongoDBConfig":
        """Load configuration from environment variables."""
        return cls(
            uri=os.environ.get("MONGODB_URI", "mongodb://localhost:27017"),
            database=os.environ.get("MONGODB_DATABASE", "blockcopy"),
            collection=os.environ.get("MONGODB_CONTENT_COLLECTION", "content"),
            timeout_ms=int(os.environ.get("MONGODB_TIMEOUT_MS", "5000")),
        )


# ============================================================================
# DATA MODELS
# ============================================================================

@dataclass
class ContentDocument:
    """One stored piece of content."""
    content_id: str
    content: str
    revision: int = 1
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_id": self.content_id,
            "content": self.content,
            "revision": self.revision,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "ContentDocument":
        return cls(
            content_id=str(doc["content_id"]),
            content=doc.get("content", ""),
            revision=int(doc.get("revision", 1)),
            updated_at=doc.get("updated_at"),
        )


@dataclass
class SaveResult:
    """What a save produced: the stored document and each listener's return value."""
    document: ContentDocument
    listener_results: List[Any] = field(default_factory=list)


# ============================================================================
# BASE STORE
# ============================================================================

class ContentStore(ABC):
    """
    Content persistence with save notifications.

    Listeners are called as ``listener(content_id, content,
    is_autosave=..., is_revision=...)`` after the write has succeeded.
    """

    def __init__(self):
        self._listeners: List[SaveListener] = []

    def add_save_listener(self, listener: SaveListener) -> None:
        self._listeners.append(listener)

    def remove_save_listener(self, listener: SaveListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, document: ContentDocument, is_autosave: bool = False,
                is_revision: bool = False) -> List[Any]:
        return [
            listener(document.content_id, document.content,
                     is_autosave=is_autosave, is_revision=is_revision)
            for listener in list(self._listeners)
        ]

    @abstractmethod
    def connect(self) -> bool:
        pass

    @abstractmethod
    def _write(self, content_id: str, content: str) -> ContentDocument:
        pass

    @abstractmethod
    def get_content(self, content_id: Any) -> Optional[ContentDocument]:
        pass

    def save_content(self, content_id: Any, content: str, *,
                     is_autosave: bool = False, is_revision: bool = False) -> SaveResult:
        """Persist ``content`` and run the save listeners."""
        document = self._write(str(content_id), content)
        logger.debug(f"Saved content {document.content_id} (revision {document.revision})")
        results = self._notify(document, is_autosave=is_autosave, is_revision=is_revision)

        # Listeners may have written the content back
        latest = self.get_content(document.content_id) or document
        return SaveResult(document=latest, listener_results=results)

    def update_content(self, content_id: Any, content: str) -> ContentDocument:
        """Programmatic write-back; listeners are notified as for any save."""
        document = self._write(str(content_id), content)
        logger.debug(f"Updated content {document.content_id} (revision {document.revision})")
        self._notify(document)
        return document


# ============================================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================================

class InMemoryContentStore(ContentStore):
    """Process-local content store for development and tests."""

    def __init__(self):
        super().__init__()
        self._documents: Dict[str, ContentDocument] = {}
        self._lock = threading.Lock()

    def connect(self) -> bool:
        return True

    def _write(self, content_id: str, content: str) -> ContentDocument:
        with self._lock:
            previous = self._documents.get(content_id)
            document = ContentDocument(
                content_id=content_id,
                content=content,
                revision=previous.revision + 1 if previous else 1,
                updated_at=datetime.utcnow(),
            )
            self._documents[content_id] = document
        return document

    def get_content(self, content_id: Any) -> Optional[ContentDocument]:
        with self._lock:
            return self._documents.get(str(content_id))


# ============================================================================
# MONGODB IMPLEMENTATION
# ============================================================================

class MongoContentStore(ContentStore):
    """Content documents kept in a MongoDB collection, keyed by content_id."""

    def __init__(self, config: Optional[MongoDBConfig] = None, collection=None):
        """
        Initialize MongoDB content store.

        Args:
            config: MongoDB configuration. If None, loads from environment.
            collection: Pre-built collection (skips connecting)
        """
        super().__init__()
        self.config = config or MongoDBConfig.from_env()
        self._client: Optional[MongoClient] = None
        self._collection = collection
        self._connected = collection is not None

    def connect(self) -> bool:
        """
        Establish connection to MongoDB.

        Returns:
            True if connected successfully, False otherwise.
        """
        try:
            self._client = MongoClient(
                self.config.uri,
                serverSelectionTimeoutMS=self.config.timeout_ms,
                retryWrites=self.config.retry_writes,
            )
            # Test connection
            self._client.admin.command('ping')

            self._collection = self._client[self.config.database][self.config.collection]
            self._collection.create_index("content_id", unique=True)

            self._connected = True
            logger.info(f"Connected to MongoDB: {self.config.database}.{self.config.collection}")
            return True

        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            self._connected = False
            return False

    def disconnect(self):
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._connected = False
            logger.info("Disconnected from MongoDB")

    @property
    def is_connected(self) -> bool:
        return self._connected and self._collection is not None

    def ensure_connected(self) -> None:
        if not self.is_connected and not self.connect():
            raise ContentStoreError("MongoDB content store is not connected")

    def _write(self, content_id: str, content: str) -> ContentDocument:
        self.ensure_connected()
        try:
            doc = self._collection.find_one_and_update(
                {"content_id": content_id},
                {
                    "$set": {"content": content, "updated_at": datetime.utcnow()},
                    "$inc": {"revision": 1},
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error(f"Failed to save content {content_id} to MongoDB: {e}")
            raise ContentStoreError(f"Failed to save content {content_id}: {e}") from e
        return ContentDocument.from_doc(doc)

    def get_content(self, content_id: Any) -> Optional[ContentDocument]:
        self.ensure_connected()
        try:
            doc = self._collection.find_one({"content_id": str(content_id)})
        except PyMongoError as e:
            logger.error(f"Failed to get content {content_id}: {e}")
            raise ContentStoreError(f"Failed to load content {content_id}: {e}") from e
        return ContentDocument.from_doc(doc) if doc else None


# ============================================================================
# SINGLETON
# ============================================================================

_content_store: Optional[ContentStore] = None


def get_content_store() -> ContentStore:
    """Get or create the singleton content store selected by CONTENT_STORE_BACKEND."""
    global _content_store
    if _content_store is None:
        backend = os.environ.get("CONTENT_STORE_BACKEND", "memory").lower()
        if backend == "mongodb":
            _content_store = MongoContentStore()
        else:
            _content_store = InMemoryContentStore()
        _content_store.connect()
    return _content_store


def init_content_store(store: Optional[ContentStore] = None) -> ContentStore:
    """Replace the singleton, e.g. with a pre-wired store at application startup."""
    global _content_store
    _content_store = store
    return get_content_store()
