#!/usr/bin/env python3
"""
Asset Store for Block Copy Sync

This module provides the destination site's media library: the place where
imported images are uploaded and where local asset IDs are resolved back to
public URLs on export.

Backends:
- Local filesystem (default, development)
- MongoDB GridFS (shared, survives container restarts)

Both hand out sequential integer asset IDs, because block payloads refer to
images by bare positive integers.

Configuration:
    ASSET_STORE_BACKEND: "local" | "gridfs" (default: "local")
    ASSET_STORE_BASE_URL: public prefix for asset URLs
        (default: http://localhost:8000/api/v1/assets)

    For Local:
        ASSET_STORE_LOCAL_PATH (default: ./storage/assets)

    For GridFS:
        MONGODB_URI, MONGODB_DATABASE

Usage:
    from asset_store import get_asset_store

    store = get_asset_store()

    asset_id = store.upload(data, "photo.jpg", "image/jpeg")
    url = store.url_for_id(asset_id)
    # -> http://localhost:8000/api/v1/assets/12/photo.jpg
"""

from __future__ import annotations

import json
import logging
import mimetypes
import os
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote

import gridfs
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from blockcopy_core.config.settings import StoreConfig, SyncConfig
from blockcopy_core.errors import AssetStoreError

logger = logging.getLogger(__name__)


def _safe_filename(name: str) -> str:
    """Reduce an uploaded name to something safe on disk and inside a URL."""
    name = Path(name or "").name
    name = re.sub(r'[^A-Za-z0-9._-]+', '-', name).strip('-.')
    return name or "asset"


def _guess_content_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or 'application/octet-stream'


@dataclass
class AssetRecord:
    """Metadata for one stored asset."""
    asset_id: int
    filename: str
    content_type: str
    size: int
    uploaded_at: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'AssetRecord':
        return cls(
            asset_id=int(data['asset_id']),
            filename=data['filename'],
            content_type=data.get('content_type') or _guess_content_type(data['filename']),
            size=int(data.get('size', 0)),
            uploaded_at=data.get('uploaded_at', ''),
        )


# ============================================================================
# ABSTRACT ASSET STORE INTERFACE
# ============================================================================

class AssetStore(ABC):
    """
    Abstract base class for asset stores.

    Lookups return None for unknown IDs. Transport or write failures raise
    AssetStoreError.
    """

    def __init__(self, public_base_url: str):
        self.public_base_url = public_base_url.rstrip('/')

    @abstractmethod
    def connect(self) -> bool:
        """Establish connection to the backing store."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def upload(self, data: bytes, suggested_name: str, content_type: str = None) -> int:
        """
        Store ``data`` as a new asset.

        Returns:
            The new asset's ID (a positive integer)
        """
        pass

    @abstractmethod
    def get(self, asset_id: int) -> Optional[AssetRecord]:
        pass

    @abstractmethod
    def download(self, asset_id: int) -> Optional[bytes]:
        pass

    def url_for_record(self, record: AssetRecord) -> str:
        return f"{self.public_base_url}/{record.asset_id}/{quote(record.filename)}"

    def url_for_id(self, asset_id: int) -> Optional[str]:
        """Public URL for an asset, or None if the ID is unknown."""
        record = self.get(asset_id)
        if record is None:
            return None
        return self.url_for_record(record)

    def urls_for_ids(self, ids: Iterable[int]) -> Dict[int, str]:
        """Batch form of url_for_id; unknown IDs are left out."""
        urls = {}
        for asset_id in ids:
            url = self.url_for_id(int(asset_id))
            if url:
                urls[int(asset_id)] = url
        return urls

    def _ensure_connected(self):
        if not self.is_connected() and not self.connect():
            raise AssetStoreError(f"{type(self).__name__} is not connected")


# ============================================================================
# LOCAL FILESYSTEM IMPLEMENTATION (Development)
# ============================================================================

class LocalAssetStore(AssetStore):
    """
    Filesystem asset store.

    Layout:
        <base_path>/index.json          next ID and per-asset metadata
        <base_path>/<id>/<filename>     asset bytes
    """

    INDEX_FILE = "index.json"

    def __init__(self, base_path: str = None, public_base_url: str = None):
        defaults = StoreConfig()
        super().__init__(public_base_url or os.environ.get("ASSET_STORE_BASE_URL", defaults.public_base_url))
        self.base_path = Path(base_path or os.environ.get("ASSET_STORE_LOCAL_PATH", defaults.local_path))
        self._index: Dict[str, Any] = {"next_id": 1, "assets": {}}
        self._lock = threading.Lock()
        self._connected = False

    @property
    def index_path(self) -> Path:
        return self.base_path / self.INDEX_FILE

    def connect(self) -> bool:
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            if self.index_path.exists():
                with open(self.index_path, 'r', encoding='utf-8') as f:
                    self._index = json.load(f)
            self._connected = True
            logger.info(f"Local asset store initialized at: {self.base_path}")
            return True
        except (OSError, ValueError) as e:
            logger.error(f"Failed to initialize local asset store: {e}")
            return False

    def is_connected(self) -> bool:
        return self._connected

    def _write_index(self):
        tmp_path = self.index_path.with_suffix('.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self._index, f, indent=2)
        tmp_path.replace(self.index_path)

    def upload(self, data: bytes, suggested_name: str, content_type: str = None) -> int:
        self._ensure_connected()
        filename = _safe_filename(suggested_name)

        with self._lock:
            asset_id = int(self._index["next_id"])
            file_path = self.base_path / str(asset_id) / filename
            try:
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_path.write_bytes(data)

                record = AssetRecord(
                    asset_id=asset_id,
                    filename=filename,
                    content_type=content_type or _guess_content_type(filename),
                    size=len(data),
                    uploaded_at=datetime.utcnow().isoformat(),
                )
                self._index["assets"][str(asset_id)] = record.to_dict()
                self._index["next_id"] = asset_id + 1
                self._write_index()
            except OSError as e:
                logger.error(f"Failed to save asset to local storage: {e}")
                raise AssetStoreError(f"Failed to save {filename}: {e}") from e

        logger.info(f"Saved asset {asset_id} to local storage: {file_path}")
        return asset_id

    def get(self, asset_id: int) -> Optional[AssetRecord]:
        self._ensure_connected()
        with self._lock:
            data = self._index["assets"].get(str(int(asset_id)))
        if data is None:
            return None
        return AssetRecord.from_dict(data)

    def download(self, asset_id: int) -> Optional[bytes]:
        record = self.get(asset_id)
        if record is None:
            return None

        file_path = self.base_path / str(record.asset_id) / record.filename
        if not file_path.exists():
            logger.warning(f"Asset {asset_id} is indexed but missing on disk: {file_path}")
            return None
        return file_path.read_bytes()


# ============================================================================
# GRIDFS IMPLEMENTATION
# ============================================================================

class GridFSAssetStore(AssetStore):
    """
    MongoDB GridFS asset store.

    Asset IDs come from an atomically incremented counter document, so
    several processes can upload into the same database.
    """

    COUNTER_ID = "asset_id"

    def __init__(self, uri: str = None, database: str = None, public_base_url: str = None):
        defaults = StoreConfig()
        super().__init__(public_base_url or os.environ.get("ASSET_STORE_BASE_URL", defaults.public_base_url))
        self.uri = uri or os.environ.get("MONGODB_URI", defaults.mongodb_uri)
        self.database_name = database or os.environ.get("MONGODB_DATABASE", defaults.mongodb_database)
        self._client: Optional[MongoClient] = None
        self._db = None
        self._fs: Optional[gridfs.GridFS] = None
        self._connected = False

    def connect(self) -> bool:
        try:
            timeout_ms = int(os.environ.get("MONGODB_TIMEOUT_MS", "5000"))

            self._client = MongoClient(
                self.uri,
                serverSelectionTimeoutMS=timeout_ms,
                retryWrites=True,
            )
            # Test connection
            self._client.admin.command('ping')

            self._db = self._client[self.database_name]
            self._fs = gridfs.GridFS(self._db, collection="assets")
            self._db.assets.files.create_index("metadata.asset_id", unique=True)

            self._connected = True
            logger.info(f"GridFS asset store connected to MongoDB: {self.database_name}")
            return True

        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB for GridFS: {e}")
            self._connected = False
            return False

    def disconnect(self):
        if self._client:
            self._client.close()
            self._connected = False
            logger.info("GridFS asset store disconnected from MongoDB")

    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    def _next_asset_id(self) -> int:
        counter = self._db.counters.find_one_and_update(
            {"_id": self.COUNTER_ID},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    def _find_file(self, asset_id: int) -> Optional[dict]:
        return self._db.assets.files.find_one({"metadata.asset_id": int(asset_id)})

    def _record_from_doc(self, doc: dict) -> AssetRecord:
        uploaded = doc.get("uploadDate")
        return AssetRecord(
            asset_id=int(doc["metadata"]["asset_id"]),
            filename=doc["filename"],
            content_type=doc.get("metadata", {}).get("content_type") or _guess_content_type(doc["filename"]),
            size=int(doc.get("length", 0)),
            uploaded_at=uploaded.isoformat() if uploaded else '',
        )

    def upload(self, data: bytes, suggested_name: str, content_type: str = None) -> int:
        self._ensure_connected()
        filename = _safe_filename(suggested_name)

        try:
            asset_id = self._next_asset_id()
            file_id = self._fs.put(
                data,
                filename=filename,
                metadata={
                    "asset_id": asset_id,
                    "content_type": content_type or _guess_content_type(filename),
                    "uploaded_at": datetime.utcnow(),
                },
            )
        except PyMongoError as e:
            logger.error(f"Failed to upload asset to GridFS: {e}")
            raise AssetStoreError(f"Failed to upload {filename}: {e}") from e

        logger.info(f"Uploaded asset {asset_id} to GridFS: {filename} ({file_id})")
        return asset_id

    def get(self, asset_id: int) -> Optional[AssetRecord]:
        self._ensure_connected()
        try:
            doc = self._find_file(asset_id)
        except PyMongoError as e:
            raise AssetStoreError(f"Failed to look up asset {asset_id}: {e}") from e
        return self._record_from_doc(doc) if doc else None

    def urls_for_ids(self, ids: Iterable[int]) -> Dict[int, str]:
        self._ensure_connected()
        wanted = [int(i) for i in ids]
        try:
            docs = list(self._db.assets.files.find({"metadata.asset_id": {"$in": wanted}}))
        except PyMongoError as e:
            raise AssetStoreError(f"Failed to look up assets: {e}") from e

        return {
            record.asset_id: self.url_for_record(record)
            for record in (self._record_from_doc(doc) for doc in docs)
        }

    def download(self, asset_id: int) -> Optional[bytes]:
        self._ensure_connected()
        try:
            doc = self._find_file(asset_id)
            if not doc:
                return None
            return self._fs.get(doc["_id"]).read()
        except (PyMongoError, gridfs.NoFile) as e:
            raise AssetStoreError(f"Failed to download asset {asset_id}: {e}") from e


# ============================================================================
# FACTORY & SINGLETON
# ============================================================================

_store_instance: Optional[AssetStore] = None


def create_asset_store(config: StoreConfig) -> AssetStore:
    """Build (but do not connect) the backend named in ``config``."""
    backend = config.backend.lower()

    if backend == "gridfs":
        return GridFSAssetStore(
            uri=config.mongodb_uri,
            database=config.mongodb_database,
            public_base_url=config.public_base_url,
        )
    if backend == "local":
        return LocalAssetStore(base_path=config.local_path, public_base_url=config.public_base_url)
    raise AssetStoreError(f"Unknown asset store backend: {config.backend}")


def get_asset_store(config: Optional[StoreConfig] = None) -> AssetStore:
    """
    Get the configured asset store instance.

    The first call creates it from ``config``, or from the environment when
    no config is given. ASSET_STORE_BACKEND selects the backend:
    - "local" (default): local filesystem
    - "gridfs": MongoDB GridFS
    """
    global _store_instance

    if _store_instance is None:
        _store_instance = create_asset_store(config or SyncConfig.from_env().store)

        # Auto-connect
        _store_instance.connect()

    return _store_instance


def init_asset_store(backend: str = None) -> bool:
    """
    Initialize the asset store with the specified backend.

    Args:
        backend: "local" or "gridfs". Uses env var if not specified.

    Returns:
        True if connected successfully
    """
    global _store_instance

    if backend:
        os.environ["ASSET_STORE_BACKEND"] = backend

    _store_instance = None  # Reset
    store = get_asset_store()
    return store.is_connected()
