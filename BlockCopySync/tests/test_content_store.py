"""
Content Store Tests

Run with: pytest tests/test_content_store.py -v
"""

import pytest
from pymongo.errors import PyMongoError

import content_store
from blockcopy_core.errors import ContentStoreError
from content_store import (
    InMemoryContentStore,
    MongoContentStore,
    MongoDBConfig,
    get_content_store,
    init_content_store,
)


class FakeContentCollection:
    """find_one / find_one_and_update keyed by content_id."""

    def __init__(self, fail=False):
        self.docs = {}
        self.fail = fail

    def find_one(self, query):
        if self.fail:
            raise PyMongoError("down")
        doc = self.docs.get(query["content_id"])
        return dict(doc) if doc else None

    def find_one_and_update(self, query, update, upsert=False, return_document=None):
        if self.fail:
            raise PyMongoError("down")
        key = query["content_id"]
        doc = self.docs.setdefault(key, {"content_id": key})
        doc.update(update.get("$set", {}))
        for name, step in update.get("$inc", {}).items():
            doc[name] = doc.get(name, 0) + step
        return dict(doc)


class TestInMemoryContentStore:
    """Tests for the in-memory backend."""

    def test_revision_increments(self):
        """Each write bumps the revision."""
        store = InMemoryContentStore()
        assert store.save_content("a", "one").document.revision == 1
        assert store.save_content("a", "two").document.revision == 2
        assert store.get_content("a").content == "two"

    def test_ids_are_strings(self):
        """Integer and string IDs address the same document."""
        store = InMemoryContentStore()
        store.save_content(42, "body")
        assert store.get_content("42").content == "body"

    def test_listeners_receive_flags(self):
        """Listeners get the content and the save flags."""
        store = InMemoryContentStore()
        calls = []
        store.add_save_listener(lambda cid, content, **flags: calls.append((cid, content, flags)) or "ok")

        outcome = store.save_content("a", "body", is_autosave=True)
        assert outcome.listener_results == ["ok"]
        assert calls == [("a", "body", {"is_autosave": True, "is_revision": False})]

    def test_listener_write_back_is_returned(self):
        """A listener that rewrites the content is reflected in the result."""
        store = InMemoryContentStore()

        def rewrite(cid, content, **flags):
            if content == "raw":
                store.update_content(cid, "cooked")

        store.add_save_listener(rewrite)
        outcome = store.save_content("a", "raw")
        assert outcome.document.content == "cooked"
        assert outcome.document.revision == 2

    def test_remove_listener(self):
        """Removed listeners are not called."""
        store = InMemoryContentStore()
        calls = []
        listener = lambda *args, **kwargs: calls.append(args)
        store.add_save_listener(listener)
        store.remove_save_listener(listener)
        store.remove_save_listener(listener)

        store.save_content("a", "body")
        assert calls == []


class TestMongoContentStore:
    """Tests for the MongoDB backend against a fake collection."""

    def test_save_and_load(self):
        """Documents are upserted with an increasing revision."""
        store = MongoContentStore(MongoDBConfig(), collection=FakeContentCollection())
        assert store.save_content("p1", "first").document.revision == 1
        assert store.save_content("p1", "second").document.revision == 2
        assert store.get_content("p1").content == "second"
        assert store.get_content("missing") is None

    def test_errors_are_wrapped(self):
        """Driver errors surface as ContentStoreError."""
        store = MongoContentStore(MongoDBConfig(), collection=FakeContentCollection(fail=True))
        with pytest.raises(ContentStoreError):
            store.save_content("p1", "body")
        with pytest.raises(ContentStoreError):
            store.get_content("p1")

    def test_from_env(self, monkeypatch):
        """Connection settings are read from the environment."""
        monkeypatch.setenv("MONGODB_DATABASE", "sites")
        monkeypatch.setenv("MONGODB_CONTENT_COLLECTION", "pages")
        config = MongoDBConfig.from_env()
        assert config.database == "sites"
        assert config.collection == "pages"


class TestSingleton:
    """Tests for the content store singleton."""

    def test_default_backend_is_memory(self, monkeypatch):
        """Without CONTENT_STORE_BACKEND the in-memory store is used."""
        monkeypatch.setattr(content_store, "_content_store", None)
        monkeypatch.delenv("CONTENT_STORE_BACKEND", raising=False)
        assert isinstance(get_content_store(), InMemoryContentStore)
        assert get_content_store() is get_content_store()

    def test_init_replaces_instance(self, monkeypatch):
        """init_content_store installs a given store."""
        monkeypatch.setattr(content_store, "_content_store", None)
        store = InMemoryContentStore()
        assert init_content_store(store) is store
