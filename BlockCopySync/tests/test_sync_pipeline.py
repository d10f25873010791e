"""
Asset Sync Pipeline Tests

Run with: pytest tests/test_sync_pipeline.py -v
"""

import pytest
import requests

from blockcopy_core.config.settings import SyncConfig
from blockcopy_core.constants import wrap_locator
from blockcopy_core.sync import (
    AssetFetcher,
    AssetSyncPipeline,
    ContentSaveHook,
    MemoryResolutionCache,
    MongoResolutionCache,
    ReentrancyGuard,
    SyncState,
)
from content_store import InMemoryContentStore

from fakes import FakeAssetStore, FakeCollection, StubSession, image_response

URL_A = "https://src.example.com/uploads/a.jpg"
URL_B = "https://src.example.com/uploads/b.png"


def portable(*urls):
    fields = ",".join(f'"img{i}":{wrap_locator(url)}' for i, url in enumerate(urls))
    return '<!-- wp:acf/gallery {"data":{' + fields + '},"mode":"preview"} /-->'


@pytest.fixture
def session():
    return StubSession({
        URL_A: image_response(b"jpeg bytes", "image/jpeg"),
        URL_B: image_response(b"png bytes", "image/png; charset=binary"),
    })


@pytest.fixture
def store():
    return FakeAssetStore(start_id=100)


@pytest.fixture
def cache():
    return MemoryResolutionCache(ttl_seconds=3600)


def make_pipeline(session, store, cache, content_store=None, guard=None):
    return AssetSyncPipeline(
        fetcher=AssetFetcher(timeout=5, session=session),
        asset_store=store,
        cache=cache,
        content_store=content_store,
        guard=guard,
        config=SyncConfig(),
    )


class TestPipelineStates:
    """Tests for the state machine outcomes."""

    def test_no_locators_is_skipped(self, session, store, cache):
        """Content without sentinels: no network, no upload, no write."""
        content_store = InMemoryContentStore()
        pipeline = make_pipeline(session, store, cache, content_store)

        result = pipeline.run("1", '<!-- wp:acf/hero {"data":{"image":7},"mode":"preview"} /-->')

        assert result.state == SyncState.SKIPPED
        assert result.transitions == [SyncState.SCANNING, SyncState.SKIPPED]
        assert session.calls == []
        assert store.uploads == []
        assert content_store.get_content("1") is None
        assert not result.changed

    def test_all_locators_resolve(self, session, store, cache):
        """Every sentinel becomes a fresh local ID."""
        pipeline = make_pipeline(session, store, cache)

        result = pipeline.run("1", portable(URL_A, URL_B))

        assert result.state == SyncState.IDLE
        assert result.transitions == [
            SyncState.SCANNING, SyncState.FETCHING, SyncState.REWRITING, SyncState.IDLE,
        ]
        assert sorted(result.resolved.values()) == [100, 101]
        assert result.content == (
            '<!-- wp:acf/gallery {"data":{"img0":%d,"img1":%d},"mode":"preview"} /-->'
            % (result.resolved[URL_A], result.resolved[URL_B])
        )
        assert result.uploaded == 2
        assert result.substitutions == 2

    def test_upload_receives_name_and_type(self, session, store, cache):
        """The store is offered the URL basename and a bare media type."""
        make_pipeline(session, store, cache).run("1", portable(URL_B))

        asset = store.assets[100]
        assert asset["name"] == "b.png"
        assert asset["data"] == b"png bytes"
        assert asset["content_type"] == "image/png"

    def test_partial_failure(self, session, store, cache):
        """A timed-out locator stays a sentinel, the other is rewritten."""
        session.routes[URL_B] = requests.Timeout("read timed out")
        pipeline = make_pipeline(session, store, cache)

        result = pipeline.run("1", portable(URL_A, URL_B))

        assert result.state == SyncState.FAILED_PARTIAL
        assert result.resolved == {URL_A: 100}
        assert "timed out" in result.failures[URL_B]
        assert wrap_locator(URL_B) in result.content
        assert wrap_locator(URL_A) not in result.content
        assert '"img0":100' in result.content

    def test_upload_failure_is_recorded(self, session, cache):
        """Store errors are per-locator failures too."""
        store = FakeAssetStore(fail_names={"a.jpg"})
        result = make_pipeline(session, store, cache).run("1", portable(URL_A))

        assert result.state == SyncState.FAILED_PARTIAL
        assert result.content == result.original
        assert "Disk full" in result.failures[URL_A]

    def test_http_error_is_recorded(self, store, cache):
        """A 404 for the locator fails only that locator."""
        session = StubSession({URL_A: image_response()})
        result = make_pipeline(session, store, cache).run("1", portable(URL_A, URL_B))

        assert result.state == SyncState.FAILED_PARTIAL
        assert list(result.failures) == [URL_B]


class TestPipelineCache:
    """Tests for resolution cache use."""

    def test_same_locator_fetched_once(self, session, store, cache):
        """Two runs inside the TTL window: one download, one upload."""
        pipeline = make_pipeline(session, store, cache)

        first = pipeline.run("1", portable(URL_A))
        second = pipeline.run("2", portable(URL_A))

        assert session.count("GET", URL_A) == 1
        assert store.uploads == ["a.jpg"]
        assert first.resolved == second.resolved == {URL_A: 100}
        assert second.cache_hits == 1
        assert second.uploaded == 0

    def test_duplicate_locator_in_one_document(self, session, store, cache):
        """A locator used twice in one document is fetched once and replaced twice."""
        result = make_pipeline(session, store, cache).run("1", portable(URL_A, URL_A))

        assert session.count("GET", URL_A) == 1
        assert result.substitutions == 2
        assert result.content.count("100") == 2

    def test_failures_are_not_cached(self, session, store, cache):
        """A failed locator is retried on the next run."""
        session.routes[URL_A] = requests.Timeout("slow")
        pipeline = make_pipeline(session, store, cache)
        pipeline.run("1", portable(URL_A))

        session.routes[URL_A] = image_response()
        result = pipeline.run("1", portable(URL_A))

        assert result.state == SyncState.IDLE
        assert session.count("GET", URL_A) == 2

    def test_cache_write_failure_keeps_uploaded_ids(self, session, store):
        """A failing cache backend does not abort the save or lose uploads."""
        cache = MongoResolutionCache(FakeCollection(fail_writes=True))
        content_store = InMemoryContentStore()
        pipeline = make_pipeline(session, store, cache, content_store)
        content_store.add_save_listener(ContentSaveHook(pipeline))

        outcome = content_store.save_content("1", portable(URL_A, URL_B))

        result = outcome.listener_results[0]
        assert result.state == SyncState.IDLE
        assert sorted(result.resolved.values()) == [100, 101]
        assert wrap_locator(URL_A) not in outcome.document.content
        assert wrap_locator(URL_B) not in outcome.document.content
        assert len(store.uploads) == 2

    def test_cache_read_failure_falls_back_to_fetch(self, session, store):
        """When the cache cannot be read the locator is fetched."""
        cache = MongoResolutionCache(FakeCollection(fail_reads=True))
        result = make_pipeline(session, store, cache).run("1", portable(URL_A))

        assert result.state == SyncState.IDLE
        assert result.resolved == {URL_A: 100}
        assert session.count("GET", URL_A) == 1


class TestPersistence:
    """Tests for the write-back and the save hook."""

    def test_idempotent_after_import(self, session, store, cache):
        """Running again on imported content is a no-op."""
        pipeline = make_pipeline(session, store, cache)
        imported = pipeline.run("1", portable(URL_A)).content

        again = pipeline.run("1", imported)

        assert again.state == SyncState.SKIPPED
        assert again.content == imported
        assert session.count("GET") == 1

    def test_save_hook_runs_pipeline_once(self, session, store, cache):
        """The write-back save does not trigger the pipeline again."""
        guard = ReentrancyGuard()
        content_store = InMemoryContentStore()
        pipeline = make_pipeline(session, store, cache, content_store, guard)

        runs = []
        original_run = pipeline.run

        def counting_run(content_id, content):
            runs.append(content_id)
            return original_run(content_id, content)

        pipeline.run = counting_run
        content_store.add_save_listener(ContentSaveHook(pipeline, guard))

        outcome = content_store.save_content("page-1", portable(URL_A))

        assert runs == ["page-1"]
        assert outcome.document.content == (
            '<!-- wp:acf/gallery {"data":{"img0":100},"mode":"preview"} /-->'
        )
        assert outcome.document.revision == 2
        assert outcome.listener_results[0].persisted
        assert outcome.listener_results[0].state == SyncState.IDLE
        assert not guard.is_suppressed("page-1")

    def test_hook_skips_autosave_and_revision(self, session, store, cache):
        """Autosaves and revisions never import."""
        content_store = InMemoryContentStore()
        pipeline = make_pipeline(session, store, cache, content_store)
        content_store.add_save_listener(ContentSaveHook(pipeline))

        content_store.save_content("1", portable(URL_A), is_autosave=True)
        content_store.save_content("1", portable(URL_A), is_revision=True)

        assert session.calls == []
        assert wrap_locator(URL_A) in content_store.get_content("1").content

    def test_hook_ignores_missing_content(self, session, store, cache):
        """A save without content is ignored."""
        hook = ContentSaveHook(make_pipeline(session, store, cache))
        assert hook("1", None) is None

    def test_unchanged_content_not_written(self, session, cache):
        """When nothing resolves, the content store is not touched."""
        store = FakeAssetStore(fail_names={"a.jpg"})
        content_store = InMemoryContentStore()
        result = make_pipeline(session, store, cache, content_store).run("1", portable(URL_A))

        assert not result.persisted
        assert content_store.get_content("1") is None


class TestReentrancyGuard:
    """Tests for the suppression scope."""

    def test_scope(self):
        """Suppression lasts for the block and matches string and int IDs."""
        guard = ReentrancyGuard()
        with guard.suppressed(42):
            assert guard.is_suppressed("42")
            with guard.suppressed("42"):
                assert guard.is_suppressed(42)
            assert guard.is_suppressed(42)
        assert not guard.is_suppressed(42)

    def test_released_on_error(self):
        """An exception inside the block still releases the ID."""
        guard = ReentrancyGuard()
        with pytest.raises(RuntimeError):
            with guard.suppressed(1):
                raise RuntimeError("write failed")
        assert not guard.is_suppressed(1)
