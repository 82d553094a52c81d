"""
Tests for the search result cache: file backend, Redis backend and the
SearchCache facade.
"""

import os
import pickle
import time
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from contracts.errors import CacheError, ProviderError
from contracts.models import CacheEntry, Provider, ProviderFailure, SearchType
from utils.search_cache import (
    API_TTL,
    DEFAULT_TTL,
    PODCAST_TTL,
    FileCacheBackend,
    RedisCacheBackend,
    SearchCache,
    select_cache_backend,
)

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self) -> None:
        self.now = time.time()

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def file_backend(tmp_path):
    return FileCacheBackend(str(tmp_path), namespace="test_search_")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(file_backend, clock):
    return SearchCache(file_backend, version="1", clock=clock)


class TestFileCacheBackend:
    """Pickled entries on disk, one file per key."""

    def test_set_then_get(self, file_backend):
        entry = CacheEntry(key="k1", data={"feeds": [1, 2]}, version="1")
        file_backend.set("k1", entry, 60)
        loaded = file_backend.get("k1")
        assert isinstance(loaded, CacheEntry)
        assert loaded.data == {"feeds": [1, 2]}

    def test_missing_key(self, file_backend):
        assert file_backend.get("nope") is None

    def test_file_name_uses_namespace(self, file_backend, tmp_path):
        file_backend.set("abc", CacheEntry(key="abc"), 60)
        assert (tmp_path / "test_search_abc.pkl").exists()

    def test_expired_entry_is_removed(self, file_backend, tmp_path):
        file_backend.set("old", CacheEntry(key="old", expiry=1.0), 60)
        assert file_backend.get("old") is None
        assert not (tmp_path / "test_search_old.pkl").exists()

    def test_corrupt_file_raises_cache_error(self, file_backend, tmp_path):
        (tmp_path / "test_search_bad.pkl").write_bytes(b"not a pickle")
        with pytest.raises(CacheError):
            file_backend.get("bad")

    def test_unsupported_pickle_protocol_raises_cache_error(self, file_backend, tmp_path):
        (tmp_path / "test_search_proto.pkl").write_bytes(b"\x80\x63")
        with pytest.raises(CacheError):
            file_backend.get("proto")

    def test_non_entry_raises_cache_error(self, file_backend, tmp_path):
        with open(tmp_path / "test_search_raw.pkl", "wb") as f:
            pickle.dump({"plain": "dict"}, f)
        with pytest.raises(CacheError):
            file_backend.get("raw")

    def test_clear_all_only_touches_namespace(self, file_backend, tmp_path):
        file_backend.set("a", CacheEntry(key="a"), 60)
        file_backend.set("b", CacheEntry(key="b"), 60)
        (tmp_path / "other_file.pkl").write_bytes(b"x")

        assert file_backend.clear_all() == 2
        assert (tmp_path / "other_file.pkl").exists()
        assert not any(name.endswith(".lock") for name in os.listdir(tmp_path))

    def test_stats(self, file_backend):
        file_backend.set("a", CacheEntry(key="a"), 60)
        stats = file_backend.stats()
        assert stats["backend"] == "file"
        assert stats["total_keys"] == 1
        assert stats["total_bytes"] > 0


class TestRedisCacheBackend:
    """Redis backend against a mocked synchronous client."""

    def test_set_uses_group_prefix_and_ttl(self):
        client = MagicMock()
        backend = RedisCacheBackend(client, group="podcast_search")
        backend.set("search_abc", CacheEntry(key="search_abc"), 1800)

        args, kwargs = client.set.call_args
        assert args[0] == "podcast_search:search_abc"
        assert kwargs == {"ex": 1800}

    def test_get_unpickles_entry(self):
        client = MagicMock()
        client.get.return_value = pickle.dumps(CacheEntry(key="k", data=[1]))
        backend = RedisCacheBackend(client, group="g")

        entry = backend.get("k")
        client.get.assert_called_once_with("g:k")
        assert entry.data == [1]

    def test_get_missing(self):
        client = MagicMock()
        client.get.return_value = None
        assert RedisCacheBackend(client, group="g").get("k") is None

    def test_redis_error_becomes_cache_error(self):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        with pytest.raises(CacheError):
            RedisCacheBackend(client, group="g").get("k")

    def test_undecodable_payload_becomes_cache_error(self):
        client = MagicMock()
        client.get.return_value = b"\x80\x63"
        with pytest.raises(CacheError):
            RedisCacheBackend(client, group="g").get("k")

    def test_clear_all_scans_group(self):
        client = MagicMock()
        client.scan.side_effect = [(5, [b"g:a", b"g:b"]), (0, [b"g:c"])]
        client.delete.side_effect = [2, 1]
        backend = RedisCacheBackend(client, group="g")

        assert backend.clear_all() == 3
        assert client.scan.call_args_list[0].kwargs["match"] == "g:*"

    def test_clear_all_without_group_is_a_no_op(self):
        client = MagicMock()
        assert RedisCacheBackend(client).clear_all() == 0
        client.scan.assert_not_called()


class TestSelectCacheBackend:
    def test_no_redis_host_uses_file_backend(self, tmp_path):
        backend = select_cache_backend(None, cache_dir=str(tmp_path))
        assert isinstance(backend, FileCacheBackend)

    def test_unreachable_redis_falls_back_to_file(self, tmp_path, monkeypatch):
        client = MagicMock()
        client.ping.side_effect = RedisConnectionError("refused")
        monkeypatch.setattr("utils.search_cache.get_redis_client", lambda *a, **k: client)

        backend = select_cache_backend("redis.local", cache_dir=str(tmp_path))
        assert isinstance(backend, FileCacheBackend)

    def test_reachable_redis(self, tmp_path, monkeypatch):
        client = MagicMock()
        monkeypatch.setattr("utils.search_cache.get_redis_client", lambda *a, **k: client)

        backend = select_cache_backend("redis.local", group="g", cache_dir=str(tmp_path))
        assert isinstance(backend, RedisCacheBackend)
        assert backend.group == "g"


class TestSearchCache:
    """Facade behaviour: versions, expiry, TTLs and absorbed failures."""

    def test_round_trip(self, cache):
        assert cache.set("k", {"items": [1]}, ttl=60) is True
        assert cache.get("k") == {"items": [1]}
        assert cache.hits == 1

    def test_miss_after_clear_all(self, cache):
        cache.set("k", {"items": [1]}, ttl=60)
        assert cache.clear_all() == 1
        assert cache.get("k") is None

    def test_expired_entry_is_a_miss(self, cache, clock):
        cache.set("k", "value", ttl=60)
        clock.now += 61
        assert cache.get("k") is None
        assert cache.misses == 1

    def test_version_mismatch_is_a_miss(self, file_backend, clock):
        SearchCache(file_backend, version="1", clock=clock).set("k", "v", ttl=60)
        assert SearchCache(file_backend, version="2", clock=clock).get("k") is None

    def test_ttl_by_search_type(self, cache):
        assert cache.ttl_for_type(SearchType.BY_ADVANCED_PODCAST) == PODCAST_TTL
        assert cache.ttl_for_type("byperson") == API_TTL
        assert cache.ttl_for_type(SearchType.BY_YOUTUBE) == DEFAULT_TTL
        assert cache.ttl_for_type("unknown") == DEFAULT_TTL

    def test_set_records_search_type_ttl(self, file_backend, clock):
        backend = MagicMock(wraps=file_backend)
        cache = SearchCache(backend, clock=clock)
        cache.set("k", "v", search_type="byadvancedpodcast")

        key, entry, ttl = backend.set.call_args.args
        assert ttl == PODCAST_TTL
        assert entry.expiry == clock.now + PODCAST_TTL

    def test_backend_read_failure_is_a_miss(self, clock):
        backend = MagicMock()
        backend.get.side_effect = CacheError("disk gone")
        cache = SearchCache(backend, clock=clock)

        assert cache.get("k") is None
        assert cache.errors == 1

    def test_corrupt_file_is_a_miss_and_is_deleted(self, cache, file_backend, tmp_path):
        (tmp_path / "test_search_k.pkl").write_bytes(b"\x80\x63")

        assert cache.get("k") is None
        assert cache.errors == 1
        assert not (tmp_path / "test_search_k.pkl").exists()

    def test_read_failure_deletes_key(self, clock):
        backend = MagicMock()
        backend.get.side_effect = CacheError("bad entry")
        SearchCache(backend, clock=clock).get("k")
        backend.delete.assert_called_once_with("k")

    def test_backend_write_failure_returns_false(self, clock):
        backend = MagicMock()
        backend.set.side_effect = CacheError("disk full")
        assert SearchCache(backend, clock=clock).set("k", "v", ttl=60) is False

    def test_clear_all_failure_returns_zero(self, clock):
        backend = MagicMock()
        backend.clear_all.side_effect = CacheError("down")
        assert SearchCache(backend, clock=clock).clear_all() == 0

    def test_generate_key_is_order_independent(self):
        first = SearchCache.generate_key("bytitle", {"term": "x", "page": 1})
        second = SearchCache.generate_key(SearchType.BY_TITLE, {"page": 1, "term": "x"})
        assert first == second
        assert first.startswith("search_")

    def test_generate_key_differs_by_search_type(self):
        params = {"term": "x"}
        assert SearchCache.generate_key("bytitle", params) != SearchCache.generate_key(
            "byperson", params
        )

    @pytest.mark.asyncio
    async def test_remember_caches_producer_result(self, cache):
        calls = []

        async def producer():
            calls.append(1)
            return {"items": []}

        assert await cache.remember("k", producer, 60) == {"items": []}
        assert await cache.remember("k", producer, 60) == {"items": []}
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_remember_skips_error_results(self, cache):
        failure = ProviderError(Provider.TADDY, ProviderFailure.TIMEOUT, "timed out")

        async def producer():
            return failure

        assert await cache.remember("k", producer, 60) is failure
        assert cache.get("k") is None
        assert cache.errors == 0

    def test_get_stats(self, cache):
        cache.set("k", "v", ttl=60)
        cache.get("k")
        stats = cache.get_stats()
        assert stats["backend"] == "file"
        assert stats["hits"] == 1
        assert stats["version"] == "1"
