"""Tests for cache_backend.py — backends and tag revalidation."""

from __future__ import annotations

import time
from unittest.mock import MagicMock

import pytest


@pytest.fixture
def fresh_cache(monkeypatch):
    import cache_backend
    cache = cache_backend.InMemoryCache()
    monkeypatch.setattr(cache_backend, "_cache", cache)
    return cache


class TestInMemoryCache:
    def test_set_and_get(self):
        from cache_backend import InMemoryCache
        cache = InMemoryCache()
        cache.set("key1", {"data": "value"}, ttl=60)
        assert cache.get("key1") == {"data": "value"}

    def test_get_missing_key(self):
        from cache_backend import InMemoryCache
        assert InMemoryCache().get("nonexistent") is None

    def test_ttl_expiry(self):
        from cache_backend import InMemoryCache
        cache = InMemoryCache()
        cache.set("expiring", "data", ttl=1)
        assert cache.get("expiring") == "data"
        time.sleep(1.1)
        assert cache.get("expiring") is None

    def test_delete_and_clear(self):
        from cache_backend import InMemoryCache
        cache = InMemoryCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.delete("a")
        assert cache.get("a") is None
        cache.clear()
        assert cache.get("b") is None

    def test_incr_never_expires(self):
        from cache_backend import InMemoryCache
        cache = InMemoryCache()
        assert cache.incr("rev:x") == 1
        assert cache.incr("rev:x") == 2
        assert cache.cleanup() == 0
        assert cache.get("rev:x") == 2

    def test_eviction(self, monkeypatch):
        from cache_backend import InMemoryCache
        monkeypatch.setattr(InMemoryCache, "MAX_ENTRIES", 2)
        cache = InMemoryCache()
        cache.set("short", 1, ttl=10)
        cache.set("long", 2, ttl=100)
        cache.set("new", 3, ttl=100)
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_cleanup(self):
        from cache_backend import InMemoryCache
        cache = InMemoryCache()
        cache.set("gone", 1, ttl=-1)
        cache.set("kept", 2, ttl=60)
        assert cache.cleanup() == 1


class TestRedisCache:
    def test_round_trip_json(self):
        from cache_backend import RedisCache
        client = MagicMock()
        client.get.return_value = b'{"a": 1}'
        cache = RedisCache(client)
        cache.set("k", {"a": 1}, ttl=30)
        client.setex.assert_called_once_with("educonnect:cache:k", 30, '{"a": 1}')
        assert cache.get("k") == {"a": 1}

    def test_errors_are_contained(self):
        from cache_backend import RedisCache
        import redis
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.incr.side_effect = redis.ConnectionError("down")
        cache = RedisCache(client)
        assert cache.get("k") is None
        assert cache.incr("k") == 0

    def test_clear_only_touches_namespace(self):
        from cache_backend import RedisCache
        client = MagicMock()
        client.scan_iter.return_value = iter([b"educonnect:cache:a", b"educonnect:cache:b"])
        RedisCache(client).clear()
        client.scan_iter.assert_called_once_with(match="educonnect:cache:*")
        client.delete.assert_called_once_with(b"educonnect:cache:a", b"educonnect:cache:b")
        client.flushdb.assert_not_called()


class TestRevalidation:
    def test_cached_loads_once(self, fresh_cache):
        from cache_backend import cached
        loader = MagicMock(return_value=[1, 2])
        assert cached(["grades-1"], "overview", loader) == [1, 2]
        assert cached(["grades-1"], "overview", loader) == [1, 2]
        assert loader.call_count == 1

    def test_revalidate_tag_forces_reload(self, fresh_cache):
        from cache_backend import cached, revalidate_tag
        loader = MagicMock(side_effect=[["old"], ["new"]])
        cached(["grades-1"], "overview", loader)
        revalidate_tag("grades-1")
        assert cached(["grades-1"], "overview", loader) == ["new"]

    def test_other_tags_untouched(self, fresh_cache):
        from cache_backend import cached, revalidate_tag
        loader = MagicMock(return_value="x")
        cached(["grades-1"], "a", loader)
        revalidate_tag("grades-2")
        cached(["grades-1"], "a", loader)
        assert loader.call_count == 1

    def test_revalidate_path(self, fresh_cache):
        from cache_backend import cached, revalidate_path
        loader = MagicMock(return_value="x")
        cached(["path:/dashboard/admin/classes"], "classes", loader)
        revalidate_path("/dashboard/admin/classes")
        cached(["path:/dashboard/admin/classes"], "classes", loader)
        assert loader.call_count == 2


class TestInitCache:
    def test_in_memory_without_redis(self, app):
        import cache_backend
        cache_backend.init_cache(app)
        assert isinstance(cache_backend.get_cache(), cache_backend.InMemoryCache)

    def test_falls_back_when_redis_unreachable(self, app):
        import cache_backend
        app.config["REDIS_URL"] = "redis://localhost:1"
        cache_backend.init_cache(app)
        assert isinstance(cache_backend.get_cache(), cache_backend.InMemoryCache)
