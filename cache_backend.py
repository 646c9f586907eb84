"""Unified caching interface with Redis / in-memory swap.

Provides a simple get/set/delete/clear API. When REDIS_URL is configured
and the server answers a PING, uses Redis; otherwise falls back
to an in-process TTL cache.

On top of the raw API sits path/tag revalidation: every path or tag has a
version counter, and cached() builds its key from the current versions of
the tags it depends on. revalidate_tag() bumps the counter, so the next
read misses and reloads from the database.

Usage:
    from cache_backend import init_cache, get_cache, cached, revalidate_tag
    init_cache(app)          # called once in create_app()
    rows = cached(["grades-1-2-3"], "overview:1:2:3", loader)
    revalidate_tag("grades-1-2-3")
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any, Protocol

import redis

logger = logging.getLogger(__name__)

VERSION_PREFIX = "rev:"

# ── Protocol ───────────────────────────────────────────────

class CacheBackend(Protocol):
    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any, ttl: int = 300) -> None: ...
    def incr(self, key: str) -> int: ...
    def delete(self, key: str) -> None: ...
    def clear(self) -> None: ...
    def cleanup(self) -> int: ...


def _encode(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, default=str)


def _decode(raw: str | bytes) -> Any:
    if isinstance(raw, bytes):
        raw = raw.decode()
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


# ── In-Memory Implementation ──────────────────────────────

class InMemoryCache:
    """Dict with expiry timestamps and eviction at MAX_ENTRIES."""

    MAX_ENTRIES = 1000

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float]] = {}  # key -> (raw json, expires_at)
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            raw, expires_at = entry
            if time.time() > expires_at:
                del self._store[key]
                return None
        return _decode(raw)

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        raw = _encode(value)
        with self._lock:
            if key not in self._store and len(self._store) >= self.MAX_ENTRIES:
                self._evict_soonest()
            self._store[key] = (raw, time.time() + ttl)

    def incr(self, key: str) -> int:
        with self._lock:
            raw, _ = self._store.get(key, ("0", 0.0))
            value = int(raw) + 1
            # Version counters never expire
            self._store[key] = (str(value), float("inf"))
            return value

    def _evict_soonest(self) -> None:
        if self._store:
            del self._store[min(self._store, key=lambda k: self._store[k][1])]

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def cleanup(self) -> int:
        """Remove all expired entries. Returns count removed."""
        now = time.time()
        with self._lock:
            expired = [k for k, (_, exp) in self._store.items() if now > exp]
            for k in expired:
                del self._store[k]
            return len(expired)


# ── Redis Implementation ──────────────────────────────────

class RedisCache:
    """Namespaced keys on a shared Redis; failures degrade to cache misses.

    The same server backs the RQ queue, so clear() removes only keys under
    KEY_PREFIX instead of flushing the database.
    """

    KEY_PREFIX = "educonnect:cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    def _key(self, key: str) -> str:
        return self.KEY_PREFIX + key

    def get(self, key: str) -> Any | None:
        try:
            raw = self._redis.get(self._key(key))
        except redis.RedisError as e:
            logger.warning("Redis GET failed (key=%s): %s", key, e)
            return None
        return None if raw is None else _decode(raw)

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        try:
            self._redis.setex(self._key(key), ttl, _encode(value))
        except redis.RedisError as e:
            logger.warning("Redis SET failed (key=%s): %s", key, e)

    def incr(self, key: str) -> int:
        try:
            return int(self._redis.incr(self._key(key)))
        except redis.RedisError as e:
            logger.warning("Redis INCR failed (key=%s): %s", key, e)
            return 0

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(self._key(key))
        except redis.RedisError as e:
            logger.warning("Redis DELETE failed (key=%s): %s", key, e)

    def clear(self) -> None:
        try:
            keys = list(self._redis.scan_iter(match=self.KEY_PREFIX + "*"))
            if keys:
                self._redis.delete(*keys)
        except redis.RedisError as e:
            logger.warning("Redis CLEAR failed: %s", e)

    def cleanup(self) -> int:
        # Redis expires keys itself
        return 0


# ── Module-level singleton ────────────────────────────────

_cache: CacheBackend | None = None
_default_ttl = 300


def init_cache(app) -> None:
    """Pick Redis when REDIS_URL answers a PING, else a per-process cache."""
    global _cache, _default_ttl

    _default_ttl = int(app.config.get("CACHE_DEFAULT_TTL", 300))
    redis_url = app.config.get("REDIS_URL", "")
    if redis_url:
        client = redis.Redis.from_url(redis_url, socket_connect_timeout=2)
        try:
            client.ping()
        except redis.RedisError as e:
            app.logger.warning("Redis unreachable (%s), using in-memory cache", e)
        else:
            _cache = RedisCache(client)
            app.logger.info("Cache backend: Redis")
            return

    _cache = InMemoryCache()
    app.logger.info("Cache backend: in-memory")


def get_cache() -> CacheBackend:
    """Return the active cache backend. Lazily initializes if needed."""
    global _cache
    if _cache is None:
        _cache = InMemoryCache()
    return _cache


# ── Revalidation ──────────────────────────────────────────

def _version(name: str) -> int:
    value = get_cache().get(VERSION_PREFIX + name)
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def revalidate_tag(tag: str) -> int:
    """Mark every cached read depending on ``tag`` as stale."""
    version = get_cache().incr(VERSION_PREFIX + tag)
    logger.debug("revalidate tag=%s version=%s", tag, version)
    return version


def revalidate_path(path: str) -> int:
    """Mark every cached read rendered for ``path`` as stale."""
    return revalidate_tag(f"path:{path}")


def cached(tags: Iterable[str], key: str, loader: Callable[[], Any], ttl: int | None = None) -> Any:
    """Read-through cache keyed on ``key`` plus the current tag versions."""
    tags = list(tags)
    stamp = ",".join(f"{t}@{_version(t)}" for t in tags)
    full_key = f"{key}|{stamp}"
    cache = get_cache()
    hit = cache.get(full_key)
    if hit is not None:
        return hit
    value = loader()
    cache.set(full_key, value, ttl or _default_ttl)
    return value
