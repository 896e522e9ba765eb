"""Best-effort key-value cache in front of the listing read paths.

The gateway never lets a cache failure reach the caller: transport errors
are logged and reported as a miss. Keys follow ``namespace:version:...``.
"""
from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from functools import lru_cache
from typing import Any, Callable, Protocol

import redis
from redis.exceptions import RedisError
from sqlalchemy import event
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Business, Service

logger = logging.getLogger(__name__)

PUBLIC_NAMESPACE = "public:businesses"
NEARBY_NAMESPACE = "nearby"
SEARCH_NAMESPACE = "search"
AUTOCOMPLETE_NAMESPACE = "autocomplete"
PLACES_NAMESPACE = "places"

LISTING_PREFIXES: tuple[str, ...] = (
    f"{PUBLIC_NAMESPACE}:",
    f"{NEARBY_NAMESPACE}:",
    f"{SEARCH_NAMESPACE}:",
    f"{AUTOCOMPLETE_NAMESPACE}:",
)

_INVALIDATE_FLAG = "listing_cache_dirty"


class CacheBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_s: int) -> None: ...

    def delete_prefix(self, prefix: str) -> int: ...


class MemoryCacheBackend:
    """Process-local TTL store used when no redis URL is configured.

    Expired entries are swept whenever a new key would push the store to
    ``max_entries``; if it is still full after the sweep, the entries closest
    to expiry are dropped first.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10_000) -> None:
        self._clock = clock
        self._max_entries = max(1, max_entries)
        self._entries: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_s: int) -> None:
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self._max_entries:
                self._evict(now)
            self._entries[key] = (now + max(1, ttl_s), value)

    def _evict(self, now: float) -> None:
        # Caller holds the lock.
        for key in [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]:
            del self._entries[key]
        overflow = len(self._entries) - self._max_entries + 1
        if overflow > 0:
            soonest = sorted(self._entries, key=lambda key: self._entries[key][0])[:overflow]
            for key in soonest:
                del self._entries[key]

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend:
    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str, socket_timeout_s: float) -> "RedisCacheBackend":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout_s,
            socket_connect_timeout=socket_timeout_s,
        )
        return cls(client)

    def get(self, key: str) -> str | None:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl_s: int) -> None:
        self.client.setex(key, max(1, ttl_s), value)

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        batch: list[str] = []
        for key in self.client.scan_iter(match=f"{prefix}*", count=500):
            batch.append(key)
            if len(batch) >= 500:
                deleted += self.client.delete(*batch)
                batch = []
        if batch:
            deleted += self.client.delete(*batch)
        return deleted


class CacheKeyBuilder:
    def __init__(self, version: str) -> None:
        self.version = version

    def build(self, namespace: str, *parts: object) -> str:
        formatted = [namespace, self.version]
        formatted.extend("" if part is None else str(part) for part in parts)
        return ":".join(formatted)

    @staticmethod
    def coordinate(value: float) -> str:
        return f"{value:.4f}"

    @staticmethod
    def hash_complex_key(data: dict[str, Any]) -> str:
        serialized = json.dumps(data, sort_keys=True, default=str)
        return hashlib.md5(serialized.encode("utf-8")).hexdigest()[:16]


class CacheGateway:
    def __init__(self, backend: CacheBackend, version: str = settings.cache_version) -> None:
        self.backend = backend
        self.keys = CacheKeyBuilder(version)
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "errors": 0, "invalidations": 0}

    def get(self, key: str) -> Any | None:
        try:
            raw = self.backend.get(key)
        except (RedisError, OSError) as exc:
            self._stats["errors"] += 1
            logger.warning("Cache read failed key=%s error=%s", key, exc)
            raw = None
        if raw is None:
            self._stats["misses"] += 1
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry key=%s", key)
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return value

    def set(self, key: str, value: Any, ttl_s: int) -> None:
        try:
            self.backend.set(key, json.dumps(value, separators=(",", ":"), default=str), ttl_s)
            self._stats["sets"] += 1
        except (RedisError, OSError) as exc:
            self._stats["errors"] += 1
            logger.warning("Cache write failed key=%s error=%s", key, exc)

    def delete_prefix(self, prefix: str) -> int:
        try:
            deleted = self.backend.delete_prefix(prefix)
        except (RedisError, OSError) as exc:
            self._stats["errors"] += 1
            logger.warning("Cache invalidation failed prefix=%s error=%s", prefix, exc)
            return 0
        self._stats["invalidations"] += deleted
        return deleted

    def invalidate_listings(self) -> int:
        deleted = sum(self.delete_prefix(prefix) for prefix in LISTING_PREFIXES)
        logger.info("Invalidated listing cache entries=%s", deleted)
        return deleted

    def get_stats(self) -> dict[str, Any]:
        lookups = self._stats["hits"] + self._stats["misses"]
        hit_rate = round(self._stats["hits"] / lookups * 100.0, 2) if lookups else 0.0
        return {**self._stats, "hit_rate": hit_rate}


class ListingCacheInvalidator:
    """Drops cached listing pages once a transaction touching listings commits."""

    def __init__(self, gateway: CacheGateway) -> None:
        self.gateway = gateway

    def install(self, target: Any) -> None:
        event.listen(target, "after_flush", self._after_flush)
        event.listen(target, "after_commit", self._after_commit)
        event.listen(target, "after_rollback", self._after_rollback)

    @staticmethod
    def _after_flush(session: Session, flush_context: Any) -> None:
        touched = (*session.new, *session.dirty, *session.deleted)
        if any(isinstance(obj, (Business, Service)) for obj in touched):
            session.info[_INVALIDATE_FLAG] = True

    def _after_commit(self, session: Session) -> None:
        if session.info.pop(_INVALIDATE_FLAG, False):
            self.gateway.invalidate_listings()

    @staticmethod
    def _after_rollback(session: Session) -> None:
        session.info.pop(_INVALIDATE_FLAG, None)


@lru_cache(maxsize=1)
def get_cache_gateway() -> CacheGateway:
    if settings.redis_url:
        logger.info("Using redis cache backend")
        return CacheGateway(RedisCacheBackend.from_url(settings.redis_url, settings.cache_socket_timeout_s))
    logger.info("REDIS_URL not set, using in-memory cache backend")
    return CacheGateway(MemoryCacheBackend(max_entries=settings.memory_cache_max_entries))
