"""
Page cache for the Happy Harvests application.

List pages (plantings, nurseries, activities, ...) are expensive joins that
change only when a grower submits a form. Payloads are cached per page path
and invalidated by ``revalidate_path`` after every mutation that touches the
page. Uses Redis when REDIS_URL is reachable, otherwise falls back to a
disk-backed cache (via diskcache) shared across Gunicorn workers.

Invalidation works with a generation counter per path: cache keys embed the
current generation, and revalidating a path bumps it, so stale entries are
never read again and simply expire.
"""
import hashlib
import json
import logging
import os
import pickle
from threading import Lock

import diskcache
import redis

from config import Config

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Redis connection (optional, diskcache when unavailable)
# ---------------------------------------------------------------------------
_REDIS_URL = os.environ.get('REDIS_URL')
_redis_client = None


def _get_redis():
    """Return a connected Redis client, or None if Redis is unavailable."""
    global _redis_client
    if _redis_client is None and _REDIS_URL:
        try:
            _redis_client = redis.Redis.from_url(_REDIS_URL, decode_responses=False)
            _redis_client.ping()
            logger.info("Redis cache backend connected")
        except redis.RedisError:
            logger.info("Redis unavailable, falling back to diskcache")
            _redis_client = None
    return _redis_client

DATA_DIR = os.environ.get('DATA_DIR', 'data' if os.path.exists('data') else '.')
CACHE_DIR = os.path.join(DATA_DIR, 'cache')

# Pages whose payloads are cached
PAGE_PATHS = (
    '/plantings',
    '/nurseries',
    '/activities',
    '/crop-varieties',
    '/locations',
    '/plots',
    '/seeds',
)


class PageCache:
    """
    Cache for rendered page payloads, keyed by page path.
    Uses Redis when available, otherwise falls back to diskcache.
    """

    _PREFIX = 'page:'
    _GEN_PREFIX = 'pagegen:'

    def __init__(self, ttl_seconds=300, enabled=True):
        cache_path = os.path.join(CACHE_DIR, 'pages')
        os.makedirs(cache_path, exist_ok=True)
        self._cache = diskcache.Cache(cache_path, size_limit=100 * 1024 * 1024)  # 100MB
        self._ttl = ttl_seconds
        self._enabled = enabled
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def _generation(self, path):
        r = _get_redis()
        if r:
            try:
                value = r.get(f'{self._GEN_PREFIX}{path}')
                return int(value) if value is not None else 0
            except redis.RedisError:
                logger.debug("Redis generation read failed, falling back to diskcache")
        return self._cache.get(f'{self._GEN_PREFIX}{path}', default=0)

    def _key(self, path, key):
        digest = hashlib.sha256(json.dumps(key, sort_keys=True, default=str).encode()).hexdigest()[:16]
        return f'{self._PREFIX}{path}:{self._generation(path)}:{digest}'

    def get(self, path, key):
        """Return the cached payload for ``(path, key)`` or None."""
        if not self._enabled:
            return None
        cache_key = self._key(path, key)
        r = _get_redis()
        if r:
            try:
                data = r.get(cache_key)
                with self._lock:
                    if data is not None:
                        self._hits += 1
                        return pickle.loads(data)
                    self._misses += 1
                    return None
            except redis.RedisError:
                logger.debug("Redis get failed for page, falling back to diskcache")

        value = self._cache.get(cache_key, default=None)
        with self._lock:
            if value is not None:
                self._hits += 1
                logger.debug(f"Page cache hit for {path} (hits: {self._hits}, misses: {self._misses})")
                return value
            self._misses += 1
            return None

    def set(self, path, key, payload):
        if not self._enabled:
            return
        cache_key = self._key(path, key)
        r = _get_redis()
        if r:
            try:
                r.setex(cache_key, self._ttl, pickle.dumps(payload))
                return
            except redis.RedisError:
                logger.debug("Redis set failed for page, falling back to diskcache")
        self._cache.set(cache_key, payload, expire=self._ttl)

    def fetch(self, path, key, loader):
        """Return the cached payload, computing and storing it on a miss."""
        payload = self.get(path, key)
        if payload is None:
            payload = loader()
            self.set(path, key, payload)
        return payload

    def revalidate(self, path):
        """Invalidate every cached payload for ``path``."""
        r = _get_redis()
        if r:
            try:
                r.incr(f'{self._GEN_PREFIX}{path}')
                logger.debug(f"Revalidated {path} [redis]")
                return
            except redis.RedisError:
                logger.debug("Redis incr failed for page generation, falling back to diskcache")
        self._cache.incr(f'{self._GEN_PREFIX}{path}', default=0)
        logger.debug(f"Revalidated {path}")

    def stats(self):
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0
            return {
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': f"{hit_rate:.1f}%",
                'backend': 'redis' if _get_redis() else 'diskcache',
                'enabled': self._enabled,
            }

    def clear(self):
        """Drop every cached page and generation counter."""
        r = _get_redis()
        if r:
            try:
                for pattern in (f'{self._PREFIX}*', f'{self._GEN_PREFIX}*'):
                    cursor = 0
                    while True:
                        cursor, keys = r.scan(cursor, match=pattern, count=100)
                        if keys:
                            r.delete(*keys)
                        if cursor == 0:
                            break
            except redis.RedisError:
                logger.debug("Redis clear failed for pages")
        self._cache.clear()
        with self._lock:
            self._hits = 0
            self._misses = 0


# Global instance
_page_cache = None


def get_page_cache():
    """Get the global page cache instance."""
    global _page_cache
    if _page_cache is None:
        _page_cache = PageCache(
            ttl_seconds=Config.PAGE_CACHE_TTL,
            enabled=Config.PAGE_CACHE_ENABLED,
        )
    return _page_cache


def revalidate_path(*paths):
    """Invalidate the cached payloads of one or more page paths."""
    cache = get_page_cache()
    for path in paths:
        cache.revalidate(path)
