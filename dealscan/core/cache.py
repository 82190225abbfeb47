from typing import Any
from cachetools import TTLCache
from .config import settings

try:
    import redis  # Optional dependency
except Exception:
    redis = None

class Cache:
    """
    Thin abstraction over Redis/in-memory so swapping is one flag away.
    Each instance owns its TTL and key prefix; the in-memory backend is a
    bounded TTLCache, so least-recently-used entries are evicted when full.
    """
    def __init__(self, prefix: str, ttl_seconds: int, maxsize: int = 4096, use_redis: bool | None = None):
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds
        self.backend = None
        self._local = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        use_redis = settings.USE_REDIS if use_redis is None else use_redis
        if use_redis and redis is not None:
            self.backend = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Any | None:
        if self.backend:
            return self.backend.get(self._key(key))
        return self._local.get(self._key(key))

    def set(self, key: str, value: str) -> None:
        if self.backend:
            self.backend.setex(self._key(key), self.ttl_seconds, value)
        else:
            self._local[self._key(key)] = value

    def clear(self) -> None:
        # Only the in-process store; Redis entries expire on their own.
        self._local.clear()

# Search results: keyed by rounded coords + filters + bounds
search_cache = Cache("search", ttl_seconds=settings.SEARCH_CACHE_TTL_SECONDS,
                     maxsize=settings.SEARCH_CACHE_MAXSIZE)

# Rate-limit counters live for one minute bucket
rate_cache = Cache("rate", ttl_seconds=60)
