"""Avatar lookup with an injected cache.

Looks up a gravatar image for an email address. Lookups are bounded by a
timeout and degrade to None ("unknown") on any network failure. Results,
including misses, are cached so a given address is looked up at most once
per TTL.

The cache is a capability passed in by the caller:

    cache = RedisAvatarCache.from_url(settings.REDIS_URL)   # shared
    cache = InMemoryAvatarCache()                           # tests, single process
"""

import hashlib
import logging
import time
from typing import Dict, Optional, Protocol, Tuple

import httpx
from redis import Redis

logger = logging.getLogger(__name__)

GRAVATAR_URL = "https://www.gravatar.com/avatar/{digest}?d=404"

# Stored for addresses without an avatar
UNKNOWN = "unknown"


class AvatarCache(Protocol):
    """Key/value store with expiry."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...


class InMemoryAvatarCache:
    """Process-local cache, for tests and single-process runs."""

    def __init__(self, clock=time.monotonic):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)


class RedisAvatarCache:
    """Redis-backed cache shared across API and worker processes."""

    KEY_PREFIX = "avatar:"

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisAvatarCache":
        return cls(Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Optional[str]:
        return self.client.get(self.KEY_PREFIX + key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.client.setex(self.KEY_PREFIX + key, ttl_seconds, value)


def gravatar_url(email: str) -> str:
    digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
    return GRAVATAR_URL.format(digest=digest)


class AvatarLookup:
    """Resolve avatar URLs for email addresses."""

    def __init__(
        self,
        cache: AvatarCache,
        timeout_seconds: float = 3.0,
        ttl_seconds: int = 7200,
        client: Optional[httpx.Client] = None,
    ):
        self.cache = cache
        self.timeout_seconds = timeout_seconds
        self.ttl_seconds = ttl_seconds
        self.client = client

    def lookup(self, email: str) -> Optional[str]:
        """Return the avatar URL, or None when unknown or unreachable."""
        key = email.strip().lower()
        try:
            cached = self.cache.get(key)
        except Exception as e:
            logger.warning(f"Avatar cache read failed: {e}")
            cached = None
        if cached is not None:
            return None if cached == UNKNOWN else cached

        url = gravatar_url(key)
        try:
            response = self._head(url)
        except httpx.HTTPError as e:
            # Timeouts and network errors are not cached; retry on next sight
            logger.info(f"Avatar lookup failed for {key}: {e}")
            return None

        value = url if response.status_code == 200 else UNKNOWN
        try:
            self.cache.set(key, value, self.ttl_seconds)
        except Exception as e:
            logger.warning(f"Avatar cache write failed: {e}")
        return None if value == UNKNOWN else value

    def _head(self, url: str) -> httpx.Response:
        if self.client is not None:
            return self.client.head(url, timeout=self.timeout_seconds)
        with httpx.Client(timeout=self.timeout_seconds) as client:
            return client.head(url)
