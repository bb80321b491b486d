"""Cache store: namespaced key/value storage with per-key TTL.

The cache is an optimization only. Every method degrades instead of raising:
a read against an unreachable backend is a miss, a failed write or delete is
logged and reported as ``False``. Callers must behave correctly (just slower)
when the store is gone entirely.

Two backends share the :class:`CacheStore` interface:

- :class:`RedisCacheStore`: production, ``redis.asyncio``
- :class:`MemoryCacheStore`: process-local dict, for dev and tests
"""

from __future__ import annotations

import json
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from app.core.logging import get_logger

logger = get_logger(__name__)

# ── Namespaces ───────────────────────────────────────────────────────

NS_SEARCH = "serp"
NS_TRENDING = "trending"
NS_COLLECTIONS = "collections"
NS_THUMBNAIL = "hf_thumbnail"

_WHITESPACE = re.compile(r"\s+")


def normalize_key_part(text: str) -> str:
    """Lower-case free text and collapse whitespace runs to ``_``.

    Equivalent human queries ("Cat  Videos", "cat videos ") share a slot.
    Punctuation and accents are left untouched.
    """
    return _WHITESPACE.sub("_", str(text).strip().lower())


def cache_key(*parts: Any) -> str:
    """Join normalized parts into a key (without the namespace)."""
    return ":".join(normalize_key_part(p) for p in parts)


def legacy_trending_key(query: str) -> str:
    """Key used by the previous release for trending videos (read-only alias)."""
    return f"trending_videos_{normalize_key_part(query)}"


def _full_key(namespace: str, key: str) -> str:
    return f"{namespace}:{key}" if key else namespace


_GLOB_CHARS = re.compile(r"([\\*?\[\]])")


def _prefix_pattern(namespace: str, prefix: str) -> str:
    """SCAN MATCH pattern for keys under ``namespace:prefix``, glob chars escaped."""
    escaped = _GLOB_CHARS.sub(r"\\\1", f"{namespace}:{prefix}")
    return escaped + "*"


# ── Interface ────────────────────────────────────────────────────────


class CacheStore(ABC):
    """Best-effort namespaced cache. Never raises on backend failure."""

    @abstractmethod
    async def open(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def health_check(self) -> bool: ...

    @abstractmethod
    async def get(self, namespace: str, key: str) -> bytes | None: ...

    @abstractmethod
    async def set(self, namespace: str, key: str, payload: bytes, ttl_seconds: int) -> bool: ...

    @abstractmethod
    async def delete(self, namespace: str, key: str) -> bool: ...

    @abstractmethod
    async def delete_by_prefix(self, namespace: str, prefix: str = "") -> int | None:
        """Delete every live key under ``namespace:prefix``.

        Returns the number deleted, or ``None`` when the store could not run
        (or finish) the deletion.
        """

    @abstractmethod
    async def count(self, namespace: str) -> int: ...

    # ── JSON helpers ─────────────────────────────────────────────

    async def get_json(self, namespace: str, key: str) -> Any | None:
        raw = await self.get(namespace, key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            # Unreadable entry is a miss; the next write replaces it
            logger.warning("cache_entry_corrupt", namespace=namespace, key=key[:120])
            return None

    async def set_json(self, namespace: str, key: str, value: Any, ttl_seconds: int) -> bool:
        payload = json.dumps(value, default=str).encode("utf-8")
        return await self.set(namespace, key, payload, ttl_seconds)


# ── Redis backend ────────────────────────────────────────────────────


class RedisCacheStore(CacheStore):
    """Redis-backed cache store.

    Usage::

        store = RedisCacheStore("redis://localhost:6379")
        await store.open()
        await store.set("serp", "video:cats", b"[...]", 1800)
        await store.close()

    A failed health check (or a connection error on any call) marks the store
    degraded. While degraded, reads and writes are skipped without touching
    the network; after ``recheck_interval`` seconds the next call checks the
    backend again.
    """

    def __init__(
        self,
        url: str,
        *,
        socket_timeout: float = 2.0,
        recheck_interval: float = 30.0,
        client: aioredis.Redis | None = None,
    ) -> None:
        self._url = url
        self._socket_timeout = socket_timeout
        self._recheck_interval = recheck_interval
        self._redis = client
        self._degraded = False
        self._last_check = 0.0

    @property
    def degraded(self) -> bool:
        return self._degraded

    async def open(self) -> None:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._url,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
        healthy = await self.health_check()
        logger.info("cache_opened", backend="redis", healthy=healthy)

    async def close(self) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.aclose()
            logger.info("cache_closed", backend="redis")
        except RedisError as e:
            logger.warning("cache_close_failed", error=str(e))
        finally:
            self._redis = None

    async def health_check(self) -> bool:
        self._last_check = time.monotonic()
        if self._redis is None:
            self._degraded = True
            return False
        try:
            ok = bool(await self._redis.ping())
        except (RedisError, OSError) as e:
            logger.warning("cache_health_check_failed", error=str(e))
            ok = False
        if ok and self._degraded:
            logger.info("cache_recovered")
        self._degraded = not ok
        return ok

    async def _available(self) -> bool:
        if self._redis is None:
            return False
        if not self._degraded:
            return True
        if time.monotonic() - self._last_check >= self._recheck_interval:
            return await self.health_check()
        return False

    def _on_error(self, op: str, namespace: str, key: str, error: Exception) -> None:
        if isinstance(error, (RedisConnectionError, OSError)):
            self._degraded = True
            self._last_check = time.monotonic()
        logger.warning(
            "cache_operation_failed",
            op=op,
            namespace=namespace,
            key=key[:120],
            error=str(error),
        )

    async def get(self, namespace: str, key: str) -> bytes | None:
        if not await self._available():
            return None
        try:
            return await self._redis.get(_full_key(namespace, key))
        except (RedisError, OSError) as e:
            self._on_error("get", namespace, key, e)
            return None

    async def set(self, namespace: str, key: str, payload: bytes, ttl_seconds: int) -> bool:
        if not await self._available():
            return False
        try:
            await self._redis.set(_full_key(namespace, key), payload, ex=ttl_seconds)
            return True
        except (RedisError, OSError) as e:
            self._on_error("set", namespace, key, e)
            return False

    async def delete(self, namespace: str, key: str) -> bool:
        if not await self._available():
            return False
        try:
            await self._redis.delete(_full_key(namespace, key))
            return True
        except (RedisError, OSError) as e:
            self._on_error("delete", namespace, key, e)
            return False

    async def delete_by_prefix(self, namespace: str, prefix: str = "") -> int | None:
        """Uses SCAN, never KEYS. Query text in ``prefix`` is matched literally."""
        if not await self._available():
            return None
        pattern = _prefix_pattern(namespace, prefix)
        deleted = 0
        try:
            batch: list[bytes] = []
            async for k in self._redis.scan_iter(match=pattern, count=500):
                batch.append(k)
                if len(batch) >= 500:
                    deleted += await self._redis.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._redis.delete(*batch)
        except (RedisError, OSError) as e:
            self._on_error("delete_by_prefix", namespace, prefix, e)
            return None
        return deleted

    async def count(self, namespace: str) -> int:
        if not await self._available():
            return 0
        total = 0
        try:
            async for _ in self._redis.scan_iter(match=f"{namespace}:*", count=500):
                total += 1
        except (RedisError, OSError) as e:
            self._on_error("count", namespace, "", e)
        return total


# ── In-memory backend ────────────────────────────────────────────────


class MemoryCacheStore(CacheStore):
    """Process-local TTL cache with an injectable clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, bytes]] = {}
        self.healthy = True

    async def open(self) -> None:
        self.healthy = True

    async def close(self) -> None:
        self._entries.clear()

    async def health_check(self) -> bool:
        return self.healthy

    def _live(self, full_key: str) -> bytes | None:
        entry = self._entries.get(full_key)
        if entry is None:
            return None
        expires_at, payload = entry
        if self._clock() >= expires_at:
            del self._entries[full_key]
            return None
        return payload

    async def get(self, namespace: str, key: str) -> bytes | None:
        if not self.healthy:
            return None
        return self._live(_full_key(namespace, key))

    async def set(self, namespace: str, key: str, payload: bytes, ttl_seconds: int) -> bool:
        if not self.healthy:
            return False
        self._entries[_full_key(namespace, key)] = (self._clock() + ttl_seconds, bytes(payload))
        return True

    async def delete(self, namespace: str, key: str) -> bool:
        if not self.healthy:
            return False
        self._entries.pop(_full_key(namespace, key), None)
        return True

    async def delete_by_prefix(self, namespace: str, prefix: str = "") -> int | None:
        if not self.healthy:
            return None
        start = f"{namespace}:{prefix}"
        doomed = [k for k in self._entries if k.startswith(start)]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    async def count(self, namespace: str) -> int:
        start = f"{namespace}:"
        return sum(1 for k in list(self._entries) if k.startswith(start) and self._live(k) is not None)
