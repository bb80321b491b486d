"""Cache invalidation: evict entries made stale by a committed write.

Write paths call :meth:`CacheInvalidator.invalidate` right after their write
commits and before they respond, so the writer reads its own write. A failed
eviction is logged and the write still succeeds; the entry then lives at most
until its TTL.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.cache import NS_COLLECTIONS, NS_SEARCH, NS_THUMBNAIL, NS_TRENDING, CacheStore, cache_key
from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Scope:
    namespace: str
    by_prefix: bool = False
    normalize: bool = True


_SCOPES: dict[str, _Scope] = {
    # user ids are opaque; keep them verbatim
    "collections": _Scope(NS_COLLECTIONS, normalize=False),
    "trending": _Scope(NS_TRENDING, by_prefix=True),
    "serp": _Scope(NS_SEARCH, by_prefix=True),
    "thumbnail": _Scope(NS_THUMBNAIL),
}


class CacheInvalidator:
    """Maps a logical scope + identifier to the cache keys it owns."""

    def __init__(self, cache: CacheStore) -> None:
        self._cache = cache

    @staticmethod
    def scopes() -> tuple[str, ...]:
        return tuple(_SCOPES)

    async def invalidate(self, scope: str, identifier: str = "") -> bool:
        """Evict the entries for ``scope``/``identifier``.

        Returns False when the store could not confirm the eviction. Raises
        ``ValueError`` only for an unknown scope.
        """
        target = _SCOPES.get(scope)
        if target is None:
            raise ValueError(f"Unknown cache scope: {scope!r}")

        key = cache_key(identifier) if target.normalize and identifier else str(identifier)

        if target.by_prefix:
            deleted = await self._cache.delete_by_prefix(target.namespace, key)
            if deleted is None:
                logger.warning("cache_invalidation_failed", scope=scope, identifier=key[:120])
                return False
            logger.info("cache_invalidated", scope=scope, identifier=key[:120], deleted=deleted)
            return True

        if not key:
            raise ValueError(f"Scope {scope!r} needs an identifier")

        ok = await self._cache.delete(target.namespace, key)
        if ok:
            logger.info("cache_invalidated", scope=scope, identifier=key[:120])
        else:
            logger.warning("cache_invalidation_failed", scope=scope, identifier=key[:120])
        return ok
