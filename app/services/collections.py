"""Collection service: a user's saved media, read through the cache.

The unfiltered listing for a user is cached under ``collections:<user_id>``
for 30 minutes. Saving an item evicts that entry before returning, so the
next listing re-reads the document store.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

from app.config import Settings, get_settings
from app.core.cache import NS_COLLECTIONS, CacheStore
from app.core.logging import get_logger
from app.services.invalidation import CacheInvalidator
from app.services.results import ServiceResult

logger = get_logger(__name__)

COLLECTION_NAME = "collections"


class DocumentStore(Protocol):
    """Narrow persistence interface; implemented outside this package."""

    async def find(
        self,
        collection: str,
        query: dict[str, Any],
        *,
        sort: list[tuple[str, int]] | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert(self, collection: str, document: dict[str, Any]) -> dict[str, Any]: ...


class MemoryDocumentStore:
    """Dict-backed :class:`DocumentStore` for local runs and tests."""

    def __init__(self) -> None:
        self._collections: dict[str, list[dict[str, Any]]] = {}
        self.find_calls = 0

    async def find(
        self,
        collection: str,
        query: dict[str, Any],
        *,
        sort: list[tuple[str, int]] | None = None,
    ) -> list[dict[str, Any]]:
        self.find_calls += 1
        docs = [
            dict(d) for d in self._collections.get(collection, [])
            if all(d.get(k) == v for k, v in query.items())
        ]
        for field_name, direction in reversed(sort or []):
            docs.sort(key=lambda d: d.get(field_name) or "", reverse=direction < 0)
        return docs

    async def insert(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        stored = {
            "_id": uuid4().hex,
            "createdAt": datetime.now(UTC).isoformat(),
            **document,
        }
        self._collections.setdefault(collection, []).append(stored)
        return dict(stored)


class CollectionService:
    """Cache-aside listing + invalidating writes for user collections."""

    def __init__(
        self,
        store: DocumentStore,
        cache: CacheStore,
        invalidator: CacheInvalidator,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._invalidator = invalidator
        self._settings = settings or get_settings()

    async def get_collections(
        self,
        user_id: str,
        item_type: str | None = None,
    ) -> ServiceResult[list[dict[str, Any]]]:
        """Newest first. Only the unfiltered listing is cached."""
        if item_type is None:
            cached = await self._cache.get_json(NS_COLLECTIONS, user_id)
            if isinstance(cached, list):
                logger.debug("collections_cache_hit", item_count=len(cached))
                return ServiceResult.ok(cached, from_cache=True)

        query: dict[str, Any] = {"user": user_id}
        if item_type:
            query["type"] = item_type
        docs = await self._store.find(COLLECTION_NAME, query, sort=[("createdAt", -1)])

        if item_type is None:
            await self._cache.set_json(
                NS_COLLECTIONS,
                user_id,
                docs,
                self._settings.collections_cache_ttl,
            )
        return ServiceResult.ok(docs)

    async def save_to_collection(
        self,
        user_id: str,
        item: dict[str, Any],
    ) -> ServiceResult[dict[str, Any]]:
        document = {
            **item,
            "user": user_id,
            "source": item.get("source") or "serp",
            "type": item.get("type") or "image",
            "isLiked": False,
            "isSaved": True,
        }
        saved = await self._store.insert(COLLECTION_NAME, document)

        # Evict before responding
        await self._invalidator.invalidate("collections", user_id)

        logger.info("collection_item_saved", item_type=document["type"])
        return ServiceResult.ok(saved)
