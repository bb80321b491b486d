"""Tests for cache invalidation and the collection read/write path."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from app.core.cache import NS_COLLECTIONS, NS_SEARCH, NS_THUMBNAIL, NS_TRENDING, cache_key
from app.services.collections import CollectionService, MemoryDocumentStore
from app.services.invalidation import CacheInvalidator


@pytest.fixture
def invalidator(cache):
    return CacheInvalidator(cache)


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def collections(store, cache, invalidator, settings):
    return CollectionService(store, cache, invalidator, settings=settings)


def _item(title: str, **extra) -> dict:
    return {"title": title, "imageUrl": f"https://img/{title}.jpg", **extra}


# ── CacheInvalidator ────────────────────────────────────────────────


class TestCacheInvalidator:
    async def test_collections_key_is_verbatim(self, invalidator, cache):
        await cache.set_json(NS_COLLECTIONS, "User_ABC", [], 60)
        assert await invalidator.invalidate("collections", "User_ABC") is True
        assert await cache.get(NS_COLLECTIONS, "User_ABC") is None

    async def test_trending_scope_is_prefix(self, invalidator, cache):
        await cache.set_json(NS_TRENDING, cache_key("video", "music"), [], 60)
        await cache.set_json(NS_TRENDING, cache_key("video", "sports"), [], 60)
        await cache.set_json(NS_TRENDING, cache_key("image", "music"), [], 60)

        assert await invalidator.invalidate("trending", "video") is True
        assert await cache.count(NS_TRENDING) == 1

    async def test_serp_scope_without_identifier_clears_namespace(self, invalidator, cache):
        await cache.set_json(NS_SEARCH, cache_key("video", "a"), [], 60)
        await cache.set_json(NS_SEARCH, cache_key("image", "b"), [], 60)
        await cache.set_json(NS_TRENDING, cache_key("video", "a"), [], 60)

        await invalidator.invalidate("serp")

        assert await cache.count(NS_SEARCH) == 0
        assert await cache.count(NS_TRENDING) == 1

    async def test_thumbnail_identifier_is_normalized(self, invalidator, cache):
        await cache.set_json(NS_THUMBNAIL, cache_key("A Cat  Surfing"), {}, 60)
        await invalidator.invalidate("thumbnail", "a cat surfing")
        assert await cache.count(NS_THUMBNAIL) == 0

    async def test_unknown_scope(self, invalidator):
        with pytest.raises(ValueError, match="Unknown cache scope"):
            await invalidator.invalidate("sessions", "x")

    async def test_exact_scope_needs_identifier(self, invalidator):
        with pytest.raises(ValueError):
            await invalidator.invalidate("collections")

    async def test_missing_key_is_still_success(self, invalidator):
        assert await invalidator.invalidate("collections", "nobody") is True

    async def test_unhealthy_store_reports_failure(self, invalidator, cache):
        cache.healthy = False
        assert await invalidator.invalidate("collections", "u1") is False

    @pytest.mark.parametrize("scope,identifier", [("trending", "video"), ("serp", "")])
    async def test_unhealthy_store_fails_prefix_scopes(self, invalidator, cache, scope, identifier):
        cache.healthy = False
        assert await invalidator.invalidate(scope, identifier) is False

    def test_scopes(self):
        assert set(CacheInvalidator.scopes()) == {"collections", "trending", "serp", "thumbnail"}


# ── CollectionService ───────────────────────────────────────────────


class TestCollectionService:
    async def test_listing_is_cached(self, collections, store):
        await collections.save_to_collection("u1", _item("a"))

        first = await collections.get_collections("u1")
        second = await collections.get_collections("u1")

        assert store.find_calls == 1
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.data == first.data

    async def test_save_evicts_listing(self, collections, store):
        await collections.save_to_collection("u1", _item("a"))
        await collections.get_collections("u1")
        assert store.find_calls == 1

        await collections.save_to_collection("u1", _item("b"))
        listing = await collections.get_collections("u1")

        assert store.find_calls == 2
        assert listing.from_cache is False
        assert {d["title"] for d in listing.data} == {"a", "b"}

    async def test_save_only_touches_own_user(self, collections, cache):
        await collections.get_collections("u1")
        await collections.get_collections("u2")

        await collections.save_to_collection("u1", _item("a"))

        assert await cache.get(NS_COLLECTIONS, "u1") is None
        assert await cache.get(NS_COLLECTIONS, "u2") is not None

    async def test_save_applies_defaults(self, collections):
        saved = (await collections.save_to_collection("u1", _item("a"))).data
        assert saved["user"] == "u1"
        assert saved["source"] == "serp"
        assert saved["type"] == "image"
        assert saved["isSaved"] is True
        assert saved["isLiked"] is False
        assert saved["_id"]
        assert saved["createdAt"]

    async def test_filtered_listing_bypasses_cache(self, collections, store, cache):
        await collections.save_to_collection("u1", _item("a", type="video"))
        await collections.save_to_collection("u1", _item("b", type="image"))

        videos = await collections.get_collections("u1", item_type="video")
        await collections.get_collections("u1", item_type="video")

        assert [d["title"] for d in videos.data] == ["a"]
        assert store.find_calls == 2
        assert await cache.get(NS_COLLECTIONS, "u1") is None

    async def test_listing_is_per_user(self, collections):
        await collections.save_to_collection("u1", _item("a"))
        await collections.save_to_collection("u2", _item("b"))
        listing = await collections.get_collections("u2")
        assert [d["title"] for d in listing.data] == ["b"]

    async def test_failed_eviction_does_not_fail_save(self, store, cache, settings):
        invalidator = CacheInvalidator(cache)
        invalidator.invalidate = AsyncMock(return_value=False)
        service = CollectionService(store, cache, invalidator, settings=settings)

        result = await service.save_to_collection("u1", _item("a"))

        assert result.success
        invalidator.invalidate.assert_awaited_once_with("collections", "u1")

    async def test_works_without_cache(self, collections, store, cache):
        cache.healthy = False
        await collections.save_to_collection("u1", _item("a"))
        first = await collections.get_collections("u1")
        await collections.get_collections("u1")
        assert len(first.data) == 1
        assert store.find_calls == 2
