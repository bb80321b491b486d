"""Tests for the cache store: key construction, TTL, degradation."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from app.core.cache import (
    MemoryCacheStore,
    RedisCacheStore,
    cache_key,
    legacy_trending_key,
    normalize_key_part,
)

# ── Key construction ─────────────────────────────────────────────────


class TestCacheKey:
    def test_lowercases_and_collapses_whitespace(self):
        assert normalize_key_part("  Cat   Videos\tHD ") == "cat_videos_hd"

    def test_equivalent_queries_collide(self):
        assert cache_key("video", "Funny Cats") == cache_key("video", "funny   cats ")

    def test_joins_parts(self):
        assert cache_key("image", "Sunset") == "image:sunset"

    def test_punctuation_is_not_normalized(self):
        assert cache_key("video", "cats!") != cache_key("video", "cats")

    def test_legacy_trending_key(self):
        assert legacy_trending_key("Music Hits") == "trending_videos_music_hits"


# ── In-memory store ──────────────────────────────────────────────────


class TestMemoryCacheStore:
    async def test_set_then_get(self, cache):
        assert await cache.set("serp", "video:cats", b"payload", 60) is True
        assert await cache.get("serp", "video:cats") == b"payload"

    async def test_ttl_expiry(self, cache, clock):
        await cache.set("serp", "k", b"v", ttl_seconds=1)
        clock.advance(2)
        assert await cache.get("serp", "k") is None

    async def test_entry_alive_before_ttl(self, cache, clock):
        await cache.set("serp", "k", b"v", ttl_seconds=1800)
        clock.advance(1799)
        assert await cache.get("serp", "k") == b"v"

    async def test_overwrite_replaces_wholesale(self, cache):
        await cache.set("serp", "k", b"old", 60)
        await cache.set("serp", "k", b"new", 60)
        assert await cache.get("serp", "k") == b"new"

    async def test_delete_is_idempotent(self, cache):
        assert await cache.delete("collections", "missing") is True
        await cache.set("collections", "u1", b"[]", 60)
        assert await cache.delete("collections", "u1") is True
        assert await cache.delete("collections", "u1") is True
        assert await cache.get("collections", "u1") is None

    async def test_delete_by_prefix(self, cache):
        await cache.set("trending", "video:a", b"1", 60)
        await cache.set("trending", "video:b", b"2", 60)
        await cache.set("trending", "image:a", b"3", 60)
        await cache.set("serp", "video:a", b"4", 60)

        deleted = await cache.delete_by_prefix("trending", "video")
        assert deleted == 2
        assert await cache.get("trending", "image:a") == b"3"
        assert await cache.get("serp", "video:a") == b"4"

    async def test_empty_prefix_stays_inside_namespace(self, cache):
        await cache.set("serp", "video:a", b"1", 60)
        await cache.set("serpx", "video:a", b"2", 60)

        assert await cache.delete_by_prefix("serp") == 1
        assert await cache.get("serpx", "video:a") == b"2"

    async def test_prefix_is_literal(self, cache):
        await cache.set("serp", "video:c*ts", b"1", 60)
        await cache.set("serp", "video:cats", b"2", 60)

        assert await cache.delete_by_prefix("serp", "video:c*") == 1
        assert await cache.get("serp", "video:cats") == b"2"

    async def test_namespaces_are_isolated(self, cache):
        await cache.set("serp", "x", b"search", 60)
        await cache.set("trending", "x", b"trend", 60)
        assert await cache.get("serp", "x") == b"search"
        assert await cache.get("trending", "x") == b"trend"

    async def test_count_skips_expired(self, cache, clock):
        await cache.set("hf_thumbnail", "a", b"1", 1)
        await cache.set("hf_thumbnail", "b", b"2", 100)
        clock.advance(5)
        assert await cache.count("hf_thumbnail") == 1

    async def test_unhealthy_store_behaves_as_miss(self, cache):
        await cache.set("serp", "k", b"v", 60)
        cache.healthy = False
        assert await cache.get("serp", "k") is None
        assert await cache.set("serp", "k2", b"v", 60) is False
        assert await cache.delete_by_prefix("serp") is None
        assert await cache.health_check() is False


class TestJsonHelpers:
    async def test_round_trip(self, cache):
        await cache.set_json("collections", "u1", [{"title": "A"}], 60)
        assert await cache.get_json("collections", "u1") == [{"title": "A"}]

    async def test_corrupt_entry_is_a_miss(self, cache):
        await cache.set("serp", "bad", b"{not json", 60)
        assert await cache.get_json("serp", "bad") is None


# ── Redis store (mocked client) ──────────────────────────────────────


def _redis_mock() -> AsyncMock:
    redis = AsyncMock()
    redis.ping = AsyncMock(return_value=True)
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    return redis


def _scan_returning(keys: list[bytes]) -> MagicMock:
    async def _gen(*args, **kwargs):
        for k in keys:
            yield k

    return MagicMock(side_effect=_gen)


class TestRedisCacheStore:
    @pytest.fixture
    async def store(self):
        redis = _redis_mock()
        store = RedisCacheStore("redis://test", client=redis)
        await store.open()
        return store, redis

    async def test_open_runs_health_check(self, store):
        s, redis = store
        redis.ping.assert_awaited()
        assert s.degraded is False

    async def test_get_uses_namespaced_key(self, store):
        s, redis = store
        redis.get.return_value = b"[]"
        assert await s.get("serp", "video:cats") == b"[]"
        redis.get.assert_awaited_with("serp:video:cats")

    async def test_set_passes_ttl(self, store):
        s, redis = store
        assert await s.set("serp", "video:cats", b"[]", 1800) is True
        redis.set.assert_awaited_with("serp:video:cats", b"[]", ex=1800)

    async def test_get_error_degrades_to_miss(self, store):
        s, redis = store
        redis.get.side_effect = ResponseError("WRONGTYPE")
        assert await s.get("serp", "k") is None
        # A command error is not an outage
        assert s.degraded is False

    async def test_connection_error_marks_degraded_and_skips(self, store):
        s, redis = store
        redis.get.side_effect = RedisConnectionError("refused")
        assert await s.get("serp", "k") is None
        assert s.degraded is True

        redis.get.reset_mock()
        assert await s.get("serp", "k") is None
        redis.get.assert_not_called()

    async def test_set_failure_is_not_raised(self, store):
        s, redis = store
        redis.set.side_effect = RedisConnectionError("refused")
        assert await s.set("serp", "k", b"v", 60) is False

    async def test_failed_health_check_marks_degraded(self, store):
        s, redis = store
        redis.ping.side_effect = RedisConnectionError("down")
        assert await s.health_check() is False
        assert s.degraded is True
        assert await s.set("serp", "k", b"v", 60) is False
        redis.set.assert_not_called()

    async def test_recovers_after_recheck_interval(self):
        redis = _redis_mock()
        s = RedisCacheStore("redis://test", client=redis, recheck_interval=0.0)
        redis.ping.side_effect = RedisConnectionError("down")
        await s.open()
        assert s.degraded is True

        redis.ping.side_effect = None
        redis.ping.return_value = True
        redis.get.return_value = b"v"
        assert await s.get("serp", "k") == b"v"
        assert s.degraded is False

    async def test_delete_by_prefix_scans(self, store):
        s, redis = store
        redis.scan_iter = _scan_returning([b"trending:video:a", b"trending:video:b"])
        redis.delete.return_value = 2

        deleted = await s.delete_by_prefix("trending", "video")

        assert deleted == 2
        assert redis.scan_iter.call_args.kwargs["match"] == "trending:video*"
        redis.delete.assert_awaited_with(b"trending:video:a", b"trending:video:b")

    async def test_delete_by_prefix_nothing_found(self, store):
        s, redis = store
        redis.scan_iter = _scan_returning([])
        assert await s.delete_by_prefix("serp") == 0
        redis.delete.assert_not_called()

    async def test_close_releases_client(self, store):
        s, redis = store
        await s.close()
        redis.aclose.assert_awaited_once()
        assert await s.get("serp", "k") is None

    async def test_empty_prefix_matches_namespace_separator(self, store):
        s, redis = store
        redis.scan_iter = _scan_returning([])
        await s.delete_by_prefix("serp")
        assert redis.scan_iter.call_args.kwargs["match"] == "serp:*"

    async def test_glob_characters_are_escaped(self, store):
        s, redis = store
        redis.scan_iter = _scan_returning([])
        await s.delete_by_prefix("serp", "video:what?[1]*")
        assert redis.scan_iter.call_args.kwargs["match"] == r"serp:video:what\?\[1\]\**"

    async def test_delete_by_prefix_reports_failure(self, store):
        s, redis = store
        redis.scan_iter = MagicMock(side_effect=RedisConnectionError("refused"))
        assert await s.delete_by_prefix("serp") is None
        assert s.degraded is True

    async def test_delete_by_prefix_skipped_while_degraded(self, store):
        s, redis = store
        redis.ping.side_effect = RedisConnectionError("down")
        await s.health_check()
        redis.scan_iter = _scan_returning([b"serp:a"])
        assert await s.delete_by_prefix("serp") is None
        redis.delete.assert_not_called()
