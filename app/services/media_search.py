"""Media search service: trending and search for videos and images.

Cache-aside over the search provider (SerpApi):

    cache get → hit: return as stored
              → miss: retrying fetch → normalize → set (non-empty only)

Empty results are never cached: the provider may index content before the
TTL would have run out. Concurrent misses for the same key share one
upstream call through :class:`SingleFlight`.
"""

from __future__ import annotations

from typing import Any

from app.config import Settings, get_settings
from app.core.cache import (
    NS_SEARCH,
    NS_TRENDING,
    CacheStore,
    cache_key,
    legacy_trending_key,
)
from app.core.logging import get_logger
from app.core.retry import ErrorKind, FetchOutcome, RequestSpec, RetryingFetcher, RetryPolicy
from app.core.singleflight import SingleFlight
from app.services.normalizer import (
    MediaKind,
    MediaRecord,
    Suggestion,
    normalize,
    normalize_suggestions,
)
from app.services.results import ServiceResult

logger = get_logger(__name__)

DEFAULT_TRENDING_QUERY = {
    MediaKind.VIDEO: "trending",
    MediaKind.IMAGE: "youtube thumbnail ideas",
}


class SearchAggregationService:
    """Answers trending / search queries from cache or the search provider."""

    def __init__(
        self,
        cache: CacheStore,
        fetcher: RetryingFetcher,
        *,
        settings: Settings | None = None,
        flight: SingleFlight | None = None,
    ) -> None:
        self._cache = cache
        self._fetcher = fetcher
        self._settings = settings or get_settings()
        self._flight = flight or SingleFlight()
        self._policy = RetryPolicy(
            max_attempts=self._settings.serp_retry_attempts,
            timeout_s=self._settings.serp_timeout_seconds,
            backoff_base_s=self._settings.serp_backoff_seconds,
            retry_on_status=tuple(self._settings.serp_retry_on_status),
        )

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    # ── Public API ──────────────────────────────────────────────

    async def get_trending(self, query: str | None, kind: MediaKind) -> ServiceResult[list[MediaRecord]]:
        query = (query or "").strip() or DEFAULT_TRENDING_QUERY[kind]
        return await self._cached_search(NS_TRENDING, query, kind)

    async def search(self, query: str, kind: MediaKind) -> ServiceResult[list[MediaRecord]]:
        return await self._cached_search(NS_SEARCH, query.strip(), kind)

    async def suggestions(self, query: str) -> ServiceResult[list[Suggestion]]:
        """Related web results for content ideas. Not cached."""
        if not self._settings.serp_api_key:
            return self._not_configured()

        outcome = await self._fetcher.fetch(
            RequestSpec(
                method="GET",
                url=self._settings.serp_base_url,
                params={
                    "engine": "google",
                    "q": f"youtube {query.strip()} tips ideas",
                    "api_key": self._settings.serp_api_key,
                    "num": 10,
                },
                label="serp_suggestions",
            ),
            self._policy,
        )
        payload, failure = self._decode(outcome)
        if failure is not None:
            return failure

        items = normalize_suggestions(payload)
        if not items:
            return ServiceResult.empty([], "No suggestions found")
        return ServiceResult.ok(items)

    async def clear_search_cache(self) -> int:
        """Admin: drop every cached search and trending entry."""
        counts = [await self._cache.delete_by_prefix(ns) for ns in (NS_SEARCH, NS_TRENDING)]
        deleted = sum(n for n in counts if n is not None)
        if None in counts:
            logger.warning("search_cache_clear_incomplete", deleted=deleted)
        else:
            logger.info("search_cache_cleared", deleted=deleted)
        return deleted

    # ── Cache-aside ─────────────────────────────────────────────

    async def _cached_search(
        self,
        namespace: str,
        query: str,
        kind: MediaKind,
    ) -> ServiceResult[list[MediaRecord]]:
        key = cache_key(kind.value, query)

        cached = await self._read_cache(namespace, key, query, kind)
        if cached is not None:
            logger.info(
                "search_cache_hit",
                namespace=namespace,
                kind=kind.value,
                query=query[:80],
                result_count=len(cached),
            )
            return ServiceResult.ok(cached, from_cache=True)

        return await self._flight.do(
            f"{namespace}:{key}",
            lambda: self._fetch_and_store(namespace, key, query, kind),
        )

    async def _read_cache(
        self,
        namespace: str,
        key: str,
        query: str,
        kind: MediaKind,
    ) -> list[MediaRecord] | None:
        stored = await self._cache.get_json(namespace, key)

        if stored is None and namespace == NS_TRENDING and kind == MediaKind.VIDEO:
            # Entries written by the previous release: {"success": ..., "data": [...]}
            legacy = await self._cache.get_json(NS_SEARCH, legacy_trending_key(query))
            if isinstance(legacy, dict):
                stored = legacy.get("data")

        if not isinstance(stored, list) or not stored:
            return None
        try:
            return [MediaRecord.from_dict(item) for item in stored]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "search_cache_entry_invalid",
                namespace=namespace,
                key=key[:120],
                error=str(e),
            )
            return None

    async def _fetch_and_store(
        self,
        namespace: str,
        key: str,
        query: str,
        kind: MediaKind,
    ) -> ServiceResult[list[MediaRecord]]:
        # A leader that finished just before we joined may have filled it
        cached = await self._read_cache(namespace, key, query, kind)
        if cached is not None:
            return ServiceResult.ok(cached, from_cache=True)

        if not self._settings.serp_api_key:
            return self._not_configured()

        outcome = await self._fetcher.fetch(self._request_for(query, kind), self._policy)
        payload, failure = self._decode(outcome)
        if failure is not None:
            logger.warning(
                "search_failed",
                kind=kind.value,
                query=query[:80],
                error_kind=failure.error_kind,
                error=failure.message[:300],
            )
            return failure

        records = normalize(payload, kind, placeholder_image=self._settings.placeholder_image_url)
        if not records:
            logger.info("search_no_results", kind=kind.value, query=query[:80])
            return ServiceResult.empty([])

        await self._cache.set_json(
            namespace,
            key,
            [r.to_dict() for r in records],
            self._settings.search_cache_ttl,
        )
        logger.info(
            "search_completed",
            namespace=namespace,
            kind=kind.value,
            query=query[:80],
            result_count=len(records),
            attempts=outcome.attempts,
        )
        return ServiceResult.ok(records)

    # ── Provider request / response ─────────────────────────────

    def _request_for(self, query: str, kind: MediaKind) -> RequestSpec:
        s = self._settings
        if kind == MediaKind.VIDEO:
            params: dict[str, Any] = {"engine": "youtube", "search_query": query}
        else:
            params = {"engine": "google_images", "q": query, "num": s.serp_image_count}
        params.update({
            "api_key": s.serp_api_key,
            "gl": s.serp_locale_gl,
            "hl": s.serp_locale_hl,
        })
        return RequestSpec(
            method="GET",
            url=s.serp_base_url,
            params=params,
            label=f"serp_{kind.value}",
        )

    @staticmethod
    def _decode(outcome: FetchOutcome) -> tuple[Any, ServiceResult | None]:
        if not outcome.ok:
            return None, ServiceResult.fail(
                outcome.error_kind or ErrorKind.TRANSIENT_UPSTREAM,
                outcome.message or "Search provider request failed",
            )
        try:
            payload = outcome.response.json()
        except ValueError:
            return None, ServiceResult.fail(
                ErrorKind.TERMINAL_UPSTREAM,
                "Search provider returned a malformed response",
            )
        # SerpApi reports "no results" as a 200 with an error message
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            return None, ServiceResult.empty([], payload["error"])
        return payload, None

    @staticmethod
    def _not_configured() -> ServiceResult:
        logger.error("search_provider_not_configured")
        return ServiceResult.fail(ErrorKind.TERMINAL_UPSTREAM, "Search provider is not configured")
