"""FastAPI application factory.

Clients (cache store, outbound HTTP) are built in the lifespan and handed to
the services explicitly. Tests pass their own fakes through ``create_app``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request

from app.api.v1.router import api_router
from app.config import Settings, get_settings
from app.core.cache import CacheStore, MemoryCacheStore, RedisCacheStore
from app.core.logging import get_logger, setup_logging
from app.core.middleware import ObservabilityMiddleware
from app.core.retry import RetryingFetcher
from app.core.singleflight import SingleFlight
from app.deps import IdentityService
from app.services.collections import CollectionService, DocumentStore, MemoryDocumentStore
from app.services.invalidation import CacheInvalidator
from app.services.media_search import SearchAggregationService
from app.services.thumbnails import ThumbnailGenerator

logger = get_logger(__name__)


def build_cache(settings: Settings) -> CacheStore:
    if settings.cache_backend == "memory":
        return MemoryCacheStore()
    return RedisCacheStore(
        settings.redis_url,
        socket_timeout=settings.cache_socket_timeout_seconds,
    )


def create_app(
    *,
    settings: Settings | None = None,
    cache: CacheStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    document_store: DocumentStore | None = None,
    identity: IdentityService | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings)

        store = cache or build_cache(settings)
        await store.open()

        client = http_client or httpx.AsyncClient(
            headers={"User-Agent": "thumbforge-backend/0.1"},
            follow_redirects=True,
        )
        fetcher = RetryingFetcher(client)
        flight = SingleFlight()
        invalidator = CacheInvalidator(store)

        docs = document_store
        if docs is None:
            logger.warning("document_store_in_memory")
            docs = MemoryDocumentStore()

        app.state.cache = store
        app.state.identity = identity
        app.state.invalidator = invalidator
        app.state.search_service = SearchAggregationService(
            store, fetcher, settings=settings, flight=flight,
        )
        app.state.thumbnail_service = ThumbnailGenerator(
            store, fetcher, settings=settings, flight=flight,
        )
        app.state.collection_service = CollectionService(
            docs, store, invalidator, settings=settings,
        )
        logger.info("app_started", cache_backend=type(store).__name__)

        try:
            yield
        finally:
            if http_client is None:
                await client.aclose()
            await store.close()
            logger.info("app_stopped")

    app = FastAPI(title="Thumbforge API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(ObservabilityMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health(request: Request) -> dict[str, str]:
        healthy = await request.app.state.cache.health_check()
        return {"status": "ok", "cache": "ok" if healthy else "degraded"}

    return app


app = create_app()
