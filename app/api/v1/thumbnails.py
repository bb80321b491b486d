"""Thumbnail endpoints: AI image generation from text prompts."""

from fastapi import APIRouter, Query, status

from app.api.v1.errors import raise_for_result
from app.core.logging import get_logger
from app.deps import CollectionsService, CurrentUserId, ThumbnailService
from app.schemas.media import CacheClearResponse
from app.schemas.thumbnail import (
    ThumbnailCacheStats,
    ThumbnailGenerate,
    ThumbnailRead,
    ThumbnailVariationsGenerate,
    ThumbnailVariationsRead,
)
from app.services.collections import CollectionService
from app.services.thumbnails import GenerationResult

logger = get_logger(__name__)

router = APIRouter()


async def _save_generated(
    collections: CollectionService,
    user_id: str,
    results: list[GenerationResult],
) -> bool:
    for r in results:
        await collections.save_to_collection(user_id, r.to_collection_item())
    logger.info("thumbnails_saved_to_collection", count=len(results))
    return True


@router.post("/generate", response_model=ThumbnailRead, status_code=status.HTTP_201_CREATED)
async def generate_thumbnail(
    data: ThumbnailGenerate,
    service: ThumbnailService,
    collections: CollectionsService,
    user_id: CurrentUserId,
):
    """Generate (or serve from cache) a thumbnail for one prompt.

    With ``saveToCollection`` the image is saved before responding, so the
    caller's next collection listing already contains it.
    """
    result = await service.generate(data.prompt)
    raise_for_result(result)

    body = result.data.to_dict()
    if data.save_to_collection:
        body["savedToCollection"] = await _save_generated(collections, user_id, [result.data])
    return body


@router.post("/variations", response_model=ThumbnailVariationsRead, status_code=status.HTTP_201_CREATED)
async def generate_thumbnail_variations(
    data: ThumbnailVariationsGenerate,
    service: ThumbnailService,
    collections: CollectionsService,
    user_id: CurrentUserId,
):
    result = await service.generate_variations(data.prompt, data.count)
    raise_for_result(result)

    body = {
        "thumbnails": [t.to_dict() for t in result.data],
        "count": len(result.data),
    }
    if data.save_to_collection:
        body["savedToCollection"] = await _save_generated(collections, user_id, result.data)
    return body


@router.get("/cache/stats", response_model=ThumbnailCacheStats)
async def get_thumbnail_cache_stats(service: ThumbnailService):
    return await service.cache_stats()


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_thumbnail_cache(
    service: ThumbnailService,
    user_id: CurrentUserId,
    prompt: str = Query(..., min_length=1, max_length=1000),
) -> CacheClearResponse:
    deleted = await service.clear_cache(prompt)
    return CacheClearResponse(deleted=int(deleted))
