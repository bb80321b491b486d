"""Media endpoints: trending and search for videos and images."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status

from app.api.v1.errors import raise_for_result
from app.deps import CurrentUserId, SearchService
from app.schemas.media import CacheClearResponse, MediaItem, SuggestionItem
from app.services.normalizer import MediaKind

router = APIRouter()


def _require_query(q: str | None) -> str:
    if not q or not q.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Search query is required",
        )
    return q.strip()


async def _trending(service: SearchService, query: str | None, kind: MediaKind) -> list[dict[str, Any]]:
    result = await service.get_trending(query, kind)
    raise_for_result(result)
    return [r.to_dict() for r in result.data]


async def _search(service: SearchService, q: str | None, kind: MediaKind) -> list[dict[str, Any]]:
    result = await service.search(_require_query(q), kind)
    raise_for_result(result)
    return [r.to_dict() for r in result.data]


@router.get("/videos/trending", response_model=list[MediaItem], response_model_exclude_none=True)
async def get_trending_videos(
    service: SearchService,
    query: str | None = Query(None, max_length=200),
):
    return await _trending(service, query, MediaKind.VIDEO)


@router.get("/videos/search", response_model=list[MediaItem], response_model_exclude_none=True)
async def search_videos(
    service: SearchService,
    q: str | None = Query(None, max_length=200),
):
    return await _search(service, q, MediaKind.VIDEO)


@router.get("/images/trending", response_model=list[MediaItem], response_model_exclude_none=True)
async def get_trending_images(
    service: SearchService,
    query: str | None = Query(None, max_length=200),
):
    return await _trending(service, query, MediaKind.IMAGE)


@router.get("/images/search", response_model=list[MediaItem], response_model_exclude_none=True)
async def search_images(
    service: SearchService,
    q: str | None = Query(None, max_length=200),
):
    return await _search(service, q, MediaKind.IMAGE)


@router.get("/suggestions", response_model=list[SuggestionItem])
async def get_suggestions(
    service: SearchService,
    q: str | None = Query(None, max_length=200),
):
    """Related web results to spark content ideas."""
    result = await service.suggestions(_require_query(q))
    raise_for_result(result, empty_detail="No suggestions found")
    return [s.to_dict() for s in result.data]


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_search_cache(
    service: SearchService,
    user_id: CurrentUserId,
) -> CacheClearResponse:
    """Drop every cached search and trending result."""
    return CacheClearResponse(deleted=await service.clear_search_cache())
