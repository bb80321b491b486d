"""Pydantic schemas for API request/response validation."""

from app.schemas.collection import CollectionItemCreate, CollectionItemSaved
from app.schemas.media import CacheClearResponse, MediaItem, SuggestionItem
from app.schemas.thumbnail import (
    ThumbnailCacheStats,
    ThumbnailGenerate,
    ThumbnailRead,
    ThumbnailVariationsGenerate,
    ThumbnailVariationsRead,
)

__all__ = [
    "CacheClearResponse",
    "CollectionItemCreate",
    "CollectionItemSaved",
    "MediaItem",
    "SuggestionItem",
    "ThumbnailCacheStats",
    "ThumbnailGenerate",
    "ThumbnailRead",
    "ThumbnailVariationsGenerate",
    "ThumbnailVariationsRead",
]
