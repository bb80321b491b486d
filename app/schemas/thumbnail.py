"""Thumbnail generation schemas."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ThumbnailGenerate(BaseModel):
    """Generate one thumbnail from a text prompt.

    With ``saveToCollection`` the image is also saved to the caller's collection.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    prompt: str = Field(..., min_length=1, max_length=1000)
    save_to_collection: bool = False


class ThumbnailVariationsGenerate(BaseModel):
    """Generate several styled variants of one prompt."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    prompt: str = Field(..., min_length=1, max_length=1000)
    count: int = Field(3, ge=1, le=5)
    save_to_collection: bool = False


class ThumbnailRead(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    base64: str
    prompt: str
    original_prompt: str
    size: str
    model: str
    dimensions: str
    generated_at: str
    from_cache: bool
    variation: int | None = None
    saved_to_collection: bool = False


class ThumbnailVariationsRead(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    thumbnails: list[ThumbnailRead]
    count: int
    saved_to_collection: bool = False


class ThumbnailCacheStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_cached: int
    cache_prefix: str
    ttl: str
