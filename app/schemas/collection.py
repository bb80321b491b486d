"""Collection schemas: saving media items to a user's collection."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CollectionItemCreate(BaseModel):
    """Save an item. ``title`` and ``imageUrl`` are required."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=500)
    image_url: str = Field(..., min_length=1)
    description: str | None = None
    source: str | None = None
    type: str | None = None
    metadata: dict[str, Any] | None = None
    tags: list[str] | None = None


class CollectionItemSaved(BaseModel):
    message: str
    collection: dict[str, Any]
