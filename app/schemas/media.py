"""Media search schemas: canonical records as served to clients."""

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MediaItem(_CamelModel):
    """One normalized search result.

    Videos carry ``channelName``, images carry ``source``.
    """

    id: str
    title: str
    channel_name: str | None = None
    source: str | None = None
    image_url: str
    thumbnail_url: str
    views: str
    published_date: str
    duration: str
    link: str
    description: str
    type: Literal["video", "image"]


class SuggestionItem(BaseModel):
    title: str
    snippet: str
    link: str
    source: str


class CacheClearResponse(BaseModel):
    deleted: int
