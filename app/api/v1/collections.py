"""Collection endpoints: a user's saved media items."""

from typing import Any

from fastapi import APIRouter, Query, status

from app.deps import CollectionsService, CurrentUserId
from app.schemas.collection import CollectionItemCreate, CollectionItemSaved

router = APIRouter()


@router.get("", response_model=list[dict[str, Any]])
async def list_collections(
    user_id: CurrentUserId,
    service: CollectionsService,
    type: str | None = Query(None, max_length=50),
) -> list[dict[str, Any]]:
    """Saved items, newest first, optionally filtered by type."""
    result = await service.get_collections(user_id, type)
    return result.data


@router.post("", response_model=CollectionItemSaved, status_code=status.HTTP_201_CREATED)
async def save_to_collection(
    data: CollectionItemCreate,
    user_id: CurrentUserId,
    service: CollectionsService,
) -> CollectionItemSaved:
    result = await service.save_to_collection(
        user_id,
        data.model_dump(by_alias=True, exclude_none=True),
    )
    return CollectionItemSaved(
        message="Saved to collection successfully",
        collection=result.data,
    )
