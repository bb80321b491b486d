"""FastAPI dependencies: services from app.state, caller identity."""

from typing import Annotated, Protocol

from fastapi import Depends, Header, HTTPException, Request, status

from app.config import Settings
from app.core.logging import user_id_var
from app.services.collections import CollectionService
from app.services.media_search import SearchAggregationService
from app.services.thumbnails import ThumbnailGenerator


class IdentityService(Protocol):
    """Verifies bearer tokens issued elsewhere; returns the user id or None."""

    async def verify_token(self, token: str) -> str | None: ...


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_search_service(request: Request) -> SearchAggregationService:
    return request.app.state.search_service


def get_thumbnail_service(request: Request) -> ThumbnailGenerator:
    return request.app.state.thumbnail_service


def get_collection_service(request: Request) -> CollectionService:
    return request.app.state.collection_service


async def get_current_user_id(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Resolve the caller's user id.

    With ``dev_auth_bypass`` the ``x-user-id`` header is trusted as-is.
    """
    settings: Settings = request.app.state.settings
    if settings.dev_auth_bypass and x_user_id:
        user_id_var.set(x_user_id)
        return x_user_id

    identity: IdentityService | None = getattr(request.app.state, "identity", None)
    if identity is not None and authorization and authorization.lower().startswith("bearer "):
        user_id = await identity.verify_token(authorization[7:].strip())
        if user_id:
            user_id_var.set(user_id)
            return user_id

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
    )


AppSettings = Annotated[Settings, Depends(get_app_settings)]
SearchService = Annotated[SearchAggregationService, Depends(get_search_service)]
ThumbnailService = Annotated[ThumbnailGenerator, Depends(get_thumbnail_service)]
CollectionsService = Annotated[CollectionService, Depends(get_collection_service)]
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
