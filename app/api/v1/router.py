"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from app.api.v1 import collections, media, thumbnails

api_router = APIRouter()

api_router.include_router(media.router, prefix="/media", tags=["media"])
api_router.include_router(thumbnails.router, prefix="/thumbnails", tags=["thumbnails"])
api_router.include_router(collections.router, prefix="/collections", tags=["collections"])
