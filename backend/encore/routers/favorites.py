"""Favorite album endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from encore.dependencies import get_catalog_store, get_favorites_store
from encore.services.auth import require_user_id
from encore.services.catalog import CatalogStore
from encore.services.favorites import FavoritesStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_favorites(
    user_id: int = Depends(require_user_id),
    favorites: FavoritesStore = Depends(get_favorites_store),
):
    try:
        album_ids = await favorites.get_favorite_album_ids(user_id)
    except SQLAlchemyError:
        logger.error("Failed to read favorites of user %s", user_id, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to read favorites")
    return {"albumIds": album_ids}


@router.put("/{album_id}")
async def add_favorite(
    album_id: str,
    user_id: int = Depends(require_user_id),
    catalog: CatalogStore = Depends(get_catalog_store),
    favorites: FavoritesStore = Depends(get_favorites_store),
):
    try:
        if await catalog.get_album(album_id) is None:
            raise HTTPException(status_code=404, detail="Album not found")
        created = await favorites.add_favorite(user_id, album_id)
    except SQLAlchemyError:
        logger.error("Failed to favorite album %s for user %s", album_id, user_id, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update favorites")
    return {"albumId": album_id, "favorite": True, "created": created}


@router.delete("/{album_id}")
async def remove_favorite(
    album_id: str,
    user_id: int = Depends(require_user_id),
    favorites: FavoritesStore = Depends(get_favorites_store),
):
    try:
        await favorites.remove_favorite(user_id, album_id)
    except SQLAlchemyError:
        logger.error("Failed to unfavorite album %s for user %s", album_id, user_id, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update favorites")
    return {"albumId": album_id, "favorite": False}
