"""Listen recording endpoints; they feed the history read by the engine."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from encore.dependencies import get_catalog_store, get_history_store
from encore.schemas import ListenEvent
from encore.services.auth import require_user_id
from encore.services.catalog import CatalogStore
from encore.services.history import HistoryStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_listen(
    event: ListenEvent,
    user_id: int = Depends(require_user_id),
    catalog: CatalogStore = Depends(get_catalog_store),
    history: HistoryStore = Depends(get_history_store),
):
    """Record one play of a song.

    Cached recommendations are not invalidated; they pick the listen up on
    the next day or on a forced refresh.
    """
    try:
        album = await catalog.get_album(event.album_id)
        if album is None:
            raise HTTPException(status_code=404, detail="Album not found")
        await history.record_listen(
            user_id,
            event.album_id,
            event.song_title,
            event.song_file,
            event.listened_at,
        )
    except SQLAlchemyError:
        logger.error("Failed to record listen for user %s", user_id, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record listen")
    return {"status": "recorded", "albumId": event.album_id, "songTitle": event.song_title}


@router.delete("")
async def clear_history(
    user_id: int = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
):
    """Delete every listen and favorite of the calling user."""
    try:
        await history.delete_history(user_id)
    except SQLAlchemyError:
        logger.error("Failed to delete history for user %s", user_id, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete listening history")
    return {"status": "deleted"}
