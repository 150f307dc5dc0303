"""Per-user favorited albums."""

import logging
from typing import List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from encore.models.favorite_album import FavoriteAlbum

logger = logging.getLogger(__name__)


class FavoritesStore:
    """Favorites collection access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_favorite_album_ids(self, user_id: int) -> List[str]:
        result = await self.db.execute(
            select(FavoriteAlbum.album_id)
            .where(FavoriteAlbum.user_id == user_id)
            .order_by(FavoriteAlbum.id)
        )
        return [row[0] for row in result.all()]

    async def add_favorite(self, user_id: int, album_id: str) -> bool:
        """Favorite an album; returns False if it already was."""
        result = await self.db.execute(
            select(FavoriteAlbum)
            .where(FavoriteAlbum.user_id == user_id)
            .where(FavoriteAlbum.album_id == album_id)
        )
        if result.scalar_one_or_none():
            return False
        self.db.add(FavoriteAlbum(user_id=user_id, album_id=album_id))
        await self.db.commit()
        return True

    async def remove_favorite(self, user_id: int, album_id: str) -> None:
        await self.db.execute(
            delete(FavoriteAlbum)
            .where(FavoriteAlbum.user_id == user_id)
            .where(FavoriteAlbum.album_id == album_id)
        )
        await self.db.commit()
