"""Read-only access to the album catalog."""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from encore.models.album import Album, Song
from encore.schemas import CatalogAlbum, CatalogSong

logger = logging.getLogger(__name__)


def to_catalog_album(album: Album) -> CatalogAlbum:
    """Convert an ORM album (with its songs loaded) to the engine type."""
    return CatalogAlbum(
        id=album.id,
        title=album.title or "",
        artists=list(album.artists or []),
        genres=[str(getattr(genre, "value", genre)) for genre in album.genres or []],
        lang=album.lang,
        cover=album.cover,
        songs=[CatalogSong(title=song.title, file=song.file or "") for song in album.songs or []],
    )


class CatalogStore:
    """Catalog queries used by the recommendation and statistics engine.

    Album lookups by id return ``None`` / omit the key for ids that no
    longer resolve; callers decide whether to skip or fail.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_album(self, album_id: str) -> Optional[CatalogAlbum]:
        result = await self.db.execute(select(Album).where(Album.id == album_id))
        album = result.scalar_one_or_none()
        return to_catalog_album(album) if album else None

    async def get_albums(self, album_ids: Iterable[str]) -> Dict[str, CatalogAlbum]:
        ids = list(dict.fromkeys(album_ids))
        if not ids:
            return {}
        result = await self.db.execute(select(Album).where(Album.id.in_(ids)))
        return {album.id: to_catalog_album(album) for album in result.scalars().all()}

    async def find_by_artists(
        self,
        artists: List[str],
        exclude_ids: Iterable[str] = (),
    ) -> List[CatalogAlbum]:
        if not artists:
            return []
        query = select(Album).where(Album.artists.overlap(list(artists)))
        excluded = list(exclude_ids)
        if excluded:
            query = query.where(Album.id.notin_(excluded))
        result = await self.db.execute(query.order_by(Album.id))
        return [to_catalog_album(album) for album in result.scalars().all()]

    async def find_by_genres(self, genres: List[str]) -> List[CatalogAlbum]:
        if not genres:
            return []
        result = await self.db.execute(
            select(Album).where(Album.genres.overlap(list(genres))).order_by(Album.id)
        )
        return [to_catalog_album(album) for album in result.scalars().all()]

    async def find_by_artists_or_genres(
        self,
        artists: List[str],
        genres: List[str],
        exclude_ids: Iterable[str] = (),
    ) -> List[CatalogAlbum]:
        conditions = []
        if artists:
            conditions.append(Album.artists.overlap(list(artists)))
        if genres:
            conditions.append(Album.genres.overlap(list(genres)))
        if not conditions:
            return []

        query = select(Album).where(or_(*conditions))
        excluded = list(exclude_ids)
        if excluded:
            query = query.where(Album.id.notin_(excluded))
        result = await self.db.execute(query.order_by(Album.id))
        return [to_catalog_album(album) for album in result.scalars().all()]

    async def find_by_song_titles(self, titles: List[str]) -> List[CatalogAlbum]:
        """Albums containing at least one song with one of the given titles."""
        if not titles:
            return []
        song_album_ids = select(Song.album_id).where(Song.title.in_(list(titles)))
        result = await self.db.execute(
            select(Album).where(Album.id.in_(song_album_ids)).order_by(Album.id)
        )
        return [to_catalog_album(album) for album in result.scalars().all()]
