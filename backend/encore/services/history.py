"""Listening history store: per-user play counters and their timestamps."""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from encore.models.favorite_album import FavoriteAlbum
from encore.models.listening_history import ListenedAlbumStat, ListenedSongStat
from encore.models.user import User
from encore.schemas import AlbumStat, HistorySnapshot, SongStat
from encore.services.timestamps import utcnow

logger = logging.getLogger(__name__)


def _song_stat(row: ListenedSongStat) -> SongStat:
    return SongStat(
        song_title=row.song_title,
        song_file=row.song_file or "",
        album_id=row.album_id,
        play_count=row.play_count or 0,
        listen_history=list(row.listen_history or []),
    )


def _album_stat(row: ListenedAlbumStat) -> AlbumStat:
    return AlbumStat(
        album_id=row.album_id,
        play_count=row.play_count or 0,
        listen_history=list(row.listen_history or []),
    )


class HistoryStore:
    """Reads and writes the listened-songs / listened-albums counters."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_history(self, user_id: int) -> HistorySnapshot:
        songs_result = await self.db.execute(
            select(ListenedSongStat)
            .where(ListenedSongStat.user_id == user_id)
            .order_by(ListenedSongStat.id)
        )
        albums_result = await self.db.execute(
            select(ListenedAlbumStat)
            .where(ListenedAlbumStat.user_id == user_id)
            .order_by(ListenedAlbumStat.id)
        )
        return HistorySnapshot(
            user_id=user_id,
            songs=[_song_stat(row) for row in songs_result.scalars().all()],
            albums=[_album_stat(row) for row in albums_result.scalars().all()],
        )

    async def get_album_play_totals(self) -> List[Tuple[str, int]]:
        """Sum of every user's play count per album, most played first."""
        total = func.sum(ListenedAlbumStat.play_count).label("total_play_count")
        result = await self.db.execute(
            select(ListenedAlbumStat.album_id, total)
            .group_by(ListenedAlbumStat.album_id)
            .order_by(total.desc(), ListenedAlbumStat.album_id)
        )
        return [(row.album_id, int(row.total_play_count or 0)) for row in result.all()]

    async def get_album_listeners(self, album_ids: Iterable[str]) -> Dict[str, List[AlbumStat]]:
        """Every user's stat for each of the given albums, fetched in one query."""
        ids = list(dict.fromkeys(album_ids))
        if not ids:
            return {}
        result = await self.db.execute(
            select(ListenedAlbumStat).where(ListenedAlbumStat.album_id.in_(ids))
        )
        listeners: Dict[str, List[AlbumStat]] = defaultdict(list)
        for row in result.scalars().all():
            listeners[row.album_id].append(_album_stat(row))
        return dict(listeners)

    async def record_listen(
        self,
        user_id: int,
        album_id: str,
        song_title: str,
        song_file: str = "",
        listened_at: Optional[datetime] = None,
    ) -> None:
        """Increment the song and album counters, creating them on first listen."""
        timestamp = (listened_at or utcnow()).isoformat()

        song_result = await self.db.execute(
            select(ListenedSongStat)
            .where(ListenedSongStat.user_id == user_id)
            .where(ListenedSongStat.album_id == album_id)
            .where(ListenedSongStat.song_title == song_title)
        )
        song_stat = song_result.scalar_one_or_none()
        if song_stat:
            song_stat.play_count = (song_stat.play_count or 0) + 1
            # Reassign so the JSON column is flagged dirty
            song_stat.listen_history = [*(song_stat.listen_history or []), timestamp]
        else:
            self.db.add(ListenedSongStat(
                user_id=user_id,
                album_id=album_id,
                song_title=song_title,
                song_file=song_file,
                play_count=1,
                listen_history=[timestamp],
            ))

        album_result = await self.db.execute(
            select(ListenedAlbumStat)
            .where(ListenedAlbumStat.user_id == user_id)
            .where(ListenedAlbumStat.album_id == album_id)
        )
        album_stat = album_result.scalar_one_or_none()
        if album_stat:
            album_stat.play_count = (album_stat.play_count or 0) + 1
            album_stat.listen_history = [*(album_stat.listen_history or []), timestamp]
        else:
            self.db.add(ListenedAlbumStat(
                user_id=user_id,
                album_id=album_id,
                play_count=1,
                listen_history=[timestamp],
            ))

        await self.db.commit()
        logger.debug("Recorded listen of '%s' (album %s) for user %s", song_title, album_id, user_id)

    async def delete_history(self, user_id: int) -> None:
        """Remove every listening counter and favorite owned by the user."""
        for model in (ListenedSongStat, ListenedAlbumStat, FavoriteAlbum):
            await self.db.execute(delete(model).where(model.user_id == user_id))
        await self.db.commit()
        logger.info("Deleted listening history for user %s", user_id)
