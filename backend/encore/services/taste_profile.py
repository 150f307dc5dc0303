"""Taste profile extraction: top artists, genres and songs of a user."""

import logging
from typing import Dict, List, Optional

from encore.schemas import AlbumStat, CatalogAlbum, HistorySnapshot, TasteProfile, TopSong
from encore.services.catalog import CatalogStore
from encore.services.history import HistoryStore

logger = logging.getLogger(__name__)

TOP_SONGS_LIMIT = 20
TOP_GENRES_LIMIT = 3
TOP_ARTISTS_LIMIT = 5


def rank_album_tags(
    album_stats: List[AlbumStat],
    albums: Dict[str, CatalogAlbum],
    attribute: str,
    limit: int,
) -> List[str]:
    """Rank the tags of listened albums by attributed plays.

    Every tag on an album (artist or genre) receives the album's full play
    count. Albums missing from the catalog, or without tags, contribute
    nothing. Ties keep first-seen order.
    """
    counts: Dict[str, int] = {}
    for stat in album_stats:
        album = albums.get(stat.album_id)
        if album is None:
            continue
        for tag in getattr(album, attribute):
            counts[tag] = counts.get(tag, 0) + stat.play_count

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [tag for tag, _ in ranked[:limit]]


def favorite_genres(
    album_stats: List[AlbumStat],
    albums: Dict[str, CatalogAlbum],
    limit: int = TOP_GENRES_LIMIT,
) -> List[str]:
    return rank_album_tags(album_stats, albums, "genres", limit)


def favorite_artists(
    album_stats: List[AlbumStat],
    albums: Dict[str, CatalogAlbum],
    limit: int = TOP_ARTISTS_LIMIT,
) -> List[str]:
    return rank_album_tags(album_stats, albums, "artists", limit)


class TasteProfileExtractor:
    """Derives a user's taste profile from history and catalog."""

    def __init__(
        self,
        catalog: CatalogStore,
        history: HistoryStore,
        cache=None,
        cache_ttl: Optional[float] = None,
    ):
        self.catalog = catalog
        self.history = history
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def top_listened_songs(
        self,
        user_id: int,
        limit: int = TOP_SONGS_LIMIT,
        snapshot: Optional[HistorySnapshot] = None,
    ) -> List[TopSong]:
        """The user's most played songs with their owning album.

        Songs whose album no longer exists are logged and skipped.
        """
        cache_key = f"top_songs:{user_id}:{limit}"
        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return [TopSong.model_validate(item) for item in cached]

        if snapshot is None:
            snapshot = await self.history.get_history(user_id)

        ranked = sorted(snapshot.songs, key=lambda song: song.play_count, reverse=True)[:limit]
        albums = await self.catalog.get_albums(song.album_id for song in ranked)

        top_songs: List[TopSong] = []
        for song in ranked:
            album = albums.get(song.album_id)
            if album is None:
                logger.warning(
                    "Album %s not found for song '%s' of user %s; skipping",
                    song.album_id,
                    song.song_title,
                    user_id,
                )
                continue
            top_songs.append(TopSong(song_title=song.song_title, album=album))

        if self.cache is not None:
            await self.cache.set(
                cache_key,
                [song.model_dump(mode="json") for song in top_songs],
                ttl=self.cache_ttl,
            )
        return top_songs

    async def favorite_genres(self, snapshot: HistorySnapshot) -> List[str]:
        albums = await self.catalog.get_albums(stat.album_id for stat in snapshot.albums)
        return favorite_genres(snapshot.albums, albums)

    async def favorite_artists(self, snapshot: HistorySnapshot) -> List[str]:
        albums = await self.catalog.get_albums(stat.album_id for stat in snapshot.albums)
        return favorite_artists(snapshot.albums, albums)

    async def build_profile(
        self,
        user_id: int,
        snapshot: HistorySnapshot,
        weighted_snapshot: Optional[HistorySnapshot] = None,
        albums: Optional[Dict[str, CatalogAlbum]] = None,
    ) -> TasteProfile:
        """Top artists, genres and songs in one pass over the catalog.

        Artists and genres are ranked on ``weighted_snapshot`` when given
        (recency weighted counts); top songs always rank raw counts.
        """
        source = weighted_snapshot or snapshot
        if albums is None:
            albums = await self.catalog.get_albums(stat.album_id for stat in source.albums)
        return TasteProfile(
            top_artists=favorite_artists(source.albums, albums),
            top_genres=favorite_genres(source.albums, albums),
            top_songs=await self.top_listened_songs(user_id, snapshot=snapshot),
        )
