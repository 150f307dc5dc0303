"""Multi-signal recommendation ranker.

Combines a user's taste profile (favorite artists and genres, most listened
albums and songs) with the cross-user popularity index and a random term
into five independently capped result lists, then removes albums and songs
that appear in more than one list.
"""

import logging
import math
import random
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from zoneinfo import ZoneInfo

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from encore.exceptions import InternalError, NotFoundError
from encore.schemas import (
    CatalogAlbum,
    HistorySnapshot,
    RecommendationResult,
    RecommendationWeights,
    RecommendedAlbum,
    RecommendedSong,
    TopSong,
)
from encore.services.catalog import CatalogStore
from encore.services.favorites import FavoritesStore
from encore.services.formatting import format_cover_url, format_title
from encore.services.history import HistoryStore
from encore.services.popularity import PopularityIndex, max_popularity
from encore.services.recency import apply_recency_weighting
from encore.services.taste_profile import TasteProfileExtractor
from encore.services.timestamps import utcnow

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = RecommendationWeights()

# Base list sizes. A category holds at most floor(base * weight) entries,
# so a weight above 1 lets it grow past the base.
ARTIST_BASE_COUNT = 15
GENRE_BASE_COUNT = 6
LISTENED_ALBUM_BASE_COUNT = 8
SONG_BASE_COUNT = 6

FAVORITE_SAMPLE_SIZE = 15
FAVORITE_FALLBACK_COUNT = 3
LISTENED_SOURCE_ALBUMS = 8


def category_limit(base_count: int, weight: float) -> int:
    return max(0, math.floor(base_count * weight))


def popularity_score(
    album_id: str,
    popularity: Dict[str, int],
    top_popularity: int,
    popularity_weight: float,
    rng: random.Random,
) -> float:
    """Random term blended with normalized popularity.

    A popularity weight of 1 ranks purely by popularity, 0 purely at random.
    """
    return (
        rng.random() * (1.0 - popularity_weight)
        + (popularity.get(album_id, 0) / top_popularity) * popularity_weight
    )


def filter_already_listened(
    albums: List[RecommendedAlbum],
    listened_ids: Set[str],
) -> List[RecommendedAlbum]:
    """Drop albums the user already listened to.

    If that would empty a non-empty list, the first few entries are kept so
    the section is never blank.
    """
    if not albums:
        return []
    remaining = [album for album in albums if album.id not in listened_ids]
    if not remaining:
        return albums[:FAVORITE_FALLBACK_COUNT]
    return remaining


def remove_duplicates(result: RecommendationResult) -> RecommendationResult:
    """Keep the first occurrence of every album id and song title.

    Albums are deduplicated across categories in the order artists, genres,
    favorites, listened albums; songs by lowercased trimmed title.
    """
    seen_albums: Set[str] = set()
    seen_songs: Set[str] = set()

    def dedupe_albums(albums: List[RecommendedAlbum]) -> List[RecommendedAlbum]:
        kept = []
        for album in albums:
            if not album.id or album.id in seen_albums:
                continue
            seen_albums.add(album.id)
            kept.append(album)
        return kept

    def dedupe_songs(songs: List[RecommendedSong]) -> List[RecommendedSong]:
        kept = []
        for song in songs:
            key = song.title.lower().strip()
            if key in seen_songs:
                continue
            seen_songs.add(key)
            kept.append(song)
        return kept

    return RecommendationResult(
        based_on_artists=dedupe_albums(result.based_on_artists),
        based_on_genres=dedupe_albums(result.based_on_genres),
        favorite_albums=dedupe_albums(result.favorite_albums),
        similar_to_liked_songs=dedupe_songs(result.similar_to_liked_songs),
        based_on_listened_albums=dedupe_albums(result.based_on_listened_albums),
    )


def _ordered_union(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


class RecommendationEngine:
    """Generates and caches per-user recommendation sets."""

    def __init__(
        self,
        catalog: CatalogStore,
        history: HistoryStore,
        favorites: FavoritesStore,
        popularity: PopularityIndex,
        profiles: TasteProfileExtractor,
        cache,
        *,
        cache_ttl: Optional[float] = None,
        cdn_url: str = "",
        default_cover_path: str = "",
        rng: Optional[random.Random] = None,
        timezone: str = "UTC",
        now: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.history = history
        self.favorites = favorites
        self.popularity = popularity
        self.profiles = profiles
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.cdn_url = cdn_url
        self.default_cover_path = default_cover_path
        self.rng = rng or random.Random()
        self.tz = ZoneInfo(timezone)
        self._now = now

    async def generate_recommendations(
        self,
        user_id: int,
        weights: Optional[Dict[str, Optional[float]]] = None,
        force_refresh: bool = False,
    ) -> RecommendationResult:
        """Recommendations for a user, cached once per user per day.

        Raises NotFoundError when the user does not exist or has never
        listened to anything, InternalError when a store fails.
        """
        try:
            return await self._generate(user_id, weights, force_refresh)
        except (SQLAlchemyError, RedisError) as exc:
            logger.error("Store failure while generating recommendations for user %s", user_id, exc_info=True)
            raise InternalError("Failed to generate recommendations") from exc

    async def _generate(
        self,
        user_id: int,
        weights: Optional[Dict[str, Optional[float]]],
        force_refresh: bool,
    ) -> RecommendationResult:
        day = self._now().astimezone(self.tz).date()
        cache_key = f"recommendations:{user_id}:{day.isoformat()}"
        if not force_refresh:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Recommendations for user %s served from cache", user_id)
                return RecommendationResult.model_validate(cached)

        final_weights = DEFAULT_WEIGHTS.merged(weights)

        user = await self.history.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        snapshot = await self.history.get_history(user_id)
        if snapshot.is_empty:
            raise NotFoundError("No listening history available for recommendations")

        weighted = apply_recency_weighting(snapshot, final_weights.recency, self._now())
        listened_albums = await self.catalog.get_albums(stat.album_id for stat in snapshot.albums)
        profile = await self.profiles.build_profile(
            user_id, snapshot, weighted_snapshot=weighted, albums=listened_albums
        )
        popularity = await self.popularity.get_album_popularity()

        # Order matters: deduplication keeps the first category an album appears in
        by_artists = await self._artist_based(
            profile.top_artists, final_weights.similar_artists, final_weights.popularity, popularity
        )
        by_genres = await self._genre_based(
            profile.top_genres, final_weights.favorite_genres, final_weights.popularity, popularity
        )
        favorite_albums = await self._favorite_albums(user_id, snapshot)
        by_listened = await self._listened_album_based(
            weighted, listened_albums, final_weights.listened_albums, final_weights.popularity, popularity
        )
        by_songs = await self._song_based(
            profile.top_songs, final_weights.favorite_songs, final_weights.popularity, popularity
        )

        result = remove_duplicates(RecommendationResult(
            based_on_artists=by_artists,
            based_on_genres=by_genres,
            favorite_albums=favorite_albums,
            similar_to_liked_songs=by_songs,
            based_on_listened_albums=by_listened,
        ))

        await self.cache.set(cache_key, result.model_dump(mode="json"), ttl=self.cache_ttl)
        logger.info(
            "Generated recommendations for user %s",
            user_id,
            extra={
                "artists": len(result.based_on_artists),
                "genres": len(result.based_on_genres),
                "favorites": len(result.favorite_albums),
                "songs": len(result.similar_to_liked_songs),
                "listened_albums": len(result.based_on_listened_albums),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def _artist_based(
        self,
        artists: List[str],
        weight: float,
        popularity_weight: float,
        popularity: Dict[str, int],
    ) -> List[RecommendedAlbum]:
        if not artists:
            return []
        candidates = await self.catalog.find_by_artists(artists)
        selected = self._rank_albums(
            candidates, category_limit(ARTIST_BASE_COUNT, weight), popularity_weight, popularity
        )
        return [self._format_album(album) for album in selected]

    async def _genre_based(
        self,
        genres: List[str],
        weight: float,
        popularity_weight: float,
        popularity: Dict[str, int],
    ) -> List[RecommendedAlbum]:
        if not genres:
            return []
        candidates = await self.catalog.find_by_genres(genres)
        selected = self._rank_albums(
            candidates, category_limit(GENRE_BASE_COUNT, weight), popularity_weight, popularity
        )
        return [self._format_album(album) for album in selected]

    async def _favorite_albums(self, user_id: int, snapshot: HistorySnapshot) -> List[RecommendedAlbum]:
        """Other albums by the artists of the user's favorited albums.

        Sampled at random and sorted by title rather than scored: this list
        shows catalog breadth of artists the user already likes.
        """
        favorite_ids = await self.favorites.get_favorite_album_ids(user_id)
        if not favorite_ids:
            return []

        favorite_albums = await self.catalog.get_albums(favorite_ids)
        artists = _ordered_union(
            artist for album_id in favorite_ids if album_id in favorite_albums
            for artist in favorite_albums[album_id].artists
        )
        if not artists:
            return []

        candidates = await self.catalog.find_by_artists(artists, exclude_ids=favorite_ids)
        sampled = self.rng.sample(candidates, min(FAVORITE_SAMPLE_SIZE, len(candidates)))
        formatted = sorted(
            (self._format_album(album) for album in sampled),
            key=lambda album: album.title.casefold(),
        )
        listened_ids = {stat.album_id for stat in snapshot.albums}
        return filter_already_listened(formatted, listened_ids)

    async def _listened_album_based(
        self,
        weighted: HistorySnapshot,
        listened_albums: Dict[str, CatalogAlbum],
        weight: float,
        popularity_weight: float,
        popularity: Dict[str, int],
    ) -> List[RecommendedAlbum]:
        """Albums sharing an artist or genre with the most played (recency weighted) albums."""
        if not weighted.albums:
            return []

        source_ids = [
            stat.album_id
            for stat in sorted(weighted.albums, key=lambda stat: stat.play_count, reverse=True)
        ][:LISTENED_SOURCE_ALBUMS]
        sources = [listened_albums[album_id] for album_id in source_ids if album_id in listened_albums]

        artists = _ordered_union(artist for album in sources for artist in album.artists)
        genres = _ordered_union(genre for album in sources for genre in album.genres)
        if not artists and not genres:
            return []

        candidates = await self.catalog.find_by_artists_or_genres(artists, genres, exclude_ids=source_ids)
        selected = self._rank_albums(
            candidates, category_limit(LISTENED_ALBUM_BASE_COUNT, weight), popularity_weight, popularity
        )
        return [self._format_album(album) for album in selected]

    async def _song_based(
        self,
        top_songs: List[TopSong],
        weight: float,
        popularity_weight: float,
        popularity: Dict[str, int],
    ) -> List[RecommendedSong]:
        """Catalog songs titled like the user's most played songs, popularity-biased shuffle."""
        titles = _ordered_union(song.song_title for song in top_songs)
        if not titles:
            return []

        wanted = set(titles)
        albums = await self.catalog.find_by_song_titles(titles)
        matches: List[Tuple[CatalogAlbum, str, str]] = [
            (album, song.title, song.file)
            for album in albums
            for song in album.songs
            if song.title in wanted
        ]

        top_popularity = max_popularity(popularity)
        scored = [
            (popularity_score(album.id, popularity, top_popularity, popularity_weight, self.rng), index)
            for index, (album, _, _) in enumerate(matches)
        ]
        scored.sort(key=lambda item: item[0], reverse=True)

        songs = []
        for _, index in scored[:category_limit(SONG_BASE_COUNT, weight)]:
            album, title, file = matches[index]
            songs.append(RecommendedSong(
                title=title,
                file=file,
                album_title=format_title(album.title),
                album_artist=list(album.artists),
                album_cover=self._cover(album),
                album_lang=album.lang,
                album_id=album.id,
            ))
        return songs

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _rank_albums(
        self,
        candidates: List[CatalogAlbum],
        limit: int,
        popularity_weight: float,
        popularity: Dict[str, int],
    ) -> List[CatalogAlbum]:
        top_popularity = max_popularity(popularity)
        scored = [
            (popularity_score(album.id, popularity, top_popularity, popularity_weight, self.rng), index)
            for index, album in enumerate(candidates)
        ]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [candidates[index] for _, index in scored[:limit]]

    def _cover(self, album: CatalogAlbum) -> str:
        try:
            return format_cover_url(album.cover or "", self.cdn_url)
        except ValueError:
            logger.warning("Cannot resolve cover of album %s; using default", album.id)
            return self.default_cover_path

    def _format_album(self, album: CatalogAlbum) -> RecommendedAlbum:
        return RecommendedAlbum(
            id=album.id,
            title=format_title(album.title),
            artist=list(album.artists),
            genre=list(album.genres),
            lang=album.lang,
            cover=self._cover(album),
            song_length=len(album.songs),
        )
