"""Yearly "wrapped" listening summary and listener percentiles.

Totals, top songs, top albums, the language breakdown and listening times
are restricted to listen events of the current calendar year (in the
configured time zone). Per-album percentiles use the stored all-time play
counters instead, comparing the user's count with every other listener of
the album:

    percentile  = listeners with a strictly lower count / all listeners * 100
    top percent = max(0.1, 100 - percentile), one decimal

An album the user alone listened to has percentile 0. Percentiles are then
folded per artist, keeping each artist's lowest value.
"""

import logging
from datetime import datetime, tzinfo
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from encore.exceptions import InternalError, NotFoundError
from encore.locales import get_messages
from encore.schemas import (
    AggregatedArtistStat,
    AlbumStat,
    CatalogAlbum,
    ListeningTimes,
    PercentileResult,
    SongStat,
    TopPerformance,
    WrappedAlbum,
    WrappedSong,
    WrappedStats,
)
from encore.services.catalog import CatalogStore
from encore.services.formatting import format_cover_url, is_absolute_url
from encore.services.history import HistoryStore
from encore.services.timestamps import parse_listen_timestamp, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SONG_DURATION_MINUTES = 3
TOP_PERFORMANCE_PERCENTILE_THRESHOLD = 10
MIN_TOP_PERCENT = 0.1
NEUTRAL_PERCENTILE = 50
TOP_SONGS_LIMIT = 5
TOP_ALBUMS_LIMIT = 6


def to_top_percent(percentile: float) -> float:
    return round(max(MIN_TOP_PERCENT, 100 - percentile), 1)


def format_percent(value: float) -> str:
    """100.0 -> "100", 12.5 -> "12.5"."""
    return f"{value:g}"


def year_bounds(year: int, tz: tzinfo) -> Tuple[datetime, datetime]:
    """[Jan 1 of ``year``, Jan 1 of the next year) in the given zone."""
    return datetime(year, 1, 1, tzinfo=tz), datetime(year + 1, 1, 1, tzinfo=tz)


def _listens_in_period(history: Iterable, start: datetime, end: datetime) -> Tuple[List[datetime], int]:
    kept: List[datetime] = []
    invalid = 0
    for value in history or ():
        parsed = parse_listen_timestamp(value)
        if parsed is None:
            invalid += 1
        elif start <= parsed < end:
            kept.append(parsed)
    return kept, invalid


def restrict_songs_to_period(songs: List[SongStat], start: datetime, end: datetime) -> List[SongStat]:
    """Song stats counting only listens inside the period; stats without any are dropped."""
    restricted = []
    for song in songs:
        listens, invalid = _listens_in_period(song.listen_history, start, end)
        if invalid:
            logger.warning("Skipping %d invalid listen timestamp(s) of song '%s'", invalid, song.song_title)
        if listens:
            restricted.append(song.model_copy(update={"play_count": len(listens), "listen_history": listens}))
    return restricted


def restrict_albums_to_period(albums: List[AlbumStat], start: datetime, end: datetime) -> List[AlbumStat]:
    restricted = []
    for album in albums:
        listens, invalid = _listens_in_period(album.listen_history, start, end)
        if invalid:
            logger.warning("Skipping %d invalid listen timestamp(s) of album %s", invalid, album.album_id)
        if listens:
            restricted.append(album.model_copy(update={"play_count": len(listens), "listen_history": listens}))
    return restricted


def compute_album_percentiles(
    user_albums: List[AlbumStat],
    distribution: Dict[str, List[int]],
    albums: Dict[str, CatalogAlbum],
) -> List[PercentileResult]:
    """One percentile per album of ``user_albums`` against ``distribution``.

    ``distribution`` maps an album id to the play counts of all its listeners,
    the user included.
    """
    results = []
    for stat in user_albums:
        counts = distribution.get(stat.album_id, [])
        if len(counts) <= 1:
            percentile = 0.0
        else:
            lower = sum(1 for count in counts if count < stat.play_count)
            percentile = lower / len(counts) * 100

        album = albums.get(stat.album_id)
        if album is None:
            logger.warning("Album %s not found while computing percentiles", stat.album_id)

        results.append(PercentileResult(
            album_id=stat.album_id,
            artist_list=list(album.artists) if album else [],
            percentile=percentile,
            top_percent=to_top_percent(percentile),
            total_listens=stat.play_count,
        ))
    return results


def aggregate_artist_stats(percentiles: List[PercentileResult]) -> List[AggregatedArtistStat]:
    """Fold album percentiles per artist: summed listens, lowest percentile."""
    by_artist: Dict[str, AggregatedArtistStat] = {}
    for result in percentiles:
        for artist in result.artist_list:
            stat = by_artist.get(artist)
            if stat is None:
                stat = by_artist[artist] = AggregatedArtistStat(
                    artist_name=artist, best_percentile=100
                )
            stat.total_listens += result.total_listens
            stat.best_percentile = min(stat.best_percentile, result.percentile)
            if result.album_id not in stat.album_ids:
                stat.album_ids.append(result.album_id)
    return list(by_artist.values())


def global_percentile(artist_stats: List[AggregatedArtistStat]) -> float:
    """Top percent of the user's single best artist standing; 50 without data.

    This reuses the best artist standing as the user's overall figure; it is
    not a population-wide percentile of total listening.
    """
    if not artist_stats:
        return NEUTRAL_PERCENTILE
    return to_top_percent(min(stat.best_percentile for stat in artist_stats))


def top_performances(
    artist_stats: List[AggregatedArtistStat],
    messages: Dict[str, str],
) -> List[TopPerformance]:
    """Artists whose best percentile is within the threshold, best first."""
    qualifying = sorted(
        (stat for stat in artist_stats if stat.best_percentile <= TOP_PERFORMANCE_PERCENTILE_THRESHOLD),
        key=lambda stat: stat.best_percentile,
    )
    performances = []
    for stat in qualifying:
        top_percent = to_top_percent(stat.best_percentile)
        performances.append(TopPerformance(
            artist_name=stat.artist_name,
            message=messages["top_performance"].format(
                top_percent=format_percent(top_percent), artist=stat.artist_name
            ),
            total_listens=stat.total_listens,
            top_percent=top_percent,
        ))
    return performances


def calculate_listening_times(songs: List[SongStat], tz: tzinfo) -> ListeningTimes:
    """Bucket every listen by local hour of day."""
    times = ListeningTimes()
    for song in songs:
        for value in song.listen_history or ():
            listened_at = parse_listen_timestamp(value)
            if listened_at is None:
                logger.warning("Invalid date found in listen history: %r", value)
                continue
            hour = listened_at.astimezone(tz).hour
            if 6 <= hour < 12:
                times.morning += 1
            elif 12 <= hour < 18:
                times.afternoon += 1
            elif 18 <= hour < 24:
                times.evening += 1
            else:
                times.night += 1
    return times


def calculate_top_songs(
    songs: List[SongStat],
    albums: Dict[str, CatalogAlbum],
    messages: Dict[str, str],
) -> List[WrappedSong]:
    ranked = sorted(songs, key=lambda song: song.play_count, reverse=True)[:TOP_SONGS_LIMIT]
    top = []
    for song in ranked:
        album = albums.get(song.album_id)
        artist = " & ".join(album.artists) if album and album.artists else ""
        top.append(WrappedSong(
            title=song.song_title or messages["unknown_title"],
            artist=artist or messages["unknown_artist"],
            play_count=song.play_count,
        ))
    return top


def resolve_cover(cover: Optional[str], cdn_url: str, default_cover: str) -> str:
    """Absolute URLs pass through, relative paths go through the CDN, anything else is the default."""
    if not cover:
        return default_cover
    if is_absolute_url(cover):
        return cover
    try:
        return format_cover_url(cover, cdn_url)
    except ValueError:
        logger.warning("Cannot resolve cover %s; using default", cover)
        return default_cover


def calculate_top_albums(
    album_stats: List[AlbumStat],
    albums: Dict[str, CatalogAlbum],
    cdn_url: str,
    default_cover: str,
    messages: Dict[str, str],
) -> List[WrappedAlbum]:
    ranked = sorted(album_stats, key=lambda stat: stat.play_count, reverse=True)[:TOP_ALBUMS_LIMIT]
    top = []
    for stat in ranked:
        album = albums.get(stat.album_id)
        top.append(WrappedAlbum(
            title=album.title if album and album.title else messages["unknown_album"],
            artist=list(album.artists) if album else [],
            cover_url=resolve_cover(album.cover if album else None, cdn_url, default_cover),
            play_count=stat.play_count,
        ))
    return top


def calculate_language_breakdown(
    album_stats: List[AlbumStat],
    albums: Dict[str, CatalogAlbum],
) -> Dict[str, int]:
    breakdown: Dict[str, int] = {}
    for stat in album_stats:
        album = albums.get(stat.album_id)
        if album is None or not album.lang:
            continue
        breakdown[album.lang] = breakdown.get(album.lang, 0) + stat.play_count
    return breakdown


class WrappedService:
    """Computes a user's yearly wrapped summary."""

    def __init__(
        self,
        catalog: CatalogStore,
        history: HistoryStore,
        *,
        cdn_url: str = "",
        default_cover_path: str = "/assets/default-cover.jpg",
        timezone: str = "UTC",
        locale: str = "fr",
        now: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.history = history
        self.cdn_url = cdn_url
        self.default_cover_path = default_cover_path
        self.tz = ZoneInfo(timezone)
        self.messages = get_messages(locale)
        self._now = now

    async def compute_wrapped(self, user_id: int) -> WrappedStats:
        """Raises NotFoundError for an unknown user, InternalError on store failure."""
        try:
            return await self._compute(user_id)
        except SQLAlchemyError as exc:
            logger.error("Store failure while computing wrapped for user %s", user_id, exc_info=True)
            raise InternalError("Failed to compute wrapped statistics") from exc

    async def _compute(self, user_id: int) -> WrappedStats:
        user = await self.history.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        snapshot = await self.history.get_history(user_id)
        year = self._now().astimezone(self.tz).year
        start, end = year_bounds(year, self.tz)

        songs = restrict_songs_to_period(snapshot.songs, start, end)
        album_stats = restrict_albums_to_period(snapshot.albums, start, end)

        albums = await self.catalog.get_albums(
            [stat.album_id for stat in snapshot.albums] + [song.album_id for song in songs]
        )
        distribution = await self._play_count_distribution(
            [stat.album_id for stat in snapshot.albums]
        )

        # Standings use all-time counters; only the list sections are yearly
        listened = [stat for stat in snapshot.albums if stat.play_count > 0]
        percentiles = compute_album_percentiles(listened, distribution, albums)
        artist_stats = aggregate_artist_stats(percentiles)
        total_listens = sum(song.play_count for song in songs)

        return WrappedStats(
            year=year,
            total_minutes=round(total_listens * DEFAULT_SONG_DURATION_MINUTES),
            total_listens=total_listens,
            percentile=global_percentile(artist_stats),
            top_songs=calculate_top_songs(songs, albums, self.messages),
            top_albums=calculate_top_albums(
                album_stats, albums, self.cdn_url, self.default_cover_path, self.messages
            ),
            language_breakdown=calculate_language_breakdown(album_stats, albums),
            listening_times=calculate_listening_times(songs, self.tz),
            top_performances=top_performances(artist_stats, self.messages),
        )

    async def _play_count_distribution(self, album_ids: List[str]) -> Dict[str, List[int]]:
        """Stored play counts of every listener, per album, from one batch read."""
        listeners = await self.history.get_album_listeners(album_ids)
        return {
            album_id: [stat.play_count for stat in stats if stat.play_count > 0]
            for album_id, stats in listeners.items()
        }
