"""Pydantic types shared by the stores, the engine and the API.

JSON field names are camelCase to stay compatible with existing clients;
Python attributes stay snake_case (``populate_by_name`` accepts both).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Listening history snapshot
# ---------------------------------------------------------------------------

class SongStat(CamelModel):
    """One user's counter for one song."""
    song_title: str
    song_file: str = ""
    album_id: str
    play_count: int = 0
    # Raw stored values; unparseable entries are tolerated and skipped by readers
    listen_history: List[Any] = Field(default_factory=list)


class AlbumStat(CamelModel):
    """One user's counter for one album."""
    album_id: str
    play_count: int = 0
    listen_history: List[Any] = Field(default_factory=list)


class HistorySnapshot(CamelModel):
    """Everything a user has listened to."""
    user_id: int
    songs: List[SongStat] = Field(default_factory=list)
    albums: List[AlbumStat] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.songs and not self.albums


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class CatalogSong(CamelModel):
    title: str
    file: str = ""


class CatalogAlbum(CamelModel):
    """Catalog album as seen by the engine."""
    id: str
    title: str
    artists: List[str] = Field(default_factory=list)
    genres: List[str] = Field(default_factory=list)
    lang: Optional[str] = None
    cover: Optional[str] = None
    songs: List[CatalogSong] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Taste profile
# ---------------------------------------------------------------------------

class TopSong(CamelModel):
    song_title: str
    album: CatalogAlbum


class TasteProfile(CamelModel):
    """Derived summary of a user's listening, ordered by descending plays."""
    top_artists: List[str] = Field(default_factory=list)
    top_genres: List[str] = Field(default_factory=list)
    top_songs: List[TopSong] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

class RecommendationWeights(CamelModel):
    """Per-signal weights of the ranker."""
    similar_artists: float = 4
    favorite_genres: float = 5
    listened_albums: float = 3
    favorite_songs: float = 2
    recency: float = 1.5
    popularity: float = 1

    def merged(self, overrides: Optional[Dict[str, Optional[float]]] = None) -> "RecommendationWeights":
        """Return a copy with the given keys replaced; missing or None keys keep their value."""
        if not overrides:
            return self.model_copy()
        data = self.model_dump()
        for key, value in overrides.items():
            if value is None:
                continue
            field = key if key in data else _field_for_alias(key)
            if field is None:
                raise ValueError(f"Unknown recommendation weight: {key}")
            data[field] = value
        return RecommendationWeights(**data)


def _field_for_alias(alias: str) -> Optional[str]:
    for name, info in RecommendationWeights.model_fields.items():
        if alias in (info.alias, to_camel(name)):
            return name
    return None


class RecommendedAlbum(CamelModel):
    id: str
    title: str
    artist: List[str] = Field(default_factory=list)
    genre: List[str] = Field(default_factory=list)
    lang: Optional[str] = None
    cover: str = ""
    song_length: int = 0


class RecommendedSong(CamelModel):
    title: str
    file: str = ""
    album_title: str
    album_artist: List[str] = Field(default_factory=list)
    album_cover: str = ""
    album_lang: Optional[str] = None
    album_id: str


class RecommendationResult(CamelModel):
    based_on_artists: List[RecommendedAlbum] = Field(default_factory=list)
    based_on_genres: List[RecommendedAlbum] = Field(default_factory=list)
    favorite_albums: List[RecommendedAlbum] = Field(default_factory=list)
    similar_to_liked_songs: List[RecommendedSong] = Field(default_factory=list)
    based_on_listened_albums: List[RecommendedAlbum] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Wrapped
# ---------------------------------------------------------------------------

class PercentileResult(CamelModel):
    """A user's standing among all listeners of one album (0 is best)."""
    album_id: str
    artist_list: List[str] = Field(default_factory=list)
    percentile: float = Field(ge=0, le=100)
    top_percent: float = Field(ge=0.1, le=100)
    total_listens: int = 0


class AggregatedArtistStat(CamelModel):
    artist_name: str
    total_listens: int = 0
    best_percentile: float
    album_ids: List[str] = Field(default_factory=list)


class WrappedSong(CamelModel):
    title: str
    artist: str
    play_count: int


class WrappedAlbum(CamelModel):
    title: str
    artist: List[str] = Field(default_factory=list)
    cover_url: str
    play_count: int


class ListeningTimes(CamelModel):
    morning: int = 0
    afternoon: int = 0
    evening: int = 0
    night: int = 0


class TopPerformance(CamelModel):
    artist_name: str
    message: str
    total_listens: int
    top_percent: float


class WrappedStats(CamelModel):
    year: int
    total_minutes: int = 0
    total_listens: int = 0
    percentile: float = 50
    top_songs: List[WrappedSong] = Field(default_factory=list)
    top_albums: List[WrappedAlbum] = Field(default_factory=list)
    language_breakdown: Dict[str, int] = Field(default_factory=dict)
    listening_times: ListeningTimes = Field(default_factory=ListeningTimes)
    top_performances: List[TopPerformance] = Field(default_factory=list)


class ListenEvent(CamelModel):
    """A single play reported by a client."""
    album_id: str
    song_title: str
    song_file: str = ""
    listened_at: Optional[datetime] = None
