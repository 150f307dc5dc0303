"""Database models."""

from encore.models.album import Album, MusicGenre, Song
from encore.models.user import User
from encore.models.listening_history import ListenedAlbumStat, ListenedSongStat
from encore.models.favorite_album import FavoriteAlbum

__all__ = [
    "Album",
    "MusicGenre",
    "Song",
    "User",
    "ListenedAlbumStat",
    "ListenedSongStat",
    "FavoriteAlbum",
]
