"""Per-user listening counters.

``album_id`` is a plain column: albums can disappear from the
catalog while users keep their statistics about them.
"""

from typing import List

from sqlalchemy import String, Integer, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from encore.database import Base


class ListenedSongStat(Base):
    """Play counter and timestamped history for one (user, song) pair."""

    __tablename__ = "listened_songs"
    __table_args__ = (
        UniqueConstraint("user_id", "album_id", "song_title", name="uq_listened_song"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    song_title: Mapped[str] = mapped_column(String(500))
    song_file: Mapped[str] = mapped_column(String(1000))
    album_id: Mapped[str] = mapped_column(String(64), index=True)

    play_count: Mapped[int] = mapped_column(Integer, default=0)
    # ISO-8601 timestamps, oldest first
    listen_history: Mapped[List[str]] = mapped_column(JSON, default=list)

    def __repr__(self) -> str:
        return f"<ListenedSongStat(user_id={self.user_id}, song_title='{self.song_title}', play_count={self.play_count})>"


class ListenedAlbumStat(Base):
    """Play counter and timestamped history for one (user, album) pair."""

    __tablename__ = "listened_albums"
    __table_args__ = (
        UniqueConstraint("user_id", "album_id", name="uq_listened_album"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    album_id: Mapped[str] = mapped_column(String(64), index=True)

    play_count: Mapped[int] = mapped_column(Integer, default=0)
    listen_history: Mapped[List[str]] = mapped_column(JSON, default=list)

    def __repr__(self) -> str:
        return f"<ListenedAlbumStat(user_id={self.user_id}, album_id={self.album_id}, play_count={self.play_count})>"
