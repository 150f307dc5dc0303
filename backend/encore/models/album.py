"""Catalog models: albums and their songs."""

import enum
from typing import List, Optional

from sqlalchemy import String, Integer, ForeignKey
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from encore.database import Base


class MusicGenre(str, enum.Enum):
    """Genre tags available in the catalog."""
    ROCK = "ROCK"
    PSYCHEDELIC_ROCK = "PSYCHEDELIC_ROCK"
    METAL = "METAL"
    POP = "POP"
    RAP = "RAP"
    JAZZ = "JAZZ"
    BLUES = "BLUES"
    FOLK = "FOLK"
    BALLADS = "BALLADS"
    ELECTRONIC = "ELECTRONIC"
    CLASSICAL = "CLASSICAL"


class Album(Base):
    """Album entity."""

    __tablename__ = "albums"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    title: Mapped[str] = mapped_column(String(500), index=True)
    artists: Mapped[List[str]] = mapped_column(ARRAY(String(255)), default=list)
    genres: Mapped[List[str]] = mapped_column(ARRAY(String(50)), default=list)
    lang: Mapped[Optional[str]] = mapped_column(String(16))

    # Images (relative CDN paths or absolute URLs)
    cover: Mapped[Optional[str]] = mapped_column(String(1000))
    cover_avif: Mapped[Optional[str]] = mapped_column(String(1000))

    songs: Mapped[List["Song"]] = relationship(
        "Song",
        back_populates="album",
        lazy="selectin",
        order_by="Song.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Album(id={self.id}, title='{self.title}')>"


class Song(Base):
    """Song belonging to an album."""

    __tablename__ = "songs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    album_id: Mapped[str] = mapped_column(ForeignKey("albums.id"), index=True)
    title: Mapped[str] = mapped_column(String(500), index=True)
    file: Mapped[str] = mapped_column(String(1000))
    position: Mapped[int] = mapped_column(Integer, default=0)

    album: Mapped["Album"] = relationship("Album", back_populates="songs")

    def __repr__(self) -> str:
        return f"<Song(id={self.id}, title='{self.title}')>"
