"""Explicitly favorited albums."""

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from encore.database import Base


class FavoriteAlbum(Base):
    """An album a user marked as favorite."""

    __tablename__ = "favorite_albums"
    __table_args__ = (
        UniqueConstraint("user_id", "album_id", name="uq_favorite_album"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    album_id: Mapped[str] = mapped_column(String(64), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<FavoriteAlbum(user_id={self.user_id}, album_id={self.album_id})>"
