"""API routers."""

from encore.routers import (
    favorites,
    health,
    listens,
    recommendations,
    wrapped,
)

__all__ = [
    "favorites",
    "health",
    "listens",
    "recommendations",
    "wrapped",
]
