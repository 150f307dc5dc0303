"""Recommendation, taste profiling and listening statistics services."""

from encore.services.catalog import CatalogStore
from encore.services.history import HistoryStore
from encore.services.favorites import FavoritesStore
from encore.services.popularity import PopularityIndex
from encore.services.taste_profile import TasteProfileExtractor
from encore.services.recommendations import RecommendationEngine
from encore.services.wrapped import WrappedService

__all__ = [
    "CatalogStore",
    "HistoryStore",
    "FavoritesStore",
    "PopularityIndex",
    "TasteProfileExtractor",
    "RecommendationEngine",
    "WrappedService",
]
