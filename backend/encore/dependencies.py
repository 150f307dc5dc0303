"""FastAPI dependencies wiring the stores, caches and engines per request."""

import random

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from encore.config import get_settings
from encore.database import get_db
from encore.services.cache import EngineCaches
from encore.services.catalog import CatalogStore
from encore.services.favorites import FavoritesStore
from encore.services.history import HistoryStore
from encore.services.popularity import PopularityIndex
from encore.services.recommendations import RecommendationEngine
from encore.services.taste_profile import TasteProfileExtractor
from encore.services.wrapped import WrappedService

settings = get_settings()


def get_caches(request: Request) -> EngineCaches:
    """Caches built once at startup and shared by all requests."""
    return request.app.state.caches


def get_rng(request: Request) -> random.Random:
    return request.app.state.rng


def get_catalog_store(db: AsyncSession = Depends(get_db)) -> CatalogStore:
    return CatalogStore(db)


def get_history_store(db: AsyncSession = Depends(get_db)) -> HistoryStore:
    return HistoryStore(db)


def get_favorites_store(db: AsyncSession = Depends(get_db)) -> FavoritesStore:
    return FavoritesStore(db)


def get_recommendation_engine(
    catalog: CatalogStore = Depends(get_catalog_store),
    history: HistoryStore = Depends(get_history_store),
    favorites: FavoritesStore = Depends(get_favorites_store),
    caches: EngineCaches = Depends(get_caches),
    rng: random.Random = Depends(get_rng),
) -> RecommendationEngine:
    return RecommendationEngine(
        catalog=catalog,
        history=history,
        favorites=favorites,
        popularity=PopularityIndex(history, caches.popularity, settings.popularity_cache_ttl_seconds),
        profiles=TasteProfileExtractor(
            catalog, history, caches.profiles, settings.profile_cache_ttl_seconds
        ),
        cache=caches.recommendations,
        cache_ttl=settings.recommendation_cache_ttl_seconds,
        cdn_url=settings.cdn_url,
        default_cover_path=settings.default_cover_path,
        rng=rng,
        timezone=settings.timezone,
    )


def get_wrapped_service(
    catalog: CatalogStore = Depends(get_catalog_store),
    history: HistoryStore = Depends(get_history_store),
) -> WrappedService:
    return WrappedService(
        catalog,
        history,
        cdn_url=settings.cdn_url,
        default_cover_path=settings.default_cover_path,
        timezone=settings.timezone,
        locale=settings.wrapped_locale,
    )
