"""Recommendation endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from encore.config import get_settings
from encore.dependencies import get_recommendation_engine
from encore.routers.errors import run_engine_call
from encore.schemas import RecommendationResult
from encore.services.auth import require_user_id
from encore.services.recommendations import RecommendationEngine

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


@router.get("", response_model=RecommendationResult)
async def get_recommendations(
    force_refresh: bool = Query(False, alias="forceRefresh"),
    similar_artists: Optional[float] = Query(None, alias="similarArtists", ge=0),
    favorite_genres: Optional[float] = Query(None, alias="favoriteGenres", ge=0),
    listened_albums: Optional[float] = Query(None, alias="listenedAlbums", ge=0),
    favorite_songs: Optional[float] = Query(None, alias="favoriteSongs", ge=0),
    recency: Optional[float] = Query(None, ge=0),
    popularity: Optional[float] = Query(None, ge=0, le=1),
    user_id: int = Depends(require_user_id),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
):
    """Personalized recommendations, cached per user per day.

    Any weight left out keeps its default value.
    """
    weights = {
        "similar_artists": similar_artists,
        "favorite_genres": favorite_genres,
        "listened_albums": listened_albums,
        "favorite_songs": favorite_songs,
        "recency": recency,
        "popularity": popularity,
    }
    return await run_engine_call(
        engine.generate_recommendations(user_id, weights, force_refresh),
        settings.request_timeout_seconds,
    )
