"""Encore - Main FastAPI Application."""

import logging
import random
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from encore.config import get_settings
from encore.database import init_db
from encore.routers import favorites, health, listens, recommendations, wrapped
from encore.services.cache import build_caches

logger = logging.getLogger(__name__)

config = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    await init_db()
    app.state.caches = build_caches(config)
    # Unseeded in production; a seed makes ranking reproducible
    app.state.rng = random.Random(config.random_seed)
    logger.info(
        "Encore started",
        extra={"cache_backend": config.cache_backend, "seeded": config.random_seed is not None},
    )
    yield


app = FastAPI(
    title=config.app_name,
    description="Music recommendation and listening statistics engine",
    version=config.app_version,
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(recommendations.router, prefix="/api/recommendations", tags=["Recommendations"])
app.include_router(wrapped.router, prefix="/api/wrapped", tags=["Wrapped"])
app.include_router(listens.router, prefix="/api/listens", tags=["Listens"])
app.include_router(favorites.router, prefix="/api/favorites", tags=["Favorites"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": config.app_name,
        "version": config.app_version,
    }
