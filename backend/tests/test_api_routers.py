import asyncio

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from encore.dependencies import (
    get_catalog_store,
    get_favorites_store,
    get_history_store,
    get_recommendation_engine,
    get_wrapped_service,
)
from encore.exceptions import InternalError, NotFoundError
from encore.routers import favorites, listens, recommendations, wrapped
from encore.schemas import CatalogAlbum, RecommendationResult, RecommendedAlbum, WrappedStats
from encore.services.auth import create_access_token, require_user_id


class _FakeEngine:
    def __init__(self, error=None, delay=0.0):
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate_recommendations(self, user_id, weights=None, force_refresh=False):
        self.calls.append((user_id, weights, force_refresh))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return RecommendationResult(
            based_on_artists=[RecommendedAlbum(id="a1", title="First", artist=["X"], song_length=2)]
        )


class _FakeWrapped:
    def __init__(self, error=None):
        self.error = error

    async def compute_wrapped(self, user_id):
        if self.error:
            raise self.error
        return WrappedStats(year=2026, total_listens=12, total_minutes=36)


class _FakeCatalog:
    async def get_album(self, album_id):
        if album_id == "a1":
            return CatalogAlbum(id="a1", title="First")
        return None


class _FakeHistory:
    def __init__(self):
        self.listens = []
        self.deleted = []

    async def record_listen(self, user_id, album_id, song_title, song_file="", listened_at=None):
        self.listens.append((user_id, album_id, song_title, song_file, listened_at))

    async def delete_history(self, user_id):
        self.deleted.append(user_id)


class _FakeFavorites:
    def __init__(self):
        self.ids = []

    async def get_favorite_album_ids(self, user_id):
        return list(self.ids)

    async def add_favorite(self, user_id, album_id):
        if album_id in self.ids:
            return False
        self.ids.append(album_id)
        return True

    async def remove_favorite(self, user_id, album_id):
        if album_id in self.ids:
            self.ids.remove(album_id)


def _app(engine=None, service=None, history=None, favorite_store=None, authenticated=True):
    app = FastAPI()
    app.include_router(recommendations.router, prefix="/api/recommendations")
    app.include_router(wrapped.router, prefix="/api/wrapped")
    app.include_router(listens.router, prefix="/api/listens")
    app.include_router(favorites.router, prefix="/api/favorites")

    app.dependency_overrides[get_recommendation_engine] = lambda: engine or _FakeEngine()
    app.dependency_overrides[get_wrapped_service] = lambda: service or _FakeWrapped()
    app.dependency_overrides[get_catalog_store] = lambda: _FakeCatalog()
    app.dependency_overrides[get_history_store] = lambda: history or _FakeHistory()
    app.dependency_overrides[get_favorites_store] = lambda: favorite_store or _FakeFavorites()
    if authenticated:
        async def override_require_user_id():
            return 1

        app.dependency_overrides[require_user_id] = override_require_user_id
    return app


def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.asyncio
async def test_recommendations_require_a_bearer_token():
    async with _client(_app(authenticated=False)) as client:
        missing = await client.get("/api/recommendations")
        invalid = await client.get(
            "/api/recommendations", headers={"Authorization": "Bearer not-a-jwt"}
        )

    assert missing.status_code == 401
    assert missing.json()["detail"] == "Authentication required"
    assert invalid.status_code == 401
    assert invalid.json()["detail"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_token_subject_is_the_user_id():
    engine = _FakeEngine()
    token = create_access_token(42)

    async with _client(_app(engine=engine, authenticated=False)) as client:
        response = await client.get(
            "/api/recommendations", headers={"Authorization": f"Bearer {token}"}
        )

    assert response.status_code == 200
    assert engine.calls[0][0] == 42


@pytest.mark.asyncio
async def test_recommendations_forward_weights_and_serialize_camel_case():
    engine = _FakeEngine()

    async with _client(_app(engine=engine)) as client:
        response = await client.get(
            "/api/recommendations",
            params={"similarArtists": 2, "popularity": 0.5, "forceRefresh": "true"},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["basedOnArtists"][0]["songLength"] == 2
    assert payload["similarToLikedSongs"] == []

    user_id, weights, force_refresh = engine.calls[0]
    assert user_id == 1
    assert force_refresh is True
    assert weights["similar_artists"] == 2
    assert weights["popularity"] == 0.5
    assert weights["favorite_genres"] is None


@pytest.mark.asyncio
async def test_popularity_weight_must_be_a_fraction():
    async with _client(_app()) as client:
        response = await client.get("/api/recommendations", params={"popularity": 3})

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "expected_status"),
    [
        (NotFoundError("No listening history available for recommendations"), 404),
        (InternalError("Failed to generate recommendations"), 500),
    ],
)
async def test_engine_errors_map_to_http_status(error, expected_status):
    async with _client(_app(engine=_FakeEngine(error=error))) as client:
        response = await client.get("/api/recommendations")

    assert response.status_code == expected_status
    assert response.json()["detail"] == error.message


@pytest.mark.asyncio
async def test_slow_engine_call_times_out(monkeypatch):
    monkeypatch.setattr(recommendations.settings, "request_timeout_seconds", 0.01)

    async with _client(_app(engine=_FakeEngine(delay=1.0))) as client:
        response = await client.get("/api/recommendations")

    assert response.status_code == 504


@pytest.mark.asyncio
async def test_wrapped_is_nested_under_wrapped_key():
    async with _client(_app()) as client:
        response = await client.get("/api/wrapped")

    assert response.status_code == 200
    payload = response.json()["wrapped"]
    assert payload["year"] == 2026
    assert payload["totalListens"] == 12
    assert payload["totalMinutes"] == 36
    assert payload["listeningTimes"] == {"morning": 0, "afternoon": 0, "evening": 0, "night": 0}


@pytest.mark.asyncio
async def test_wrapped_for_unknown_user_is_404():
    service = _FakeWrapped(error=NotFoundError("User not found", code="USER_NOT_FOUND"))

    async with _client(_app(service=service)) as client:
        response = await client.get("/api/wrapped")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_record_listen_requires_a_known_album():
    history = _FakeHistory()

    async with _client(_app(history=history)) as client:
        created = await client.post(
            "/api/listens",
            json={"albumId": "a1", "songTitle": "Intro", "listenedAt": "2026-03-01T10:00:00Z"},
        )
        unknown = await client.post("/api/listens", json={"albumId": "zz", "songTitle": "Intro"})

    assert created.status_code == 201
    assert created.json()["status"] == "recorded"
    assert unknown.status_code == 404
    assert len(history.listens) == 1
    user_id, album_id, song_title, song_file, listened_at = history.listens[0]
    assert (user_id, album_id, song_title, song_file) == (1, "a1", "Intro", "")
    assert listened_at.year == 2026


@pytest.mark.asyncio
async def test_clear_history():
    history = _FakeHistory()

    async with _client(_app(history=history)) as client:
        response = await client.delete("/api/listens")

    assert response.status_code == 200
    assert history.deleted == [1]


@pytest.mark.asyncio
async def test_favorites_round_trip():
    store = _FakeFavorites()

    async with _client(_app(favorite_store=store)) as client:
        added = await client.put("/api/favorites/a1")
        again = await client.put("/api/favorites/a1")
        missing = await client.put("/api/favorites/zz")
        listed = await client.get("/api/favorites")
        removed = await client.delete("/api/favorites/a1")

    assert added.json() == {"albumId": "a1", "favorite": True, "created": True}
    assert again.json()["created"] is False
    assert missing.status_code == 404
    assert listed.json() == {"albumIds": ["a1"]}
    assert removed.json() == {"albumId": "a1", "favorite": False}
    assert store.ids == []
