import random
from collections import defaultdict
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError

from encore.exceptions import InternalError, NotFoundError
from encore.locales import get_messages
from encore.schemas import (
    AggregatedArtistStat,
    AlbumStat,
    CatalogAlbum,
    HistorySnapshot,
    PercentileResult,
    SongStat,
)
from encore.services.wrapped import (
    WrappedService,
    aggregate_artist_stats,
    calculate_language_breakdown,
    calculate_listening_times,
    calculate_top_albums,
    calculate_top_songs,
    compute_album_percentiles,
    global_percentile,
    to_top_percent,
    top_performances,
)

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
THIS_YEAR = "2026-03-02T10:00:00+00:00"
LAST_YEAR = "2025-11-20T21:00:00+00:00"

FR = get_messages("fr")
EN = get_messages("en")


class _FakeCatalog:
    def __init__(self, albums):
        self.albums = {album.id: album for album in albums}

    async def get_albums(self, album_ids):
        return {album_id: self.albums[album_id] for album_id in album_ids if album_id in self.albums}


class _FakeHistory:
    def __init__(self, snapshots, error=None):
        self.snapshots = snapshots
        self.error = error

    async def get_user(self, user_id):
        if self.error:
            raise self.error
        return object() if user_id in self.snapshots else None

    async def get_history(self, user_id):
        return self.snapshots[user_id]

    async def get_album_listeners(self, album_ids):
        wanted = set(album_ids)
        listeners = defaultdict(list)
        for snapshot in self.snapshots.values():
            for stat in snapshot.albums:
                if stat.album_id in wanted:
                    listeners[stat.album_id].append(stat)
        return dict(listeners)


def _album_listens(album_id, this_year=0, last_year=0):
    return AlbumStat(
        album_id=album_id,
        play_count=this_year + last_year,
        listen_history=[THIS_YEAR] * this_year + [LAST_YEAR] * last_year,
    )


def _song_listens(title, album_id, this_year=0, last_year=0):
    return SongStat(
        song_title=title,
        album_id=album_id,
        play_count=this_year + last_year,
        listen_history=[THIS_YEAR] * this_year + [LAST_YEAR] * last_year,
    )


def _service(snapshots, albums, locale="fr", cdn_url="https://cdn.example.com", error=None):
    return WrappedService(
        _FakeCatalog(albums),
        _FakeHistory(snapshots, error=error),
        cdn_url=cdn_url,
        default_cover_path="/assets/default-cover.jpg",
        timezone="UTC",
        locale=locale,
        now=lambda: NOW,
    )


@pytest.mark.asyncio
async def test_only_listener_of_an_album_is_a_top_performer():
    albums = [CatalogAlbum(id="C", title="Album C", artists=["Z"], lang="fr", cover="covers/c.jpg")]
    snapshots = {
        1: HistorySnapshot(
            user_id=1,
            songs=[_song_listens("Track", "C", this_year=5)],
            albums=[_album_listens("C", this_year=5)],
        ),
    }

    wrapped = await _service(snapshots, albums).compute_wrapped(1)

    assert wrapped.year == 2026
    assert wrapped.total_listens == 5
    assert wrapped.total_minutes == 15
    assert wrapped.percentile == 100.0
    assert len(wrapped.top_performances) == 1
    performance = wrapped.top_performances[0]
    assert performance.artist_name == "Z"
    assert performance.top_percent == 100.0
    assert performance.total_listens == 5
    assert performance.message == "Vous faites partie du top 100% des plus grands auditeurs de Z !"
    assert wrapped.top_albums[0].cover_url == "https://cdn.example.com/covers/c.jpg"
    assert wrapped.language_breakdown == {"fr": 5}


@pytest.mark.asyncio
async def test_percentile_compares_stored_play_counts_of_all_listeners():
    albums = [CatalogAlbum(id="D", title="Album D", artists=["W"], lang="en")]
    snapshots = {
        1: HistorySnapshot(
            user_id=1,
            songs=[_song_listens("Song", "D", this_year=4, last_year=3)],
            albums=[_album_listens("D", this_year=4, last_year=3)],
        ),
        2: HistorySnapshot(user_id=2, albums=[_album_listens("D", this_year=2)]),
        3: HistorySnapshot(user_id=3, albums=[_album_listens("D", this_year=10)]),
        4: HistorySnapshot(user_id=4, albums=[_album_listens("D", last_year=50)]),
    }

    wrapped = await _service(snapshots, albums).compute_wrapped(1)

    # 1 of 4 listeners played less than the user's 7 plays
    assert wrapped.percentile == 75.0
    assert wrapped.top_performances == []
    assert wrapped.total_listens == 4
    assert wrapped.top_songs[0].play_count == 4
    assert wrapped.top_albums[0].play_count == 4


@pytest.mark.asyncio
async def test_last_year_plays_count_towards_the_standing():
    albums = [CatalogAlbum(id="C", title="Album C", artists=["Z"], lang="fr")]
    snapshots = {
        1: HistorySnapshot(user_id=1, albums=[_album_listens("C", this_year=1, last_year=50)]),
        2: HistorySnapshot(user_id=2, albums=[_album_listens("C", this_year=30)]),
    }

    wrapped = await _service(snapshots, albums).compute_wrapped(1)

    assert wrapped.percentile == 50.0
    assert wrapped.top_performances == []
    assert wrapped.top_albums[0].play_count == 1


@pytest.mark.asyncio
async def test_listeners_without_plays_are_left_out_of_the_standing():
    albums = [CatalogAlbum(id="C", title="Album C", artists=["Z"], lang="fr")]
    snapshots = {
        1: HistorySnapshot(user_id=1, albums=[_album_listens("C", this_year=3)]),
        2: HistorySnapshot(user_id=2, albums=[AlbumStat(album_id="C", play_count=0)]),
    }

    wrapped = await _service(snapshots, albums).compute_wrapped(1)

    assert wrapped.percentile == 100.0
    assert [p.artist_name for p in wrapped.top_performances] == ["Z"]


@pytest.mark.asyncio
async def test_quiet_year_keeps_all_time_standing():
    albums = [
        CatalogAlbum(id="C", title="Album C", artists=["Z"], lang="fr"),
        CatalogAlbum(id="D", title="Album D", artists=["W"], lang="en"),
    ]
    snapshots = {
        1: HistorySnapshot(
            user_id=1,
            songs=[_song_listens("Track", "C", last_year=8), _song_listens("Song", "D", last_year=5)],
            albums=[_album_listens("C", last_year=8), _album_listens("D", last_year=5)],
        ),
        2: HistorySnapshot(user_id=2, albums=[_album_listens("C", this_year=2)]),
    }

    wrapped = await _service(snapshots, albums).compute_wrapped(1)

    assert wrapped.total_listens == 0
    assert wrapped.total_minutes == 0
    assert wrapped.percentile == 100.0
    assert len(wrapped.top_performances) == 1
    performance = wrapped.top_performances[0]
    assert performance.artist_name == "W"
    assert performance.top_percent == 100.0
    assert performance.total_listens == 5
    assert wrapped.top_songs == []
    assert wrapped.top_albums == []
    assert wrapped.language_breakdown == {}
    assert wrapped.listening_times.model_dump() == {"morning": 0, "afternoon": 0, "evening": 0, "night": 0}


@pytest.mark.asyncio
async def test_user_without_history_gets_neutral_summary():
    wrapped = await _service({1: HistorySnapshot(user_id=1)}, []).compute_wrapped(1)

    assert wrapped.total_listens == 0
    assert wrapped.percentile == 50
    assert wrapped.top_performances == []
    assert wrapped.top_songs == []



@pytest.mark.asyncio
async def test_unknown_user_is_not_found():
    with pytest.raises(NotFoundError) as raised:
        await _service({}, []).compute_wrapped(7)

    assert raised.value.code == "USER_NOT_FOUND"


@pytest.mark.asyncio
async def test_store_failure_becomes_internal_error():
    failure = OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(InternalError):
        await _service({1: HistorySnapshot(user_id=1)}, [], error=failure).compute_wrapped(1)


@pytest.mark.asyncio
async def test_malformed_timestamps_and_missing_albums_do_not_fail(caplog):
    snapshots = {
        1: HistorySnapshot(
            user_id=1,
            songs=[
                SongStat(
                    song_title="",
                    album_id="gone",
                    play_count=3,
                    listen_history=[THIS_YEAR, "yesterday-ish", None, THIS_YEAR],
                ),
            ],
            albums=[_album_listens("gone", this_year=2)],
        ),
    }
    caplog.set_level("WARNING")

    wrapped = await _service(snapshots, [], locale="en").compute_wrapped(1)

    assert wrapped.total_listens == 2
    assert wrapped.top_songs[0].title == "Unknown Title"
    assert wrapped.top_songs[0].artist == "Unknown Artist"
    assert wrapped.top_albums[0].title == "Unknown Album"
    assert wrapped.top_albums[0].cover_url == "/assets/default-cover.jpg"
    assert wrapped.top_performances == []
    assert wrapped.percentile == 50
    assert any("invalid listen timestamp" in message for message in caplog.messages)
    assert any("gone" in message for message in caplog.messages)


def test_percentiles_stay_within_bounds():
    rng = random.Random(1234)
    albums = {"A": CatalogAlbum(id="A", title="A", artists=["X"])}

    for _ in range(200):
        counts = [rng.randint(1, 40) for _ in range(rng.randint(1, 12))]
        user_count = rng.choice(counts)
        results = compute_album_percentiles(
            [AlbumStat(album_id="A", play_count=user_count)], {"A": counts}, albums
        )

        assert 0 <= results[0].percentile <= 100
        assert 0.1 <= results[0].top_percent <= 100


def test_single_listener_percentile_is_zero():
    results = compute_album_percentiles(
        [AlbumStat(album_id="A", play_count=3)],
        {"A": [3]},
        {"A": CatalogAlbum(id="A", title="A", artists=["X"])},
    )

    assert results[0].percentile == 0
    assert results[0].top_percent == 100.0
    assert results[0].artist_list == ["X"]


def test_top_percent_floor_and_rounding():
    assert to_top_percent(0) == 100.0
    assert to_top_percent(33.3333) == 66.7
    assert to_top_percent(99.97) == 0.1
    assert to_top_percent(100) == 0.1


def test_artist_aggregation_keeps_lowest_percentile():
    percentiles = [
        PercentileResult(album_id="A", artist_list=["X", "Y"], percentile=40, top_percent=60, total_listens=3),
        PercentileResult(album_id="B", artist_list=["X"], percentile=5, top_percent=95, total_listens=2),
        PercentileResult(album_id="C", artist_list=[], percentile=0, top_percent=100, total_listens=9),
    ]

    stats = {stat.artist_name: stat for stat in aggregate_artist_stats(percentiles)}

    assert set(stats) == {"X", "Y"}
    assert stats["X"].best_percentile == 5
    assert stats["X"].total_listens == 5
    assert stats["X"].album_ids == ["A", "B"]
    assert stats["Y"].best_percentile == 40
    assert global_percentile(list(stats.values())) == 95.0
    assert global_percentile([]) == 50


def test_top_performances_are_filtered_and_sorted():
    stats = [
        AggregatedArtistStat(artist_name="A", total_listens=4, best_percentile=5),
        AggregatedArtistStat(artist_name="B", total_listens=1, best_percentile=0),
        AggregatedArtistStat(artist_name="C", total_listens=2, best_percentile=10),
        AggregatedArtistStat(artist_name="D", total_listens=8, best_percentile=10.5),
    ]

    performances = top_performances(stats, EN)

    assert [p.artist_name for p in performances] == ["B", "A", "C"]
    assert [p.top_percent for p in performances] == [100.0, 95.0, 90.0]
    assert performances[1].message == "You're in the top 95% of listeners of A!"


def test_listening_times_use_local_hour():
    songs = [
        SongStat(
            song_title="s",
            album_id="A",
            listen_history=[
                "2026-06-01T05:00:00Z",  # 07:00 in Paris
                "2026-06-01T11:30:00+00:00",  # 13:30
                "2026-06-01T20:00:00+00:00",  # 22:00
                "2026-06-01T23:00:00+00:00",  # 01:00 next day
                "2026-06-01T02:00:00",  # naive, read as UTC: 04:00
            ],
        )
    ]

    times = calculate_listening_times(songs, ZoneInfo("Europe/Paris"))

    assert times.model_dump() == {"morning": 1, "afternoon": 1, "evening": 1, "night": 2}


def test_listening_times_skip_invalid_dates(caplog):
    songs = [SongStat(song_title="s", album_id="A", listen_history=["not a date", "2026-01-01T18:00:00Z"])]
    caplog.set_level("WARNING")

    times = calculate_listening_times(songs, timezone.utc)

    assert times.evening == 1
    assert sum(times.model_dump().values()) == 1
    assert any("Invalid date" in message for message in caplog.messages)


def test_top_songs_join_artists_and_keep_five():
    albums = {"A": CatalogAlbum(id="A", title="A", artists=["Simon", "Garfunkel"])}
    songs = [SongStat(song_title=f"s{i}", album_id="A", play_count=i) for i in range(8)]

    top = calculate_top_songs(songs, albums, FR)

    assert [song.title for song in top] == ["s7", "s6", "s5", "s4", "s3"]
    assert top[0].artist == "Simon & Garfunkel"


def test_top_album_covers_fall_back_to_default():
    albums = {
        "abs": CatalogAlbum(id="abs", title="Abs", artists=["X"], cover="https://img.example.com/abs.jpg"),
        "rel": CatalogAlbum(id="rel", title="Rel", artists=["X"], cover="covers/rel.jpg"),
        "none": CatalogAlbum(id="none", title="None", artists=["X"]),
    }
    stats = [AlbumStat(album_id=album_id, play_count=i) for i, album_id in enumerate(["abs", "rel", "none"])]

    with_cdn = {a.title: a.cover_url for a in calculate_top_albums(stats, albums, "https://cdn", "/default.jpg", FR)}
    without_cdn = {a.title: a.cover_url for a in calculate_top_albums(stats, albums, "", "/default.jpg", FR)}

    assert with_cdn == {
        "Abs": "https://img.example.com/abs.jpg",
        "Rel": "https://cdn/covers/rel.jpg",
        "None": "/default.jpg",
    }
    assert without_cdn["Rel"] == "/default.jpg"
    assert without_cdn["Abs"] == "https://img.example.com/abs.jpg"


def test_top_albums_keep_six():
    albums = {str(i): CatalogAlbum(id=str(i), title=f"T{i}") for i in range(9)}
    stats = [AlbumStat(album_id=str(i), play_count=i) for i in range(9)]

    top = calculate_top_albums(stats, albums, "", "/default.jpg", FR)

    assert [album.title for album in top] == ["T8", "T7", "T6", "T5", "T4", "T3"]


def test_language_breakdown_sums_album_plays():
    albums = {
        "a": CatalogAlbum(id="a", title="a", lang="fr"),
        "b": CatalogAlbum(id="b", title="b", lang="en"),
        "c": CatalogAlbum(id="c", title="c", lang="fr"),
        "d": CatalogAlbum(id="d", title="d"),
    }
    stats = [
        AlbumStat(album_id="a", play_count=5),
        AlbumStat(album_id="b", play_count=3),
        AlbumStat(album_id="c", play_count=2),
        AlbumStat(album_id="d", play_count=4),
        AlbumStat(album_id="missing", play_count=1),
    ]

    assert calculate_language_breakdown(stats, albums) == {"fr": 7, "en": 3}
