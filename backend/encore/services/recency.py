"""Recency weighting of play counts.

Produces a weighted copy of a history snapshot in which every counter is
scaled by how long ago its most recent listen happened. Stored data is never
modified.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from encore.schemas import HistorySnapshot
from encore.services.timestamps import most_recent, utcnow

# (elapsed time strictly below, factor), checked in order
RECENCY_STEPS = (
    (timedelta(days=7), 1.0),
    (timedelta(days=30), 0.6),
    (timedelta(days=90), 0.3),
)
OLDER_FACTOR = 0.1


def recency_factor(last_listen: Optional[datetime], now: datetime) -> float:
    """Step function of the time elapsed since the last listen."""
    if last_listen is None:
        return OLDER_FACTOR
    elapsed = now - last_listen
    for limit, factor in RECENCY_STEPS:
        if elapsed < limit:
            return factor
    return OLDER_FACTOR


def weighted_play_count(
    play_count: int,
    listen_history: Iterable[Any],
    recency_weight: float,
    now: datetime,
) -> int:
    factor = recency_factor(most_recent(listen_history), now)
    # Rounding first keeps float noise (0.3 * 10 = 3.0000000000000004) from bumping ceil
    return math.ceil(round(play_count * factor * recency_weight, 9))


def apply_recency_weighting(
    snapshot: HistorySnapshot,
    recency_weight: float,
    now: Optional[datetime] = None,
) -> HistorySnapshot:
    """Return a copy of ``snapshot`` with recency-weighted play counts."""
    now = now or utcnow()
    return snapshot.model_copy(update={
        "songs": [
            song.model_copy(update={
                "play_count": weighted_play_count(song.play_count, song.listen_history, recency_weight, now),
            })
            for song in snapshot.songs
        ],
        "albums": [
            album.model_copy(update={
                "play_count": weighted_play_count(album.play_count, album.listen_history, recency_weight, now),
            })
            for album in snapshot.albums
        ],
    })
