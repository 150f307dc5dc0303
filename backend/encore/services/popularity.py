"""Cross-user album popularity index."""

import logging
from typing import Dict

from encore.services.history import HistoryStore

logger = logging.getLogger(__name__)

CACHE_KEY = "popularity"


class PopularityIndex:
    """Total play count per album over all users.

    The index is cached for a long time (hours); popularity moves slowly and
    callers accept a stale view.
    """

    def __init__(self, history: HistoryStore, cache, ttl: float = 24 * 60 * 60):
        self.history = history
        self.cache = cache
        self.ttl = ttl

    async def get_album_popularity(self, force_refresh: bool = False) -> Dict[str, int]:
        """Mapping album id -> total plays, most played first."""
        if not force_refresh:
            cached = await self.cache.get(CACHE_KEY)
            if cached is not None:
                logger.debug("Popularity index served from cache")
                return {album_id: count for album_id, count in cached}

        totals = await self.history.get_album_play_totals()
        totals.sort(key=lambda item: item[1], reverse=True)
        await self.cache.set(CACHE_KEY, [[album_id, count] for album_id, count in totals], ttl=self.ttl)
        logger.info("Rebuilt popularity index for %d albums", len(totals))
        return dict(totals)


def max_popularity(popularity: Dict[str, int]) -> int:
    """Largest total in the index; 1 for an empty index so it can divide."""
    return max(popularity.values(), default=0) or 1
