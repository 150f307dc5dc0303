"""Helpers for listen-history timestamps."""

from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_listen_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored history entry; naive values are UTC. Returns None if invalid."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_history(values: Iterable[Any]) -> List[datetime]:
    """Parse every valid entry, silently dropping the rest."""
    parsed = (parse_listen_timestamp(value) for value in values or ())
    return [ts for ts in parsed if ts is not None]


def most_recent(values: Iterable[Any]) -> Optional[datetime]:
    return max(parse_history(values), default=None)
