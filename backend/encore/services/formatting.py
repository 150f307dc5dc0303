"""Display formatting for catalog titles and cover art."""

import re
import unicodedata
from urllib.parse import quote

# One or more "<label> - " prefixes, e.g. "Label - Artist - Title" -> "Title"
_TITLE_PREFIX = re.compile(r"^(?:[^-]+ - )+")
_COMBINING_MARKS = re.compile("[\u0300-\u036f]")

# Characters left untouched when percent-encoding a full URL
_URL_SAFE = ";,/?:@&=+$-_.!~*'()#"


def strip_diacritics(text: str) -> str:
    return _COMBINING_MARKS.sub("", unicodedata.normalize("NFD", text))


def format_title(title: str) -> str:
    """Normalize a catalog title for display.

    Diacritics are removed before label prefixes and surrounding
    whitespace; applying it twice gives the same result.
    """
    if not title:
        return ""
    return _TITLE_PREFIX.sub("", strip_diacritics(title)).strip()


def is_absolute_url(path: str) -> bool:
    return path.startswith("http") or path.startswith("//")


def format_cover_url(cover: str, cdn_url: str) -> str:
    """Resolve a cover path against the CDN.

    Absolute URLs pass through unchanged, relative paths are prefixed with
    the CDN base and percent-encoded. Raises ValueError when a relative path
    cannot be resolved because no CDN is configured.
    """
    if not isinstance(cover, str) or not cover.strip():
        return ""
    if is_absolute_url(cover):
        return cover
    if not cdn_url:
        raise ValueError("CDN URL is not configured")
    return quote(f"{cdn_url.rstrip('/')}/{cover.lstrip('/')}", safe=_URL_SAFE)
