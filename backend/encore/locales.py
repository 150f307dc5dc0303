"""User-facing strings of the wrapped summary."""

from typing import Dict

MESSAGES: Dict[str, Dict[str, str]] = {
    "fr": {
        "unknown_title": "Titre Inconnu",
        "unknown_artist": "Artiste Inconnu",
        "unknown_album": "Album Inconnu",
        "top_performance": "Vous faites partie du top {top_percent}% des plus grands auditeurs de {artist} !",
    },
    "en": {
        "unknown_title": "Unknown Title",
        "unknown_artist": "Unknown Artist",
        "unknown_album": "Unknown Album",
        "top_performance": "You're in the top {top_percent}% of listeners of {artist}!",
    },
}

DEFAULT_LOCALE = "fr"


def get_messages(locale: str) -> Dict[str, str]:
    """Messages for a locale such as ``fr`` or ``en-US``; falls back to the default."""
    language = (locale or "").split("-")[0].split("_")[0].lower()
    return MESSAGES.get(language, MESSAGES[DEFAULT_LOCALE])
