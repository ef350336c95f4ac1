import re
from typing import Optional

EXCERPT_LIMIT = 300


def truncate_excerpt(text: Optional[str], limit: int = EXCERPT_LIMIT) -> str:
    """
    Shorten content for violation evidence and appeal snapshots.

    Args:
        text: Raw content body
        limit: Maximum characters kept before the ``...`` suffix

    Returns:
        str: The text unchanged when short enough, otherwise its first
        ``limit`` characters followed by ``...``
    """
    if not text or not isinstance(text, str):
        return ""
    text = re.sub(r'\s+', ' ', text.strip())
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def normalize_username(username: Optional[str]) -> str:
    """Lowercase, trimmed form stored as ``usernameLower``."""
    if not username:
        return ""
    return username.strip().lstrip('@').lower()


def non_blank(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
