"""URL slug rules for article titles."""

import re
import unicodedata

SEPARATOR = "-"
MAX_SLUG_LENGTH = 200

_SEPARATOR_RUN = re.compile(f"{re.escape(SEPARATOR)}{{2,}}")
_TRIM_CHARS = SEPARATOR + "/._~"


def normalize(text: str | None, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Turn a title into a single URL path segment.

    Only ASCII letters, digits and the separator survive; diacritics are
    stripped, every other character becomes the separator, runs of separators
    collapse to one and separators are trimmed from both ends.

    Args:
        text: Title (or any free text) to normalize
        max_length: Maximum slug length

    Returns:
        The slug, or an empty string when nothing usable remains
    """
    if text is None or not text.strip():
        return ""

    decomposed = unicodedata.normalize("NFKD", text.strip().lower())
    chars = []
    for ch in decomposed:
        if unicodedata.combining(ch):
            continue
        if ("a" <= ch <= "z") or ("0" <= ch <= "9"):
            chars.append(ch)
        else:
            chars.append(SEPARATOR)

    slug = _SEPARATOR_RUN.sub(SEPARATOR, "".join(chars)).strip(_TRIM_CHARS)
    if len(slug) > max_length:
        slug = slug[:max_length].rstrip(_TRIM_CHARS)

    return slug


def join_path(parent_path: str, slug: str) -> str:
    """Append ``slug`` to ``parent_path`` as a new leading-slash segment."""
    base = parent_path.rstrip("/")
    return f"{base}/{slug}"


def last_segment(url_path: str) -> str:
    """Return the final segment of ``url_path``."""
    return url_path.rstrip("/").rsplit("/", 1)[-1]


def is_reserved(slug: str, reserved_paths: list[str]) -> bool:
    """Check ``slug`` against exact and ``prefix/*`` reserved entries (case-insensitive)."""
    candidate = slug.strip("/").lower()
    for entry in reserved_paths:
        reserved = entry.strip("/").lower()
        if reserved.endswith("/*"):
            prefix = reserved[:-2]
            if candidate == prefix or candidate.startswith(prefix + "/"):
                return True
        elif candidate == reserved:
            return True
    return False
