"""Utility functions for web-sourcing."""

from __future__ import annotations

import hashlib
import html
import math
import re
from datetime import datetime, timezone
from urllib.parse import urlparse, urlunparse

# Words per minute used for reading time estimates
READING_SPEED_WPM = 200

_DEFAULT_PORTS = {"http": 80, "https": 443}


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def is_valid_url(url: str | None) -> bool:
    """Check if a string is a fetchable http(s) URL.

    Args:
        url: URL string to validate.

    Returns:
        True if the URL has an http/https scheme and a host.
    """
    if not url or not isinstance(url, str):
        return False
    try:
        result = urlparse(url.strip())
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.hostname)


def canonical_url(url: str, keep_query: bool = True) -> str:
    """Normalize a URL for identity comparisons.

    Lowercases scheme and host, drops default ports and the fragment, and
    strips a trailing slash from non-root paths.

    Args:
        url: URL to normalize.
        keep_query: Keep the query string. Set False to compare by path only.

    Returns:
        Canonical URL string. Unparseable input is returned stripped.
    """
    url = url.strip()
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return url
    if not parsed.scheme or not parsed.hostname:
        return url

    scheme = parsed.scheme.lower()
    host = parsed.hostname.lower()
    if port and port != _DEFAULT_PORTS.get(scheme):
        host = f"{host}:{port}"

    path = parsed.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = parsed.query if keep_query else ""
    return urlunparse((scheme, host, path, "", query, ""))


def extract_domain(url: str | None) -> str:
    """Get the lowercase host of a URL, without a leading ``www.``.

    Returns an empty string when the URL has no host.
    """
    if not url:
        return ""
    try:
        host = urlparse(url.strip()).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def normalize_domain(domain: str) -> str:
    """Normalize a bare domain or URL to the form returned by extract_domain."""
    domain = domain.strip().lower()
    if "://" in domain:
        return extract_domain(domain)
    domain = domain.split("/", 1)[0]
    return domain[4:] if domain.startswith("www.") else domain


def get_path_extension(path: str) -> str:
    """Get the lowercase file extension of a path or URL, without the dot."""
    path = path.split("?", 1)[0].split("#", 1)[0]
    if "://" in path:
        path = urlparse(path).path
    name = path.rsplit("/", 1)[-1]
    if "." in name:
        return name.rsplit(".", 1)[-1].lower()
    return ""


def generate_content_id(url: str) -> str:
    """Derive a stable content identifier from a URL.

    The same canonical URL always maps to the same identifier, which makes
    it usable as a cache key.
    """
    digest = hashlib.sha256(canonical_url(url).encode("utf-8")).hexdigest()
    return digest[:16]


def content_hash(text: str | None) -> str | None:
    """Hash normalized text so that whitespace changes do not count as edits."""
    if not text:
        return None
    normalized = re.sub(r"\s+", " ", text).strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def normalize_title(title: str) -> str:
    """Normalize a title for comparison.

    Args:
        title: Page or source title.

    Returns:
        Normalized title (lowercase, stripped of extra whitespace).
    """
    title = title.lower().strip()
    title = re.sub(r"\s+", " ", title)
    return title


def count_words(text: str | None) -> int:
    """Count whitespace separated words."""
    if not text:
        return 0
    return len(text.split())


def estimate_reading_time(word_count: int) -> int:
    """Estimated reading time in whole minutes, at least 1 for non-empty text."""
    if word_count <= 0:
        return 0
    return max(1, math.ceil(word_count / READING_SPEED_WPM))


def truncate_text(text: str, max_length: int = 500, suffix: str = "...") -> str:
    """Truncate text to a maximum length.

    Args:
        text: Text to truncate.
        max_length: Maximum length including suffix.
        suffix: Suffix to append if truncated.

    Returns:
        Truncated text.
    """
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix


def clean_html_text(text: str | None) -> str:
    """Clean text that may contain HTML entities or tags.

    Args:
        text: Text to clean.

    Returns:
        Cleaned text.
    """
    if not text:
        return ""

    # Decode HTML entities
    text = html.unescape(text)
    # Remove any remaining HTML tags
    text = re.sub(r"<[^>]+>", "", text)
    # Normalize whitespace
    text = re.sub(r"\s+", " ", text).strip()
    return text


def split_paragraphs(text: str) -> list[str]:
    """Split text into non-blank paragraphs separated by blank lines."""
    parts = re.split(r"\n\s*\n+", text.replace("\r\n", "\n"))
    return [part.strip() for part in parts if part.strip()]
