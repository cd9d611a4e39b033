"""Input validation for values that reach the yt-dlp command line."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from onetime_download.errors import InvalidFormatError, InvalidURLError


_FORMAT_ID_RE = re.compile(r"^[A-Za-z0-9+_-]+$")
_FILENAME_SAFE_RE = re.compile(r"[^A-Za-z0-9._ ()\[\]-]+")

DEFAULT_DOWNLOAD_FILENAME = "video.mp4"


def is_valid_format_id(format_id: str) -> bool:
    """Return True if format_id only uses the characters yt-dlp ids use."""

    if not format_id:
        return False
    return _FORMAT_ID_RE.fullmatch(format_id) is not None


def ensure_valid_format_id(format_id: str) -> str:
    """Return format_id unchanged or raise InvalidFormatError."""

    if not is_valid_format_id(format_id):
        raise InvalidFormatError(f"Invalid format identifier: {format_id!r}")
    return format_id


def validate_page_url(url: str) -> str:
    """Ensure url is absolute with a scheme and a host."""

    if not url or url != url.strip():
        raise InvalidURLError(f"Invalid page URL: {url!r}")
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError as exc:
        raise InvalidURLError(f"Invalid page URL: {url!r}") from exc
    if not parts.scheme or not hostname:
        raise InvalidURLError(f"Invalid page URL: {url!r}")
    return url


def sanitize_filename(filename: str, max_length: int = 128) -> str:
    """Return a header-safe filename without path separators."""

    cleaned = filename.replace("/", "-").replace("\\", "-")
    cleaned = _FILENAME_SAFE_RE.sub("_", cleaned).strip(" ._")
    if not cleaned:
        cleaned = "file"
    return cleaned[:max_length]


def download_filename(hint: str | None) -> str:
    """Build the attachment filename for a download response."""

    if not hint or not hint.strip():
        return DEFAULT_DOWNLOAD_FILENAME
    name = sanitize_filename(hint)
    if not name.lower().endswith(".mp4"):
        name = f"{name[:124]}.mp4"
    return name
