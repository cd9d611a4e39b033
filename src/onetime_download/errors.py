"""Error kinds surfaced by the metadata and download paths."""

from __future__ import annotations

from typing import Optional


class MediaError(Exception):
    """Base class for request-terminal failures."""


class InvalidURLError(MediaError):
    """Raised when a page URL is not an absolute URL with scheme and host."""


class InvalidFormatError(MediaError):
    """Raised when a format identifier fails the allow-list check."""


class ExtractionFailedError(MediaError):
    """Raised when yt-dlp could not produce metadata for a URL."""

    def __init__(
        self,
        message: str,
        *,
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class MalformedMetadataError(MediaError):
    """Raised when yt-dlp output does not decode into the expected schema."""


class DownloadFailedError(MediaError):
    """Raised when the download process fails to start or exits non-zero."""

    def __init__(self, message: str, *, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.returncode = returncode
