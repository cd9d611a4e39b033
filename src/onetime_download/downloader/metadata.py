"""Metadata extraction with a short-lived cache in front of yt-dlp."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from onetime_download.cache import MetadataCache
from onetime_download.downloader.base import YtDlpClient
from onetime_download.downloader.process import ProcessError
from onetime_download.errors import ExtractionFailedError
from onetime_download.models import (
    VideoMetadata,
    normalize_metadata,
    parse_ytdlp_output,
)
from onetime_download.security import validate_page_url


logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "video_meta:"
DEFAULT_TTL_SECONDS = 5 * 60


class MetadataFetcher:
    """Metadata extraction via yt-dlp, cached per page URL."""

    def __init__(
        self,
        client: YtDlpClient,
        cache: MetadataCache,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self._client = client
        self._cache = cache
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix

    def cache_key(self, page_url: str) -> str:
        return f"{self._key_prefix}{page_url}"

    async def fetch_metadata(self, page_url: str) -> VideoMetadata:
        """Return normalized metadata for page_url.

        A cached snapshot is returned as-is without refreshing its expiry.
        On a miss yt-dlp is run once and the result cached best-effort.
        """

        validate_page_url(page_url)
        key = self.cache_key(page_url)

        cached = await self._read_cache(key)
        if cached is not None:
            return cached

        metadata = await self._extract(page_url)
        await self._write_cache(key, metadata)
        return metadata

    async def _extract(self, page_url: str) -> VideoMetadata:
        try:
            result = await self._client.dump_json(page_url)
        except ProcessError as exc:
            logger.warning("yt-dlp invocation failed for %s: %s", page_url, exc)
            raise ExtractionFailedError(str(exc)) from exc

        if not result.ok:
            stderr = result.stderr_tail()
            logger.warning(
                "yt-dlp exited with status %s for %s: %s",
                result.returncode,
                page_url,
                stderr,
            )
            raise ExtractionFailedError(
                stderr or f"yt-dlp exited with status {result.returncode}",
                returncode=result.returncode,
                stderr=stderr,
            )
        if not result.stdout.strip():
            raise ExtractionFailedError(
                "yt-dlp produced no output",
                returncode=result.returncode,
            )

        info = parse_ytdlp_output(result.stdout)
        return normalize_metadata(info, requested_url=page_url)

    async def _read_cache(self, key: str) -> VideoMetadata | None:
        try:
            payload = await self._cache.get(key)
        except Exception:
            logger.warning("Cache read failed for %s", key, exc_info=True)
            return None
        if payload is None:
            logger.debug("Cache miss for %s", key)
            return None

        try:
            return VideoMetadata.from_cache_payload(payload)
        except ValidationError:
            logger.warning("Discarding corrupt cache entry %s", key)
            return None

    async def _write_cache(self, key: str, metadata: VideoMetadata) -> None:
        try:
            await self._cache.set(
                key,
                metadata.to_cache_payload(),
                self._ttl_seconds,
            )
        except Exception:
            logger.warning("Cache write failed for %s", key, exc_info=True)
