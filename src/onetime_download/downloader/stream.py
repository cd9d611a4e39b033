"""Streaming a selected format straight from yt-dlp's stdout."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable

from onetime_download.downloader.base import YtDlpClient
from onetime_download.downloader.process import (
    ProcessExitError,
    ProcessStartError,
    ProcessTimeoutError,
)
from onetime_download.errors import DownloadFailedError, InvalidURLError
from onetime_download.security import ensure_valid_format_id, validate_page_url


logger = logging.getLogger(__name__)

ChunkSink = Callable[[bytes], Awaitable[object]]


class StreamDownloader:
    """Pipe one format of a page URL to a caller-provided sink."""

    def __init__(self, client: YtDlpClient) -> None:
        self._client = client

    def validate_request(self, page_url: str, format_id: str) -> None:
        """Check both inputs; the format id is checked first."""

        ensure_valid_format_id(format_id)
        if not page_url:
            raise InvalidURLError("Missing video page URL")
        validate_page_url(page_url)

    async def iter_download(
        self,
        page_url: str,
        format_id: str,
    ) -> AsyncIterator[bytes]:
        """Yield chunks of the selected format in the order yt-dlp writes them.

        Validation happens before yt-dlp is spawned. A failure after some
        chunks were yielded raises DownloadFailedError; the bytes already
        delivered cannot be taken back.
        """

        self.validate_request(page_url, format_id)

        total = 0
        chunks = self._client.stream_format(page_url, format_id)
        try:
            async for chunk in chunks:
                total += len(chunk)
                yield chunk
        except ProcessStartError as exc:
            logger.error("Could not start yt-dlp for %s: %s", page_url, exc)
            raise DownloadFailedError(str(exc)) from exc
        except ProcessExitError as exc:
            logger.warning(
                "yt-dlp exited with status %s for %s (format %s) after %d bytes",
                exc.returncode,
                page_url,
                format_id,
                total,
            )
            raise DownloadFailedError(
                str(exc),
                returncode=exc.returncode,
            ) from exc
        except ProcessTimeoutError as exc:
            logger.warning("Download of %s stalled: %s", page_url, exc)
            raise DownloadFailedError(str(exc)) from exc
        finally:
            await chunks.aclose()

        logger.info(
            "Streamed %d bytes of %s (format %s)", total, page_url, format_id
        )

    async def stream_download(
        self,
        page_url: str,
        format_id: str,
        sink: ChunkSink,
    ) -> int:
        """Write every chunk to sink and return the number of bytes written."""

        written = 0
        async for chunk in self.iter_download(page_url, format_id):
            await sink(chunk)
            written += len(chunk)
        return written
