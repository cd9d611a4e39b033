"""FastAPI application entrypoint for onetime_download."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Form, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, PlainTextResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from redis.exceptions import RedisError

from onetime_download.cache import MemoryCache, MetadataCache, RedisCache
from onetime_download.config import Settings
from onetime_download.downloader import (
    MetadataFetcher,
    StreamDownloader,
    YtDlpClient,
)
from onetime_download.downloader.process import ProcessRunner
from onetime_download.errors import (
    DownloadFailedError,
    InvalidFormatError,
    InvalidURLError,
    MediaError,
)
from onetime_download.security import download_filename, validate_page_url


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the service process."""

    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def _text_error(status_code: int, message: str) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=status_code)


def warn_if_merge_unavailable(client: YtDlpClient) -> bool:
    """Log a warning when ffmpeg is missing; return True if merging works."""

    if client.ffmpeg_available():
        return True
    logger.warning(
        "ffmpeg not found; formats that need audio/video merging will fail."
    )
    return False


def _build_cache(settings: Settings) -> MemoryCache | RedisCache:
    if settings.use_memory_cache:
        return MemoryCache()
    return RedisCache.from_url(
        settings.redis_url,
        password=settings.redis_password,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    cache: Optional[MetadataCache] = None,
    runner: Optional[ProcessRunner] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``cache`` and ``runner`` replace the Redis client and the real yt-dlp
    subprocesses; a cache passed in is owned by the caller.
    """

    settings = settings or Settings()
    owns_cache = cache is None
    if cache is None:
        cache = _build_cache(settings)

    client = YtDlpClient(
        settings.ytdlp_binary,
        runner=runner,
        ffmpeg_location=settings.ffmpeg_location,
        metadata_timeout=settings.metadata_timeout_seconds,
        idle_timeout=settings.download_idle_timeout_seconds,
        chunk_size=settings.stream_chunk_size,
    )
    fetcher = MetadataFetcher(
        client,
        cache,
        ttl_seconds=settings.cache_ttl_seconds,
        key_prefix=settings.cache_key_prefix,
    )
    streamer = StreamDownloader(client)
    templates = Jinja2Templates(directory=str(settings.templates_dir))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        warn_if_merge_unavailable(client)
        if owns_cache:
            try:
                await cache.ping()
            except (RedisError, OSError) as exc:
                logger.error("Cache connection failed: %s", exc)
                raise RuntimeError("Cache connection failed") from exc
            logger.info("Connected to metadata cache")
        try:
            yield
        finally:
            if owns_cache:
                await cache.close()

    app = FastAPI(title="onetime-download", lifespan=lifespan)
    app.mount(
        "/static",
        StaticFiles(directory=str(settings.static_dir)),
        name="static",
    )

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request) -> HTMLResponse:
        return templates.TemplateResponse(request, "index.html", {})

    @app.post("/submit", response_class=HTMLResponse)
    async def submit(
        request: Request,
        video_url: str = Form("", alias="videoURL"),
    ) -> Any:
        """Render the details fragment for a submitted page URL."""

        if not video_url:
            return _text_error(400, "Invalid or unsupported video URL")
        try:
            video = await fetcher.fetch_metadata(video_url)
        except InvalidURLError:
            return _text_error(400, "Invalid or unsupported video URL")
        except MediaError as exc:
            return _text_error(500, f"Error fetching video meta data: {exc}")

        default_format = video.formats[0].format_id if video.formats else ""
        return templates.TemplateResponse(
            request,
            "_video_details.html",
            {
                "video": video,
                "default_format": default_format,
                "filename": f"{video.title.replace('/', '-')}.mp4",
            },
        )

    @app.get("/api/metadata")
    async def get_metadata(url: str = Query(...)) -> Dict[str, Any]:
        """Normalized metadata for a page URL as JSON."""

        try:
            video = await fetcher.fetch_metadata(url)
        except InvalidURLError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except MediaError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return video.model_dump(mode="json")

    @app.get("/api/support")
    async def check_url_support(url: str = Query(...)) -> Dict[str, Any]:
        """Check whether a URL is supported by yt-dlp extractors."""

        try:
            validate_page_url(url)
        except InvalidURLError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return await run_in_threadpool(client.check_url_support, url)

    @app.get("/download")
    async def download(
        url: str = "",
        format_id: str = Query("", alias="format"),
        filename: str = "",
    ) -> Any:
        """Stream the selected format back to the client.

        The first chunk is awaited before headers go out so that start-up
        failures still produce an error status. Later failures abort the
        connection, leaving a truncated body.
        """

        if not url:
            return _text_error(400, "Missing video page URL")
        try:
            streamer.validate_request(url, format_id)
        except InvalidFormatError:
            return _text_error(400, "Invalid format")
        except InvalidURLError:
            return _text_error(400, "Invalid video page URL")

        chunks = streamer.iter_download(url, format_id)
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            first = b""
        except DownloadFailedError:
            return _text_error(500, "Failed to download video")

        async def body() -> AsyncIterator[bytes]:
            try:
                if first:
                    yield first
                async for chunk in chunks:
                    yield chunk
            finally:
                await chunks.aclose()

        headers = {
            "Content-Disposition": (
                f'attachment; filename="{download_filename(filename)}"'
            ),
        }
        return StreamingResponse(body(), media_type="video/mp4", headers=headers)

    @app.get("/healthz")
    async def healthz() -> Any:
        ping = getattr(cache, "ping", None)
        if ping is None:
            return {"status": "ok"}
        try:
            await ping()
        except (RedisError, OSError) as exc:
            logger.warning("Health check failed: %s", exc)
            return PlainTextResponse("cache unavailable", status_code=503)
        return {"status": "ok"}

    return app


def run() -> None:
    """Run the HTTP server with uvicorn."""

    import uvicorn

    settings = Settings()
    configure_logging(settings.log_level)
    app = create_app(settings)
    logger.info("Server running on http://%s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)
