"""Common yt-dlp invocation logic."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional

from onetime_download.downloader.process import (
    DEFAULT_CHUNK_SIZE,
    ProcessResult,
    ProcessRunner,
    SubprocessRunner,
)


logger = logging.getLogger(__name__)

_COMMON_FFMPEG_LOCATIONS = (
    Path("/opt/homebrew/bin/ffmpeg"),
    Path("/usr/local/bin/ffmpeg"),
    Path("/usr/bin/ffmpeg"),
)

DOWNLOAD_CONTAINER = "mp4"


class YtDlpClient:
    """Builds yt-dlp command lines and runs them through a ProcessRunner."""

    def __init__(
        self,
        binary: str = "yt-dlp",
        *,
        runner: Optional[ProcessRunner] = None,
        ffmpeg_location: Optional[Path] = None,
        metadata_timeout: Optional[float] = None,
        idle_timeout: Optional[float] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._binary = binary
        self._runner = runner or SubprocessRunner()
        self._ffmpeg_location = self._resolve_ffmpeg_location(ffmpeg_location)
        self._metadata_timeout = metadata_timeout
        self._idle_timeout = idle_timeout
        self._chunk_size = chunk_size

    @property
    def ffmpeg_location(self) -> Optional[Path]:
        """Resolved ffmpeg binary (or directory) location if available."""

        return self._ffmpeg_location

    def ffmpeg_available(self) -> bool:
        """Return True if ffmpeg looks available for merging streams."""

        location = self._ffmpeg_location
        if location is None:
            return False

        location = location.expanduser()
        if location.is_dir():
            return (location / "ffmpeg").exists()
        return location.exists()

    def check_url_support(self, url: str) -> Dict[str, Any]:
        """Check if a URL looks supported by yt-dlp without network calls."""

        self._import_yt_dlp()
        from yt_dlp.extractor import gen_extractors  # type: ignore

        generic_match = None
        for extractor in gen_extractors():
            try:
                if extractor.suitable(url):
                    if extractor.IE_NAME == "generic":
                        generic_match = extractor.IE_NAME
                        continue
                    return {"supported": True, "extractor": extractor.IE_NAME}
            except Exception:
                logger.debug(
                    "Extractor %s failed to match %s",
                    getattr(extractor, "IE_NAME", extractor),
                    url,
                    exc_info=True,
                )
                continue

        if generic_match is not None:
            return {"supported": True, "extractor": generic_match}

        return {"supported": False, "extractor": None}

    def build_metadata_args(self, url: str) -> List[str]:
        """Command line printing one JSON document describing url."""

        return [self._binary, "-j", "--no-playlist", "--", url]

    def build_download_args(self, url: str, format_id: str) -> List[str]:
        """Command line writing the selected format of url to stdout."""

        args = [
            self._binary,
            "-f",
            format_id,
            "--merge-output-format",
            DOWNLOAD_CONTAINER,
            "--prefer-ffmpeg",
            "--no-mtime",
            "--no-playlist",
        ]
        if self._ffmpeg_location is not None:
            args.extend(["--ffmpeg-location", str(self._ffmpeg_location)])
        args.extend(["-o", "-", "--", url])
        return args

    async def dump_json(self, url: str) -> ProcessResult:
        """Run yt-dlp in metadata-only mode and capture its output."""

        return await self._runner.capture(
            self.build_metadata_args(url),
            timeout=self._metadata_timeout,
        )

    def stream_format(
        self,
        url: str,
        format_id: str,
    ) -> AsyncGenerator[bytes, None]:
        """Stream the raw bytes of one format as yt-dlp produces them."""

        return self._runner.stream(
            self.build_download_args(url, format_id),
            chunk_size=self._chunk_size,
            idle_timeout=self._idle_timeout,
        )

    @staticmethod
    def _resolve_ffmpeg_location(
        explicit: Optional[Path],
    ) -> Optional[Path]:
        if explicit is not None:
            candidate = explicit.expanduser()
            if candidate.exists():
                return candidate

        which_path = shutil.which("ffmpeg")
        if which_path:
            return Path(which_path)

        for candidate in _COMMON_FFMPEG_LOCATIONS:
            if candidate.exists():
                return candidate

        return None

    @staticmethod
    def _import_yt_dlp() -> Any:
        try:
            import yt_dlp
        except ImportError as exc:  # pragma: no cover
            raise ImportError(
                "yt-dlp is required. Install dependencies with `pip install -e .`."
            ) from exc
        return yt_dlp
