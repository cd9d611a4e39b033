"""Metadata and stream downloaders built on top of the yt-dlp executable."""

from onetime_download.downloader.base import YtDlpClient
from onetime_download.downloader.metadata import MetadataFetcher
from onetime_download.downloader.process import SubprocessRunner
from onetime_download.downloader.stream import StreamDownloader

__all__ = [
    "MetadataFetcher",
    "StreamDownloader",
    "SubprocessRunner",
    "YtDlpClient",
]
