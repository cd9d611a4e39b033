"""View models and the subset of yt-dlp's JSON schema this service reads."""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from onetime_download.errors import MalformedMetadataError


NO_CODEC = "none"


class FormatOption(BaseModel):
    """One downloadable encoding variant of a video."""

    model_config = ConfigDict(frozen=True)

    format_id: str
    quality_label: str = ""
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    extension: str = ""

    @property
    def display_label(self) -> str:
        """Short label for format pickers.

        yt-dlp labels split streams as e.g. ``"137 - 1920x1080 (1080p) video
        only"``; those are reduced to the resolution or to ``Audio only``.
        """

        label = self.quality_label
        if "video only" not in label and "audio only" not in label:
            return label
        if "audio only" in label:
            return "Audio only"
        for part in label.split(" "):
            if part.endswith("p") or "x" in part:
                return part
        return f"{self.height}p"


class VideoMetadata(BaseModel):
    """Normalized metadata plus the playable formats of a page URL."""

    model_config = ConfigDict(frozen=True)

    source_url: str = Field(min_length=1)
    id: str = ""
    author: str = ""
    title: str = ""
    thumbnail_url: str = ""
    formats: Tuple[FormatOption, ...] = ()

    def to_cache_payload(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_cache_payload(cls, payload: bytes | str) -> "VideoMetadata":
        """Rebuild a snapshot written by to_cache_payload.

        Raises pydantic.ValidationError when the payload is corrupt.
        """

        return cls.model_validate_json(payload)


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


def _none_to_zero(value: Any) -> Any:
    return 0 if value is None else value


class YtDlpFormat(BaseModel):
    """A format entry of ``yt-dlp -j`` output."""

    model_config = ConfigDict(extra="ignore")

    format_id: str = ""
    ext: str = ""
    format: str = ""
    width: int = 0
    height: int = 0
    acodec: str = ""
    vcodec: str = ""
    fps: float = 0.0
    filesize: int = 0

    @field_validator(
        "format_id", "ext", "format", "acodec", "vcodec", mode="before"
    )
    @classmethod
    def strings_default_empty(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("width", "height", "fps", "filesize", mode="before")
    @classmethod
    def numbers_default_zero(cls, value: Any) -> Any:
        return _none_to_zero(value)

    @property
    def has_stream(self) -> bool:
        """False when yt-dlp reports neither a video nor an audio codec."""

        return not (self.vcodec == NO_CODEC and self.acodec == NO_CODEC)

    def to_option(self) -> FormatOption:
        return FormatOption(
            format_id=self.format_id,
            quality_label=self.format,
            width=max(self.width, 0),
            height=max(self.height, 0),
            extension=self.ext,
        )


class YtDlpInfo(BaseModel):
    """Top-level ``yt-dlp -j`` document."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    title: str = ""
    uploader: str = ""
    thumbnail: str = ""
    webpage_url: str = ""
    formats: List[YtDlpFormat] = Field(default_factory=list)

    @field_validator(
        "id", "title", "uploader", "thumbnail", "webpage_url", mode="before"
    )
    @classmethod
    def strings_default_empty(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("formats", mode="before")
    @classmethod
    def formats_default_empty(cls, value: Any) -> Any:
        return [] if value is None else value


def parse_ytdlp_output(output: bytes | str) -> YtDlpInfo:
    """Decode a single ``yt-dlp -j`` JSON document."""

    try:
        return YtDlpInfo.model_validate_json(output)
    except ValidationError as exc:
        raise MalformedMetadataError(
            f"Unexpected yt-dlp output: {exc.error_count()} invalid field(s)"
        ) from exc


def normalize_metadata(
    info: YtDlpInfo,
    *,
    requested_url: Optional[str] = None,
) -> VideoMetadata:
    """Reduce a yt-dlp document to the view model, dropping unusable formats."""

    formats = tuple(
        raw.to_option()
        for raw in info.formats
        if raw.format_id and raw.has_stream
    )
    try:
        return VideoMetadata(
            source_url=info.webpage_url or requested_url or "",
            id=info.id,
            author=info.uploader,
            title=info.title,
            thumbnail_url=info.thumbnail,
            formats=formats,
        )
    except ValidationError as exc:
        raise MalformedMetadataError("yt-dlp output has no page URL") from exc
