"""Media inspection using ffprobe."""

import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel

from ..errors import InvalidInput

logger = logging.getLogger("clipkit")

StreamType = Literal["video", "audio", "subtitle", "data"]


class MediaStreamInfo(BaseModel):
    """Information about a single stream."""
    index: int
    type: StreamType
    codec: str
    bitrate: Optional[str] = None
    # Video only
    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[float] = None
    average_frame_rate: Optional[str] = None
    # Audio only
    sample_rate: Optional[str] = None
    channel_layout: Optional[str] = None


class MediaInfo(BaseModel):
    """Container-level information plus the stream list."""
    filename: str
    format: str
    duration_ms: float
    size: int
    bitrate: int
    streams: list[MediaStreamInfo] = []

    @property
    def primary_video(self) -> Optional[MediaStreamInfo]:
        """Get the first video stream."""
        return next((s for s in self.streams if s.type == "video"), None)

    @property
    def has_audio(self) -> bool:
        return any(s.type == "audio" for s in self.streams)

    @property
    def resolution(self) -> Optional[tuple[int, int]]:
        """Get video resolution as (width, height)."""
        video = self.primary_video
        if video and video.width and video.height:
            return (video.width, video.height)
        return None


MIN_SOURCE_DURATION_MS = 1000
MAX_SOURCE_DURATION_MS = 60_000


class MediaValidation(BaseModel):
    """Outcome of checking a source against the editor's constraints."""
    errors: list[str] = []
    warnings: list[str] = []

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_media(
    info: MediaInfo,
    min_duration_ms: float = MIN_SOURCE_DURATION_MS,
    max_duration_ms: float = MAX_SOURCE_DURATION_MS,
) -> MediaValidation:
    """Check a probed source before it is accepted for editing.

    Too short, missing dimensions or no detectable video codec are errors.
    Exceeding ``max_duration_ms`` is only a warning since the clip can be
    trimmed, and so is a missing audio track.
    """
    result = MediaValidation()
    video = info.primary_video

    if info.duration_ms < min_duration_ms:
        result.errors.append(
            f"Video is too short ({round(info.duration_ms)}ms). "
            f"Minimum duration is {int(min_duration_ms)}ms."
        )
    if info.duration_ms > max_duration_ms:
        result.warnings.append(
            f"Video exceeds {max_duration_ms / 1000:g}s limit. It will need to be trimmed."
        )

    if info.resolution is None:
        result.errors.append("Video has invalid dimensions.")

    if video is None or video.codec == "unknown":
        result.errors.append("Could not detect video codec.")

    if not info.has_audio:
        result.warnings.append("Video has no audio track.")

    return result


def parse_stream_type(codec_type: Optional[str]) -> StreamType:
    """Map an ffprobe codec_type to a known stream type."""
    normalized = (codec_type or "").lower()
    if normalized in ("video", "audio", "subtitle"):
        return normalized  # type: ignore[return-value]
    return "data"


def parse_frame_rate(rate: Optional[str]) -> Optional[float]:
    """Parse ``30/1``, ``30000/1001`` or ``29.97`` into fps rounded to 2 places."""
    if not rate:
        return None

    if "/" in rate:
        try:
            num, den = (float(part) for part in rate.split("/", 1))
        except ValueError:
            return None
        if den == 0:
            return None
        return round(num / den, 2)

    try:
        return float(rate)
    except ValueError:
        return None


def parse_number(value) -> int:
    """Parse ffprobe's stringly-typed numbers, returning 0 for invalid values."""
    if isinstance(value, (int, float)):
        return int(value)
    if not value:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_probe_data(path: str, data: dict) -> MediaInfo:
    """Convert ffprobe JSON (``-show_format -show_streams``) into MediaInfo."""
    format_info = data.get("format") or {}
    streams: list[MediaStreamInfo] = []

    for stream in data.get("streams") or []:
        stream_type = parse_stream_type(stream.get("codec_type"))
        info = MediaStreamInfo(
            index=stream.get("index", 0),
            type=stream_type,
            codec=stream.get("codec_name") or "unknown",
            bitrate=stream.get("bit_rate"),
        )
        if stream_type == "video":
            info.width = stream.get("width")
            info.height = stream.get("height")
            info.average_frame_rate = stream.get("avg_frame_rate")
            info.fps = parse_frame_rate(stream.get("avg_frame_rate"))
        elif stream_type == "audio":
            info.sample_rate = stream.get("sample_rate")
            info.channel_layout = stream.get("channel_layout")
        streams.append(info)

    try:
        duration_sec = float(format_info.get("duration") or 0)
    except (TypeError, ValueError):
        duration_sec = 0.0

    return MediaInfo(
        filename=format_info.get("filename") or path,
        format=format_info.get("format_name") or "",
        duration_ms=duration_sec * 1000,
        size=parse_number(format_info.get("size")),
        bitrate=parse_number(format_info.get("bit_rate")),
        streams=streams,
    )


class MediaAnalyzer:
    """Inspects media files with ffprobe."""

    def __init__(self, ffprobe_path: Optional[str] = None):
        """Initialize the analyzer.

        Args:
            ffprobe_path: Path to ffprobe executable. If None, will search PATH.
        """
        self.ffprobe_path = ffprobe_path or shutil.which("ffprobe")
        if not self.ffprobe_path:
            raise RuntimeError("ffprobe not found in PATH")

    async def probe(self, path: str | Path) -> MediaInfo:
        """Inspect a media file.

        Raises:
            InvalidInput: If ffprobe fails or returns no usable information.
        """
        path = str(path)
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            path,
        ]
        logger.debug("Probing %s", path)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise InvalidInput(
                f"Failed to start ffprobe for: {path}", logs=str(exc), return_code=-1
            ) from exc

        stdout, stderr = await process.communicate()
        logs = stderr.decode(errors="replace")

        if process.returncode != 0:
            raise InvalidInput(
                f"Failed to get media information for: {path}",
                logs=logs,
                return_code=process.returncode,
            )

        try:
            data = json.loads(stdout.decode(errors="replace") or "{}")
        except json.JSONDecodeError as exc:
            raise InvalidInput(
                f"Unreadable media information for: {path}",
                logs=logs,
                return_code=process.returncode,
            ) from exc

        if not isinstance(data, dict) or not data.get("format"):
            raise InvalidInput(
                f"No media information returned for: {path}",
                logs=logs,
                return_code=process.returncode,
            )

        return parse_probe_data(path, data)
