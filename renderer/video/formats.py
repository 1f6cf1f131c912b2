"""Codec and output resolution definitions."""

from enum import Enum


class VideoCodec(str, Enum):
    """Supported video codecs."""
    H264 = "libx264"
    H265 = "libx265"
    VP9 = "libvpx-vp9"
    COPY = "copy"


class AudioCodec(str, Enum):
    """Supported audio codecs."""
    AAC = "aac"
    MP3 = "libmp3lame"
    OPUS = "libopus"
    COPY = "copy"


class ResolutionTier(str, Enum):
    """Export resolution tiers (portrait 9:16)."""
    HD = "720p"
    FULL_HD = "1080p"

    @property
    def dimensions(self) -> tuple[int, int]:
        """(width, height) in pixels."""
        return EXPORT_RESOLUTIONS[self]


EXPORT_RESOLUTIONS: dict[ResolutionTier, tuple[int, int]] = {
    ResolutionTier.HD: (720, 1280),
    ResolutionTier.FULL_HD: (1080, 1920),
}
