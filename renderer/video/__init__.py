"""Media inspection and format definitions."""

from .analyzer import MediaAnalyzer, MediaInfo, MediaStreamInfo, MediaValidation, validate_media
from .formats import VideoCodec, AudioCodec, ResolutionTier, EXPORT_RESOLUTIONS

__all__ = [
    "MediaAnalyzer",
    "MediaInfo",
    "MediaStreamInfo",
    "MediaValidation",
    "validate_media",
    "VideoCodec",
    "AudioCodec",
    "ResolutionTier",
    "EXPORT_RESOLUTIONS",
]
