"""Edit parameters describing one export request, and its result."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from renderer.video.formats import AudioCodec, ResolutionTier, VideoCodec


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class TrimRange(_Frozen):
    """Trim range in milliseconds."""
    start_ms: float = Field(ge=0)
    end_ms: float

    @model_validator(mode="after")
    def _check_order(self) -> "TrimRange":
        if self.start_ms >= self.end_ms:
            raise ValueError(
                f"trim start ({self.start_ms}) must be before end ({self.end_ms})"
            )
        return self

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms


class CropRect(_Frozen):
    """Crop rectangle in source pixels, offset from the top-left corner."""
    x: int = Field(default=0, ge=0)
    y: int = Field(default=0, ge=0)
    width: int = Field(gt=0)
    height: int = Field(gt=0)


class VideoTransform(_Frozen):
    crop_rect: Optional[CropRect] = None
    rotation: Literal[0, 90, 180, 270] = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False


class AdjustmentValues(_Frozen):
    """UI adjustment sliders, each -100..100 with 0 meaning unchanged."""
    brightness: int = Field(default=0, ge=-100, le=100)
    contrast: int = Field(default=0, ge=-100, le=100)
    saturation: int = Field(default=0, ge=-100, le=100)

    @property
    def is_default(self) -> bool:
        return self.brightness == 0 and self.contrast == 0 and self.saturation == 0


class AudioConfig(_Frozen):
    """Audio settings; volumes are percentages 0-100."""
    is_muted: bool = False
    original_volume: float = Field(default=100, ge=0, le=100)
    background_music_uri: Optional[str] = None
    background_music_volume: float = Field(default=100, ge=0, le=100)
    voiceover_uri: Optional[str] = None
    voiceover_volume: float = Field(default=100, ge=0, le=100)


class TextOverlay(_Frozen):
    """A text layer positioned relative to the frame (x, y in 0-1)."""
    id: str
    text: str
    x: float = Field(default=0.5, ge=0, le=1)
    y: float = Field(default=0.5, ge=0, le=1)
    font_size: int = Field(default=48, gt=0)
    color: str = "#FFFFFF"
    font_file: Optional[str] = None


class ExportConfig(_Frozen):
    resolution: ResolutionTier = ResolutionTier.FULL_HD
    video_codec: VideoCodec = VideoCodec.H264
    audio_codec: AudioCodec = AudioCodec.AAC


class EditParameters(_Frozen):
    """Everything needed to render one export.

    Built once per export attempt from the accumulated editor state.
    """
    source_uri: str
    source_duration_ms: float = Field(ge=0)
    trim_range: Optional[TrimRange] = None
    transform: VideoTransform = VideoTransform()
    speed_multiplier: float = Field(default=1.0, gt=0)
    filter_preset_id: Optional[str] = None
    adjustments: AdjustmentValues = AdjustmentValues()
    audio_config: AudioConfig = AudioConfig()
    text_overlays: tuple[TextOverlay, ...] = ()
    export_config: ExportConfig = ExportConfig()


class ExportResult(BaseModel):
    """Returned once per successful export."""
    output_path: str
    file_size_bytes: int
    duration_ms: float
    resolution: ResolutionTier
