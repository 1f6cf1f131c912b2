"""
clipkit exporter

Turns accumulated edit parameters into a finished file: compiles the
ffmpeg command, guards the render with a crash-recovery checkpoint, and
reports progress.
"""

from .params import (
    EditParameters,
    TrimRange,
    CropRect,
    VideoTransform,
    AdjustmentValues,
    AudioConfig,
    TextOverlay,
    ExportConfig,
    ExportResult,
)
from .pipeline import ExportPipeline, build_export_plan, calculate_output_duration
from .recovery import Checkpoint, CheckpointStore, ExportStatus
from .storage import ProjectStorage

__all__ = [
    "EditParameters",
    "TrimRange",
    "CropRect",
    "VideoTransform",
    "AdjustmentValues",
    "AudioConfig",
    "TextOverlay",
    "ExportConfig",
    "ExportResult",
    "ExportPipeline",
    "build_export_plan",
    "calculate_output_duration",
    "Checkpoint",
    "CheckpointStore",
    "ExportStatus",
    "ProjectStorage",
]
