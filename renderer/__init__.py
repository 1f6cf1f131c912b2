"""
clipkit renderer

Compiles non-destructive edit operations into a single ffmpeg invocation,
runs it with progress and cancellation, and inspects media with ffprobe.
"""

from .executor.command_builder import CommandBuilder, CompiledCommand
from .executor.operations import EditPlan, compile_plan
from .executor.process_manager import ProcessManager, Progress, ExecutionHandle
from .video.analyzer import MediaAnalyzer, MediaInfo
from .video.formats import VideoCodec, AudioCodec, ResolutionTier
from .errors import (
    ErrorCode,
    CompileError,
    EngineError,
    InvalidInput,
    ExecutionFailed,
    ExecutionCancelled,
)

__version__ = "1.0.0"

__all__ = [
    "CommandBuilder",
    "CompiledCommand",
    "EditPlan",
    "compile_plan",
    "ProcessManager",
    "Progress",
    "ExecutionHandle",
    "MediaAnalyzer",
    "MediaInfo",
    "VideoCodec",
    "AudioCodec",
    "ResolutionTier",
    "ErrorCode",
    "CompileError",
    "EngineError",
    "InvalidInput",
    "ExecutionFailed",
    "ExecutionCancelled",
]
