"""Structured errors raised by the compiler and the ffmpeg execution layer."""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Classification of an engine failure."""
    INVALID_INPUT = "INVALID_INPUT"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    CANCELLED = "CANCELLED"
    # Reserved: nothing enforces a timeout yet.
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class CompileError(ValueError):
    """Raised while building a command, before anything is executed."""


class EngineError(Exception):
    """An ffmpeg/ffprobe invocation ended without success.

    Attributes:
        code: Failure classification.
        logs: Captured engine log text, if any.
        return_code: Raw process return code, if the process ran.
    """

    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        logs: Optional[str] = None,
        return_code: Optional[int] = None,
        code: Optional[ErrorCode] = None,
    ):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.logs = logs
        self.return_code = return_code

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code.value}, "
            f"return_code={self.return_code}, message={str(self)!r})"
        )


class InvalidInput(EngineError):
    """The source could not be read or inspected."""
    code = ErrorCode.INVALID_INPUT


class ExecutionFailed(EngineError):
    """ffmpeg exited with a non-zero code that was not a cancellation."""
    code = ErrorCode.EXECUTION_FAILED


class ExecutionCancelled(EngineError):
    """The invocation was cancelled on request."""
    code = ErrorCode.CANCELLED
