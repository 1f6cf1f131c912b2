"""Process management for FFMPEG execution."""

import asyncio
import itertools
import logging
import os
import re
import shutil
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Optional

import psutil

from ..config import RenderSettings, get_settings
from ..errors import ExecutionCancelled, ExecutionFailed
from ..video.analyzer import MediaAnalyzer, MediaInfo
from .command_builder import CompiledCommand

logger = logging.getLogger("clipkit")

_handle_ids = itertools.count(1)


@dataclass
class Progress:
    """Progress information during FFMPEG execution."""
    progress: float = 0.0
    frame: int = 0
    fps: float = 0.0
    size_bytes: int = 0
    time_ms: int = 0
    speed_factor: float = 0.0
    # kbits/s
    bitrate: int = 0


ProgressCallback = Callable[[Progress], None]


@dataclass
class ExecutionResult:
    """Result of a successful FFMPEG execution."""
    success: bool
    return_code: int
    command: str
    output_path: Optional[str] = None
    duration_ms: int = 0
    logs: str = ""

    @property
    def output_size(self) -> Optional[int]:
        """Get output file size if available."""
        if self.output_path and Path(self.output_path).exists():
            return Path(self.output_path).stat().st_size
        return None


def compute_progress(time_ms: float, total_duration_ms: Optional[float]) -> float:
    """Normalise elapsed media time against the expected total, capped at 1."""
    if not total_duration_ms or total_duration_ms <= 0:
        return 0.0
    return max(0.0, min(time_ms / total_duration_ms, 1.0))


def _to_float(value: str) -> float:
    match = re.match(r"\s*(-?[0-9.]+)", value)
    if not match:
        return 0.0
    try:
        return float(match.group(1))
    except ValueError:
        return 0.0


def _to_int(value: str) -> int:
    return int(_to_float(value))


class ProgressParser:
    """Accumulates ``-progress pipe:1`` key=value lines into Progress records."""

    def __init__(self, total_duration_ms: Optional[float] = None):
        self.total_duration_ms = total_duration_ms
        self.current = Progress()

    def feed(self, line: str) -> Optional[Progress]:
        """Consume one line; returns a snapshot when a block is complete."""
        if "=" not in line:
            return None
        key, value = line.strip().split("=", 1)
        progress = self.current

        if key == "frame":
            progress.frame = _to_int(value)
        elif key == "fps":
            progress.fps = _to_float(value)
        elif key == "bitrate":
            progress.bitrate = _to_int(value)
        elif key == "total_size":
            progress.size_bytes = _to_int(value)
        elif key in ("out_time_us", "out_time_ms"):
            # Both are reported in microseconds
            if value.strip().lstrip("-").isdigit():
                progress.time_ms = max(0, int(value) // 1000)
        elif key == "speed":
            progress.speed_factor = _to_float(value)
        elif key == "progress":
            progress.progress = compute_progress(progress.time_ms, self.total_duration_ms)
            return replace(progress)
        return None


class ExecutionHandle:
    """A running ffmpeg invocation, owned by whoever started it."""

    def __init__(self, command: CompiledCommand, process: asyncio.subprocess.Process):
        self.id = next(_handle_ids)
        self.command = command
        self.process = process
        self.cancel_requested = False
        self.started_at = time.monotonic()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    def cancel(self) -> bool:
        """Request termination; the pending :meth:`wait` resolves as cancelled.

        Returns:
            True if a signal was sent to a running process.
        """
        self.cancel_requested = True
        if not self.running:
            return False
        try:
            self.process.terminate()
        except ProcessLookupError:
            return False
        logger.info("Cancellation requested for invocation #%d", self.id)
        return True

    async def wait(self) -> ExecutionResult:
        """Wait for the terminal outcome.

        Raises:
            ExecutionCancelled: If cancellation was requested.
            ExecutionFailed: On any other non-zero exit.
        """
        if self._task is None:
            raise RuntimeError("handle not started")
        return await self._task

    def __repr__(self) -> str:
        return f"ExecutionHandle(id={self.id}, running={self.running})"


class ProcessManager:
    """Manages FFMPEG process execution with progress tracking."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
        settings: Optional[RenderSettings] = None,
    ):
        """Initialize process manager.

        Args:
            ffmpeg_path: Path to ffmpeg executable. If None, uses settings, then PATH.
            ffprobe_path: Path to ffprobe executable used by :meth:`probe`.
            settings: Settings override; defaults to the process-wide settings.
        """
        settings = settings or get_settings()
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path or shutil.which("ffmpeg")
        if not self.ffmpeg_path:
            raise RuntimeError("ffmpeg not found in PATH")
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path
        self.active_handle: Optional[ExecutionHandle] = None
        self._live: set[ExecutionHandle] = set()
        self._analyzer: Optional[MediaAnalyzer] = None

    # ── Execution ─────────────────────────────────────────────────

    async def start(
        self,
        command: CompiledCommand,
        total_duration_ms: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExecutionHandle:
        """Launch ffmpeg in the background and return its handle.

        Raises:
            ExecutionFailed: If the process could not be started.
        """
        args = command.to_args(self.ffmpeg_path)
        # Add progress reporting
        args = [args[0], "-progress", "pipe:1", "-nostats"] + args[1:]
        cmd_string = command.to_string()

        if self.active_handle is not None and self.active_handle.running:
            logger.warning(
                "Invocation #%d is still active; tracking the new invocation instead",
                self.active_handle.id,
            )

        logger.debug("Running: ffmpeg %s", cmd_string)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExecutionFailed(
                f"Failed to start ffmpeg: {e}", logs=str(e), return_code=-1
            ) from e

        handle = ExecutionHandle(command, process)
        handle._task = asyncio.create_task(
            self._run(handle, total_duration_ms, on_progress)
        )
        self.active_handle = handle
        self._live.add(handle)
        return handle

    async def execute(
        self,
        command: CompiledCommand,
        total_duration_ms: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExecutionResult:
        """Execute a command and wait for its terminal outcome."""
        handle = await self.start(command, total_duration_ms, on_progress)
        return await handle.wait()

    async def _run(
        self,
        handle: ExecutionHandle,
        total_duration_ms: Optional[float],
        on_progress: Optional[ProgressCallback],
    ) -> ExecutionResult:
        process = handle.process
        parser = ProgressParser(total_duration_ms)
        stderr_data: list[str] = []

        async def read_stderr():
            while True:
                line = await process.stderr.readline()
                if not line:
                    break
                stderr_data.append(line.decode(errors="replace"))

        async def read_stdout():
            while True:
                line = await process.stdout.readline()
                if not line:
                    break
                snapshot = parser.feed(line.decode(errors="replace"))
                if snapshot is not None and on_progress is not None:
                    try:
                        on_progress(snapshot)
                    except Exception:
                        logger.warning("Progress callback raised", exc_info=True)

        try:
            # Run both readers concurrently
            await asyncio.gather(read_stdout(), read_stderr())
            return_code = await process.wait()
        except asyncio.CancelledError:
            handle.cancel()
            # Reap the terminated child before propagating
            await asyncio.shield(process.wait())
            raise
        finally:
            self._live.discard(handle)
            if self.active_handle is handle:
                self.active_handle = None

        duration_ms = int((time.monotonic() - handle.started_at) * 1000)
        logs = "".join(stderr_data)

        if return_code == 0:
            logger.debug("Invocation #%d finished in %d ms", handle.id, duration_ms)
            return ExecutionResult(
                success=True,
                return_code=return_code,
                command=handle.command.to_string(),
                output_path=handle.command.output_path,
                duration_ms=duration_ms,
                logs=logs,
            )

        if handle.cancel_requested:
            raise ExecutionCancelled(
                "FFmpeg execution was cancelled", logs=logs, return_code=return_code
            )

        raise ExecutionFailed(
            f"FFmpeg command failed: {self._parse_error(logs)}",
            logs=logs,
            return_code=return_code,
        )

    async def cancel(self, handle: Optional[ExecutionHandle] = None) -> int:
        """Cancel an invocation.

        Without a handle, cancels the tracked active invocation. If none is
        tracked (e.g. the handle was lost in a restart), cancellation is
        broadcast to every running ffmpeg invocation: first the live ones
        started by this manager, otherwise any process running this
        manager's ffmpeg binary.

        Returns:
            Number of invocations signalled.
        """
        if handle is not None:
            return int(handle.cancel())
        if self.active_handle is not None:
            return int(self.active_handle.cancel())

        live = list(self._live)
        if live:
            logger.warning("No active invocation tracked; cancelling %d live invocation(s)", len(live))
            return sum(int(h.cancel()) for h in live)

        return self._terminate_running_ffmpeg()

    def _is_own_binary(self, info: dict) -> bool:
        cmdline = info.get("cmdline") or []
        candidates = [info.get("exe"), cmdline[0] if cmdline else None]
        target = os.path.realpath(self.ffmpeg_path)
        return any(c and os.path.realpath(c) == target for c in candidates)

    def _terminate_running_ffmpeg(self) -> int:
        """Terminate untracked processes running this manager's ffmpeg binary."""
        own_pid = os.getpid()
        signalled = 0
        for proc in psutil.process_iter(["pid", "exe", "cmdline"]):
            info = proc.info
            if info.get("pid") == own_pid or not self._is_own_binary(info):
                continue
            try:
                proc.terminate()
            except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
                logger.debug("Could not terminate ffmpeg pid %s: %s", info.get("pid"), e)
                continue
            signalled += 1

        if signalled:
            logger.warning("No invocation tracked; terminated %d running ffmpeg process(es)", signalled)
        return signalled

    # ── Inspection ────────────────────────────────────────────────

    async def probe(self, path: str | Path) -> MediaInfo:
        """Inspect a media file with ffprobe.

        Raises:
            InvalidInput: If the file cannot be inspected.
        """
        if self._analyzer is None:
            self._analyzer = MediaAnalyzer(self.ffprobe_path)
        return await self._analyzer.probe(path)

    async def version(self) -> str:
        """Return the first line of ``ffmpeg -version``."""
        process = await asyncio.create_subprocess_exec(
            self.ffmpeg_path, "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await process.communicate()
        lines = stdout.decode(errors="replace").strip().splitlines()
        return lines[0] if lines else ""

    def _parse_error(self, stderr: str) -> str:
        """Extract meaningful error message from ffmpeg stderr."""
        lines = stderr.strip().split("\n")

        # Look for common error patterns
        error_patterns = [
            r"Error.*",
            r"Invalid.*",
            r"No such file.*",
            r".*not found.*",
            r"Permission denied.*",
        ]

        for line in reversed(lines):
            for pattern in error_patterns:
                if re.search(pattern, line, re.IGNORECASE):
                    return line.strip()

        # Return last non-empty line if no pattern matched
        for line in reversed(lines):
            if line.strip():
                return line.strip()

        return "Unknown error"
