"""In-memory stand-ins for ffmpeg processes and the process manager.

Construct these inside async tests so the stream readers bind to the
running event loop.
"""

import asyncio
from pathlib import Path
from typing import Optional

from renderer.errors import ExecutionCancelled, ExecutionFailed
from renderer.executor.process_manager import ExecutionResult, Progress


class FakeProcess:
    """Mimics ``asyncio.subprocess.Process`` for a scripted ffmpeg run.

    With ``hang=True`` the process keeps its pipes open until
    :meth:`terminate` is called, like a long render.
    """

    def __init__(
        self,
        stdout_lines=(),
        stderr: bytes = b"",
        returncode: int = 0,
        hang: bool = False,
        stdout: bytes = b"",
    ):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        for line in stdout_lines:
            self.stdout.feed_data(line.encode() + b"\n")
        if stdout:
            self.stdout.feed_data(stdout)
        if stderr:
            self.stderr.feed_data(stderr)

        self.returncode: Optional[int] = None
        self.terminated = False
        self._exit_code = returncode
        self._exited = asyncio.Event()
        if not hang:
            self._finish()

    def _finish(self) -> None:
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        self.returncode = self._exit_code
        return self.returncode

    async def communicate(self):
        out = await self.stdout.read()
        err = await self.stderr.read()
        await self.wait()
        return out, err

    def terminate(self) -> None:
        self.terminated = True
        self._exit_code = 255
        self._finish()


def progress_block(
    out_time_us: int,
    frame: int = 10,
    fps: str = "30.00",
    total_size: str = "2048",
    bitrate: str = "1500.5kbits/s",
    speed: str = "1.5x",
    state: str = "continue",
) -> list[str]:
    """One ``-progress pipe:1`` block as ffmpeg prints it."""
    return [
        f"frame={frame}",
        f"fps={fps}",
        "stream_0_0_q=28.0",
        f"bitrate={bitrate}",
        f"total_size={total_size}",
        f"out_time_us={out_time_us}",
        f"out_time_ms={out_time_us}",
        "out_time=00:00:00.000000",
        "dup_frames=0",
        "drop_frames=0",
        f"speed={speed}",
        f"progress={state}",
    ]


class StubHandle:
    """Handle returned by :class:`StubProcessManager`."""

    def __init__(self, manager: "StubProcessManager", command, on_progress):
        self.manager = manager
        self.command = command
        self.on_progress = on_progress

    async def wait(self) -> ExecutionResult:
        if self.on_progress is not None:
            self.on_progress(Progress(progress=0.5, time_ms=500))

        outcome = self.manager.outcome
        if outcome == "failed":
            raise ExecutionFailed("FFmpeg command failed: Error", logs="Error", return_code=1)
        if outcome == "cancelled":
            raise ExecutionCancelled("FFmpeg execution was cancelled", return_code=255)

        Path(self.command.output_path).write_bytes(b"\0" * self.manager.output_size)
        return ExecutionResult(
            success=True,
            return_code=0,
            command=self.command.to_string(),
            output_path=self.command.output_path,
        )


class StubProcessManager:
    """Records started commands and finishes them with a fixed outcome.

    Args:
        outcome: ``"success"``, ``"failed"`` or ``"cancelled"``.
        on_start: Called with each command before it "runs".
    """

    def __init__(self, outcome: str = "success", on_start=None, output_size: int = 1234):
        self.outcome = outcome
        self.on_start = on_start
        self.output_size = output_size
        self.started = []
        self.cancelled = []

    async def start(self, command, total_duration_ms=None, on_progress=None):
        self.started.append(command)
        if self.on_start is not None:
            self.on_start(command)
        return StubHandle(self, command, on_progress)

    async def cancel(self, handle=None) -> int:
        self.cancelled.append(handle)
        return 1


class FakeSystemProcess:
    """Stands in for a ``psutil.Process`` yielded by ``process_iter``.

    Args:
        on_terminate: Called when the process is terminated.
        error: Raised from :meth:`terminate` instead.
    """

    def __init__(self, pid: int, cmdline, exe: Optional[str] = None, on_terminate=None, error=None):
        self.info = {"pid": pid, "exe": exe, "cmdline": list(cmdline)}
        self.on_terminate = on_terminate
        self.error = error
        self.terminated = False

    def terminate(self) -> None:
        if self.error is not None:
            raise self.error
        self.terminated = True
        if self.on_terminate is not None:
            self.on_terminate()
