"""Crash-safe export checkpoints stored as one JSON file per project.

A checkpoint is written before ffmpeg starts and removed only after a
successful export, so a checkpoint found after a restart means the export
was interrupted, failed or was cancelled.
"""

import logging
import os
import tempfile
import time
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from renderer.sanitize import validate_project_id

logger = logging.getLogger("clipkit")


class ExportStatus(str, Enum):
    """Export lifecycle stage."""
    IDLE = "idle"
    PREPARING = "preparing"
    PROCESSING = "processing"
    COMPRESSING = "compressing"
    COMPLETE = "complete"
    ERROR = "error"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Checkpoint(BaseModel):
    """Durable record of an in-flight export (camelCase keys on disk)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    project_id: str
    stage: ExportStatus
    progress: float = Field(default=0.0, ge=0, le=1)
    command: str
    output_path: str
    timestamp: int = Field(default_factory=now_ms)


class CheckpointStore:
    """At most one checkpoint per project, last write wins."""

    SUFFIX = ".json"

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, project_id: str) -> Path:
        return self.directory / f"{validate_project_id(project_id)}{self.SUFFIX}"

    def save(self, project_id: str, checkpoint: Checkpoint) -> Path:
        """Write the checkpoint, replacing any previous one for the project."""
        path = self._path(project_id)
        self.directory.mkdir(parents=True, exist_ok=True)

        payload = checkpoint.model_dump_json(by_alias=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.directory, prefix=f".{project_id}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Saved checkpoint for project %s (stage=%s)", project_id, checkpoint.stage.value)
        return path

    def load(self, project_id: str) -> Optional[Checkpoint]:
        """Return the project's checkpoint, or None.

        A record that cannot be parsed is deleted so it never blocks a
        later export.
        """
        path = self._path(project_id)
        if not path.exists():
            return None

        try:
            return Checkpoint.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Discarding corrupted checkpoint %s: %s", path, exc)
            self.clear(project_id)
            return None

    def clear(self, project_id: str) -> None:
        """Delete the project's checkpoint; no-op when there is none."""
        self._path(project_id).unlink(missing_ok=True)

    def list_project_ids(self) -> list[str]:
        """Project ids that currently have a checkpoint on disk."""
        if not self.directory.is_dir():
            return []
        return sorted(
            p.stem for p in self.directory.glob(f"*{self.SUFFIX}")
            if not p.name.startswith(".")
        )
