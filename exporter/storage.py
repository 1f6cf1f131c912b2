"""Per-project working directories and output path allocation.

Layout::

    {storage_root}/projects/{project_id}/
        temp/
        output/
"""

import itertools
import logging
import shutil
import time
from pathlib import Path

from renderer.sanitize import validate_project_id

logger = logging.getLogger("clipkit")

_file_counter = itertools.count(1)


class ProjectStorage:
    """Allocates unique file paths under a storage root."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def project_dir(self, project_id: str) -> Path:
        return self.root / "projects" / validate_project_id(project_id)

    def output_dir(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "output"

    def temp_dir(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "temp"

    @staticmethod
    def _unique_name(extension: str) -> str:
        return f"{int(time.time() * 1000)}_{next(_file_counter)}.{extension.lstrip('.')}"

    def create_output_file(self, project_id: str, extension: str = "mp4") -> str:
        """Return a fresh output path; the directory is created, the file is not."""
        directory = self.output_dir(project_id)
        directory.mkdir(parents=True, exist_ok=True)
        return str(directory / self._unique_name(extension))

    def create_temp_file(self, project_id: str, extension: str) -> str:
        """Return a fresh path in the project's temp directory."""
        directory = self.temp_dir(project_id)
        directory.mkdir(parents=True, exist_ok=True)
        return str(directory / self._unique_name(extension))

    @staticmethod
    def get_file_size(path: str | Path) -> int:
        """File size in bytes.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return path.stat().st_size

    def cleanup_temp(self, project_id: str) -> None:
        """Empty the project's temp directory, keeping outputs."""
        directory = self.temp_dir(project_id)
        shutil.rmtree(directory, ignore_errors=True)
        directory.mkdir(parents=True, exist_ok=True)

    def cleanup_project(self, project_id: str) -> None:
        """Delete the whole project directory; safe if it does not exist."""
        directory = self.project_dir(project_id)
        if directory.exists():
            shutil.rmtree(directory)
            logger.debug("Removed project directory %s", directory)
