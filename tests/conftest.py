"""Shared fixtures for clipkit tests.

Nothing here needs a real ffmpeg binary; see ``fakes.py`` for the
in-memory subprocess stand-ins.
"""

import os
import sys

import pytest

# Add project root to sys.path so `renderer` and `exporter` are importable
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from renderer.config import RenderSettings  # noqa: E402
from renderer.executor.process_manager import ProcessManager  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    return RenderSettings(
        ffmpeg_path="/usr/bin/ffmpeg",
        ffprobe_path="/usr/bin/ffprobe",
        storage_root=tmp_path / "storage",
    )


@pytest.fixture
def manager(settings):
    return ProcessManager(settings=settings)
