"""Runtime settings for clipkit, read from the environment or a .env file."""

import logging
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("clipkit")

_LOG_FORMAT = "[%(name)s] %(levelname)s %(message)s"


class RenderSettings(BaseSettings):
    """Settings shared by the renderer and the export pipeline.

    Every field can be overridden with a ``CLIPKIT_``-prefixed environment
    variable, e.g. ``CLIPKIT_FFMPEG_PATH=/opt/ffmpeg/bin/ffmpeg``.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLIPKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Engine binaries (None = search PATH)
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None

    # Storage
    storage_root: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "video-editor"
    )
    checkpoint_dir: Optional[Path] = None

    # Filter presets
    presets_file: Optional[Path] = None

    # Compiler limits
    max_text_overlays: int = Field(default=32, ge=1)
    max_audio_mixes: int = Field(default=4, ge=1)

    log_level: str = "INFO"

    @property
    def resolved_checkpoint_dir(self) -> Path:
        """Checkpoint directory, defaulting to ``<storage_root>/checkpoints``."""
        return self.checkpoint_dir or (self.storage_root / "checkpoints")


@lru_cache()
def get_settings() -> RenderSettings:
    """Return the cached process-wide settings."""
    return RenderSettings()


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a stream handler to the ``clipkit`` logger once.

    Args:
        level: Log level name. Defaults to ``settings.log_level``.

    Returns:
        The configured logger.
    """
    level = (level or get_settings().log_level).upper()
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
