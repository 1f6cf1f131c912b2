"""Named color filter presets.

Built-in presets map an id (``warm``, ``cool``...) to a raw ffmpeg video
filter string. Extra presets can be loaded from a YAML file::

    presets:
      dreamy:
        display_name: Dreamy
        filter: "gblur=sigma=2,eq=saturation=1.2"
        description: Soft glow
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from .errors import CompileError

logger = logging.getLogger("clipkit")


@dataclass(frozen=True)
class FilterPreset:
    """A named video filter preset."""
    id: str
    display_name: str
    ffmpeg_filter: str
    description: str = ""


BUILTIN_PRESETS: tuple[FilterPreset, ...] = (
    FilterPreset(
        id="warm",
        display_name="Warm",
        ffmpeg_filter="colortemperature=temperature=6500,colorbalance=rs=0.1:gs=0.05:bs=-0.1",
        description="Golden warm tones",
    ),
    FilterPreset(
        id="cool",
        display_name="Cool",
        ffmpeg_filter="colortemperature=temperature=9000,colorbalance=rs=-0.1:gs=0:bs=0.1",
        description="Blue cool tones",
    ),
    FilterPreset(
        id="vintage",
        display_name="Vintage",
        ffmpeg_filter="curves=vintage,colorbalance=rs=0.15:gs=0.1:bs=0",
        description="Retro film look",
    ),
    FilterPreset(
        id="bw",
        display_name="B&W",
        ffmpeg_filter="hue=s=0",
        description="Classic black & white",
    ),
)


class PresetRegistry:
    """Lookup table of filter presets, in registration order."""

    def __init__(self, presets: Optional[list[FilterPreset]] = None):
        self._presets: dict[str, FilterPreset] = {}
        for preset in presets if presets is not None else BUILTIN_PRESETS:
            self.register(preset)

    def register(self, preset: FilterPreset) -> None:
        """Add a preset, replacing any preset with the same id."""
        if preset.id in self._presets:
            logger.debug("Overriding filter preset '%s'", preset.id)
        self._presets[preset.id] = preset

    def get(self, preset_id: str) -> Optional[FilterPreset]:
        return self._presets.get(preset_id)

    def require(self, preset_id: str) -> FilterPreset:
        """Return the preset or raise :class:`CompileError`."""
        preset = self._presets.get(preset_id)
        if preset is None:
            raise CompileError(
                f"Unknown filter preset '{preset_id}'. "
                f"Available: {sorted(self._presets)}"
            )
        return preset

    def list_all(self) -> list[FilterPreset]:
        return list(self._presets.values())

    def __contains__(self, preset_id: object) -> bool:
        return preset_id in self._presets

    def __len__(self) -> int:
        return len(self._presets)


def load_presets_from_yaml(path: Path) -> list[FilterPreset]:
    """Parse a presets YAML file.

    Invalid entries are skipped with a warning. An unreadable file or a
    file without a top-level ``presets`` mapping yields an empty list.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to read presets file %s: %s", path, exc)
        return []

    if not isinstance(data, dict) or not isinstance(data.get("presets"), dict):
        logger.warning("Invalid presets file %s: expected a 'presets' mapping", path)
        return []

    presets: list[FilterPreset] = []
    for preset_id, entry in data["presets"].items():
        if not isinstance(entry, dict):
            logger.warning("Skipping preset '%s' in %s: not a mapping", preset_id, path)
            continue
        ffmpeg_filter = str(entry.get("filter", "")).strip()
        if not ffmpeg_filter:
            logger.warning("Skipping preset '%s' in %s: missing 'filter'", preset_id, path)
            continue
        presets.append(FilterPreset(
            id=str(preset_id),
            display_name=str(entry.get("display_name", preset_id)),
            ffmpeg_filter=ffmpeg_filter,
            description=str(entry.get("description", "")),
        ))
    return presets


def build_registry(presets_file: Optional[Path] = None) -> PresetRegistry:
    """Built-in presets plus any loaded from ``presets_file``."""
    registry = PresetRegistry()
    if presets_file is not None:
        custom = load_presets_from_yaml(presets_file)
        for preset in custom:
            registry.register(preset)
        if custom:
            logger.info("Loaded %d filter preset(s) from %s", len(custom), presets_file)
    return registry
