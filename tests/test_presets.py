"""Tests for filter presets and the YAML preset loader."""

import pytest

from renderer.errors import CompileError
from renderer.presets import (
    BUILTIN_PRESETS,
    FilterPreset,
    PresetRegistry,
    build_registry,
    load_presets_from_yaml,
)

VALID_PRESETS_YAML = """
presets:
  dreamy:
    display_name: Dreamy
    filter: "gblur=sigma=2,eq=saturation=1.2"
    description: Soft glow
  bw:
    display_name: Harsh B&W
    filter: "hue=s=0,eq=contrast=1.5"
"""


class TestPresetRegistry:
    """Tests for PresetRegistry."""

    def test_builtins(self):
        registry = PresetRegistry()
        assert [p.id for p in registry.list_all()] == ["warm", "cool", "vintage", "bw"]
        assert len(registry) == len(BUILTIN_PRESETS)
        assert "warm" in registry
        assert registry.require("bw").ffmpeg_filter == "hue=s=0"

    def test_warm_filter(self):
        assert PresetRegistry().get("warm").ffmpeg_filter == (
            "colortemperature=temperature=6500,colorbalance=rs=0.1:gs=0.05:bs=-0.1"
        )

    def test_get_unknown(self):
        assert PresetRegistry().get("sepia") is None

    def test_require_unknown(self):
        with pytest.raises(CompileError, match="sepia"):
            PresetRegistry().require("sepia")

    def test_register_overrides(self):
        registry = PresetRegistry()
        registry.register(FilterPreset("warm", "Warmer", "eq=gamma_r=1.2"))
        assert registry.require("warm").display_name == "Warmer"
        assert len(registry) == len(BUILTIN_PRESETS)

    def test_empty_registry(self):
        assert len(PresetRegistry([])) == 0


class TestYamlLoader:
    """Tests for load_presets_from_yaml and build_registry."""

    def test_load_valid(self, tmp_path):
        path = tmp_path / "presets.yaml"
        path.write_text(VALID_PRESETS_YAML)

        presets = load_presets_from_yaml(path)

        assert [p.id for p in presets] == ["dreamy", "bw"]
        assert presets[0].display_name == "Dreamy"
        assert presets[0].ffmpeg_filter == "gblur=sigma=2,eq=saturation=1.2"
        assert presets[0].description == "Soft glow"
        assert presets[1].description == ""

    def test_invalid_entries_skipped(self, tmp_path):
        path = tmp_path / "presets.yaml"
        path.write_text(
            "presets:\n"
            "  no_filter:\n"
            "    display_name: Broken\n"
            "  scalar: just a string\n"
            "  ok:\n"
            "    filter: negate\n"
        )
        presets = load_presets_from_yaml(path)
        assert [p.id for p in presets] == ["ok"]
        assert presets[0].display_name == "ok"

    def test_missing_file(self, tmp_path):
        assert load_presets_from_yaml(tmp_path / "missing.yaml") == []

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("presets: [unclosed\n")
        assert load_presets_from_yaml(path) == []

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- warm\n- cool\n")
        assert load_presets_from_yaml(path) == []

    def test_build_registry_merges(self, tmp_path):
        path = tmp_path / "presets.yaml"
        path.write_text(VALID_PRESETS_YAML)

        registry = build_registry(path)

        assert "dreamy" in registry
        assert "warm" in registry
        assert registry.require("bw").ffmpeg_filter == "hue=s=0,eq=contrast=1.5"

    def test_build_registry_without_file(self):
        assert len(build_registry()) == len(BUILTIN_PRESETS)
