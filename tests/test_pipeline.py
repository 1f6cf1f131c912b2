"""Tests for the export pipeline."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from fakes import StubProcessManager
from exporter.params import (
    AdjustmentValues,
    AudioConfig,
    CropRect,
    EditParameters,
    ExportConfig,
    TextOverlay,
    TrimRange,
    VideoTransform,
)
from exporter.pipeline import ExportPipeline, build_export_plan, calculate_output_duration
from exporter.recovery import ExportStatus
from renderer.errors import CompileError, ExecutionCancelled, ExecutionFailed
from renderer.executor.operations import MixAudio, MixVoiceover, Mute, Overlay, Volume
from renderer.video.formats import ResolutionTier, VideoCodec


def _params(**overrides) -> EditParameters:
    fields = dict(source_uri="/videos/in.mp4", source_duration_ms=20000)
    fields.update(overrides)
    return EditParameters(**fields)


@pytest.fixture
def stub():
    return StubProcessManager()


@pytest.fixture
def pipeline(settings, stub):
    return ExportPipeline(process_manager=stub, settings=settings)


class TestEditParameters:
    """Tests for parameter validation."""

    def test_trim_order(self):
        with pytest.raises(ValidationError):
            TrimRange(start_ms=5000, end_ms=1000)

    def test_speed_must_be_positive(self):
        with pytest.raises(ValidationError):
            _params(speed_multiplier=0)

    def test_adjustment_range(self):
        with pytest.raises(ValidationError):
            AdjustmentValues(brightness=150)


class TestOutputDuration:
    """Tests for calculate_output_duration."""

    def test_full_source(self):
        assert calculate_output_duration(_params()) == 20000

    def test_trim_and_speed(self):
        params = _params(trim_range=TrimRange(start_ms=0, end_ms=10000), speed_multiplier=2)
        assert calculate_output_duration(params) == 5000

    def test_slow_motion(self):
        assert calculate_output_duration(_params(speed_multiplier=0.5)) == 40000

    def test_available_on_pipeline(self, pipeline):
        assert pipeline.calculate_output_duration(_params()) == 20000


class TestBuildExportPlan:
    """Tests for translating parameters into operations."""

    def test_minimal(self):
        plan = build_export_plan(_params(), "/out.mp4")
        assert plan.kinds == ["resolution", "codec"]
        assert plan.source == "/videos/in.mp4"
        assert plan.output == "/out.mp4"

    def test_fixed_order(self):
        params = _params(
            trim_range=TrimRange(start_ms=1000, end_ms=5000),
            transform=VideoTransform(
                crop_rect=CropRect(width=720, height=1280),
                rotation=90,
                flip_horizontal=True,
            ),
            speed_multiplier=2,
            filter_preset_id="warm",
            adjustments=AdjustmentValues(contrast=10),
            text_overlays=(TextOverlay(id="t1", text="Hi"),),
            audio_config=AudioConfig(background_music_uri="/music.mp3"),
        )
        assert build_export_plan(params, "/out.mp4").kinds == [
            "trim", "crop", "rotate", "flip", "speed", "named_filter",
            "adjust", "overlay", "mix_audio", "resolution", "codec",
        ]

    def test_overlay_position_is_relative(self):
        params = _params(text_overlays=(
            TextOverlay(id="t1", text="Top", x=0.5, y=0.1, color="#FF0000"),
        ))
        overlay = build_export_plan(params, "/out.mp4").operations[0]
        assert isinstance(overlay, Overlay)
        assert overlay.x == "w*0.5"
        assert overlay.y == "h*0.1"
        assert overlay.color == "#FF0000"

    def test_mute_wins(self):
        params = _params(audio_config=AudioConfig(is_muted=True, background_music_uri="/music.mp3"))
        ops = build_export_plan(params, "/out.mp4").operations
        assert [type(op) for op in ops[:1]] == [Mute]
        assert not any(isinstance(op, MixAudio) for op in ops)

    def test_volume_without_mix(self):
        params = _params(audio_config=AudioConfig(original_volume=40))
        assert build_export_plan(params, "/out.mp4").operations[0] == Volume(percent=40)

    def test_music_and_voiceover(self):
        params = _params(audio_config=AudioConfig(
            original_volume=80,
            background_music_uri="/music.mp3",
            background_music_volume=30,
            voiceover_uri="/voice.wav",
            voiceover_volume=90,
        ))
        ops = build_export_plan(params, "/out.mp4").operations
        assert ops[0] == MixAudio(music_path="/music.mp3", original_volume=80, music_volume=30)
        assert ops[1] == MixVoiceover(voiceover_path="/voice.wav", original_volume=100, voiceover_volume=90)

    def test_export_config(self):
        params = _params(export_config=ExportConfig(resolution=ResolutionTier.HD, video_codec=VideoCodec.H265))
        ops = build_export_plan(params, "/out.mp4").operations
        assert (ops[0].width, ops[0].height) == (720, 1280)
        assert ops[1].video_codec == "libx265"
        assert ops[1].audio_codec == "aac"


class TestBuildExportCommand:
    """Tests for the compiled export command."""

    def test_full_command(self, pipeline):
        params = _params(
            trim_range=TrimRange(start_ms=1000, end_ms=5000),
            speed_multiplier=2,
            filter_preset_id="bw",
        )
        cmd = pipeline.build_export_command(params, "/out.mp4")
        tokens = cmd.tokens

        assert tokens[:6] == ("-y", "-ss", "1.000", "-to", "5.000", "-i")
        vf = tokens[tokens.index("-vf") + 1]
        assert vf.startswith("setpts=PTS/2,hue=s=0,scale=1080:1920")
        assert tokens[tokens.index("-af") + 1] == "atempo=2"
        assert tokens[-5:] == ("-c:v", "libx264", "-c:a", "aac", "/out.mp4")

    def test_music_uses_graph(self, pipeline):
        params = _params(audio_config=AudioConfig(background_music_uri="/music.mp3", background_music_volume=50))
        cmd = pipeline.build_export_command(params, "/out.mp4")
        assert cmd.uses_filter_graph
        assert "-vf" not in cmd.tokens

    def test_unknown_preset(self, pipeline):
        with pytest.raises(CompileError):
            pipeline.build_export_command(_params(filter_preset_id="nope"), "/out.mp4")

    def test_overlay_limit_from_settings(self, settings, stub):
        settings = settings.model_copy(update={"max_text_overlays": 1})
        pipeline = ExportPipeline(process_manager=stub, settings=settings)
        overlays = tuple(TextOverlay(id=str(i), text=str(i)) for i in range(2))
        with pytest.raises(CompileError):
            pipeline.build_export_command(_params(text_overlays=overlays), "/out.mp4")


class TestExecuteExport:
    """Tests for running exports with checkpoints."""

    @pytest.mark.asyncio
    async def test_success_clears_checkpoint(self, pipeline, stub):
        seen_checkpoints = []
        stub.on_start = lambda command: seen_checkpoints.append(pipeline.find_interrupted_export("p1"))
        progress = []

        result = await pipeline.execute_export(_params(), "p1", on_progress=progress.append)

        checkpoint = seen_checkpoints[0]
        assert checkpoint is not None
        assert checkpoint.stage == ExportStatus.PROCESSING
        assert checkpoint.progress == 0
        assert checkpoint.command == stub.started[0].to_string()
        assert checkpoint.output_path == result.output_path

        assert pipeline.find_interrupted_export("p1") is None
        assert Path(result.output_path).parent == pipeline.storage.output_dir("p1")
        assert result.file_size_bytes == 1234
        assert result.duration_ms == 20000
        assert result.resolution == ResolutionTier.FULL_HD
        assert [p.progress for p in progress] == [0.5]
        assert pipeline.active_handle is None

    @pytest.mark.asyncio
    async def test_failure_keeps_checkpoint(self, pipeline, stub):
        stub.outcome = "failed"

        with pytest.raises(ExecutionFailed):
            await pipeline.execute_export(_params(), "p1")

        checkpoint = pipeline.find_interrupted_export("p1")
        assert checkpoint.stage == ExportStatus.PROCESSING
        assert checkpoint.output_path == stub.started[0].output_path
        assert pipeline.active_handle is None

    @pytest.mark.asyncio
    async def test_cancel_keeps_checkpoint(self, pipeline, stub):
        stub.outcome = "cancelled"

        with pytest.raises(ExecutionCancelled):
            await pipeline.execute_export(_params(), "p1")

        assert pipeline.find_interrupted_export("p1") is not None

    @pytest.mark.asyncio
    async def test_compile_error_writes_nothing(self, pipeline, stub):
        with pytest.raises(CompileError):
            await pipeline.execute_export(_params(filter_preset_id="nope"), "p1")

        assert stub.started == []
        assert pipeline.find_interrupted_export("p1") is None

    @pytest.mark.asyncio
    async def test_cancel_export_delegates(self, pipeline, stub):
        handle = object()
        pipeline.active_handle = handle

        assert await pipeline.cancel_export() == 1
        assert stub.cancelled == [handle]


class TestRecovery:
    """Tests for finding and retrying interrupted exports."""

    @pytest.mark.asyncio
    async def test_list_interrupted(self, pipeline, stub):
        stub.outcome = "failed"
        for project_id in ("p2", "p1"):
            with pytest.raises(ExecutionFailed):
                await pipeline.execute_export(_params(), project_id)

        assert [c.project_id for c in pipeline.list_interrupted_exports()] == ["p1", "p2"]

    @pytest.mark.asyncio
    async def test_retry_reuses_command(self, pipeline, stub):
        stub.outcome = "failed"
        with pytest.raises(ExecutionFailed):
            await pipeline.execute_export(_params(speed_multiplier=2), "p1")

        stub.outcome = "success"
        result = await pipeline.retry_export(_params(speed_multiplier=2), "p1")

        assert stub.started[1] == stub.started[0]
        assert result.output_path == stub.started[0].output_path
        assert result.duration_ms == 10000
        assert pipeline.find_interrupted_export("p1") is None

    @pytest.mark.asyncio
    async def test_retry_without_checkpoint(self, pipeline):
        with pytest.raises(LookupError):
            await pipeline.retry_export(_params(), "p1")
