"""Export pipeline: edit parameters in, one rendered file out.

Flow:
    1. Compile all edit parameters into one ffmpeg command
    2. Save a crash-recovery checkpoint
    3. Execute with progress tracking
    4. On success: clear the checkpoint and return the result
    5. On failure or cancellation: keep the checkpoint for a later retry
"""

import logging
from typing import Optional

from renderer.config import RenderSettings, get_settings
from renderer.errors import EngineError
from renderer.executor.command_builder import CompiledCommand, format_number
from renderer.executor.operations import (
    Adjust,
    Codec,
    Crop,
    EditOperation,
    EditPlan,
    Flip,
    MixAudio,
    MixVoiceover,
    Mute,
    NamedFilter,
    Overlay,
    Resolution,
    Rotate,
    Speed,
    Trim,
    Volume,
    compile_plan,
)
from renderer.executor.process_manager import (
    ExecutionHandle,
    ExecutionResult,
    ProcessManager,
    ProgressCallback,
)
from renderer.presets import PresetRegistry, build_registry

from .params import EditParameters, ExportResult
from .recovery import Checkpoint, CheckpointStore, ExportStatus
from .storage import ProjectStorage

logger = logging.getLogger("clipkit")


def _audio_operations(params: EditParameters) -> list[EditOperation]:
    audio = params.audio_config
    if audio.is_muted:
        return [Mute()]

    ops: list[EditOperation] = []
    if audio.background_music_uri:
        ops.append(MixAudio(
            music_path=audio.background_music_uri,
            original_volume=audio.original_volume,
            music_volume=audio.background_music_volume,
        ))
    if audio.voiceover_uri:
        ops.append(MixVoiceover(
            voiceover_path=audio.voiceover_uri,
            # A chained mix starts from the already-scaled first mix
            original_volume=100 if ops else audio.original_volume,
            voiceover_volume=audio.voiceover_volume,
        ))
    if not ops and audio.original_volume != 100:
        ops.append(Volume(percent=audio.original_volume))
    return ops


def build_export_plan(params: EditParameters, output_path: str) -> EditPlan:
    """Translate edit parameters into ordered edit operations.

    Transforms come before the resolution fit, and speed comes before any
    stage that assumes normal timestamps.
    """
    ops: list[EditOperation] = []
    transform = params.transform

    if params.trim_range:
        ops.append(Trim(
            start_ms=params.trim_range.start_ms,
            end_ms=params.trim_range.end_ms,
        ))

    if transform.crop_rect:
        rect = transform.crop_rect
        ops.append(Crop(width=rect.width, height=rect.height, x=rect.x, y=rect.y))

    if transform.rotation != 0:
        ops.append(Rotate(degrees=transform.rotation))

    if transform.flip_horizontal or transform.flip_vertical:
        ops.append(Flip(
            horizontal=transform.flip_horizontal,
            vertical=transform.flip_vertical,
        ))

    if params.speed_multiplier != 1:
        ops.append(Speed(multiplier=params.speed_multiplier))

    if params.filter_preset_id:
        ops.append(NamedFilter(preset_id=params.filter_preset_id))

    if not params.adjustments.is_default:
        adj = params.adjustments
        ops.append(Adjust(
            brightness=adj.brightness,
            contrast=adj.contrast,
            saturation=adj.saturation,
        ))

    for overlay in params.text_overlays:
        ops.append(Overlay(
            text=overlay.text,
            x=f"w*{format_number(overlay.x)}",
            y=f"h*{format_number(overlay.y)}",
            font_size=overlay.font_size,
            color=overlay.color,
            font_file=overlay.font_file,
        ))

    ops.extend(_audio_operations(params))

    width, height = params.export_config.resolution.dimensions
    ops.append(Resolution(width=width, height=height))
    ops.append(Codec(
        video_codec=params.export_config.video_codec.value,
        audio_codec=params.export_config.audio_codec.value,
    ))

    return EditPlan(source=params.source_uri, output=output_path, operations=ops)


def calculate_output_duration(params: EditParameters) -> float:
    """Expected output length in ms, used only to normalise progress."""
    duration_ms = params.source_duration_ms
    if params.trim_range:
        duration_ms = params.trim_range.duration_ms
    if params.speed_multiplier != 1:
        duration_ms = duration_ms / params.speed_multiplier
    return max(duration_ms, 0.0)


class ExportPipeline:
    """Builds, checkpoints and runs exports."""

    def __init__(
        self,
        process_manager: Optional[ProcessManager] = None,
        checkpoints: Optional[CheckpointStore] = None,
        storage: Optional[ProjectStorage] = None,
        presets: Optional[PresetRegistry] = None,
        settings: Optional[RenderSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.process_manager = process_manager or ProcessManager(settings=self.settings)
        self.checkpoints = checkpoints or CheckpointStore(self.settings.resolved_checkpoint_dir)
        self.storage = storage or ProjectStorage(self.settings.storage_root)
        self.presets = presets or build_registry(self.settings.presets_file)
        self.active_handle: Optional[ExecutionHandle] = None

    # ── Command construction ──────────────────────────────────────

    def build_export_command(self, params: EditParameters, output_path: str) -> CompiledCommand:
        """Compile all edit parameters into a single ffmpeg command.

        Raises:
            CompileError: For invalid edits such as an unknown filter preset.
        """
        return compile_plan(
            build_export_plan(params, output_path),
            presets=self.presets,
            max_text_overlays=self.settings.max_text_overlays,
            max_audio_mixes=self.settings.max_audio_mixes,
        )

    calculate_output_duration = staticmethod(calculate_output_duration)

    # ── Execution ─────────────────────────────────────────────────

    async def _run(
        self,
        command: CompiledCommand,
        duration_ms: float,
        on_progress: Optional[ProgressCallback],
    ) -> ExecutionResult:
        handle = await self.process_manager.start(
            command, total_duration_ms=duration_ms, on_progress=on_progress
        )
        self.active_handle = handle
        try:
            return await handle.wait()
        finally:
            if self.active_handle is handle:
                self.active_handle = None

    async def _checkpointed_run(
        self,
        project_id: str,
        command: CompiledCommand,
        duration_ms: float,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        # The checkpoint must exist before ffmpeg starts
        self.checkpoints.save(project_id, Checkpoint(
            project_id=project_id,
            stage=ExportStatus.PROCESSING,
            progress=0,
            command=command.to_string(),
            output_path=command.output_path,
        ))

        logger.info("Exporting project %s to %s", project_id, command.output_path)
        try:
            await self._run(command, duration_ms, on_progress)
        except EngineError as e:
            logger.error(
                "Export for project %s ended with %s (return code %s); checkpoint kept",
                project_id, e.code.value, e.return_code,
            )
            raise

        self.checkpoints.clear(project_id)

    async def execute_export(
        self,
        params: EditParameters,
        project_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExportResult:
        """Run the full export for a project.

        Args:
            params: All editing parameters.
            project_id: Project the export belongs to.
            on_progress: Optional progress callback.

        Returns:
            The output path, size, expected duration and resolution.

        Raises:
            CompileError: Before any checkpoint is written.
            ExecutionFailed / ExecutionCancelled: With the checkpoint left in place.
        """
        output_path = self.storage.create_output_file(project_id, "mp4")
        command = self.build_export_command(params, output_path)
        duration_ms = calculate_output_duration(params)

        await self._checkpointed_run(project_id, command, duration_ms, on_progress)

        file_size = self.storage.get_file_size(output_path)
        logger.info("Export for project %s complete (%d bytes)", project_id, file_size)
        return ExportResult(
            output_path=output_path,
            file_size_bytes=file_size,
            duration_ms=duration_ms,
            resolution=params.export_config.resolution,
        )

    async def cancel_export(self) -> int:
        """Cancel the running export; its checkpoint is kept."""
        return await self.process_manager.cancel(self.active_handle)

    # ── Recovery ──────────────────────────────────────────────────

    def find_interrupted_export(self, project_id: str) -> Optional[Checkpoint]:
        """Checkpoint left behind by an export that never succeeded, if any."""
        return self.checkpoints.load(project_id)

    def list_interrupted_exports(self) -> list[Checkpoint]:
        """All readable checkpoints, e.g. for a startup scan."""
        found = []
        for project_id in self.checkpoints.list_project_ids():
            checkpoint = self.checkpoints.load(project_id)
            if checkpoint is not None:
                found.append(checkpoint)
        return found

    async def retry_export(
        self,
        params: EditParameters,
        project_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExportResult:
        """Re-run the checkpointed command for a project.

        Raises:
            LookupError: If the project has no checkpoint.
        """
        checkpoint = self.checkpoints.load(project_id)
        if checkpoint is None:
            raise LookupError(f"No interrupted export for project {project_id}")

        command = CompiledCommand.from_string(checkpoint.command)
        duration_ms = calculate_output_duration(params)
        logger.info("Retrying export for project %s", project_id)

        await self._checkpointed_run(project_id, command, duration_ms, on_progress)

        file_size = self.storage.get_file_size(command.output_path)
        return ExportResult(
            output_path=command.output_path,
            file_size_bytes=file_size,
            duration_ms=duration_ms,
            resolution=params.export_config.resolution,
        )
