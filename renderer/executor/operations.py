"""Tagged edit operations and the fold that compiles them into a command.

An :class:`EditPlan` is a serialisable, ordered list of operations. Compiling
a plan applies each operation to a fresh :class:`CommandBuilder` in order,
so ordering can be inspected and tested without reading filter strings.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..presets import PresetRegistry
from .command_builder import (
    DEFAULT_MAX_AUDIO_MIXES,
    DEFAULT_MAX_TEXT_OVERLAYS,
    CommandBuilder,
    CompiledCommand,
)


class _Operation(BaseModel):
    model_config = ConfigDict(frozen=True)


class Trim(_Operation):
    kind: Literal["trim"] = "trim"
    start_ms: float
    end_ms: float


class Crop(_Operation):
    kind: Literal["crop"] = "crop"
    width: int
    height: int
    x: int = 0
    y: int = 0


class Rotate(_Operation):
    kind: Literal["rotate"] = "rotate"
    degrees: Literal[0, 90, 180, 270]


class Flip(_Operation):
    kind: Literal["flip"] = "flip"
    horizontal: bool = False
    vertical: bool = False


class Speed(_Operation):
    kind: Literal["speed"] = "speed"
    multiplier: float


class NamedFilter(_Operation):
    kind: Literal["named_filter"] = "named_filter"
    preset_id: str


class RawFilter(_Operation):
    kind: Literal["raw_filter"] = "raw_filter"
    expression: str


class Adjust(_Operation):
    kind: Literal["adjust"] = "adjust"
    brightness: int = 0
    contrast: int = 0
    saturation: int = 0


class Overlay(_Operation):
    kind: Literal["overlay"] = "overlay"
    text: str
    x: Union[int, float, str]
    y: Union[int, float, str]
    font_size: int
    color: str
    font_file: Optional[str] = None


class MixAudio(_Operation):
    kind: Literal["mix_audio"] = "mix_audio"
    music_path: str
    original_volume: float
    music_volume: float


class MixVoiceover(_Operation):
    kind: Literal["mix_voiceover"] = "mix_voiceover"
    voiceover_path: str
    original_volume: float
    voiceover_volume: float


class Mute(_Operation):
    kind: Literal["mute"] = "mute"


class Volume(_Operation):
    kind: Literal["volume"] = "volume"
    percent: float


class Resolution(_Operation):
    kind: Literal["resolution"] = "resolution"
    width: int
    height: int


class Codec(_Operation):
    kind: Literal["codec"] = "codec"
    video_codec: str
    audio_codec: str


EditOperation = Annotated[
    Union[
        Trim, Crop, Rotate, Flip, Speed, NamedFilter, RawFilter, Adjust,
        Overlay, MixAudio, MixVoiceover, Mute, Volume, Resolution, Codec,
    ],
    Field(discriminator="kind"),
]


class EditPlan(BaseModel):
    """Source, output, and the ordered operations between them."""
    source: str
    output: str
    operations: list[EditOperation] = Field(default_factory=list)

    @property
    def kinds(self) -> list[str]:
        """Operation kinds in order."""
        return [op.kind for op in self.operations]


def apply_operation(
    builder: CommandBuilder,
    op: EditOperation,
    presets: Optional[PresetRegistry] = None,
) -> CommandBuilder:
    """Apply a single operation to the builder."""
    if isinstance(op, Trim):
        return builder.trim(op.start_ms, op.end_ms)
    if isinstance(op, Crop):
        return builder.crop(op.width, op.height, op.x, op.y)
    if isinstance(op, Rotate):
        return builder.rotate(op.degrees)
    if isinstance(op, Flip):
        return builder.flip(op.horizontal, op.vertical)
    if isinstance(op, Speed):
        return builder.speed(op.multiplier)
    if isinstance(op, NamedFilter):
        registry = presets if presets is not None else PresetRegistry()
        return builder.filter(registry.require(op.preset_id).ffmpeg_filter)
    if isinstance(op, RawFilter):
        return builder.filter(op.expression)
    if isinstance(op, Adjust):
        return builder.adjustments(op.brightness, op.contrast, op.saturation)
    if isinstance(op, Overlay):
        return builder.overlay_text(
            op.text, op.x, op.y, op.font_size, op.color, op.font_file
        )
    if isinstance(op, MixAudio):
        return builder.mix_audio(op.music_path, op.original_volume, op.music_volume)
    if isinstance(op, MixVoiceover):
        return builder.mix_voiceover(
            op.voiceover_path, op.original_volume, op.voiceover_volume
        )
    if isinstance(op, Mute):
        return builder.mute_audio()
    if isinstance(op, Volume):
        return builder.volume(op.percent)
    if isinstance(op, Resolution):
        return builder.set_resolution(op.width, op.height)
    if isinstance(op, Codec):
        return builder.set_codec(op.video_codec, op.audio_codec)
    raise TypeError(f"Unknown edit operation: {op!r}")


def compile_plan(
    plan: EditPlan,
    presets: Optional[PresetRegistry] = None,
    max_text_overlays: int = DEFAULT_MAX_TEXT_OVERLAYS,
    max_audio_mixes: int = DEFAULT_MAX_AUDIO_MIXES,
) -> CompiledCommand:
    """Fold the plan's operations over a fresh builder and build it."""
    builder = CommandBuilder(
        max_text_overlays=max_text_overlays,
        max_audio_mixes=max_audio_mixes,
    ).input(plan.source)
    for op in plan.operations:
        apply_operation(builder, op, presets)
    return builder.output(plan.output).build()
