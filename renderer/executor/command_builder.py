"""FFMPEG command builder that compiles edit operations into one invocation."""

import logging
import shlex
from dataclasses import dataclass, field
from typing import Optional, Union

from ..errors import CompileError
from ..sanitize import (
    ALLOWED_FONT_EXTENSIONS,
    escape_drawtext,
    to_ffmpeg_color,
    validate_path,
)

logger = logging.getLogger("clipkit")

# atempo only accepts a per-instance factor in this range
ATEMPO_MIN = 0.5
ATEMPO_MAX = 2.0

DEFAULT_MAX_TEXT_OVERLAYS = 32
DEFAULT_MAX_AUDIO_MIXES = 4

Position = Union[int, float, str]


def format_number(value: float) -> str:
    """Render a number the way ffmpeg expects it (``1``, ``0.8``, ``1.25``)."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.10g}"


def ms_to_seconds(ms: float) -> str:
    """Milliseconds to a seconds string with 3 decimal places."""
    return f"{ms / 1000:.3f}"


def build_atempo_chain(multiplier: float) -> list[float]:
    """Split a speed multiplier into atempo factors within [0.5, 2.0].

    >>> build_atempo_chain(8)
    [2.0, 2.0, 2.0]
    >>> build_atempo_chain(0.25)
    [0.5, 0.5]
    """
    if multiplier <= 0:
        raise CompileError(f"Speed multiplier must be positive, got {multiplier}")

    factors: list[float] = []
    remaining = float(multiplier)
    if remaining > ATEMPO_MAX:
        while remaining > ATEMPO_MAX:
            factors.append(ATEMPO_MAX)
            remaining /= ATEMPO_MAX
    elif remaining < ATEMPO_MIN:
        while remaining < ATEMPO_MIN:
            factors.append(ATEMPO_MIN)
            remaining /= ATEMPO_MIN
    factors.append(remaining)
    return factors


# UI adjustment values are integers in [-100, 100]; eq defaults are (0, 1, 1).

def brightness_to_ffmpeg(value: int) -> float:
    """-100..100 -> eq brightness -1.0..1.0."""
    return value / 100


def contrast_to_ffmpeg(value: int) -> float:
    """-100..100 -> eq contrast 0.0..2.0."""
    return 1 + value / 100


def saturation_to_ffmpeg(value: int) -> float:
    """-100..0 -> 0.0..1.0 and 0..100 -> 1.0..3.0."""
    if value >= 0:
        return 1 + (value / 100) * 2
    return 1 + value / 100


@dataclass
class FilterChain:
    """An ordered chain of filter stages joined with commas."""
    stages: list[str] = field(default_factory=list)

    def add(self, stage: str) -> "FilterChain":
        """Add a stage to the chain."""
        self.stages.append(stage)
        return self

    def to_string(self) -> str:
        """Convert the chain to an ffmpeg filter string."""
        return ",".join(self.stages)

    def __len__(self) -> int:
        return len(self.stages)

    def __bool__(self) -> bool:
        return bool(self.stages)


@dataclass(frozen=True)
class AudioMix:
    """One registered two-source audio mix."""
    input_index: int
    base_volume: float
    input_volume: float
    kind: str = "music"


@dataclass(frozen=True)
class CompiledCommand:
    """An ordered ffmpeg argument list, without the leading binary."""
    tokens: tuple[str, ...]
    output_path: str
    uses_filter_graph: bool = False

    def to_args(self, binary: str = "ffmpeg") -> list[str]:
        """Convert to a list of arguments for subprocess."""
        return [binary, *self.tokens]

    def to_string(self) -> str:
        """Convert to a shell-quoted string (no leading binary)."""
        return shlex.join(self.tokens)

    @classmethod
    def from_string(cls, command: str) -> "CompiledCommand":
        """Parse a string produced by :meth:`to_string`."""
        tokens = tuple(shlex.split(command))
        if not tokens:
            raise CompileError("Empty command string")
        return cls(
            tokens=tokens,
            output_path=tokens[-1],
            uses_filter_graph="-filter_complex" in tokens,
        )

    def __str__(self) -> str:
        return self.to_string()


class CommandBuilder:
    """Fluent builder that accumulates edits and compiles one ffmpeg command.

    Usage::

        command = (
            CommandBuilder()
            .input("/path/in.mp4")
            .trim(1000, 5000)
            .crop(720, 1280, 0, 0)
            .speed(2)
            .set_resolution(1080, 1920)
            .set_codec("libx264", "aac")
            .output("/path/out.mp4")
            .build()
        )
    """

    def __init__(
        self,
        max_text_overlays: int = DEFAULT_MAX_TEXT_OVERLAYS,
        max_audio_mixes: int = DEFAULT_MAX_AUDIO_MIXES,
    ):
        self.max_text_overlays = max_text_overlays
        self.max_audio_mixes = max_audio_mixes
        self.reset()

    def reset(self) -> "CommandBuilder":
        """Reset the builder to initial state."""
        self._source: Optional[str] = None
        self._output: Optional[str] = None
        self._pre_input_args: list[str] = []
        self._post_input_args: list[str] = []
        self._codec_args: list[str] = []
        self._extra_inputs: list[str] = []
        self._video_filters = FilterChain()
        self._audio_filters = FilterChain()
        self._audio_mixes: list[AudioMix] = []
        self._overlay_count = 0
        return self

    # ── Inspection ────────────────────────────────────────────────

    @property
    def video_filters(self) -> list[str]:
        return list(self._video_filters.stages)

    @property
    def audio_filters(self) -> list[str]:
        return list(self._audio_filters.stages)

    @property
    def extra_inputs(self) -> list[str]:
        return list(self._extra_inputs)

    @property
    def uses_filter_graph(self) -> bool:
        """True once any multi-input audio mix has been registered."""
        return bool(self._audio_mixes)

    # ── Input / output ────────────────────────────────────────────

    def input(self, path: str) -> "CommandBuilder":
        """Set the primary source."""
        self._source = str(path)
        return self

    set_source = input

    def output(self, path: str) -> "CommandBuilder":
        """Set the output file path."""
        self._output = str(path)
        return self

    set_output = output

    # ── Trim ──────────────────────────────────────────────────────

    def trim(self, start_ms: float, end_ms: float) -> "CommandBuilder":
        """Trim to [start_ms, end_ms] using input-level (fast) seeking.

        The seek is placed before ``-i`` so ffmpeg skips ahead without
        decoding; the cut may land slightly off the exact frame.
        """
        if start_ms < 0 or end_ms <= start_ms:
            raise CompileError(
                f"Invalid trim range: start={start_ms}ms end={end_ms}ms"
            )
        self._pre_input_args.extend([
            "-ss", ms_to_seconds(start_ms),
            "-to", ms_to_seconds(end_ms),
        ])
        return self

    # ── Transform ─────────────────────────────────────────────────

    def crop(self, width: int, height: int, x: int = 0, y: int = 0) -> "CommandBuilder":
        """Add crop filter."""
        if width <= 0 or height <= 0:
            raise CompileError(f"Invalid crop size: {width}x{height}")
        self._video_filters.add(f"crop={width}:{height}:{x}:{y}")
        return self

    def rotate(self, degrees: int) -> "CommandBuilder":
        """Rotate clockwise by 0, 90, 180 or 270 degrees.

        transpose=1 is 90° clockwise, transpose=2 is 90° counter-clockwise;
        there is no single 180° transpose, so two are chained.
        """
        if degrees == 0:
            return self
        if degrees == 90:
            self._video_filters.add("transpose=1")
        elif degrees == 180:
            self._video_filters.add("transpose=1").add("transpose=1")
        elif degrees == 270:
            self._video_filters.add("transpose=2")
        else:
            raise CompileError(f"Unsupported rotation: {degrees}")
        return self

    def flip(self, horizontal: bool, vertical: bool) -> "CommandBuilder":
        """Flip horizontally and/or vertically."""
        if horizontal:
            self._video_filters.add("hflip")
        if vertical:
            self._video_filters.add("vflip")
        return self

    # ── Speed ─────────────────────────────────────────────────────

    def speed(self, multiplier: float) -> "CommandBuilder":
        """Change playback speed.

        Video timestamps are divided by the multiplier; audio gets a chain
        of atempo stages whose product equals the multiplier.
        """
        if multiplier <= 0:
            raise CompileError(f"Speed multiplier must be positive, got {multiplier}")
        if multiplier == 1:
            return self

        self._video_filters.add(f"setpts=PTS/{format_number(multiplier)}")
        for factor in build_atempo_chain(multiplier):
            self._audio_filters.add(f"atempo={format_number(factor)}")
        return self

    # ── Filters and adjustments ───────────────────────────────────

    def filter(self, expression: str) -> "CommandBuilder":
        """Append a raw video filter expression (e.g. a named preset)."""
        if expression:
            self._video_filters.add(expression)
        return self

    def adjustments(
        self,
        brightness: int = 0,
        contrast: int = 0,
        saturation: int = 0,
    ) -> "CommandBuilder":
        """Add an eq stage from UI values in [-100, 100].

        Nothing is added when the converted values equal the eq defaults.
        """
        for name, value in (
            ("brightness", brightness),
            ("contrast", contrast),
            ("saturation", saturation),
        ):
            if not -100 <= value <= 100:
                raise CompileError(f"{name} must be in [-100, 100], got {value}")

        b = brightness_to_ffmpeg(brightness)
        c = contrast_to_ffmpeg(contrast)
        s = saturation_to_ffmpeg(saturation)
        if (b, c, s) == (0, 1, 1):
            return self

        self._video_filters.add(
            f"eq=brightness={format_number(b)}"
            f":contrast={format_number(c)}"
            f":saturation={format_number(s)}"
        )
        return self

    # ── Text ──────────────────────────────────────────────────────

    def overlay_text(
        self,
        text: str,
        x: Position,
        y: Position,
        font_size: int,
        color: str,
        font_file: Optional[str] = None,
    ) -> "CommandBuilder":
        """Draw text at (x, y); x/y may be pixels or drawtext expressions."""
        if self._overlay_count >= self.max_text_overlays:
            raise CompileError(
                f"Too many text overlays (limit {self.max_text_overlays})"
            )

        drawtext = (
            f"drawtext=text='{escape_drawtext(text)}'"
            f":x={x}:y={y}"
            f":fontsize={font_size}"
            f":fontcolor={to_ffmpeg_color(color)}"
        )
        if font_file:
            try:
                validate_path(font_file, ALLOWED_FONT_EXTENSIONS)
            except ValueError as exc:
                raise CompileError(str(exc)) from exc
            drawtext += f":fontfile='{font_file}'"

        self._video_filters.add(drawtext)
        self._overlay_count += 1
        return self

    # ── Audio ─────────────────────────────────────────────────────

    def _register_mix(
        self,
        path: str,
        base_volume_pct: float,
        input_volume_pct: float,
        kind: str,
    ) -> "CommandBuilder":
        if len(self._audio_mixes) >= self.max_audio_mixes:
            raise CompileError(
                f"Too many mixed audio inputs (limit {self.max_audio_mixes})"
            )
        self._extra_inputs.append(str(path))
        self._audio_mixes.append(AudioMix(
            # Input 0 is the source, extras follow in registration order
            input_index=len(self._extra_inputs),
            base_volume=base_volume_pct / 100,
            input_volume=input_volume_pct / 100,
            kind=kind,
        ))
        return self

    def mix_audio(
        self,
        music_path: str,
        original_volume: float,
        music_volume: float,
    ) -> "CommandBuilder":
        """Mix background music under the original audio (volumes 0-100)."""
        return self._register_mix(music_path, original_volume, music_volume, "music")

    def mix_voiceover(
        self,
        voiceover_path: str,
        original_volume: float,
        voiceover_volume: float,
    ) -> "CommandBuilder":
        """Mix a voiceover track with the original audio (volumes 0-100)."""
        return self._register_mix(
            voiceover_path, original_volume, voiceover_volume, "voiceover"
        )

    def mute_audio(self) -> "CommandBuilder":
        """Remove audio from output; audio stages and mixes are then dropped."""
        self._post_input_args.append("-an")
        return self

    def volume(self, volume_percent: float) -> "CommandBuilder":
        """Scale the original audio volume (0-100)."""
        if volume_percent < 0:
            raise CompileError(f"Volume must be >= 0, got {volume_percent}")
        self._audio_filters.add(f"volume={format_number(volume_percent / 100)}")
        return self

    # ── Output options ────────────────────────────────────────────

    def set_resolution(self, width: int, height: int) -> "CommandBuilder":
        """Fit inside width x height, then pad to exactly that size, centered."""
        if width <= 0 or height <= 0:
            raise CompileError(f"Invalid resolution: {width}x{height}")
        self._video_filters.add(
            f"scale={width}:{height}:force_original_aspect_ratio=decrease"
        ).add(
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
        )
        return self

    def set_codec(self, video_codec: str, audio_codec: str) -> "CommandBuilder":
        """Set video and audio codecs."""
        self._codec_args.extend(["-c:v", str(video_codec), "-c:a", str(audio_codec)])
        return self

    # ── Build ─────────────────────────────────────────────────────

    def _build_filter_graph(self) -> str:
        """Combine the video chain and audio mix sub-graphs for -filter_complex.

        Mixes are chained: each mix takes the previous mix's output as its
        base stream, so input indices and labels always line up.
        """
        parts: list[str] = []

        if self._video_filters:
            parts.append(f"[0:v]{self._video_filters.to_string()}[vout]")

        base = "0:a"
        if self._audio_filters:
            parts.append(f"[0:a]{self._audio_filters.to_string()}[apre]")
            base = "apre"

        last = len(self._audio_mixes) - 1
        for n, mix in enumerate(self._audio_mixes):
            out = "aout" if n == last else f"amix{n}"
            parts.append(
                f"[{base}]volume={format_number(mix.base_volume)}[a{n}base];"
                f"[{mix.input_index}:a]volume={format_number(mix.input_volume)}[a{n}in];"
                f"[a{n}base][a{n}in]amix=inputs=2:duration=shortest"
                f":dropout_transition=2[{out}]"
            )
            base = out

        return ";".join(parts)

    def build(self) -> CompiledCommand:
        """Assemble the final argument order.

        -y, seek args, -i source, -i extras, filters, post-input flags,
        codec args, output path.
        """
        if not self._source:
            raise CompileError("No input source specified")
        if not self._output:
            raise CompileError("No output path specified")

        args: list[str] = ["-y"]
        args.extend(self._pre_input_args)
        # With -an there is no audio stream to filter or mix
        muted = "-an" in self._post_input_args

        args.extend(["-i", self._source])
        if not muted:
            for extra in self._extra_inputs:
                args.extend(["-i", extra])

        graph_mode = self.uses_filter_graph and not muted
        if graph_mode:
            args.extend(["-filter_complex", self._build_filter_graph()])
            args.extend(["-map", "[vout]" if self._video_filters else "0:v?"])
            args.extend(["-map", "[aout]"])
        else:
            if self._video_filters:
                args.extend(["-vf", self._video_filters.to_string()])
            if self._audio_filters and not muted:
                args.extend(["-af", self._audio_filters.to_string()])

        args.extend(self._post_input_args)
        args.extend(self._codec_args)
        args.append(self._output)

        command = CompiledCommand(
            tokens=tuple(args),
            output_path=self._output,
            uses_filter_graph=graph_mode,
        )
        logger.debug("Compiled command: %s", command.to_string())
        return command

    def build_args(self, binary: str = "ffmpeg") -> list[str]:
        """Build and return command as argument list."""
        return self.build().to_args(binary)

    def build_string(self) -> str:
        """Build and return command as shell string."""
        return self.build().to_string()
