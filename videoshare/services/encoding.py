"""ffmpeg parameter derivation and process execution for transcodes."""

from __future__ import annotations

import asyncio
import math
import shlex
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol
from uuid import UUID

import ffmpeg
import structlog

from ..domain.errors import EncodeFailed
from ..domain.jobs import TargetFormat, TargetResolution

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[float], Awaitable[None]]

RESOLUTION_DIMENSIONS: dict[TargetResolution, tuple[int, int]] = {
    TargetResolution.P480: (854, 480),
    TargetResolution.P720: (1280, 720),
    TargetResolution.P1080: (1920, 1080),
    TargetResolution.P1440: (2560, 1440),
    TargetResolution.UHD_4K: (3840, 2160),
}

HIGH_QUALITY_RESOLUTIONS = frozenset({TargetResolution.P1440, TargetResolution.UHD_4K})


@dataclass(frozen=True)
class FormatProfile:
    extension: str
    container: str
    video_codec: str
    audio_codec: str
    audio_bitrate: str
    default_options: Mapping[str, object]
    high_quality_options: Mapping[str, object]


FORMAT_PROFILES: dict[TargetFormat, FormatProfile] = {
    TargetFormat.MP4: FormatProfile(
        extension=".mp4",
        container="mp4",
        video_codec="libx264",
        audio_codec="aac",
        audio_bitrate="128k",
        default_options={"preset": "veryfast", "crf": 23, "movflags": "+faststart"},
        high_quality_options={"preset": "slow", "crf": 20, "movflags": "+faststart"},
    ),
    TargetFormat.WEBM: FormatProfile(
        extension=".webm",
        container="webm",
        video_codec="libvpx-vp9",
        audio_codec="libopus",
        audio_bitrate="128k",
        # constant quality mode needs b:v 0
        default_options={"deadline": "good", "cpu-used": 4, "crf": 32, "b:v": 0},
        high_quality_options={"deadline": "good", "cpu-used": 2, "crf": 30, "b:v": 0},
    ),
    TargetFormat.AVI: FormatProfile(
        extension=".avi",
        container="avi",
        video_codec="libx264",
        audio_codec="libmp3lame",
        audio_bitrate="192k",
        default_options={"preset": "veryfast", "crf": 23},
        high_quality_options={"preset": "slow", "crf": 20},
    ),
}


@dataclass(frozen=True)
class EncodeParameters:
    target_format: TargetFormat
    target_resolution: Optional[TargetResolution]
    container: str
    video_codec: str
    audio_codec: str
    audio_bitrate: str
    dimensions: Optional[tuple[int, int]]
    options: Mapping[str, object]

    @property
    def high_quality(self) -> bool:
        return self.target_resolution in HIGH_QUALITY_RESOLUTIONS

    def output_kwargs(self) -> dict[str, object]:
        kwargs: dict[str, object] = {
            "format": self.container,
            "vcodec": self.video_codec,
            "acodec": self.audio_codec,
            "audio_bitrate": self.audio_bitrate,
            **self.options,
        }
        if self.dimensions:
            width, height = self.dimensions
            kwargs["s"] = f"{width}x{height}"
        return kwargs


def build_encode_parameters(
    target_format: TargetFormat,
    target_resolution: Optional[TargetResolution],
) -> EncodeParameters:
    profile = FORMAT_PROFILES[target_format]
    high_quality = target_resolution in HIGH_QUALITY_RESOLUTIONS
    return EncodeParameters(
        target_format=target_format,
        target_resolution=target_resolution,
        container=profile.container,
        video_codec=profile.video_codec,
        audio_codec=profile.audio_codec,
        audio_bitrate=profile.audio_bitrate,
        dimensions=RESOLUTION_DIMENSIONS.get(target_resolution) if target_resolution else None,
        options=dict(profile.high_quality_options if high_quality else profile.default_options),
    )


def build_output_path(
    video_dir: Path,
    source_id: UUID,
    target_format: TargetFormat,
    target_resolution: Optional[TargetResolution],
) -> Path:
    """Deterministic output location for one (source, format, resolution) rendition."""

    extension = FORMAT_PROFILES[target_format].extension
    variant = target_resolution.value if target_resolution else target_format.value
    return Path(video_dir) / f"{source_id}_{variant}{extension}"


def build_encode_args(
    input_path: Path,
    output_path: Path,
    params: EncodeParameters,
    ffmpeg_bin: str = "ffmpeg",
) -> list[str]:
    stream = (
        ffmpeg.input(str(input_path))
        .output(str(output_path), **params.output_kwargs())
        .global_args("-progress", "pipe:1", "-nostats")
        .overwrite_output()
    )
    return stream.compile(cmd=ffmpeg_bin)


def build_thumbnail_args(
    input_path: Path,
    output_path: Path,
    position_seconds: float,
    size: str,
    ffmpeg_bin: str = "ffmpeg",
) -> list[str]:
    stream = (
        ffmpeg.input(str(input_path), ss=f"{max(0.0, position_seconds):.3f}")
        .output(str(output_path), vframes=1, s=size)
        .overwrite_output()
    )
    return stream.compile(cmd=ffmpeg_bin)


def parse_progress_seconds(line: str) -> float | None:
    """Extract the encoded timestamp from one ``-progress`` key=value line.

    ffmpeg reports microseconds under both ``out_time_us`` and the
    historically misnamed ``out_time_ms``.
    """

    key, sep, value = line.strip().partition("=")
    if not sep or key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        micros = int(value)
    except ValueError:
        return None
    if micros < 0:
        return None
    return micros / 1_000_000


def percent_from_fraction(fraction: float) -> int:
    """Round a completion fraction to an integer percentage in [0, 100]."""

    if math.isnan(fraction):
        return 0
    return int(round(max(0.0, min(1.0, fraction)) * 100))


class Encoder(Protocol):
    async def encode(
        self,
        input_path: Path,
        output_path: Path,
        params: EncodeParameters,
        on_progress: ProgressCallback,
    ) -> None: ...

    async def extract_frame(
        self,
        input_path: Path,
        output_path: Path,
        position_seconds: float,
        size: str,
    ) -> None: ...

    async def probe_duration(self, path: Path) -> float: ...


class FfmpegEncoder:
    """Runs ffmpeg as a child process of the event loop."""

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        stderr_tail_lines: int = 20,
    ) -> None:
        self._ffmpeg_bin = ffmpeg_bin
        self._ffprobe_bin = ffprobe_bin
        self._stderr_tail_lines = stderr_tail_lines

    async def encode(
        self,
        input_path: Path,
        output_path: Path,
        params: EncodeParameters,
        on_progress: ProgressCallback,
    ) -> None:
        duration = await self.probe_duration(input_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        args = build_encode_args(input_path, output_path, params, self._ffmpeg_bin)

        async def handle_line(line: str) -> None:
            seconds = parse_progress_seconds(line)
            if seconds is not None and duration > 0:
                await on_progress(min(1.0, seconds / duration))

        await self._run(args, handle_line)

    async def extract_frame(
        self,
        input_path: Path,
        output_path: Path,
        position_seconds: float,
        size: str,
    ) -> None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        args = build_thumbnail_args(
            input_path, output_path, position_seconds, size, self._ffmpeg_bin
        )
        await self._run(args, None)

    async def probe_duration(self, path: Path) -> float:
        """Return the container duration in seconds, or 0.0 when unknown."""

        try:
            info = await asyncio.to_thread(ffmpeg.probe, str(path), cmd=self._ffprobe_bin)
        except ffmpeg.Error as exc:
            logger.warning(
                "ffmpeg.probe_failed",
                path=str(path),
                error=exc.stderr.decode("utf-8", "ignore") if exc.stderr else str(exc),
            )
            return 0.0
        except FileNotFoundError as exc:
            logger.warning("ffmpeg.probe_failed", path=str(path), error=str(exc))
            return 0.0
        try:
            return max(0.0, float(info.get("format", {}).get("duration") or 0.0))
        except (TypeError, ValueError):
            return 0.0

    async def _run(
        self,
        args: list[str],
        on_line: Callable[[str], Awaitable[None]] | None,
    ) -> None:
        logger.info("ffmpeg.exec", cmd=" ".join(shlex.quote(arg) for arg in args))
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise EncodeFailed(f"ffmpeg executable not found: {args[0]}") from exc

        stderr_tail: deque[str] = deque(maxlen=self._stderr_tail_lines)

        async def drain_stderr() -> None:
            assert proc.stderr is not None
            async for raw in proc.stderr:
                stderr_tail.append(raw.decode("utf-8", "ignore").rstrip())

        stderr_task = asyncio.create_task(drain_stderr())
        try:
            assert proc.stdout is not None
            async for raw in proc.stdout:
                if on_line is not None:
                    await on_line(raw.decode("utf-8", "ignore"))
            await stderr_task
            returncode = await proc.wait()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            stderr_task.cancel()
            raise

        if returncode != 0:
            detail = "\n".join(line for line in stderr_tail if line)
            raise EncodeFailed(
                f"ffmpeg exited with code {returncode}: {detail or 'no diagnostic output'}"
            )
