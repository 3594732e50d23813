"""Media processing utilities built around moviepy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from moviepy import VideoFileClip

from ..errors import ConversionFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClipProfile:
    """Encoding profile the publishing platform previews reliably."""

    max_width: int = 1280
    max_height: int = 720
    fps: int = 30
    keyframe_interval: int = 60
    video_codec: str = "libx264"
    video_profile: str = "high"
    preset: str = "veryfast"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    audio_channels: int = 2
    audio_sample_rate: int = 44100

    def ffmpeg_params(self) -> list[str]:
        gop = str(self.keyframe_interval)
        return [
            "-profile:v", self.video_profile,
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            "-g", gop,
            "-keyint_min", gop,
            "-sc_threshold", "0",
            "-ac", str(self.audio_channels),
        ]


PUBLISH_PROFILE = ClipProfile()


def _even(value: float) -> int:
    return max(2, int(value) // 2 * 2)


def bounded_size(width: int, height: int, profile: ClipProfile = PUBLISH_PROFILE) -> tuple[int, int]:
    """Fit ``width`` x ``height`` inside the profile box, never upscaling."""
    scale = min(1.0, profile.max_width / width, profile.max_height / height)
    return _even(width * scale), _even(height * scale)


def render_publish_clip(
    source: Path,
    destination: Path,
    *,
    duration: float,
    profile: ClipProfile = PUBLISH_PROFILE,
) -> Path:
    """Cut the first ``duration`` seconds of ``source`` and encode them for posting."""
    logger.debug("Transcoding %s to %s (%ss)", source, destination, duration)
    temp_audio = destination.with_suffix(".temp-audio.m4a")
    try:
        with VideoFileClip(str(source)) as clip:
            end = min(float(duration), float(clip.duration or duration))
            trimmed = clip.subclipped(0, end)
            target = bounded_size(*trimmed.size, profile=profile)
            if tuple(trimmed.size) != target:
                trimmed = trimmed.resized(new_size=target)
            trimmed.write_videofile(
                str(destination),
                fps=profile.fps,
                codec=profile.video_codec,
                preset=profile.preset,
                audio_codec=profile.audio_codec,
                audio_bitrate=profile.audio_bitrate,
                audio_fps=profile.audio_sample_rate,
                temp_audiofile=str(temp_audio),
                remove_temp=True,
                ffmpeg_params=profile.ffmpeg_params(),
                threads=2,
                logger=None,
            )
    except (OSError, ValueError) as exc:
        destination.unlink(missing_ok=True)
        temp_audio.unlink(missing_ok=True)
        raise ConversionFailed(f"Transcoding {source.name} failed: {exc}") from exc

    if not destination.exists():
        raise ConversionFailed(f"Transcoding {source.name} produced no output")
    return destination
