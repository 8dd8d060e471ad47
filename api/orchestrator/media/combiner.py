"""
Media Combiner: stacks two clips into one video with ffmpeg.

horizontal -> both clips scaled to 1080x960 and stacked top/bottom (vstack)
vertical   -> both clips scaled to 540x1920 and stacked left/right (hstack)

audio1 / audio2 keep one input's audio track, audioBoth mixes both (amix).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger
from api.orchestrator.models.dto import AudioOption, LayoutOption

logger = get_logger(__name__)

# Keep only the end of ffmpeg's stderr; the banner and progress lines are noise.
_STDERR_TAIL_CHARS = 2000


@dataclass(frozen=True)
class StackGeometry:
    width: int
    height: int
    stack_filter: str
    labels: tuple[str, str]


_GEOMETRY: dict[LayoutOption, StackGeometry] = {
    LayoutOption.HORIZONTAL: StackGeometry(1080, 960, "vstack", ("top", "bottom")),
    LayoutOption.VERTICAL: StackGeometry(540, 1920, "hstack", ("left", "right")),
}


class ProcessingError(Exception):
    """ffmpeg could not produce the output file."""

    def __init__(self, message: str, *, returncode: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


def build_filter_graph(layout: LayoutOption, audio: AudioOption) -> str:
    geo = _GEOMETRY[layout]
    first, second = geo.labels
    graph = (
        f"[0:v]scale={geo.width}:{geo.height},setsar=1[{first}];"
        f"[1:v]scale={geo.width}:{geo.height},setsar=1[{second}];"
        f"[{first}][{second}]{geo.stack_filter}=inputs=2[v]"
    )
    if audio is AudioOption.MIX_BOTH:
        graph += ";[0:a][1:a]amix=inputs=2[a]"
    return graph


def build_command(
    video1: Path,
    video2: Path,
    output: Path,
    layout: LayoutOption,
    audio: AudioOption,
    *,
    ffmpeg_binary: str = "ffmpeg",
) -> list[str]:
    """Argument list for one encode (no shell involved)."""
    audio_map = {
        AudioOption.FIRST_ONLY: "0:a",
        AudioOption.SECOND_ONLY: "1:a",
        AudioOption.MIX_BOTH: "[a]",
    }[audio]

    return [
        ffmpeg_binary,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i", str(video1),
        "-i", str(video2),
        "-filter_complex", build_filter_graph(layout, audio),
        "-map", "[v]",
        "-map", audio_map,
        "-c:a", "aac",
        str(output),
    ]


class MediaCombiner:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    async def combine(
        self,
        video1: Path,
        video2: Path,
        output: Path,
        layout: LayoutOption,
        audio: AudioOption,
    ) -> Path:
        """
        Encode video1 + video2 into output.

        Raises ProcessingError on a non-zero exit, a missing binary or a
        timeout. A partial output file is removed before raising, so callers
        never publish a half-written video.
        """
        cmd = build_command(
            video1, video2, output, layout, audio,
            ffmpeg_binary=self.settings.ffmpeg_binary,
        )
        logger.info("Running ffmpeg", layout=layout.value, audio=audio.value, output=str(output))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessingError(f"Failed to start ffmpeg: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.settings.ffmpeg_timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            _discard(output)
            raise ProcessingError(
                f"ffmpeg timed out after {self.settings.ffmpeg_timeout:.0f}s",
                returncode=proc.returncode,
            )
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            _discard(output)
            raise

        err_text = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL_CHARS:]

        if proc.returncode != 0:
            _discard(output)
            logger.error("ffmpeg failed", returncode=proc.returncode, stderr=err_text)
            raise ProcessingError(
                f"ffmpeg exited with code {proc.returncode}: {err_text.strip()}",
                returncode=proc.returncode,
                stderr=err_text,
            )

        if not output.is_file():
            raise ProcessingError("ffmpeg reported success but wrote no output", returncode=0, stderr=err_text)

        logger.debug("ffmpeg finished", stdout=stdout.decode("utf-8", errors="replace")[-500:])
        return output


def _discard(path: Path) -> None:
    path.unlink(missing_ok=True)


_combiner: Optional[MediaCombiner] = None


def get_combiner() -> MediaCombiner:
    global _combiner
    if _combiner is None:
        _combiner = MediaCombiner()
    return _combiner
