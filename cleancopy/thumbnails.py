"""Still-image extraction from video files for content checks."""
from __future__ import annotations

import asyncio
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence
from uuid import uuid4

from .config import ClassifierConfig, config, logger
from .exceptions import ThumbnailError


class ThumbnailExtractorBase(ABC):
    """Produces a few still images for a video.

    The caller owns the returned files and must delete them.
    """

    @abstractmethod
    async def extract_thumbnails(self, video_path: Path, count: int, work_dir: Path) -> List[Path]:
        """Write up to ``count`` stills for ``video_path`` under ``work_dir``."""


class FFmpegThumbnailExtractor(ThumbnailExtractorBase):
    """Grabs evenly spaced frames with ffmpeg, using ffprobe for the duration."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe", timeout: float = 60.0, width: int = 320):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self.width = width

    @classmethod
    def from_config(cls, classifier_config: Optional[ClassifierConfig] = None) -> FFmpegThumbnailExtractor:
        settings = classifier_config or config.classifier
        return cls(settings.ffmpeg_path, settings.ffprobe_path, timeout=float(settings.request_timeout))

    async def extract_thumbnails(self, video_path: Path, count: int, work_dir: Path) -> List[Path]:
        ffmpeg = shutil.which(self.ffmpeg_path)
        if ffmpeg is None:
            raise ThumbnailError(f"ffmpeg executable not found: {self.ffmpeg_path}")

        work_dir.mkdir(parents=True, exist_ok=True)
        duration = await self._probe_duration(video_path)
        timestamps = self._timestamps(duration, count)
        stem = uuid4().hex

        thumbnails: List[Path] = []
        for index, ts in enumerate(timestamps):
            output = work_dir / f"{stem}_{index}.jpg"
            returncode, stderr = await self._run([
                ffmpeg, "-hide_banner", "-loglevel", "error", "-y",
                "-ss", f"{ts:.3f}", "-i", str(video_path),
                "-frames:v", "1", "-vf", f"scale={self.width}:-2",
                str(output),
            ])
            if returncode != 0:
                logger.warning(f"ffmpeg failed for {video_path} at {ts:.1f}s: {stderr.strip()[:200]}")
                output.unlink(missing_ok=True)
                continue
            thumbnails.append(output)

        if not thumbnails:
            raise ThumbnailError(f"No thumbnails extracted from {video_path}")
        return thumbnails

    @staticmethod
    def _timestamps(duration: Optional[float], count: int) -> List[float]:
        if not duration or duration <= 0:
            return [float(i) for i in range(count)]
        return [duration * (i + 1) / (count + 1) for i in range(count)]

    async def _probe_duration(self, video_path: Path) -> Optional[float]:
        ffprobe = shutil.which(self.ffprobe_path)
        if ffprobe is None:
            logger.debug(f"ffprobe not found, sampling the first seconds of {video_path}")
            return None
        returncode, output = await self._run([
            ffprobe, "-v", "error", "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1", str(video_path),
        ], capture="stdout")
        if returncode != 0:
            return None
        try:
            return float(output.strip())
        except ValueError:
            return None

    async def _run(self, cmd: Sequence[str], capture: str = "stderr") -> tuple[int, str]:
        proc = await asyncio.create_subprocess_exec(
            *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise ThumbnailError(f"Timed out after {self.timeout}s: {' '.join(cmd[:3])}")
        except BaseException:
            await self._kill(proc)
            raise
        data = stdout if capture == "stdout" else stderr
        return proc.returncode, data.decode("utf-8", errors="replace")

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await asyncio.shield(proc.wait())


__all__ = ["ThumbnailExtractorBase", "FFmpegThumbnailExtractor"]
