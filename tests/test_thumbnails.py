import asyncio
import sys

import pytest

from cleancopy.config import ClassifierConfig
from cleancopy.exceptions import ThumbnailError
from cleancopy.thumbnails import FFmpegThumbnailExtractor


def test_timestamps_are_evenly_spaced():
    assert FFmpegThumbnailExtractor._timestamps(40.0, 3) == [10.0, 20.0, 30.0]


def test_timestamps_without_duration_sample_the_start():
    assert FFmpegThumbnailExtractor._timestamps(None, 3) == [0.0, 1.0, 2.0]


def test_missing_ffmpeg_raises(tmp_path):
    extractor = FFmpegThumbnailExtractor(ffmpeg_path="definitely-not-ffmpeg-xyz")
    with pytest.raises(ThumbnailError):
        asyncio.run(extractor.extract_thumbnails(tmp_path / "v.mp4", 3, tmp_path / "work"))


def test_from_config():
    extractor = FFmpegThumbnailExtractor.from_config(ClassifierConfig(ffmpeg_path="/opt/ffmpeg", request_timeout=5))
    assert extractor.ffmpeg_path == "/opt/ffmpeg"
    assert extractor.timeout == 5.0


def test_cancelled_run_reaps_child(monkeypatch):
    spawned = []
    real_exec = asyncio.create_subprocess_exec

    async def recording_exec(*args, **kwargs):
        proc = await real_exec(*args, **kwargs)
        spawned.append(proc)
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", recording_exec)
    extractor = FFmpegThumbnailExtractor(timeout=30)

    async def go():
        task = asyncio.create_task(extractor._run([sys.executable, "-c", "import time; time.sleep(30)"]))
        await asyncio.sleep(0.5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(go())

    assert len(spawned) == 1
    assert spawned[0].returncode is not None
