from pathlib import Path

import pytest

from cleancopy.aggregate import AnalysisAggregate
from cleancopy.exceptions import DuplicateEntryError, UnknownEntryError, VerdictTransitionError
from cleancopy.models import FileEntry, MediaCategory, SafetyStatus


def entry(name: str, category: MediaCategory, size: int = 1, ext: str = "") -> FileEntry:
    return FileEntry(path=Path("/src") / name, size_bytes=size, extension=ext, category=category)


def test_counts_and_size_track_recorded_files():
    agg = AnalysisAggregate(1)
    agg.set_total(4)
    agg.record_file(entry("a.mp3", MediaCategory.AUDIO, 3))
    agg.record_file(entry("b.jpg", MediaCategory.IMAGE, 2))
    agg.record_file(entry("c.bin", MediaCategory.OTHER, 5, ".bin"))
    agg.record_file(entry("d", MediaCategory.OTHER, 1))

    snap = agg.snapshot()
    assert snap.total_files == 4
    assert snap.discovered == 4
    assert snap.count(MediaCategory.AUDIO) == 1
    assert snap.count(MediaCategory.OTHER) == 2
    assert sum(snap.counts.values()) == snap.discovered
    assert snap.total_size == 11
    assert snap.other_extensions == {".bin": 1, "(no ext)": 1}
    assert snap.pending_verdicts == 1


def test_duplicate_path_rejected():
    agg = AnalysisAggregate()
    agg.record_file(entry("a.mp3", MediaCategory.AUDIO))
    with pytest.raises(DuplicateEntryError):
        agg.record_file(entry("a.mp3", MediaCategory.AUDIO))


def test_flagged_verdicts_go_to_matching_set():
    agg = AnalysisAggregate()
    img, vid = entry("p.jpg", MediaCategory.IMAGE), entry("v.mp4", MediaCategory.VIDEO)
    agg.record_file(img)
    agg.record_file(vid)

    assert agg.record_verdict(img.path, SafetyStatus.FLAGGED)
    assert agg.record_verdict(vid.path, SafetyStatus.FLAGGED)

    snap = agg.snapshot()
    assert snap.flagged_images == {img.path}
    assert snap.flagged_videos == {vid.path}
    assert snap.pending_verdicts == 0
    assert snap.classification_progress == 1.0


def test_repeated_terminal_verdict_is_noop():
    agg = AnalysisAggregate()
    img = entry("p.jpg", MediaCategory.IMAGE)
    agg.record_file(img)
    assert agg.record_verdict(img.path, SafetyStatus.CLEAN)
    assert not agg.record_verdict(img.path, SafetyStatus.CLEAN)
    with pytest.raises(VerdictTransitionError):
        agg.record_verdict(img.path, SafetyStatus.FLAGGED)
    assert agg.verdict(img.path) is SafetyStatus.CLEAN


def test_verdict_for_unknown_or_unchecked_path():
    agg = AnalysisAggregate()
    audio = entry("a.mp3", MediaCategory.AUDIO)
    agg.record_file(audio)
    with pytest.raises(UnknownEntryError):
        agg.record_verdict(Path("/src/ghost.jpg"), SafetyStatus.CLEAN)
    with pytest.raises(UnknownEntryError):
        agg.record_verdict(audio.path, SafetyStatus.CLEAN)


def test_error_verdict_is_not_flagged():
    agg = AnalysisAggregate()
    img = entry("p.jpg", MediaCategory.IMAGE)
    agg.record_file(img)
    agg.record_verdict(img.path, SafetyStatus.ERROR)
    assert agg.snapshot().flagged_count == 0


def test_retired_aggregate_drops_mutations():
    agg = AnalysisAggregate(3)
    img = entry("p.jpg", MediaCategory.IMAGE)
    agg.record_file(img)
    agg.retire()

    agg.record_file(entry("late.mp3", MediaCategory.AUDIO))
    assert not agg.record_verdict(img.path, SafetyStatus.FLAGGED)
    agg.mark_done()

    snap = agg.snapshot()
    assert snap.discovered == 1
    assert snap.flagged_count == 0
    assert not snap.done


def test_snapshot_is_detached():
    agg = AnalysisAggregate()
    agg.record_file(entry("a.mp3", MediaCategory.AUDIO))
    snap = agg.snapshot()
    agg.record_file(entry("b.mp3", MediaCategory.AUDIO))
    assert snap.discovered == 1
    assert snap.count(MediaCategory.AUDIO) == 1
