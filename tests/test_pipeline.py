import asyncio

from cleancopy.models import EventKind, FilterPolicy, MediaCategory
from cleancopy.pipeline import CleanCopyPipeline
from tests.builders import FakeClassifier, FakeExtractor, write_file, write_image


def _pipeline(settings, classifier=None, extractor=None) -> CleanCopyPipeline:
    return CleanCopyPipeline(classifier or FakeClassifier(), extractor or FakeExtractor(), settings=settings)


def test_scan_filter_and_copy_end_to_end(media_tree, tmp_path, settings):
    pipeline = _pipeline(settings)
    events = []
    pipeline.events.subscribe(events.append)

    snapshot = asyncio.run(pipeline.start_scan(media_tree))

    image_bytes = sum(p.stat().st_size for p in (media_tree / "photos").iterdir())
    assert snapshot.done
    assert snapshot.count(MediaCategory.AUDIO) == 2
    assert snapshot.count(MediaCategory.IMAGE) == 2
    assert snapshot.count(MediaCategory.VIDEO) == 0
    assert snapshot.total_size == 5 * 1024 * 1024 + image_bytes
    assert snapshot.flagged_images == {media_tree / "photos" / "bad.jpg"}
    assert events[-1].kind is EventKind.SCAN_DONE and events[-1].final

    selected = pipeline.set_filter_policy(FilterPolicy.EXCLUDE_FLAGGED)
    assert sorted(f.name for f in selected) == ["a.mp3", "b.wav", "good.jpg"]

    plan = pipeline.build_plan(tmp_path / "backup")
    report = asyncio.run(pipeline.start_copy(plan))

    assert sorted(p.name for p in report.backup_root.iterdir()) == ["Audio", "Images"]
    assert report.backup_root.name.startswith("CARD_backup_")
    assert report.attempted == 3
    assert report.progress == 1.0
    copy_events = [e for e in events if e.kind in (EventKind.COPY_PROGRESS, EventKind.COPY_DONE)]
    assert [e.progress for e in copy_events][-1] == 1.0
    progress = [e.progress for e in copy_events]
    assert progress == sorted(progress)


def test_only_flagged_selects_flagged_files(media_tree, settings):
    pipeline = _pipeline(settings)
    asyncio.run(pipeline.start_scan(media_tree))
    selected = pipeline.set_filter_policy("only_flagged")
    assert [f.name for f in selected] == ["bad.jpg"]
    assert pipeline.filter_policy is FilterPolicy.ONLY_FLAGGED


def test_classifier_errors_fail_open(media_tree, settings):
    pipeline = _pipeline(settings, FakeClassifier(fail=True))
    snapshot = asyncio.run(pipeline.start_scan(media_tree))

    assert snapshot.done
    assert snapshot.flagged_count == 0
    assert snapshot.pending_verdicts == 0
    assert len(pipeline.selected_files()) == 4


def test_videos_are_checked_through_thumbnails(tmp_path, settings):
    root = tmp_path / "CARD"
    write_file(root / "bad.mp4", 100)
    write_file(root / "fine.mp4", 100)
    extractor = FakeExtractor()
    pipeline = _pipeline(settings, extractor=extractor)

    snapshot = asyncio.run(pipeline.start_scan(root))

    assert snapshot.flagged_videos == {root / "bad.mp4"}
    assert not any(p.exists() for p in extractor.created)


def test_empty_source(tmp_path, settings):
    pipeline = _pipeline(settings)
    snapshot = asyncio.run(pipeline.start_scan(tmp_path))
    assert snapshot.done
    assert snapshot.discovered == 0
    assert snapshot.scan_progress == 1.0
    assert pipeline.selected_files() == []


def test_new_scan_supersedes_running_scan(tmp_path, settings):
    first_root = tmp_path / "first"
    second_root = tmp_path / "second"
    for i in range(20):
        write_image(first_root / f"img{i:02}.jpg")
    write_file(second_root / "song.mp3", 1)
    pipeline = _pipeline(settings, FakeClassifier(delay=0.05))
    events = []
    pipeline.events.subscribe(events.append)

    async def go():
        first = asyncio.create_task(pipeline.start_scan(first_root))
        await asyncio.sleep(0.1)
        second = await pipeline.start_scan(second_root)
        return await first, second

    stale, fresh = asyncio.run(go())

    assert not stale.done
    assert fresh.done
    assert fresh.scan_id == stale.scan_id + 1
    assert [f.name for f in fresh.files] == ["song.mp3"]
    assert pipeline.snapshot().scan_id == fresh.scan_id
    assert all(e.snapshot.scan_id == fresh.scan_id for e in events if e.kind is EventKind.SCAN_DONE)
