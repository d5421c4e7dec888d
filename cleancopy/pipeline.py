"""Scan, classify, filter and copy orchestration.

The directory walk runs on a worker thread and hands entries to the event
loop through a bounded queue. The loop records each entry in the aggregate
and feeds images and videos to the safety dispatcher. Starting a new scan
retires the previous aggregate, so late completions from the old scan are
dropped rather than merged.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import threading
import time
from pathlib import Path
from typing import List, Optional, Union

from .aggregate import AnalysisAggregate
from .config import CleanCopyConfig, config, logger
from .copier import CopyExecutor
from .events import EventBus
from .exceptions import CleanCopyError
from .filters import build_copy_plan, select_from_snapshot
from .models import (
    AnalysisSnapshot,
    CopyPlan,
    CopyReport,
    EventKind,
    FileEntry,
    FilterPolicy,
    PipelineEvent,
)
from .providers import ClassifierProviderBase
from .safety import SafetyDispatcher
from .scanner import DirectoryScanner, ScanStats
from .thumbnails import FFmpegThumbnailExtractor, ThumbnailExtractorBase

_WALK_DONE = object()


class CleanCopyPipeline:
    """Owns the current analysis and exposes the operations a front end may invoke."""

    def __init__(
        self,
        classifier: ClassifierProviderBase,
        extractor: Optional[ThumbnailExtractorBase] = None,
        *,
        settings: Optional[CleanCopyConfig] = None,
        copier: Optional[CopyExecutor] = None,
    ) -> None:
        self.settings = settings or config
        self.classifier = classifier
        self.extractor = extractor or FFmpegThumbnailExtractor.from_config(self.settings.classifier)
        self.copier = copier or CopyExecutor(
            name_format=self.settings.copy.backup_name_format,
            folder_names=self.settings.copy.folder_names,
        )
        self.events = EventBus()
        self.source_root: Optional[Path] = None
        self.scan_stats = ScanStats()

        self._aggregate = AnalysisAggregate(0)
        self._scan_counter = 0
        self._scan_task: Optional[asyncio.Task] = None
        self._cancel_walk: Optional[threading.Event] = None
        self._policy = FilterPolicy.EXCLUDE_FLAGGED
        self._last_emit = 0.0

    # --- Analysis ---

    def snapshot(self) -> AnalysisSnapshot:
        return self._aggregate.snapshot()

    async def start_scan(self, root: Union[str, Path]) -> AnalysisSnapshot:
        """Discard any previous analysis and scan ``root`` to completion."""
        await self.cancel_scan()

        self._scan_counter += 1
        aggregate = AnalysisAggregate(self._scan_counter)
        self._aggregate = aggregate
        self.source_root = Path(root).expanduser().absolute()
        self._cancel_walk = threading.Event()

        task = asyncio.create_task(self._run_scan(aggregate, self.source_root, self._cancel_walk))
        self._scan_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if aggregate.retired and task.cancelled():
                logger.info(f"Scan {aggregate.scan_id} superseded")
                return aggregate.snapshot()
            raise

    async def cancel_scan(self) -> None:
        """Retire the current aggregate and stop its scan, if one is running."""
        self._aggregate.retire()
        if self._cancel_walk is not None:
            self._cancel_walk.set()
        task, self._scan_task = self._scan_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _run_scan(self, aggregate: AnalysisAggregate, root: Path, cancel: threading.Event) -> AnalysisSnapshot:
        scan_settings = self.settings.scan
        classifier_settings = self.settings.classifier
        scanner = DirectoryScanner(
            root,
            skip_hidden=scan_settings.skip_hidden,
            follow_symlinks=scan_settings.follow_symlinks,
            max_depth=scan_settings.max_depth,
            cancel_event=cancel,
        )
        started = time.time()
        loop = asyncio.get_running_loop()

        total = await loop.run_in_executor(None, scanner.count)
        aggregate.set_total(total)
        logger.info(f"Scan {aggregate.scan_id}: {total} files to analyze under {root}")

        dispatcher = SafetyDispatcher(
            self.classifier,
            self.extractor,
            aggregate,
            concurrency=classifier_settings.max_concurrent_requests,
            thumbnail_count=classifier_settings.thumbnail_count,
            threshold=classifier_settings.flag_threshold,
            unsafe_labels=classifier_settings.unsafe_labels,
            work_dir=classifier_settings.thumbnail_dir,
            on_verdict=lambda verdict: self._notify(aggregate, EventKind.VERDICT_RECORDED),
            queue_size=scan_settings.queue_size,
        )
        dispatcher.start()

        queue: asyncio.Queue = asyncio.Queue(maxsize=scan_settings.queue_size)
        producer = loop.run_in_executor(None, self._produce, scanner, queue, loop, cancel)
        try:
            while True:
                entry = await queue.get()
                if entry is _WALK_DONE:
                    break
                self._record(aggregate, entry)
                if entry.needs_safety_check:
                    await dispatcher.submit(entry)
            await producer
            await dispatcher.join()
        except BaseException:
            cancel.set()
            await dispatcher.stop()
            raise

        self.scan_stats = scanner.last_stats
        aggregate.mark_done()
        snapshot = aggregate.snapshot()
        logger.info(
            f"Scan {aggregate.scan_id} finished in {time.time() - started:.2f}s: "
            f"{snapshot.discovered} files, {dispatcher.completed} safety checks, {snapshot.flagged_count} flagged"
        )
        self._notify(aggregate, EventKind.SCAN_DONE, final=True)
        return snapshot

    def _produce(self, scanner: DirectoryScanner, queue: asyncio.Queue, loop: asyncio.AbstractEventLoop, cancel: threading.Event) -> None:
        """Worker thread: walk the tree and hand entries to the event loop."""
        try:
            for entry in scanner.visit():
                if not self._put(queue, entry, loop, cancel):
                    return
        finally:
            if not cancel.is_set():
                self._put(queue, _WALK_DONE, loop, cancel)

    @staticmethod
    def _put(queue: asyncio.Queue, item, loop: asyncio.AbstractEventLoop, cancel: threading.Event) -> bool:
        future = asyncio.run_coroutine_threadsafe(queue.put(item), loop)
        while True:
            try:
                future.result(timeout=0.1)
                return True
            except concurrent.futures.TimeoutError:
                if cancel.is_set():
                    future.cancel()
                    return False

    def _record(self, aggregate: AnalysisAggregate, entry: FileEntry) -> None:
        try:
            aggregate.record_file(entry)
        except CleanCopyError as e:
            logger.warning(f"Skipping {entry.path}: {e}")
            return
        self._notify(aggregate, EventKind.FILE_DISCOVERED)

    def _notify(self, aggregate: AnalysisAggregate, kind: EventKind, final: bool = False) -> None:
        if aggregate.retired or aggregate is not self._aggregate:
            return
        now = time.monotonic()
        if not final and now - self._last_emit < self.settings.notifications.debounce_seconds:
            return
        self._last_emit = now
        self.events.emit(PipelineEvent(kind=kind, snapshot=aggregate.snapshot(), final=final))

    # --- Filtering ---

    @property
    def filter_policy(self) -> FilterPolicy:
        return self._policy

    def set_filter_policy(self, policy: Union[FilterPolicy, str]) -> List[FileEntry]:
        """Change the policy and return the resulting selection."""
        self._policy = FilterPolicy(policy)
        return self.selected_files()

    def selected_files(self) -> List[FileEntry]:
        return select_from_snapshot(self.snapshot(), self._policy)

    def build_plan(self, destination_root: Union[str, Path]) -> CopyPlan:
        snapshot = self.snapshot()
        if not snapshot.done:
            logger.warning("Building a copy plan before the analysis has finished")
        return build_copy_plan(snapshot, destination_root, self._policy, self.source_root)

    # --- Copy ---

    async def start_copy(self, plan: CopyPlan) -> CopyReport:
        """Copy the plan on a worker thread; CopySetupError propagates."""
        loop = asyncio.get_running_loop()

        def on_progress(attempted: int, total: int) -> None:
            event = PipelineEvent(kind=EventKind.COPY_PROGRESS, progress=attempted / total if total else 1.0)
            loop.call_soon_threadsafe(self.events.emit, event)

        report = await loop.run_in_executor(None, self.copier.execute, plan, on_progress)
        self.events.emit(PipelineEvent(kind=EventKind.COPY_DONE, progress=report.progress, final=True))
        return report


__all__ = ["CleanCopyPipeline"]
