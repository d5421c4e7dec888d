"""Content safety dispatcher.

Runs the external classifier over every Image and Video entry using a fixed
pool of worker tasks, so no more than ``concurrency`` classifier calls (and
decoded images) are ever alive at once. Every failure is contained to the
file or thumbnail it happened on and treated as not flagged.
"""
from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set
from uuid import uuid4

import aiofiles

from .aggregate import AnalysisAggregate
from .config import config, logger
from .exceptions import CleanCopyError
from .models import ClassificationVerdict, FileEntry, MediaCategory, Prediction, SafetyStatus
from .providers import ClassifierProviderBase, decode_image
from .thumbnails import ThumbnailExtractorBase

VerdictCallback = Callable[[ClassificationVerdict], None]

DEFAULT_UNSAFE_LABELS = frozenset({"Hentai", "Porn", "Sexy"})


def evaluate_predictions(predictions: Iterable[Prediction], unsafe_labels: Iterable[str], threshold: float) -> bool:
    """True when any unsafe label scores strictly above ``threshold``."""
    unsafe = set(unsafe_labels)
    return any(p.label in unsafe and p.probability > threshold for p in predictions)


class SafetyDispatcher:
    """Bounded worker pool producing one verdict per submitted entry."""

    def __init__(
        self,
        classifier: ClassifierProviderBase,
        extractor: Optional[ThumbnailExtractorBase],
        aggregate: AnalysisAggregate,
        *,
        concurrency: int = 2,
        thumbnail_count: int = 3,
        threshold: float = 0.7,
        unsafe_labels: Optional[Iterable[str]] = None,
        work_dir: Optional[Path] = None,
        on_verdict: Optional[VerdictCallback] = None,
        queue_size: int = 0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.classifier = classifier
        self.extractor = extractor
        self.aggregate = aggregate
        self.concurrency = concurrency
        self.thumbnail_count = thumbnail_count
        self.threshold = threshold
        self.unsafe_labels: Set[str] = set(unsafe_labels or DEFAULT_UNSAFE_LABELS)
        self.work_dir = Path(work_dir) if work_dir else config.classifier.thumbnail_dir
        self.on_verdict = on_verdict
        self.queue_size = queue_size

        self.verdicts: Dict[Path, ClassificationVerdict] = {}
        self.submitted = 0
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []

    @property
    def completed(self) -> int:
        return len(self.verdicts)

    def start(self) -> None:
        """Spawn the worker tasks on the running event loop."""
        if self._workers:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._workers = [
            asyncio.create_task(self._worker(), name=f"safety-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.debug(f"Started {self.concurrency} safety workers")

    async def submit(self, entry: FileEntry) -> None:
        """Queue a safety check; waits while the queue is full."""
        if not entry.needs_safety_check:
            raise ValueError(f"{entry.path} is not an image or video")
        if not self._workers:
            self.start()
        self.submitted += 1
        await self._queue.put(entry)

    async def join(self) -> None:
        """Wait until every submitted job has resolved, then stop the workers."""
        if self._queue is not None:
            await self._queue.join()
        await self.stop()

    async def stop(self) -> None:
        """Cancel the workers without waiting for queued jobs."""
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

    async def _worker(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                try:
                    verdict = await self.check(entry)
                except Exception as e:
                    logger.error(f"Safety check crashed for {entry.path}: {e}")
                    verdict = ClassificationVerdict(entry.path, SafetyStatus.ERROR, reason=str(e))
                self._record(verdict)
            finally:
                self._queue.task_done()

    def _record(self, verdict: ClassificationVerdict) -> None:
        self.verdicts[verdict.path] = verdict
        try:
            self.aggregate.record_verdict(verdict.path, verdict.status)
        except CleanCopyError as e:
            logger.error(f"Could not record verdict for {verdict.path}: {e}")
            return
        if self.on_verdict:
            try:
                self.on_verdict(verdict)
            except Exception as e:
                logger.warning(f"Verdict listener failed: {e}")

    async def check(self, entry: FileEntry) -> ClassificationVerdict:
        """Classify one entry; never raises for per-file problems."""
        if entry.category is MediaCategory.VIDEO:
            return await self._check_video(entry.path)
        return await self._check_image(entry.path)

    async def _classify_file(self, path: Path) -> Sequence[Prediction]:
        async with aiofiles.open(path, "rb") as f:
            data = await f.read()
        loop = asyncio.get_running_loop()
        pixels = await loop.run_in_executor(None, decode_image, data)
        del data
        try:
            return await self.classifier.classify(pixels)
        finally:
            del pixels

    async def _check_image(self, path: Path) -> ClassificationVerdict:
        try:
            predictions = await self._classify_file(path)
        except Exception as e:
            logger.warning(f"Image classification failed for {path}, treating as clean: {e}")
            return ClassificationVerdict(path, SafetyStatus.ERROR, reason=str(e))

        flagged = evaluate_predictions(predictions, self.unsafe_labels, self.threshold)
        if flagged:
            logger.info(f"Flagged image {path}")
        status = SafetyStatus.FLAGGED if flagged else SafetyStatus.CLEAN
        return ClassificationVerdict(path, status, labels=tuple(predictions))

    async def _check_video(self, path: Path) -> ClassificationVerdict:
        if self.extractor is None:
            return ClassificationVerdict(path, SafetyStatus.ERROR, reason="no thumbnail extractor")

        job_dir = self.work_dir / uuid4().hex
        thumbnails: List[Path] = []
        flagged = False
        classified = 0
        labels: List[Prediction] = []
        try:
            try:
                thumbnails = list(await self.extractor.extract_thumbnails(path, self.thumbnail_count, job_dir))
            except Exception as e:
                logger.warning(f"Thumbnail extraction failed for {path}, treating as clean: {e}")
                return ClassificationVerdict(path, SafetyStatus.ERROR, reason=str(e))

            for thumb in thumbnails:
                try:
                    if not thumb.exists():
                        logger.warning(f"Thumbnail missing, skipping: {thumb}")
                        continue
                    predictions = await self._classify_file(thumb)
                    classified += 1
                    labels.extend(predictions)
                    if evaluate_predictions(predictions, self.unsafe_labels, self.threshold):
                        flagged = True
                except Exception as e:
                    logger.warning(f"Thumbnail classification failed for {thumb}: {e}")
                finally:
                    self._remove(thumb)
        finally:
            for thumb in thumbnails:
                self._remove(thumb)
            shutil.rmtree(job_dir, ignore_errors=True)

        if flagged:
            logger.info(f"Flagged video {path}")
            return ClassificationVerdict(path, SafetyStatus.FLAGGED, labels=tuple(labels))
        if classified == 0:
            return ClassificationVerdict(path, SafetyStatus.ERROR, reason="no thumbnail could be classified")
        return ClassificationVerdict(path, SafetyStatus.CLEAN, labels=tuple(labels))

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete thumbnail {path}: {e}")


__all__ = ["SafetyDispatcher", "evaluate_predictions", "DEFAULT_UNSAFE_LABELS"]
