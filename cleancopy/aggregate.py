"""Shared, incrementally updated analysis state for one scan."""
from __future__ import annotations

import threading
from collections import Counter
from pathlib import Path
from typing import Dict, List, Set
import logging

from .exceptions import DuplicateEntryError, UnknownEntryError, VerdictTransitionError
from .models import AnalysisSnapshot, FileEntry, MediaCategory, SafetyStatus

logger = logging.getLogger(__name__)


class AnalysisAggregate:
    """Mutex-guarded store of everything learned about one scan.

    Every mutation and every snapshot runs under the same lock, so readers
    never observe a half-applied update. Once ``retire()`` is called the
    aggregate has been superseded by a newer scan and silently drops every
    further mutation.
    """

    def __init__(self, scan_id: int = 0) -> None:
        self.scan_id = scan_id
        self._lock = threading.Lock()
        self._total_files = 0
        self._counts: Dict[MediaCategory, int] = {c: 0 for c in MediaCategory}
        self._total_size = 0
        self._files: List[FileEntry] = []
        self._categories: Dict[Path, MediaCategory] = {}
        self._verdicts: Dict[Path, SafetyStatus] = {}
        self._flagged_images: Set[Path] = set()
        self._flagged_videos: Set[Path] = set()
        self._other_extensions: Counter = Counter()
        self._done = False
        self._retired = False

    @property
    def retired(self) -> bool:
        return self._retired

    @property
    def done(self) -> bool:
        return self._done

    def set_total(self, total: int) -> None:
        with self._lock:
            if self._ignore("set_total"):
                return
            self._total_files = total

    def record_file(self, entry: FileEntry) -> None:
        """Append a newly discovered file and update the running totals."""
        with self._lock:
            if self._ignore("record_file"):
                return
            if entry.path in self._categories:
                raise DuplicateEntryError(f"{entry.path} already recorded")
            self._categories[entry.path] = entry.category
            self._files.append(entry)
            self._counts[entry.category] += 1
            self._total_size += entry.size_bytes
            if entry.category is MediaCategory.OTHER:
                self._other_extensions[entry.extension or "(no ext)"] += 1
            if entry.needs_safety_check:
                self._verdicts[entry.path] = SafetyStatus.PENDING

    def record_verdict(self, path: Path, status: SafetyStatus) -> bool:
        """Resolve the verdict for ``path``.

        Returns True when the state changed, False for a repeat of the same
        terminal status.
        """
        with self._lock:
            if self._ignore("record_verdict"):
                return False
            if path not in self._verdicts:
                raise UnknownEntryError(f"No pending verdict for {path}")
            current = self._verdicts[path]
            if current is status and status.is_terminal:
                return False
            if current.is_terminal or not status.is_terminal:
                raise VerdictTransitionError(f"{path}: {current.value} -> {status.value} is not allowed")
            self._verdicts[path] = status
            if status is SafetyStatus.FLAGGED:
                if self._categories[path] is MediaCategory.VIDEO:
                    self._flagged_videos.add(path)
                else:
                    self._flagged_images.add(path)
            return True

    def verdict(self, path: Path) -> SafetyStatus:
        with self._lock:
            if path not in self._verdicts:
                raise UnknownEntryError(f"No verdict tracked for {path}")
            return self._verdicts[path]

    def mark_done(self) -> None:
        with self._lock:
            if self._ignore("mark_done"):
                return
            self._done = True

    def retire(self) -> None:
        with self._lock:
            self._retired = True

    def snapshot(self) -> AnalysisSnapshot:
        with self._lock:
            pending = sum(1 for s in self._verdicts.values() if s is SafetyStatus.PENDING)
            return AnalysisSnapshot(
                scan_id=self.scan_id,
                total_files=self._total_files,
                counts=dict(self._counts),
                total_size=self._total_size,
                files=tuple(self._files),
                flagged_images=frozenset(self._flagged_images),
                flagged_videos=frozenset(self._flagged_videos),
                pending_verdicts=pending,
                resolved_verdicts=len(self._verdicts) - pending,
                other_extensions=dict(self._other_extensions),
                done=self._done,
            )

    def _ignore(self, operation: str) -> bool:
        if self._retired:
            logger.debug(f"Ignoring {operation} on superseded scan {self.scan_id}")
            return True
        return False


__all__ = ["AnalysisAggregate"]
