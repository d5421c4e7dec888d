"""Data models for CleanCopy.

This module defines the records that flow through the scan, classify,
filter and copy stages, together with their serialization helpers.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

class MediaCategory(str, Enum):
    """Media categories derived from file extensions."""
    AUDIO = "Audio"
    VIDEO = "Video"
    IMAGE = "Image"
    DOCUMENT = "Document"
    OTHER = "Other"

class SafetyStatus(str, Enum):
    """Content-safety verdict state."""
    PENDING = "pending"
    CLEAN = "clean"
    FLAGGED = "flagged"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not SafetyStatus.PENDING

class FilterPolicy(str, Enum):
    """Rules selecting which files enter the copy set."""
    EXCLUDE_FLAGGED = "exclude_flagged"
    ONLY_FLAGGED = "only_flagged"
    NO_FILTER = "no_filter"

class CopyStatus(str, Enum):
    """Per-file copy result."""
    COPIED = "copied"
    FAILED = "failed"
    SKIPPED = "skipped"

class EventKind(str, Enum):
    """Discrete pipeline state changes."""
    FILE_DISCOVERED = "file_discovered"
    VERDICT_RECORDED = "verdict_recorded"
    SCAN_DONE = "scan_done"
    COPY_PROGRESS = "copy_progress"
    COPY_DONE = "copy_done"

@dataclass(frozen=True)
class FileEntry:
    """A regular file discovered during the walk."""
    path: Path
    size_bytes: int
    extension: str
    category: MediaCategory

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def needs_safety_check(self) -> bool:
        return self.category in (MediaCategory.IMAGE, MediaCategory.VIDEO)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "path": str(self.path),
            "size_bytes": self.size_bytes,
            "extension": self.extension,
            "category": self.category.value,
        }

@dataclass(frozen=True)
class Prediction:
    """One label/probability pair returned by the content classifier."""
    label: str
    probability: float

@dataclass(frozen=True)
class ClassificationVerdict:
    """Safety verdict for an Image or Video entry."""
    path: Path
    status: SafetyStatus
    reason: Optional[str] = None
    labels: Tuple[Prediction, ...] = ()

    @property
    def is_flagged(self) -> bool:
        return self.status is SafetyStatus.FLAGGED

    @property
    def is_clean(self) -> bool:
        # Errors fail open
        return self.status in (SafetyStatus.CLEAN, SafetyStatus.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "status": self.status.value,
            "reason": self.reason,
            "labels": [{"label": p.label, "probability": p.probability} for p in self.labels],
        }

@dataclass(frozen=True)
class AnalysisSnapshot:
    """Read-only view of an analysis aggregate at one point in time."""
    scan_id: int
    total_files: int
    counts: Dict[MediaCategory, int]
    total_size: int
    files: Tuple[FileEntry, ...]
    flagged_images: FrozenSet[Path]
    flagged_videos: FrozenSet[Path]
    pending_verdicts: int
    resolved_verdicts: int
    other_extensions: Dict[str, int]
    done: bool

    @property
    def discovered(self) -> int:
        return len(self.files)

    @property
    def flagged_count(self) -> int:
        return len(self.flagged_images) + len(self.flagged_videos)

    @property
    def scan_progress(self) -> float:
        """Fraction of the counted files that have been discovered."""
        if self.total_files == 0:
            return 1.0 if self.done else 0.0
        return min(1.0, self.discovered / self.total_files)

    @property
    def classification_progress(self) -> float:
        """Fraction of submitted safety checks that have resolved."""
        submitted = self.pending_verdicts + self.resolved_verdicts
        if submitted == 0:
            return 1.0 if self.done else 0.0
        return self.resolved_verdicts / submitted

    def count(self, category: MediaCategory) -> int:
        return self.counts.get(category, 0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "scan_id": self.scan_id,
            "total_files": self.total_files,
            "discovered": self.discovered,
            "counts": {c.value: n for c, n in self.counts.items()},
            "total_size": self.total_size,
            "flagged_images": sorted(str(p) for p in self.flagged_images),
            "flagged_videos": sorted(str(p) for p in self.flagged_videos),
            "pending_verdicts": self.pending_verdicts,
            "resolved_verdicts": self.resolved_verdicts,
            "other_extensions": dict(self.other_extensions),
            "done": self.done,
        }

@dataclass
class CopyPlan:
    """Files selected for copying and where they go."""
    files: List[FileEntry]
    destination_root: Path
    source_root: Path
    policy: FilterPolicy = FilterPolicy.EXCLUDE_FLAGGED

    # Filled by the executor, only for categories present in the plan
    category_folders: Dict[MediaCategory, Path] = field(default_factory=dict)

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self.files)

    @property
    def categories(self) -> List[MediaCategory]:
        """Categories present in the plan, in first-seen order."""
        seen: List[MediaCategory] = []
        for entry in self.files:
            if entry.category not in seen:
                seen.append(entry.category)
        return seen

    def get_summary(self) -> Dict[str, Any]:
        """Get plan summary."""
        per_category: Dict[str, int] = {}
        for entry in self.files:
            per_category[entry.category.value] = per_category.get(entry.category.value, 0) + 1
        return {
            "source_root": str(self.source_root),
            "destination_root": str(self.destination_root),
            "policy": self.policy.value,
            "total_files": self.total_files,
            "total_bytes": self.total_bytes,
            "categories": per_category,
        }

@dataclass(frozen=True)
class CopyOutcome:
    """Result of one copy attempt."""
    entry: FileEntry
    status: CopyStatus
    destination: Optional[Path] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": str(self.entry.path),
            "status": self.status.value,
            "destination": str(self.destination) if self.destination else None,
            "reason": self.reason,
        }

@dataclass
class CopyReport:
    """Accumulated outcomes of a copy run."""
    backup_root: Path
    total: int
    outcomes: List[CopyOutcome] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def copied(self) -> int:
        return sum(1 for o in self.outcomes if o.status is CopyStatus.COPIED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is CopyStatus.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status is CopyStatus.SKIPPED)

    @property
    def progress(self) -> float:
        """Attempted fraction; every outcome counts toward completion."""
        if self.total == 0:
            return 1.0
        return self.attempted / self.total

    @property
    def is_complete(self) -> bool:
        return self.attempted >= self.total

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "backup_root": str(self.backup_root),
            "total": self.total,
            "attempted": self.attempted,
            "copied": self.copied,
            "failed": self.failed,
            "skipped": self.skipped,
            "progress": self.progress,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

@dataclass(frozen=True)
class PipelineEvent:
    """State-change notification delivered to subscribers."""
    kind: EventKind
    snapshot: Optional[AnalysisSnapshot] = None
    progress: Optional[float] = None
    final: bool = False

__all__ = [
    "MediaCategory",
    "SafetyStatus",
    "FilterPolicy",
    "CopyStatus",
    "EventKind",
    "FileEntry",
    "Prediction",
    "ClassificationVerdict",
    "AnalysisSnapshot",
    "CopyPlan",
    "CopyOutcome",
    "CopyReport",
    "PipelineEvent"
]
