"""Filter engine: derive a copy set from analysis results and a policy."""
from __future__ import annotations

from pathlib import Path
from typing import AbstractSet, Iterable, List, Optional, Union

from .categories import folder_for
from .models import AnalysisSnapshot, CopyPlan, FileEntry, FilterPolicy


def filter_files(
    files: Iterable[FileEntry],
    flagged_images: AbstractSet[Path],
    flagged_videos: AbstractSet[Path],
    policy: Union[FilterPolicy, str] = FilterPolicy.EXCLUDE_FLAGGED,
) -> List[FileEntry]:
    """Select files according to ``policy``, preserving input order.

    ``exclude_flagged`` and ``only_flagged`` partition the input exactly;
    ``no_filter`` returns every file. Nothing is mutated.
    """
    policy = FilterPolicy(policy)
    files = list(files)
    if policy is FilterPolicy.NO_FILTER:
        return files

    def is_flagged(entry: FileEntry) -> bool:
        return entry.path in flagged_images or entry.path in flagged_videos

    if policy is FilterPolicy.ONLY_FLAGGED:
        return [f for f in files if is_flagged(f)]
    return [f for f in files if not is_flagged(f)]


def select_from_snapshot(snapshot: AnalysisSnapshot, policy: Union[FilterPolicy, str]) -> List[FileEntry]:
    return filter_files(snapshot.files, snapshot.flagged_images, snapshot.flagged_videos, policy)


def build_copy_plan(
    snapshot: AnalysisSnapshot,
    destination_root: str | Path,
    policy: Union[FilterPolicy, str] = FilterPolicy.EXCLUDE_FLAGGED,
    source_root: Optional[str | Path] = None,
) -> CopyPlan:
    """Filter the snapshot and drop entries that have no category folder."""
    policy = FilterPolicy(policy)
    selected = [f for f in select_from_snapshot(snapshot, policy) if folder_for(f.category) is not None]
    if source_root is None:
        source_root = _common_root(selected)
    return CopyPlan(
        files=selected,
        destination_root=Path(destination_root),
        source_root=Path(source_root),
        policy=policy,
    )


def _common_root(files: List[FileEntry]) -> Path:
    if not files:
        return Path(".")
    parents = [f.path.parent for f in files]
    root = parents[0]
    for parent in parents[1:]:
        while root != root.parent and root not in (parent, *parent.parents):
            root = root.parent
    return root


__all__ = ["filter_files", "select_from_snapshot", "build_copy_plan"]
