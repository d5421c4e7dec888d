"""Two-phase recursive directory scanner.

Phase one (``count``) walks the tree only to establish the number of regular
files, giving progress reporting a stable denominator before classification
starts. Phase two (``visit``) walks again and yields ``FileEntry`` records one
at a time as they are discovered.
"""
from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple
import logging

from .categories import categorize, normalize_extension
from .models import FileEntry

logger = logging.getLogger(__name__)


@dataclass
class ScanStats:
    """Counters collected during one walk."""
    directories_visited: int = 0
    directories_skipped: int = 0
    files_seen: int = 0
    files_skipped: int = 0
    cycles_avoided: int = 0

    def to_dict(self) -> dict:
        return {
            "directories_visited": self.directories_visited,
            "directories_skipped": self.directories_skipped,
            "files_seen": self.files_seen,
            "files_skipped": self.files_skipped,
            "cycles_avoided": self.cycles_avoided,
        }


class DirectoryScanner:
    """Depth-first, lexically ordered walk over every regular file under ``root``.

    Hidden entries (names starting with ``.``) are ignored. Symlinks to files are
    always resolved and yield the target's size. Directories or
    files that cannot be read are logged and skipped; the walk continues
    with their siblings. Symlinked directories are only entered when
    ``follow_symlinks`` is set, and then every directory identity
    ``(st_dev, st_ino)`` is entered at most once so link cycles terminate.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        skip_hidden: bool = True,
        follow_symlinks: bool = False,
        max_depth: int = 256,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.root = Path(root).expanduser().absolute()
        self.skip_hidden = skip_hidden
        self.follow_symlinks = follow_symlinks
        self.max_depth = max_depth
        self.cancel_event = cancel_event
        self.last_stats = ScanStats()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def count(self) -> int:
        """Phase 1: number of regular files reachable from the root."""
        stats = ScanStats()
        total = sum(1 for _ in self._walk(stats))
        self.last_stats = stats
        logger.info(f"Counted {total} files under {self.root}")
        return total

    def visit(self) -> Iterator[FileEntry]:
        """Phase 2: yield a FileEntry per regular file, as soon as it is found."""
        stats = ScanStats()
        self.last_stats = stats
        for path, size in self._walk(stats):
            ext = normalize_extension(path.suffix)
            yield FileEntry(path=path, size_bytes=size, extension=ext, category=categorize(ext))

    def _walk(self, stats: ScanStats) -> Iterator[Tuple[Path, int]]:
        visited: Set[Tuple[int, int]] = set()
        if self.follow_symlinks:
            try:
                st = self.root.stat()
                visited.add((st.st_dev, st.st_ino))
            except OSError as e:
                logger.warning(f"Cannot stat scan root {self.root}: {e}")
                stats.directories_skipped += 1
                return

        stack: List[Tuple[Iterator[os.DirEntry], int]] = [(iter(self._list_dir(self.root, stats)), 0)]
        while stack:
            if self.cancelled:
                logger.info(f"Walk of {self.root} cancelled")
                return
            entries, depth = stack[-1]
            entry = next(entries, None)
            if entry is None:
                stack.pop()
                continue

            if self.skip_hidden and entry.name.startswith('.'):
                continue

            try:
                is_dir = entry.is_dir(follow_symlinks=self.follow_symlinks)
                is_file = not is_dir and entry.is_file(follow_symlinks=True)
            except OSError as e:
                logger.warning(f"Cannot determine type of {entry.path}: {e}")
                stats.files_skipped += 1
                continue

            if is_dir:
                if depth + 1 > self.max_depth:
                    logger.warning(f"Maximum depth {self.max_depth} reached, not descending into {entry.path}")
                    stats.directories_skipped += 1
                    continue
                if self.follow_symlinks:
                    try:
                        st = entry.stat(follow_symlinks=True)
                    except OSError as e:
                        logger.warning(f"Cannot stat directory {entry.path}: {e}")
                        stats.directories_skipped += 1
                        continue
                    identity = (st.st_dev, st.st_ino)
                    if identity in visited:
                        logger.warning(f"Skipping {entry.path}: directory already visited (symlink cycle)")
                        stats.cycles_avoided += 1
                        continue
                    visited.add(identity)
                stack.append((iter(self._list_dir(Path(entry.path), stats)), depth + 1))
            elif is_file:
                try:
                    size = entry.stat(follow_symlinks=True).st_size
                except OSError as e:
                    logger.warning(f"Cannot stat file {entry.path}: {e}")
                    stats.files_skipped += 1
                    continue
                stats.files_seen += 1
                yield Path(entry.path), size
            elif entry.is_symlink():
                if os.path.isdir(entry.path):
                    logger.debug(f"Not following directory symlink {entry.path}")
                    continue
                logger.warning(f"Skipping broken symlink {entry.path}")
                stats.files_skipped += 1

    def _list_dir(self, directory: Path, stats: ScanStats) -> List[os.DirEntry]:
        """Entries of one directory sorted by name; empty when unreadable."""
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Cannot read directory {directory}: {e}")
            stats.directories_skipped += 1
            return []
        stats.directories_visited += 1
        return entries


__all__ = ["DirectoryScanner", "ScanStats"]
