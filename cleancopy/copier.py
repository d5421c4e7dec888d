"""Copy executor: materialize a CopyPlan into a timestamped backup folder."""
from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional
import logging

from .categories import folder_for
from .exceptions import CopySetupError
from .models import CopyOutcome, CopyPlan, CopyReport, CopyStatus, FileEntry, MediaCategory

logger = logging.getLogger(__name__)

DEFAULT_NAME_FORMAT = "{volume}_backup_%Y-%m-%d_%H:%M"

ProgressCallback = Callable[[int, int], None]


def volume_base_name(source_root: str | Path) -> str:
    """Base name of a source volume; drive or ``volume`` for bare roots."""
    path = Path(source_root)
    if path.name:
        return path.name
    drive = path.drive.rstrip(":\\/")
    return drive or "volume"


class CopyExecutor:
    """Sequentially copy plan entries into per-category folders.

    Setup (backup root plus category folders) either fully succeeds or
    raises ``CopySetupError`` before anything is copied. After that, each
    file is attempted exactly once; failures are recorded and the run
    continues.
    """

    def __init__(
        self,
        *,
        name_format: str = DEFAULT_NAME_FORMAT,
        folder_names: Optional[Dict[str, str]] = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.name_format = name_format
        self.folder_names = folder_names
        self.now = now

    def backup_root_name(self, source_root: str | Path, when: Optional[datetime] = None) -> str:
        when = when or self.now()
        pattern = self.name_format.replace("{volume}", volume_base_name(source_root).replace("%", "%%"))
        return when.strftime(pattern)

    def prepare(self, plan: CopyPlan) -> Path:
        """Create the backup root and one folder per category present."""
        name = self.backup_root_name(plan.source_root)
        backup_root = self._unique_directory(plan.destination_root / name)
        try:
            backup_root.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            logger.error(f"Cannot create backup root {backup_root}: {e}")
            raise CopySetupError(f"Cannot create backup root {backup_root}: {e}", backup_root) from e

        plan.category_folders.clear()
        for category in plan.categories:
            folder_name = folder_for(category, self.folder_names)
            if folder_name is None:
                continue
            folder = backup_root / folder_name
            try:
                folder.mkdir(exist_ok=True)
            except OSError as e:
                logger.error(f"Cannot create category folder {folder}: {e}")
                shutil.rmtree(backup_root, ignore_errors=True)
                raise CopySetupError(f"Cannot create category folder {folder}: {e}", folder) from e
            plan.category_folders[category] = folder

        logger.info(f"Prepared backup root {backup_root} with folders {[c.value for c in plan.category_folders]}")
        return backup_root

    def execute(self, plan: CopyPlan, progress_callback: Optional[ProgressCallback] = None) -> CopyReport:
        """Copy every selected file, one at a time, in plan order."""
        backup_root = self.prepare(plan)
        report = CopyReport(backup_root=backup_root, total=plan.total_files)

        for entry in plan.files:
            report.outcomes.append(self._copy_one(entry, plan.category_folders))
            if progress_callback:
                progress_callback(report.attempted, report.total)

        if report.failed:
            logger.warning(f"{report.failed} file(s) failed to copy into {backup_root}")
        logger.info(
            f"Copy finished: {report.copied} copied, {report.failed} failed, {report.skipped} skipped"
        )
        return report

    def _copy_one(self, entry: FileEntry, folders: Dict[MediaCategory, Path]) -> CopyOutcome:
        folder = folders.get(entry.category)
        if folder is None:
            logger.warning(f"No destination folder for {entry.path} ({entry.category.value}), skipping")
            return CopyOutcome(entry=entry, status=CopyStatus.SKIPPED, reason="no category folder")

        destination = self._resolve_filename_conflict(folder / entry.path.name)
        try:
            shutil.copy2(str(entry.path), str(destination))
        except OSError as e:
            logger.warning(f"Error copying {entry.path} to {destination}: {e}")
            try:
                destination.unlink(missing_ok=True)
            except OSError as cleanup_error:
                logger.warning(f"Could not remove partial copy {destination}: {cleanup_error}")
            return CopyOutcome(entry=entry, status=CopyStatus.FAILED, destination=destination, reason=str(e))
        return CopyOutcome(entry=entry, status=CopyStatus.COPIED, destination=destination)

    def _resolve_filename_conflict(self, destination: Path) -> Path:
        """Resolve filename conflicts by adding a number suffix."""
        if not destination.exists():
            return destination

        base = destination.stem
        suffix = destination.suffix
        parent = destination.parent
        counter = 1

        while True:
            new_destination = parent / f"{base} ({counter}){suffix}"
            if not new_destination.exists():
                return new_destination
            counter += 1

    def _unique_directory(self, directory: Path) -> Path:
        if not directory.exists():
            return directory
        counter = 1
        while True:
            candidate = directory.with_name(f"{directory.name} ({counter})")
            if not candidate.exists():
                return candidate
            counter += 1


__all__ = ["CopyExecutor", "volume_base_name", "DEFAULT_NAME_FORMAT"]
