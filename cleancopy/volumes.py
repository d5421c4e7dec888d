"""Mounted volume discovery and free-space checks."""
from __future__ import annotations

import getpass
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DestinationOption:
    """A candidate backup volume and whether the copy set fits on it."""
    volume: Path
    free_bytes: int
    has_space: bool

    def to_dict(self) -> dict:
        return {"volume": str(self.volume), "free_bytes": self.free_bytes, "has_space": self.has_space}


def _children(directory: Path) -> List[Path]:
    try:
        return sorted(p for p in directory.iterdir() if not p.name.startswith('.'))
    except OSError as e:
        logger.warning(f"Cannot list volumes in {directory}: {e}")
        return []


def list_volumes(platform: Optional[str] = None, mount_root: Optional[Path] = None) -> List[Path]:
    """Volumes a user could scan or back up to.

    macOS lists ``/Volumes``; Linux lists ``/media/<user>`` and falls back to
    ``/`` when nothing is mounted there; Windows probes drive letters C to Z.
    """
    platform = platform or sys.platform
    if platform == "darwin":
        return _children(mount_root or Path("/Volumes"))
    if platform.startswith("linux"):
        media = mount_root or Path("/media") / getpass.getuser()
        if media.is_dir():
            return _children(media)
        return [Path("/")]
    if platform == "win32":
        drives = (Path(f"{chr(letter)}:\\") for letter in range(ord("C"), ord("Z") + 1))
        return [d for d in drives if os.path.exists(d)]
    logger.warning(f"Unsupported platform for volume discovery: {platform}")
    return []


def free_space(volume: str | Path) -> int:
    """Free bytes on the filesystem holding ``volume``; 0 when it cannot be read."""
    try:
        return shutil.disk_usage(volume).free
    except OSError as e:
        logger.error(f"Cannot read free space of {volume}: {e}")
        return 0


def eligible_destinations(
    source: str | Path,
    needed_bytes: int,
    volumes: Optional[Iterable[Path]] = None,
) -> List[DestinationOption]:
    """Every volume other than ``source``, marked by whether ``needed_bytes`` fit."""
    source_path = Path(source)
    options = []
    for volume in (list_volumes() if volumes is None else volumes):
        volume = Path(volume)
        if volume == source_path:
            continue
        free = free_space(volume)
        options.append(DestinationOption(volume=volume, free_bytes=free, has_space=free >= needed_bytes))
    return options


__all__ = ["DestinationOption", "list_volumes", "free_space", "eligible_destinations"]
