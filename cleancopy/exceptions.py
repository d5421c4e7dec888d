"""Exception hierarchy for CleanCopy."""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class CleanCopyError(Exception):
    """Base class for all CleanCopy errors."""


class DuplicateEntryError(CleanCopyError):
    """A file path was recorded twice in the same aggregate."""


class UnknownEntryError(CleanCopyError):
    """A verdict arrived for a path the aggregate never recorded."""


class VerdictTransitionError(CleanCopyError):
    """A verdict tried to leave a terminal state."""


class ClassifierError(CleanCopyError):
    """The content classifier could not produce predictions."""


class ThumbnailError(CleanCopyError):
    """Still images could not be extracted from a video."""


class CopySetupError(CleanCopyError):
    """The backup root or a category folder could not be created."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


__all__ = [
    "CleanCopyError",
    "DuplicateEntryError",
    "UnknownEntryError",
    "VerdictTransitionError",
    "ClassifierError",
    "ThumbnailError",
    "CopySetupError",
]
