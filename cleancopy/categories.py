"""Extension to media category mapping."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from .models import MediaCategory

AUDIO_EXTENSIONS = {'.mp3', '.wav', '.aac', '.flac', '.ogg', '.m4a'}
VIDEO_EXTENSIONS = {'.mp4', '.avi', '.mov', '.mkv', '.wmv', '.flv', '.webm'}
IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.bmp', '.tiff', '.webp'}
DOC_EXTENSIONS = {'.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx', '.txt', '.md', '.rtf', '.odt'}

_TABLES = (
    (MediaCategory.AUDIO, AUDIO_EXTENSIONS),
    (MediaCategory.VIDEO, VIDEO_EXTENSIONS),
    (MediaCategory.IMAGE, IMAGE_EXTENSIONS),
    (MediaCategory.DOCUMENT, DOC_EXTENSIONS),
)

# Destination folder per category; Other files are never copied
CATEGORY_FOLDERS: Dict[MediaCategory, str] = {
    MediaCategory.AUDIO: "Audio",
    MediaCategory.VIDEO: "Video",
    MediaCategory.IMAGE: "Images",
    MediaCategory.DOCUMENT: "Documents",
}


def normalize_extension(extension: str) -> str:
    """Lower-case an extension and make sure it carries a leading dot."""
    ext = (extension or "").strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


def categorize(extension: str) -> MediaCategory:
    ext = normalize_extension(extension)
    for category, table in _TABLES:
        if ext in table:
            return category
    return MediaCategory.OTHER


def categorize_path(path: str | Path) -> MediaCategory:
    return categorize(Path(path).suffix)


def needs_safety_check(category: MediaCategory) -> bool:
    return category in (MediaCategory.IMAGE, MediaCategory.VIDEO)


def folder_for(category: MediaCategory, folder_names: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Return the backup subfolder name for a category, or None for Other.

    ``folder_names`` overrides the default names, keyed by category value.
    """
    if category not in CATEGORY_FOLDERS:
        return None
    if folder_names and category.value in folder_names:
        return folder_names[category.value]
    return CATEGORY_FOLDERS[category]


__all__ = [
    "AUDIO_EXTENSIONS",
    "VIDEO_EXTENSIONS",
    "IMAGE_EXTENSIONS",
    "DOC_EXTENSIONS",
    "CATEGORY_FOLDERS",
    "normalize_extension",
    "categorize",
    "categorize_path",
    "needs_safety_check",
    "folder_for",
]
