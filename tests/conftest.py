from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cleancopy.config import CleanCopyConfig  # noqa: E402
from tests.builders import GREEN, RED, FakeClassifier, FakeExtractor, write_file, write_image  # noqa: E402


@pytest.fixture
def settings(tmp_path: Path) -> CleanCopyConfig:
    cfg = CleanCopyConfig()
    cfg.classifier.thumbnail_dir = tmp_path / "thumbs"
    cfg.classifier.max_concurrent_requests = 2
    cfg.classifier.flag_threshold = 0.7
    cfg.notifications.debounce_seconds = 0.0
    cfg.scan.follow_symlinks = False
    return cfg


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def media_tree(tmp_path: Path) -> Path:
    """Two audio files (3 MB and 2 MB), one flagged image and one clean image."""
    root = tmp_path / "CARD"
    write_file(root / "music" / "a.mp3", 3 * 1024 * 1024)
    write_file(root / "music" / "b.wav", 2 * 1024 * 1024)
    write_image(root / "photos" / "bad.jpg", RED)
    write_image(root / "photos" / "good.jpg", GREEN)
    return root
