from pathlib import Path

from cleancopy.config import ClassifierProvider, CleanCopyConfig, LogLevel


def test_defaults():
    cfg = CleanCopyConfig()
    assert cfg.classifier.max_concurrent_requests == 2
    assert cfg.classifier.flag_threshold == 0.7
    assert cfg.classifier.unsafe_labels == {"Hentai", "Porn", "Sexy"}
    assert cfg.classifier.thumbnail_count == 3
    assert cfg.copy.folder_names["Image"] == "Images"


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("CLASSIFIER_PROVIDER", "none")
    monkeypatch.setenv("MAX_CONCURRENT_CLASSIFICATIONS", "4")
    monkeypatch.setenv("FLAG_THRESHOLD", "0.9")
    monkeypatch.setenv("MAX_RETRIES", "6")
    monkeypatch.setenv("THUMBNAIL_DIR", str(tmp_path))
    monkeypatch.setenv("FOLLOW_SYMLINKS", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    cfg = CleanCopyConfig()

    assert cfg.classifier.provider is ClassifierProvider.NONE
    assert cfg.classifier.max_concurrent_requests == 4
    assert cfg.classifier.flag_threshold == 0.9
    assert cfg.classifier.max_retries == 6
    assert cfg.classifier.thumbnail_dir == Path(tmp_path)
    assert cfg.scan.follow_symlinks
    assert cfg.logging.level is LogLevel.DEBUG


def test_invalid_values_are_clamped_or_ignored(monkeypatch):
    monkeypatch.setenv("MAX_CONCURRENT_CLASSIFICATIONS", "0")
    monkeypatch.setenv("FLAG_THRESHOLD", "7")
    monkeypatch.setenv("CLASSIFIER_PROVIDER", "psychic")

    cfg = CleanCopyConfig()

    assert cfg.classifier.max_concurrent_requests == 1
    assert cfg.classifier.flag_threshold == 1.0
    assert cfg.classifier.provider is ClassifierProvider.HTTP


def test_debug_flag_lowers_log_level(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("DEBUG", "true")

    cfg = CleanCopyConfig()

    assert cfg.debug_mode
    assert cfg.logging.level is LogLevel.DEBUG


def test_explicit_log_level_wins_over_debug_flag(monkeypatch):
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("LOG_LEVEL", "error")

    assert CleanCopyConfig().logging.level is LogLevel.ERROR
