"""Configuration management for CleanCopy.

This module provides centralized configuration with environment variable
overrides, validation, and logging setup for all pipeline components.
"""
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Set
import logging

class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

class ClassifierProvider(str, Enum):
    HTTP = "http"
    NONE = "none"

@dataclass
class ClassifierConfig:
    """Content classifier configuration."""
    provider: ClassifierProvider = ClassifierProvider.HTTP
    url: str = "http://localhost:7001/classify"

    # Processing limits
    max_concurrent_requests: int = 2
    request_timeout: int = 60
    max_retries: int = 3

    # Verdict rules
    flag_threshold: float = 0.7
    unsafe_labels: Set[str] = field(default_factory=lambda: {"Hentai", "Porn", "Sexy"})

    # Video handling
    thumbnail_count: int = 3
    thumbnail_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / ".cleancopy-thumbs")
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

@dataclass
class ScanConfig:
    """Directory walk settings."""
    skip_hidden: bool = True
    follow_symlinks: bool = False
    max_depth: int = 256
    queue_size: int = 256

@dataclass
class CopyConfig:
    """Backup folder layout."""
    backup_name_format: str = "{volume}_backup_%Y-%m-%d_%H:%M"
    folder_names: Dict[str, str] = field(default_factory=lambda: {
        "Audio": "Audio",
        "Video": "Video",
        "Image": "Images",
        "Document": "Documents",
    })

@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    file_path: Optional[Path] = None
    max_file_size_mb: int = 50
    backup_count: int = 5
    enable_json_logging: bool = False

@dataclass
class NotificationConfig:
    """Progress notification cadence."""
    debounce_seconds: float = 0.1

@dataclass
class CleanCopyConfig:
    """Main configuration class containing all settings."""
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    copy: CopyConfig = field(default_factory=CopyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    version: str = "1.0.0"
    debug_mode: bool = False

    def __post_init__(self):
        """Load configuration from environment variables."""
        self._load_from_env()
        self._validate_config()

    def _load_from_env(self):
        """Load configuration from environment variables."""
        if provider := os.getenv("CLASSIFIER_PROVIDER"):
            try:
                self.classifier.provider = ClassifierProvider(provider.lower())
            except ValueError:
                pass

        if url := os.getenv("CLASSIFIER_URL"):
            self.classifier.url = url

        if workers := os.getenv("MAX_CONCURRENT_CLASSIFICATIONS"):
            try:
                self.classifier.max_concurrent_requests = int(workers)
            except ValueError:
                pass

        if retries := os.getenv("MAX_RETRIES"):
            try:
                self.classifier.max_retries = int(retries)
            except ValueError:
                pass

        if threshold := os.getenv("FLAG_THRESHOLD"):
            try:
                self.classifier.flag_threshold = float(threshold)
            except ValueError:
                pass

        if thumbs := os.getenv("THUMBNAIL_DIR"):
            self.classifier.thumbnail_dir = Path(thumbs).expanduser()

        if ffmpeg := os.getenv("FFMPEG_PATH"):
            self.classifier.ffmpeg_path = ffmpeg
        if ffprobe := os.getenv("FFPROBE_PATH"):
            self.classifier.ffprobe_path = ffprobe

        if os.getenv("FOLLOW_SYMLINKS", "false").lower() == "true":
            self.scan.follow_symlinks = True

        self.debug_mode = os.getenv("DEBUG", "false").lower() == "true"
        if self.debug_mode:
            self.logging.level = LogLevel.DEBUG

        if log_level := os.getenv("LOG_LEVEL"):
            try:
                self.logging.level = LogLevel(log_level.upper())
            except ValueError:
                pass

        if log_file := os.getenv("LOG_FILE"):
            self.logging.file_path = Path(log_file).expanduser()

    def _validate_config(self):
        """Validate configuration values."""
        if self.classifier.max_concurrent_requests < 1:
            self.classifier.max_concurrent_requests = 1
        elif self.classifier.max_concurrent_requests > 16:
            self.classifier.max_concurrent_requests = 16

        self.classifier.flag_threshold = max(0.0, min(1.0, self.classifier.flag_threshold))

        if self.classifier.thumbnail_count < 1:
            self.classifier.thumbnail_count = 1

        if self.scan.queue_size < 1:
            self.scan.queue_size = 1
        if self.scan.max_depth < 0:
            self.scan.max_depth = 0

        if self.notifications.debounce_seconds < 0:
            self.notifications.debounce_seconds = 0.0

    def setup_logging(self) -> logging.Logger:
        """Setup logging based on configuration."""
        logger = logging.getLogger("cleancopy")
        logger.setLevel(getattr(logging, self.logging.level.value))

        # Clear existing handlers
        logger.handlers.clear()

        console_handler = logging.StreamHandler()
        if self.logging.enable_json_logging:
            formatter = logging.Formatter(
                '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
            )
        else:
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if self.logging.file_path:
            from logging.handlers import RotatingFileHandler
            file_handler = RotatingFileHandler(
                self.logging.file_path,
                maxBytes=self.logging.max_file_size_mb * 1024 * 1024,
                backupCount=self.logging.backup_count
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        return logger

# Global configuration instance
config = CleanCopyConfig()
logger = config.setup_logging()

__all__ = [
    "CleanCopyConfig",
    "ClassifierConfig",
    "ScanConfig",
    "CopyConfig",
    "LoggingConfig",
    "NotificationConfig",
    "ClassifierProvider",
    "LogLevel",
    "config",
    "logger"
]
