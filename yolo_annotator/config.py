"""Runtime configuration read from the environment."""

import os
from pathlib import Path

DEFAULT_UPLOAD_RATE_LIMIT = "1000/minute"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_EXPORT_CLEANUP_DELAY_SECONDS = 5.0
DEFAULT_LOG_LEVEL = "INFO"

# Accepted for uploads and dataset import scanning alike
IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})


def _get_positive_float(env_var: str, default: float) -> float:
    """Read a positive float from environment with safe fallback."""
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    return value


def get_data_dir() -> Path:
    """Get the data directory from environment or default."""
    env_path = os.environ.get("YOLO_ANNOTATOR_DATA_DIR")
    if env_path:
        return Path(env_path)
    return Path.cwd() / "data"


def get_projects_dir() -> Path:
    """Directory holding one sub-directory per project."""
    return get_data_dir() / "projects"


def get_thumbnails_dir() -> Path:
    """Directory holding cached thumbnails."""
    return get_data_dir() / "thumbnails"


def get_upload_rate_limit() -> str:
    """Rate limit applied to upload endpoints, in slowapi notation."""
    return os.environ.get("YOLO_ANNOTATOR_UPLOAD_RATE_LIMIT", DEFAULT_UPLOAD_RATE_LIMIT)


def get_max_upload_bytes() -> int:
    """Per-file size ceiling for image uploads."""
    return int(
        _get_positive_float(
            "YOLO_ANNOTATOR_MAX_UPLOAD_BYTES", float(DEFAULT_MAX_UPLOAD_BYTES)
        )
    )


def get_export_cleanup_delay() -> float:
    """Seconds to keep an export directory around after the response is sent."""
    return _get_positive_float(
        "YOLO_ANNOTATOR_EXPORT_CLEANUP_DELAY_SECONDS",
        DEFAULT_EXPORT_CLEANUP_DELAY_SECONDS,
    )


def get_log_level() -> str:
    """Log level name for application loggers."""
    return os.environ.get("YOLO_ANNOTATOR_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
