"""Release Manager Pipeline - Configuration constants.

Plain module-level configuration, no external config libraries.
All paths are relative to the repository root by default; most values can be
overridden through RM_* environment variables.
"""

import os
from pathlib import Path

# Repository root (parent of app/)
REPO_ROOT = Path(__file__).parent.parent.resolve()


def _get_path(env_name: str, default: Path) -> Path:
    """Get a path from the environment or use the default."""
    env_val = os.environ.get(env_name)
    if env_val:
        return Path(env_val)
    return default


def _get_positive_number(env_name: str, default: float) -> float:
    """Get a positive number from the environment or use the default.

    Invalid or non-positive values fall back to the default.

    Args:
        env_name: Environment variable to read.
        default: Value used when the variable is unset or invalid.

    Returns:
        The configured value.
    """
    env_val = os.environ.get(env_name)
    if env_val:
        try:
            value = float(env_val)
            if value > 0:
                return value
        except ValueError:
            pass
    return default


def _get_non_negative_number(env_name: str, default: float) -> float:
    """Like _get_positive_number, but zero is accepted (disables a delay)."""
    env_val = os.environ.get(env_name)
    if env_val:
        try:
            value = float(env_val)
            if value >= 0:
                return value
        except ValueError:
            pass
    return default


# Data directories
DATA_DIR = _get_path("RM_DATA_DIR", REPO_ROOT / "data")

# Local files waiting to be moved into durable storage by the upload worker
STAGING_DIR = DATA_DIR / "staging"

# Root of the filesystem-backed object store
STORAGE_DIR = _get_path("RM_STORAGE_DIR", DATA_DIR / "storage")

# Public URL prefix under which stored objects are served
STORAGE_PUBLIC_BASE_URL = os.environ.get(
    "RM_STORAGE_PUBLIC_BASE_URL", "http://localhost:8000/media"
).rstrip("/")

# Database path
DB_PATH = _get_path("RM_DB_PATH", DATA_DIR / "release_manager.db")

# Logging level for standalone entry points
LOG_LEVEL = os.environ.get("RM_LOG_LEVEL", "INFO").upper()

# --- Upload Job Scheduler ---

# Retry policy: a failed job goes back to PENDING until retry_count reaches
# MAX_RETRIES; the next failure is permanent. Total attempts = 1 + MAX_RETRIES.
MAX_RETRIES = 3
MAX_ATTEMPTS_TOTAL = 1 + MAX_RETRIES

UPLOAD_POLL_INTERVAL_SECONDS = _get_positive_number("RM_UPLOAD_POLL_INTERVAL_SEC", 5.0)

# Jobs fetched per poll tick (oldest first)
UPLOAD_BATCH_SIZE = int(_get_positive_number("RM_UPLOAD_BATCH_SIZE", 10))

# Jobs left in UPLOADING longer than this are presumed orphaned by a crashed worker
STUCK_JOB_TIMEOUT_SECONDS = _get_positive_number("RM_STUCK_JOB_TIMEOUT_SEC", 300.0)

# --- Release Processing Scheduler ---

RELEASE_POLL_INTERVAL_SECONDS = _get_positive_number("RM_RELEASE_POLL_INTERVAL_SEC", 10.0)

# Stand-in for transcoding / metadata extraction time per release
SIMULATED_PROCESSING_SECONDS = _get_non_negative_number("RM_SIMULATED_PROCESSING_SEC", 7.0)

# --- Worker Supervisor ---

# How long stop_all() waits for an in-flight tick before returning
WORKER_STOP_TIMEOUT_SECONDS = 30.0

# --- Object store limits ---

AUDIO_EXTENSIONS = ("mp3", "wav", "flac", "m4a", "aac")
COVER_ART_EXTENSIONS = ("jpg", "jpeg", "png", "webp")

MAX_AUDIO_SIZE_BYTES = 100 * 1024 * 1024  # 100MB
MAX_COVER_ART_SIZE_BYTES = 10 * 1024 * 1024  # 10MB

# Tracks are created before their audio exists; storage requires a positive duration
TRACK_DURATION_PLACEHOLDER_SECONDS = 1


def workers_enabled() -> bool:
    """Whether the API process should start the background workers.

    Read at call time so tests can toggle it. Set RM_WORKERS_ENABLED=0 to run
    the API as a pure observer.
    """
    return os.environ.get("RM_WORKERS_ENABLED", "1") != "0"
