"""Release Manager Pipeline - Object store client.

Durable blob storage with public URL issuance and format/size validation.

LocalObjectStore publishes files under a root directory using the atomic
publish rule and hands out URLs under a public base URL. Duration extraction
is audio-only and best-effort.

Cleanup of an uploaded blob after a failed database write goes through
delete_best_effort(), which returns a CleanupResult instead of raising so a
cleanup failure can never replace the original error.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from app.config import (
    AUDIO_EXTENSIONS,
    COVER_ART_EXTENSIONS,
    MAX_AUDIO_SIZE_BYTES,
    MAX_COVER_ART_SIZE_BYTES,
    STORAGE_DIR,
    STORAGE_PUBLIC_BASE_URL,
)
from app.errors import ObjectStoreError
from app.models import UploadJobType
from app.utils.atomic_io import atomic_write_bytes
from app.utils.audio_meta import extract_duration_seconds, guess_format_from_extension
from app.utils.paths import object_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedObject:
    """Result of a successful upload."""

    url: str
    # Whole seconds, audio only; None when it could not be determined
    duration: int | None = None


@dataclass(frozen=True)
class CleanupResult:
    """Outcome of a best-effort cleanup step. Logged, never raised."""

    ok: bool
    target: str
    error: str | None = None


class ObjectStore(ABC):
    """Interface of the object store consumed by the pipeline."""

    @abstractmethod
    def upload(self, data: bytes, filename: str, job_type: UploadJobType | str) -> UploadedObject:
        """Store ``data`` and return its public URL (plus duration for audio).

        Raises:
            ObjectStoreError: If the object could not be stored.
        """

    @abstractmethod
    def delete(self, url: str) -> None:
        """Delete the object behind ``url``.

        Raises:
            ObjectStoreError: If the URL is not served by this store or
                the delete failed.
        """

    def validate_type(self, filename: str, job_type: UploadJobType | str) -> bool:
        return validate_file_type(filename, job_type)

    def validate_size(self, size: int, job_type: UploadJobType | str) -> bool:
        return validate_file_size(size, job_type)


def validate_file_type(filename: str, job_type: UploadJobType | str) -> bool:
    """Check the file extension against the allowed formats for the job type."""
    ext = guess_format_from_extension(filename) or ""
    if UploadJobType(job_type) == UploadJobType.AUDIO:
        return ext in AUDIO_EXTENSIONS
    return ext in COVER_ART_EXTENSIONS


def validate_file_size(size: int, job_type: UploadJobType | str) -> bool:
    """Check the file size against the limit for the job type."""
    if UploadJobType(job_type) == UploadJobType.AUDIO:
        return size <= MAX_AUDIO_SIZE_BYTES
    return size <= MAX_COVER_ART_SIZE_BYTES


class LocalObjectStore(ObjectStore):
    """Filesystem-backed object store.

    Objects live at ``root_dir/<type>/<uuid>.<ext>`` and are served at
    ``public_base_url/<type>/<uuid>.<ext>``.
    """

    def __init__(self, root_dir: str | Path | None = None, public_base_url: str | None = None):
        self.root_dir = Path(root_dir) if root_dir is not None else STORAGE_DIR
        base_url = public_base_url if public_base_url is not None else STORAGE_PUBLIC_BASE_URL
        self.public_base_url = base_url.rstrip("/")

    def upload(self, data: bytes, filename: str, job_type: UploadJobType | str) -> UploadedObject:
        job_type = UploadJobType(job_type)
        ext = guess_format_from_extension(filename) or "bin"
        key = object_key(job_type, uuid.uuid4().hex, ext)

        try:
            atomic_write_bytes(self.root_dir / key, data)
        except OSError as e:
            logger.error("Failed to store object for %s: %s", filename, e)
            raise ObjectStoreError(f"Upload failed: {e}") from e

        url = f"{self.public_base_url}/{key}"

        duration = None
        if job_type == UploadJobType.AUDIO:
            duration = extract_duration_seconds(data, filename)
            logger.info("Stored audio file %s at %s (duration=%s)", filename, url, duration)
        else:
            logger.info("Stored image file %s at %s", filename, url)

        return UploadedObject(url=url, duration=duration)

    def delete(self, url: str) -> None:
        path = self.path_for_url(url)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise ObjectStoreError(f"Delete failed for {url}: {e}") from e
        logger.info("Deleted stored object %s", url)

    def path_for_url(self, url: str) -> Path:
        """Map a public URL back to the stored file path.

        Raises:
            ObjectStoreError: If the URL is not served by this store.
        """
        prefix = f"{self.public_base_url}/"
        if not url.startswith(prefix):
            raise ObjectStoreError(f"URL is not served by this store: {url}")
        key = url[len(prefix) :]
        path = (self.root_dir / key).resolve()
        if not path.is_relative_to(self.root_dir.resolve()):
            raise ObjectStoreError(f"URL escapes the store root: {url}")
        return path


def delete_best_effort(store: ObjectStore, url: str) -> CleanupResult:
    """Delete an orphaned object without ever raising.

    The result is for logging only; callers must not turn it into an error.
    """
    try:
        store.delete(url)
    except Exception as e:
        logger.warning("Best-effort delete of %s failed: %s", url, e)
        return CleanupResult(ok=False, target=url, error=str(e))
    return CleanupResult(ok=True, target=url)


def discard_local_file(path: str | Path) -> CleanupResult:
    """Remove a staged local file without ever raising."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove staged file %s: %s", path, e)
        return CleanupResult(ok=False, target=str(path), error=str(e))
    return CleanupResult(ok=True, target=str(path))
