"""Release Manager Pipeline - Upload use cases.

Two ways for a file to reach durable storage:

1. Queued: enqueue_upload() stages the incoming stream under STAGING_DIR and
   records a PENDING UploadJob. The upload worker moves it into the object
   store later and attaches the URL.
2. Synchronous: upload_audio_file() / upload_cover_art() validate, store and
   attach the URL within the request. A failed record update deletes the
   just-stored blob (best-effort) and re-raises the original error.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.config import (
    AUDIO_EXTENSIONS,
    COVER_ART_EXTENSIONS,
    MAX_AUDIO_SIZE_BYTES,
    MAX_COVER_ART_SIZE_BYTES,
)
from app.db import create_upload_job
from app.errors import (
    ErrorCode,
    InvalidStateError,
    ResourceNotFoundError,
    UploadValidationError,
)
from app.gateway import PersistenceGateway
from app.models import ReleaseStatus, UploadJob, UploadJobType, new_id
from app.storage import (
    ObjectStore,
    UploadedObject,
    delete_best_effort,
    discard_local_file,
    validate_file_size,
    validate_file_type,
)
from app.utils.atomic_io import atomic_stream_to_file
from app.utils.audio_meta import guess_format_from_extension
from app.utils.paths import staged_upload_path

if TYPE_CHECKING:
    from typing import BinaryIO

logger = logging.getLogger(__name__)


def _check_file_type(filename: str, job_type: UploadJobType) -> None:
    if validate_file_type(filename, job_type):
        return
    if job_type == UploadJobType.AUDIO:
        message = f"Invalid audio file type. Supported: {', '.join(AUDIO_EXTENSIONS)}"
    else:
        message = f"Invalid image file type. Supported: {', '.join(COVER_ART_EXTENSIONS)}"
    raise UploadValidationError(ErrorCode.INVALID_FILE_TYPE, message)


def _check_file_size(size: int, job_type: UploadJobType) -> None:
    if validate_file_size(size, job_type):
        return
    if job_type == UploadJobType.AUDIO:
        message = f"Audio file too large. Maximum size: {MAX_AUDIO_SIZE_BYTES // (1024 * 1024)}MB"
    else:
        message = (
            f"Cover art file too large. Maximum size: {MAX_COVER_ART_SIZE_BYTES // (1024 * 1024)}MB"
        )
    raise UploadValidationError(ErrorCode.FILE_TOO_LARGE, message)


# --- Queued path ---


def enqueue_upload(
    session: Session,
    target_entity_id: str,
    job_type: UploadJobType | str,
    stream: BinaryIO,
    filename: str,
    staging_dir: Path | None = None,
) -> UploadJob:
    """Stage an incoming file and queue it for the upload worker.

    Note:
        This function does NOT commit the transaction. The staged file is
        written before the job row is flushed; if the flush fails the staged
        file is removed again.

    Args:
        session: Active database session.
        target_entity_id: Track id (AUDIO) or Release id (COVER_ART).
        job_type: UploadJobType value.
        stream: File-like object with read() method.
        filename: Original filename; its extension selects the allowed formats.
        staging_dir: Optional override of config.STAGING_DIR.

    Returns:
        The created PENDING UploadJob (flushed but not committed).

    Raises:
        UploadValidationError: If the file type or size is not allowed.
        OSError: If the file could not be staged.
    """
    job_type = UploadJobType(job_type)
    _check_file_type(filename, job_type)

    job_id = new_id()
    ext = guess_format_from_extension(filename) or "bin"
    local_path = staged_upload_path(job_id, ext, staging_dir)

    size = atomic_stream_to_file(stream, local_path)
    try:
        _check_file_size(size, job_type)
        job = create_upload_job(
            session,
            target_entity_id=target_entity_id,
            job_type=job_type,
            local_path=str(local_path),
            job_id=job_id,
        )
    except Exception:
        discard_local_file(local_path)
        raise

    logger.info(
        "Queued upload job: job_id=%s, job_type=%s, target=%s, bytes=%d",
        job.id,
        job_type,
        target_entity_id,
        size,
    )
    return job


# --- Synchronous path ---


def _store_and_attach(
    gateway: PersistenceGateway,
    store: ObjectStore,
    entity_id: str,
    job_type: UploadJobType,
    data: bytes,
    filename: str,
    precondition=None,
) -> UploadedObject:
    uploaded = store.upload(data, filename, job_type)
    try:
        with gateway.transaction() as session:
            if precondition is not None:
                precondition(session)
            gateway.update_entity_url(
                entity_id,
                job_type,
                uploaded.url,
                duration=uploaded.duration,
                session=session,
            )
    except Exception:
        cleanup = delete_best_effort(store, uploaded.url)
        logger.warning(
            "Record update failed after upload, removed orphaned object: url=%s, ok=%s",
            uploaded.url,
            cleanup.ok,
        )
        raise
    return uploaded


def upload_audio_file(
    gateway: PersistenceGateway,
    store: ObjectStore,
    track_id: str,
    data: bytes,
    filename: str,
) -> UploadedObject:
    """Store a track's audio file and attach its URL and duration.

    Raises:
        UploadValidationError: Unsupported format or file over 100MB.
        ResourceNotFoundError: The track does not exist.
        ObjectStoreError: The object store rejected the upload.
    """
    _check_file_type(filename, UploadJobType.AUDIO)
    _check_file_size(len(data), UploadJobType.AUDIO)

    if gateway.get_track(track_id) is None:
        raise ResourceNotFoundError("Track", track_id)

    uploaded = _store_and_attach(gateway, store, track_id, UploadJobType.AUDIO, data, filename)
    logger.info(
        "Audio uploaded: track_id=%s, url=%s, duration=%s", track_id, uploaded.url, uploaded.duration
    )
    return uploaded


def upload_cover_art(
    gateway: PersistenceGateway,
    store: ObjectStore,
    release_id: str,
    data: bytes,
    filename: str,
) -> str:
    """Store a release's cover art and attach its URL.

    Only DRAFT releases accept cover art. The status is checked again inside
    the update transaction, so a release submitted meanwhile is not modified.

    Returns:
        The public URL of the stored image.

    Raises:
        UploadValidationError: Unsupported format or file over 10MB.
        ResourceNotFoundError: The release does not exist.
        InvalidStateError: The release is not a DRAFT.
        ObjectStoreError: The object store rejected the upload.
    """
    _check_file_type(filename, UploadJobType.COVER_ART)
    _check_file_size(len(data), UploadJobType.COVER_ART)

    def _require_draft(session: Session | None = None) -> None:
        release = gateway.get_release(release_id, session=session)
        if release is None:
            raise ResourceNotFoundError("Release", release_id)
        if release.status != ReleaseStatus.DRAFT:
            raise InvalidStateError("Cover art can only be uploaded for draft releases")

    _require_draft()

    uploaded = _store_and_attach(
        gateway,
        store,
        release_id,
        UploadJobType.COVER_ART,
        data,
        filename,
        precondition=_require_draft,
    )
    logger.info("Cover art uploaded: release_id=%s, url=%s", release_id, uploaded.url)
    return uploaded.url
