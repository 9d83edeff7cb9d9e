"""Release Manager Pipeline - Upload and status API FastAPI application.

Front door of the upload queue: multipart uploads for track audio and cover
art are staged and queued for the upload worker. Read endpoints report
upload job state and release ingestion progress. Stored objects are served
under /media.

The process also hosts the worker supervisor: it starts both schedulers once
the database is ready and stops them on shutdown. Set RM_WORKERS_ENABLED=0 to
run the API without the workers.

Run with:
    uvicorn services.release_api.main:app --reload  # dev server only
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, File, UploadFile
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.config import STAGING_DIR, STORAGE_DIR, workers_enabled
from app.db import init_db
from app.errors import ErrorCode, InvalidStateError, ReleaseManagerError, ResourceNotFoundError
from app.gateway import PersistenceGateway
from app.models import ReleaseStatus, UploadJobType
from app.schemas import ErrorResponse, ReleaseStatusResponse, UploadJobStatusResponse
from app.storage import LocalObjectStore, discard_local_file
from app.uploads import enqueue_upload

logger = logging.getLogger(__name__)

# --- Process state ---

# Module-level session factory (initialized on startup unless overridden)
_session_factory = None

# Worker supervisor, present while the workers run in this process
_supervisor = None


def get_session_factory():
    """Get the session factory.

    Raises:
        RuntimeError: If session factory not initialized (app lifespan not invoked).
    """
    if _session_factory is None:
        raise RuntimeError("Session factory not initialized. App lifespan not invoked?")
    return _session_factory


def get_gateway() -> PersistenceGateway:
    return PersistenceGateway(get_session_factory())


# --- Lifespan ---


def _cleanup_orphan_temp_files_safe() -> None:
    """Remove temp files left by interrupted writes (best-effort, never fails)."""
    from app.utils.atomic_io import cleanup_orphan_temp_files

    try:
        total_cleaned = 0
        for directory in (STAGING_DIR, STORAGE_DIR):
            total_cleaned += cleanup_orphan_temp_files(directory)
        if total_cleaned > 0:
            logger.info("Startup cleanup: removed %d orphan temp files", total_cleaned)
    except Exception:
        logger.warning("Startup cleanup failed (non-fatal)", exc_info=True)


def _start_workers() -> None:
    global _supervisor
    from services.supervisor.run import build_supervisor

    _supervisor = build_supervisor(get_session_factory(), LocalObjectStore())
    _supervisor.start_all()


def _stop_workers() -> None:
    global _supervisor
    if _supervisor is None:
        return
    _supervisor.stop_all()
    _supervisor = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Startup: database, orphan temp file cleanup, then the background workers.
    Shutdown: stop the workers.
    """
    global _session_factory
    if _session_factory is None:
        _, _session_factory = init_db()

    _cleanup_orphan_temp_files_safe()

    if workers_enabled():
        _start_workers()
    else:
        logger.info("Background workers disabled (RM_WORKERS_ENABLED=0)")

    try:
        yield
    finally:
        _stop_workers()


# --- FastAPI App ---


app = FastAPI(
    title="Release Manager Pipeline - API",
    description="Queued uploads, upload job status and release ingestion progress.",
    version="0.1.0",
    lifespan=lifespan,
)

app.mount("/media", StaticFiles(directory=STORAGE_DIR, check_dir=False), name="media")


# --- Error Handling ---


def error_code_to_status(error_code: str) -> int:
    """Map error codes to HTTP status codes.

    - NOT_FOUND -> 404
    - INVALID_STATE -> 409
    - INVALID_FILE_TYPE -> 415
    - FILE_TOO_LARGE -> 413
    - STORAGE_FAILED -> 502
    - anything else -> 500
    """
    return {
        ErrorCode.NOT_FOUND: 404,
        ErrorCode.INVALID_STATE: 409,
        ErrorCode.INVALID_FILE_TYPE: 415,
        ErrorCode.FILE_TOO_LARGE: 413,
        ErrorCode.STORAGE_FAILED: 502,
    }.get(error_code, 500)


def make_error_response(error_code: str, error_message: str) -> JSONResponse:
    """Create a JSON error response."""
    return JSONResponse(
        status_code=error_code_to_status(error_code),
        content=ErrorResponse(
            error_code=error_code,
            error_message=error_message,
        ).model_dump(),
    )


# --- Endpoints ---


@app.get("/health", summary="Health check")
def health_check():
    """Health check, including whether the background workers are running."""
    workers = "disabled"
    if _supervisor is not None:
        running = (
            _supervisor.upload_scheduler.is_running
            and _supervisor.processing_scheduler.is_running
        )
        workers = "running" if running else "stopped"
    return {"status": "ok", "workers": workers}


@app.get(
    "/v1/upload-jobs/{job_id}",
    response_model=UploadJobStatusResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Upload job not found"},
        500: {"model": ErrorResponse, "description": "Lookup failed"},
    },
    summary="Get upload job status",
)
def get_upload_job(job_id: str):
    try:
        job = get_gateway().get_job(job_id)
        if job is None:
            raise ResourceNotFoundError("Upload job", job_id)
        return UploadJobStatusResponse.from_job(job)
    except ReleaseManagerError as e:
        return make_error_response(e.error_code, e.message)
    except Exception:
        # Log full exception server-side, return generic message to client
        logger.exception("Unexpected error reading upload job %s", job_id)
        return make_error_response(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")


@app.get(
    "/v1/releases/{release_id}/status",
    response_model=ReleaseStatusResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Release not found"},
        500: {"model": ErrorResponse, "description": "Lookup failed"},
    },
    summary="Get release status and track ingestion progress",
)
def get_release_status(release_id: str):
    gateway = get_gateway()
    try:
        with gateway.transaction() as session:
            release = gateway.get_release(release_id, session=session)
            if release is None:
                raise ResourceNotFoundError("Release", release_id)
            tracks_total = gateway.count_tracks(release_id, session=session)
            tracks_ready = gateway.count_completed_tracks(release_id, session=session)
            return ReleaseStatusResponse.from_release(release, tracks_total, tracks_ready)
    except ReleaseManagerError as e:
        return make_error_response(e.error_code, e.message)
    except Exception:
        logger.exception("Unexpected error reading release %s", release_id)
        return make_error_response(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")


def _queue_upload(entity_id: str, job_type: UploadJobType, file: UploadFile, require_target):
    """Stage an uploaded file and commit a PENDING job for the upload worker.

    ``require_target(gateway, session)`` raises when the target may not
    receive the file. A staged file whose job row never committed is removed.
    """
    gateway = get_gateway()
    upload_filename = file.filename or "unknown"
    job = None
    try:
        with gateway.transaction() as session:
            require_target(gateway, session)
            job = enqueue_upload(
                session,
                entity_id,
                job_type,
                file.file,
                upload_filename,
                staging_dir=STAGING_DIR,
            )
    except ReleaseManagerError as e:
        return make_error_response(e.error_code, e.message)
    except Exception:
        if job is not None:
            discard_local_file(job.local_path)
        logger.exception("Unexpected error queueing %s upload for %s", job_type, entity_id)
        return make_error_response(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")
    return UploadJobStatusResponse.from_job(job)


_UPLOAD_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Target not found"},
    413: {"model": ErrorResponse, "description": "File too large"},
    415: {"model": ErrorResponse, "description": "Unsupported file type"},
    500: {"model": ErrorResponse, "description": "Upload could not be queued"},
}


@app.post(
    "/v1/tracks/{track_id}/audio",
    status_code=202,
    response_model=UploadJobStatusResponse,
    responses=_UPLOAD_RESPONSES,
    summary="Queue a track's audio file",
    description="Stage an audio file via multipart upload; the upload worker stores it.",
)
def queue_track_audio(
    track_id: str,
    file: Annotated[UploadFile, File(description="Audio file (mp3, wav, flac, m4a, aac)")],
):
    def require_track(gateway, session):
        if gateway.get_track(track_id, session=session) is None:
            raise ResourceNotFoundError("Track", track_id)

    return _queue_upload(track_id, UploadJobType.AUDIO, file, require_track)


@app.post(
    "/v1/releases/{release_id}/cover-art",
    status_code=202,
    response_model=UploadJobStatusResponse,
    responses={
        **_UPLOAD_RESPONSES,
        409: {"model": ErrorResponse, "description": "Release is not a draft"},
    },
    summary="Queue a release's cover art",
    description="Stage a cover image via multipart upload; only draft releases accept one.",
)
def queue_cover_art(
    release_id: str,
    file: Annotated[UploadFile, File(description="Cover image (jpg, jpeg, png, webp)")],
):
    def require_draft(gateway, session):
        release = gateway.get_release(release_id, session=session)
        if release is None:
            raise ResourceNotFoundError("Release", release_id)
        if release.status != ReleaseStatus.DRAFT:
            raise InvalidStateError("Cover art can only be uploaded for draft releases")

    return _queue_upload(release_id, UploadJobType.COVER_ART, file, require_draft)


# --- For testing: allow overriding session factory ---


def override_session_factory(factory):
    """Override the session factory for testing."""
    global _session_factory
    _session_factory = factory
