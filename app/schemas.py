"""Release Manager Pipeline - Pydantic models for API responses.

Used by FastAPI for response validation and OpenAPI docs. The status API only
reads; there are no request bodies.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models import Release, UploadJob


class UploadJobStatusResponse(BaseModel):
    """Current state of one upload job."""

    model_config = ConfigDict(extra="forbid")

    job_id: str = Field(..., description="Unique job identifier")
    target_entity_id: str = Field(..., description="Track id (AUDIO) or Release id (COVER_ART)")
    job_type: str = Field(..., description="AUDIO or COVER_ART")
    status: str = Field(..., description="PENDING, UPLOADING, COMPLETED or FAILED")
    retry_count: int = Field(..., ge=0, description="Failed attempts so far")
    error_log: str | None = Field(default=None, description="Message of the most recent failure")
    created_at: datetime = Field(..., description="When the job was queued")
    updated_at: datetime = Field(..., description="Last status change")

    @classmethod
    def from_job(cls, job: UploadJob) -> "UploadJobStatusResponse":
        return cls(
            job_id=job.id,
            target_entity_id=job.target_entity_id,
            job_type=job.job_type,
            status=job.status,
            retry_count=job.retry_count,
            error_log=job.error_log,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class ReleaseStatusResponse(BaseModel):
    """Release status with ingestion progress of its tracks."""

    model_config = ConfigDict(extra="forbid")

    release_id: str = Field(..., description="Unique release identifier")
    title: str = Field(..., description="Release title")
    status: str = Field(..., description="Release lifecycle status")
    cover_art_url: str | None = Field(default=None, description="Public cover art URL, if any")
    tracks_total: int = Field(..., ge=0, description="Number of tracks on the release")
    tracks_ready: int = Field(..., ge=0, description="Tracks with an uploaded audio file")
    updated_at: datetime = Field(..., description="Last change to the release")

    @classmethod
    def from_release(
        cls, release: Release, tracks_total: int, tracks_ready: int
    ) -> "ReleaseStatusResponse":
        return cls(
            release_id=release.id,
            title=release.title,
            status=release.status,
            cover_art_url=release.cover_art_url,
            tracks_total=tracks_total,
            tracks_ready=tracks_ready,
            updated_at=release.updated_at,
        )


class ErrorResponse(BaseModel):
    """Response for failed requests."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(default="error", description="Operation status")
    error_code: str = Field(..., description="Error taxonomy code")
    error_message: str = Field(..., description="Human-readable error description")


__all__ = [
    "UploadJobStatusResponse",
    "ReleaseStatusResponse",
    "ErrorResponse",
]
