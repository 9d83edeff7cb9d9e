"""Release Manager Pipeline - SQLAlchemy ORM models.

Database tables:
1. releases
2. tracks
3. upload_jobs
"""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.config import TRACK_DURATION_PLACEHOLDER_SECONDS


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a unique record ID (uuid4 hex, 32 chars)."""
    return uuid.uuid4().hex


class ReleaseStatus(StrEnum):
    DRAFT = "DRAFT"
    PROCESSING = "PROCESSING"
    PENDING_REVIEW = "PENDING_REVIEW"
    PUBLISHED = "PUBLISHED"
    REJECTED = "REJECTED"


class UploadJobStatus(StrEnum):
    PENDING = "PENDING"
    UPLOADING = "UPLOADING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class UploadJobType(StrEnum):
    AUDIO = "AUDIO"
    COVER_ART = "COVER_ART"


class Release(Base):
    """An artist's submission.

    cover_art_url is written only by the ingestion pipeline or the
    synchronous cover art upload, never directly by the HTTP layer.
    """

    __tablename__ = "releases"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    artist_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    genre: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    cover_art_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ReleaseStatus.DRAFT, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    tracks: Mapped[list["Track"]] = relationship(
        back_populates="release",
        cascade="all, delete-orphan",
        order_by="Track.track_order",
    )


class Track(Base):
    """A single track, owned by exactly one release.

    audio_file_url stays empty until the audio upload completes.
    """

    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    release_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    isrc: Mapped[str | None] = mapped_column(String(12), nullable=True)
    audio_file_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration_seconds: Mapped[int] = mapped_column(
        Integer, nullable=False, default=TRACK_DURATION_PLACEHOLDER_SECONDS
    )
    track_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    release: Mapped[Release] = relationship(back_populates="tracks")


class UploadJob(Base):
    """Queued unit of work: move a local file into durable storage and
    attach its URL to a Track (AUDIO) or Release (COVER_ART).

    target_entity_id is a weak reference; the target is not a foreign key.

    Status lifecycle:
        PENDING -> UPLOADING -> COMPLETED
        UPLOADING -> PENDING (retry_count + 1) while retries remain
        UPLOADING -> FAILED once retry_count reached MAX_RETRIES (terminal)
        UPLOADING -> PENDING via the stuck-job recovery sweep
    """

    __tablename__ = "upload_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    target_entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    job_type: Mapped[str] = mapped_column(String(32), nullable=False)
    local_path: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=UploadJobStatus.PENDING
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_log: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    # Refreshed on every update; the recovery sweep measures stuck time from it
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (Index("ix_upload_jobs_status_created", "status", "created_at"),)
