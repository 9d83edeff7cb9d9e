"""Release Manager Pipeline - Persistence gateway.

Row-level reads and writes used by the ingestion pipeline. Every method takes
an optional ``session``: when given, the statement joins that caller-owned
transaction and nothing is committed here; when omitted, the statement runs in
its own short transaction.

The upload path passes the session from ``transaction()`` so the job status
writes and the target record update commit or roll back together. Retry
bookkeeping and release status flips run as standalone statements.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from app.errors import ResourceNotFoundError
from app.models import (
    Release,
    ReleaseStatus,
    Track,
    UploadJob,
    UploadJobStatus,
    UploadJobType,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessingRelease:
    """A release in PROCESSING together with its total track count."""

    id: str
    artist_id: str
    title: str
    track_count: int


class PersistenceGateway:
    """Transactional access to releases, tracks and upload jobs."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a session for one unit of work.

        Commits when the block exits normally; rolls back and re-raises on
        any exception.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _unit(self, session: Session | None) -> Iterator[Session]:
        if session is not None:
            yield session
            return
        with self.transaction() as own_session:
            yield own_session

    # --- Upload jobs ---

    def get_job(self, job_id: str, session: Session | None = None) -> UploadJob | None:
        with self._unit(session) as s:
            return s.get(UploadJob, job_id)

    def find_pending_jobs(self, limit: int, session: Session | None = None) -> list[UploadJob]:
        """Fetch up to ``limit`` PENDING jobs, oldest first."""
        stmt = (
            select(UploadJob)
            .where(UploadJob.status == UploadJobStatus.PENDING)
            .order_by(UploadJob.created_at.asc(), UploadJob.id.asc())
            .limit(limit)
        )
        with self._unit(session) as s:
            return list(s.execute(stmt).scalars().all())

    def claim_job(self, job_id: str, session: Session | None = None) -> bool:
        """Transition a job PENDING -> UPLOADING.

        The update is conditional on the job still being PENDING, so two
        pollers that fetched the same row cannot both own it.

        Returns:
            True if this caller claimed the job, False if it was no longer PENDING.
        """
        stmt = (
            update(UploadJob)
            .where(UploadJob.id == job_id, UploadJob.status == UploadJobStatus.PENDING)
            .values(status=UploadJobStatus.UPLOADING, updated_at=utc_now())
        )
        with self._unit(session) as s:
            return s.execute(stmt).rowcount > 0

    def update_job_status(
        self,
        job_id: str,
        status: UploadJobStatus | str,
        retry_count: int | None = None,
        error_log: str | None = None,
        session: Session | None = None,
    ) -> None:
        """Set a job's status, optionally with retry count and error log.

        A FAILED job is terminal: this never moves a job out of FAILED.
        Moving to COMPLETED clears the error log of earlier attempts.
        """
        status = UploadJobStatus(status)
        values: dict = {"status": status, "updated_at": utc_now()}
        if retry_count is not None:
            values["retry_count"] = retry_count
        if error_log is not None:
            values["error_log"] = error_log
        elif status == UploadJobStatus.COMPLETED:
            values["error_log"] = None

        stmt = (
            update(UploadJob)
            .where(UploadJob.id == job_id, UploadJob.status != UploadJobStatus.FAILED)
            .values(**values)
        )
        with self._unit(session) as s:
            if s.execute(stmt).rowcount == 0:
                logger.warning(
                    "Job status update to %s matched no row: job_id=%s", status, job_id
                )

    def reset_stuck_jobs(
        self,
        older_than: datetime,
        error_log: str,
        session: Session | None = None,
    ) -> list[str]:
        """Reset UPLOADING jobs last touched before ``older_than`` to PENDING.

        retry_count is left unchanged. The reset refreshes updated_at, so a
        repeated sweep does not reset the same job again.

        Returns:
            IDs of the jobs that were reset.
        """
        find_stmt = select(UploadJob.id).where(
            UploadJob.status == UploadJobStatus.UPLOADING,
            UploadJob.updated_at < older_than,
        )
        with self._unit(session) as s:
            candidate_ids = list(s.execute(find_stmt).scalars().all())
            reset_ids = []
            for job_id in candidate_ids:
                stmt = (
                    update(UploadJob)
                    .where(
                        UploadJob.id == job_id,
                        UploadJob.status == UploadJobStatus.UPLOADING,
                        UploadJob.updated_at < older_than,
                    )
                    .values(
                        status=UploadJobStatus.PENDING,
                        error_log=error_log,
                        updated_at=utc_now(),
                    )
                )
                if s.execute(stmt).rowcount > 0:
                    reset_ids.append(job_id)
            return reset_ids

    # --- Target records ---

    def update_entity_url(
        self,
        entity_id: str,
        job_type: UploadJobType | str,
        url: str,
        duration: int | None = None,
        session: Session | None = None,
    ) -> None:
        """Attach an uploaded file URL to its target record.

        AUDIO jobs write Track.audio_file_url (and duration_seconds when a
        positive duration was extracted); COVER_ART jobs write
        Release.cover_art_url.

        Raises:
            ResourceNotFoundError: If the target record no longer exists.
        """
        job_type = UploadJobType(job_type)
        if job_type == UploadJobType.AUDIO:
            values: dict = {"audio_file_url": url, "updated_at": utc_now()}
            if duration:
                values["duration_seconds"] = duration
            stmt = update(Track).where(Track.id == entity_id).values(**values)
            resource = "Track"
        else:
            stmt = (
                update(Release)
                .where(Release.id == entity_id)
                .values(cover_art_url=url, updated_at=utc_now())
            )
            resource = "Release"

        with self._unit(session) as s:
            if s.execute(stmt).rowcount == 0:
                raise ResourceNotFoundError(resource, entity_id)

    def get_release(self, release_id: str, session: Session | None = None) -> Release | None:
        with self._unit(session) as s:
            return s.get(Release, release_id)

    def get_track(self, track_id: str, session: Session | None = None) -> Track | None:
        with self._unit(session) as s:
            return s.get(Track, track_id)

    def list_tracks(self, release_id: str, session: Session | None = None) -> list[Track]:
        stmt = select(Track).where(Track.release_id == release_id).order_by(Track.track_order)
        with self._unit(session) as s:
            return list(s.execute(stmt).scalars().all())

    def count_tracks(self, release_id: str, session: Session | None = None) -> int:
        stmt = select(func.count(Track.id)).where(Track.release_id == release_id)
        with self._unit(session) as s:
            return s.execute(stmt).scalar_one()

    def count_completed_tracks(self, release_id: str, session: Session | None = None) -> int:
        """Count tracks of a release that have a non-empty audio URL."""
        stmt = select(func.count(Track.id)).where(
            Track.release_id == release_id,
            Track.audio_file_url.is_not(None),
            Track.audio_file_url != "",
        )
        with self._unit(session) as s:
            return s.execute(stmt).scalar_one()

    def find_processing_releases(self, session: Session | None = None) -> list[ProcessingRelease]:
        """All releases in PROCESSING joined with their track count (zero included)."""
        stmt = (
            select(
                Release.id,
                Release.artist_id,
                Release.title,
                func.count(Track.id).label("track_count"),
            )
            .outerjoin(Track, Track.release_id == Release.id)
            .where(Release.status == ReleaseStatus.PROCESSING)
            .group_by(Release.id, Release.artist_id, Release.title, Release.created_at)
            .order_by(Release.created_at.asc())
        )
        with self._unit(session) as s:
            rows = s.execute(stmt).all()
        return [
            ProcessingRelease(
                id=row.id,
                artist_id=row.artist_id,
                title=row.title,
                track_count=int(row.track_count),
            )
            for row in rows
        ]

    def update_release_status(
        self,
        release_id: str,
        status: ReleaseStatus | str,
        expected_status: ReleaseStatus | str | None = None,
        session: Session | None = None,
    ) -> bool:
        """Set a release's status.

        Args:
            release_id: The release to update.
            status: New status.
            expected_status: When given, only update if the release is
                currently in this status.

        Returns:
            True if a row was updated.
        """
        stmt = update(Release).where(Release.id == release_id)
        if expected_status is not None:
            stmt = stmt.where(Release.status == ReleaseStatus(expected_status))
        stmt = stmt.values(status=ReleaseStatus(status), updated_at=utc_now())

        with self._unit(session) as s:
            return s.execute(stmt).rowcount > 0
