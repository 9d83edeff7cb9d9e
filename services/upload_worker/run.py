"""Release Manager Pipeline - Upload Job Scheduler.

Drains queued UploadJobs: moves each staged local file into the object store
and attaches the resulting URL to its Track (AUDIO) or Release (COVER_ART).

Every poll tick (default 5s):
1. Recovery sweep: jobs left in UPLOADING past the stuck timeout go back to
   PENDING (orphaned by a crashed worker).
2. Fetch up to UPLOAD_BATCH_SIZE PENDING jobs, oldest first, and process
   them one at a time.

Per job, one database transaction covers: claim (PENDING -> UPLOADING),
object store upload, target record update, COMPLETED. Any exception rolls
the whole transaction back, the uploaded blob (if any) is deleted
best-effort, and the failure is recorded in a separate statement:

  - retry_count < MAX_RETRIES  -> PENDING, retry_count + 1, error_log
  - retry_count >= MAX_RETRIES -> FAILED (terminal), error_log, staged file removed

Failures never escape a tick; one bad job cannot halt the queue.

Failpoints:
- UPLOAD_AFTER_CLAIM: After the job was marked UPLOADING, before the upload
- UPLOAD_AFTER_STORE_WRITE: After the blob was stored, before the record update
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from app.config import (
    MAX_RETRIES,
    STUCK_JOB_TIMEOUT_SECONDS,
    UPLOAD_BATCH_SIZE,
    UPLOAD_POLL_INTERVAL_SECONDS,
)
from app.gateway import PersistenceGateway
from app.models import UploadJob, UploadJobStatus, utc_now
from app.poller import IntervalPoller
from app.storage import ObjectStore, UploadedObject, delete_best_effort, discard_local_file
from app.utils.failpoints import maybe_fail

logger = logging.getLogger(__name__)

# Outcome recorded when a fetched job was claimed by someone else first
JOB_SKIPPED = "SKIPPED"


@dataclass
class JobResult:
    """Result of processing one upload job."""

    job_id: str
    status: str
    retry_count: int | None = None
    url: str | None = None
    error: str | None = None


class UploadJobScheduler:
    """Polls for PENDING upload jobs and executes them."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        store: ObjectStore,
        poll_interval_seconds: float = UPLOAD_POLL_INTERVAL_SECONDS,
        batch_size: int = UPLOAD_BATCH_SIZE,
        stuck_timeout_seconds: float = STUCK_JOB_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
    ):
        self._gateway = gateway
        self._store = store
        self.batch_size = batch_size
        self.stuck_timeout_seconds = stuck_timeout_seconds
        self.max_retries = max_retries
        self._poller = IntervalPoller("upload-worker", poll_interval_seconds, self.poll_and_dispatch)

    @property
    def is_running(self) -> bool:
        return self._poller.is_running

    def start(self) -> bool:
        return self._poller.start()

    def stop(self, timeout: float | None = None) -> None:
        self._poller.stop(timeout=timeout)

    # --- Poll tick ---

    def poll_and_dispatch(self) -> dict:
        """Run one poll tick: recovery sweep, then process a batch of jobs.

        Returns:
            Dict counting what happened (for logging/debugging).
        """
        summary = {"recovered": 0, "completed": 0, "retried": 0, "failed": 0, "skipped": 0}

        try:
            summary["recovered"] = len(self.recover_stuck_jobs())
        except Exception:
            logger.exception("Stuck job recovery sweep failed")

        try:
            jobs = self._gateway.find_pending_jobs(self.batch_size)
        except Exception:
            logger.exception("Failed to fetch pending upload jobs")
            return summary

        for job in jobs:
            try:
                result = self.process_job(job)
            except Exception:
                # Only reachable when recording the failure itself failed;
                # the job is still PENDING and is picked up next tick.
                logger.exception("Could not record outcome of upload job %s", job.id)
                continue

            if result.status == UploadJobStatus.COMPLETED:
                summary["completed"] += 1
            elif result.status == UploadJobStatus.PENDING:
                summary["retried"] += 1
            elif result.status == UploadJobStatus.FAILED:
                summary["failed"] += 1
            else:
                summary["skipped"] += 1

        if jobs:
            logger.info("Upload tick finished: %s", summary)
        return summary

    # --- Job execution ---

    def process_job(self, job: UploadJob) -> JobResult:
        """Upload one job's file and attach the URL, atomically.

        Args:
            job: Job snapshot fetched by the poll.

        Returns:
            JobResult with the job's resulting status.
        """
        logger.info(
            "Processing upload job: job_id=%s, job_type=%s, target=%s, retry_count=%d",
            job.id,
            job.job_type,
            job.target_entity_id,
            job.retry_count,
        )
        uploaded: UploadedObject | None = None

        try:
            with self._gateway.transaction() as session:
                if not self._gateway.claim_job(job.id, session=session):
                    logger.info("Upload job %s is no longer PENDING, skipping", job.id)
                    return JobResult(job_id=job.id, status=JOB_SKIPPED)

                maybe_fail("UPLOAD_AFTER_CLAIM")

                local_path = Path(job.local_path)
                data = local_path.read_bytes()
                uploaded = self._store.upload(data, local_path.name, job.job_type)

                maybe_fail("UPLOAD_AFTER_STORE_WRITE")

                self._gateway.update_entity_url(
                    job.target_entity_id,
                    job.job_type,
                    uploaded.url,
                    duration=uploaded.duration,
                    session=session,
                )
                self._gateway.update_job_status(
                    job.id, UploadJobStatus.COMPLETED, session=session
                )
        except Exception as e:
            if uploaded is not None:
                cleanup = delete_best_effort(self._store, uploaded.url)
                logger.info(
                    "Orphaned object cleanup for job %s: ok=%s, error=%s",
                    job.id,
                    cleanup.ok,
                    cleanup.error,
                )
            return self.handle_job_failure(job, e)

        discard_local_file(job.local_path)
        logger.info("Upload job completed: job_id=%s, url=%s", job.id, uploaded.url)
        return JobResult(
            job_id=job.id,
            status=UploadJobStatus.COMPLETED,
            retry_count=job.retry_count,
            url=uploaded.url,
        )

    def handle_job_failure(self, job: UploadJob, error: BaseException) -> JobResult:
        """Record a failed attempt outside the rolled-back upload transaction.

        Args:
            job: Job snapshot fetched by the poll (its retry_count is the
                count before this attempt).
            error: The exception that ended the attempt.

        Returns:
            JobResult with status PENDING (retry scheduled) or FAILED.
        """
        error_message = str(error) or type(error).__name__
        logger.error(
            "Upload job failed: job_id=%s, retry_count=%d/%d, error=%s",
            job.id,
            job.retry_count,
            self.max_retries,
            error_message,
        )

        if job.retry_count >= self.max_retries:
            self._gateway.update_job_status(job.id, UploadJobStatus.FAILED, error_log=error_message)
            logger.error(
                "Upload job permanently failed after %d retries: job_id=%s",
                job.retry_count,
                job.id,
            )
            # FAILED is terminal: nothing reads the staged file again
            discard_local_file(job.local_path)
            return JobResult(
                job_id=job.id,
                status=UploadJobStatus.FAILED,
                retry_count=job.retry_count,
                error=error_message,
            )

        next_retry = job.retry_count + 1
        self._gateway.update_job_status(
            job.id,
            UploadJobStatus.PENDING,
            retry_count=next_retry,
            error_log=error_message,
        )
        logger.info("Upload job queued for retry: job_id=%s, retry_count=%d", job.id, next_retry)
        return JobResult(
            job_id=job.id,
            status=UploadJobStatus.PENDING,
            retry_count=next_retry,
            error=error_message,
        )

    # --- Recovery ---

    def recover_stuck_jobs(self) -> list[str]:
        """Reset jobs stuck in UPLOADING past the timeout back to PENDING.

        Returns:
            IDs of the jobs that were reset.
        """
        cutoff = utc_now() - timedelta(seconds=self.stuck_timeout_seconds)
        error_log = (
            f"Job stuck in UPLOADING for more than {int(self.stuck_timeout_seconds)}s; "
            "reset to PENDING by recovery sweep"
        )
        reset_ids = self._gateway.reset_stuck_jobs(cutoff, error_log)
        if reset_ids:
            logger.warning(
                "Reset %d stuck upload job(s) to PENDING: %s", len(reset_ids), ", ".join(reset_ids)
            )
        return reset_ids


# --- Standalone Execution ---


def run_upload_tick() -> dict:
    """Run a single upload poll tick against the configured database and store."""
    from app.db import init_db
    from app.storage import LocalObjectStore

    _, SessionFactory = init_db()
    scheduler = UploadJobScheduler(PersistenceGateway(SessionFactory), LocalObjectStore())
    return scheduler.poll_and_dispatch()


if __name__ == "__main__":
    from app.config import LOG_LEVEL

    logging.basicConfig(level=LOG_LEVEL)
    print(run_upload_tick())
