"""Release Manager Pipeline - Release Processing Scheduler.

Advances releases out of PROCESSING once their tracks are fully ingested.

Every poll tick (default 10s), unless the previous cycle is still running:
1. Read all PROCESSING releases with their total track count.
2. For each release: wait the simulated processing time (where transcoding
   and metadata extraction would happen), then count tracks with a non-empty
   audio URL. When that count equals the total and the total is > 0, move the
   release to PENDING_REVIEW.

The completion check is re-evaluated from scratch on every tick and is safe to
run redundantly. A release whose tracks never complete stays in PROCESSING;
there is no timeout or escalation.
"""

from __future__ import annotations

import logging
import threading
import time

from app.config import RELEASE_POLL_INTERVAL_SECONDS, SIMULATED_PROCESSING_SECONDS
from app.gateway import PersistenceGateway, ProcessingRelease
from app.models import ReleaseStatus
from app.poller import IntervalPoller

logger = logging.getLogger(__name__)

# process_release outcomes
RELEASE_ADVANCED = "advanced"
RELEASE_WAITING = "waiting"
RELEASE_ERROR = "error"


class ReleaseProcessingScheduler:
    """Polls PROCESSING releases and applies the track completion check."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        poll_interval_seconds: float = RELEASE_POLL_INTERVAL_SECONDS,
        processing_delay_seconds: float = SIMULATED_PROCESSING_SECONDS,
    ):
        self._gateway = gateway
        self.processing_delay_seconds = processing_delay_seconds
        self._in_progress = False
        self._in_progress_lock = threading.Lock()
        self._poller = IntervalPoller(
            "release-processing-worker", poll_interval_seconds, self.poll_and_process
        )

    @property
    def is_running(self) -> bool:
        return self._poller.is_running

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def start(self) -> bool:
        return self._poller.start()

    def stop(self, timeout: float | None = None) -> None:
        self._poller.stop(timeout=timeout)

    def poll_and_process(self) -> dict:
        """Run one processing cycle unless another one is in progress.

        Returns:
            Dict describing the cycle (for logging/debugging).
        """
        with self._in_progress_lock:
            if self._in_progress:
                logger.debug("Release processing cycle already in progress, skipping tick")
                return {"status": "skipped", "reason": "cycle_in_progress"}
            self._in_progress = True

        outcomes = {RELEASE_ADVANCED: 0, RELEASE_WAITING: 0, RELEASE_ERROR: 0}
        try:
            releases = self._gateway.find_processing_releases()
            for release in releases:
                outcomes[self.process_release(release)] += 1
        except Exception:
            logger.exception("Error processing releases")
            return {"status": "error", **outcomes}
        finally:
            with self._in_progress_lock:
                self._in_progress = False

        return {"status": "ok", **outcomes}

    def process_release(self, release: ProcessingRelease) -> str:
        """Evaluate the completion check for one release.

        Never raises: failures are logged and the release is left untouched
        for the next cycle.

        Returns:
            RELEASE_ADVANCED, RELEASE_WAITING or RELEASE_ERROR.
        """
        try:
            logger.info("Processing release: release_id=%s, title=%s", release.id, release.title)

            self._simulate_processing()

            uploaded_tracks = self._gateway.count_completed_tracks(release.id)

            if release.track_count > 0 and uploaded_tracks == release.track_count:
                advanced = self._gateway.update_release_status(
                    release.id,
                    ReleaseStatus.PENDING_REVIEW,
                    expected_status=ReleaseStatus.PROCESSING,
                )
                if not advanced:
                    logger.info(
                        "Release left PROCESSING during the cycle, not advancing: release_id=%s",
                        release.id,
                    )
                    return RELEASE_WAITING
                logger.info(
                    "Release processing completed, moved to PENDING_REVIEW: release_id=%s",
                    release.id,
                )
                return RELEASE_ADVANCED

            logger.info(
                "Release still processing, waiting for all tracks: "
                "release_id=%s, uploaded_tracks=%d, total_tracks=%d",
                release.id,
                uploaded_tracks,
                release.track_count,
            )
            return RELEASE_WAITING
        except Exception:
            logger.exception("Failed to process release: release_id=%s", release.id)
            return RELEASE_ERROR

    def _simulate_processing(self) -> None:
        # Transcoding, metadata extraction and waveform generation would run here
        if self.processing_delay_seconds > 0:
            time.sleep(self.processing_delay_seconds)


# --- Standalone Execution ---


def run_processing_cycle() -> dict:
    """Run a single release processing cycle against the configured database."""
    from app.db import init_db

    _, SessionFactory = init_db()
    scheduler = ReleaseProcessingScheduler(PersistenceGateway(SessionFactory))
    return scheduler.poll_and_process()


if __name__ == "__main__":
    from app.config import LOG_LEVEL

    logging.basicConfig(level=LOG_LEVEL)
    print(run_processing_cycle())
