"""Release Manager Pipeline - Worker Supervisor.

Single composition root for the two background schedulers. The process entry
point builds one supervisor after the database (and, in the API process, the
HTTP listener) is ready, calls start_all(), and calls stop_all() on shutdown.

Run standalone (workers only, no HTTP):
    python -m services.supervisor.run
"""

from __future__ import annotations

import logging
import signal
import threading

from sqlalchemy.orm import sessionmaker

from app.config import WORKER_STOP_TIMEOUT_SECONDS
from app.gateway import PersistenceGateway
from app.storage import ObjectStore
from services.processing_worker.run import ReleaseProcessingScheduler
from services.upload_worker.run import UploadJobScheduler

logger = logging.getLogger(__name__)


class WorkerSupervisor:
    """Starts and stops both schedulers as one unit."""

    def __init__(
        self,
        upload_scheduler: UploadJobScheduler,
        processing_scheduler: ReleaseProcessingScheduler,
        stop_timeout_seconds: float = WORKER_STOP_TIMEOUT_SECONDS,
    ):
        self.upload_scheduler = upload_scheduler
        self.processing_scheduler = processing_scheduler
        self.stop_timeout_seconds = stop_timeout_seconds

    def start_all(self) -> None:
        """Start the upload scheduler, then the release processing scheduler."""
        logger.info("Starting all background workers...")
        self.upload_scheduler.start()
        logger.info("Upload job scheduler started")
        self.processing_scheduler.start()
        logger.info("Release processing scheduler started")
        logger.info("All background workers started successfully")

    def stop_all(self) -> None:
        """Stop both schedulers from taking new ticks.

        In-flight ticks are not cancelled; each stop waits a bounded time for
        its scheduler's current tick to finish.
        """
        logger.info("Stopping all background workers...")
        self.upload_scheduler.stop(timeout=self.stop_timeout_seconds)
        self.processing_scheduler.stop(timeout=self.stop_timeout_seconds)
        logger.info("All background workers stopped")


def build_supervisor(session_factory: sessionmaker, store: ObjectStore) -> WorkerSupervisor:
    """Wire both schedulers against one gateway and object store."""
    gateway = PersistenceGateway(session_factory)
    return WorkerSupervisor(
        upload_scheduler=UploadJobScheduler(gateway, store),
        processing_scheduler=ReleaseProcessingScheduler(gateway),
    )


def main() -> None:
    """Run both schedulers until SIGINT/SIGTERM."""
    from app.config import LOG_LEVEL, STAGING_DIR, STORAGE_DIR
    from app.db import init_db
    from app.storage import LocalObjectStore
    from app.utils.atomic_io import cleanup_orphan_temp_files

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    _, SessionFactory = init_db()
    for directory in (STAGING_DIR, STORAGE_DIR):
        removed = cleanup_orphan_temp_files(directory)
        if removed:
            logger.info("Startup cleanup: removed %d orphan temp files in %s", removed, directory)

    supervisor = build_supervisor(SessionFactory, LocalObjectStore())
    shutdown = threading.Event()

    def _request_shutdown(signum, frame):
        logger.info("Received signal %d, shutting down", signum)
        shutdown.set()

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)

    supervisor.start_all()
    try:
        shutdown.wait()
    finally:
        supervisor.stop_all()


if __name__ == "__main__":
    main()
