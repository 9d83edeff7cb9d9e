"""Release Manager Pipeline - Release status transitions.

    DRAFT -> PROCESSING            submit_release (artist)
    PROCESSING -> PENDING_REVIEW   release processing scheduler
    PENDING_REVIEW -> PUBLISHED    approve_release (admin)
    PENDING_REVIEW -> REJECTED     reject_release (admin)

Each transition checks the current status and applies the update
conditionally on it inside one transaction.
"""

from __future__ import annotations

import logging

from app.errors import InvalidStateError, ResourceNotFoundError
from app.gateway import PersistenceGateway
from app.models import Release, ReleaseStatus

logger = logging.getLogger(__name__)


def submit_release(gateway: PersistenceGateway, release_id: str) -> Release:
    """Submit a DRAFT release for processing.

    A release can be submitted only when it has cover art, at least one track,
    and every track has an audio file.

    Args:
        gateway: Persistence gateway.
        release_id: The release to submit.

    Returns:
        The release after the transition (status PROCESSING).

    Raises:
        ResourceNotFoundError: If the release does not exist.
        InvalidStateError: If the release is not a DRAFT or is incomplete.
    """
    with gateway.transaction() as session:
        release = gateway.get_release(release_id, session=session)
        if release is None:
            raise ResourceNotFoundError("Release", release_id)

        if release.status != ReleaseStatus.DRAFT:
            raise InvalidStateError("Only draft releases can be submitted")

        if not release.cover_art_url:
            raise InvalidStateError("Release must have cover art before submission")

        tracks = gateway.list_tracks(release_id, session=session)
        if not tracks:
            raise InvalidStateError("Release must have at least one track before submission")

        if any(not track.audio_file_url for track in tracks):
            raise InvalidStateError("All tracks must have audio files before submission")

        _transition(gateway, release_id, ReleaseStatus.DRAFT, ReleaseStatus.PROCESSING, session)

    logger.info("Release submitted for processing: release_id=%s", release_id)
    return gateway.get_release(release_id)


def approve_release(gateway: PersistenceGateway, release_id: str) -> Release:
    """Publish a release that is pending review."""
    _review(gateway, release_id, ReleaseStatus.PUBLISHED, "approved")
    logger.info("Release approved: release_id=%s", release_id)
    return gateway.get_release(release_id)


def reject_release(gateway: PersistenceGateway, release_id: str) -> Release:
    """Reject a release that is pending review."""
    _review(gateway, release_id, ReleaseStatus.REJECTED, "rejected")
    logger.info("Release rejected: release_id=%s", release_id)
    return gateway.get_release(release_id)


def _review(
    gateway: PersistenceGateway, release_id: str, target: ReleaseStatus, verb: str
) -> None:
    with gateway.transaction() as session:
        release = gateway.get_release(release_id, session=session)
        if release is None:
            raise ResourceNotFoundError("Release", release_id)

        if release.status != ReleaseStatus.PENDING_REVIEW:
            raise InvalidStateError(f"Only releases pending review can be {verb}")

        _transition(gateway, release_id, ReleaseStatus.PENDING_REVIEW, target, session)


def _transition(gateway, release_id, current, target, session) -> None:
    # Conditional on the status just read; a concurrent writer makes this a no-op
    if not gateway.update_release_status(
        release_id, target, expected_status=current, session=session
    ):
        raise InvalidStateError(
            f"Release {release_id} is no longer {current}; cannot move to {target}"
        )
